import os

# Test runs use a throwaway SQLite database unless DATABASE_URL points elsewhere
# (CI can run the suite against PostgreSQL to exercise the ledger triggers).
os.environ.setdefault("DEBUG", "1")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from config.settings import *  # noqa: E402,F401,F403

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]
