from __future__ import annotations

from django.db import migrations

BALLOTLINE_APPEND_ONLY_SQL = """
CREATE OR REPLACE FUNCTION core_ballotline_append_only() RETURNS trigger AS $$
BEGIN
    RAISE EXCEPTION 'ballot lines are append-only (% is not allowed)', TG_OP;
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS core_ballotline_no_update_trg ON core_ballotline;
CREATE TRIGGER core_ballotline_no_update_trg
BEFORE UPDATE ON core_ballotline
FOR EACH ROW
EXECUTE FUNCTION core_ballotline_append_only();

DROP TRIGGER IF EXISTS core_ballotline_no_delete_trg ON core_ballotline;
CREATE TRIGGER core_ballotline_no_delete_trg
BEFORE DELETE ON core_ballotline
FOR EACH ROW
EXECUTE FUNCTION core_ballotline_append_only();
"""

BALLOTLINE_APPEND_ONLY_SQL_REVERSE = """
DROP TRIGGER IF EXISTS core_ballotline_no_delete_trg ON core_ballotline;
DROP TRIGGER IF EXISTS core_ballotline_no_update_trg ON core_ballotline;

DROP FUNCTION IF EXISTS core_ballotline_append_only();
"""


def _run_on_postgresql(sql: str):
    # Other backends (SQLite in tests) rely on the model-level guard only.
    def run(apps, schema_editor) -> None:
        if schema_editor.connection.vendor != "postgresql":
            return
        schema_editor.execute(sql)

    return run


class Migration(migrations.Migration):
    dependencies = [
        ("core", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(
            _run_on_postgresql(BALLOTLINE_APPEND_ONLY_SQL),
            _run_on_postgresql(BALLOTLINE_APPEND_ONLY_SQL_REVERSE),
        ),
    ]
