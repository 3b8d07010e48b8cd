import logging
import re

POLLING_PATHS: frozenset[str] = frozenset(
    {
        "/healthz",
        "/readyz",
        "/scores/live",
        "/ballots/counters",
    }
)

# runserver access lines ('"GET /scores/live/ HTTP/1.1" 200 512') and
# django.request lines ("Service Unavailable: /readyz/").
_MESSAGE_PATH_RE = re.compile(r'(?:"[A-Z]+ |: )(/[^\s?"]*)')


def record_path(record: logging.LogRecord) -> str | None:
    request = getattr(record, "request", None)
    path = getattr(request, "path_info", None) or getattr(request, "path", None)
    if isinstance(path, str) and path:
        return path

    match = _MESSAGE_PATH_RE.search(record.getMessage())
    return match.group(1) if match else None


def is_polling_path(path: str, paths: frozenset[str] = POLLING_PATHS) -> bool:
    return path.split("?", 1)[0].rstrip("/") in paths


class SkipPollingFilter(logging.Filter):
    """Drop request log records for endpoints that clients poll continuously.

    Only exact polling endpoints are dropped: ``/scores/live/export/`` is still
    logged even though it shares a prefix with ``/scores/live/``.
    """

    def __init__(self, paths: frozenset[str] | None = None) -> None:
        super().__init__()
        self.paths = POLLING_PATHS if paths is None else frozenset(paths)

    def filter(self, record: logging.LogRecord) -> bool:
        path = record_path(record)
        if path is None:
            return True
        return not is_polling_path(path, self.paths)
