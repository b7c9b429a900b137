from __future__ import annotations

import logging
import sys

from flask import g, has_request_context


class RequestIdFilter(logging.Filter):
    """Stamps every record with the current request id ("-" outside requests)."""

    def filter(self, record: logging.LogRecord) -> bool:
        rid = "-"
        if has_request_context():
            rid = str(getattr(g, "request_id", "") or "-")
        record.request_id = rid
        return True


_FORMAT = "%(asctime)s %(levelname)s [%(name)s] request_id=%(request_id)s %(message)s"


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level or "INFO").upper(), logging.INFO))

    # Idempotent: create_app() runs once per test.
    for h in root.handlers:
        if getattr(h, "_idcard_portal", False):
            return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler.addFilter(RequestIdFilter())
    handler._idcard_portal = True  # type: ignore[attr-defined]
    root.addHandler(handler)

    # Quiet chatty libraries.
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("werkzeug").setLevel(logging.WARNING)
