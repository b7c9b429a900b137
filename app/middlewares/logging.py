from __future__ import annotations

import logging
import time

from flask import Flask, g, request


_log = logging.getLogger("api")

_QUIET_PATHS = {"/health", "/ready"}


def init_request_logging(app: Flask) -> None:
    @app.after_request
    def _log_request(resp):
        if request.path in _QUIET_PATHS:
            return resp
        start = getattr(g, "start_ts", None)
        latency_ms = int((time.monotonic() - start) * 1000) if start is not None else -1
        auth = getattr(g, "auth", None)
        _log.info(
            "method=%s path=%s status=%s user=%s latency_ms=%s",
            request.method,
            request.path,
            resp.status_code,
            (auth.email if auth else "PUBLIC"),
            latency_ms,
        )
        return resp
