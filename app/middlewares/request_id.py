from __future__ import annotations

import os
import re
import time

from flask import Flask, g, request


_VALID_ID = re.compile(r"^[A-Za-z0-9._-]{6,64}$")


def init_request_id(app: Flask) -> None:
    """Accept a sane inbound X-Request-ID or mint one; echo it on the response."""

    @app.before_request
    def _assign_request_id():
        inbound = str(request.headers.get("X-Request-ID") or "").strip()
        g.request_id = inbound if _VALID_ID.match(inbound) else os.urandom(8).hex()
        g.start_ts = time.monotonic()

    @app.after_request
    def _echo_request_id(resp):
        resp.headers["X-Request-ID"] = str(getattr(g, "request_id", "") or "")
        return resp
