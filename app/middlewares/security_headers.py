from __future__ import annotations

from flask import Flask, request


def init_security_headers(app: Flask) -> None:
    @app.after_request
    def _security_headers(resp):
        resp.headers.setdefault("X-Content-Type-Options", "nosniff")
        resp.headers.setdefault("X-Frame-Options", "DENY")
        resp.headers.setdefault("Referrer-Policy", "no-referrer")
        # Stored uploads may be cached by the browser; API answers may not.
        if not request.path.startswith("/files/"):
            resp.headers.setdefault("Cache-Control", "no-store")
        return resp
