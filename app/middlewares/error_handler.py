from __future__ import annotations

import logging

from flask import Flask, g
from werkzeug.exceptions import HTTPException

from utils import ApiError, json_error
from validation import ValidationErrors


_log = logging.getLogger("api")


def init_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def _api_error(e: ApiError):
        if e.http_status >= 500:
            _log.error("api error code=%s message=%s", e.code, e.message)
        return json_error(e.message, e.http_status, code=e.code)

    @app.errorhandler(ValidationErrors)
    def _validation_error(e: ValidationErrors):
        _log.info("validation failed fields=%s", ",".join(sorted(e.errors)))
        return json_error("Validation failed", 400, code="VALIDATION", errors=e.errors)

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):
        code = {
            400: "BAD_REQUEST",
            401: "AUTH_INVALID",
            403: "FORBIDDEN",
            404: "NOT_FOUND",
            405: "BAD_REQUEST",
            413: "BAD_REQUEST",
        }.get(int(e.code or 500), "INTERNAL")
        return json_error(str(e.description or e.name), int(e.code or 500), code=code)

    @app.errorhandler(Exception)
    def _unexpected(e: Exception):
        request_id = str(getattr(g, "request_id", "") or "").strip()
        _log.exception("unhandled error request_id=%s", request_id)
        msg = f"Unexpected error (requestId: {request_id})" if request_id else "Unexpected error"
        return json_error(msg, 500, code="INTERNAL")
