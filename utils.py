from __future__ import annotations

import hashlib
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from flask import jsonify, request
from werkzeug.utils import secure_filename


_HTTP_STATUS_BY_CODE = {
    "BAD_REQUEST": 400,
    "VALIDATION": 400,
    "AUTH_INVALID": 401,
    "FORBIDDEN": 403,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "INTERNAL": 500,
    "UNAVAILABLE": 503,
}


class ApiError(Exception):
    def __init__(self, code: str, message: str, http_status: int | None = None):
        super().__init__(message)
        self.code = str(code or "INTERNAL").upper()
        self.message = str(message or "")
        self.http_status = int(http_status or _HTTP_STATUS_BY_CODE.get(self.code, 400))


@dataclass
class AuthContext:
    valid: bool
    uid: str
    email: str
    role: str
    expiresAt: str


def iso_utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def new_uuid() -> str:
    return str(uuid.uuid4())


def sha256_hex(value: str) -> str:
    return hashlib.sha256(str(value or "").encode("utf-8")).hexdigest()


_MULTI_UNDERSCORE_RE = re.compile(r"_+")


def sanitize_filename(name: str, default: str = "file") -> str:
    safe = secure_filename(str(name or ""))
    safe = _MULTI_UNDERSCORE_RE.sub("_", safe).strip("._")
    return safe[:120] or default


def json_success(data: dict | None = None, status: int = 200):
    resp: dict[str, Any] = {"success": True}
    if data:
        resp.update(data)
    return jsonify(resp), status


def json_error(message: str, status: int = 400, *, code: str = "", errors: dict | None = None):
    body: dict[str, Any] = {"success": False, "message": message}
    if code:
        body["error"] = {"code": code, "message": message}
    if errors is not None:
        body["errors"] = errors
    return jsonify(body), status


def parse_json_body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ApiError("BAD_REQUEST", "Invalid request body")
    return data
