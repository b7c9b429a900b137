from __future__ import annotations

import os

from flask import Blueprint, Response, current_app, jsonify

from cache_layer import cache_stats
from db import get_pool_stats, ping_db
from storage import StorageError
from utils import ApiError, iso_utc_now

core_bp = Blueprint("core", __name__)


def _storage_writable() -> bool:
    """Upload root exists (or can be created) and is writable."""
    storage = current_app.extensions.get("storage")
    if storage is None:
        return False
    try:
        os.makedirs(storage.root_dir, exist_ok=True)
    except OSError:
        return False
    return os.access(storage.root_dir, os.W_OK)


@core_bp.get("/health")
def health():
    """Lightweight health check (process alive)."""
    cfg = current_app.config["CFG"]
    return jsonify({
        "status": "ok",
        "time": iso_utc_now(),
        "version": cfg.APP_VERSION,
        "db_pool": get_pool_stats(),
        "cache": cache_stats(),
    })


@core_bp.get("/ready")
def ready():
    """
    Readiness check for load balancers.
    Checks database connectivity and the upload directory.
    """
    db_ok = ping_db()
    storage_ok = _storage_writable()

    cfg = current_app.config["CFG"]
    all_ok = db_ok and storage_ok
    status = 200 if all_ok else 503

    return (
        jsonify({
            "status": "ok" if all_ok else "degraded",
            "time": iso_utc_now(),
            "version": cfg.APP_VERSION,
            "checks": {
                "db": "ok" if db_ok else "error",
                "storage": "ok" if storage_ok else "error",
            }
        }),
        status,
    )


@core_bp.get("/version")
def version():
    cfg = current_app.config["CFG"]
    return jsonify({"version": cfg.APP_VERSION, "env": cfg.APP_ENV, "time": iso_utc_now()})


@core_bp.get("/files/<path:object_path>")
def files_get(object_path: str):
    storage = current_app.extensions["storage"]
    try:
        data, content_type = storage.read(object_path)
    except (StorageError, FileNotFoundError, IsADirectoryError):
        raise ApiError("NOT_FOUND", "File not found")
    resp = Response(data, mimetype=content_type)
    resp.headers["Cache-Control"] = "private, max-age=3600"
    return resp
