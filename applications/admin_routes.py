from __future__ import annotations

from flask import Blueprint, current_app, g

from applications.admin_actions import update_application_status
from applications.repository import RepositoryError
from audit import list_audit
from auth import admin_required
from utils import ApiError, json_error, json_success, parse_json_body


admin_applications_bp = Blueprint("admin_applications", __name__, url_prefix="/api/v1/admin/applications")


@admin_applications_bp.get("")
@admin_required
def applications_list():
    repo = current_app.extensions["applications_repo"]
    try:
        apps = repo.get_all()
    except RepositoryError as e:
        return json_error(e.message, 503, code="UNAVAILABLE")
    return json_success({"applications": [a.to_dict() for a in apps], "count": len(apps)})


@admin_applications_bp.get("/<application_id>")
@admin_required
def applications_get(application_id: str):
    repo = current_app.extensions["applications_repo"]
    try:
        app = repo.get_by_id(application_id)
    except RepositoryError as e:
        return json_error(e.message, 503, code="UNAVAILABLE")
    if app is None:
        raise ApiError("NOT_FOUND", "Application not found")
    return json_success({"application": app.to_dict(), "history": list_audit("APPLICATION", application_id)})


@admin_applications_bp.post("/<application_id>/status")
@admin_required(roles=("super_admin", "admin"))
def applications_set_status(application_id: str):
    data = parse_json_body()
    cfg = current_app.config["CFG"]
    result = update_application_status(
        current_app.extensions["applications_repo"],
        application_id,
        data.get("status"),
        actor=g.auth,
        allow_override=cfg.ALLOW_STATUS_OVERRIDE,
    )
    if result["success"]:
        return json_success(result)
    raise ApiError(result["code"], result["message"])
