from __future__ import annotations

from flask import Blueprint, current_app, g, request

from audit import log_audit
from auth import admin_required
from utils import ApiError, json_success, parse_json_body, sanitize_filename


employees_bp = Blueprint("employees", __name__, url_prefix="/api/v1/admin/employees")

_WRITE_ROLES = ("super_admin", "admin")


def _svc():
    return current_app.extensions["employee_service"]


def _int_arg(name: str, default: int) -> int:
    raw = str(request.args.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ApiError("BAD_REQUEST", f"{name} must be an integer")


@employees_bp.get("")
@admin_required
def employees_list():
    filters = {k: request.args.get(k) for k in ("status", "department", "station")}
    out = _svc().list_employees(
        filters,
        start_after=str(request.args.get("startAfter") or "").strip() or None,
        page_limit=_int_arg("limit", 10),
    )
    return json_success(out)


@employees_bp.post("")
@admin_required(roles=_WRITE_ROLES)
def employees_add():
    employee_id = _svc().add_employee(parse_json_body())
    log_audit(entity_type="EMPLOYEE", entity_id=employee_id, action="CREATE", actor=g.auth)
    return json_success({"id": employee_id}, 201)


@employees_bp.get("/search")
@admin_required
def employees_search():
    return json_success({"employees": _svc().search_employees(str(request.args.get("q") or ""))})


@employees_bp.get("/range")
@admin_required
def employees_range():
    out = _svc().get_by_date_range(request.args.get("start"), request.args.get("end"))
    return json_success({"employees": out})


@employees_bp.get("/export")
@admin_required
def employees_export():
    rows = _svc().export_all()
    return json_success({"employees": rows, "count": len(rows)})


@employees_bp.get("/stats")
@admin_required
def employees_stats():
    return json_success({"stats": _svc().get_stats()})


@employees_bp.post("/stats/refresh")
@admin_required(roles=_WRITE_ROLES)
def employees_stats_refresh():
    stats = _svc().update_stats()
    if stats is None:
        raise ApiError("UNAVAILABLE", "Could not recompute statistics")
    return json_success({"stats": stats})


@employees_bp.post("/bulk-status")
@admin_required(roles=_WRITE_ROLES)
def employees_bulk_status():
    data = parse_json_body()
    count = _svc().bulk_update_status(data.get("ids"), data.get("status"))
    log_audit(
        entity_type="EMPLOYEE",
        entity_id="*",
        action="BULK_STATUS",
        to_state=str(data.get("status") or ""),
        actor=g.auth,
        meta={"ids": data.get("ids")},
    )
    return json_success({"updated": count})


@employees_bp.post("/bulk-delete")
@admin_required(roles=_WRITE_ROLES)
def employees_bulk_delete():
    data = parse_json_body()
    count = _svc().bulk_delete(data.get("ids"))
    log_audit(entity_type="EMPLOYEE", entity_id="*", action="BULK_DELETE", actor=g.auth, meta={"ids": data.get("ids")})
    return json_success({"deleted": count})


@employees_bp.post("/files")
@admin_required(roles=_WRITE_ROLES)
def employees_file_upload():
    """multipart: `file` plus optional `path`; defaults to employees/<name>."""
    f = request.files.get("file")
    if f is None or not f.filename:
        raise ApiError("BAD_REQUEST", "Missing file")
    path = str(request.form.get("path") or "").strip() or f"employees/{sanitize_filename(f.filename)}"
    url = _svc().upload_file(path, f.read(), str(f.mimetype or ""))
    return json_success({"url": url, "path": path}, 201)


@employees_bp.delete("/files/<path:object_path>")
@admin_required(roles=_WRITE_ROLES)
def employees_file_delete(object_path: str):
    _svc().delete_file(object_path)
    return json_success({"deleted": object_path})


@employees_bp.get("/<employee_id>")
@admin_required
def employees_get(employee_id: str):
    emp = _svc().get_employee(employee_id)
    if emp is None:
        raise ApiError("NOT_FOUND", "Employee not found")
    return json_success({"employee": emp})


@employees_bp.patch("/<employee_id>")
@admin_required(roles=_WRITE_ROLES)
def employees_update(employee_id: str):
    data = parse_json_body()
    _svc().update_employee(employee_id, data)
    log_audit(entity_type="EMPLOYEE", entity_id=employee_id, action="UPDATE", actor=g.auth, meta={"fields": sorted(data)})
    return json_success({"id": employee_id})


@employees_bp.delete("/<employee_id>")
@admin_required(roles=_WRITE_ROLES)
def employees_delete(employee_id: str):
    _svc().delete_employee(employee_id)
    log_audit(entity_type="EMPLOYEE", entity_id=employee_id, action="DELETE", actor=g.auth)
    return json_success({"deleted": employee_id})


@employees_bp.post("/<employee_id>/status")
@admin_required(roles=_WRITE_ROLES)
def employees_set_status(employee_id: str):
    data = parse_json_body()
    status = str(data.get("status") or "")
    _svc().update_status(employee_id, status)
    log_audit(entity_type="EMPLOYEE", entity_id=employee_id, action="STATUS_CHANGE", to_state=status, actor=g.auth)
    return json_success({"id": employee_id, "status": status})
