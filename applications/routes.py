"""
Public application endpoints.

- POST /api/v1/apply/submit - submit an ID-card application (multipart or JSON)
- POST /api/v1/apply/status - look up status by application ID + date of birth

Multipart submissions carry the form fields, one `familyMembers` part per
member (a JSON object) or a single JSON array, and a file part per upload
slot. JSON submissions carry file descriptors ({name, type, size}) in the
slot keys instead of bytes.
"""
from __future__ import annotations

import json
import logging
from typing import Any

from flask import Blueprint, current_app, request

from applications.repository import FileUpload, RepositoryError
from applications.schema import UPLOAD_SLOTS, validate_submission
from applications.status_check import INVALID_DOB_MESSAGE, MISSING_ID_MESSAGE, UNAVAILABLE_MESSAGE
from audit import log_audit
from utils import json_error, json_success, parse_json_body
from validation import FileMeta, ValidationErrors


_log = logging.getLogger("applications.routes")

public_apply_bp = Blueprint("public_apply", __name__, url_prefix="/api/v1/apply")


# ============================================================================
# Helpers
# ============================================================================

def _family_members_from_form() -> Any:
    parts = request.form.getlist("familyMembers")
    if not parts:
        return []
    members: list[Any] = []
    for raw in parts:
        try:
            parsed = json.loads(raw)
        except ValueError:
            # Surfaces as a per-entry validation error.
            members.append(raw)
            continue
        if isinstance(parsed, list):
            members.extend(parsed)
        else:
            members.append(parsed)
    return members


def _read_multipart() -> tuple[dict[str, Any], dict[str, FileMeta], dict[str, FileUpload]]:
    data: dict[str, Any] = {k: v for k, v in request.form.items() if k != "familyMembers"}
    data["familyMembers"] = _family_members_from_form()

    metas: dict[str, FileMeta] = {}
    uploads: dict[str, FileUpload] = {}
    for slot in UPLOAD_SLOTS:
        f = request.files.get(slot)
        if f is None or not f.filename:
            continue
        blob = f.read()
        content_type = str(f.mimetype or "").lower()
        metas[slot] = FileMeta(name=f.filename, content_type=content_type, size=len(blob))
        uploads[slot] = FileUpload(filename=f.filename, content_type=content_type, data=blob)
    return data, metas, uploads


# ============================================================================
# POST /api/v1/apply/submit
# ============================================================================

@public_apply_bp.route("/submit", methods=["POST"])
def apply_submit():
    """
    Returns:
    {"success": true, "applicationId": "ECR-...", "message": "..."}
    {"success": false, "message": "...", "errors": {"employeeNo": ["..."]}}
    """
    repo = current_app.extensions["applications_repo"]

    if request.mimetype == "multipart/form-data":
        data, metas, uploads = _read_multipart()
        files: Any = metas
    else:
        data = parse_json_body()
        files, uploads = None, {}

    try:
        record = validate_submission(data, files)
    except ValidationErrors as e:
        _log.info("submission rejected fields=%s", ",".join(sorted(e.errors)))
        return json_error("Please correct the errors in the form.", 400, errors=e.errors)

    try:
        application_id = repo.create(record, uploads)
    except RepositoryError as e:
        return json_error(e.message, 500, code="INTERNAL")

    log_audit(
        entity_type="APPLICATION",
        entity_id=application_id,
        action="SUBMIT",
        to_state="pending",
        meta={"applicantType": record.applicant_type.value, "uploads": sorted(record.files)},
    )
    return json_success(
        {"applicationId": application_id, "message": "Application submitted successfully!"},
        201,
    )


# ============================================================================
# POST /api/v1/apply/status
# ============================================================================

_STATUS_BY_MESSAGE = {
    MISSING_ID_MESSAGE: 400,
    INVALID_DOB_MESSAGE: 400,
    UNAVAILABLE_MESSAGE: 503,
}


@public_apply_bp.route("/status", methods=["POST"])
def apply_status():
    """
    Request JSON: {"applicationId": "ECR-...", "dateOfBirth": "1990-05-15"}

    Returns the minimal projection on success:
    {"success": true, "status": "pending", "applicantName": "...", "submissionDate": "15 May 2024, 3:04 PM"}
    """
    data = parse_json_body()
    result = current_app.extensions["status_check"].check(data.get("applicationId"), data.get("dateOfBirth"))
    if result.success:
        return json_success(result.to_dict())
    return result.to_dict(), _STATUS_BY_MESSAGE.get(result.message, 404)
