from __future__ import annotations

import logging
from typing import Any

from applications.repository import ApplicationRepository, RepositoryError
from applications.schema import STATUS_VALUES, ApplicationStatus
from audit import log_audit
from utils import AuthContext


_log = logging.getLogger("applications.admin")

# from_status -> statuses an administrator may move it to
ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    ApplicationStatus.PENDING.value: {ApplicationStatus.APPROVED.value, ApplicationStatus.REJECTED.value},
    ApplicationStatus.APPROVED.value: set(),
    ApplicationStatus.REJECTED.value: set(),
}


def _fail(code: str, message: str) -> dict[str, Any]:
    return {"success": False, "code": code, "message": message}


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, set())


def update_application_status(
    repo: ApplicationRepository,
    application_id: str,
    new_status: Any,
    *,
    actor: AuthContext,
    allow_override: bool = False,
) -> dict[str, Any]:
    """
    Administrative review decision for one application.

    pending -> approved | rejected. Repeating the current terminal status is a
    no-op success. Any other move is refused unless `allow_override` is set.
    """
    if not actor or not actor.valid:
        return _fail("AUTH_INVALID", "Login required.")

    app_id = str(application_id or "").strip()
    to_status = str(new_status or "").strip().lower()
    if not app_id:
        return _fail("BAD_REQUEST", "Application ID is required.")
    if to_status not in STATUS_VALUES:
        return _fail("BAD_REQUEST", f"Invalid status. Expected one of: {', '.join(STATUS_VALUES)}.")

    try:
        app = repo.get_by_id(app_id)
    except RepositoryError as e:
        return _fail("UNAVAILABLE", e.message)
    if app is None:
        return _fail("NOT_FOUND", "Application not found.")

    from_status = app.status
    if from_status == to_status:
        return {"success": True, "message": f"Application is already {to_status}.", "status": to_status}

    if not can_transition(from_status, to_status):
        if not allow_override:
            _log.info("refused transition id=%s %s->%s by %s", app_id, from_status, to_status, actor.email)
            return _fail("CONFLICT", f"Cannot change status from {from_status} to {to_status}.")
        _log.warning("status override id=%s %s->%s by %s", app_id, from_status, to_status, actor.email)

    try:
        repo.update_status(app_id, to_status)
    except RepositoryError as e:
        return _fail("NOT_FOUND" if e.not_found else "UNAVAILABLE", e.message)

    log_audit(
        entity_type="APPLICATION",
        entity_id=app_id,
        action="STATUS_OVERRIDE" if not can_transition(from_status, to_status) else "STATUS_CHANGE",
        from_state=from_status,
        to_state=to_status,
        actor=actor,
    )
    return {"success": True, "message": f"Application status updated to {to_status}.", "status": to_status}
