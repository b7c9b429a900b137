from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from applications.repository import ApplicationRepository, RepositoryError
from timestamps import format_day, format_display, parse_calendar_date


_log = logging.getLogger("applications.status_check")

INVALID_DOB_MESSAGE = "Invalid Date of Birth format provided."
MISSING_ID_MESSAGE = "Application ID is required."
NO_MATCH_MESSAGE = "Application ID and Date of Birth do not match our records."
UNAVAILABLE_MESSAGE = "Unable to check application status right now. Please try again later."
FOUND_MESSAGE = "Status retrieved successfully."


@dataclass
class StatusResult:
    success: bool
    message: str
    status: str | None = None
    applicant_name: str | None = None
    submission_date: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.success:
            out["status"] = self.status
            out["applicantName"] = self.applicant_name
            out["submissionDate"] = self.submission_date
        return out


class StatusCheckService:
    """
    Public status lookup. The caller proves knowledge of the record with its
    date of birth; not-found, corrupt and mismatched records all answer with
    the same message so an ID cannot be probed for existence.
    """

    def __init__(self, repo: ApplicationRepository):
        self._repo = repo

    def check(self, application_id: Any, date_of_birth: Any) -> StatusResult:
        app_id = str(application_id or "").strip()
        if not app_id:
            return StatusResult(False, MISSING_ID_MESSAGE)

        dob = parse_calendar_date(date_of_birth)
        if dob is None:
            _log.info("status check rejected: unparseable dob for id=%s", app_id)
            return StatusResult(False, INVALID_DOB_MESSAGE)

        try:
            app = self._repo.get_by_id(app_id)
        except RepositoryError:
            return StatusResult(False, UNAVAILABLE_MESSAGE)

        if app is None:
            _log.info("status check id=%s: no usable record", app_id)
            return StatusResult(False, NO_MATCH_MESSAGE)

        if format_day(app.date_of_birth) != format_day(dob):
            _log.info("status check id=%s: dob mismatch", app_id)
            return StatusResult(False, NO_MATCH_MESSAGE)

        return StatusResult(
            True,
            FOUND_MESSAGE,
            status=app.status,
            applicant_name=app.employee_name,
            submission_date=format_display(app.submission_date),
        )
