from __future__ import annotations

from typing import Any, Mapping

from timestamps import parse_calendar_date, parse_instant, to_datetime
from validation import ErrorBag, check_choice, check_phone, clean_str, optional_str


EMPLOYEE_STATUSES = (
    "Pending",
    "Printing (Draft)",
    "Printing (To be Sent)",
    "Printing (Sent)",
    "Closed",
    "Rejected",
)

# stats field -> employee status it counts
STATS_STATUS_FIELDS = {
    "pendingCount": "Pending",
    "approvedCount": "Closed",
    "rejectedCount": "Rejected",
}

_REQUIRED_TEXT = {
    "empNo": "Employee Number is required",
    "empName": "Employee Name is required",
    "designation": "Designation is required",
    "department": "Department is required",
    "station": "Station is required",
    "address": "Address is required",
    "emergencyContactName": "Emergency Contact Name is required",
}

_OPTIONAL_TEXT = ("rlyNumber", "deptSlNo", "qrCode", "photoURL", "signatureURL", "bloodGroup")

_READ_ONLY = ("id", "createdAt", "updatedAt")

EMPLOYEE_FIELDS = (
    tuple(_REQUIRED_TEXT)
    + _OPTIONAL_TEXT
    + ("dob", "applicationDate", "mobileNumber", "emergencyContactNo", "status", "identificationMarks", "familyMembers")
)


def _validate_family(bag: ErrorBag, raw: Any) -> list[dict[str, Any]]:
    if raw is None:
        return []
    if not isinstance(raw, (list, tuple)):
        bag.add("familyMembers", "Family members must be a list.")
        return []
    out = []
    for i, fm in enumerate(raw):
        base = f"familyMembers.{i}"
        if not isinstance(fm, Mapping):
            bag.add(base, "Invalid family member entry.")
            continue
        name = clean_str(fm.get("name"))
        relationship = clean_str(fm.get("relationship"))
        dob = parse_calendar_date(fm.get("dob"))
        if not name:
            bag.add(f"{base}.name", "Family member name is required")
        if not relationship:
            bag.add(f"{base}.relationship", "Family member relationship is required")
        if dob is None:
            bag.add(f"{base}.dob", "Family member Date of Birth is required")
        out.append({"name": name, "relationship": relationship, "dob": dob})
    return out


def validate_employee_input(data: Mapping[str, Any], *, partial: bool = False) -> dict[str, Any]:
    """
    Document-ready employee fields from raw input.

    With partial=True only the keys present are validated and returned,
    for updates. Raises ValidationErrors.
    """
    bag = ErrorBag()
    out: dict[str, Any] = {}

    def present(key: str) -> bool:
        return not partial or key in data

    for key in _READ_ONLY:
        if key in data and partial:
            bag.add(key, f"{key} cannot be changed")

    for key, message in _REQUIRED_TEXT.items():
        if present(key):
            value = clean_str(data.get(key))
            if not value:
                bag.add(key, message)
            out[key] = value

    for key in _OPTIONAL_TEXT:
        if key in data:
            out[key] = optional_str(data.get(key))

    if present("dob"):
        out["dob"] = parse_calendar_date(data.get("dob"))
        if out["dob"] is None:
            bag.add("dob", "Date of Birth is required")

    if present("applicationDate"):
        out["applicationDate"] = parse_instant(data.get("applicationDate"))
        if out["applicationDate"] is None:
            bag.add("applicationDate", "Application Date is required")

    if present("mobileNumber"):
        out["mobileNumber"] = check_phone(
            bag, "mobileNumber", clean_str(data.get("mobileNumber")),
            required=True, message="Valid 10-digit mobile number required",
        )
    if present("emergencyContactNo"):
        out["emergencyContactNo"] = check_phone(
            bag, "emergencyContactNo", clean_str(data.get("emergencyContactNo")),
            required=True, message="Valid 10-digit emergency contact number required",
        )

    if present("status"):
        out["status"] = check_choice(
            bag, "status", clean_str(data.get("status")), EMPLOYEE_STATUSES,
            f"Invalid status. Expected one of: {', '.join(EMPLOYEE_STATUSES)}",
        )

    if present("identificationMarks"):
        marks = data.get("identificationMarks")
        if marks is None:
            marks = []
        if not isinstance(marks, (list, tuple)):
            bag.add("identificationMarks", "Identification marks must be a list.")
            marks = []
        out["identificationMarks"] = [clean_str(m) for m in marks if clean_str(m)]

    if present("familyMembers"):
        out["familyMembers"] = _validate_family(bag, data.get("familyMembers"))

    bag.raise_if_any()
    return out


def _iso(value: Any, field_name: str, doc_id: str) -> str | None:
    dt = to_datetime(value, field_name, doc_id) if value is not None else None
    return dt.isoformat() if dt else None


def employee_from_document(doc_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Wire form of a stored employee: every date normalized to ISO-8601 or null."""
    out: dict[str, Any] = {"id": doc_id}
    for key in EMPLOYEE_FIELDS:
        if key in ("dob", "applicationDate", "familyMembers"):
            continue
        out[key] = data.get(key)
    out["identificationMarks"] = list(data.get("identificationMarks") or [])
    out["dob"] = _iso(data.get("dob"), "dob", doc_id)
    out["applicationDate"] = _iso(data.get("applicationDate"), "applicationDate", doc_id)
    out["createdAt"] = _iso(data.get("createdAt"), "createdAt", doc_id)
    out["updatedAt"] = _iso(data.get("updatedAt"), "updatedAt", doc_id)

    members = []
    for i, fm in enumerate(data.get("familyMembers") or []):
        if not isinstance(fm, dict):
            continue
        members.append(
            {
                "name": fm.get("name"),
                "relationship": fm.get("relationship"),
                "dob": _iso(fm.get("dob"), f"familyMembers[{i}].dob", doc_id),
            }
        )
    out["familyMembers"] = members
    return out
