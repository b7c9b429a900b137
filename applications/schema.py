"""
Application record shape and submission validation.

validate_submission() is a pure function: raw form values in, either a
ValidatedApplication (all dates canonical) or ValidationErrors mapping field
paths to messages. Applicant-type specific rules live in one validator per
type, selected by the `applicantType` discriminant.

    non-gazetted: employeeNo required, no supplemental documents
    gazetted:     ruidNo required, uploadHindiName + uploadHindiDesignation required
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Mapping

from timestamps import parse_calendar_date
from validation import (
    ErrorBag,
    FileMeta,
    check_choice,
    check_file,
    check_phone,
    clean_str,
    optional_str,
    require_str,
)


class ApplicantType(str, Enum):
    GAZETTED = "gazetted"
    NON_GAZETTED = "non-gazetted"


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


STATUS_VALUES = tuple(s.value for s in ApplicationStatus)

DEPARTMENTS = (
    "ACCOUNTS", "COMMERCIAL", "ELECTRICAL", "ENGINEERING", "GA",
    "MECHANICAL", "MEDICAL", "OPERATING", "PERSONNEL", "RRB",
    "S&T", "SAFETY", "SECURITY", "STORES",
)

BILL_UNITS = (
    "3101001", "3101002", "3101003", "3101004", "3101010", "3101023",
    "3101024", "3101025", "3101026", "3101027", "3101065", "3101066",
    "3101165", "3101166", "3101285", "3101286", "3101287", "3101288",
    "3101470",
)

DEFAULT_STATION = "BHUBANESWAR"

REQUIRED_UPLOADS = ("uploadPhoto", "uploadSignature")
SUPPLEMENTAL_UPLOADS = ("uploadHindiName", "uploadHindiDesignation")
UPLOAD_SLOTS = REQUIRED_UPLOADS + SUPPLEMENTAL_UPLOADS

_NAME_RE = re.compile(r"^[a-zA-Z\s.]+$")


@dataclass
class FamilyMember:
    name: str
    relationship: str
    dob: datetime
    blood_group: str = ""
    identification_marks: str = ""
    id: str | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "bloodGroup": self.blood_group,
            "relationship": self.relationship,
            "dob": self.dob,
            "identificationMarks": self.identification_marks,
        }

    def to_dict(self) -> dict[str, Any]:
        out = self.to_document()
        out["dob"] = self.dob.isoformat()
        return out


@dataclass
class ValidatedApplication:
    applicant_type: ApplicantType
    employee_name: str
    designation: str
    employee_no: str | None
    ruid_no: str | None
    date_of_birth: datetime
    department: str
    station: str
    bill_unit: str
    residential_address: str
    rly_contact_number: str | None
    mobile_number: str
    reason_for_application: str
    emergency_contact_name: str
    emergency_contact_number: str
    family_members: list[FamilyMember] = field(default_factory=list)
    files: dict[str, FileMeta] = field(default_factory=dict)

    def to_document(self) -> dict[str, Any]:
        return {
            "applicantType": self.applicant_type.value,
            "employeeName": self.employee_name,
            "designation": self.designation,
            "employeeNo": self.employee_no,
            "ruidNo": self.ruid_no,
            "dateOfBirth": self.date_of_birth,
            "department": self.department,
            "station": self.station,
            "billUnit": self.bill_unit,
            "residentialAddress": self.residential_address,
            "rlyContactNumber": self.rly_contact_number,
            "mobileNumber": self.mobile_number,
            "reasonForApplication": self.reason_for_application,
            "emergencyContactName": self.emergency_contact_name,
            "emergencyContactNumber": self.emergency_contact_number,
            "familyMembers": [fm.to_document() for fm in self.family_members],
        }


@dataclass
class StoredApplication:
    application_id: str
    applicant_type: str
    employee_name: str
    designation: str
    employee_no: str | None
    ruid_no: str | None
    date_of_birth: datetime
    department: str | None
    station: str | None
    bill_unit: str | None
    residential_address: str | None
    rly_contact_number: str | None
    mobile_number: str | None
    reason_for_application: str | None
    emergency_contact_name: str | None
    emergency_contact_number: str | None
    family_members: list[FamilyMember]
    status: str
    submission_date: datetime
    upload_photo_url: str | None = None
    upload_signature_url: str | None = None
    upload_hindi_name_url: str | None = None
    upload_hindi_designation_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "applicationId": self.application_id,
            "applicantType": self.applicant_type,
            "employeeName": self.employee_name,
            "designation": self.designation,
            "employeeNo": self.employee_no,
            "ruidNo": self.ruid_no,
            "dateOfBirth": self.date_of_birth.isoformat(),
            "department": self.department,
            "station": self.station,
            "billUnit": self.bill_unit,
            "residentialAddress": self.residential_address,
            "rlyContactNumber": self.rly_contact_number,
            "mobileNumber": self.mobile_number,
            "reasonForApplication": self.reason_for_application,
            "emergencyContactName": self.emergency_contact_name,
            "emergencyContactNumber": self.emergency_contact_number,
            "familyMembers": [fm.to_dict() for fm in self.family_members],
            "status": self.status,
            "submissionDate": self.submission_date.isoformat(),
            "uploadPhotoUrl": self.upload_photo_url,
            "uploadSignatureUrl": self.upload_signature_url,
            "uploadHindiNameUrl": self.upload_hindi_name_url,
            "uploadHindiDesignationUrl": self.upload_hindi_designation_url,
        }


# ============================================================================
# Field validators
# ============================================================================

def _validate_family_members(bag: ErrorBag, raw: Any) -> list[FamilyMember]:
    if raw is None or raw == "":
        return []
    if not isinstance(raw, (list, tuple)):
        bag.add("familyMembers", "Family members must be a list.")
        return []

    members: list[FamilyMember] = []
    for i, entry in enumerate(raw):
        base = f"familyMembers.{i}"
        if not isinstance(entry, Mapping):
            bag.add(base, "Invalid family member entry.")
            continue
        name = require_str(bag, entry, "name", "Name is required", path=f"{base}.name")
        relationship = require_str(bag, entry, "relationship", "Relationship is required", path=f"{base}.relationship")

        dob_raw = clean_str(entry.get("dob"))
        dob = None
        if not dob_raw:
            bag.add(f"{base}.dob", "Date of birth is required")
        else:
            dob = parse_calendar_date(dob_raw)
            if dob is None:
                bag.add(f"{base}.dob", "Invalid date format for family member DOB.")

        if name and relationship and dob is not None:
            members.append(
                FamilyMember(
                    id=optional_str(entry.get("id")),
                    name=name,
                    relationship=relationship,
                    dob=dob,
                    blood_group=clean_str(entry.get("bloodGroup")),
                    identification_marks=clean_str(entry.get("identificationMarks")),
                )
            )
    return members


def _validate_common(bag: ErrorBag, data: Mapping[str, Any]) -> dict[str, Any]:
    employee_name = require_str(bag, data, "employeeName", "Employee name is required")
    if employee_name and not _NAME_RE.match(employee_name):
        bag.add("employeeName", "Employee name should contain only letters, spaces, and periods")

    designation = require_str(bag, data, "designation", "Designation is required")

    dob_raw = clean_str(data.get("dateOfBirth"))
    date_of_birth = parse_calendar_date(dob_raw) if dob_raw else None
    if date_of_birth is None:
        bag.add("dateOfBirth", "Date of Birth is required" if not dob_raw else "Invalid Date of Birth.")

    department = check_choice(
        bag, "department", clean_str(data.get("department")), DEPARTMENTS, "Select a valid department"
    )
    station = clean_str(data.get("station")) or DEFAULT_STATION
    bill_unit = check_choice(
        bag, "billUnit", clean_str(data.get("billUnit")), BILL_UNITS, "Select a valid bill unit"
    )
    residential_address = require_str(bag, data, "residentialAddress", "Residential address is required")

    mobile = check_phone(
        bag,
        "mobileNumber",
        clean_str(data.get("mobileNumber")),
        required=True,
        message="Enter a valid 10-digit mobile number starting with 6-9",
        missing="Mobile number must be 10 digits",
    )
    reason = require_str(bag, data, "reasonForApplication", "Reason for application is required")
    emergency_name = require_str(bag, data, "emergencyContactName", "Emergency contact name is required")
    emergency_number = check_phone(
        bag,
        "emergencyContactNumber",
        clean_str(data.get("emergencyContactNumber")),
        required=True,
        message="Enter a valid 10-digit emergency contact number",
        missing="Emergency contact number must be 10 digits",
    )

    return {
        "employee_name": employee_name,
        "designation": designation,
        "date_of_birth": date_of_birth,
        "department": department,
        "station": station,
        "bill_unit": bill_unit,
        "residential_address": residential_address,
        "rly_contact_number": optional_str(data.get("rlyContactNumber")),
        "mobile_number": mobile,
        "reason_for_application": reason,
        "emergency_contact_name": emergency_name,
        "emergency_contact_number": emergency_number,
        "family_members": _validate_family_members(bag, data.get("familyMembers")),
    }


def _validate_required_uploads(bag: ErrorBag, files: Mapping[str, FileMeta | None]) -> dict[str, FileMeta]:
    out: dict[str, FileMeta] = {}
    labels = {"uploadPhoto": "Photo", "uploadSignature": "Signature"}
    for slot in REQUIRED_UPLOADS:
        meta = check_file(bag, slot, files.get(slot), required=True, missing_message=f"{labels[slot]} is required.")
        if meta is not None:
            out[slot] = meta
    return out


# ============================================================================
# Applicant-type validators
# ============================================================================

def _validate_non_gazetted(bag: ErrorBag, data: Mapping[str, Any], files: Mapping[str, FileMeta | None]) -> dict[str, Any]:
    employee_no = clean_str(data.get("employeeNo"))
    if not employee_no:
        bag.add("employeeNo", "Employee No is required for Non-Gazetted applicants.")
    return {
        "employee_no": employee_no or None,
        "ruid_no": None,
        "files": _validate_required_uploads(bag, files),
    }


def _validate_gazetted(bag: ErrorBag, data: Mapping[str, Any], files: Mapping[str, FileMeta | None]) -> dict[str, Any]:
    ruid_no = clean_str(data.get("ruidNo"))
    if not ruid_no:
        bag.add("ruidNo", "RUID No is required for Gazetted applicants.")

    uploads = _validate_required_uploads(bag, files)
    labels = {"uploadHindiName": "Upload Hindi Name", "uploadHindiDesignation": "Upload Hindi Designation"}
    for slot in SUPPLEMENTAL_UPLOADS:
        meta = check_file(
            bag,
            slot,
            files.get(slot),
            required=True,
            missing_message=f"{labels[slot]} is required for Gazetted applicants.",
        )
        if meta is not None:
            uploads[slot] = meta

    return {"employee_no": None, "ruid_no": ruid_no or None, "files": uploads}


_VARIANT_VALIDATORS: dict[ApplicantType, Callable[..., dict[str, Any]]] = {
    ApplicantType.NON_GAZETTED: _validate_non_gazetted,
    ApplicantType.GAZETTED: _validate_gazetted,
}


def parse_applicant_type(value: Any) -> ApplicantType | None:
    try:
        return ApplicantType(clean_str(value).lower())
    except ValueError:
        return None


def validate_submission(data: Mapping[str, Any], files: Mapping[str, Any] | None = None) -> ValidatedApplication:
    """
    Validate a raw submission.

    `files` maps upload slot -> FileMeta (or a {name, type, size} mapping).
    When omitted, descriptors are read from the same slot keys in `data`.

    Raises ValidationErrors; never returns a partial record.
    """
    bag = ErrorBag()
    source = files if files is not None else data
    file_meta = {slot: FileMeta.from_mapping(source.get(slot)) for slot in UPLOAD_SLOTS}

    applicant_type = parse_applicant_type(data.get("applicantType"))
    if applicant_type is None:
        bag.add("applicantType", "Invalid applicant type. Expected 'gazetted' or 'non-gazetted'.")

    common = _validate_common(bag, data)
    variant = _VARIANT_VALIDATORS[applicant_type](bag, data, file_meta) if applicant_type else {}

    bag.raise_if_any()

    return ValidatedApplication(applicant_type=applicant_type, **common, **variant)
