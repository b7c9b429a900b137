from __future__ import annotations

import logging
import random
import string
import time
from dataclasses import dataclass
from typing import Any, Mapping

from applications.schema import (
    STATUS_VALUES,
    UPLOAD_SLOTS,
    ApplicationStatus,
    FamilyMember,
    StoredApplication,
    ValidatedApplication,
)
from docstore import SERVER_TIMESTAMP, DocumentNotFound, DocumentStore, StoreError
from storage import ObjectStorage, StorageError
from timestamps import to_datetime
from utils import sanitize_filename


_log = logging.getLogger("applications.repository")

APPLICATIONS_COLLECTION = "applications"

SUBMISSION_FAILED_MESSAGE = "An unexpected server error occurred. Please try again later."
LOAD_FAILED_MESSAGE = "Unable to load applications right now. Please try again later."
UPDATE_FAILED_MESSAGE = "Failed to update status. Please try again later."

_ID_ALPHABET = string.digits + string.ascii_uppercase


class RepositoryError(Exception):
    """Storage-layer failure with a message that is safe to show callers."""

    def __init__(self, message: str, *, not_found: bool = False):
        super().__init__(message)
        self.message = message
        self.not_found = not_found


@dataclass
class FileUpload:
    filename: str
    content_type: str
    data: bytes


def generate_application_id() -> str:
    """ECR-<epoch ms>-<5 chars>; unique enough for human-paced submissions, not collision-proof."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=5))
    return f"ECR-{int(time.time() * 1000)}-{suffix}"


def _family_member_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=5))
    return f"fm_{int(time.time() * 1000)}_{suffix}"


def _url_field(slot: str) -> str:
    return f"{slot}Url"


class ApplicationRepository:
    def __init__(self, store: DocumentStore, storage: ObjectStorage | None = None):
        self._store = store
        self._storage = storage

    def _collection(self):
        return self._store.collection(APPLICATIONS_COLLECTION)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _object_path(self, application_id: str, slot: str, filename: str) -> str:
        return f"uploads/{application_id}/{slot}_{sanitize_filename(filename, default=slot)}"

    def _store_files(
        self,
        application_id: str,
        record: ValidatedApplication,
        uploads: Mapping[str, FileUpload],
        written: list[str],
    ) -> dict[str, str | None]:
        """Upload scans; every object path actually written is appended to `written`."""
        urls: dict[str, str | None] = {_url_field(slot): None for slot in UPLOAD_SLOTS}
        for slot, meta in record.files.items():
            path = self._object_path(application_id, slot, meta.name)
            upload = uploads.get(slot)
            if upload is not None and self._storage is not None:
                urls[_url_field(slot)] = self._storage.upload(path, upload.data, upload.content_type)
                written.append(path)
            elif self._storage is not None:
                # Metadata-only submission: reference the conventional location.
                urls[_url_field(slot)] = self._storage.public_url(path)
            else:
                urls[_url_field(slot)] = f"/files/{path}"
        return urls

    def _discard_files(self, application_id: str, paths: list[str]) -> None:
        for path in paths:
            try:
                self._storage.delete(path)
            except (StorageError, OSError):
                _log.warning("could not remove orphaned upload application=%s path=%s", application_id, path, exc_info=True)

    def create(self, record: ValidatedApplication, uploads: Mapping[str, FileUpload] | None = None) -> str:
        application_id = generate_application_id()
        written: list[str] = []

        try:
            urls = self._store_files(application_id, record, uploads or {}, written)
        except StorageError:
            _log.exception("file upload failed for application=%s", application_id)
            self._discard_files(application_id, written)
            raise RepositoryError(SUBMISSION_FAILED_MESSAGE)

        doc = record.to_document()
        for member in doc["familyMembers"]:
            member["id"] = member.get("id") or _family_member_id()
        doc.update(urls)
        doc["applicationId"] = application_id
        doc["status"] = ApplicationStatus.PENDING.value
        doc["submissionDate"] = SERVER_TIMESTAMP

        try:
            self._collection().document(application_id).set(doc)
        except StoreError:
            _log.exception("failed to persist application=%s", application_id)
            self._discard_files(application_id, written)
            raise RepositoryError(SUBMISSION_FAILED_MESSAGE)

        _log.info("application submitted id=%s type=%s", application_id, record.applicant_type.value)
        return application_id

    def update_status(self, application_id: str, new_status: str) -> None:
        """Unconditional single-document write; transition rules are enforced by the caller."""
        status = str(new_status or "").strip().lower()
        if status not in STATUS_VALUES:
            raise ValueError(f"Invalid application status: {new_status!r}")

        try:
            self._collection().document(str(application_id)).update({"status": status})
        except DocumentNotFound:
            raise RepositoryError("Application not found.", not_found=True)
        except StoreError:
            _log.exception("status update failed application=%s status=%s", application_id, status)
            raise RepositoryError(UPDATE_FAILED_MESSAGE)

        _log.info("application status written id=%s status=%s", application_id, status)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, application_id: str) -> StoredApplication | None:
        app_id = str(application_id or "").strip()
        if not app_id:
            return None

        try:
            snap = self._collection().document(app_id).get()
        except StoreError:
            _log.exception("failed to read application=%s", app_id)
            raise RepositoryError(LOAD_FAILED_MESSAGE)

        if not snap.exists:
            _log.info("application not found id=%s", app_id)
            return None

        app = application_from_document(snap.id, snap.to_dict() or {})
        if app is None:
            _log.warning("application id=%s exists but failed validation; treating as absent", app_id)
        return app

    def get_all(self) -> list[StoredApplication]:
        try:
            snaps = self._collection().order_by("submissionDate", descending=True).get()
        except StoreError:
            _log.exception("failed to list applications")
            raise RepositoryError(LOAD_FAILED_MESSAGE)

        apps: list[StoredApplication] = []
        for snap in snaps:
            app = application_from_document(snap.id, snap.to_dict() or {})
            if app is None:
                _log.warning("excluding application id=%s from listing: failed validation", snap.id)
                continue
            apps.append(app)

        # Mixed stored representations do not sort together in the store.
        apps.sort(key=lambda a: a.submission_date, reverse=True)
        _log.info("listed applications returned=%d scanned=%d", len(apps), len(snaps))
        return apps


def _family_members_from_document(raw: Any, doc_id: str) -> list[FamilyMember]:
    members: list[FamilyMember] = []
    if not isinstance(raw, list):
        return members
    for i, fm in enumerate(raw):
        if not isinstance(fm, dict):
            _log.warning("skipping family member %d in doc %s: not a mapping", i, doc_id)
            continue
        dob = to_datetime(fm.get("dob"), f"familyMembers[{i}].dob", doc_id)
        if dob is None:
            _log.warning("skipping family member %d in doc %s: invalid dob", i, doc_id)
            continue
        if not fm.get("name") or not fm.get("relationship"):
            _log.warning("skipping family member %d in doc %s: missing name or relationship", i, doc_id)
            continue
        members.append(
            FamilyMember(
                id=fm.get("id") or f"fm_{i}_{doc_id}",
                name=str(fm["name"]),
                relationship=str(fm["relationship"]),
                dob=dob,
                blood_group=str(fm.get("bloodGroup") or ""),
                identification_marks=str(fm.get("identificationMarks") or ""),
            )
        )
    return members


def application_from_document(doc_id: str, data: dict[str, Any]) -> StoredApplication | None:
    """Normalize a stored document; None when the record is corrupt."""
    date_of_birth = to_datetime(data.get("dateOfBirth"), "dateOfBirth", doc_id)
    if date_of_birth is None:
        _log.error("doc %s: invalid or missing dateOfBirth", doc_id)
        return None

    submission_date = to_datetime(data.get("submissionDate"), "submissionDate", doc_id)
    if submission_date is None:
        _log.error("doc %s: invalid or missing submissionDate", doc_id)
        return None

    missing = [k for k in ("applicantType", "employeeName", "designation", "status") if not data.get(k)]
    if missing:
        _log.error("doc %s: missing required fields %s", doc_id, ",".join(missing))
        return None

    status = str(data.get("status"))
    if status not in STATUS_VALUES:
        _log.error("doc %s: unknown status %r", doc_id, status)
        return None

    return StoredApplication(
        application_id=doc_id,
        applicant_type=str(data["applicantType"]),
        employee_name=str(data["employeeName"]),
        designation=str(data["designation"]),
        employee_no=data.get("employeeNo"),
        ruid_no=data.get("ruidNo"),
        date_of_birth=date_of_birth,
        department=data.get("department"),
        station=data.get("station"),
        bill_unit=data.get("billUnit"),
        residential_address=data.get("residentialAddress"),
        rly_contact_number=data.get("rlyContactNumber"),
        mobile_number=data.get("mobileNumber"),
        reason_for_application=data.get("reasonForApplication"),
        emergency_contact_name=data.get("emergencyContactName"),
        emergency_contact_number=data.get("emergencyContactNumber"),
        family_members=_family_members_from_document(data.get("familyMembers"), doc_id),
        status=status,
        submission_date=submission_date,
        upload_photo_url=data.get("uploadPhotoUrl"),
        upload_signature_url=data.get("uploadSignatureUrl"),
        upload_hindi_name_url=data.get("uploadHindiNameUrl"),
        upload_hindi_designation_url=data.get("uploadHindiDesignationUrl"),
    )
