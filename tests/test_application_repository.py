from __future__ import annotations

import os
import re
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from applications.repository import (
    ApplicationRepository,
    FileUpload,
    RepositoryError,
    application_from_document,
    generate_application_id,
)
from applications.schema import validate_submission
from docstore import DocumentReference, StoreError, Timestamp


def _seed(store, doc_id: str, **fields):
    data = {
        "applicantType": "non-gazetted",
        "employeeName": "Ravi Kumar",
        "designation": "Clerk",
        "dateOfBirth": Timestamp.from_datetime(datetime(1990, 5, 15, tzinfo=timezone.utc)),
        "submissionDate": Timestamp.from_datetime(datetime(2024, 5, 15, 9, 30, tzinfo=timezone.utc)),
        "status": "pending",
    }
    data.update(fields)
    store.collection("applications").document(doc_id).set(data)


def test_generate_application_id_format():
    assert re.fullmatch(r"ECR-\d{13}-[0-9A-Z]{5}", generate_application_id())


def test_create_persists_pending_record_with_files(store, storage, application_payload):
    repo = ApplicationRepository(store, storage)
    record = validate_submission(application_payload())

    app_id = repo.create(
        record,
        {"uploadPhoto": FileUpload("photo.png", "image/png", b"\x89PNG...")},
    )

    stored = repo.get_by_id(app_id)
    assert stored is not None
    assert stored.status == "pending"
    assert stored.employee_no == "EMP123"
    assert stored.upload_photo_url == f"/files/uploads/{app_id}/uploadPhoto_photo.png"
    assert stored.upload_signature_url == f"/files/uploads/{app_id}/uploadSignature_sign.jpg"
    assert stored.upload_hindi_name_url is None
    assert stored.family_members[0].id.startswith("fm_")
    assert os.path.exists(os.path.join(storage.root_dir, "uploads", app_id, "uploadPhoto_photo.png"))

    raw = store.collection("applications").document(app_id).get().to_dict()
    assert isinstance(raw["submissionDate"], Timestamp)
    assert isinstance(raw["dateOfBirth"], Timestamp)


def test_failed_store_write_removes_uploaded_files(store, storage, application_payload):
    repo = ApplicationRepository(store, storage)
    record = validate_submission(application_payload())

    with patch.object(DocumentReference, "set", side_effect=StoreError("down")):
        with pytest.raises(RepositoryError):
            repo.create(record, {"uploadPhoto": FileUpload("photo.png", "image/png", b"\x89PNG...")})

    left = [name for _dir, _subdirs, files in os.walk(os.path.join(storage.root_dir, "uploads")) for name in files]
    assert left == []


def test_created_record_reads_back_field_for_field(store, storage, application_payload):
    repo = ApplicationRepository(store, storage)
    payload = application_payload(
        rlyContactNumber="040-27821",
        familyMembers=[
            {
                "name": "Sita Kumar",
                "relationship": "Spouse",
                "dob": "1992-01-20",
                "bloodGroup": "B+",
                "identificationMarks": "Mole on left cheek",
            }
        ],
    )

    app_id = repo.create(validate_submission(payload))
    out = repo.get_by_id(app_id).to_dict()

    for key in (
        "applicantType",
        "employeeName",
        "designation",
        "employeeNo",
        "department",
        "station",
        "billUnit",
        "residentialAddress",
        "rlyContactNumber",
        "mobileNumber",
        "reasonForApplication",
        "emergencyContactName",
        "emergencyContactNumber",
    ):
        assert out[key] == payload[key], key
    assert out["dateOfBirth"] == "1990-05-15T00:00:00+00:00"
    assert out["ruidNo"] is None

    member = out["familyMembers"][0]
    assert member["name"] == "Sita Kumar"
    assert member["relationship"] == "Spouse"
    assert member["dob"] == "1992-01-20T00:00:00+00:00"
    assert member["bloodGroup"] == "B+"
    assert member["identificationMarks"] == "Mole on left cheek"


def test_get_by_id_blank_and_missing(store):
    repo = ApplicationRepository(store)
    assert repo.get_by_id("") is None
    assert repo.get_by_id("ECR-0-AAAAA") is None


def test_corrupt_records_are_treated_as_absent(store):
    repo = ApplicationRepository(store)
    _seed(store, "bad-dob", dateOfBirth="not a date")
    _seed(store, "bad-status", status="archived")
    _seed(store, "no-name", employeeName="")

    assert repo.get_by_id("bad-dob") is None
    assert repo.get_by_id("bad-status") is None
    assert repo.get_by_id("no-name") is None


def test_mixed_date_representations_normalize(store):
    repo = ApplicationRepository(store)
    _seed(
        store,
        "mixed",
        dateOfBirth="1990-05-15",
        submissionDate={"seconds": 1715765400, "nanoseconds": 0},
        familyMembers=[
            {"name": "Sita", "relationship": "Spouse", "dob": 695865600000},
            {"name": "Broken", "relationship": "Son", "dob": "??"},
        ],
    )

    app = repo.get_by_id("mixed")
    assert app.date_of_birth == datetime(1990, 5, 15, tzinfo=timezone.utc)
    assert app.submission_date == datetime(2024, 5, 15, 9, 30, tzinfo=timezone.utc)
    assert [fm.name for fm in app.family_members] == ["Sita"]
    assert app.family_members[0].id == "fm_0_mixed"


def test_get_all_sorts_newest_first_and_skips_corrupt(store, caplog):
    caplog.set_level("WARNING", logger="applications.repository")
    repo = ApplicationRepository(store)
    _seed(store, "old", submissionDate="2023-01-01T00:00:00Z")
    _seed(store, "new", submissionDate=Timestamp.from_datetime(datetime(2024, 6, 1, tzinfo=timezone.utc)))
    _seed(store, "mid", submissionDate=1700000000000)
    _seed(store, "broken", submissionDate=None)

    assert [a.application_id for a in repo.get_all()] == ["new", "mid", "old"]
    assert any("excluding application id=broken" in r.getMessage() for r in caplog.records)


def test_update_status(store):
    repo = ApplicationRepository(store)
    _seed(store, "ECR-1")

    repo.update_status("ECR-1", "approved")
    assert repo.get_by_id("ECR-1").status == "approved"

    repo.update_status("ECR-1", "approved")
    again = repo.get_by_id("ECR-1")
    assert again.status == "approved"
    assert again.employee_name == "Ravi Kumar"

    with pytest.raises(ValueError):
        repo.update_status("ECR-1", "archived")

    with pytest.raises(RepositoryError) as exc:
        repo.update_status("ECR-404", "approved")
    assert exc.value.not_found


def test_application_from_document_to_dict():
    app = application_from_document(
        "ECR-9",
        {
            "applicantType": "gazetted",
            "employeeName": "Meera Das",
            "designation": "Officer",
            "ruidNo": "R-1",
            "dateOfBirth": "1985-02-03",
            "submissionDate": "2024-05-15T09:30:00Z",
            "status": "rejected",
        },
    )
    out = app.to_dict()
    assert out["applicationId"] == "ECR-9"
    assert out["dateOfBirth"] == "1985-02-03T00:00:00+00:00"
    assert out["familyMembers"] == []
    assert out["status"] == "rejected"
