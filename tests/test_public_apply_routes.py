from __future__ import annotations

import io
import json

from sqlalchemy import select

from db import SessionLocal
from models import AuditLog


def test_json_submit_then_status_lookup(app_client, application_payload):
    _app, client = app_client

    res = client.post("/api/v1/apply/submit", json=application_payload())
    assert res.status_code == 201
    body = res.get_json()
    assert body["success"] is True
    app_id = body["applicationId"]
    assert app_id.startswith("ECR-")

    res = client.post("/api/v1/apply/status", json={"applicationId": app_id, "dateOfBirth": "1990-05-15"})
    assert res.status_code == 200
    body = res.get_json()
    assert body["status"] == "pending"
    assert body["applicantName"] == "Ravi Kumar"
    assert "mobileNumber" not in body

    with SessionLocal() as db:
        rows = db.execute(select(AuditLog).where(AuditLog.entityId == app_id)).scalars().all()
    assert [r.action for r in rows] == ["SUBMIT"]


def test_multipart_submit_stores_files(app_client, application_payload):
    app, client = app_client

    fields = application_payload()
    fields.pop("uploadPhoto")
    fields.pop("uploadSignature")
    fields["familyMembers"] = json.dumps(fields["familyMembers"][0])
    fields["uploadPhoto"] = (io.BytesIO(b"\x89PNG photo"), "my photo.png", "image/png")
    fields["uploadSignature"] = (io.BytesIO(b"\xff\xd8 sign"), "sign.jpg", "image/jpeg")

    res = client.post("/api/v1/apply/submit", data=fields, content_type="multipart/form-data")
    assert res.status_code == 201, res.get_json()
    app_id = res.get_json()["applicationId"]

    stored = app.extensions["applications_repo"].get_by_id(app_id)
    assert stored.family_members[0].relationship == "Spouse"
    assert stored.upload_photo_url.endswith(f"/uploads/{app_id}/uploadPhoto_my_photo.png")

    res = client.get(stored.upload_photo_url)
    assert res.status_code == 200
    assert res.data == b"\x89PNG photo"
    assert res.mimetype == "image/png"


def test_submit_validation_errors(app_client, application_payload):
    _app, client = app_client

    res = client.post("/api/v1/apply/submit", json=application_payload(employeeNo="", mobileNumber="555"))
    assert res.status_code == 400
    body = res.get_json()
    assert body["success"] is False
    assert set(body["errors"]) == {"employeeNo", "mobileNumber"}


def test_status_lookup_failures(app_client, application_payload):
    _app, client = app_client
    app_id = client.post("/api/v1/apply/submit", json=application_payload()).get_json()["applicationId"]

    res = client.post("/api/v1/apply/status", json={"applicationId": app_id, "dateOfBirth": "1991-01-01"})
    assert res.status_code == 404
    assert res.get_json() == {"success": False, "message": "Application ID and Date of Birth do not match our records."}

    res = client.post("/api/v1/apply/status", json={"applicationId": "ECR-1-ZZZZZ", "dateOfBirth": "1990-05-15"})
    assert res.status_code == 404

    res = client.post("/api/v1/apply/status", json={"applicationId": app_id, "dateOfBirth": "yesterday"})
    assert res.status_code == 400

    res = client.post("/api/v1/apply/status", json={"dateOfBirth": "1990-05-15"})
    assert res.status_code == 400


def test_missing_file_is_404(app_client):
    _app, client = app_client
    res = client.get("/files/uploads/ECR-1/nothing.png")
    assert res.status_code == 404
    res = client.get("/files/../secrets.txt")
    assert res.status_code == 404
