from __future__ import annotations

import io


EMPLOYEE = {
    "empNo": "E-100",
    "empName": "Asha Patnaik",
    "designation": "Clerk",
    "department": "ACCOUNTS",
    "station": "BHUBANESWAR",
    "address": "Unit 4, Bhubaneswar",
    "emergencyContactName": "Ravi",
    "dob": "1990-05-15",
    "applicationDate": "2024-01-10T10:00:00Z",
    "mobileNumber": "9876543210",
    "emergencyContactNo": "9123456780",
    "status": "Pending",
}


def test_employee_endpoints_require_session(app_client):
    _app, client = app_client
    assert client.get("/api/v1/admin/employees").status_code == 401


def test_create_update_and_stats(app_client, login_admin):
    _app, client = app_client
    headers = login_admin()

    res = client.post("/api/v1/admin/employees", json=EMPLOYEE, headers=headers)
    assert res.status_code == 201
    emp_id = res.get_json()["id"]

    res = client.patch(f"/api/v1/admin/employees/{emp_id}", json={"status": "Closed"}, headers=headers)
    assert res.status_code == 200

    stats = client.get("/api/v1/admin/employees/stats", headers=headers).get_json()["stats"]
    assert stats["approvedCount"] == 1

    res = client.get(f"/api/v1/admin/employees/{emp_id}", headers=headers)
    assert res.get_json()["employee"]["status"] == "Closed"

    res = client.get("/api/v1/admin/employees/search?q=Asha", headers=headers)
    assert [e["id"] for e in res.get_json()["employees"]] == [emp_id]

    res = client.get("/api/v1/admin/employees/range?start=2024-01-01&end=2024-01-31", headers=headers)
    assert len(res.get_json()["employees"]) == 1


def test_validation_error_shape(app_client, login_admin):
    _app, client = app_client
    res = client.post("/api/v1/admin/employees", json={**EMPLOYEE, "mobileNumber": "1"}, headers=login_admin())
    assert res.status_code == 400
    body = res.get_json()
    assert body["error"]["code"] == "VALIDATION"
    assert "mobileNumber" in body["errors"]


def test_operator_is_read_only(app_client, login_admin):
    _app, client = app_client
    headers = login_admin("op-1", role="operator")
    assert client.get("/api/v1/admin/employees", headers=headers).status_code == 200
    assert client.post("/api/v1/admin/employees", json=EMPLOYEE, headers=headers).status_code == 403

    admin = login_admin()
    emp_id = client.post("/api/v1/admin/employees", json=EMPLOYEE, headers=admin).get_json()["id"]
    res = client.post(f"/api/v1/admin/employees/{emp_id}/status", json={"status": "Closed"}, headers=headers)
    assert res.status_code == 403


def test_bulk_status_unknown_id(app_client, login_admin):
    _app, client = app_client
    headers = login_admin()
    emp_id = client.post("/api/v1/admin/employees", json=EMPLOYEE, headers=headers).get_json()["id"]

    res = client.post(
        "/api/v1/admin/employees/bulk-status", json={"ids": [emp_id, "ghost"], "status": "Closed"}, headers=headers
    )
    assert res.status_code == 404

    res = client.post("/api/v1/admin/employees/bulk-status", json={"ids": [emp_id], "status": "Closed"}, headers=headers)
    assert res.get_json()["updated"] == 1


def test_file_upload_and_delete(app_client, login_admin):
    _app, client = app_client
    headers = login_admin()

    res = client.post(
        "/api/v1/admin/employees/files",
        data={"file": (io.BytesIO(b"img"), "badge photo.png", "image/png")},
        content_type="multipart/form-data",
        headers=headers,
    )
    assert res.status_code == 201
    body = res.get_json()
    assert body["path"] == "employees/badge_photo.png"
    assert client.get(body["url"]).data == b"img"

    assert client.delete(f"/api/v1/admin/employees/files/{body['path']}", headers=headers).status_code == 200
    assert client.delete(f"/api/v1/admin/employees/files/{body['path']}", headers=headers).status_code == 404
