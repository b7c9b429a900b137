from __future__ import annotations

from unittest.mock import MagicMock

from applications.admin_actions import can_transition, update_application_status
from applications.repository import RepositoryError
from utils import AuthContext


def _submit(client, payload: dict) -> str:
    res = client.post("/api/v1/apply/submit", json=payload)
    assert res.status_code == 201
    return res.get_json()["applicationId"]


def test_transition_table():
    assert can_transition("pending", "approved")
    assert can_transition("pending", "rejected")
    assert not can_transition("approved", "rejected")
    assert not can_transition("rejected", "pending")
    assert not can_transition("approved", "pending")


def test_update_requires_valid_actor():
    repo = MagicMock()
    anonymous = AuthContext(valid=False, uid="", email="", role="", expiresAt="")
    out = update_application_status(repo, "ECR-1", "approved", actor=anonymous)
    assert out["code"] == "AUTH_INVALID"
    repo.update_status.assert_not_called()


def test_update_reports_store_outage():
    repo = MagicMock()
    repo.get_by_id.side_effect = RepositoryError("Unable to load applications right now. Please try again later.")
    actor = AuthContext(valid=True, uid="u", email="u@example.com", role="admin", expiresAt="")
    out = update_application_status(repo, "ECR-1", "approved", actor=actor)
    assert out == {
        "success": False,
        "code": "UNAVAILABLE",
        "message": "Unable to load applications right now. Please try again later.",
    }


def test_list_and_get_applications(app_client, login_admin, application_payload):
    _app, client = app_client
    first = _submit(client, application_payload())
    second = _submit(client, application_payload(employeeName="Meera Das"))
    headers = login_admin()

    res = client.get("/api/v1/admin/applications", headers=headers)
    assert res.status_code == 200
    body = res.get_json()
    assert body["count"] == 2
    assert {a["applicationId"] for a in body["applications"]} == {first, second}
    assert body["applications"][0]["submissionDate"] >= body["applications"][1]["submissionDate"]

    res = client.get(f"/api/v1/admin/applications/{first}", headers=headers)
    assert res.status_code == 200
    body = res.get_json()
    assert body["application"]["mobileNumber"] == "9876543210"
    assert [h["action"] for h in body["history"]] == ["SUBMIT"]

    assert client.get("/api/v1/admin/applications/ECR-0-NOPE0", headers=headers).status_code == 404


def test_approve_then_terminal(app_client, login_admin, application_payload):
    _app, client = app_client
    app_id = _submit(client, application_payload())
    headers = login_admin()
    url = f"/api/v1/admin/applications/{app_id}/status"

    res = client.post(url, json={"status": "approved"}, headers=headers)
    assert res.status_code == 200
    assert res.get_json()["status"] == "approved"

    res = client.post(url, json={"status": "approved"}, headers=headers)
    assert res.status_code == 200
    assert res.get_json()["message"] == "Application is already approved."

    res = client.post(url, json={"status": "rejected"}, headers=headers)
    assert res.status_code == 409
    assert res.get_json()["error"]["code"] == "CONFLICT"

    status = client.post("/api/v1/apply/status", json={"applicationId": app_id, "dateOfBirth": "1990-05-15"})
    assert status.get_json()["status"] == "approved"

    history = client.get(f"/api/v1/admin/applications/{app_id}", headers=headers).get_json()["history"]
    change = [h for h in history if h["action"] == "STATUS_CHANGE"]
    assert len(change) == 1
    assert change[0]["fromState"] == "pending"
    assert change[0]["toState"] == "approved"
    assert change[0]["actorEmail"] == "admin-1@example.com"


def test_override_when_enabled(app_client, login_admin, application_payload, monkeypatch):
    app, client = app_client
    app_id = _submit(client, application_payload())
    headers = login_admin()
    url = f"/api/v1/admin/applications/{app_id}/status"

    assert client.post(url, json={"status": "rejected"}, headers=headers).status_code == 200
    monkeypatch.setattr(app.config["CFG"], "ALLOW_STATUS_OVERRIDE", True)
    res = client.post(url, json={"status": "pending"}, headers=headers)
    assert res.status_code == 200

    history = client.get(f"/api/v1/admin/applications/{app_id}", headers=headers).get_json()["history"]
    assert "STATUS_OVERRIDE" in [h["action"] for h in history]


def test_status_update_errors(app_client, login_admin, application_payload):
    _app, client = app_client
    app_id = _submit(client, application_payload())

    res = client.post(
        f"/api/v1/admin/applications/{app_id}/status", json={"status": "archived"}, headers=login_admin()
    )
    assert res.status_code == 400

    res = client.post(
        "/api/v1/admin/applications/ECR-0-NOPE0/status", json={"status": "approved"}, headers=login_admin()
    )
    assert res.status_code == 404


def test_operator_cannot_change_status(app_client, login_admin, application_payload):
    _app, client = app_client
    app_id = _submit(client, application_payload())
    headers = login_admin("op-1", role="operator")

    assert client.get("/api/v1/admin/applications", headers=headers).status_code == 200
    res = client.post(f"/api/v1/admin/applications/{app_id}/status", json={"status": "approved"}, headers=headers)
    assert res.status_code == 403
