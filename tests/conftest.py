from __future__ import annotations

import pytest

from db import Base, SessionLocal, init_engine
from docstore import DocumentStore
from storage import ObjectStorage


@pytest.fixture()
def app_client(tmp_path, monkeypatch):
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'portal.db'}")
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("AUTH_ALLOW_TEST_TOKENS", "1")
    monkeypatch.setenv("FIREBASE_API_KEY", "test-api-key")
    monkeypatch.setenv("FIREBASE_PROJECT_ID", "test-project")
    monkeypatch.setenv("ALLOW_STATUS_OVERRIDE", "0")

    from app import create_app

    app = create_app()
    app.config["TESTING"] = True
    return app, app.test_client()


@pytest.fixture()
def store(tmp_path):
    import models  # noqa: F401

    engine = init_engine(f"sqlite:///{tmp_path / 'store.db'}")
    Base.metadata.create_all(bind=engine)
    return DocumentStore(SessionLocal)


@pytest.fixture()
def storage(tmp_path):
    return ObjectStorage(str(tmp_path / "uploads"), "/files")


@pytest.fixture()
def login_admin(app_client):
    """Seed admin_users/<uid> and exchange a test ID token for a session token."""
    app, client = app_client

    def _login(uid: str = "admin-1", role: str = "admin", email: str = "") -> dict:
        email = email or f"{uid}@example.com"
        app.extensions["docstore"].collection("admin_users").document(uid).set(
            {"email": email, "role": role, "name": uid, "permissions": []}
        )
        res = client.post("/api/v1/auth/exchange", json={"idToken": f"TEST:{uid}:{email}"})
        assert res.status_code == 200, res.get_json()
        token = res.get_json()["sessionToken"]
        return {"Authorization": f"Bearer {token}"}

    return _login


@pytest.fixture()
def application_payload():
    """Factory for a valid non-gazetted JSON submission; keyword overrides replace fields."""

    def _make(**overrides) -> dict:
        data = {
            "applicantType": "non-gazetted",
            "employeeName": "Ravi Kumar",
            "designation": "Clerk",
            "employeeNo": "EMP123",
            "dateOfBirth": "1990-05-15",
            "department": "ACCOUNTS",
            "station": "BHUBANESWAR",
            "billUnit": "3101001",
            "residentialAddress": "Plot 12, Saheed Nagar",
            "mobileNumber": "9876543210",
            "reasonForApplication": "New joining",
            "emergencyContactName": "Sita Kumar",
            "emergencyContactNumber": "9123456780",
            "familyMembers": [{"name": "Sita Kumar", "relationship": "Spouse", "dob": "1992-01-20"}],
            "uploadPhoto": {"name": "photo.png", "type": "image/png", "size": 1024},
            "uploadSignature": {"name": "sign.jpg", "type": "image/jpeg", "size": 2048},
        }
        data.update(overrides)
        return data

    return _make
