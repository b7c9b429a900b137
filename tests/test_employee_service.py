from __future__ import annotations

from datetime import datetime, timezone

import pytest

from services.employee_schema import validate_employee_input
from services.employee_service import EmployeeService
from utils import ApiError
from validation import ValidationErrors


def _employee(**overrides) -> dict:
    data = {
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
    data.update(overrides)
    return data


@pytest.fixture()
def svc(store, storage):
    return EmployeeService(store, storage)


def test_validate_employee_input():
    doc = validate_employee_input(_employee(identificationMarks=["Mole on chin", " "]))
    assert doc["dob"] == datetime(1990, 5, 15, tzinfo=timezone.utc)
    assert doc["applicationDate"] == datetime(2024, 1, 10, 10, tzinfo=timezone.utc)
    assert doc["identificationMarks"] == ["Mole on chin"]

    with pytest.raises(ValidationErrors) as exc:
        validate_employee_input(_employee(empName="", mobileNumber="123", status="Done"))
    assert set(exc.value.errors) == {"empName", "mobileNumber", "status"}

    assert validate_employee_input({"station": "PURI"}, partial=True) == {"station": "PURI"}
    with pytest.raises(ValidationErrors):
        validate_employee_input({"createdAt": "x"}, partial=True)


def test_crud_roundtrip(svc):
    emp_id = svc.add_employee(_employee(familyMembers=[{"name": "Ravi", "relationship": "Spouse", "dob": "1988-03-02"}]))

    assert svc.get_stats()["totalApplications"] == 1

    emp = svc.get_employee(emp_id)
    assert emp["empName"] == "Asha Patnaik"
    assert emp["dob"] == "1990-05-15T00:00:00+00:00"
    assert emp["familyMembers"][0]["dob"] == "1988-03-02T00:00:00+00:00"
    assert emp["createdAt"] is not None

    svc.update_employee(emp_id, {"station": "PURI"})
    assert svc.get_employee(emp_id)["station"] == "PURI"

    with pytest.raises(ApiError) as exc:
        svc.update_employee("missing", {"station": "PURI"})
    assert exc.value.code == "NOT_FOUND"

    svc.delete_employee(emp_id)
    assert svc.get_employee(emp_id) is None


def test_stats_follow_status_changes(svc):
    a = svc.add_employee(_employee(empNo="E-1"))
    b = svc.add_employee(_employee(empNo="E-2"))
    svc.add_employee(_employee(empNo="E-3", status="Rejected"))

    svc.update_status(a, "Closed")
    stats = svc.get_stats()
    assert stats["totalApplications"] == 3
    assert stats["approvedCount"] == 1
    assert stats["pendingCount"] == 1
    assert stats["rejectedCount"] == 1
    assert stats["lastUpdated"] is not None

    assert svc.bulk_update_status([a, b], "Printing (Draft)") == 2
    assert svc.get_stats()["approvedCount"] == 0

    with pytest.raises(ApiError):
        svc.update_status(a, "Done")


def test_bulk_update_is_all_or_nothing(svc):
    a = svc.add_employee(_employee())
    with pytest.raises(ApiError) as exc:
        svc.bulk_update_status([a, "ghost"], "Closed")
    assert exc.value.code == "NOT_FOUND"
    assert svc.get_employee(a)["status"] == "Pending"

    with pytest.raises(ApiError):
        svc.bulk_update_status([], "Closed")


def test_bulk_delete(svc):
    ids = [svc.add_employee(_employee(empNo=f"E-{i}")) for i in range(3)]
    assert svc.bulk_delete(ids[:2]) == 2
    assert [e["id"] for e in svc.export_all()] == [ids[2]]
    assert svc.get_stats()["totalApplications"] == 1
    assert svc.bulk_delete([ids[2], "ghost"]) == 1
    assert svc.get_stats()["totalApplications"] == 0


def test_list_filters_and_cursor(svc):
    for i in range(5):
        svc.add_employee(_employee(empNo=f"E-{i}", department="ACCOUNTS" if i % 2 else "STORES"))

    page = svc.list_employees({"department": "STORES"}, page_limit=2)
    assert len(page["employees"]) == 2
    assert all(e["department"] == "STORES" for e in page["employees"])
    assert page["nextCursor"] == page["employees"][-1]["id"]

    rest = svc.list_employees({"department": "STORES"}, start_after=page["nextCursor"], page_limit=2)
    assert len(rest["employees"]) == 1
    assert rest["nextCursor"] is None


def test_list_with_deleted_cursor_is_rejected(svc):
    for i in range(4):
        svc.add_employee(_employee(empNo=f"E-{i}"))

    page = svc.list_employees(page_limit=2)
    svc.delete_employee(page["nextCursor"])

    with pytest.raises(ApiError) as exc:
        svc.list_employees(start_after=page["nextCursor"], page_limit=2)
    assert exc.value.code == "BAD_REQUEST"


def test_list_cursor_survives_status_change(svc):
    for i in range(4):
        svc.add_employee(_employee(empNo=f"E-{i}"))

    page = svc.list_employees({"status": "Pending"}, page_limit=2)
    svc.update_status(page["nextCursor"], "Closed")

    rest = svc.list_employees({"status": "Pending"}, start_after=page["nextCursor"], page_limit=2)
    first_ids = {e["id"] for e in page["employees"]}
    assert len(rest["employees"]) == 2
    assert not first_ids & {e["id"] for e in rest["employees"]}


def test_search_is_prefix_match(svc):
    svc.add_employee(_employee(empName="Asha Patnaik"))
    svc.add_employee(_employee(empName="Ashok Rout"))
    svc.add_employee(_employee(empName="Bina Sahu"))

    assert [e["empName"] for e in svc.search_employees("Ash")] == ["Asha Patnaik", "Ashok Rout"]
    assert svc.search_employees("ash") == []
    assert svc.search_employees("  ") == []


def test_date_range(svc):
    svc.add_employee(_employee(empNo="jan", applicationDate="2024-01-31T18:00:00Z"))
    svc.add_employee(_employee(empNo="feb", applicationDate="2024-02-01T00:00:00Z"))

    hits = svc.get_by_date_range("2024-01-01", "2024-01-31")
    assert [e["empNo"] for e in hits] == ["jan"]

    with pytest.raises(ApiError):
        svc.get_by_date_range("2024-02-01", "2024-01-01")
    with pytest.raises(ApiError):
        svc.get_by_date_range("soon", "2024-01-01")


def test_files(svc, storage):
    url = svc.upload_file("employees/photo.png", b"img", "image/png")
    assert url == "/files/employees/photo.png"
    assert storage.read("employees/photo.png")[0] == b"img"

    svc.delete_file("employees/photo.png")
    with pytest.raises(ApiError) as exc:
        svc.delete_file("employees/photo.png")
    assert exc.value.code == "NOT_FOUND"

    with pytest.raises(ApiError):
        svc.upload_file("../escape.png", b"img")
