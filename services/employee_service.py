from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Iterable, Optional

from docstore import SERVER_TIMESTAMP, DocumentNotFound, DocumentStore, InvalidCursor, StoreError
from services.employee_schema import (
    EMPLOYEE_STATUSES,
    STATS_STATUS_FIELDS,
    employee_from_document,
    validate_employee_input,
)
from storage import ObjectStorage, StorageError
from timestamps import parse_instant, to_datetime
from utils import ApiError


_log = logging.getLogger("services.employees")

EMPLOYEES_COLLECTION = "employees"
STATS_COLLECTION = "application_stats"
STATS_DOC_ID = "summary"

SEARCH_LIMIT = 20
MAX_PAGE_LIMIT = 100
MAX_BULK_IDS = 500


def _clean_ids(ids: Any) -> list[str]:
    if not isinstance(ids, (list, tuple)):
        raise ApiError("BAD_REQUEST", "ids must be a list")
    out = []
    for x in ids:
        s = str(x or "").strip()
        if s and s not in out:
            out.append(s)
    if not out:
        raise ApiError("BAD_REQUEST", "No employee ids given")
    if len(out) > MAX_BULK_IDS:
        raise ApiError("BAD_REQUEST", f"At most {MAX_BULK_IDS} ids per request")
    return out


def _check_status(status: Any) -> str:
    s = str(status or "").strip()
    if s not in EMPLOYEE_STATUSES:
        raise ApiError("BAD_REQUEST", f"Invalid status. Expected one of: {', '.join(EMPLOYEE_STATUSES)}")
    return s


class EmployeeService:
    def __init__(self, store: DocumentStore, storage: ObjectStorage):
        self._store = store
        self._storage = storage

    def _employees(self):
        return self._store.collection(EMPLOYEES_COLLECTION)

    def _snapshots_to_list(self, snaps) -> list[dict[str, Any]]:
        return [employee_from_document(s.id, s.to_dict() or {}) for s in snaps]

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def add_employee(self, data: dict[str, Any]) -> str:
        doc = validate_employee_input(data)
        doc.setdefault("identificationMarks", [])
        doc.setdefault("familyMembers", [])
        doc["createdAt"] = SERVER_TIMESTAMP
        doc["updatedAt"] = SERVER_TIMESTAMP
        ref = self._employees().add(doc)
        _log.info("employee added id=%s empNo=%s", ref.id, doc.get("empNo"))
        self.update_stats()
        return ref.id

    def get_employee(self, employee_id: str) -> Optional[dict[str, Any]]:
        snap = self._employees().document(str(employee_id)).get()
        if not snap.exists:
            return None
        return employee_from_document(snap.id, snap.to_dict() or {})

    def update_employee(self, employee_id: str, data: dict[str, Any]) -> None:
        fields = validate_employee_input(data, partial=True)
        if not fields:
            raise ApiError("BAD_REQUEST", "Nothing to update")
        fields["updatedAt"] = SERVER_TIMESTAMP
        try:
            self._employees().document(str(employee_id)).update(fields)
        except DocumentNotFound:
            raise ApiError("NOT_FOUND", "Employee not found")
        _log.info("employee updated id=%s fields=%s", employee_id, ",".join(sorted(fields)))
        self.update_stats()

    def delete_employee(self, employee_id: str) -> None:
        self._employees().document(str(employee_id)).delete()
        _log.info("employee deleted id=%s", employee_id)
        self.update_stats()

    def list_employees(
        self,
        filters: dict[str, Any] | None = None,
        *,
        start_after: str | None = None,
        page_limit: int = 10,
    ) -> dict[str, Any]:
        q = self._employees()
        for key in ("status", "department", "station"):
            value = str((filters or {}).get(key) or "").strip()
            if value:
                q = q.where(key, "==", value)

        limit = max(1, min(MAX_PAGE_LIMIT, int(page_limit or 10)))
        q = q.order_by("createdAt", descending=True).limit(limit)
        if start_after:
            q = q.start_after(start_after)

        try:
            snaps = q.get()
        except InvalidCursor:
            raise ApiError("BAD_REQUEST", "Invalid cursor")
        return {
            "employees": self._snapshots_to_list(snaps),
            "nextCursor": snaps[-1].id if len(snaps) == limit else None,
        }

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def update_status(self, employee_id: str, new_status: Any) -> None:
        status = _check_status(new_status)
        try:
            self._employees().document(str(employee_id)).update({"status": status, "updatedAt": SERVER_TIMESTAMP})
        except DocumentNotFound:
            raise ApiError("NOT_FOUND", "Employee not found")
        _log.info("employee status id=%s status=%s", employee_id, status)
        self.update_stats()

    def bulk_update_status(self, employee_ids: Iterable[str], new_status: Any) -> int:
        """All-or-nothing: one unknown id rolls the whole batch back."""
        status = _check_status(new_status)
        ids = _clean_ids(employee_ids)
        batch = self._store.batch()
        for eid in ids:
            batch.update(self._employees().document(eid), {"status": status, "updatedAt": SERVER_TIMESTAMP})
        try:
            batch.commit()
        except DocumentNotFound as e:
            raise ApiError("NOT_FOUND", f"Employee not found: {e.doc_id}")
        _log.info("bulk status update count=%d status=%s", len(ids), status)
        self.update_stats()
        return len(ids)

    def bulk_delete(self, employee_ids: Iterable[str]) -> int:
        ids = _clean_ids(employee_ids)
        batch = self._store.batch()
        for eid in ids:
            batch.delete(self._employees().document(eid))
        deleted = sum(1 for existed in batch.commit() if existed)
        _log.info("bulk delete requested=%d deleted=%d", len(ids), deleted)
        self.update_stats()
        return deleted

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def search_employees(self, term: str) -> list[dict[str, Any]]:
        """Case-sensitive prefix match on empName."""
        t = str(term or "").strip()
        if not t:
            return []
        snaps = (
            self._employees()
            .where("empName", ">=", t)
            .where("empName", "<=", t + "\uf8ff")
            .order_by("empName")
            .limit(SEARCH_LIMIT)
            .get()
        )
        return self._snapshots_to_list(snaps)

    def get_by_date_range(self, start: Any, end: Any) -> list[dict[str, Any]]:
        start_dt = parse_instant(start)
        end_dt = parse_instant(end)
        if end_dt is not None and isinstance(end, str) and len(end.strip()) == 10:
            # A bare YYYY-MM-DD end date covers that whole day.
            end_dt = end_dt + timedelta(days=1) - timedelta(microseconds=1)
        if start_dt is None or end_dt is None:
            raise ApiError("BAD_REQUEST", "Invalid date range")
        if start_dt > end_dt:
            raise ApiError("BAD_REQUEST", "Start date must not be after end date")
        snaps = (
            self._employees()
            .where("applicationDate", ">=", start_dt)
            .where("applicationDate", "<=", end_dt)
            .order_by("applicationDate", descending=True)
            .get()
        )
        return self._snapshots_to_list(snaps)

    def export_all(self) -> list[dict[str, Any]]:
        return self._snapshots_to_list(self._employees().order_by("createdAt", descending=True).get())

    # ------------------------------------------------------------------
    # Summary statistics
    # ------------------------------------------------------------------

    def update_stats(self) -> Optional[dict[str, Any]]:
        """Recount and overwrite application_stats/summary. Failures are logged, not raised."""
        try:
            stats: dict[str, Any] = {"totalApplications": self._employees().count()}
            for field, status in STATS_STATUS_FIELDS.items():
                stats[field] = self._employees().where("status", "==", status).count()
            self._store.collection(STATS_COLLECTION).document(STATS_DOC_ID).set(
                dict(stats, lastUpdated=SERVER_TIMESTAMP)
            )
        except StoreError:
            _log.exception("stats recompute failed")
            return None
        return stats

    def get_stats(self) -> Optional[dict[str, Any]]:
        snap = self._store.collection(STATS_COLLECTION).document(STATS_DOC_ID).get()
        if not snap.exists:
            return None
        data = snap.to_dict() or {}
        last = to_datetime(data.get("lastUpdated"), "lastUpdated", STATS_DOC_ID)
        return {
            "totalApplications": int(data.get("totalApplications") or 0),
            "pendingCount": int(data.get("pendingCount") or 0),
            "approvedCount": int(data.get("approvedCount") or 0),
            "rejectedCount": int(data.get("rejectedCount") or 0),
            "lastUpdated": last.isoformat() if last else None,
        }

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def upload_file(self, path: str, data: bytes, content_type: str = "") -> str:
        if not data:
            raise ApiError("BAD_REQUEST", "Empty file")
        try:
            return self._storage.upload(path, data, content_type)
        except StorageError as e:
            raise ApiError("BAD_REQUEST", str(e))

    def delete_file(self, path: str) -> None:
        try:
            self._storage.delete(path)
        except FileNotFoundError:
            raise ApiError("NOT_FOUND", "File not found")
        except StorageError as e:
            raise ApiError("BAD_REQUEST", str(e))
