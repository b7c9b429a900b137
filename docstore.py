"""
Document store client.

Firestore-style collections of JSON documents kept in a single SQLAlchemy
table (models.StoreDocument). One client is constructed at startup and
shared by every repository/service:

    store = DocumentStore(SessionLocal)
    ref = store.collection("applications").document("ECR-1")
    ref.set({"status": "pending", "submissionDate": SERVER_TIMESTAMP})
    snap = ref.get()

Values are JSON plus the store-native Timestamp (seconds + nanoseconds).
datetime/date values are written as Timestamps, like the managed database
does. Every SQLAlchemy failure is raised as StoreError.
"""
from __future__ import annotations

import copy
import json
import logging
import os
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from models import StoreDocument


_log = logging.getLogger("docstore")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_TIMESTAMP_TAG = "__timestamp__"


class StoreError(Exception):
    pass


class InvalidCursor(StoreError):
    """start_after() names a document that no longer exists."""


class DocumentNotFound(StoreError):
    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"No document to update: {collection}/{doc_id}")
        self.collection = collection
        self.doc_id = doc_id


@dataclass(frozen=True, order=True)
class Timestamp:
    seconds: int
    nanoseconds: int = 0

    def __post_init__(self):
        if not isinstance(self.seconds, int) or not isinstance(self.nanoseconds, int):
            raise ValueError("Timestamp fields must be integers")
        if not 0 <= self.nanoseconds < 1_000_000_000:
            raise ValueError(f"Timestamp nanoseconds out of range: {self.nanoseconds}")

    @classmethod
    def from_datetime(cls, dt: datetime) -> "Timestamp":
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        delta = dt - _EPOCH
        return cls(delta.days * 86400 + delta.seconds, delta.microseconds * 1000)

    @classmethod
    def now(cls) -> "Timestamp":
        return cls.from_datetime(datetime.now(timezone.utc))

    def to_datetime(self) -> datetime:
        return _EPOCH + timedelta(seconds=self.seconds, microseconds=self.nanoseconds // 1000)


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


# Resolved to the commit time when the write is applied.
SERVER_TIMESTAMP = _ServerTimestamp()


# ============================================================================
# Encoding
# ============================================================================

def _encode(value: Any, now: Timestamp) -> Any:
    if value is SERVER_TIMESTAMP:
        value = now
    if isinstance(value, Timestamp):
        return {_TIMESTAMP_TAG: True, "seconds": value.seconds, "nanoseconds": value.nanoseconds}
    if isinstance(value, datetime):
        return _encode(Timestamp.from_datetime(value), now)
    if isinstance(value, date):
        return _encode(datetime(value.year, value.month, value.day, tzinfo=timezone.utc), now)
    if isinstance(value, dict):
        return {str(k): _encode(v, now) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(v, now) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    raise StoreError(f"Unsupported value type: {type(value).__name__}")


def _decode(value: Any) -> Any:
    if isinstance(value, dict):
        if value.get(_TIMESTAMP_TAG) is True:
            try:
                return Timestamp(int(value["seconds"]), int(value["nanoseconds"]))
            except (KeyError, TypeError, ValueError):
                # Damaged tag: hand back the look-alike and let readers decide.
                return {k: v for k, v in value.items() if k != _TIMESTAMP_TAG}
        return {k: _decode(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_decode(v) for v in value]
    return value


def _dumps(data: dict[str, Any], now: Timestamp) -> str:
    return json.dumps(_encode(data, now), ensure_ascii=False, separators=(",", ":"))


def _loads(raw: str) -> dict[str, Any]:
    try:
        data = json.loads(raw or "{}")
    except ValueError:
        _log.error("undecodable document body, treating as empty")
        return {}
    decoded = _decode(data)
    return decoded if isinstance(decoded, dict) else {}


def _get_field(data: dict[str, Any] | None, field_path: str) -> Any:
    cur: Any = data
    for part in str(field_path or "").split("."):
        if not isinstance(cur, dict) or part not in cur:
            return None
        cur = cur[part]
    return cur


# Cross-type ordering: null < bool < number < timestamp < string < array < map.
def _sort_key(value: Any) -> tuple:
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (1, value)
    if isinstance(value, (int, float)):
        return (2, value)
    if isinstance(value, Timestamp):
        return (3, value)
    if isinstance(value, str):
        return (4, value)
    if isinstance(value, list):
        return (5, json.dumps(_encode(value, Timestamp(0)), sort_keys=True))
    return (6, json.dumps(_encode(value, Timestamp(0)), sort_keys=True, default=str))


def _matches(actual: Any, op: str, expected: Any) -> bool:
    if op == "==":
        return _sort_key(actual) == _sort_key(expected)
    if op == "!=":
        return actual is not None and _sort_key(actual) != _sort_key(expected)
    if op == "in":
        return any(_sort_key(actual) == _sort_key(x) for x in (expected or []))
    if op == "array-contains":
        return isinstance(actual, list) and any(_sort_key(x) == _sort_key(expected) for x in actual)

    a, e = _sort_key(actual), _sort_key(expected)
    # Range filters only match values of the same type.
    if a[0] != e[0] or actual is None:
        return False
    if op == "<":
        return a < e
    if op == "<=":
        return a <= e
    if op == ">":
        return a > e
    if op == ">=":
        return a >= e
    raise StoreError(f"Unsupported filter operator: {op}")


_SUPPORTED_OPS = {"==", "!=", "<", "<=", ">", ">=", "in", "array-contains"}


# ============================================================================
# Snapshots and references
# ============================================================================

class DocumentSnapshot:
    def __init__(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any] | None,
        create_time: datetime | None = None,
        update_time: datetime | None = None,
    ):
        self.collection = collection
        self.id = doc_id
        self._data = data
        self.create_time = create_time
        self.update_time = update_time

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self) -> dict[str, Any] | None:
        if self._data is None:
            return None
        return copy.deepcopy(self._data)

    def __repr__(self) -> str:
        return f"DocumentSnapshot({self.collection}/{self.id}, exists={self.exists})"


class DocumentReference:
    def __init__(self, store: "DocumentStore", collection: str, doc_id: str):
        self._store = store
        self.collection = collection
        self.id = doc_id

    @property
    def path(self) -> str:
        return f"{self.collection}/{self.id}"

    def get(self) -> DocumentSnapshot:
        return self._store._get(self.collection, self.id)

    def set(self, data: dict[str, Any], merge: bool = False) -> None:
        self._store._run("set", lambda db: _apply_set(db, self.collection, self.id, data, merge, Timestamp.now()))

    def update(self, fields: dict[str, Any]) -> None:
        self._store._run("update", lambda db: _apply_update(db, self.collection, self.id, fields, Timestamp.now()))

    def delete(self) -> None:
        self._store._run("delete", lambda db: _apply_delete(db, self.collection, self.id))


class Query:
    def __init__(
        self,
        store: "DocumentStore",
        collection: str,
        filters: tuple = (),
        orders: tuple = (),
        limit_count: int | None = None,
        cursor: str | None = None,
    ):
        self._store = store
        self._collection = collection
        self._filters = filters
        self._orders = orders
        self._limit = limit_count
        self._cursor = cursor

    def _copy(self, **changes) -> "Query":
        params = {
            "filters": self._filters,
            "orders": self._orders,
            "limit_count": self._limit,
            "cursor": self._cursor,
        }
        params.update(changes)
        return Query(self._store, self._collection, **params)

    def where(self, field_path: str, op: str, value: Any) -> "Query":
        if op not in _SUPPORTED_OPS:
            raise StoreError(f"Unsupported filter operator: {op}")
        # Compare in stored form: datetime/date filter values become Timestamps.
        value = _decode(_encode(value, Timestamp.now()))
        return self._copy(filters=self._filters + ((field_path, op, value),))

    def order_by(self, field_path: str, descending: bool = False) -> "Query":
        return self._copy(orders=self._orders + ((field_path, bool(descending)),))

    def limit(self, count: int) -> "Query":
        return self._copy(limit_count=max(0, int(count)))

    def start_after(self, doc_id: str | DocumentSnapshot | None) -> "Query":
        if isinstance(doc_id, DocumentSnapshot):
            doc_id = doc_id.id
        return self._copy(cursor=str(doc_id) if doc_id else None)

    def get(self) -> list[DocumentSnapshot]:
        return self._store._run("query", self._execute)

    def count(self) -> int:
        return len(self._store._run("count", lambda db: self._execute(db, paginate=False)))

    def _ordered(self, snaps: list[DocumentSnapshot]) -> list[DocumentSnapshot]:
        snaps = sorted(snaps, key=lambda s: s.id)
        for field_path, descending in reversed(self._orders):
            snaps.sort(key=lambda s: _sort_key(_get_field(s._data, field_path)), reverse=descending)
        return snaps

    def _execute(self, db, paginate: bool = True) -> list[DocumentSnapshot]:
        rows = db.execute(
            select(StoreDocument).where(StoreDocument.collection == self._collection)
        ).scalars().all()
        snaps = [_snapshot_from_row(r) for r in rows]

        for field_path, op, value in self._filters:
            snaps = [s for s in snaps if _matches(_get_field(s._data, field_path), op, value)]

        snaps = self._ordered(snaps)

        if not paginate:
            return snaps

        if self._cursor:
            ids = [s.id for s in snaps]
            if self._cursor not in ids:
                # Cursor document left the result set: place it by its own sort values.
                row = db.get(StoreDocument, (self._collection, self._cursor))
                if row is None:
                    raise InvalidCursor(f"Invalid cursor: {self._cursor}")
                snaps = self._ordered(snaps + [_snapshot_from_row(row)])
                ids = [s.id for s in snaps]
            snaps = snaps[ids.index(self._cursor) + 1:]
        if self._limit is not None:
            snaps = snaps[: self._limit]
        return snaps


class CollectionReference(Query):
    def __init__(self, store: "DocumentStore", name: str):
        super().__init__(store, name)
        self.name = name

    def document(self, doc_id: str | None = None) -> DocumentReference:
        return DocumentReference(self._store, self.name, str(doc_id) if doc_id else os.urandom(10).hex())

    def add(self, data: dict[str, Any]) -> DocumentReference:
        ref = self.document()
        ref.set(data)
        return ref


class WriteBatch:
    """Queued writes applied in one transaction on commit()."""

    def __init__(self, store: "DocumentStore"):
        self._store = store
        self._ops: list[Callable[[Any, Timestamp], None]] = []

    def update(self, ref: DocumentReference, fields: dict[str, Any]) -> "WriteBatch":
        self._ops.append(lambda db, now: _apply_update(db, ref.collection, ref.id, fields, now))
        return self

    def delete(self, ref: DocumentReference) -> "WriteBatch":
        self._ops.append(lambda db, now: _apply_delete(db, ref.collection, ref.id))
        return self

    def commit(self) -> list[Any]:
        """Apply every queued write; returns one result per write (deletes report whether a document existed)."""
        now = Timestamp.now()

        def _commit(db):
            return [op(db, now) for op in self._ops]

        results = self._store._run("batch", _commit)
        self._ops = []
        return results


class DocumentStore:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    def collection(self, name: str) -> CollectionReference:
        return CollectionReference(self, name)

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    def _get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        def _read(db):
            row = db.get(StoreDocument, (collection, doc_id))
            if row is None:
                return DocumentSnapshot(collection, doc_id, None)
            return _snapshot_from_row(row)

        return self._run("get", _read)

    def _run(self, op: str, fn):
        try:
            with self._session_factory() as db:
                result = fn(db)
                db.commit()
                return result
        except StoreError:
            raise
        except SQLAlchemyError as e:
            _log.error("document store op=%s failed: %s", op, e)
            raise StoreError(f"Document store {op} failed") from e


# ============================================================================
# Row helpers (run inside a session)
# ============================================================================

def _snapshot_from_row(row: StoreDocument) -> DocumentSnapshot:
    return DocumentSnapshot(row.collection, row.docId, _loads(row.data), row.createTime, row.updateTime)


def _apply_set(db, collection: str, doc_id: str, data: dict[str, Any], merge: bool, now: Timestamp) -> None:
    if not isinstance(data, dict):
        raise StoreError("Document data must be a mapping")
    row = db.get(StoreDocument, (collection, doc_id))
    ts = now.to_datetime()
    if row is None:
        db.add(StoreDocument(collection=collection, docId=doc_id, data=_dumps(data, now), createTime=ts, updateTime=ts))
        return
    body = dict(data)
    if merge:
        body = _loads(row.data)
        body.update(data)
    row.data = _dumps(body, now)
    row.updateTime = ts


def _apply_update(db, collection: str, doc_id: str, fields: dict[str, Any], now: Timestamp) -> None:
    row = db.get(StoreDocument, (collection, doc_id))
    if row is None:
        raise DocumentNotFound(collection, doc_id)
    body = _loads(row.data)
    body.update(fields or {})
    row.data = _dumps(body, now)
    row.updateTime = now.to_datetime()


def _apply_delete(db, collection: str, doc_id: str) -> bool:
    row = db.get(StoreDocument, (collection, doc_id))
    if row is None:
        return False
    db.delete(row)
    return True
