from __future__ import annotations

import json
import logging
import os
from typing import Any

from flask import g, has_request_context
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from db import SessionLocal
from models import AuditLog
from utils import AuthContext, iso_utc_now


_log = logging.getLogger("audit")

_REDACT_KEYS = {"password", "idtoken", "token", "refreshtoken"}


def _redact(data: Any) -> Any:
    if isinstance(data, dict):
        return {k: ("***" if str(k).lower() in _REDACT_KEYS else _redact(v)) for k, v in data.items()}
    if isinstance(data, list):
        return [_redact(x) for x in data]
    return data


def _correlation_id() -> str:
    if not has_request_context():
        return ""
    return str(getattr(g, "request_id", "") or "")


def log_audit(
    *,
    entity_type: str,
    entity_id: str,
    action: str,
    from_state: str = "",
    to_state: str = "",
    actor: AuthContext | None = None,
    meta: Any = None,
) -> bool:
    """
    Append one audit row in its own transaction.

    Best effort: the audited operation has already happened, so a failed
    write is logged and reported as False instead of raised.
    """
    row = AuditLog(
        logId=f"LOG-{os.urandom(16).hex()}",
        entityType=str(entity_type or "").upper(),
        entityId=str(entity_id or ""),
        action=str(action or "").upper(),
        fromState=str(from_state or ""),
        toState=str(to_state or ""),
        actorUid=str(getattr(actor, "uid", "") or ""),
        actorEmail=str(getattr(actor, "email", "") or ""),
        at=iso_utc_now(),
        correlationId=_correlation_id(),
        metaJson=json.dumps(_redact(meta), default=str) if meta is not None else "",
    )

    db = SessionLocal()
    try:
        db.add(row)
        db.commit()
        return True
    except SQLAlchemyError:
        db.rollback()
        _log.warning("audit write failed entity=%s:%s action=%s", entity_type, entity_id, action, exc_info=True)
        return False
    finally:
        db.close()


def list_audit(entity_type: str, entity_id: str, limit: int = 50) -> list[dict[str, Any]]:
    db = SessionLocal()
    try:
        rows = (
            db.execute(
                select(AuditLog)
                .where(AuditLog.entityType == str(entity_type or "").upper())
                .where(AuditLog.entityId == str(entity_id or ""))
                .order_by(AuditLog.at.desc())
                .limit(max(1, int(limit)))
            )
            .scalars()
            .all()
        )
    finally:
        db.close()

    out = []
    for r in rows:
        meta = None
        if r.metaJson:
            try:
                meta = json.loads(r.metaJson)
            except ValueError:
                meta = r.metaJson
        out.append(
            {
                "action": r.action,
                "fromState": r.fromState,
                "toState": r.toState,
                "actorEmail": r.actorEmail,
                "at": r.at,
                "correlationId": r.correlationId,
                "meta": meta,
            }
        )
    return out
