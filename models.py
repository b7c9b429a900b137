from __future__ import annotations

from sqlalchemy import Column, DateTime, Index, String, Text

from db import Base


class StoreDocument(Base):
    """One document of the document store; `data` holds the encoded JSON body."""

    __tablename__ = "store_documents"
    __table_args__ = (Index("ix_store_documents_collection_created", "collection", "createTime"),)

    collection = Column(String(120), primary_key=True)
    docId = Column(String(200), primary_key=True)
    data = Column(Text, nullable=False, default="{}")
    createTime = Column(DateTime(timezone=True), nullable=False)
    updateTime = Column(DateTime(timezone=True), nullable=False)


class AdminSession(Base):
    __tablename__ = "admin_sessions"

    sessionId = Column(String, primary_key=True)
    tokenHash = Column(String, nullable=False, unique=True, index=True)
    tokenPrefix = Column(String, nullable=False, default="", index=True)
    uid = Column(String, nullable=False, default="", index=True)
    email = Column(String, nullable=False, default="")
    role = Column(String, nullable=False, default="", index=True)
    issuedAt = Column(Text, nullable=False, default="")
    expiresAt = Column(Text, nullable=False, default="")
    lastSeenAt = Column(Text, nullable=False, default="")
    revokedAt = Column(Text, nullable=False, default="")


class AuditLog(Base):
    __tablename__ = "audit_log"

    logId = Column(String, primary_key=True)
    entityType = Column(String, nullable=False, default="", index=True)
    entityId = Column(String, nullable=False, default="", index=True)
    action = Column(String, nullable=False, default="", index=True)
    fromState = Column(String, nullable=False, default="")
    toState = Column(String, nullable=False, default="")
    actorUid = Column(String, nullable=False, default="", index=True)
    actorEmail = Column(Text, nullable=False, default="")
    at = Column(Text, nullable=False, default="", index=True)
    correlationId = Column(String, nullable=False, default="", index=True)
    metaJson = Column(Text, nullable=False, default="")
