from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker


_log = logging.getLogger("db")

Base = declarative_base()

# Bound in init_engine(); modules may import it before the app is created.
SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False)

_engine: Engine | None = None


def init_engine(database_url: str) -> Engine:
    global _engine

    url = str(database_url or "").strip()
    kwargs: dict[str, Any] = {"pool_pre_ping": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs.update({"pool_size": 10, "max_overflow": 20, "pool_recycle": 1800})

    if _engine is not None:
        _engine.dispose()

    _engine = create_engine(url, **kwargs)
    SessionLocal.configure(bind=_engine)
    _log.info("database engine ready dialect=%s", _engine.dialect.name)
    return _engine


def ping_db() -> bool:
    if _engine is None:
        return False
    try:
        with _engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        _log.warning("database ping failed", exc_info=True)
        return False


def get_pool_stats() -> dict[str, Any]:
    if _engine is None:
        return {}
    pool = _engine.pool
    stats: dict[str, Any] = {"class": type(pool).__name__}
    for name in ("size", "checkedin", "checkedout", "overflow"):
        fn = getattr(pool, name, None)
        if callable(fn):
            try:
                stats[name] = fn()
            except Exception:
                stats[name] = None
    return stats
