from __future__ import annotations

import os


def _env_str(name: str, default: str = "") -> str:
    return str(os.getenv(name, default) or default).strip()


def _env_int(name: str, default: int) -> int:
    try:
        return int(str(os.getenv(name, "") or "").strip() or default)
    except Exception:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = str(os.getenv(name, "") or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "y", "on"}


def _env_list(name: str, default: list[str] | None = None) -> list[str]:
    raw = str(os.getenv(name, "") or "").strip()
    if not raw:
        return list(default or [])
    return [x.strip() for x in raw.split(",") if x.strip()]


class Config:
    def __init__(self):
        self.APP_ENV = _env_str("APP_ENV", "development").lower()
        self.APP_VERSION = _env_str("APP_VERSION", "0.1.0")
        self.LOG_LEVEL = _env_str("LOG_LEVEL", "INFO").upper()
        self.HOST = _env_str("HOST", "0.0.0.0")
        self.PORT = _env_int("PORT", 5002)

        self.DATABASE_URL = _env_str("DATABASE_URL", "sqlite:///./idcard_portal.db")

        self.CORS_ORIGINS = _env_list("CORS_ORIGINS", ["http://localhost:3000", "http://127.0.0.1:3000"])
        self.CORS_ALLOW_CREDENTIALS = _env_bool("CORS_ALLOW_CREDENTIALS", True)

        # Identity provider (Firebase Authentication).
        self.FIREBASE_API_KEY = _env_str("FIREBASE_API_KEY")
        self.FIREBASE_PROJECT_ID = _env_str("FIREBASE_PROJECT_ID")
        self.AUTH_HTTP_TIMEOUT = max(1, _env_int("AUTH_HTTP_TIMEOUT", 10))
        self.AUTH_ALLOW_TEST_TOKENS = _env_bool("AUTH_ALLOW_TEST_TOKENS", False)
        self.ADMIN_SESSION_TTL_MINUTES = max(5, _env_int("ADMIN_SESSION_TTL_MINUTES", 480))
        self.ADMIN_LOGIN_PATH = _env_str("ADMIN_LOGIN_PATH", "/admin/login")
        self.ADMIN_ROLE_CACHE_TTL_SECONDS = max(1, min(3600, _env_int("ADMIN_ROLE_CACHE_TTL_SECONDS", 60)))

        # Object storage.
        self.UPLOAD_DIR = _env_str("UPLOAD_DIR", "./uploads")
        self.STORAGE_PUBLIC_BASE_URL = _env_str("STORAGE_PUBLIC_BASE_URL", "/files")
        self.MAX_UPLOAD_BYTES = _env_int("MAX_UPLOAD_BYTES", 2 * 1024 * 1024)

        # Admin may move an application out of a terminal status.
        self.ALLOW_STATUS_OVERRIDE = _env_bool("ALLOW_STATUS_OVERRIDE", False)

    @property
    def is_production(self) -> bool:
        return self.APP_ENV in {"production", "prod"}

    def validate(self) -> None:
        if not self.DATABASE_URL:
            raise RuntimeError("Missing DATABASE_URL")
        if self.is_production:
            if not self.FIREBASE_API_KEY:
                raise RuntimeError("Missing FIREBASE_API_KEY")
            if not self.FIREBASE_PROJECT_ID:
                raise RuntimeError("Missing FIREBASE_PROJECT_ID")
            if self.AUTH_ALLOW_TEST_TOKENS:
                raise RuntimeError("AUTH_ALLOW_TEST_TOKENS must be off in production")


def get_config() -> Config:
    cfg = Config()
    cfg.validate()
    return cfg
