from __future__ import annotations

import functools
import logging
import os
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Iterable, Optional
from urllib.parse import quote

import requests
from flask import current_app, g, jsonify, redirect, request
from google.auth import exceptions as google_exceptions
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token as google_id_token
from sqlalchemy import select

from cache_layer import cache_get_or_set, cache_invalidate
from db import SessionLocal
from docstore import SERVER_TIMESTAMP, DocumentStore, StoreError
from models import AdminSession
from utils import ApiError, AuthContext, iso_utc_now, new_uuid, sha256_hex


_log = logging.getLogger("auth")

ADMIN_USERS_COLLECTION = "admin_users"

ROLE_SUPER_ADMIN = "super_admin"
ROLE_ADMIN = "admin"
ROLE_OPERATOR = "operator"
ADMIN_ROLES = (ROLE_SUPER_ADMIN, ROLE_ADMIN, ROLE_OPERATOR)

SESSION_COOKIE = "admin_session"

_IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1/accounts:{method}?key={key}"
_ROLE_CACHE_PREFIX = "ADMIN_ROLE:"


# ============================================================================
# Identity provider
# ============================================================================

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password."
INVALID_EMAIL_MESSAGE = "Invalid email format."
GENERIC_LOGIN_MESSAGE = "Failed to login. Please check your credentials."

_PROVIDER_ERROR_MESSAGES = {
    "EMAIL_NOT_FOUND": INVALID_CREDENTIALS_MESSAGE,
    "INVALID_PASSWORD": INVALID_CREDENTIALS_MESSAGE,
    "INVALID_LOGIN_CREDENTIALS": INVALID_CREDENTIALS_MESSAGE,
    "USER_NOT_FOUND": INVALID_CREDENTIALS_MESSAGE,
    "INVALID_EMAIL": INVALID_EMAIL_MESSAGE,
}


def login_error_message(code: str) -> str:
    """Coarse user-facing message for a provider error code."""
    return _PROVIDER_ERROR_MESSAGES.get(str(code or "").strip().upper(), GENERIC_LOGIN_MESSAGE)


class IdentityProviderError(Exception):
    def __init__(self, code: str, detail: str = ""):
        super().__init__(code)
        self.code = str(code or "UNKNOWN").upper()
        self.detail = detail

    @property
    def message(self) -> str:
        return login_error_message(self.code)


def _provider_error_code(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return "UNKNOWN"
    raw = str(((body or {}).get("error") or {}).get("message") or "UNKNOWN")
    # e.g. "TOO_MANY_ATTEMPTS_TRY_LATER : Access to this account has been temporarily disabled"
    return raw.split(":", 1)[0].strip() or "UNKNOWN"


class IdentityProvider:
    """Firebase Authentication: REST sign-in/sign-up and ID-token verification."""

    def __init__(self, api_key: str, project_id: str, *, timeout: int = 10, allow_test_tokens: bool = False):
        self.api_key = str(api_key or "")
        self.project_id = str(project_id or "")
        self.timeout = timeout
        self.allow_test_tokens = bool(allow_test_tokens)

    def _post(self, method: str, payload: dict[str, Any]) -> dict[str, Any]:
        if not self.api_key:
            raise IdentityProviderError("CONFIGURATION_NOT_FOUND", "FIREBASE_API_KEY is not set")
        url = _IDENTITY_TOOLKIT_URL.format(method=method, key=self.api_key)
        try:
            resp = requests.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            _log.warning("identity provider unreachable method=%s: %s", method, e)
            raise IdentityProviderError("NETWORK_REQUEST_FAILED", str(e)) from e
        if resp.status_code != 200:
            code = _provider_error_code(resp)
            _log.info("identity provider rejected method=%s code=%s", method, code)
            raise IdentityProviderError(code)
        return resp.json()

    def sign_in_with_password(self, email: str, password: str) -> dict[str, Any]:
        body = self._post(
            "signInWithPassword",
            {"email": str(email or "").strip(), "password": str(password or ""), "returnSecureToken": True},
        )
        return {
            "uid": str(body.get("localId") or ""),
            "email": str(body.get("email") or email or "").lower(),
            "idToken": str(body.get("idToken") or ""),
        }

    def sign_up(self, email: str, password: str) -> dict[str, Any]:
        body = self._post(
            "signUp",
            {"email": str(email or "").strip(), "password": str(password or ""), "returnSecureToken": True},
        )
        return {"uid": str(body.get("localId") or ""), "email": str(body.get("email") or email or "").lower()}

    def verify_id_token(self, token: str) -> dict[str, str]:
        if not token or not isinstance(token, str):
            raise ApiError("BAD_REQUEST", "Missing idToken")

        if self.allow_test_tokens and token.startswith("TEST:"):
            parts = token.split(":", 2)
            uid = parts[1].strip() if len(parts) > 1 else ""
            email = parts[2].strip().lower() if len(parts) > 2 else ""
            if not uid:
                raise ApiError("AUTH_INVALID", "Invalid test token")
            return {"uid": uid, "email": email}

        if not self.project_id:
            raise ApiError("INTERNAL", "Missing FIREBASE_PROJECT_ID")
        try:
            claims = google_id_token.verify_firebase_token(
                token, google_requests.Request(), audience=self.project_id
            )
        except (ValueError, google_exceptions.GoogleAuthError):
            _log.info("rejected identity token", exc_info=True)
            raise ApiError("AUTH_INVALID", "Invalid ID token")

        uid = str(claims.get("user_id") or claims.get("sub") or "")
        if not uid:
            raise ApiError("AUTH_INVALID", "Invalid ID token")
        return {"uid": uid, "email": str(claims.get("email") or "").lower()}


# ============================================================================
# Admin directory
# ============================================================================

def _load_admin_profile(store: DocumentStore, uid: str) -> Optional[dict[str, Any]]:
    snap = store.collection(ADMIN_USERS_COLLECTION).document(uid).get()
    if not snap.exists:
        return None
    data = snap.to_dict() or {}
    role = str(data.get("role") or "").strip().lower()
    if role not in ADMIN_ROLES:
        _log.warning("admin_users/%s has unknown role %r", uid, data.get("role"))
        return None
    return {
        "uid": uid,
        "email": str(data.get("email") or ""),
        "name": str(data.get("name") or ""),
        "role": role,
        "permissions": list(data.get("permissions") or []),
    }


def get_admin_profile(store: DocumentStore, uid: str) -> Optional[dict[str, Any]]:
    uid = str(uid or "").strip()
    if not uid:
        return None
    try:
        return cache_get_or_set(f"{_ROLE_CACHE_PREFIX}{uid}", lambda: _load_admin_profile(store, uid))
    except StoreError:
        _log.exception("admin role lookup failed uid=%s", uid)
        return None


def check_admin_role(store: DocumentStore, uid: str) -> Optional[str]:
    """Role of `uid` in admin_users, or None when the identity is not an administrator."""
    profile = get_admin_profile(store, uid)
    return profile["role"] if profile else None


def create_admin_user(
    store: DocumentStore,
    provider: IdentityProvider,
    *,
    email: str,
    password: str,
    role: str = ROLE_ADMIN,
    name: str = "",
    permissions: Iterable[str] = (),
) -> dict[str, Any]:
    role_l = str(role or "").strip().lower()
    if role_l not in ADMIN_ROLES:
        raise ApiError("BAD_REQUEST", f"Invalid role. Expected one of: {', '.join(ADMIN_ROLES)}")
    if not str(email or "").strip() or not password:
        raise ApiError("BAD_REQUEST", "Email and password are required")

    try:
        account = provider.sign_up(email, password)
    except IdentityProviderError as e:
        if e.code == "EMAIL_EXISTS":
            raise ApiError("CONFLICT", "An account with this email already exists.")
        if e.code == "INVALID_EMAIL":
            raise ApiError("BAD_REQUEST", INVALID_EMAIL_MESSAGE)
        if e.code.startswith("WEAK_PASSWORD"):
            raise ApiError("BAD_REQUEST", "Password should be at least 6 characters.")
        raise ApiError("INTERNAL", "Failed to create admin user.")

    uid = account["uid"]
    store.collection(ADMIN_USERS_COLLECTION).document(uid).set(
        {
            "email": account["email"],
            "role": role_l,
            "name": str(name or ""),
            "permissions": [str(p) for p in permissions],
            "createdAt": SERVER_TIMESTAMP,
        }
    )
    cache_invalidate(f"{_ROLE_CACHE_PREFIX}{uid}")
    _log.info("admin user created uid=%s role=%s", uid, role_l)
    return {"uid": uid, "email": account["email"], "role": role_l}


# ============================================================================
# Admin sessions
# ============================================================================

_INVALID = AuthContext(valid=False, uid="", email="", role="", expiresAt="")


def _parse_iso_utc_maybe(value: str) -> Optional[datetime]:
    s = str(value or "").strip()
    if not s:
        return None
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        return None


def issue_session_token(db, *, uid: str, email: str, role: str, session_ttl_minutes: int) -> dict[str, str]:
    token = "AS-" + new_uuid().replace("-", "") + new_uuid().replace("-", "")
    now = datetime.now(timezone.utc)
    expires_at = (now + timedelta(minutes=session_ttl_minutes)).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )
    issued_at = iso_utc_now()

    db.add(
        AdminSession(
            sessionId="SES-" + new_uuid(),
            tokenHash=sha256_hex(token),
            tokenPrefix=token[:12],
            uid=str(uid or ""),
            email=str(email or ""),
            role=str(role or ""),
            issuedAt=issued_at,
            expiresAt=expires_at,
            lastSeenAt=issued_at,
            revokedAt="",
        )
    )
    return {"sessionToken": token, "expiresAt": expires_at}


def validate_session_token(db, token: Any, *, store: DocumentStore | None = None) -> AuthContext:
    if not token or not isinstance(token, str):
        return _INVALID

    ses = db.execute(select(AdminSession).where(AdminSession.tokenHash == sha256_hex(token))).scalar_one_or_none()
    if not ses or ses.revokedAt:
        return _INVALID

    exp_dt = _parse_iso_utc_maybe(ses.expiresAt)
    if not exp_dt or exp_dt < datetime.now(timezone.utc):
        return _INVALID

    role = ses.role
    if store is not None:
        # Role removals take effect within one cache TTL.
        role = check_admin_role(store, ses.uid)
        if not role:
            return _INVALID

    try:
        interval_s = int(str(os.getenv("SESSION_LAST_SEEN_UPDATE_SECONDS", "300") or "300"))
    except ValueError:
        interval_s = 300
    last_dt = _parse_iso_utc_maybe(ses.lastSeenAt)
    if interval_s <= 0 or not last_dt or (datetime.now(timezone.utc) - last_dt).total_seconds() >= interval_s:
        ses.lastSeenAt = iso_utc_now()

    return AuthContext(valid=True, uid=ses.uid, email=ses.email, role=role, expiresAt=ses.expiresAt)


def revoke_session_token(db, token: Any) -> bool:
    if not token or not isinstance(token, str):
        return False
    ses = db.execute(select(AdminSession).where(AdminSession.tokenHash == sha256_hex(token))).scalar_one_or_none()
    if not ses or ses.revokedAt:
        return False
    ses.revokedAt = iso_utc_now()
    return True


def serialize_auth(auth: AuthContext) -> dict[str, Any]:
    return {
        "valid": bool(auth.valid),
        "expiresAt": auth.expiresAt,
        "me": {"uid": auth.uid, "email": auth.email, "role": auth.role},
    }


# ============================================================================
# Session guard
# ============================================================================

class SessionState(str, Enum):
    UNKNOWN = "unknown"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


class GuardDecision(str, Enum):
    LOADING = "loading"
    REDIRECT = "redirect"
    RENDER = "render"


def session_state(auth: Optional[AuthContext]) -> SessionState:
    """None means the session has not been resolved yet."""
    if auth is None:
        return SessionState.UNKNOWN
    return SessionState.AUTHENTICATED if auth.valid else SessionState.UNAUTHENTICATED


def guard_decision(state: SessionState) -> GuardDecision:
    # Protected content is rendered only for a resolved, authenticated session.
    if state is SessionState.AUTHENTICATED:
        return GuardDecision.RENDER
    if state is SessionState.UNAUTHENTICATED:
        return GuardDecision.REDIRECT
    return GuardDecision.LOADING


def extract_session_token() -> str:
    authz = str(request.headers.get("Authorization") or "").strip()
    if authz.lower().startswith("bearer "):
        return authz.split(" ", 1)[1].strip()
    return (
        str(request.headers.get("X-Session-Token") or "").strip()
        or str(request.cookies.get(SESSION_COOKIE) or "").strip()
    )


def _wants_html() -> bool:
    """Browser navigation (prefers HTML over JSON) rather than an API call."""
    accept = request.accept_mimetypes
    return accept["text/html"] > accept["application/json"]


def _login_location() -> str:
    cfg = current_app.config["CFG"]
    return f"{cfg.ADMIN_LOGIN_PATH}?next={quote(request.full_path.rstrip('?'), safe='/')}"


def resolve_request_auth() -> AuthContext:
    store = current_app.extensions["docstore"]
    db = SessionLocal()
    try:
        auth = validate_session_token(db, extract_session_token(), store=store)
        db.commit()
        return auth
    finally:
        db.close()


def admin_required(fn: Callable | None = None, *, roles: Iterable[str] | None = None):
    """
    Gate a view behind an admin session. The session is resolved before the
    view runs; unauthenticated browser callers get a 302 to the login path,
    API callers a 401 carrying the same location.
    """
    allowed = {str(r).lower() for r in roles} if roles else None

    def decorator(view: Callable):
        @functools.wraps(view)
        def wrapper(*args, **kwargs):
            auth = resolve_request_auth()
            decision = guard_decision(session_state(auth))

            if decision is not GuardDecision.RENDER:
                location = _login_location()
                if _wants_html():
                    return redirect(location, code=302)
                return (
                    jsonify(
                        {
                            "success": False,
                            "message": "Login required",
                            "error": {"code": "AUTH_INVALID", "message": "Login required"},
                            "redirect": location,
                        }
                    ),
                    401,
                )

            if allowed is not None and auth.role not in allowed:
                raise ApiError("FORBIDDEN", "Not allowed for role: " + auth.role)

            g.auth = auth
            return view(*args, **kwargs)

        return wrapper

    if fn is not None:
        return decorator(fn)
    return decorator
