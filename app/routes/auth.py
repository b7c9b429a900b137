"""
Admin authentication endpoints.

- POST /api/v1/auth/login     {email, password} -> admin session
- POST /api/v1/auth/exchange  {idToken}         -> admin session
- POST /api/v1/auth/logout
- GET  /api/v1/auth/session
- GET  /admin/login           login entry point (where the guard redirects to)
- POST /api/v1/admin/users    provision an administrator (super_admin)
"""
from __future__ import annotations

import logging

from flask import Blueprint, current_app, g, jsonify, request

from audit import log_audit
from auth import (
    SESSION_COOKIE,
    GuardDecision,
    IdentityProviderError,
    admin_required,
    check_admin_role,
    create_admin_user,
    extract_session_token,
    guard_decision,
    issue_session_token,
    resolve_request_auth,
    revoke_session_token,
    serialize_auth,
    session_state,
)
from db import SessionLocal
from utils import ApiError, AuthContext, json_error, json_success, parse_json_body


_log = logging.getLogger("auth.routes")

auth_bp = Blueprint("auth", __name__)
admin_login_bp = Blueprint("admin_login", __name__)
admin_users_bp = Blueprint("admin_users", __name__, url_prefix="/api/v1/admin/users")

NOT_ADMIN_MESSAGE = "This account does not have admin access."


def _start_session(uid: str, email: str):
    cfg = current_app.config["CFG"]
    role = check_admin_role(current_app.extensions["docstore"], uid)
    if not role:
        _log.info("login refused: uid=%s is not an admin", uid)
        raise ApiError("FORBIDDEN", NOT_ADMIN_MESSAGE)

    db = SessionLocal()
    try:
        out = issue_session_token(
            db, uid=uid, email=email, role=role, session_ttl_minutes=cfg.ADMIN_SESSION_TTL_MINUTES
        )
        db.commit()
    finally:
        db.close()

    log_audit(
        entity_type="ADMIN_SESSION",
        entity_id=uid,
        action="LOGIN",
        actor=AuthContext(valid=True, uid=uid, email=email, role=role, expiresAt=out["expiresAt"]),
    )
    resp, status = json_success({**out, "me": {"uid": uid, "email": email, "role": role}})
    resp.set_cookie(
        SESSION_COOKIE,
        out["sessionToken"],
        max_age=cfg.ADMIN_SESSION_TTL_MINUTES * 60,
        httponly=True,
        secure=cfg.is_production,
        samesite="Lax",
    )
    return resp, status


@auth_bp.post("/login")
def login():
    data = parse_json_body()
    email = str(data.get("email") or "").strip()
    password = str(data.get("password") or "")
    if not email or not password:
        return json_error("Email and password are required.", 400, code="BAD_REQUEST")

    provider = current_app.extensions["identity_provider"]
    try:
        account = provider.sign_in_with_password(email, password)
    except IdentityProviderError as e:
        return json_error(e.message, 401, code="AUTH_INVALID")
    return _start_session(account["uid"], account["email"])


@auth_bp.post("/exchange")
def exchange():
    data = parse_json_body()
    claims = current_app.extensions["identity_provider"].verify_id_token(str(data.get("idToken") or ""))
    return _start_session(claims["uid"], claims["email"])


@auth_bp.post("/logout")
def logout():
    token = extract_session_token()
    db = SessionLocal()
    try:
        revoked = revoke_session_token(db, token)
        db.commit()
    finally:
        db.close()
    resp, status = json_success({"revoked": revoked})
    resp.delete_cookie(SESSION_COOKIE)
    return resp, status


@auth_bp.get("/session")
def session_info():
    auth = resolve_request_auth()
    state = session_state(auth)
    body = serialize_auth(auth)
    body["state"] = state.value
    body["decision"] = guard_decision(state).value
    if guard_decision(state) is GuardDecision.REDIRECT:
        body["redirect"] = current_app.config["CFG"].ADMIN_LOGIN_PATH
    return json_success(body)


@admin_users_bp.post("")
@admin_required(roles=("super_admin",))
def create_user():
    """Provision an administrator. super_admin only."""
    data = parse_json_body()
    permissions = data.get("permissions")
    out = create_admin_user(
        current_app.extensions["docstore"],
        current_app.extensions["identity_provider"],
        email=str(data.get("email") or ""),
        password=str(data.get("password") or ""),
        role=str(data.get("role") or "admin"),
        name=str(data.get("name") or ""),
        permissions=permissions if isinstance(permissions, list) else [],
    )
    log_audit(entity_type="ADMIN_USER", entity_id=out["uid"], action="CREATE", to_state=out["role"], actor=g.auth)
    return json_success({"user": out}, 201)


@admin_login_bp.get("/admin/login")
def admin_login_page():
    """Entry point the session guard redirects to; the UI renders the form here."""
    return jsonify({
        "login": "/api/v1/auth/login",
        "exchange": "/api/v1/auth/exchange",
        "next": str(request.args.get("next") or "/"),
    })
