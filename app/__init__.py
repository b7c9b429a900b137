from __future__ import annotations

import logging

from dotenv import load_dotenv
from flask import Flask
from flask_cors import CORS

from app.middlewares.error_handler import init_error_handlers
from app.middlewares.logging import init_request_logging
from app.middlewares.request_id import init_request_id
from app.middlewares.security_headers import init_security_headers
from app.routes.auth import admin_login_bp, admin_users_bp, auth_bp
from app.routes.core import core_bp
from app.routes.employees import employees_bp
from app.utils.logging import setup_logging
from applications.admin_routes import admin_applications_bp
from applications.repository import ApplicationRepository
from applications.routes import public_apply_bp
from applications.status_check import StatusCheckService
from auth import IdentityProvider
from cache_layer import cache_clear, configure_cache
from config import get_config
from db import Base, SessionLocal, init_engine
from docstore import DocumentStore
from services.employee_service import EmployeeService
from storage import ObjectStorage


def create_app() -> Flask:
    load_dotenv()

    cfg = get_config()
    setup_logging(cfg.LOG_LEVEL)

    engine = init_engine(cfg.DATABASE_URL)
    import models  # noqa: F401  registers tables on Base

    Base.metadata.create_all(bind=engine)

    app = Flask(__name__)
    app.config["CFG"] = cfg
    app.json.sort_keys = False
    # Four image slots plus form fields.
    app.config["MAX_CONTENT_LENGTH"] = 4 * cfg.MAX_UPLOAD_BYTES + 1024 * 1024

    CORS(
        app,
        origins=cfg.CORS_ORIGINS,
        supports_credentials=cfg.CORS_ALLOW_CREDENTIALS,
        allow_headers=["Content-Type", "Authorization", "X-Request-ID", "X-Session-Token"],
        expose_headers=["X-Request-ID"],
        methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        max_age=3600,
    )

    init_request_id(app)
    init_security_headers(app)
    init_request_logging(app)
    init_error_handlers(app)

    # One store/storage client per process, shared by every service.
    store = DocumentStore(SessionLocal)
    storage = ObjectStorage(cfg.UPLOAD_DIR, cfg.STORAGE_PUBLIC_BASE_URL)
    repo = ApplicationRepository(store, storage)
    configure_cache(cfg.ADMIN_ROLE_CACHE_TTL_SECONDS)
    cache_clear()

    app.extensions["docstore"] = store
    app.extensions["storage"] = storage
    app.extensions["applications_repo"] = repo
    app.extensions["status_check"] = StatusCheckService(repo)
    app.extensions["employee_service"] = EmployeeService(store, storage)
    app.extensions["identity_provider"] = IdentityProvider(
        cfg.FIREBASE_API_KEY,
        cfg.FIREBASE_PROJECT_ID,
        timeout=cfg.AUTH_HTTP_TIMEOUT,
        allow_test_tokens=cfg.AUTH_ALLOW_TEST_TOKENS,
    )

    app.register_blueprint(core_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/v1/auth")
    app.register_blueprint(admin_login_bp)
    app.register_blueprint(admin_users_bp)
    app.register_blueprint(public_apply_bp)
    app.register_blueprint(admin_applications_bp)
    app.register_blueprint(employees_bp)

    logging.getLogger(__name__).info("app ready env=%s version=%s", cfg.APP_ENV, cfg.APP_VERSION)
    return app
