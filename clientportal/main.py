from fastapi import FastAPI, Depends, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy import text
from sqlalchemy.orm import Session
import os
import logging

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from alembic.config import Config
from alembic.script import ScriptDirectory

from clientportal.config import settings
from clientportal.db import get_db
from clientportal.routers import (
    admin, client_profile, dashboard, forms, permissions, service_requests,
    service_templates, services, users, webhooks,
)
from clientportal.exceptions import (
    AppException,
    app_exception_handler,
    validation_exception_handler,
    http_exception_handler,
    general_exception_handler
)
from clientportal.rate_limit import limiter, rate_limit_exceeded_handler
from clientportal.middleware.request_id import RequestIDMiddleware
from clientportal.middleware.body_limit import BodySizeLimitMiddleware
from clientportal.middleware.security_headers import SecurityHeadersMiddleware
from clientportal.utils.logging import configure_logging

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,
        environment=settings.ENVIRONMENT,
    )
    logger.info("Sentry error tracking initialized")

ALEMBIC_INI = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "alembic.ini")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Multi-tenant client portal: services, templates, forms and requests",
    version=settings.APP_VERSION
)

# Add rate limiting state
app.state.limiter = limiter

# Register exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_exception_handler(Exception, general_exception_handler)

allowed_origins = settings.cors_origins_list
if settings.FRONTEND_URL and settings.FRONTEND_URL not in allowed_origins:
    allowed_origins.append(settings.FRONTEND_URL)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_origin_regex=settings.CORS_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
    max_age=3600,
)

app.add_middleware(RequestIDMiddleware)
app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.MAX_BODY_SIZE)
app.add_middleware(SecurityHeadersMiddleware)

app.include_router(users.router)
app.include_router(permissions.router)
app.include_router(admin.router)
app.include_router(client_profile.router)
app.include_router(dashboard.router)
app.include_router(service_templates.router)
app.include_router(services.router)
app.include_router(service_requests.router)
app.include_router(forms.router)
app.include_router(webhooks.router)


def _check_migrations(db: Session) -> bool:
    try:
        script = ScriptDirectory.from_config(Config(ALEMBIC_INI))
        heads = set(script.get_heads())
        current = db.execute(text("SELECT version_num FROM alembic_version")).fetchone()
    except Exception as e:
        logger.warning(f"Migration check failed: {e}")
        db.rollback()
        return False
    return bool(current) and current[0] in heads


@app.get("/version")
def get_version():
    return {
        "version": settings.APP_VERSION,
        "commit": os.getenv("GIT_COMMIT") or "unknown",
        "build_timestamp": os.getenv("BUILD_TIMESTAMP") or "unknown",
    }


@app.get("/healthz")
def healthz():
    return {"status": "ok"}


@app.get("/readyz")
def readyz(db: Session = Depends(get_db)):
    checks = {"database": False, "migrations": False}
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.error(f"Database readiness check failed: {e}")
        db.rollback()
    if checks["database"]:
        checks["migrations"] = _check_migrations(db)
    if all(checks.values()):
        return {"status": "ok", "checks": checks}
    raise HTTPException(status_code=503, detail={"status": "not_ready", "checks": checks})


@app.get("/")
def read_root():
    """Root endpoint"""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
