"""
Educational Portal API - Main Application
FastAPI application for the student portal: semesters, subjects, units and
study materials, the quiz bank with scoring and analytics, notices and
notifications, with one active session per account.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from auth.security import hash_password
from auth.session import SessionTokenCache
from core.config import Settings, get_settings
from core.container import PortalServices, build_services
from core.errors import PortalError
from database import collections as col
from database.database import Base
from database.document_store import DocumentStore
from routers import (
    admin_users, auth_student, materials, notices, notifications,
    questions, quiz_admin, quizzes, students, subjects, units,
)
from routers import auth as auth_admin
from services.notifier import Announcer, EmailSender

log = logging.getLogger(__name__)


async def _seed_admin(services: PortalServices) -> None:
    """Create the bootstrap staff account when there are no users yet."""
    settings = services.settings
    if await services.store.count(col.USERS):
        return
    await services.identities.create_user(
        username="admin",
        email=settings.admin_email,
        password_hash=hash_password(settings.admin_password),
        display_name="Administrator",
    )
    log.info("✓ Default admin created: %s", settings.admin_email)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: create tables + seed the admin. Shutdown: release the session cache and the engine."""
    services: PortalServices = app.state.services
    if services.engine is not None:
        Base.metadata.create_all(bind=services.engine)
    await _seed_admin(services)
    yield
    await services.sessions.cache.aclose()
    if services.engine is not None:
        services.engine.dispose()


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[DocumentStore] = None,
    session_cache: Optional[SessionTokenCache] = None,
    announcer: Optional[Announcer] = None,
    email_sender: Optional[EmailSender] = None,
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Educational Portal API",
        description="Study content, quizzes, notices and single-session authentication",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = build_services(
        settings,
        store=store,
        session_cache=session_cache,
        announcer=announcer,
        email_sender=email_sender,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.public_base_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PortalError)
    async def portal_error_handler(request: Request, exc: PortalError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        detail = errors[0]["msg"] if errors else "Invalid request"
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": detail, "code": "VALIDATION_ERROR"},
        )

    # ─── Routers ───────────────────────────────────────────────────────────────

    # Auth
    app.include_router(auth_admin.router)       # /api/auth/*
    app.include_router(auth_student.router)     # /api/student/login
    app.include_router(admin_users.router)      # /api/admin/users, /api/admin/stats
    app.include_router(students.router)         # /api/admin/students/*

    # Content
    app.include_router(subjects.router)
    app.include_router(units.router)
    app.include_router(materials.router)

    # Quizzes
    app.include_router(quizzes.router)          # student-facing
    app.include_router(quiz_admin.router)       # /api/admin/quizzes/*
    app.include_router(questions.router)        # /api/admin/questions/*

    # Notices
    app.include_router(notices.router)
    app.include_router(notifications.router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
