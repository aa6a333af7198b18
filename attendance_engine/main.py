"""
Attendance engine — application entry point.

This is the **only** file that assembles the app.  All business logic
lives in the `services/` package; `api/` only adapts it to HTTP.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import select

from attendance_engine.api.v1.api import api_router
from attendance_engine.api.v1.endpoints.auth import limiter
from attendance_engine.core.config import settings
from attendance_engine.core.exceptions import register_exception_handlers
from attendance_engine.core.security import get_password_hash
from attendance_engine.db.base import Base
from attendance_engine.db.session import async_session_factory, engine

# Ensure all models are imported so metadata.create_all can see them
from attendance_engine.models.attendance_log import AttendanceLog  # noqa: F401
from attendance_engine.models.attendance_settings import AttendanceSettings  # noqa: F401
from attendance_engine.models.day_entry import DayEntry, DayEntryAudit  # noqa: F401
from attendance_engine.models.employee import Employee, EmployeeWorkDays  # noqa: F401
from attendance_engine.models.identity_mapping import IdentityMapping, PendingMatch  # noqa: F401
from attendance_engine.models.operation_log import OperationLog  # noqa: F401
from attendance_engine.models.user import User
from attendance_engine.services.jobs import build_scheduler

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(_app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")

    # Seed default admin user on first run
    async with async_session_factory() as session:
        result = await session.execute(
            select(User).where(User.email == settings.FIRST_ADMIN_EMAIL)
        )
        if result.scalar_one_or_none() is None:
            admin = User(
                email=settings.FIRST_ADMIN_EMAIL,
                hashed_password=get_password_hash(settings.FIRST_ADMIN_PASSWORD),
                full_name="System Administrator",
                role="admin",
            )
            session.add(admin)
            await session.commit()
            logger.info(
                "Default admin created: %s (password: <redacted>)",
                settings.FIRST_ADMIN_EMAIL,
            )

    scheduler = build_scheduler() if settings.SCHEDULER_ENABLED else None
    if scheduler is not None:
        scheduler.start()
        logger.info("Scheduler started: %s", ", ".join(job.id for job in scheduler.get_jobs()))

    logger.info("Attendance engine v%s started (timezone %s)", settings.VERSION, settings.TIMEZONE)
    yield
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    await engine.dispose()
    logger.info("Shutdown complete")


# ── App factory ─────────────────────────────────────────────────────
def create_app() -> FastAPI:
    application = FastAPI(
        title="Attendance Engine",
        description="Biometric punch reconciliation and daily attendance records",
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Login / refresh rate limiting
    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Global exception handlers (prevent stack-trace leakage)
    register_exception_handlers(application)

    application.include_router(api_router, prefix=settings.API_V1_PREFIX)
    return application


app = create_app()
