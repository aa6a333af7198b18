"""
Settings endpoints — admin-configurable attendance rules, plus the health probe.

Singleton pattern: only one row in attendance_settings. GET retrieves it,
PUT updates it. If no row exists, one is created from the environment
defaults on first read.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_engine.api.v1.deps import get_db, require_admin
from attendance_engine.models.attendance_settings import AttendanceSettings
from attendance_engine.models.user import User
from attendance_engine.schemas.attendance import (AttendanceSettingsRead,
                                                  AttendanceSettingsUpdate, HealthResponse)
from attendance_engine.services.policy import get_or_create_settings

router = APIRouter(tags=["settings"])
logger = logging.getLogger(__name__)


@router.get("/settings", response_model=AttendanceSettingsRead)
async def get_settings(
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> AttendanceSettings:
    return await get_or_create_settings(db)


@router.put("/settings", response_model=AttendanceSettingsRead)
async def update_settings(
    body: AttendanceSettingsUpdate,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> AttendanceSettings:
    """Update workday start, late threshold, default checkout and match thresholds."""
    row = await get_or_create_settings(db)
    changes = body.model_dump(exclude_unset=True, exclude_none=True)

    min_score = changes.get("match_min_score", row.match_min_score)
    auto_score = changes.get("match_auto_accept_score", row.match_auto_accept_score)
    if min_score > auto_score:
        raise HTTPException(
            status_code=422,
            detail="match_min_score must not exceed match_auto_accept_score",
        )

    for field, value in changes.items():
        setattr(row, field, value)

    await db.commit()
    await db.refresh(row)
    logger.info("Attendance settings updated: %s", changes)
    return row


@router.get("/health", response_model=HealthResponse)
async def health(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """Public health check — database connectivity."""
    result = HealthResponse(db=False)
    try:
        await db.execute(select(1))
        result.db = True
    except SQLAlchemyError as e:
        logger.error("Health check DB failure: %s", e)
    return result
