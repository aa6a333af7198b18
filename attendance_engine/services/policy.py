"""
Attendance policy — the settings singleton resolved into typed values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_engine.core.config import settings
from attendance_engine.models.attendance_settings import AttendanceSettings

logger = logging.getLogger(__name__)


def parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


@dataclass(frozen=True)
class AttendancePolicy:
    workday_start: time = time(10, 30)
    late_threshold_minutes: int = 15
    default_checkout_time: time = time(17, 0)
    match_min_score: float = 0.3
    match_auto_accept_score: float = 0.85

    @classmethod
    def from_row(cls, row: AttendanceSettings) -> "AttendancePolicy":
        return cls(
            workday_start=parse_hhmm(row.workday_start),
            late_threshold_minutes=row.late_threshold_minutes,
            default_checkout_time=parse_hhmm(row.default_checkout_time),
            match_min_score=row.match_min_score,
            match_auto_accept_score=row.match_auto_accept_score,
        )


async def get_or_create_settings(db: AsyncSession) -> AttendanceSettings:
    """Fetch the singleton settings row, creating it from env defaults if absent."""
    result = await db.execute(select(AttendanceSettings).limit(1))
    row = result.scalar_one_or_none()
    if row is not None:
        return row

    row = AttendanceSettings(
        id=1,
        workday_start=settings.WORKDAY_START,
        late_threshold_minutes=settings.LATE_THRESHOLD_MINUTES,
        default_checkout_time=settings.DEFAULT_CHECKOUT_TIME,
        match_min_score=settings.MATCH_MIN_SCORE,
        match_auto_accept_score=settings.MATCH_AUTO_ACCEPT_SCORE,
    )
    db.add(row)
    try:
        await db.commit()
    except IntegrityError:
        # Another request created it first
        await db.rollback()
        result = await db.execute(select(AttendanceSettings).limit(1))
        return result.scalar_one()
    await db.refresh(row)
    logger.info("Created default attendance settings")
    return row


async def load_policy(db: AsyncSession) -> AttendancePolicy:
    return AttendancePolicy.from_row(await get_or_create_settings(db))


def local_today() -> date:
    """Today's date in the provider's timezone."""
    return datetime.now(ZoneInfo(settings.TIMEZONE)).date()
