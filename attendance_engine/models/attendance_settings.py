"""
Attendance Settings model — singleton table for admin-configurable rules.

Only one row should ever exist. It is created from the environment defaults
on first read; the admin updates it via the settings API, and the deriver,
sweeper and identity resolver read it for their policy values.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, Integer, String

from attendance_engine.db.base import Base


class AttendanceSettings(Base):
    __tablename__ = "attendance_settings"

    id: int = Column(Integer, primary_key=True, default=1)  # type: ignore[assignment]
    workday_start: str = Column(String(5), nullable=False, default="10:30")  # type: ignore[assignment]
    late_threshold_minutes: int = Column(Integer, nullable=False, default=15)  # type: ignore[assignment]
    default_checkout_time: str = Column(String(5), nullable=False, default="17:00")  # type: ignore[assignment]
    match_min_score: float = Column(Float, nullable=False, default=0.3)  # type: ignore[assignment]
    match_auto_accept_score: float = Column(Float, nullable=False, default=0.85)  # type: ignore[assignment]
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
