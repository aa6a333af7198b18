"""
Canonical event ledger — append-only, one row per (employee, timestamp, kind).
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (JSON, Column, DateTime, ForeignKey, Index, Integer,
                        String, UniqueConstraint)

from attendance_engine.db.base import Base

KIND_CHECK_IN = "check_in"
KIND_CHECK_OUT = "check_out"
KIND_UNKNOWN = "unknown"
EVENT_KINDS = (KIND_CHECK_IN, KIND_CHECK_OUT, KIND_UNKNOWN)

SOURCE_PROVIDER = "provider"
SOURCE_MANUAL = "manual"
EVENT_SOURCES = (SOURCE_PROVIDER, SOURCE_MANUAL)


class AttendanceLog(Base):
    __tablename__ = "attendance_logs"
    __table_args__ = (
        UniqueConstraint("employee_id", "timestamp", "kind", name="uq_log_emp_ts_kind"),
        Index("ix_log_employee_timestamp", "employee_id", "timestamp"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    employee_id: int = Column(Integer, ForeignKey("employees.id"), nullable=False)  # type: ignore[assignment]
    # Local wall-clock time in the provider's timezone
    timestamp: datetime = Column(DateTime(timezone=False), nullable=False)  # type: ignore[assignment]
    kind: str = Column(String(20), nullable=False)  # type: ignore[assignment]
    source: str = Column(String(20), nullable=False, default=SOURCE_PROVIDER)  # type: ignore[assignment]
    external_code: str | None = Column(String(64), nullable=True)  # type: ignore[assignment]
    device_id: str | None = Column(String(64), nullable=True)  # type: ignore[assignment]
    raw_payload: dict | None = Column(JSON, nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
