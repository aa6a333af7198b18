"""
Day entry — the single authoritative attendance row per employee per date.

Derived columns (check_in_at … is_late) are owned by the deriver, sweeper
and backfiller. The ``manual_*`` columns are owned by the override layer and
take display precedence whenever ``manual_status`` is set.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import (JSON, Boolean, Column, Date, DateTime, ForeignKey,
                        Index, Integer, String, UniqueConstraint, false)

from attendance_engine.db.base import Base

STATUS_NOT_STARTED = "not_started"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_ABSENT = "absent"
STATUS_HOLIDAY = "holiday"
DERIVED_STATUSES = (
    STATUS_NOT_STARTED,
    STATUS_IN_PROGRESS,
    STATUS_COMPLETED,
    STATUS_ABSENT,
    STATUS_HOLIDAY,
)

# Override-only display states
STATUS_PRESENT = "present"
STATUS_LEAVE_GRANTED = "leave_granted"
OVERRIDE_STATUSES = (
    STATUS_PRESENT,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_ABSENT,
    STATUS_HOLIDAY,
    STATUS_LEAVE_GRANTED,
)
# Overrides with these statuses carry no times
TIMELESS_OVERRIDE_STATUSES = frozenset({STATUS_ABSENT, STATUS_HOLIDAY, STATUS_LEAVE_GRANTED})

# modification_reason values written by the batches
REASON_AUTO_CHECKOUT = "auto checkout"
REASON_BACKFILL = "backfill"
REASON_RECLASSIFIED = "reclassified: not a work day"


class DayEntry(Base):
    __tablename__ = "day_entries"
    __table_args__ = (
        UniqueConstraint("employee_id", "entry_date", name="uq_day_entry_emp_date"),
        Index("ix_day_entry_date_status", "entry_date", "status"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    employee_id: int = Column(Integer, ForeignKey("employees.id"), nullable=False)  # type: ignore[assignment]
    entry_date: date = Column(Date, nullable=False)  # type: ignore[assignment]

    # ── Derived ────────────────────────────────────────────────────
    check_in_at: datetime | None = Column(DateTime(timezone=False), nullable=True)  # type: ignore[assignment]
    check_out_at: datetime | None = Column(DateTime(timezone=False), nullable=True)  # type: ignore[assignment]
    worked_minutes: int | None = Column(Integer, nullable=True)  # type: ignore[assignment]
    status: str = Column(  # type: ignore[assignment]
        String(20), nullable=False, default=STATUS_NOT_STARTED
    )
    is_late: bool = Column(Boolean, nullable=False, default=False, server_default=false())  # type: ignore[assignment]
    modification_reason: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]

    # ── Manual override ────────────────────────────────────────────
    manual_status: str | None = Column(String(20), nullable=True)  # type: ignore[assignment]
    manual_check_in_at: datetime | None = Column(DateTime(timezone=False), nullable=True)  # type: ignore[assignment]
    manual_check_out_at: datetime | None = Column(DateTime(timezone=False), nullable=True)  # type: ignore[assignment]
    manual_worked_minutes: int | None = Column(Integer, nullable=True)  # type: ignore[assignment]
    manual_is_late: bool | None = Column(Boolean, nullable=True)  # type: ignore[assignment]
    manual_override_by: int | None = Column(Integer, ForeignKey("users.id"), nullable=True)  # type: ignore[assignment]
    manual_override_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    manual_override_reason: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]

    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def has_override(self) -> bool:
        return self.manual_status is not None


class DayEntryAudit(Base):
    """One row per override submission or clear."""

    __tablename__ = "day_entry_audits"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    day_entry_id: int = Column(Integer, ForeignKey("day_entries.id"), nullable=False, index=True)  # type: ignore[assignment]
    action: str = Column(String(32), nullable=False)  # type: ignore[assignment]
    # override_set | override_cleared
    actor_id: int | None = Column(Integer, ForeignKey("users.id"), nullable=True)  # type: ignore[assignment]
    reason: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    previous_values: dict | None = Column(JSON, nullable=True)  # type: ignore[assignment]
    new_values: dict | None = Column(JSON, nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
