"""
Employee & work-week models — the internal identities attendance is reconciled against.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, true
from sqlalchemy.orm import relationship

from attendance_engine.db.base import Base

WEEKDAY_FIELDS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

DEFAULT_WORK_WEEK = {
    "monday": True,
    "tuesday": True,
    "wednesday": True,
    "thursday": True,
    "friday": True,
    "saturday": False,
    "sunday": False,
}


class Employee(Base):
    __tablename__ = "employees"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    name: str = Column(String(200), nullable=False, index=True)  # type: ignore[assignment]
    email: str | None = Column(String(320), nullable=True)  # type: ignore[assignment]
    department: str | None = Column(String(100), nullable=True)  # type: ignore[assignment]
    designation: str | None = Column(String(100), nullable=True)  # type: ignore[assignment]
    is_active: bool = Column(Boolean, default=True, server_default=true())  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    work_days = relationship(
        "EmployeeWorkDays",
        back_populates="employee",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class EmployeeWorkDays(Base):
    """Per-employee work week. A missing row means Mon–Fri."""

    __tablename__ = "employee_work_days"

    employee_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("employees.id"), primary_key=True
    )
    monday: bool = Column(Boolean, nullable=False, default=True)  # type: ignore[assignment]
    tuesday: bool = Column(Boolean, nullable=False, default=True)  # type: ignore[assignment]
    wednesday: bool = Column(Boolean, nullable=False, default=True)  # type: ignore[assignment]
    thursday: bool = Column(Boolean, nullable=False, default=True)  # type: ignore[assignment]
    friday: bool = Column(Boolean, nullable=False, default=True)  # type: ignore[assignment]
    saturday: bool = Column(Boolean, nullable=False, default=False)  # type: ignore[assignment]
    sunday: bool = Column(Boolean, nullable=False, default=False)  # type: ignore[assignment]
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    employee = relationship("Employee", back_populates="work_days")

    def as_dict(self) -> dict[str, bool]:
        return {name: bool(getattr(self, name)) for name in WEEKDAY_FIELDS}


def is_work_day(config: dict[str, bool] | None, day: date) -> bool:
    """Return True if *day* falls on a configured work day (Mon–Fri when unset)."""
    week = config if config is not None else DEFAULT_WORK_WEEK
    return bool(week[WEEKDAY_FIELDS[day.weekday()]])
