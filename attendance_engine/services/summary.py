"""
Per-employee attendance summary over a date range.

Counts are taken from the composed view, so an override counts as what it
says. Days without a row are inferred from the employee's work week: a
missed work day is absent, any other day a holiday.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_engine.core.exceptions import NotFoundError
from attendance_engine.models.day_entry import (STATUS_ABSENT, STATUS_COMPLETED,
                                                STATUS_HOLIDAY, STATUS_IN_PROGRESS,
                                                STATUS_LEAVE_GRANTED,
                                                STATUS_PRESENT, DayEntry)
from attendance_engine.models.employee import is_work_day
from attendance_engine.services.backfill import load_work_weeks, select_employees
from attendance_engine.services.day_entries import compose_day_entry
from attendance_engine.services.policy import local_today
from attendance_engine.services.scope import DateScope

logger = logging.getLogger(__name__)

_PRESENT = (STATUS_COMPLETED, STATUS_PRESENT, STATUS_IN_PROGRESS)


@dataclass
class AttendanceSummary:
    employee_id: int
    employee_name: str
    start_date: date
    end_date: date
    total_days: int = 0
    work_days: int = 0
    present_days: int = 0
    in_progress_days: int = 0
    late_days: int = 0
    absent_days: int = 0
    holiday_days: int = 0
    leave_days: int = 0
    # Today with nothing recorded yet
    pending_days: int = 0

    def count(self, status: str | None, working: bool, is_late: bool, today: bool) -> None:
        self.total_days += 1
        if working:
            self.work_days += 1

        if status in _PRESENT:
            self.present_days += 1
            if status == STATUS_IN_PROGRESS:
                self.in_progress_days += 1
            if is_late:
                self.late_days += 1
        elif status == STATUS_ABSENT:
            self.absent_days += 1
        elif status == STATUS_HOLIDAY:
            self.holiday_days += 1
        elif status == STATUS_LEAVE_GRANTED:
            self.leave_days += 1
        elif today:
            self.pending_days += 1
        elif working:
            self.absent_days += 1
        else:
            self.holiday_days += 1


async def summarize_attendance(
    db: AsyncSession,
    scope: DateScope,
    employee_ids: list[int] | None = None,
) -> list[AttendanceSummary]:
    """One summary per active employee; dates after today are not counted."""
    employees = await select_employees(db, employee_ids)
    if employee_ids and not employees:
        raise NotFoundError(f"No active employees among {employee_ids}")

    today = local_today()
    summaries = {
        e.id: AttendanceSummary(e.id, e.name, scope.start, scope.end) for e in employees
    }
    counted = scope.clamp_end(today)
    if counted is None:
        return list(summaries.values())

    weeks = await load_work_weeks(db, employees)
    result = await db.execute(
        select(DayEntry).where(
            DayEntry.employee_id.in_(list(summaries)),
            DayEntry.entry_date >= counted.start,
            DayEntry.entry_date <= counted.end,
        )
    )
    views = {(e.employee_id, e.entry_date): compose_day_entry(e) for e in result.scalars().all()}

    for employee_id, summary in summaries.items():
        week = weeks.get(employee_id)
        for day in counted.dates():
            view = views.get((employee_id, day))
            summary.count(
                view.status if view is not None else None,
                is_work_day(week, day),
                view.is_late if view is not None else False,
                day == today,
            )

    logger.debug("Summarised %d employee(s) for %s..%s", len(summaries), counted.start, counted.end)
    return list(summaries.values())
