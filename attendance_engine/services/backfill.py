"""
Absence/holiday backfill.

For every selected employee and every date in scope:
  * no day entry        → create one as ``absent`` (work day) or ``holiday``
  * ``absent``, no override, not a work day → reclassify to ``holiday``

Nothing else is ever touched. ``holiday`` is never turned back into
``absent`` automatically, and today and later dates are never backfilled.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_engine.core.config import settings
from attendance_engine.core.exceptions import NotFoundError
from attendance_engine.models.day_entry import (REASON_BACKFILL, REASON_RECLASSIFIED,
                                                STATUS_ABSENT, STATUS_HOLIDAY, DayEntry)
from attendance_engine.models.employee import (DEFAULT_WORK_WEEK, WEEKDAY_FIELDS,
                                               Employee, EmployeeWorkDays,
                                               is_work_day)
from attendance_engine.models.operation_log import OP_BACKFILL, TRIGGER_MANUAL
from attendance_engine.services.operations import BatchResult, record_operation
from attendance_engine.services.policy import local_today
from attendance_engine.services.scope import DateScope

logger = logging.getLogger(__name__)

ACTION_GENERATE = "generate"
ACTION_RECLASSIFY = "reclassify"

BACKFILL_REASON = REASON_BACKFILL


# ── Work-week configuration ─────────────────────────────────────────
async def get_work_days(db: AsyncSession, employee_id: int) -> dict[str, bool]:
    employee = await db.get(Employee, employee_id)
    if employee is None:
        raise NotFoundError(f"Employee {employee_id} not found")
    config = await db.get(EmployeeWorkDays, employee_id)
    if config is None:
        return dict(DEFAULT_WORK_WEEK)
    return config.as_dict()


async def update_work_days(
    db: AsyncSession, employee_id: int, changes: dict[str, bool]
) -> dict[str, bool]:
    """Apply a partial work-week update, creating the row on first write."""
    employee = await db.get(Employee, employee_id)
    if employee is None:
        raise NotFoundError(f"Employee {employee_id} not found")

    config = await db.get(EmployeeWorkDays, employee_id)
    if config is None:
        config = EmployeeWorkDays(employee_id=employee_id)
        for name, value in DEFAULT_WORK_WEEK.items():
            setattr(config, name, value)
        db.add(config)

    for name, value in changes.items():
        if name in WEEKDAY_FIELDS and value is not None:
            setattr(config, name, bool(value))

    await db.commit()
    await db.refresh(config)
    logger.info("Work week updated for employee %d: %s", employee_id, config.as_dict())
    return config.as_dict()


# ── Planning ────────────────────────────────────────────────────────
@dataclass(frozen=True)
class BackfillAction:
    employee_id: int
    entry_date: date
    action: str
    status: str

    def as_dict(self) -> dict:
        return {
            "employee_id": self.employee_id,
            "entry_date": self.entry_date.isoformat(),
            "action": self.action,
            "status": self.status,
        }


async def select_employees(db: AsyncSession, employee_ids: list[int] | None) -> list[Employee]:
    """Active employees, optionally limited to *employee_ids*."""
    query = select(Employee).where(Employee.is_active.is_(True)).order_by(Employee.id)
    if employee_ids:
        query = query.where(Employee.id.in_(employee_ids))
    result = await db.execute(query)
    return list(result.scalars().all())


async def load_work_weeks(db: AsyncSession, employees: list[Employee]) -> dict[int, dict[str, bool]]:
    """Configured weeks by employee id; employees without a row are absent."""
    rows = await db.execute(
        select(EmployeeWorkDays).where(EmployeeWorkDays.employee_id.in_([e.id for e in employees]))
    )
    return {w.employee_id: w.as_dict() for w in rows.scalars().all()}


def _effective_scope(scope: DateScope) -> DateScope | None:
    # Today is still open: absence is only known once the day is over
    return scope.clamp_end(local_today() - timedelta(days=1))


async def plan_backfill(
    db: AsyncSession,
    scope: DateScope,
    employee_ids: list[int] | None = None,
) -> list[BackfillAction]:
    """Everything a backfill over *scope* would do. Read-only."""
    effective = _effective_scope(scope)
    if effective is None:
        return []

    employees = await select_employees(db, employee_ids)
    weeks = await load_work_weeks(db, employees)

    actions: list[BackfillAction] = []
    for employee in employees:
        week = weeks.get(employee.id)
        result = await db.execute(
            select(DayEntry).where(
                DayEntry.employee_id == employee.id,
                DayEntry.entry_date >= effective.start,
                DayEntry.entry_date <= effective.end,
            )
        )
        existing = {e.entry_date: e for e in result.scalars().all()}

        for day in effective.dates():
            working = is_work_day(week, day)
            entry = existing.get(day)
            if entry is None:
                actions.append(
                    BackfillAction(
                        employee.id,
                        day,
                        ACTION_GENERATE,
                        STATUS_ABSENT if working else STATUS_HOLIDAY,
                    )
                )
            elif entry.status == STATUS_ABSENT and entry.manual_status is None and not working:
                actions.append(BackfillAction(employee.id, day, ACTION_RECLASSIFY, STATUS_HOLIDAY))
    return actions


async def preview_backfill(
    db: AsyncSession,
    scope: DateScope,
    employee_ids: list[int] | None = None,
) -> list[dict]:
    return [a.as_dict() for a in await plan_backfill(db, scope, employee_ids)]


# ── Apply ───────────────────────────────────────────────────────────
async def _apply(db: AsyncSession, action: BackfillAction) -> bool:
    """Apply one action against the current row state; False if it no longer applies."""
    result = await db.execute(
        select(DayEntry).where(
            DayEntry.employee_id == action.employee_id,
            DayEntry.entry_date == action.entry_date,
        )
    )
    entry = result.scalar_one_or_none()

    if action.action == ACTION_GENERATE:
        if entry is not None:
            return False
        db.add(
            DayEntry(
                employee_id=action.employee_id,
                entry_date=action.entry_date,
                status=action.status,
                is_late=False,
                modification_reason=BACKFILL_REASON,
            )
        )
        await db.commit()
        return True

    if entry is None or entry.status != STATUS_ABSENT or entry.manual_status is not None:
        return False
    entry.status = STATUS_HOLIDAY
    entry.modification_reason = REASON_RECLASSIFIED
    await db.commit()
    return True


async def run_backfill(
    db: AsyncSession,
    scope: DateScope,
    employee_ids: list[int] | None = None,
    *,
    trigger: str = TRIGGER_MANUAL,
    triggered_by: int | None = None,
) -> BatchResult:
    logger.info(
        "Backfill started for %s..%s, employees=%s (%s)",
        scope.start,
        scope.end,
        employee_ids or "all",
        trigger,
    )
    result = BatchResult()
    actions = await plan_backfill(db, scope, employee_ids)

    for action in actions:
        label = f"employee {action.employee_id} on {action.entry_date}"
        try:
            if await _apply(db, action):
                result.ok(action.as_dict())
            else:
                result.skip()
        except IntegrityError:
            # Another writer created the row first: the day is covered
            await db.rollback()
            result.skip()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.warning("Backfill failed for %s: %s", label, e)
            result.fail(f"{label}: {e}")

    scope_info: dict = scope.as_dict()
    scope_info["employee_ids"] = employee_ids
    await record_operation(
        db,
        OP_BACKFILL,
        scope_info,
        result,
        trigger=trigger,
        triggered_by=triggered_by,
    )
    return result


def build_backfill_scope(start: date, end: date | None = None) -> DateScope:
    return DateScope.build(start, end, max_days=settings.BACKFILL_MAX_DAYS)
