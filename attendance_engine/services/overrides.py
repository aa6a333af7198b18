"""
Manual override layer — admin corrections that outrank every derived value.

Overrides are written to the ``manual_*`` columns only. The deriver, sweeper
and backfiller keep maintaining the derived columns underneath, and
``compose_day_entry`` decides what is displayed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_engine.core.exceptions import InvalidOverrideError, NotFoundError
from attendance_engine.models.day_entry import (OVERRIDE_STATUSES,
                                                STATUS_COMPLETED,
                                                STATUS_HOLIDAY,
                                                STATUS_IN_PROGRESS,
                                                TIMELESS_OVERRIDE_STATUSES,
                                                DayEntry, DayEntryAudit)
from attendance_engine.models.employee import Employee
from attendance_engine.models.operation_log import (OP_HOLIDAY_RANGE,
                                                    TRIGGER_MANUAL)
from attendance_engine.services.backfill import select_employees
from attendance_engine.services.day_entries import (get_entry,
                                                    get_or_create_entry,
                                                    minutes_between)
from attendance_engine.services.late import is_late
from attendance_engine.services.operations import BatchResult, record_operation
from attendance_engine.services.policy import AttendancePolicy
from attendance_engine.services.scope import DateScope

logger = logging.getLogger(__name__)

ACTION_OVERRIDE_SET = "override_set"
ACTION_OVERRIDE_CLEARED = "override_cleared"

_OVERRIDE_FIELDS = (
    "manual_status",
    "manual_check_in_at",
    "manual_check_out_at",
    "manual_worked_minutes",
    "manual_is_late",
    "manual_override_by",
    "manual_override_at",
    "manual_override_reason",
)


@dataclass
class OverrideRequest:
    status: str
    reason: str
    check_in_at: datetime | None = None
    check_out_at: datetime | None = None
    worked_minutes: int | None = None


def _snapshot(entry: DayEntry) -> dict:
    values = {}
    for name in _OVERRIDE_FIELDS:
        value = getattr(entry, name)
        values[name] = value.isoformat() if isinstance(value, datetime) else value
    return values


def validate_override(entry_date: date, request: OverrideRequest) -> OverrideRequest:
    """Check an override request and return it normalised.

    Raises ``InvalidOverrideError`` on the first problem found.
    """
    reason = (request.reason or "").strip()
    if not reason:
        raise InvalidOverrideError("An override reason is required")
    if request.status not in OVERRIDE_STATUSES:
        raise InvalidOverrideError(
            f"Invalid override status '{request.status}'. "
            f"Must be one of: {', '.join(OVERRIDE_STATUSES)}"
        )

    if request.status in TIMELESS_OVERRIDE_STATUSES:
        return OverrideRequest(status=request.status, reason=reason)

    # Override times are local wall-clock, like the derived ones
    check_in = request.check_in_at.replace(tzinfo=None) if request.check_in_at else None
    check_out = request.check_out_at.replace(tzinfo=None) if request.check_out_at else None
    if check_out is not None and check_in is None:
        raise InvalidOverrideError("A check-out time requires a check-in time")
    for label, value in (("check-in", check_in), ("check-out", check_out)):
        if value is not None and value.date() != entry_date:
            raise InvalidOverrideError(f"The {label} time must fall on {entry_date}")
    if check_in is not None and check_out is not None and check_out <= check_in:
        raise InvalidOverrideError("The check-out time must be after the check-in time")

    if request.status == STATUS_COMPLETED and (check_in is None or check_out is None):
        raise InvalidOverrideError("A completed override needs both check-in and check-out times")
    if request.status == STATUS_IN_PROGRESS and check_out is not None:
        raise InvalidOverrideError("An in-progress override cannot have a check-out time")

    worked = request.worked_minutes
    if worked is not None and worked < 0:
        raise InvalidOverrideError("Worked minutes cannot be negative")
    if worked is None:
        worked = minutes_between(check_in, check_out)

    return OverrideRequest(
        status=request.status,
        reason=reason,
        check_in_at=check_in,
        check_out_at=check_out,
        worked_minutes=worked,
    )


async def submit_override(
    db: AsyncSession,
    employee_id: int,
    entry_date: date,
    request: OverrideRequest,
    policy: AttendancePolicy,
    *,
    actor_id: int | None = None,
) -> DayEntry:
    """Validate, then write the override and its audit row in one commit."""
    clean = validate_override(entry_date, request)

    employee = await db.get(Employee, employee_id)
    if employee is None:
        raise NotFoundError(f"Employee {employee_id} not found")

    entry, created = await get_or_create_entry(db, employee_id, entry_date)
    previous = _snapshot(entry)

    entry.manual_status = clean.status
    entry.manual_check_in_at = clean.check_in_at
    entry.manual_check_out_at = clean.check_out_at
    entry.manual_worked_minutes = clean.worked_minutes
    entry.manual_is_late = is_late(clean.check_in_at, policy)
    entry.manual_override_by = actor_id
    entry.manual_override_at = datetime.now(timezone.utc)
    entry.manual_override_reason = clean.reason

    db.add(
        DayEntryAudit(
            day_entry_id=entry.id,
            action=ACTION_OVERRIDE_SET,
            actor_id=actor_id,
            reason=clean.reason,
            previous_values=previous,
            new_values=_snapshot(entry),
        )
    )
    await db.commit()
    await db.refresh(entry)
    logger.info(
        "Override set for employee %d on %s: %s (by %s%s)",
        employee_id,
        entry_date,
        clean.status,
        actor_id,
        ", new entry" if created else "",
    )
    return entry


async def clear_override(
    db: AsyncSession,
    employee_id: int,
    entry_date: date,
    *,
    actor_id: int | None = None,
    reason: str | None = None,
) -> DayEntry:
    entry = await get_entry(db, employee_id, entry_date)
    if entry is None or entry.manual_status is None:
        raise NotFoundError(f"No override for employee {employee_id} on {entry_date}")

    previous = _snapshot(entry)
    for name in _OVERRIDE_FIELDS:
        setattr(entry, name, None)

    db.add(
        DayEntryAudit(
            day_entry_id=entry.id,
            action=ACTION_OVERRIDE_CLEARED,
            actor_id=actor_id,
            reason=(reason or "").strip() or None,
            previous_values=previous,
            new_values=_snapshot(entry),
        )
    )
    await db.commit()
    await db.refresh(entry)
    logger.info("Override cleared for employee %d on %s (by %s)", employee_id, entry_date, actor_id)
    return entry


async def list_audit(db: AsyncSession, day_entry_id: int) -> list[DayEntryAudit]:
    if await db.get(DayEntry, day_entry_id) is None:
        raise NotFoundError(f"Day entry {day_entry_id} not found")
    result = await db.execute(
        select(DayEntryAudit)
        .where(DayEntryAudit.day_entry_id == day_entry_id)
        .order_by(DayEntryAudit.id.asc())
    )
    return list(result.scalars().all())


# ── Bulk holidays ───────────────────────────────────────────────────
async def mark_holiday_range(
    db: AsyncSession,
    scope: DateScope,
    policy: AttendancePolicy,
    *,
    employee_ids: list[int] | None = None,
    name: str | None = None,
    actor_id: int | None = None,
    trigger: str = TRIGGER_MANUAL,
) -> BatchResult:
    """Put a ``holiday`` override on every selected employee and date.

    Goes through ``submit_override``, so each day gets its own audit row.
    Days that already carry a holiday override are skipped; any other
    override is replaced.
    """
    employees = await select_employees(db, employee_ids)
    if employee_ids and not employees:
        raise NotFoundError(f"No active employees among {employee_ids}")
    ids = [e.id for e in employees]

    label_name = (name or "").strip()
    request = OverrideRequest(
        status=STATUS_HOLIDAY,
        reason=f"holiday: {label_name}" if label_name else "holiday",
    )
    logger.info(
        "Holiday range %s..%s for %d employee(s) (%s)", scope.start, scope.end, len(ids), trigger
    )

    result = BatchResult()
    for employee_id in ids:
        for day in scope.dates():
            label = f"employee {employee_id} on {day}"
            for attempt in (1, 2):
                try:
                    existing = await get_entry(db, employee_id, day)
                    if existing is not None and existing.manual_status == STATUS_HOLIDAY:
                        result.skip()
                        break
                    await submit_override(db, employee_id, day, request, policy, actor_id=actor_id)
                    result.ok(
                        {
                            "employee_id": employee_id,
                            "entry_date": day.isoformat(),
                            "created": existing is None,
                        }
                    )
                    break
                except IntegrityError as e:
                    # Another writer created the row; the retry updates it
                    await db.rollback()
                    if attempt == 2:
                        result.fail(f"{label}: {e.orig if e.orig is not None else e}")
                except SQLAlchemyError as e:
                    await db.rollback()
                    logger.warning("Holiday override failed for %s: %s", label, e)
                    result.fail(f"{label}: {e}")
                    break

    scope_info: dict = scope.as_dict()
    scope_info["employee_ids"] = employee_ids
    scope_info["name"] = label_name or None
    await record_operation(
        db,
        OP_HOLIDAY_RANGE,
        scope_info,
        result,
        trigger=trigger,
        triggered_by=actor_id,
    )
    return result
