"""
Day entry deriver and the read-time compose rule.

Derivation folds the day's canonical events into the derived columns of the
one ``day_entries`` row for (employee, date). The boundary is a min/max over
the event set, so the result does not depend on insertion order and
re-deriving is always safe.

Override precedence is applied in exactly one place, ``compose_day_entry``.
Derivation itself never looks at the override columns.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_engine.core.exceptions import NotFoundError
from attendance_engine.models.attendance_log import (KIND_CHECK_IN,
                                                     KIND_CHECK_OUT,
                                                     AttendanceLog)
from attendance_engine.models.day_entry import (REASON_AUTO_CHECKOUT,
                                                REASON_BACKFILL,
                                                REASON_RECLASSIFIED,
                                                STATUS_COMPLETED,
                                                STATUS_IN_PROGRESS,
                                                STATUS_NOT_STARTED,
                                                TIMELESS_OVERRIDE_STATUSES,
                                                DayEntry)
from attendance_engine.services.late import RemoteLateCheck, classify_late
from attendance_engine.services.policy import AttendancePolicy

logger = logging.getLogger(__name__)


def minutes_between(start: datetime | None, end: datetime | None) -> int | None:
    """Whole minutes from *start* to *end*; never negative."""
    if start is None or end is None:
        return None
    return max(0, int((end - start).total_seconds() // 60))


def day_bounds(entry_date: date) -> tuple[datetime, datetime]:
    start = datetime.combine(entry_date, time.min)
    return start, start + timedelta(days=1)


# ── Upsert ──────────────────────────────────────────────────────────
async def get_entry(db: AsyncSession, employee_id: int, entry_date: date) -> DayEntry | None:
    result = await db.execute(
        select(DayEntry).where(
            DayEntry.employee_id == employee_id,
            DayEntry.entry_date == entry_date,
        )
    )
    return result.scalar_one_or_none()


async def get_or_create_entry(
    db: AsyncSession,
    employee_id: int,
    entry_date: date,
    status: str = STATUS_NOT_STARTED,
) -> tuple[DayEntry, bool]:
    """Return the (employee, date) row, inserting it if missing.

    The unique key decides concurrent inserts: the loser gets an
    ``IntegrityError`` on flush and its caller rolls back and retries.
    """
    entry = await get_entry(db, employee_id, entry_date)
    if entry is not None:
        return entry, False

    entry = DayEntry(employee_id=employee_id, entry_date=entry_date, status=status, is_late=False)
    db.add(entry)
    await db.flush()
    return entry, True


# ── Derivation ──────────────────────────────────────────────────────
@dataclass(frozen=True)
class DayBoundary:
    check_in: datetime | None
    check_out: datetime | None


def fold_events(events: list[AttendanceLog]) -> DayBoundary:
    """Earliest check-in and the latest check-out strictly after it."""
    check_ins = [e.timestamp for e in events if e.kind == KIND_CHECK_IN]
    if not check_ins:
        return DayBoundary(None, None)
    first_in = min(check_ins)
    check_outs = [e.timestamp for e in events if e.kind == KIND_CHECK_OUT and e.timestamp > first_in]
    return DayBoundary(first_in, max(check_outs) if check_outs else None)


async def derive_day_entry(
    db: AsyncSession,
    employee_id: int,
    entry_date: date,
    policy: AttendancePolicy,
    *,
    remark: str | None = None,
    remote_late_check: RemoteLateCheck | None = None,
) -> DayEntry | None:
    """Recompute the derived columns of one day entry from the event log.

    Returns None (and writes nothing) when the day has no check-in and no row
    exists yet. Does not commit.
    """
    start, end = day_bounds(entry_date)
    result = await db.execute(
        select(AttendanceLog).where(
            AttendanceLog.employee_id == employee_id,
            AttendanceLog.timestamp >= start,
            AttendanceLog.timestamp < end,
        )
    )
    boundary = fold_events(list(result.scalars().all()))

    if boundary.check_in is None:
        return await get_entry(db, employee_id, entry_date)

    entry, created = await get_or_create_entry(db, employee_id, entry_date)

    check_out = boundary.check_out
    if check_out is None and entry.check_out_at is not None and entry.check_out_at > boundary.check_in:
        # Keep a checkout the sweeper already closed this day with
        check_out = entry.check_out_at

    entry.check_in_at = boundary.check_in
    entry.check_out_at = check_out
    entry.worked_minutes = minutes_between(boundary.check_in, check_out)
    entry.status = STATUS_COMPLETED if check_out is not None else STATUS_IN_PROGRESS
    entry.is_late = await classify_late(boundary.check_in, policy, remote_late_check)
    if remark:
        entry.modification_reason = f"provider remark: {remark}"
    elif entry.modification_reason in (REASON_BACKFILL, REASON_RECLASSIFIED):
        # A backfilled placeholder that turned out to have punches
        entry.modification_reason = None
    elif boundary.check_out is not None and entry.modification_reason == REASON_AUTO_CHECKOUT:
        entry.modification_reason = None

    await db.flush()
    logger.debug(
        "Derived %s entry for employee %d on %s (%s)",
        "new" if created else "existing",
        employee_id,
        entry_date,
        entry.status,
    )
    return entry


# ── Compose (read side) ─────────────────────────────────────────────
@dataclass(frozen=True)
class DayEntryView:
    """What every consumer sees: the override if present, else derived data."""

    id: int
    employee_id: int
    entry_date: date
    status: str
    check_in_at: datetime | None
    check_out_at: datetime | None
    worked_minutes: int | None
    is_late: bool
    is_overridden: bool
    derived_status: str
    modification_reason: str | None
    manual_override_by: int | None
    manual_override_at: datetime | None
    manual_override_reason: str | None


def compose_day_entry(entry: DayEntry) -> DayEntryView:
    if entry.manual_status is not None:
        timeless = entry.manual_status in TIMELESS_OVERRIDE_STATUSES
        return DayEntryView(
            id=entry.id,
            employee_id=entry.employee_id,
            entry_date=entry.entry_date,
            status=entry.manual_status,
            check_in_at=None if timeless else entry.manual_check_in_at,
            check_out_at=None if timeless else entry.manual_check_out_at,
            worked_minutes=None if timeless else entry.manual_worked_minutes,
            is_late=False if timeless else bool(entry.manual_is_late),
            is_overridden=True,
            derived_status=entry.status,
            modification_reason=entry.modification_reason,
            manual_override_by=entry.manual_override_by,
            manual_override_at=entry.manual_override_at,
            manual_override_reason=entry.manual_override_reason,
        )
    return DayEntryView(
        id=entry.id,
        employee_id=entry.employee_id,
        entry_date=entry.entry_date,
        status=entry.status,
        check_in_at=entry.check_in_at,
        check_out_at=entry.check_out_at,
        worked_minutes=entry.worked_minutes,
        is_late=bool(entry.is_late),
        is_overridden=False,
        derived_status=entry.status,
        modification_reason=entry.modification_reason,
        manual_override_by=None,
        manual_override_at=None,
        manual_override_reason=None,
    )


async def get_day_entry(db: AsyncSession, entry_id: int) -> DayEntryView:
    entry = await db.get(DayEntry, entry_id)
    if entry is None:
        raise NotFoundError(f"Day entry {entry_id} not found")
    return compose_day_entry(entry)


async def list_day_entries(
    db: AsyncSession,
    *,
    employee_id: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    status: str | None = None,
    skip: int = 0,
    limit: int = 100,
) -> list[DayEntryView]:
    """Composed views; ``status`` filters on the displayed status."""
    query = select(DayEntry).order_by(DayEntry.entry_date.desc(), DayEntry.employee_id)
    if employee_id is not None:
        query = query.where(DayEntry.employee_id == employee_id)
    if start_date is not None:
        query = query.where(DayEntry.entry_date >= start_date)
    if end_date is not None:
        query = query.where(DayEntry.entry_date <= end_date)
    result = await db.execute(query)
    views = [compose_day_entry(e) for e in result.scalars().all()]
    if status is not None:
        views = [v for v in views if v.status == status]
    return views[skip : skip + limit]
