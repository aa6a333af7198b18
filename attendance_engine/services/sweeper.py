"""
Auto-checkout sweeper — closes day entries that were checked in but never out.

Selection is ``check_in_at IS NOT NULL AND check_out_at IS NULL AND
status = 'in_progress' AND manual_status IS NULL``. A swept entry no longer
matches, so running the sweeper again over the same scope is a no-op.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_engine.models.day_entry import (REASON_AUTO_CHECKOUT, STATUS_COMPLETED,
                                                STATUS_IN_PROGRESS, DayEntry)
from attendance_engine.models.operation_log import (OP_AUTO_CHECKOUT,
                                                    TRIGGER_MANUAL)
from attendance_engine.services.day_entries import minutes_between
from attendance_engine.services.operations import BatchResult, record_operation
from attendance_engine.services.policy import AttendancePolicy
from attendance_engine.services.scope import DateScope

logger = logging.getLogger(__name__)

AUTO_CHECKOUT_REASON = REASON_AUTO_CHECKOUT


def _open_entries_query(scope: DateScope):
    return (
        select(DayEntry)
        .where(
            DayEntry.entry_date >= scope.start,
            DayEntry.entry_date <= scope.end,
            DayEntry.check_in_at.is_not(None),
            DayEntry.check_out_at.is_(None),
            DayEntry.status == STATUS_IN_PROGRESS,
            DayEntry.manual_status.is_(None),
        )
        .order_by(DayEntry.entry_date, DayEntry.employee_id)
    )


def _describe(entry: DayEntry, checkout: datetime) -> dict:
    return {
        "day_entry_id": entry.id,
        "employee_id": entry.employee_id,
        "entry_date": entry.entry_date.isoformat(),
        "check_in_at": entry.check_in_at.isoformat() if entry.check_in_at else None,
        "check_out_at": checkout.isoformat(),
        "worked_minutes": minutes_between(entry.check_in_at, checkout),
    }


async def preview_auto_checkout(
    db: AsyncSession, scope: DateScope, policy: AttendancePolicy
) -> list[dict]:
    """List what a sweep over *scope* would change, without writing."""
    result = await db.execute(_open_entries_query(scope))
    return [
        _describe(entry, datetime.combine(entry.entry_date, policy.default_checkout_time))
        for entry in result.scalars().all()
    ]


async def run_auto_checkout(
    db: AsyncSession,
    scope: DateScope,
    policy: AttendancePolicy,
    *,
    trigger: str = TRIGGER_MANUAL,
    triggered_by: int | None = None,
) -> BatchResult:
    logger.info("Auto checkout started for %s..%s (%s)", scope.start, scope.end, trigger)
    result = BatchResult()

    rows = await db.execute(_open_entries_query(scope))
    entry_ids = [entry.id for entry in rows.scalars().all()]

    for entry_id in entry_ids:
        try:
            entry = await db.get(DayEntry, entry_id)
            # Re-check: another caller may have closed it since selection
            if (
                entry is None
                or entry.check_out_at is not None
                or entry.status != STATUS_IN_PROGRESS
                or entry.manual_status is not None
            ):
                result.skip()
                continue

            checkout = datetime.combine(entry.entry_date, policy.default_checkout_time)
            if entry.check_in_at >= checkout:
                result.fail(
                    f"employee {entry.employee_id} on {entry.entry_date}: check-in "
                    f"{entry.check_in_at:%H:%M} is not before default checkout "
                    f"{policy.default_checkout_time:%H:%M}"
                )
                continue

            item = _describe(entry, checkout)
            entry.check_out_at = checkout
            entry.worked_minutes = minutes_between(entry.check_in_at, checkout)
            entry.status = STATUS_COMPLETED
            entry.modification_reason = AUTO_CHECKOUT_REASON
            await db.commit()
            result.ok(item)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.warning("Auto checkout failed for day entry %d: %s", entry_id, e)
            result.fail(f"day entry {entry_id}: {e}")

    await record_operation(
        db,
        OP_AUTO_CHECKOUT,
        scope.as_dict(),
        result,
        trigger=trigger,
        triggered_by=triggered_by,
    )
    return result
