"""
Provider ingestion — records → identities → canonical events → day entries.

Each record is its own unit of work with its own commit. A unit that fails
is rolled back and reported; the batch carries on with the next record.
Re-ingesting the same records writes nothing new.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_engine.core.exceptions import (AttendanceError,
                                               NotFoundError,
                                               UnresolvableIdentityError)
from attendance_engine.models.attendance_log import (EVENT_KINDS,
                                                     SOURCE_MANUAL,
                                                     AttendanceLog)
from attendance_engine.models.day_entry import DayEntry
from attendance_engine.models.employee import Employee
from attendance_engine.models.operation_log import OP_INGEST, TRIGGER_MANUAL
from attendance_engine.schemas.provider import ProviderRecord
from attendance_engine.services.day_entries import day_bounds, derive_day_entry
from attendance_engine.services.identity import lookup_identity, resolve_identity
from attendance_engine.services.late import RemoteLateCheck
from attendance_engine.services.operations import BatchResult, record_operation
from attendance_engine.services.policy import AttendancePolicy
from attendance_engine.services.punches import (append_event, append_punch,
                                                normalize_record)
from attendance_engine.services.scope import DateScope

logger = logging.getLogger(__name__)


def _row_label(row: Any) -> str:
    if isinstance(row, ProviderRecord):
        return f"{row.emp_code} on {row.date_string}"
    if isinstance(row, dict):
        code = str(row.get("Empcode") or "").strip() or "?"
        return f"{code} on {row.get('DateString') or '?'}"
    return "unreadable row"


def parse_record(row: ProviderRecord | dict) -> ProviderRecord:
    """Validate one raw provider row; raises ``ValidationError``."""
    if isinstance(row, ProviderRecord):
        return row
    return ProviderRecord.model_validate(row)


def _first_problem(error: ValidationError) -> str:
    problem = error.errors()[0]
    field = ".".join(str(part) for part in problem["loc"])
    return f"{field}: {problem['msg']}" if field else problem["msg"]


async def _employee_for(
    db: AsyncSession,
    record: ProviderRecord,
    policy: AttendancePolicy,
    auto_resolve: bool,
) -> int:
    if auto_resolve:
        resolution = await resolve_identity(db, record.emp_code, record.name, policy)
        if resolution.resolved:
            return resolution.employee_id  # type: ignore[return-value]
    else:
        mapping = await lookup_identity(db, record.emp_code)
        if mapping is not None:
            return mapping.employee_id
    raise UnresolvableIdentityError(record.emp_code, record.name)


async def _ingest_one(
    db: AsyncSession,
    record: ProviderRecord,
    policy: AttendancePolicy,
    auto_resolve: bool,
    remote_late_check: RemoteLateCheck | None,
) -> dict:
    punch = normalize_record(record)
    employee_id = await _employee_for(db, record, policy, auto_resolve)
    written = await append_punch(
        db,
        employee_id,
        punch,
        device_id=record.device_id,
        raw_payload=record.raw(),
    )
    entry = await derive_day_entry(
        db,
        employee_id,
        punch.entry_date,
        policy,
        remark=punch.remark,
        remote_late_check=remote_late_check,
    )
    await db.commit()
    return {
        "external_code": record.emp_code,
        "employee_id": employee_id,
        "entry_date": punch.entry_date.isoformat(),
        "events_written": written,
        "status": entry.status if entry is not None else None,
    }


async def ingest_records(
    db: AsyncSession,
    records: list[ProviderRecord | dict],
    policy: AttendancePolicy,
    *,
    auto_resolve: bool = False,
    remote_late_check: RemoteLateCheck | None = None,
    operation: str = OP_INGEST,
    scope: dict | None = None,
    trigger: str = TRIGGER_MANUAL,
    triggered_by: int | None = None,
) -> BatchResult:
    """Ingest provider records one by one.

    Raw rows are validated here, one at a time; a row that does not validate
    is reported as an error and the batch moves on.

    With ``auto_resolve`` unmapped codes go through the identity resolver
    (which may auto-map or queue them); otherwise only active mappings are
    used and unmapped records are reported as errors.
    """
    logger.info("Ingest started: %d records (%s)", len(records), trigger)
    result = BatchResult()

    for row in records:
        label = _row_label(row)
        try:
            record = parse_record(row)
        except ValidationError as e:
            logger.warning("Ingest rejected %s: invalid provider row", label)
            result.fail(f"{label}: invalid provider row ({_first_problem(e)})")
            continue

        for attempt in (1, 2):
            try:
                item = await _ingest_one(db, record, policy, auto_resolve, remote_late_check)
                if item["events_written"]:
                    result.ok(item)
                else:
                    result.skip()
                break
            except IntegrityError as e:
                # Lost a race on a dedup key; the retry sees the winner's rows
                await db.rollback()
                if attempt == 2:
                    logger.warning("Ingest failed for %s after retry: %s", label, e)
                    result.fail(f"{label}: {e.orig if e.orig is not None else e}")
            except AttendanceError as e:
                await db.rollback()
                logger.warning("Ingest rejected %s: %s", label, e.message)
                result.fail(f"{label}: {e.message}")
                break
            except SQLAlchemyError as e:
                await db.rollback()
                logger.warning("Ingest failed for %s: %s", label, e)
                result.fail(f"{label}: {e}")
                break

    await record_operation(
        db,
        operation,
        scope if scope is not None else {"records": len(records)},
        result,
        trigger=trigger,
        triggered_by=triggered_by,
    )
    return result


async def record_manual_punch(
    db: AsyncSession,
    employee_id: int,
    timestamp: datetime,
    kind: str,
    policy: AttendancePolicy,
    *,
    actor_id: int | None = None,
    device_id: str | None = None,
    note: str | None = None,
) -> tuple[bool, DayEntry | None]:
    """Append one admin-entered event and re-derive its day.

    Returns ``(written, entry)``; ``written`` is False for a duplicate.
    """
    if kind not in EVENT_KINDS:
        raise AttendanceError(f"Invalid event kind '{kind}'. Must be one of: {', '.join(EVENT_KINDS)}")
    employee = await db.get(Employee, employee_id)
    if employee is None or not employee.is_active:
        raise NotFoundError(f"Employee {employee_id} not found")

    timestamp = timestamp.replace(tzinfo=None)
    payload = {"entered_by": actor_id, "note": note}
    for attempt in (1, 2):
        try:
            written = await append_event(
                db,
                employee_id,
                timestamp,
                kind,
                source=SOURCE_MANUAL,
                device_id=device_id,
                raw_payload=payload,
            )
            entry = await derive_day_entry(db, employee_id, timestamp.date(), policy)
            await db.commit()
            break
        except IntegrityError:
            await db.rollback()
            if attempt == 2:
                raise

    logger.info(
        "Manual %s for employee %d at %s%s",
        kind,
        employee_id,
        timestamp,
        "" if written else " (duplicate)",
    )
    if entry is not None:
        await db.refresh(entry)
    return written, entry


async def rederive_days(
    db: AsyncSession,
    scope: DateScope,
    policy: AttendancePolicy,
    employee_ids: list[int] | None = None,
) -> BatchResult:
    """Re-run derivation for every (employee, date) with events in *scope*."""
    start, _ = day_bounds(scope.start)
    _, end = day_bounds(scope.end)
    query = select(AttendanceLog.employee_id, AttendanceLog.timestamp).where(
        AttendanceLog.timestamp >= start,
        AttendanceLog.timestamp < end,
    )
    if employee_ids:
        query = query.where(AttendanceLog.employee_id.in_(employee_ids))
    rows = await db.execute(query)
    days: set[tuple[int, date]] = {(emp_id, ts.date()) for emp_id, ts in rows.all()}

    result = BatchResult()
    for employee_id, entry_date in sorted(days):
        try:
            entry = await derive_day_entry(db, employee_id, entry_date, policy)
            await db.commit()
            if entry is None:
                result.skip()
            else:
                result.ok(
                    {
                        "employee_id": employee_id,
                        "entry_date": entry_date.isoformat(),
                        "status": entry.status,
                    }
                )
        except SQLAlchemyError as e:
            await db.rollback()
            logger.warning("Re-derive failed for employee %d on %s: %s", employee_id, entry_date, e)
            result.fail(f"employee {employee_id} on {entry_date}: {e}")
    logger.info(
        "Re-derived %d day(s) for %s..%s (%d failed)",
        result.succeeded,
        scope.start,
        scope.end,
        result.failed,
    )
    return result
