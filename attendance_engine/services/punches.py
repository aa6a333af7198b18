"""
Punch normalizer and the append-only event ledger.

A provider sends one row per employee per day with an in-time and an
out-time in local wall-clock format. Providers echo the in-time into the
out-time for an open day, so an out-time only counts as a checkout when it
is strictly after the in-time.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_engine.core.exceptions import MalformedPunchError
from attendance_engine.models.attendance_log import (KIND_CHECK_IN,
                                                     KIND_CHECK_OUT,
                                                     SOURCE_PROVIDER,
                                                     AttendanceLog)
from attendance_engine.schemas.provider import ProviderRecord

logger = logging.getLogger(__name__)

_DATE_RE = re.compile(r"^\s*(\d{1,2})/(\d{1,2})/(\d{4})\s*$")
_TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})(?::(\d{2}))?\s*$")


def parse_provider_date(value: str | None) -> date | None:
    """``dd/mm/yyyy`` → date, or None when unparseable."""
    match = _DATE_RE.match(value or "")
    if not match:
        return None
    day, month, year = (int(g) for g in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_provider_time(value: str | None) -> time | None:
    """``HH:MM`` or ``HH:MM:SS`` → time, or None for blanks and placeholders."""
    match = _TIME_RE.match(value or "")
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    seconds = int(match.group(3) or 0)
    try:
        return time(hours, minutes, seconds)
    except ValueError:
        return None


@dataclass(frozen=True)
class NormalizedPunch:
    external_code: str
    entry_date: date
    check_in: datetime
    check_out: datetime | None
    remark: str | None = None


def normalize_record(record: ProviderRecord) -> NormalizedPunch:
    """Turn one provider row into a check-in and an optional check-out.

    Raises ``MalformedPunchError`` when the date or in-time cannot be parsed.
    """
    entry_date = parse_provider_date(record.date_string)
    if entry_date is None:
        raise MalformedPunchError(record.emp_code, record.date_string, "unparseable date")

    in_time = parse_provider_time(record.in_time)
    if in_time is None:
        raise MalformedPunchError(
            record.emp_code, record.date_string, f"invalid in-time {record.in_time!r}"
        )
    check_in = datetime.combine(entry_date, in_time)

    check_out = None
    out_time = parse_provider_time(record.out_time)
    if out_time is not None:
        candidate = datetime.combine(entry_date, out_time)
        if candidate > check_in:
            check_out = candidate

    remark = (record.remark or "").strip() or None
    return NormalizedPunch(
        external_code=record.emp_code,
        entry_date=entry_date,
        check_in=check_in,
        check_out=check_out,
        remark=remark,
    )


# ── Log store ───────────────────────────────────────────────────────
async def event_exists(
    db: AsyncSession, employee_id: int, timestamp: datetime, kind: str
) -> bool:
    result = await db.execute(
        select(AttendanceLog.id).where(
            AttendanceLog.employee_id == employee_id,
            AttendanceLog.timestamp == timestamp,
            AttendanceLog.kind == kind,
        )
    )
    return result.first() is not None


async def append_event(
    db: AsyncSession,
    employee_id: int,
    timestamp: datetime,
    kind: str,
    *,
    source: str = SOURCE_PROVIDER,
    external_code: str | None = None,
    device_id: str | None = None,
    raw_payload: dict | None = None,
) -> bool:
    """Insert a canonical event unless its dedup key is already present.

    Returns True when a row was written. Does not commit; a concurrent
    writer racing on the same key surfaces as ``IntegrityError`` on flush,
    and the caller rolls the unit back and retries it.
    """
    if await event_exists(db, employee_id, timestamp, kind):
        logger.debug("Duplicate event %s/%s/%s ignored", employee_id, timestamp, kind)
        return False
    db.add(
        AttendanceLog(
            employee_id=employee_id,
            timestamp=timestamp,
            kind=kind,
            source=source,
            external_code=external_code,
            device_id=device_id,
            raw_payload=raw_payload,
        )
    )
    await db.flush()
    return True


async def append_punch(
    db: AsyncSession,
    employee_id: int,
    punch: NormalizedPunch,
    *,
    device_id: str | None = None,
    raw_payload: dict | None = None,
) -> int:
    """Append the check-in and (if any) check-out of *punch*; return rows written."""
    written = 0
    events = [(punch.check_in, KIND_CHECK_IN)]
    if punch.check_out is not None:
        events.append((punch.check_out, KIND_CHECK_OUT))
    for timestamp, kind in events:
        if await append_event(
            db,
            employee_id,
            timestamp,
            kind,
            external_code=punch.external_code,
            device_id=device_id,
            raw_payload=raw_payload,
        ):
            written += 1
    return written


async def list_events(
    db: AsyncSession,
    employee_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 500,
) -> list[AttendanceLog]:
    query = select(AttendanceLog).order_by(AttendanceLog.timestamp.asc(), AttendanceLog.id.asc())
    if employee_id is not None:
        query = query.where(AttendanceLog.employee_id == employee_id)
    if start is not None:
        query = query.where(AttendanceLog.timestamp >= start)
    if end is not None:
        query = query.where(AttendanceLog.timestamp < end)
    result = await db.execute(query.limit(limit))
    return list(result.scalars().all())
