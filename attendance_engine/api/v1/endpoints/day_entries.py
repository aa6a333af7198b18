"""
Day entry endpoints — composed daily records, re-derivation and manual overrides.

Every record returned here has been through ``compose_day_entry``, so an
override always wins over derived data.
"""

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_engine.api.v1.deps import (get_current_active_user, get_db, get_policy,
                                           require_admin)
from attendance_engine.core.config import settings
from attendance_engine.models.day_entry import DayEntryAudit
from attendance_engine.models.user import User
from attendance_engine.schemas.attendance import (AttendanceSummaryRead, BatchResultRead,
                                                  DayEntryAuditRead, DayEntryRead,
                                                  DeriveRequest, HolidayRangeRequest,
                                                  OverrideClear, OverrideUpsert)
from attendance_engine.services.day_entries import (DayEntryView, compose_day_entry,
                                                    get_day_entry, list_day_entries)
from attendance_engine.services.ingest import rederive_days
from attendance_engine.services.operations import BatchResult
from attendance_engine.services.overrides import (OverrideRequest, clear_override,
                                                  list_audit, mark_holiday_range,
                                                  submit_override)
from attendance_engine.services.policy import AttendancePolicy
from attendance_engine.services.scope import DateScope
from attendance_engine.services.summary import AttendanceSummary, summarize_attendance

router = APIRouter(prefix="/day-entries", tags=["day-entries"])
logger = logging.getLogger(__name__)


@router.get("", response_model=list[DayEntryRead])
async def list_entries(
    employee_id: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    status: str | None = None,
    skip: int = 0,
    limit: int = Query(default=100, le=1000),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> list[DayEntryView]:
    """Day entries, newest first; ``status`` matches the displayed status."""
    return await list_day_entries(
        db,
        employee_id=employee_id,
        start_date=start_date,
        end_date=end_date,
        status=status,
        skip=skip,
        limit=limit,
    )


@router.post("/derive", response_model=BatchResultRead)
async def derive(
    body: DeriveRequest,
    db: AsyncSession = Depends(get_db),
    policy: AttendancePolicy = Depends(get_policy),
    _admin: User = Depends(require_admin),
) -> BatchResult:
    """Recompute derived fields from the event log for a date range."""
    scope = DateScope.build(body.start_date, body.end_date)
    return await rederive_days(db, scope, policy, body.employee_ids)


@router.get("/summary", response_model=list[AttendanceSummaryRead])
async def summary(
    start_date: date,
    end_date: date | None = None,
    employee_id: int | None = None,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> list[AttendanceSummary]:
    """Present / absent / holiday / leave counts per employee over a range."""
    scope = DateScope.build(start_date, end_date, max_days=settings.BACKFILL_MAX_DAYS)
    return await summarize_attendance(
        db, scope, [employee_id] if employee_id is not None else None
    )


@router.post("/holidays", response_model=BatchResultRead)
async def mark_holidays(
    body: HolidayRangeRequest,
    db: AsyncSession = Depends(get_db),
    policy: AttendancePolicy = Depends(get_policy),
    admin: User = Depends(require_admin),
) -> BatchResult:
    """Mark a date range as holiday (office-wide or for chosen employees)."""
    scope = DateScope.build(body.start_date, body.end_date, max_days=settings.BACKFILL_MAX_DAYS)
    return await mark_holiday_range(
        db,
        scope,
        policy,
        employee_ids=body.employee_ids,
        name=body.name,
        actor_id=admin.id,
    )


@router.get("/{entry_id}", response_model=DayEntryRead)
async def read_entry(
    entry_id: int,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> DayEntryView:
    return await get_day_entry(db, entry_id)


@router.get("/{entry_id}/audit", response_model=list[DayEntryAuditRead])
async def read_audit(
    entry_id: int,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> list[DayEntryAudit]:
    return await list_audit(db, entry_id)


# ── Overrides ───────────────────────────────────────────────────────
@router.put("/{employee_id}/{entry_date}/override", response_model=DayEntryRead)
async def put_override(
    employee_id: int,
    entry_date: date,
    body: OverrideUpsert,
    db: AsyncSession = Depends(get_db),
    policy: AttendancePolicy = Depends(get_policy),
    admin: User = Depends(require_admin),
) -> DayEntryView:
    entry = await submit_override(
        db,
        employee_id,
        entry_date,
        OverrideRequest(**body.model_dump()),
        policy,
        actor_id=admin.id,
    )
    return compose_day_entry(entry)


@router.delete("/{employee_id}/{entry_date}/override", response_model=DayEntryRead)
async def delete_override(
    employee_id: int,
    entry_date: date,
    body: OverrideClear | None = None,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> DayEntryView:
    """Drop the override; the derived values show through again."""
    entry = await clear_override(
        db,
        employee_id,
        entry_date,
        actor_id=admin.id,
        reason=body.reason if body else None,
    )
    return compose_day_entry(entry)
