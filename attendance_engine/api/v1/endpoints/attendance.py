"""
Punch intake endpoints — provider ingestion, provider sync, manual events, log feed.
"""

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_engine.api.v1.deps import (get_current_active_user, get_db, get_policy,
                                           get_provider_client, require_manager)
from attendance_engine.core.config import settings
from attendance_engine.models.attendance_log import AttendanceLog
from attendance_engine.models.user import User
from attendance_engine.schemas.attendance import (AttendanceLogRead, BatchResultRead,
                                                  DayEntryRead, IngestRequest, ManualPunchCreate,
                                                  ManualPunchResponse, SyncRequest)
from attendance_engine.services.day_entries import compose_day_entry, day_bounds
from attendance_engine.services.ingest import ingest_records, record_manual_punch
from attendance_engine.services.operations import BatchResult
from attendance_engine.services.policy import AttendancePolicy, local_today
from attendance_engine.services.provider import ProviderClient, sync_from_provider
from attendance_engine.services.punches import list_events
from attendance_engine.services.scope import DateScope

router = APIRouter(prefix="/attendance", tags=["attendance"])
logger = logging.getLogger(__name__)


@router.post("/ingest", response_model=BatchResultRead)
async def ingest(
    body: IngestRequest,
    db: AsyncSession = Depends(get_db),
    policy: AttendancePolicy = Depends(get_policy),
    user: User = Depends(require_manager),
) -> BatchResult:
    """Ingest provider in/out rows posted in the body.

    Bad rows are reported in ``errors``; the rest are still ingested.
    """
    return await ingest_records(
        db,
        body.records,
        policy,
        auto_resolve=body.auto_resolve,
        triggered_by=user.id,
    )


@router.post("/sync", response_model=BatchResultRead)
async def sync(
    body: SyncRequest,
    db: AsyncSession = Depends(get_db),
    policy: AttendancePolicy = Depends(get_policy),
    client: ProviderClient = Depends(get_provider_client),
    user: User = Depends(require_manager),
) -> BatchResult:
    """Pull a date range (default: today) from the provider and ingest it."""
    start = body.start_date or local_today()
    scope = DateScope.build(start, body.end_date, max_days=settings.PROVIDER_SYNC_MAX_DAYS)
    return await sync_from_provider(
        db,
        client,
        scope,
        policy,
        empcode=body.empcode,
        auto_resolve=body.auto_resolve,
        triggered_by=user.id,
    )


@router.post("/punches", response_model=ManualPunchResponse, status_code=201)
async def create_punch(
    body: ManualPunchCreate,
    db: AsyncSession = Depends(get_db),
    policy: AttendancePolicy = Depends(get_policy),
    user: User = Depends(require_manager),
) -> ManualPunchResponse:
    """Record one event by hand (e.g. a missed punch) and re-derive its day."""
    written, entry = await record_manual_punch(
        db,
        body.employee_id,
        body.timestamp,
        body.kind,
        policy,
        actor_id=user.id,
        device_id=body.device_id,
        note=body.note,
    )
    return ManualPunchResponse(
        written=written,
        day_entry=DayEntryRead.model_validate(compose_day_entry(entry)) if entry else None,
    )


@router.get("/logs", response_model=list[AttendanceLogRead])
async def attendance_logs(
    employee_id: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    limit: int = Query(default=500, le=5000),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> list[AttendanceLog]:
    """Canonical events, oldest first."""
    start = day_bounds(start_date)[0] if start_date else None
    end = day_bounds(end_date)[1] if end_date else None
    return await list_events(db, employee_id=employee_id, start=start, end=end, limit=limit)
