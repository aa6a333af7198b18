"""
Batch endpoints — auto-checkout sweep, absence/holiday backfill, operation log.

Each batch has a preview twin that reports what would change without writing.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_engine.api.v1.deps import get_db, get_policy, require_admin
from attendance_engine.models.operation_log import OperationLog
from attendance_engine.models.user import User
from attendance_engine.schemas.attendance import (AutoCheckoutRequest, BackfillRequest,
                                                  BatchResultRead, OperationLogRead,
                                                  PreviewResponse)
from attendance_engine.services.backfill import (build_backfill_scope, preview_backfill,
                                                 run_backfill)
from attendance_engine.services.operations import BatchResult, list_operations
from attendance_engine.services.policy import AttendancePolicy, local_today
from attendance_engine.services.scope import DateScope
from attendance_engine.services.sweeper import preview_auto_checkout, run_auto_checkout

router = APIRouter(prefix="/batches", tags=["batches"])
logger = logging.getLogger(__name__)


def _checkout_scope(body: AutoCheckoutRequest) -> DateScope:
    if body.start_date is None:
        return DateScope.build(local_today())
    return DateScope.build(body.start_date, body.end_date)


# ── Auto checkout ───────────────────────────────────────────────────
@router.post("/auto-checkout", response_model=BatchResultRead)
async def auto_checkout(
    body: AutoCheckoutRequest,
    db: AsyncSession = Depends(get_db),
    policy: AttendancePolicy = Depends(get_policy),
    admin: User = Depends(require_admin),
) -> BatchResult:
    """Close open day entries at the default checkout time."""
    return await run_auto_checkout(db, _checkout_scope(body), policy, triggered_by=admin.id)


@router.post("/auto-checkout/preview", response_model=PreviewResponse)
async def auto_checkout_preview(
    body: AutoCheckoutRequest,
    db: AsyncSession = Depends(get_db),
    policy: AttendancePolicy = Depends(get_policy),
    _admin: User = Depends(require_admin),
) -> PreviewResponse:
    items = await preview_auto_checkout(db, _checkout_scope(body), policy)
    return PreviewResponse(count=len(items), items=items)


# ── Backfill ────────────────────────────────────────────────────────
@router.post("/backfill", response_model=BatchResultRead)
async def backfill(
    body: BackfillRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> BatchResult:
    """Fill missing days as absent/holiday and reclassify absent non-work days."""
    scope = build_backfill_scope(body.start_date, body.end_date)
    return await run_backfill(db, scope, body.employee_ids, triggered_by=admin.id)


@router.post("/backfill/preview", response_model=PreviewResponse)
async def backfill_preview(
    body: BackfillRequest,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> PreviewResponse:
    scope = build_backfill_scope(body.start_date, body.end_date)
    items = await preview_backfill(db, scope, body.employee_ids)
    return PreviewResponse(count=len(items), items=items)


# ── Operation log ───────────────────────────────────────────────────
@router.get("/operations", response_model=list[OperationLogRead])
async def operations(
    operation: str | None = None,
    limit: int = Query(default=50, le=500),
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> list[OperationLog]:
    return await list_operations(db, operation=operation, limit=limit)
