"""
Identity mapping endpoints — provider codes ↔ employees, and the review queue.

All routes are admin-only.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_engine.api.v1.deps import (get_db, get_policy, get_provider_client,
                                           require_admin)
from attendance_engine.models.identity_mapping import IdentityMapping, PendingMatch
from attendance_engine.models.user import User
from attendance_engine.schemas.attendance import (AutoMapRequest, AutoMapResponse,
                                                  DeleteResponse, MappingCreate,
                                                  MappingRead, MappingUpdate,
                                                  PendingConfirm, PendingMatchRead,
                                                  ResolutionRead, ResolveRequest)
from attendance_engine.services import identity
from attendance_engine.services.policy import AttendancePolicy
from attendance_engine.services.provider import ProviderClient

router = APIRouter(prefix="/mappings", tags=["mappings"])
logger = logging.getLogger(__name__)


@router.get("", response_model=list[MappingRead])
async def list_mappings(
    include_inactive: bool = False,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> list[IdentityMapping]:
    return await identity.list_mappings(db, include_inactive=include_inactive)


@router.post("", response_model=MappingRead, status_code=201)
async def create_mapping(
    body: MappingCreate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> IdentityMapping:
    """Map a provider code by hand; replaces any active mapping for the code."""
    return await identity.create_mapping(
        db,
        body.external_code,
        body.employee_id,
        external_name=body.external_name,
        created_by=admin.id,
    )


@router.put("/{mapping_id}", response_model=MappingRead)
async def update_mapping(
    mapping_id: int,
    body: MappingUpdate,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> IdentityMapping:
    return await identity.update_mapping(
        db,
        mapping_id,
        employee_id=body.employee_id,
        external_name=body.external_name,
    )


@router.delete("/{mapping_id}", response_model=DeleteResponse)
async def deactivate_mapping(
    mapping_id: int,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> DeleteResponse:
    mapping = await identity.deactivate_mapping(db, mapping_id)
    return DeleteResponse(success=True, message=f"Mapping for '{mapping.external_code}' deactivated")


@router.post("/resolve", response_model=ResolutionRead)
async def resolve(
    body: ResolveRequest,
    db: AsyncSession = Depends(get_db),
    policy: AttendancePolicy = Depends(get_policy),
    _admin: User = Depends(require_admin),
) -> identity.Resolution:
    return await identity.resolve_identity(db, body.external_code, body.external_name, policy)


@router.post("/auto", response_model=AutoMapResponse)
async def auto_map(
    body: AutoMapRequest,
    db: AsyncSession = Depends(get_db),
    policy: AttendancePolicy = Depends(get_policy),
    client: ProviderClient = Depends(get_provider_client),
    admin: User = Depends(require_admin),
) -> AutoMapResponse:
    """Run the resolver over the given provider employees (or the provider's list)."""
    if body.employees:
        pairs = [(e.external_code, e.external_name) for e in body.employees]
    else:
        pairs = [(e.emp_code, e.name) for e in await client.fetch_employees()]

    result, counts = await identity.auto_map_employees(db, pairs, policy, triggered_by=admin.id)
    return AutoMapResponse(
        attempted=result.attempted,
        succeeded=result.succeeded,
        failed=result.failed,
        skipped=result.skipped,
        errors=result.errors,
        affected=result.affected,
        counts=counts,
    )


# ── Review queue ────────────────────────────────────────────────────
@router.get("/pending", response_model=list[PendingMatchRead])
async def list_pending(
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> list[PendingMatch]:
    return await identity.list_pending(db)


@router.post("/pending/{pending_id}/confirm", response_model=MappingRead)
async def confirm_pending(
    pending_id: int,
    body: PendingConfirm | None = None,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> IdentityMapping:
    """Accept the suggested employee, or the one given in the body."""
    return await identity.confirm_pending(
        db,
        pending_id,
        employee_id=body.employee_id if body else None,
        confirmed_by=admin.id,
    )


@router.delete("/pending/{pending_id}", response_model=DeleteResponse)
async def reject_pending(
    pending_id: int,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> DeleteResponse:
    await identity.reject_pending(db, pending_id)
    return DeleteResponse(success=True, message="Pending match rejected")
