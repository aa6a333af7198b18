"""
Employee CRUD + per-employee work-week configuration.

- GET operations require any authenticated user.
- POST / PUT / DELETE operations require admin role.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_engine.api.v1.deps import get_current_active_user, get_db, require_admin
from attendance_engine.models.employee import Employee
from attendance_engine.models.user import User
from attendance_engine.schemas.attendance import (DeleteResponse, EmployeeCreate,
                                                  EmployeeRead, EmployeeUpdate,
                                                  WorkDaysRead, WorkDaysUpdate)
from attendance_engine.services.backfill import get_work_days, update_work_days

router = APIRouter(tags=["employees"])
logger = logging.getLogger(__name__)


async def _get_employee_or_404(db: AsyncSession, employee_id: int) -> Employee:
    emp = await db.get(Employee, employee_id)
    if emp is None:
        raise HTTPException(status_code=404, detail="Employee not found")
    return emp


# ── Employee CRUD ───────────────────────────────────────────────────
@router.get("/employees", response_model=list[EmployeeRead])
async def list_employees(
    skip: int = 0,
    limit: int = Query(default=50, le=500),
    search: str | None = None,
    include_inactive: bool = False,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> list[Employee]:
    query = select(Employee).order_by(Employee.name).offset(skip).limit(limit)
    if not include_inactive:
        query = query.where(Employee.is_active.is_(True))
    if search:
        # Escape SQL LIKE metacharacters to prevent wildcard injection
        safe_search = search.replace("%", r"\%").replace("_", r"\_")
        query = query.where(Employee.name.ilike(f"%{safe_search}%", escape="\\"))
    result = await db.execute(query)
    return list(result.scalars().all())


@router.post("/employees", response_model=EmployeeRead, status_code=201)
async def create_employee(
    body: EmployeeCreate,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> Employee:
    employee = Employee(**body.model_dump())
    db.add(employee)
    await db.commit()
    await db.refresh(employee)
    logger.info("Created employee %d (%s)", employee.id, employee.name)
    return employee


@router.get("/employees/{employee_id}", response_model=EmployeeRead)
async def get_employee(
    employee_id: int,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> Employee:
    return await _get_employee_or_404(db, employee_id)


@router.put("/employees/{employee_id}", response_model=EmployeeRead)
async def update_employee(
    employee_id: int,
    body: EmployeeUpdate,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> Employee:
    emp = await _get_employee_or_404(db, employee_id)
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(emp, field, value)

    await db.commit()
    await db.refresh(emp)
    logger.info("Updated employee %d", employee_id)
    return emp


@router.delete("/employees/{employee_id}", response_model=DeleteResponse)
async def delete_employee(
    employee_id: int,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> DeleteResponse:
    """Soft-delete (deactivate) an employee. Events and day entries are preserved."""
    emp = await _get_employee_or_404(db, employee_id)
    emp.is_active = False
    await db.commit()
    logger.info("Soft-deleted employee %d (%s)", employee_id, emp.name)
    return DeleteResponse(success=True, message=f"Employee '{emp.name}' deactivated")


# ── Work week ───────────────────────────────────────────────────────
@router.get("/employees/{employee_id}/work-days", response_model=WorkDaysRead)
async def read_work_days(
    employee_id: int,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> dict[str, bool]:
    """Configured work days; Monday–Friday when never configured."""
    return await get_work_days(db, employee_id)


@router.put("/employees/{employee_id}/work-days", response_model=WorkDaysRead)
async def put_work_days(
    employee_id: int,
    body: WorkDaysUpdate,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> dict[str, bool]:
    return await update_work_days(db, employee_id, body.model_dump(exclude_unset=True))
