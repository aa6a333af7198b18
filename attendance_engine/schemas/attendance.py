"""Pydantic schemas for Employees / Mappings / Events / Day entries / Batches."""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

_HHMM_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


# ── Employee ────────────────────────────────────────────────────────
class EmployeeCreate(BaseModel):
    name: str
    email: str | None = None
    department: str | None = None
    designation: str | None = None

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name must not be empty")
        if len(v) > 200:
            raise ValueError("Name must not exceed 200 characters")
        return v


class EmployeeUpdate(BaseModel):
    name: str | None = None
    email: str | None = None
    department: str | None = None
    designation: str | None = None

    @field_validator("name")
    @classmethod
    def _name(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            raise ValueError("Name must not be empty")
        return v.strip() if v is not None else v


class EmployeeRead(BaseModel):
    id: int
    name: str
    email: str | None
    department: str | None
    designation: str | None
    is_active: bool
    created_at: datetime | None

    model_config = {"from_attributes": True}


# ── Work week ───────────────────────────────────────────────────────
class WorkDaysRead(BaseModel):
    monday: bool
    tuesday: bool
    wednesday: bool
    thursday: bool
    friday: bool
    saturday: bool
    sunday: bool


class WorkDaysUpdate(BaseModel):
    monday: bool | None = None
    tuesday: bool | None = None
    wednesday: bool | None = None
    thursday: bool | None = None
    friday: bool | None = None
    saturday: bool | None = None
    sunday: bool | None = None


# ── Identity mappings ───────────────────────────────────────────────
class MappingCreate(BaseModel):
    external_code: str
    employee_id: int
    external_name: str | None = None

    @field_validator("external_code")
    @classmethod
    def _code(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("External code must not be empty")
        return v


class MappingUpdate(BaseModel):
    employee_id: int | None = None
    external_name: str | None = None


class MappingRead(BaseModel):
    id: int
    external_code: str
    external_name: str | None
    employee_id: int
    match_score: float
    match_method: str
    is_active: bool
    created_by: int | None
    created_at: datetime | None
    updated_at: datetime | None

    model_config = {"from_attributes": True}


class ExternalEmployee(BaseModel):
    external_code: str
    external_name: str | None = None


class ResolveRequest(ExternalEmployee):
    pass


class CandidateRead(BaseModel):
    employee_id: int
    name: str
    score: float
    method: str

    model_config = {"from_attributes": True}


class ResolutionRead(BaseModel):
    outcome: str
    external_code: str
    external_name: str | None
    employee_id: int | None
    mapping_id: int | None
    score: float | None
    suggestions: list[CandidateRead] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class AutoMapRequest(BaseModel):
    """Provider employees to map; empty means fetch the list from the provider."""

    employees: list[ExternalEmployee] = Field(default_factory=list)


class PendingMatchRead(BaseModel):
    id: int
    external_code: str
    external_name: str | None
    employee_id: int
    match_score: float
    created_at: datetime | None
    updated_at: datetime | None

    model_config = {"from_attributes": True}


class PendingConfirm(BaseModel):
    employee_id: int | None = None


# ── Events ──────────────────────────────────────────────────────────
class IngestRequest(BaseModel):
    """Provider rows exactly as the provider sends them; validated per row."""

    records: list[dict[str, Any]]
    auto_resolve: bool = False


class SyncRequest(BaseModel):
    start_date: date | None = None
    end_date: date | None = None
    empcode: str | None = None
    auto_resolve: bool = False


class ManualPunchCreate(BaseModel):
    employee_id: int
    timestamp: datetime
    kind: str
    device_id: str | None = None
    note: str | None = None


class AttendanceLogRead(BaseModel):
    id: int
    employee_id: int
    timestamp: datetime
    kind: str
    source: str
    external_code: str | None
    device_id: str | None
    raw_payload: dict[str, Any] | None
    created_at: datetime | None

    model_config = {"from_attributes": True}


# ── Day entries ─────────────────────────────────────────────────────
class DayEntryRead(BaseModel):
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

    model_config = {"from_attributes": True}


class ManualPunchResponse(BaseModel):
    written: bool
    day_entry: DayEntryRead | None


class DeriveRequest(BaseModel):
    start_date: date
    end_date: date | None = None
    employee_ids: list[int] | None = None


class OverrideUpsert(BaseModel):
    status: str
    reason: str
    check_in_at: datetime | None = None
    check_out_at: datetime | None = None
    worked_minutes: int | None = None


class OverrideClear(BaseModel):
    reason: str | None = None


class HolidayRangeRequest(BaseModel):
    """No ``employee_ids`` means every active employee."""

    start_date: date
    end_date: date | None = None
    employee_ids: list[int] | None = None
    name: str | None = Field(default=None, max_length=200)


class AttendanceSummaryRead(BaseModel):
    employee_id: int
    employee_name: str
    start_date: date
    end_date: date
    total_days: int
    work_days: int
    present_days: int
    in_progress_days: int
    late_days: int
    absent_days: int
    holiday_days: int
    leave_days: int
    pending_days: int

    model_config = {"from_attributes": True}


class DayEntryAuditRead(BaseModel):
    id: int
    day_entry_id: int
    action: str
    actor_id: int | None
    reason: str | None
    previous_values: dict[str, Any] | None
    new_values: dict[str, Any] | None
    created_at: datetime | None

    model_config = {"from_attributes": True}


# ── Batches ─────────────────────────────────────────────────────────
class AutoCheckoutRequest(BaseModel):
    """No dates means today; only ``start_date`` means that single day."""

    start_date: date | None = None
    end_date: date | None = None

    @model_validator(mode="after")
    def _end_needs_start(self) -> "AutoCheckoutRequest":
        if self.end_date is not None and self.start_date is None:
            raise ValueError("end_date requires start_date")
        return self


class BackfillRequest(BaseModel):
    start_date: date
    end_date: date | None = None
    employee_ids: list[int] | None = None


class BatchResultRead(BaseModel):
    success: bool = True
    attempted: int
    succeeded: int
    failed: int
    skipped: int
    errors: list[str]
    affected: list[dict[str, Any]]

    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def _success(self) -> "BatchResultRead":
        self.success = self.failed == 0
        return self


class AutoMapResponse(BatchResultRead):
    counts: dict[str, int]


class PreviewResponse(BaseModel):
    count: int
    items: list[dict[str, Any]]


class OperationLogRead(BaseModel):
    id: int
    operation: str
    trigger: str
    scope: dict[str, Any] | None
    success: bool
    attempted: int
    succeeded: int
    failed: int
    errors: list[str] | None
    triggered_by: int | None
    created_at: datetime | None

    model_config = {"from_attributes": True}


# ── Attendance Settings ────────────────────────────────────────────
class AttendanceSettingsRead(BaseModel):
    workday_start: str
    late_threshold_minutes: int
    default_checkout_time: str
    match_min_score: float
    match_auto_accept_score: float
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class AttendanceSettingsUpdate(BaseModel):
    workday_start: str | None = None
    late_threshold_minutes: int | None = Field(default=None, ge=0, le=720)
    default_checkout_time: str | None = None
    match_min_score: float | None = Field(default=None, ge=0.0, le=1.0)
    match_auto_accept_score: float | None = Field(default=None, ge=0.0, le=1.0)

    @field_validator("workday_start", "default_checkout_time")
    @classmethod
    def _hhmm(cls, v: str | None) -> str | None:
        if v is not None and not _HHMM_RE.match(v):
            raise ValueError("Time must be in HH:MM format")
        return v


# ── Health ─────────────────────────────────────────────────────────
class HealthResponse(BaseModel):
    db: bool


# ── Generic ────────────────────────────────────────────────────────
class DeleteResponse(BaseModel):
    success: bool
    message: str
