"""Pydantic schemas for the biometric provider's in/out punch payload."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProviderRecord(BaseModel):
    """One employee-day row as sent by the provider.

    Field aliases match the provider's JSON keys; the whole row is kept as the
    raw payload of every event derived from it.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    emp_code: str = Field(alias="Empcode")
    name: str | None = Field(default=None, alias="Name")
    in_time: str | None = Field(default=None, alias="INTime")
    out_time: str | None = Field(default=None, alias="OUTTime")
    work_time: str | None = Field(default=None, alias="WorkTime")
    over_time: str | None = Field(default=None, alias="OverTime")
    break_time: str | None = Field(default=None, alias="BreakTime")
    status: str | None = Field(default=None, alias="Status")
    date_string: str = Field(alias="DateString")
    remark: str | None = Field(default=None, alias="Remark")
    early_out: str | None = Field(default=None, alias="Erl_Out")
    late_in: str | None = Field(default=None, alias="Late_In")
    device_id: str | None = Field(default=None, alias="DeviceID")

    @field_validator("emp_code")
    @classmethod
    def _code(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Empcode must not be empty")
        return v

    @field_validator("device_id", mode="before")
    @classmethod
    def _device(cls, v: object) -> str | None:
        if v is None or v == "":
            return None
        return str(v)

    def raw(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class ProviderEmployee(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    emp_code: str = Field(alias="EmpCode")
    name: str | None = Field(default=None, alias="Name")
