"""
Biometric provider API client (httpx) and the fetch-then-ingest sync.
"""

from __future__ import annotations

import base64
import logging
from datetime import date

import httpx
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_engine.core.config import settings
from attendance_engine.core.exceptions import ProviderError
from attendance_engine.models.operation_log import (OP_PROVIDER_SYNC,
                                                    TRIGGER_MANUAL)
from attendance_engine.schemas.provider import ProviderEmployee
from attendance_engine.services.ingest import ingest_records
from attendance_engine.services.operations import BatchResult, record_operation
from attendance_engine.services.policy import AttendancePolicy
from attendance_engine.services.scope import DateScope

logger = logging.getLogger(__name__)


def format_provider_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def basic_auth_header(corp_id: str, username: str, password: str) -> str:
    """The provider expects ``corp:user:pass:true`` as the basic-auth username."""
    credentials = ":".join([corp_id, username, password, "true"])
    token = base64.b64encode(f"{credentials}:".encode()).decode()
    return f"Basic {token}"


class ProviderClient:
    """Thin async client for the provider's punch-data API.

    Usable as an async context manager; pass ``transport`` to route requests
    somewhere other than the network.
    """

    def __init__(
        self,
        base_url: str | None = None,
        corp_id: str | None = None,
        username: str | None = None,
        password: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.PROVIDER_BASE_URL).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else settings.PROVIDER_TIMEOUT_SECONDS,
            headers={
                "Authorization": basic_auth_header(
                    corp_id if corp_id is not None else settings.PROVIDER_CORP_ID,
                    username if username is not None else settings.PROVIDER_USERNAME,
                    password if password is not None else settings.PROVIDER_PASSWORD,
                ),
                "Accept": "application/json",
            },
            transport=transport,
        )

    async def __aenter__(self) -> "ProviderClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str, params: dict[str, str]) -> dict:
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as e:
            raise ProviderError(f"Provider request to {path} failed: {e}") from e

        if response.status_code >= 400:
            raise ProviderError(
                f"Provider returned HTTP {response.status_code} for {path}: {response.text[:200]}"
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderError(f"Provider returned non-JSON body for {path}") from e
        if not isinstance(payload, dict):
            raise ProviderError(f"Provider returned an unexpected payload for {path}")
        if payload.get("Error") is True:
            raise ProviderError(f"Provider error: {payload.get('Msg') or 'unknown error'}")
        return payload

    async def fetch_in_out(
        self,
        from_date: date,
        to_date: date,
        empcode: str | None = None,
    ) -> list[dict]:
        """Per-employee-day in/out rows for an inclusive date range.

        Rows are returned as sent; ``ingest_records`` validates each one.
        """
        payload = await self._get(
            "/DownloadInOutPunchData",
            {
                "Empcode": empcode or settings.PROVIDER_EMPCODE,
                "FromDate": format_provider_date(from_date),
                "ToDate": format_provider_date(to_date),
            },
        )
        rows = payload.get("InOutPunchData") or []
        if not isinstance(rows, list):
            raise ProviderError("Provider sent InOutPunchData that is not a list")
        logger.info("Fetched %d in/out rows for %s..%s", len(rows), from_date, to_date)
        return rows

    async def fetch_employees(self) -> list[ProviderEmployee]:
        payload = await self._get("/GetEmployeeList", {"Empcode": settings.PROVIDER_EMPCODE})
        rows = payload.get("EmpList") or payload.get("Employees") or []
        try:
            return [ProviderEmployee.model_validate(row) for row in rows]
        except ValidationError as e:
            raise ProviderError(f"Provider sent an invalid employee row: {e.errors()[0]['msg']}") from e


async def sync_from_provider(
    db: AsyncSession,
    client: ProviderClient,
    scope: DateScope,
    policy: AttendancePolicy,
    *,
    empcode: str | None = None,
    auto_resolve: bool = False,
    trigger: str = TRIGGER_MANUAL,
    triggered_by: int | None = None,
) -> BatchResult:
    """Fetch a date range from the provider and ingest it.

    A provider failure is logged as a failed run and re-raised as
    ``ProviderError`` before anything is written.
    """
    scope_info: dict = scope.as_dict()
    scope_info["empcode"] = empcode or settings.PROVIDER_EMPCODE
    try:
        records = await client.fetch_in_out(scope.start, scope.end, empcode)
    except ProviderError as e:
        failed = BatchResult()
        failed.fail(e.message)
        await record_operation(
            db, OP_PROVIDER_SYNC, scope_info, failed, trigger=trigger, triggered_by=triggered_by
        )
        raise
    scope_info["records"] = len(records)
    return await ingest_records(
        db,
        records,
        policy,
        auto_resolve=auto_resolve,
        operation=OP_PROVIDER_SYNC,
        scope=scope_info,
        trigger=trigger,
        triggered_by=triggered_by,
    )
