"""
Batch bookkeeping: per-unit outcome counters and the persisted operation log.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_engine.models.operation_log import TRIGGER_MANUAL, OperationLog

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    """Outcome of a batch that never aborts on a single unit's failure."""

    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    affected: list[dict[str, Any]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed == 0

    def ok(self, item: dict[str, Any] | None = None) -> None:
        self.attempted += 1
        self.succeeded += 1
        if item is not None:
            self.affected.append(item)

    def fail(self, message: str) -> None:
        self.attempted += 1
        self.failed += 1
        self.errors.append(message)

    def skip(self) -> None:
        self.attempted += 1
        self.skipped += 1


async def record_operation(
    db: AsyncSession,
    operation: str,
    scope: dict[str, Any],
    result: BatchResult,
    *,
    trigger: str = TRIGGER_MANUAL,
    triggered_by: int | None = None,
) -> OperationLog | None:
    """Persist one audit row for a batch run.

    A failure to write the audit row is logged but never turns a finished
    batch into a failed one.
    """
    row = OperationLog(
        operation=operation,
        trigger=trigger,
        scope=scope,
        success=result.success,
        attempted=result.attempted,
        succeeded=result.succeeded,
        failed=result.failed,
        errors=list(result.errors),
        triggered_by=triggered_by,
    )
    db.add(row)
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Could not write operation log for %s: %s", operation, e)
        return None
    await db.refresh(row)
    logger.info(
        "%s (%s) finished: attempted=%d succeeded=%d failed=%d skipped=%d",
        operation,
        trigger,
        result.attempted,
        result.succeeded,
        result.failed,
        result.skipped,
    )
    return row


async def list_operations(
    db: AsyncSession,
    operation: str | None = None,
    limit: int = 50,
) -> list[OperationLog]:
    query = select(OperationLog).order_by(OperationLog.id.desc()).limit(limit)
    if operation:
        query = query.where(OperationLog.operation == operation)
    result = await db.execute(query)
    return list(result.scalars().all())
