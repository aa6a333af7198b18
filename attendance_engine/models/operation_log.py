"""
Operation log — audit trail for every sweep, backfill and ingestion batch.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String

from attendance_engine.db.base import Base

OP_AUTO_CHECKOUT = "auto_checkout"
OP_BACKFILL = "backfill"
OP_INGEST = "ingest"
OP_PROVIDER_SYNC = "provider_sync"
OP_AUTO_MAP = "auto_map"
OP_HOLIDAY_RANGE = "holiday_range"

TRIGGER_MANUAL = "manual"
TRIGGER_SCHEDULED = "scheduled"


class OperationLog(Base):
    __tablename__ = "operation_logs"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    operation: str = Column(String(32), nullable=False, index=True)  # type: ignore[assignment]
    trigger: str = Column(String(16), nullable=False, default=TRIGGER_MANUAL)  # type: ignore[assignment]
    scope: dict | None = Column(JSON, nullable=True)  # type: ignore[assignment]
    success: bool = Column(Boolean, nullable=False)  # type: ignore[assignment]
    attempted: int = Column(Integer, nullable=False, default=0)  # type: ignore[assignment]
    succeeded: int = Column(Integer, nullable=False, default=0)  # type: ignore[assignment]
    failed: int = Column(Integer, nullable=False, default=0)  # type: ignore[assignment]
    errors: list | None = Column(JSON, nullable=True)  # type: ignore[assignment]
    triggered_by: int | None = Column(Integer, ForeignKey("users.id"), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
