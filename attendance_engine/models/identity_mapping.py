"""
Identity mapping models — provider employee codes ↔ internal employees.

At most one *active* mapping may exist per external code; older mappings are
deactivated rather than deleted so that historic log rows keep their link.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (Boolean, Column, DateTime, Float, ForeignKey, Index,
                        Integer, String, text, true)

from attendance_engine.db.base import Base


class IdentityMapping(Base):
    __tablename__ = "identity_mappings"
    __table_args__ = (
        Index(
            "uq_identity_mapping_active_code",
            "external_code",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    external_code: str = Column(String(64), nullable=False, index=True)  # type: ignore[assignment]
    external_name: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]
    employee_id: int = Column(Integer, ForeignKey("employees.id"), nullable=False)  # type: ignore[assignment]
    match_score: float = Column(Float, nullable=False, default=1.0)  # type: ignore[assignment]
    match_method: str = Column(String(20), nullable=False, default="manual")  # type: ignore[assignment]
    # exact | substring | fuzzy | manual
    is_active: bool = Column(Boolean, nullable=False, default=True, server_default=true())  # type: ignore[assignment]
    created_by: int | None = Column(Integer, ForeignKey("users.id"), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class PendingMatch(Base):
    """A fuzzy match awaiting admin confirmation."""

    __tablename__ = "pending_matches"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    external_code: str = Column(String(64), nullable=False, unique=True)  # type: ignore[assignment]
    external_name: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]
    employee_id: int = Column(Integer, ForeignKey("employees.id"), nullable=False)  # type: ignore[assignment]
    match_score: float = Column(Float, nullable=False)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
