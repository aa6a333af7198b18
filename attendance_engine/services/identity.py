"""
Identity resolver — maps provider employee codes/names to internal employees.

Scoring:
    * exact, case-insensitive name match          → 1.0
    * one name contained in the other             → 0.8
    * otherwise 1 - levenshtein(a, b) / max(len)  → [0, 1]

A candidate is proposed only at or above ``match_min_score`` and accepted
automatically only at or above ``match_auto_accept_score``. Anything in
between is queued in ``pending_matches`` for an admin to confirm.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_engine.core.exceptions import NotFoundError
from attendance_engine.models.employee import Employee
from attendance_engine.models.identity_mapping import IdentityMapping, PendingMatch
from attendance_engine.models.operation_log import OP_AUTO_MAP, TRIGGER_MANUAL
from attendance_engine.services.operations import BatchResult, record_operation
from attendance_engine.services.policy import AttendancePolicy

logger = logging.getLogger(__name__)

EXACT_SCORE = 1.0
SUBSTRING_SCORE = 0.8

RESOLVED = "resolved"
AUTO_MAPPED = "auto_mapped"
MANUAL_REVIEW = "manual_review"
NO_MATCH = "no_match"
ALREADY_MAPPED = "already_mapped"


# ── Scoring ─────────────────────────────────────────────────────────
def _normalise(name: str | None) -> str:
    return " ".join((name or "").lower().split())


def levenshtein(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (ca != cb),
                )
            )
        previous = current
    return previous[-1]


def score_name(external_name: str | None, candidate_name: str | None) -> tuple[float, str]:
    """Return ``(score, method)`` for two display names."""
    a, b = _normalise(external_name), _normalise(candidate_name)
    if not a or not b:
        return 0.0, "fuzzy"
    if a == b:
        return EXACT_SCORE, "exact"
    if a in b or b in a:
        return SUBSTRING_SCORE, "substring"
    longest = max(len(a), len(b))
    similarity = 1.0 - levenshtein(a, b) / longest
    return max(0.0, min(1.0, similarity)), "fuzzy"


@dataclass
class Candidate:
    employee_id: int
    name: str
    score: float
    method: str


def rank_candidates(
    external_name: str | None,
    employees: list[Employee],
    min_score: float,
) -> list[Candidate]:
    """Candidates scoring at or above *min_score*, best first."""
    ranked = []
    for emp in employees:
        score, method = score_name(external_name, emp.name)
        if score >= min_score:
            ranked.append(Candidate(emp.id, emp.name, round(score, 4), method))
    ranked.sort(key=lambda c: (-c.score, c.employee_id))
    return ranked


# ── Lookups ─────────────────────────────────────────────────────────
async def lookup_identity(db: AsyncSession, external_code: str) -> IdentityMapping | None:
    result = await db.execute(
        select(IdentityMapping).where(
            IdentityMapping.external_code == external_code,
            IdentityMapping.is_active.is_(True),
        )
    )
    return result.scalar_one_or_none()


async def _active_employees(db: AsyncSession) -> list[Employee]:
    result = await db.execute(
        select(Employee).where(Employee.is_active.is_(True)).order_by(Employee.id)
    )
    return list(result.scalars().all())


async def _get_pending_by_code(db: AsyncSession, external_code: str) -> PendingMatch | None:
    result = await db.execute(
        select(PendingMatch).where(PendingMatch.external_code == external_code)
    )
    return result.scalar_one_or_none()


@dataclass
class Resolution:
    outcome: str
    external_code: str
    external_name: str | None = None
    employee_id: int | None = None
    mapping_id: int | None = None
    score: float | None = None
    suggestions: list[Candidate] = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return self.employee_id is not None


# ── Writes ──────────────────────────────────────────────────────────
async def create_mapping(
    db: AsyncSession,
    external_code: str,
    employee_id: int,
    *,
    external_name: str | None = None,
    match_score: float = 1.0,
    match_method: str = "manual",
    created_by: int | None = None,
) -> IdentityMapping:
    """Activate a mapping for *external_code*, deactivating any previous one."""
    employee = await db.get(Employee, employee_id)
    if employee is None or not employee.is_active:
        raise NotFoundError(f"Employee {employee_id} not found")

    await db.execute(
        update(IdentityMapping)
        .where(
            IdentityMapping.external_code == external_code,
            IdentityMapping.is_active.is_(True),
        )
        .values(is_active=False, updated_at=datetime.now(timezone.utc))
    )
    mapping = IdentityMapping(
        external_code=external_code,
        external_name=external_name,
        employee_id=employee_id,
        match_score=match_score,
        match_method=match_method,
        created_by=created_by,
    )
    db.add(mapping)
    pending = await _get_pending_by_code(db, external_code)
    if pending is not None:
        await db.delete(pending)
    await db.commit()
    await db.refresh(mapping)
    logger.info(
        "Mapped %s (%s) -> employee %d [%s %.2f]",
        external_code,
        external_name,
        employee_id,
        match_method,
        match_score,
    )
    return mapping


async def update_mapping(
    db: AsyncSession,
    mapping_id: int,
    *,
    employee_id: int | None = None,
    external_name: str | None = None,
) -> IdentityMapping:
    mapping = await db.get(IdentityMapping, mapping_id)
    if mapping is None or not mapping.is_active:
        raise NotFoundError(f"Mapping {mapping_id} not found")
    if employee_id is not None and employee_id != mapping.employee_id:
        employee = await db.get(Employee, employee_id)
        if employee is None or not employee.is_active:
            raise NotFoundError(f"Employee {employee_id} not found")
        mapping.employee_id = employee_id
        mapping.match_method = "manual"
        mapping.match_score = 1.0
    if external_name is not None:
        mapping.external_name = external_name
    await db.commit()
    await db.refresh(mapping)
    logger.info("Updated mapping %d", mapping_id)
    return mapping


async def deactivate_mapping(db: AsyncSession, mapping_id: int) -> IdentityMapping:
    """Soft-delete a mapping. Log rows keep pointing at the employee."""
    mapping = await db.get(IdentityMapping, mapping_id)
    if mapping is None or not mapping.is_active:
        raise NotFoundError(f"Mapping {mapping_id} not found")
    mapping.is_active = False
    await db.commit()
    await db.refresh(mapping)
    logger.info("Deactivated mapping %d (%s)", mapping_id, mapping.external_code)
    return mapping


async def _queue_for_review(
    db: AsyncSession,
    external_code: str,
    external_name: str | None,
    best: Candidate,
) -> None:
    pending = await _get_pending_by_code(db, external_code)
    if pending is None:
        db.add(
            PendingMatch(
                external_code=external_code,
                external_name=external_name,
                employee_id=best.employee_id,
                match_score=best.score,
            )
        )
    else:
        pending.external_name = external_name
        pending.employee_id = best.employee_id
        pending.match_score = best.score
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info("Pending match for %s already queued", external_code)


async def resolve_identity(
    db: AsyncSession,
    external_code: str,
    external_name: str | None,
    policy: AttendancePolicy,
) -> Resolution:
    """Resolve a provider employee, auto-mapping only on a confident match."""
    existing = await lookup_identity(db, external_code)
    if existing is not None:
        return Resolution(
            outcome=RESOLVED,
            external_code=external_code,
            external_name=external_name,
            employee_id=existing.employee_id,
            mapping_id=existing.id,
            score=existing.match_score,
        )

    candidates = rank_candidates(external_name, await _active_employees(db), policy.match_min_score)
    if not candidates:
        return Resolution(outcome=NO_MATCH, external_code=external_code, external_name=external_name)

    best = candidates[0]
    if best.score >= policy.match_auto_accept_score:
        mapping = await create_mapping(
            db,
            external_code,
            best.employee_id,
            external_name=external_name,
            match_score=best.score,
            match_method=best.method,
        )
        return Resolution(
            outcome=AUTO_MAPPED,
            external_code=external_code,
            external_name=external_name,
            employee_id=best.employee_id,
            mapping_id=mapping.id,
            score=best.score,
        )

    await _queue_for_review(db, external_code, external_name, best)
    return Resolution(
        outcome=MANUAL_REVIEW,
        external_code=external_code,
        external_name=external_name,
        score=best.score,
        suggestions=candidates[:5],
    )


async def auto_map_employees(
    db: AsyncSession,
    external_employees: list[tuple[str, str | None]],
    policy: AttendancePolicy,
    *,
    trigger: str = TRIGGER_MANUAL,
    triggered_by: int | None = None,
) -> tuple[BatchResult, dict[str, int]]:
    """Run the resolver over a provider employee list.

    Returns the batch result plus counts per outcome.
    """
    logger.info("Auto-map started for %d provider employees", len(external_employees))
    result = BatchResult()
    counts = {ALREADY_MAPPED: 0, AUTO_MAPPED: 0, MANUAL_REVIEW: 0, NO_MATCH: 0}
    for code, name in external_employees:
        try:
            resolution = await resolve_identity(db, code, name, policy)
        except (SQLAlchemyError, NotFoundError) as e:
            await db.rollback()
            logger.warning("Auto-map failed for %s: %s", code, e)
            result.fail(f"{code} ({name}): {e}")
            continue
        counts[ALREADY_MAPPED if resolution.outcome == RESOLVED else resolution.outcome] += 1
        if resolution.outcome == AUTO_MAPPED:
            result.ok(
                {
                    "external_code": code,
                    "external_name": name,
                    "employee_id": resolution.employee_id,
                    "score": resolution.score,
                }
            )
        else:
            result.skip()

    await record_operation(
        db,
        OP_AUTO_MAP,
        {"employees": len(external_employees), **counts},
        result,
        trigger=trigger,
        triggered_by=triggered_by,
    )
    return result, counts


# ── Manual confirmation queue ───────────────────────────────────────
async def list_pending(db: AsyncSession) -> list[PendingMatch]:
    result = await db.execute(select(PendingMatch).order_by(PendingMatch.match_score.desc()))
    return list(result.scalars().all())


async def confirm_pending(
    db: AsyncSession,
    pending_id: int,
    *,
    employee_id: int | None = None,
    confirmed_by: int | None = None,
) -> IdentityMapping:
    """Accept a queued match, optionally pointing it at a different employee."""
    pending = await db.get(PendingMatch, pending_id)
    if pending is None:
        raise NotFoundError(f"Pending match {pending_id} not found")
    target = employee_id if employee_id is not None else pending.employee_id
    return await create_mapping(
        db,
        pending.external_code,
        target,
        external_name=pending.external_name,
        match_score=pending.match_score if employee_id is None else 1.0,
        match_method="manual",
        created_by=confirmed_by,
    )


async def reject_pending(db: AsyncSession, pending_id: int) -> None:
    pending = await db.get(PendingMatch, pending_id)
    if pending is None:
        raise NotFoundError(f"Pending match {pending_id} not found")
    await db.delete(pending)
    await db.commit()
    logger.info("Rejected pending match for %s", pending.external_code)


async def list_mappings(db: AsyncSession, include_inactive: bool = False) -> list[IdentityMapping]:
    query = select(IdentityMapping).order_by(IdentityMapping.external_code, IdentityMapping.id)
    if not include_inactive:
        query = query.where(IdentityMapping.is_active.is_(True))
    result = await db.execute(query)
    return list(result.scalars().all())
