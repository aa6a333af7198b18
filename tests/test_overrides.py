"""Tests for manual overrides, their precedence and their audit trail."""

from datetime import date, datetime, timezone

import pytest
from sqlalchemy import select

from attendance_engine.core.exceptions import InvalidOverrideError, NotFoundError
from attendance_engine.models.attendance_log import KIND_CHECK_IN, KIND_CHECK_OUT
from attendance_engine.models.day_entry import DayEntryAudit
from attendance_engine.models.operation_log import OP_HOLIDAY_RANGE, OperationLog
from attendance_engine.services.day_entries import (compose_day_entry, derive_day_entry,
                                                    get_entry)
from attendance_engine.services.overrides import (OverrideRequest, clear_override,
                                                  list_audit, mark_holiday_range,
                                                  submit_override, validate_override)
from attendance_engine.services.punches import append_event
from attendance_engine.services.scope import DateScope
from attendance_engine.services.sweeper import run_auto_checkout

DAY = date(2024, 3, 1)


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 3, 1, hour, minute)


# ── Validation ──────────────────────────────────────────────────────
def test_reason_is_required():
    with pytest.raises(InvalidOverrideError, match="reason"):
        validate_override(DAY, OverrideRequest(status="present", reason="   "))


def test_unknown_status_is_rejected():
    with pytest.raises(InvalidOverrideError, match="Invalid override status"):
        validate_override(DAY, OverrideRequest(status="sick", reason="flu"))


@pytest.mark.parametrize(
    "request_kwargs,message",
    [
        ({"check_out_at": _at(18)}, "requires a check-in"),
        ({"check_in_at": datetime(2024, 3, 2, 9)}, "must fall on"),
        ({"check_in_at": _at(18), "check_out_at": _at(9)}, "after the check-in"),
        ({"check_in_at": _at(9), "worked_minutes": -5}, "negative"),
    ],
)
def test_time_rules(request_kwargs, message):
    with pytest.raises(InvalidOverrideError, match=message):
        validate_override(DAY, OverrideRequest(status="present", reason="fix", **request_kwargs))


def test_completed_needs_both_times():
    with pytest.raises(InvalidOverrideError, match="both"):
        validate_override(DAY, OverrideRequest(status="completed", reason="fix", check_in_at=_at(9)))


def test_in_progress_cannot_have_checkout():
    with pytest.raises(InvalidOverrideError, match="in-progress"):
        validate_override(
            DAY,
            OverrideRequest(status="in_progress", reason="fix", check_in_at=_at(9), check_out_at=_at(17)),
        )


def test_worked_minutes_are_computed_and_times_made_naive():
    clean = validate_override(
        DAY,
        OverrideRequest(
            status="completed",
            reason=" badge forgotten ",
            check_in_at=datetime(2024, 3, 1, 9, tzinfo=timezone.utc),
            check_out_at=_at(17, 30),
        ),
    )
    assert clean.reason == "badge forgotten"
    assert clean.check_in_at == _at(9)
    assert clean.check_in_at.tzinfo is None
    assert clean.worked_minutes == 510


def test_timeless_statuses_drop_times():
    clean = validate_override(
        DAY,
        OverrideRequest(status="leave_granted", reason="approved", check_in_at=_at(9), worked_minutes=60),
    )
    assert clean.check_in_at is None
    assert clean.check_out_at is None
    assert clean.worked_minutes is None


# ── Submit / clear ──────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_override_takes_precedence(db_session, make_employee, policy):
    emp = await make_employee("Overridden")
    await append_event(db_session, emp.id, _at(9), KIND_CHECK_IN)
    await derive_day_entry(db_session, emp.id, DAY, policy)
    await db_session.commit()

    entry = await submit_override(
        db_session,
        emp.id,
        DAY,
        OverrideRequest(status="completed", reason="client visit", check_in_at=_at(11), check_out_at=_at(19)),
        policy,
        actor_id=1,
    )
    view = compose_day_entry(entry)
    assert view.status == "completed"
    assert view.check_in_at == _at(11)
    assert view.worked_minutes == 480
    assert view.is_late is True
    assert view.is_overridden is True
    assert view.derived_status == "in_progress"
    assert view.manual_override_by == 1
    assert view.manual_override_at is not None


@pytest.mark.asyncio
async def test_derivation_continues_under_an_override(db_session, make_employee, policy):
    emp = await make_employee("Underneath")
    await append_event(db_session, emp.id, _at(9), KIND_CHECK_IN)
    await derive_day_entry(db_session, emp.id, DAY, policy)
    await db_session.commit()
    await submit_override(
        db_session, emp.id, DAY, OverrideRequest(status="leave_granted", reason="approved"), policy
    )

    await append_event(db_session, emp.id, _at(18), KIND_CHECK_OUT)
    entry = await derive_day_entry(db_session, emp.id, DAY, policy)
    await db_session.commit()

    assert entry.status == "completed"
    assert entry.worked_minutes == 540
    assert compose_day_entry(entry).status == "leave_granted"


@pytest.mark.asyncio
async def test_override_on_a_day_without_events(db_session, make_employee, policy):
    emp = await make_employee("No Punches")
    entry = await submit_override(
        db_session, emp.id, DAY, OverrideRequest(status="present", reason="worked offsite"), policy
    )
    assert entry.status == "not_started"
    assert compose_day_entry(entry).status == "present"


@pytest.mark.asyncio
async def test_sweeper_ignores_overridden_entries(db_session, make_employee, policy):
    emp = await make_employee("Swept Override")
    await append_event(db_session, emp.id, _at(9), KIND_CHECK_IN)
    await derive_day_entry(db_session, emp.id, DAY, policy)
    await db_session.commit()
    await submit_override(
        db_session,
        emp.id,
        DAY,
        OverrideRequest(status="in_progress", reason="still on site", check_in_at=_at(9)),
        policy,
    )

    result = await run_auto_checkout(db_session, DateScope.build(DAY), policy)
    assert result.attempted == 0


@pytest.mark.asyncio
async def test_clear_restores_derived_view(db_session, make_employee, policy):
    emp = await make_employee("Cleared")
    await append_event(db_session, emp.id, _at(9), KIND_CHECK_IN)
    await derive_day_entry(db_session, emp.id, DAY, policy)
    await db_session.commit()
    await submit_override(
        db_session, emp.id, DAY, OverrideRequest(status="absent", reason="no show"), policy, actor_id=1
    )

    entry = await clear_override(db_session, emp.id, DAY, actor_id=1, reason="mistake")
    view = compose_day_entry(entry)
    assert view.status == "in_progress"
    assert view.is_overridden is False
    assert entry.manual_override_reason is None

    with pytest.raises(NotFoundError):
        await clear_override(db_session, emp.id, DAY)


@pytest.mark.asyncio
async def test_every_change_is_audited(db_session, make_employee, policy):
    emp = await make_employee("Audited")
    await submit_override(
        db_session, emp.id, DAY, OverrideRequest(status="present", reason="first"), policy, actor_id=1
    )
    await submit_override(
        db_session, emp.id, DAY, OverrideRequest(status="holiday", reason="second"), policy, actor_id=1
    )
    await clear_override(db_session, emp.id, DAY, actor_id=1)

    entry = await get_entry(db_session, emp.id, DAY)
    audit = await list_audit(db_session, entry.id)
    assert [a.action for a in audit] == ["override_set", "override_set", "override_cleared"]
    assert audit[0].previous_values["manual_status"] is None
    assert audit[1].previous_values["manual_status"] == "present"
    assert audit[1].new_values["manual_status"] == "holiday"
    assert audit[2].new_values["manual_status"] is None
    assert audit[2].reason is None


@pytest.mark.asyncio
async def test_invalid_override_writes_nothing(db_session, make_employee, policy):
    emp = await make_employee("Rejected")
    with pytest.raises(InvalidOverrideError):
        await submit_override(
            db_session, emp.id, DAY, OverrideRequest(status="completed", reason="x"), policy
        )
    assert await get_entry(db_session, emp.id, DAY) is None


@pytest.mark.asyncio
async def test_unknown_employee_or_entry(db_session, policy):
    with pytest.raises(NotFoundError):
        await submit_override(
            db_session, 999, DAY, OverrideRequest(status="present", reason="x"), policy
        )
    with pytest.raises(NotFoundError):
        await list_audit(db_session, 999)


# ── Bulk holidays ───────────────────────────────────────────────────
FRIDAY_TO_MONDAY = DateScope.build(date(2024, 3, 1), date(2024, 3, 4))


@pytest.mark.asyncio
async def test_holiday_range_for_chosen_employees(db_session, make_employee, policy):
    chosen = await make_employee("On Holiday")
    other = await make_employee("Working")
    result = await mark_holiday_range(
        db_session, FRIDAY_TO_MONDAY, policy, employee_ids=[chosen.id], name="Holi", actor_id=1
    )

    assert result.succeeded == 4
    assert all(item["created"] for item in result.affected)
    for day in FRIDAY_TO_MONDAY.dates():
        view = compose_day_entry(await get_entry(db_session, chosen.id, day))
        assert view.status == "holiday"
        assert view.manual_override_reason == "holiday: Holi"
        assert await get_entry(db_session, other.id, day) is None

    audits = (await db_session.execute(select(DayEntryAudit))).scalars().all()
    assert len(audits) == 4

    log = (await db_session.execute(select(OperationLog))).scalar_one()
    assert log.operation == OP_HOLIDAY_RANGE
    assert log.scope["employee_ids"] == [chosen.id]
    assert log.scope["name"] == "Holi"
    assert log.triggered_by == 1


@pytest.mark.asyncio
async def test_office_holiday_keeps_derived_data_underneath(db_session, make_employee, policy):
    worked = await make_employee("Came In Anyway")
    await make_employee("Stayed Home")
    await append_event(db_session, worked.id, _at(9), KIND_CHECK_IN)
    await append_event(db_session, worked.id, _at(17), KIND_CHECK_OUT)
    await derive_day_entry(db_session, worked.id, DAY, policy)
    await db_session.commit()

    result = await mark_holiday_range(db_session, DateScope.build(DAY), policy)
    assert result.succeeded == 2
    assert sorted(item["created"] for item in result.affected) == [False, True]

    view = compose_day_entry(await get_entry(db_session, worked.id, DAY))
    assert view.status == "holiday"
    assert view.derived_status == "completed"


@pytest.mark.asyncio
async def test_holiday_range_is_repeatable(db_session, make_employee, policy):
    emp = await make_employee("Twice")
    await submit_override(
        db_session, emp.id, DAY, OverrideRequest(status="leave_granted", reason="approved"), policy
    )
    first = await mark_holiday_range(db_session, FRIDAY_TO_MONDAY, policy, employee_ids=[emp.id])
    second = await mark_holiday_range(db_session, FRIDAY_TO_MONDAY, policy, employee_ids=[emp.id])

    assert first.succeeded == 4
    assert second.succeeded == 0
    assert second.skipped == 4
    entry = await get_entry(db_session, emp.id, DAY)
    assert [a.action for a in await list_audit(db_session, entry.id)] == [
        "override_set",
        "override_set",
    ]
    assert entry.manual_override_reason == "holiday"


@pytest.mark.asyncio
async def test_holiday_range_for_unknown_employees(db_session, policy):
    with pytest.raises(NotFoundError):
        await mark_holiday_range(db_session, FRIDAY_TO_MONDAY, policy, employee_ids=[999])
