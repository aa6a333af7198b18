"""Tests for day entry derivation and the read-time compose rule."""

from datetime import date, datetime

import pytest
from sqlalchemy import func, select

from attendance_engine.models.attendance_log import (KIND_CHECK_IN, KIND_CHECK_OUT,
                                                     AttendanceLog)
from attendance_engine.models.day_entry import DayEntry
from attendance_engine.services.day_entries import (compose_day_entry, derive_day_entry,
                                                    fold_events, get_entry,
                                                    list_day_entries, minutes_between)
from attendance_engine.services.punches import append_event

DAY = date(2024, 3, 1)


def _event(kind: str, hour: int, minute: int = 0) -> AttendanceLog:
    return AttendanceLog(employee_id=1, timestamp=datetime(2024, 3, 1, hour, minute), kind=kind)


def test_minutes_between_floors_and_never_negative():
    assert minutes_between(datetime(2024, 3, 1, 9, 0), datetime(2024, 3, 1, 17, 0, 59)) == 480
    assert minutes_between(datetime(2024, 3, 1, 17, 0), datetime(2024, 3, 1, 9, 0)) == 0
    assert minutes_between(None, datetime(2024, 3, 1, 9, 0)) is None


def test_fold_is_order_independent():
    events = [
        _event(KIND_CHECK_OUT, 18),
        _event(KIND_CHECK_IN, 9, 30),
        _event(KIND_CHECK_OUT, 13),
        _event(KIND_CHECK_IN, 9, 5),
    ]
    forward = fold_events(events)
    backward = fold_events(list(reversed(events)))
    assert forward == backward
    assert forward.check_in == datetime(2024, 3, 1, 9, 5)
    assert forward.check_out == datetime(2024, 3, 1, 18)


def test_fold_ignores_checkouts_before_first_check_in():
    boundary = fold_events([_event(KIND_CHECK_OUT, 8), _event(KIND_CHECK_IN, 9)])
    assert boundary.check_out is None


async def _punch(db, employee_id: int, kind: str, hour: int, minute: int = 0) -> None:
    await append_event(db, employee_id, datetime(2024, 3, 1, hour, minute), kind)


@pytest.mark.asyncio
async def test_check_in_only_is_in_progress(db_session, make_employee, policy):
    emp = await make_employee("Open Day")
    await _punch(db_session, emp.id, KIND_CHECK_IN, 9, 5)
    entry = await derive_day_entry(db_session, emp.id, DAY, policy)
    await db_session.commit()

    assert entry.status == "in_progress"
    assert entry.check_in_at == datetime(2024, 3, 1, 9, 5)
    assert entry.check_out_at is None
    assert entry.worked_minutes is None
    assert entry.is_late is False


@pytest.mark.asyncio
async def test_late_completed_day(db_session, make_employee, policy):
    emp = await make_employee("Late Day")
    await _punch(db_session, emp.id, KIND_CHECK_IN, 10, 50)
    await _punch(db_session, emp.id, KIND_CHECK_OUT, 18, 50)
    entry = await derive_day_entry(db_session, emp.id, DAY, policy)

    assert entry.status == "completed"
    assert entry.worked_minutes == 480
    assert entry.is_late is True


@pytest.mark.asyncio
async def test_no_events_creates_nothing(db_session, make_employee, policy):
    emp = await make_employee("Nobody")
    assert await derive_day_entry(db_session, emp.id, DAY, policy) is None
    assert await get_entry(db_session, emp.id, DAY) is None


@pytest.mark.asyncio
async def test_checkout_only_moves_forward(db_session, make_employee, policy):
    """Adding an earlier checkout never shortens the day."""
    emp = await make_employee("Monotonic")
    await _punch(db_session, emp.id, KIND_CHECK_IN, 9)
    await _punch(db_session, emp.id, KIND_CHECK_OUT, 18)
    await derive_day_entry(db_session, emp.id, DAY, policy)

    await _punch(db_session, emp.id, KIND_CHECK_OUT, 14)
    entry = await derive_day_entry(db_session, emp.id, DAY, policy)
    assert entry.check_out_at == datetime(2024, 3, 1, 18)

    await _punch(db_session, emp.id, KIND_CHECK_OUT, 19, 30)
    entry = await derive_day_entry(db_session, emp.id, DAY, policy)
    assert entry.check_out_at == datetime(2024, 3, 1, 19, 30)
    assert entry.worked_minutes == 630


@pytest.mark.asyncio
async def test_rederiving_keeps_one_row(db_session, make_employee, policy):
    emp = await make_employee("Single Row")
    await _punch(db_session, emp.id, KIND_CHECK_IN, 9)
    for _ in range(3):
        await derive_day_entry(db_session, emp.id, DAY, policy)
        await db_session.commit()

    count = await db_session.scalar(
        select(func.count()).select_from(DayEntry).where(DayEntry.employee_id == emp.id)
    )
    assert count == 1


@pytest.mark.asyncio
async def test_existing_auto_checkout_is_kept(db_session, make_employee, policy):
    """A sweeper checkout survives re-derivation when the log has none."""
    emp = await make_employee("Swept")
    await _punch(db_session, emp.id, KIND_CHECK_IN, 9)
    entry = await derive_day_entry(db_session, emp.id, DAY, policy)
    entry.check_out_at = datetime(2024, 3, 1, 17)
    entry.status = "completed"
    entry.modification_reason = "auto checkout"
    await db_session.commit()

    entry = await derive_day_entry(db_session, emp.id, DAY, policy)
    assert entry.check_out_at == datetime(2024, 3, 1, 17)
    assert entry.status == "completed"
    assert entry.worked_minutes == 480


@pytest.mark.asyncio
async def test_real_checkout_replaces_auto_checkout(db_session, make_employee, policy):
    emp = await make_employee("Late Punch")
    await _punch(db_session, emp.id, KIND_CHECK_IN, 9)
    entry = await derive_day_entry(db_session, emp.id, DAY, policy)
    entry.check_out_at = datetime(2024, 3, 1, 17)
    entry.status = "completed"
    entry.modification_reason = "auto checkout"
    await db_session.commit()

    await _punch(db_session, emp.id, KIND_CHECK_OUT, 18, 15)
    entry = await derive_day_entry(db_session, emp.id, DAY, policy)
    assert entry.check_out_at == datetime(2024, 3, 1, 18, 15)
    assert entry.modification_reason is None


@pytest.mark.asyncio
async def test_remark_is_recorded(db_session, make_employee, policy):
    emp = await make_employee("Remarked")
    await _punch(db_session, emp.id, KIND_CHECK_IN, 9)
    entry = await derive_day_entry(db_session, emp.id, DAY, policy, remark="MIS")
    assert entry.modification_reason == "provider remark: MIS"


# ── Compose ─────────────────────────────────────────────────────────
def _entry(**kwargs) -> DayEntry:
    defaults = dict(
        id=1,
        employee_id=1,
        entry_date=DAY,
        status="in_progress",
        check_in_at=datetime(2024, 3, 1, 9),
        check_out_at=None,
        worked_minutes=None,
        is_late=False,
    )
    defaults.update(kwargs)
    return DayEntry(**defaults)


def test_compose_without_override_shows_derived():
    view = compose_day_entry(_entry())
    assert view.status == "in_progress"
    assert view.is_overridden is False
    assert view.check_in_at == datetime(2024, 3, 1, 9)


def test_compose_override_wins():
    view = compose_day_entry(
        _entry(
            manual_status="present",
            manual_check_in_at=datetime(2024, 3, 1, 11),
            manual_check_out_at=datetime(2024, 3, 1, 19),
            manual_worked_minutes=480,
            manual_is_late=True,
            manual_override_reason="badge forgotten",
        )
    )
    assert view.status == "present"
    assert view.derived_status == "in_progress"
    assert view.check_in_at == datetime(2024, 3, 1, 11)
    assert view.worked_minutes == 480
    assert view.is_late is True
    assert view.is_overridden is True


def test_compose_timeless_override_hides_times():
    view = compose_day_entry(_entry(manual_status="leave_granted", manual_is_late=True))
    assert view.status == "leave_granted"
    assert view.check_in_at is None
    assert view.check_out_at is None
    assert view.is_late is False


@pytest.mark.asyncio
async def test_list_filters_on_displayed_status(db_session, make_employee):
    emp = await make_employee("Filter")
    db_session.add_all(
        [
            DayEntry(employee_id=emp.id, entry_date=date(2024, 3, 1), status="absent", is_late=False),
            DayEntry(
                employee_id=emp.id,
                entry_date=date(2024, 3, 4),
                status="absent",
                is_late=False,
                manual_status="leave_granted",
                manual_override_reason="approved leave",
            ),
        ]
    )
    await db_session.commit()

    absent = await list_day_entries(db_session, status="absent")
    assert [v.entry_date for v in absent] == [date(2024, 3, 1)]
    leave = await list_day_entries(db_session, employee_id=emp.id, status="leave_granted")
    assert [v.entry_date for v in leave] == [date(2024, 3, 4)]
