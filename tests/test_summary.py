"""Tests for the per-employee attendance summary."""

from dataclasses import asdict
from datetime import date, datetime, timedelta

import pytest

from attendance_engine.core.exceptions import NotFoundError
from attendance_engine.services.backfill import run_backfill
from attendance_engine.services.ingest import record_manual_punch
from attendance_engine.services.overrides import OverrideRequest, submit_override
from attendance_engine.services.policy import local_today
from attendance_engine.services.scope import DateScope
from attendance_engine.services.summary import summarize_attendance

FRIDAY = date(2024, 3, 1)
MONDAY = date(2024, 3, 4)
TUESDAY = date(2024, 3, 5)
WEEK = DateScope.build(FRIDAY, TUESDAY)


def _counts(summary) -> dict:
    data = asdict(summary)
    for key in ("employee_id", "employee_name", "start_date", "end_date"):
        data.pop(key)
    return data


@pytest.mark.asyncio
async def test_summary_counts_each_kind_of_day(db_session, make_employee, policy):
    emp = await make_employee("Busy Week")
    await record_manual_punch(db_session, emp.id, datetime(2024, 3, 1, 10, 50), "check_in", policy)
    await record_manual_punch(db_session, emp.id, datetime(2024, 3, 1, 18, 0), "check_out", policy)
    await record_manual_punch(db_session, emp.id, datetime(2024, 3, 4, 9, 0), "check_in", policy)
    await submit_override(
        db_session, emp.id, TUESDAY, OverrideRequest(status="leave_granted", reason="wedding"), policy
    )

    [summary] = await summarize_attendance(db_session, WEEK, [emp.id])
    assert summary.employee_name == "Busy Week"
    assert _counts(summary) == {
        "total_days": 5,
        "work_days": 3,
        "present_days": 2,
        "in_progress_days": 1,
        "late_days": 1,
        "absent_days": 0,
        "holiday_days": 2,
        "leave_days": 1,
        "pending_days": 0,
    }


@pytest.mark.asyncio
async def test_missing_days_follow_the_work_week(db_session, make_employee):
    """Backfilled or not, a silent work day is absent and a weekend a holiday."""
    backfilled = await make_employee("Backfilled")
    silent = await make_employee("Silent")
    await run_backfill(db_session, WEEK, [backfilled.id])

    summaries = {s.employee_id: s for s in await summarize_attendance(db_session, WEEK)}
    assert _counts(summaries[backfilled.id]) == _counts(summaries[silent.id])
    assert summaries[silent.id].absent_days == 3
    assert summaries[silent.id].holiday_days == 2


@pytest.mark.asyncio
async def test_summary_reads_through_overrides(db_session, make_employee, policy):
    emp = await make_employee("Overridden Day")
    await record_manual_punch(db_session, emp.id, datetime(2024, 3, 1, 9, 0), "check_in", policy)
    await record_manual_punch(db_session, emp.id, datetime(2024, 3, 1, 17, 0), "check_out", policy)
    await submit_override(
        db_session, emp.id, FRIDAY, OverrideRequest(status="absent", reason="left unapproved"), policy
    )

    [summary] = await summarize_attendance(db_session, DateScope.build(FRIDAY), [emp.id])
    assert summary.present_days == 0
    assert summary.absent_days == 1


@pytest.mark.asyncio
async def test_today_without_punches_is_pending(db_session, make_employee):
    emp = await make_employee("Not In Yet")
    today = local_today()
    [summary] = await summarize_attendance(db_session, DateScope.build(today), [emp.id])
    assert summary.total_days == 1
    assert summary.pending_days == 1
    assert summary.absent_days == 0


@pytest.mark.asyncio
async def test_future_days_are_not_counted(db_session, make_employee):
    emp = await make_employee("Next Week")
    tomorrow = local_today() + timedelta(days=1)
    scope = DateScope.build(tomorrow, tomorrow + timedelta(days=6))
    [summary] = await summarize_attendance(db_session, scope, [emp.id])
    assert summary.total_days == 0
    assert summary.end_date == scope.end


@pytest.mark.asyncio
async def test_summary_for_unknown_employee(db_session):
    with pytest.raises(NotFoundError):
        await summarize_attendance(db_session, WEEK, [999])
