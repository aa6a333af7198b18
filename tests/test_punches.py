"""Tests for the punch normalizer and the deduplicating event store."""

from datetime import date, datetime, time

import pytest
from sqlalchemy import func, select

from attendance_engine.core.exceptions import MalformedPunchError
from attendance_engine.models.attendance_log import (KIND_CHECK_IN, KIND_CHECK_OUT,
                                                     AttendanceLog)
from attendance_engine.schemas.provider import ProviderRecord
from attendance_engine.services.punches import (append_event, append_punch, list_events,
                                                normalize_record, parse_provider_date,
                                                parse_provider_time)


def _record(provider_row, *args, **kwargs) -> ProviderRecord:
    return ProviderRecord.model_validate(provider_row(*args, **kwargs))


# ── Parsing ─────────────────────────────────────────────────────────
def test_parse_provider_date():
    assert parse_provider_date("01/03/2024") == date(2024, 3, 1)
    assert parse_provider_date("1/3/2024") == date(2024, 3, 1)
    assert parse_provider_date("31/02/2024") is None
    assert parse_provider_date("2024-03-01") is None
    assert parse_provider_date(None) is None


def test_parse_provider_time():
    assert parse_provider_time("09:05") == time(9, 5)
    assert parse_provider_time("18:30:15") == time(18, 30, 15)
    assert parse_provider_time("--:--") is None
    assert parse_provider_time("25:00") is None
    assert parse_provider_time("") is None


# ── Normalization ───────────────────────────────────────────────────
def test_echoed_out_time_is_not_a_checkout(provider_row):
    """{E1, 09:05, 09:05, 01/03/2024} → check-in only."""
    punch = normalize_record(_record(provider_row, "E1", date(2024, 3, 1), "09:05", "09:05"))
    assert punch.entry_date == date(2024, 3, 1)
    assert punch.check_in == datetime(2024, 3, 1, 9, 5)
    assert punch.check_out is None


def test_out_time_after_in_time_is_a_checkout(provider_row):
    punch = normalize_record(_record(provider_row, "E1", date(2024, 3, 1), "09:05", "18:10:30"))
    assert punch.check_out == datetime(2024, 3, 1, 18, 10, 30)


def test_out_time_before_in_time_is_dropped(provider_row):
    punch = normalize_record(_record(provider_row, "E1", date(2024, 3, 1), "09:05", "08:00"))
    assert punch.check_out is None


@pytest.mark.parametrize("out_time", ["--:--", "00:00", "", "garbage"])
def test_placeholder_out_times_are_absent(provider_row, out_time):
    punch = normalize_record(_record(provider_row, "E1", date(2024, 3, 1), "09:05", out_time))
    assert punch.check_out is None


def test_missing_in_time_is_malformed(provider_row):
    with pytest.raises(MalformedPunchError) as exc:
        normalize_record(_record(provider_row, "E1", date(2024, 3, 1), "--:--", "18:00"))
    assert exc.value.external_code == "E1"
    assert exc.value.date_string == "01/03/2024"


def test_bad_date_is_malformed(provider_row):
    row = provider_row("E1", date(2024, 3, 1), "09:00", DateString="2024/03/01")
    with pytest.raises(MalformedPunchError):
        normalize_record(ProviderRecord.model_validate(row))


def test_remark_is_carried(provider_row):
    punch = normalize_record(_record(provider_row, "E1", date(2024, 3, 1), "09:00", Remark=" MIS "))
    assert punch.remark == "MIS"


# ── Event store ─────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_append_event_deduplicates(db_session, make_employee):
    """The same (employee, timestamp, kind) is stored once."""
    emp = await make_employee("Dedup")
    ts = datetime(2024, 3, 1, 9, 5)

    assert await append_event(db_session, emp.id, ts, KIND_CHECK_IN) is True
    await db_session.commit()
    assert await append_event(db_session, emp.id, ts, KIND_CHECK_IN) is False
    # Same instant, other kind, is a different event
    assert await append_event(db_session, emp.id, ts, KIND_CHECK_OUT) is True
    await db_session.commit()

    count = await db_session.scalar(select(func.count()).select_from(AttendanceLog))
    assert count == 2


@pytest.mark.asyncio
async def test_append_punch_keeps_raw_payload(db_session, make_employee, provider_row):
    emp = await make_employee("Payload")
    record = _record(provider_row, "P1", date(2024, 3, 1), "09:00", "18:00", DeviceID=42)
    punch = normalize_record(record)

    written = await append_punch(
        db_session, emp.id, punch, device_id=record.device_id, raw_payload=record.raw()
    )
    await db_session.commit()
    assert written == 2

    events = await list_events(db_session, employee_id=emp.id)
    assert [e.kind for e in events] == [KIND_CHECK_IN, KIND_CHECK_OUT]
    assert events[0].device_id == "42"
    assert events[0].external_code == "P1"
    assert events[0].raw_payload["INTime"] == "09:00"

    again = await append_punch(db_session, emp.id, punch)
    assert again == 0
