"""Tests for the late classifier and its remote/local agreement."""

from datetime import datetime, time

import pytest

from attendance_engine.services.late import classify_late, is_late, late_cutoff
from attendance_engine.services.policy import AttendancePolicy

# (check-in, expected) under 10:30 + 15 minutes
LATE_VECTOR = [
    (datetime(2024, 3, 1, 9, 0), False),
    (datetime(2024, 3, 1, 10, 30), False),
    (datetime(2024, 3, 1, 10, 45), False),
    (datetime(2024, 3, 1, 10, 45, 1), True),
    (datetime(2024, 3, 1, 10, 50), True),
    (datetime(2024, 3, 1, 23, 59), True),
    (datetime(2024, 3, 2, 0, 5), False),
]


async def _minutes_based_check(check_in: datetime, policy: AttendancePolicy) -> bool:
    """Same rule, computed from seconds past midnight like a database function would."""
    start = policy.workday_start.hour * 3600 + policy.workday_start.minute * 60
    cutoff = start + policy.late_threshold_minutes * 60
    seconds = check_in.hour * 3600 + check_in.minute * 60 + check_in.second
    return seconds > cutoff


def test_cutoff_is_on_the_check_in_day(policy):
    assert late_cutoff(datetime(2024, 3, 1, 8, 0), policy) == datetime(2024, 3, 1, 10, 45)


def test_ten_fifty_is_late(policy):
    assert is_late(datetime(2024, 3, 1, 10, 50), policy) is True


def test_no_check_in_is_never_late(policy):
    assert is_late(None, policy) is False


@pytest.mark.parametrize("check_in,expected", LATE_VECTOR)
def test_local_rule(policy, check_in, expected):
    assert is_late(check_in, policy) is expected


@pytest.mark.asyncio
@pytest.mark.parametrize("check_in,expected", LATE_VECTOR)
async def test_remote_rule_agrees_with_local(policy, check_in, expected):
    """Both implementations classify the shared vector identically."""
    assert await classify_late(check_in, policy, _minutes_based_check) is expected
    assert await classify_late(check_in, policy) is expected


@pytest.mark.asyncio
async def test_remote_failure_falls_back_to_local(policy):
    async def broken(_check_in, _policy):
        raise ConnectionError("rpc unavailable")

    assert await classify_late(datetime(2024, 3, 1, 10, 50), policy, broken) is True
    assert await classify_late(datetime(2024, 3, 1, 9, 50), policy, broken) is False


def test_threshold_is_configurable():
    strict = AttendancePolicy(workday_start=time(9, 0), late_threshold_minutes=0)
    assert is_late(datetime(2024, 3, 1, 9, 0, 1), strict) is True
    assert is_late(datetime(2024, 3, 1, 9, 0), strict) is False
