"""
Late classifier.

``is_late`` is the one definition of the lateness policy. ``classify_late``
lets a caller prefer another implementation of the same policy (for example
a database function) and falls back to ``is_late`` if that call fails.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

from attendance_engine.services.policy import AttendancePolicy

logger = logging.getLogger(__name__)

RemoteLateCheck = Callable[[datetime, AttendancePolicy], Awaitable[bool]]


def late_cutoff(check_in: datetime, policy: AttendancePolicy) -> datetime:
    """Workday start plus grace threshold, on the check-in's own calendar day."""
    start = check_in.replace(
        hour=policy.workday_start.hour,
        minute=policy.workday_start.minute,
        second=0,
        microsecond=0,
    )
    return start + timedelta(minutes=policy.late_threshold_minutes)


def is_late(check_in: datetime | None, policy: AttendancePolicy) -> bool:
    if check_in is None:
        return False
    return check_in > late_cutoff(check_in, policy)


async def classify_late(
    check_in: datetime | None,
    policy: AttendancePolicy,
    remote: RemoteLateCheck | None = None,
) -> bool:
    if check_in is None:
        return False
    if remote is not None:
        try:
            return bool(await remote(check_in, policy))
        except Exception as e:  # any remote failure means "use the local policy"
            logger.warning("Remote late check failed, using local policy: %s", e)
    return is_late(check_in, policy)
