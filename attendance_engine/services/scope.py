"""Date-range scopes shared by the batch operations."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, timedelta

from attendance_engine.core.exceptions import InvalidScopeError


@dataclass(frozen=True)
class DateScope:
    start: date
    end: date

    @classmethod
    def build(
        cls,
        start: date,
        end: date | None = None,
        max_days: int | None = None,
    ) -> "DateScope":
        end = end or start
        if end < start:
            raise InvalidScopeError(f"End date {end} is before start date {start}")
        span = (end - start).days + 1
        if max_days is not None and span > max_days:
            raise InvalidScopeError(f"Date range spans {span} days (max {max_days})")
        return cls(start, end)

    def clamp_end(self, last: date) -> "DateScope | None":
        """Drop dates after *last*; None when nothing is left."""
        if self.start > last:
            return None
        return DateScope(self.start, min(self.end, last))

    def dates(self) -> Iterator[date]:
        current = self.start
        while current <= self.end:
            yield current
            current += timedelta(days=1)

    def as_dict(self) -> dict[str, str]:
        return {"start_date": self.start.isoformat(), "end_date": self.end.isoformat()}
