"""Working calendar arithmetic.

This module converts between a start instant, an end instant and a duration
expressed in minutes of productive time. Productive time only exists inside
the daily working window (09:00-17:00 by default) on working days (every day
except Sunday by default). Whole-day offsets for lead times are provided as
business-day stepping.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Union

WORK_DAY_MINUTES = 8 * 60

SUNDAY = 6

DateLike = Union[date, datetime]


class WorkCalendar(ABC):
    """Abstract base class for working calendars.

    Subclasses define the daily working window and which days are worked.
    All arithmetic is implemented here on top of those three rules.
    """

    @abstractmethod
    def day_start(self) -> time:
        """Time of day when productive work begins."""
        pass

    @abstractmethod
    def day_end(self) -> time:
        """Time of day when productive work ends."""
        pass

    @abstractmethod
    def is_working_day(self, day: DateLike) -> bool:
        """Check if a calendar day contributes productive time."""
        pass

    @property
    def work_day_minutes(self) -> int:
        """Productive minutes in one full working day."""
        start = self.day_start()
        end = self.day_end()
        return (end.hour * 60 + end.minute) - (start.hour * 60 + start.minute)

    # Aware instants keep their offset; the window is read in that offset.
    def _opening(self, instant: DateLike) -> datetime:
        return datetime.combine(
            _as_date(instant), self.day_start(), tzinfo=_tzinfo(instant)
        )

    def _closing(self, instant: DateLike) -> datetime:
        return datetime.combine(
            _as_date(instant), self.day_end(), tzinfo=_tzinfo(instant)
        )

    def normalize(self, instant: datetime) -> datetime:
        """Move an instant forward to the nearest productive instant.

        At or after closing time the instant jumps to the next day's opening,
        before opening it is clamped up to opening on the same day, and
        non-working days are skipped entirely.
        """
        current = instant
        while True:
            if not self.is_working_day(current):
                current = self._opening(current + timedelta(days=1))
            elif current.time() >= self.day_end():
                current = self._opening(current + timedelta(days=1))
            elif current.time() < self.day_start():
                current = self._opening(current)
            else:
                return current

    def normalize_backward(self, instant: datetime) -> datetime:
        """Move an instant backward to the nearest instant inside a workday.

        After closing time the instant is clamped down to closing on the same
        day; before opening, or on a non-working day, it moves to the previous
        day's closing time.
        """
        current = instant
        while True:
            if not self.is_working_day(current):
                current = self._closing(current - timedelta(days=1))
            elif current.time() > self.day_end():
                current = self._closing(current)
            elif current.time() < self.day_start():
                current = self._closing(current - timedelta(days=1))
            else:
                return current

    def add_working_minutes(self, start: datetime, minutes: float) -> datetime:
        """Advance start by a number of productive minutes.

        Args:
            start: Instant to start from. Normalized forward first.
            minutes: Productive minutes to consume. Negative values walk
                backward (see sub_working_minutes).

        Returns:
            The instant at which the minutes are used up.

        Raises:
            ValueError: If minutes is NaN or infinite.
        """
        _check_minutes(minutes)
        if minutes < 0:
            return self.sub_working_minutes(start, -minutes)

        current = self.normalize(start)
        remaining = minutes
        while remaining > 0:
            if not self.is_working_day(current):
                current = self._opening(current + timedelta(days=1))
                continue

            minutes_left = _minutes(self._closing(current) - current)
            if remaining <= minutes_left:
                current = current + timedelta(minutes=remaining)
                remaining = 0
            else:
                remaining -= minutes_left
                current = self._opening(current + timedelta(days=1))

        return current

    def sub_working_minutes(self, end: datetime, minutes: float) -> datetime:
        """Walk back from end by a number of productive minutes.

        The budget for each day is the time already elapsed since opening;
        non-working days contribute nothing.

        Raises:
            ValueError: If minutes is NaN or infinite.
        """
        _check_minutes(minutes)
        if minutes < 0:
            return self.add_working_minutes(end, -minutes)

        current = self.normalize_backward(end)
        remaining = minutes
        while remaining > 0:
            if not self.is_working_day(current):
                current = self._closing(current - timedelta(days=1))
                continue

            elapsed = _minutes(current - self._opening(current))
            if remaining <= elapsed:
                current = current - timedelta(minutes=remaining)
                remaining = 0
            else:
                remaining -= elapsed
                current = self._closing(current - timedelta(days=1))

        return current

    def working_minutes_between(self, start: datetime, end: datetime) -> float:
        """Count productive minutes in the span [start, end)."""
        if end <= start:
            return 0.0

        current = self.normalize(start)
        total = 0.0
        while current < end:
            closing = min(self._closing(current), end)
            if closing > current:
                total += _minutes(closing - current)
            current = self.normalize(self._opening(current + timedelta(days=1)))
        return total

    def add_business_days(self, day: DateLike, days: int) -> DateLike:
        """Step forward a number of working days.

        The date moves one calendar day at a time and a step only counts
        when it lands on a working day. Time of day is kept as is.
        """
        if days < 0:
            return self.sub_business_days(day, -days)

        current = day
        added = 0
        while added < days:
            current = current + timedelta(days=1)
            if self.is_working_day(current):
                added += 1
        return current

    def sub_business_days(self, day: DateLike, days: int) -> DateLike:
        """Step backward a number of working days."""
        if days < 0:
            return self.add_business_days(day, -days)

        current = day
        subtracted = 0
        while subtracted < days:
            current = current - timedelta(days=1)
            if self.is_working_day(current):
                subtracted += 1
        return current

    def working_dates(self, start: date, end: date) -> list[date]:
        """All working days from start to end, both inclusive."""
        dates = []
        current = _as_date(start)
        last = _as_date(end)
        while current <= last:
            if self.is_working_day(current):
                dates.append(current)
            current = current + timedelta(days=1)
        return dates

    def reporting_window(self, start: date, days: int = 90) -> list[date]:
        """Working days within a contiguous window of calendar days.

        Args:
            start: First calendar day of the window.
            days: Length of the window in calendar days.
        """
        first = _as_date(start)
        return self.working_dates(first, first + timedelta(days=days - 1))


@dataclass(frozen=True)
class DefaultWorkCalendar(WorkCalendar):
    """Default garment floor calendar.

    - Working window: 09:00 to 17:00 (480 productive minutes)
    - Working days: every day except Sunday
    """

    start_time: time = time(9, 0)
    end_time: time = time(17, 0)
    non_working_weekdays: frozenset[int] = field(
        default_factory=lambda: frozenset({SUNDAY})
    )

    def day_start(self) -> time:
        return self.start_time

    def day_end(self) -> time:
        return self.end_time

    def is_working_day(self, day: DateLike) -> bool:
        return day.weekday() not in self.non_working_weekdays


DEFAULT_CALENDAR = DefaultWorkCalendar()


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def _tzinfo(value: DateLike):
    if isinstance(value, datetime):
        return value.tzinfo
    return None


def _minutes(delta: timedelta) -> float:
    return delta.total_seconds() / 60


def _check_minutes(minutes: float) -> None:
    if math.isnan(minutes) or math.isinf(minutes):
        raise ValueError(f"Working minutes must be finite, got {minutes!r}")


def add_working_minutes(start: datetime, minutes: float) -> datetime:
    """Advance start by productive minutes on the default calendar."""
    return DEFAULT_CALENDAR.add_working_minutes(start, minutes)


def sub_working_minutes(end: datetime, minutes: float) -> datetime:
    """Walk back from end by productive minutes on the default calendar."""
    return DEFAULT_CALENDAR.sub_working_minutes(end, minutes)


def add_business_days(day: DateLike, days: int) -> DateLike:
    """Step forward working days on the default calendar."""
    return DEFAULT_CALENDAR.add_business_days(day, days)


def sub_business_days(day: DateLike, days: int) -> DateLike:
    """Step backward working days on the default calendar."""
    return DEFAULT_CALENDAR.sub_business_days(day, days)
