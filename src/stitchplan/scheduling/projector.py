"""Output projection of scheduled intervals onto calendar days.

Walks an interval forward through the working calendar, the same way the
end instant is derived, and credits each day with the units produced in
the productive minutes that fall on it.
"""

from collections import defaultdict
from datetime import date, timedelta
from typing import Iterable, Optional

from stitchplan.domain.calendar import DEFAULT_CALENDAR, WorkCalendar
from stitchplan.domain.models import RampUpEntry, ScheduledInterval
from stitchplan.domain.throughput import efficiency_for_day


class OutputProjector:
    """Distributes an interval's output across calendar days.

    Example:
        >>> projector = OutputProjector()
        >>> projector.project(interval, output_per_minute=0.5)
        {datetime.date(2024, 1, 15): 240.0}
    """

    def __init__(self, calendar: Optional[WorkCalendar] = None):
        self.calendar = calendar or DEFAULT_CALENDAR

    def minutes_by_day(self, interval: ScheduledInterval) -> dict[date, float]:
        """Productive minutes of an interval credited to each day."""
        calendar = self.calendar
        buckets: dict[date, float] = {}

        current = calendar.normalize(interval.start_datetime)
        remaining = interval.duration_minutes
        while remaining > 0:
            # normalize() always leaves current inside a working window
            closing = current.replace(
                hour=calendar.day_end().hour,
                minute=calendar.day_end().minute,
                second=0,
                microsecond=0,
            )
            minutes_left = (closing - current).total_seconds() / 60
            minutes_today = min(remaining, minutes_left)

            day = current.date()
            buckets[day] = buckets.get(day, 0.0) + minutes_today
            remaining -= minutes_today
            current = calendar.normalize(current + timedelta(minutes=minutes_today))

        return buckets

    def project(
        self,
        interval: ScheduledInterval,
        output_per_minute: float,
        ramp_up: Optional[list[RampUpEntry]] = None,
        default_efficiency: float = 100.0,
    ) -> dict[date, float]:
        """Units produced by an interval on each calendar day.

        Args:
            interval: The scheduled interval.
            output_per_minute: Units per productive minute at full efficiency.
            ramp_up: Optional ramp-up scheme. The n-th production day of the
                interval runs at the efficiency reached by day n.
            default_efficiency: Efficiency (%) used when ramp_up is given but
                empty.

        Returns:
            Dict mapping each day touched to units produced that day.
        """
        minutes = self.minutes_by_day(interval)

        if ramp_up is None:
            return {day: m * output_per_minute for day, m in minutes.items()}

        output = {}
        for production_day, day in enumerate(sorted(minutes), start=1):
            efficiency = efficiency_for_day(ramp_up, production_day, default_efficiency)
            output[day] = minutes[day] * output_per_minute * max(efficiency, 0) / 100
        return output

    def project_all(
        self,
        intervals: Iterable[ScheduledInterval],
        output_per_minute: float,
        ramp_up: Optional[list[RampUpEntry]] = None,
        default_efficiency: float = 100.0,
    ) -> dict[date, float]:
        """Merge the daily output of several intervals into shared buckets."""
        merged: dict[date, float] = defaultdict(float)
        for interval in intervals:
            daily = self.project(interval, output_per_minute, ramp_up, default_efficiency)
            for day, units in daily.items():
                merged[day] += units
        return dict(merged)
