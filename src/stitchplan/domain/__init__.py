"""Domain models and business rules for production planning."""

from stitchplan.domain.calendar import (
    DEFAULT_CALENDAR,
    DefaultWorkCalendar,
    WorkCalendar,
    add_business_days,
    add_working_minutes,
    sub_business_days,
    sub_working_minutes,
)
from stitchplan.domain.models import (
    Order,
    PabResult,
    ProcessDef,
    RampUpEntry,
    ScheduledInterval,
)
from stitchplan.domain.throughput import (
    DurationEstimator,
    efficiency_for_day,
    ramp_up_duration_minutes,
)

__all__ = [
    # Models
    "Order",
    "PabResult",
    "ProcessDef",
    "RampUpEntry",
    "ScheduledInterval",
    # Calendar
    "DEFAULT_CALENDAR",
    "DefaultWorkCalendar",
    "WorkCalendar",
    "add_business_days",
    "add_working_minutes",
    "sub_business_days",
    "sub_working_minutes",
    # Throughput
    "DurationEstimator",
    "efficiency_for_day",
    "ramp_up_duration_minutes",
]
