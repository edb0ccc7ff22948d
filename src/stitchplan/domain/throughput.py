"""Throughput and duration rules.

SAM (standard allocated minutes) is the reciprocal of throughput. Line-paced
processes such as sewing additionally follow a ramp-up scheme: the first
production days run below peak efficiency.
"""

from dataclasses import dataclass, field
from typing import Optional

from stitchplan.domain.calendar import WORK_DAY_MINUTES
from stitchplan.domain.models import (
    Order,
    ProcessDef,
    RampUpEntry,
    ScheduledInterval,
)

SEWING_PROCESS_ID = "sewing"

# Durations beyond this many working days are treated as unreachable.
MAX_PRODUCTION_DAYS = 10000


def output_per_minute(process: Optional[ProcessDef]) -> float:
    """Units per productive minute for a process (0 if unknown)."""
    if process is None:
        return 0.0
    return process.output_per_minute


def efficiency_for_day(
    ramp_up: list[RampUpEntry],
    production_day: int,
    default: float = 100.0,
) -> float:
    """Efficiency (%) that applies on a 1-based production day.

    The last entry whose day is reached wins. Before the first entry, the
    scheme's final (peak) efficiency applies; with no scheme, the default.
    """
    if not ramp_up:
        return default

    efficiency = ramp_up[-1].efficiency
    for entry in ramp_up:
        if production_day >= entry.day:
            efficiency = entry.efficiency
    return efficiency


def ramp_up_duration_minutes(
    quantity: float,
    sam: float,
    ramp_up: list[RampUpEntry],
    lines: int = 1,
    default_efficiency: float = 100.0,
    work_day_minutes: int = WORK_DAY_MINUTES,
) -> float:
    """Productive minutes needed to produce a quantity under ramp-up.

    Production is filled day by day; each day's rate depends on the
    efficiency reached by that production day.

    Returns:
        Minutes required, or infinity if the scheme can never finish.
    """
    if quantity <= 0 or sam <= 0 or lines <= 0:
        return 0.0

    remaining = quantity
    total_minutes = 0.0
    while remaining > 0:
        production_day = int(total_minutes // work_day_minutes) + 1
        efficiency = efficiency_for_day(ramp_up, production_day, default_efficiency)
        if efficiency <= 0:
            return float("inf")

        rate = (efficiency / 100) / sam * lines
        minutes_left_today = work_day_minutes - (total_minutes % work_day_minutes)
        max_output_today = minutes_left_today * rate

        if remaining <= max_output_today:
            total_minutes += remaining / rate
            remaining = 0
        else:
            total_minutes += minutes_left_today
            remaining -= max_output_today

        if total_minutes > work_day_minutes * MAX_PRODUCTION_DAYS:
            return float("inf")

    return total_minutes


@dataclass
class DurationEstimator:
    """Estimates how long a batch takes for an order and process.

    Processes listed in ramp_up_process_ids follow the order's ramp-up
    scheme; all others take quantity x SAM minutes.

    Example:
        >>> estimator = DurationEstimator(processes, orders)
        >>> estimator.estimate("ZAR4531-Shirt-Blue", "cutting", 500)
    """

    processes: dict[str, ProcessDef]
    orders: dict[str, Order] = field(default_factory=dict)
    ramp_up_process_ids: frozenset[str] = frozenset({SEWING_PROCESS_ID})

    @classmethod
    def from_lists(
        cls,
        processes: list[ProcessDef],
        orders: list[Order],
    ) -> "DurationEstimator":
        return cls(
            processes={p.id: p for p in processes},
            orders={o.id: o for o in orders},
        )

    def estimate(self, order_id: str, process_id: str, quantity: float) -> float:
        """Productive minutes for a batch.

        Raises:
            KeyError: If the process is unknown.
        """
        process = self.processes[process_id]
        order = self.orders.get(order_id)

        if process_id in self.ramp_up_process_ids and order is not None:
            return ramp_up_duration_minutes(
                quantity,
                process.sam,
                order.ramp_up,
                lines=order.lines,
                default_efficiency=order.budgeted_efficiency,
            )

        return quantity * process.sam

    def for_interval(self, interval: ScheduledInterval, quantity: float) -> float:
        """Duration of a batch cut from an existing interval.

        Usable as the schedule store's split duration function.
        """
        return self.estimate(interval.order_id, interval.process_id, quantity)
