"""Projected Average Balance (PAB) propagation.

For every order, the processes it runs through are walked in execution
order. Each process receives input (the order quantity for the first
process, the predecessor's output for the others), produces output
according to its scheduled intervals, and carries a running balance from
one reporting day to the next:

    balance[day] = balance[previous day] + input[day] - output[day]

The day scan is strictly sequential: a day's balance depends on the
previous day's balance, so days are never skipped or reordered.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Optional, Union

from stitchplan.domain.calendar import DEFAULT_CALENDAR, WorkCalendar
from stitchplan.domain.models import (
    Order,
    PabResult,
    ProcessDef,
    ScheduledInterval,
)
from stitchplan.domain.throughput import SEWING_PROCESS_ID, output_per_minute
from stitchplan.scheduling.projector import OutputProjector
from stitchplan.scheduling.sequence import SequenceResolver

logger = logging.getLogger(__name__)


@dataclass
class PabConfig:
    """Configuration for PAB propagation.

    Attributes:
        consume_predecessor_output: If True, each day of predecessor output
            is handed to the next process once. If False, a downstream day
            takes the most recent nonzero predecessor day even when an
            earlier downstream day already received it.
        ramp_up_process_ids: Processes whose output follows the order's
            ramp-up scheme.
    """

    consume_predecessor_output: bool = True
    ramp_up_process_ids: frozenset[str] = frozenset({SEWING_PROCESS_ID})


@dataclass
class _ProcessDays:
    """Daily figures for one process over the reporting window."""

    inputs: dict[date, float]
    outputs: dict[date, float]
    balances: dict[date, float]


class PabPropagator:
    """Computes daily input, output and running balance per process.

    Example:
        >>> propagator = PabPropagator()
        >>> result = propagator.compute(intervals, orders, processes, dates)
        >>> result.balances["ORD-1"]["cutting"][date(2024, 1, 15)]
        760.0
    """

    def __init__(
        self,
        calendar: Optional[WorkCalendar] = None,
        config: Optional[PabConfig] = None,
        projector: Optional[OutputProjector] = None,
        resolver: Optional[SequenceResolver] = None,
    ):
        self.calendar = calendar or DEFAULT_CALENDAR
        self.config = config or PabConfig()
        self.projector = projector or OutputProjector(self.calendar)
        self.resolver = resolver or SequenceResolver()

    def compute(
        self,
        intervals: Iterable[ScheduledInterval],
        orders: Iterable[Order],
        processes: Iterable[ProcessDef],
        dates: Iterable[Union[date, datetime]],
    ) -> PabResult:
        """Run one propagation pass.

        Args:
            intervals: All scheduled intervals.
            orders: Orders with quantity and canonical process sequence.
            processes: Process definitions with SAM.
            dates: Reporting days. Sorted and de-duplicated before the scan.

        Returns:
            PabResult holding only orders that have scheduled intervals.
            Orders whose computation raised are listed in result.errors.
        """
        intervals = list(intervals)
        orders = list(orders)
        process_map = {p.id: p for p in processes}
        window = sorted({d.date() if isinstance(d, datetime) else d for d in dates})

        result = PabResult(process_names={pid: p.name for pid, p in process_map.items()})

        by_order: dict[str, list[ScheduledInterval]] = defaultdict(list)
        for interval in intervals:
            by_order[interval.order_id].append(interval)

        known_orders = {o.id for o in orders}
        for order_id in by_order:
            if order_id not in known_orders:
                logger.warning("Skipping intervals of unknown order %s", order_id)

        for process_id in sorted({i.process_id for i in intervals} - process_map.keys()):
            logger.warning("No process definition for %s, output counted as 0", process_id)

        for order in orders:
            order_intervals = by_order.get(order.id)
            if not order_intervals:
                continue
            try:
                self._compute_order(order, order_intervals, process_map, window, result)
            except Exception as exc:
                logger.exception("PAB computation failed for order %s", order.id)
                result.errors[order.id] = str(exc)

        return result

    def _compute_order(
        self,
        order: Order,
        intervals: list[ScheduledInterval],
        process_map: dict[str, ProcessDef],
        window: list[date],
        result: PabResult,
    ) -> None:
        """Compute one order and publish it to the result in one step."""
        by_process: dict[str, list[ScheduledInterval]] = defaultdict(list)
        for interval in intervals:
            by_process[interval.process_id].append(interval)

        date_ranges = {
            pid: (
                min(i.start_datetime for i in group),
                max(i.end_datetime for i in group),
            )
            for pid, group in by_process.items()
        }

        sequence = self.resolver.resolve(order.id, intervals, order.process_ids)

        start_dates: dict[str, date] = {}
        days: dict[str, _ProcessDays] = {}
        predecessor: Optional[dict[date, float]] = None

        for index, process_id in enumerate(sequence):
            group = by_process[process_id]
            start_dates[process_id] = self.calendar.normalize(
                date_ranges[process_id][0]
            ).date()

            daily_output = self._daily_output(order, process_id, group, process_map)

            days[process_id] = self._scan(
                order,
                window,
                daily_output,
                release_day=start_dates[process_id] if index == 0 else None,
                predecessor=predecessor,
            )
            predecessor = days[process_id].outputs

        result.sequences[order.id] = sequence
        result.process_start_dates[order.id] = start_dates
        result.process_date_ranges[order.id] = date_ranges
        result.outputs[order.id] = {pid: d.outputs for pid, d in days.items()}
        result.inputs[order.id] = {pid: d.inputs for pid, d in days.items()}
        result.balances[order.id] = {pid: d.balances for pid, d in days.items()}

    def _daily_output(
        self,
        order: Order,
        process_id: str,
        intervals: list[ScheduledInterval],
        process_map: dict[str, ProcessDef],
    ) -> dict[date, float]:
        rate = output_per_minute(process_map.get(process_id))
        if rate <= 0:
            return {}

        if process_id in self.config.ramp_up_process_ids:
            # Without a scheme the budgeted efficiency applies every day.
            return self.projector.project_all(
                intervals,
                rate,
                ramp_up=list(order.ramp_up),
                default_efficiency=order.budgeted_efficiency,
            )
        return self.projector.project_all(intervals, rate)

    def _scan(
        self,
        order: Order,
        window: list[date],
        daily_output: dict[date, float],
        release_day: Optional[date],
        predecessor: Optional[dict[date, float]],
    ) -> _ProcessDays:
        """Walk the reporting days in order, carrying the balance forward."""
        inputs: dict[date, float] = {}
        outputs: dict[date, float] = {}
        balances: dict[date, float] = {}

        unconsumed = dict(predecessor) if predecessor is not None else {}
        yesterday_balance = 0.0

        for position, day in enumerate(window):
            if predecessor is None:
                received = float(order.quantity) if day == release_day else 0.0
            else:
                received = self._take_predecessor_output(
                    window, position, predecessor, unconsumed
                )

            produced = daily_output.get(day, 0.0)
            today_balance = yesterday_balance + received - produced

            inputs[day] = received
            outputs[day] = produced
            balances[day] = today_balance
            yesterday_balance = today_balance

        return _ProcessDays(inputs=inputs, outputs=outputs, balances=balances)

    def _take_predecessor_output(
        self,
        window: list[date],
        position: int,
        predecessor: dict[date, float],
        unconsumed: dict[date, float],
    ) -> float:
        """Output of the most recent earlier day that still has some.

        Searches backward from the day before window[position], never past
        the start of the window. The first hit is taken whole.
        """
        consume = self.config.consume_predecessor_output
        source = unconsumed if consume else predecessor

        back = position - 1
        while back >= 0:
            day = window[back]
            available = source.get(day, 0.0)
            if available > 0:
                if consume:
                    unconsumed[day] = 0.0
                return available
            back -= 1
        return 0.0


def compute_pab(
    intervals: Iterable[ScheduledInterval],
    orders: Iterable[Order],
    processes: Iterable[ProcessDef],
    dates: Iterable[Union[date, datetime]],
    calendar: Optional[WorkCalendar] = None,
    config: Optional[PabConfig] = None,
) -> PabResult:
    """Convenience wrapper around PabPropagator.compute."""
    return PabPropagator(calendar=calendar, config=config).compute(
        intervals, orders, processes, dates
    )
