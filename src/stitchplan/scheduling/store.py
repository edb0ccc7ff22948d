"""Schedule store for intervals placed on the planning board.

The store owns the collection of scheduled intervals. Every mutation
(assign, move, split, unschedule) validates the new intervals first, then
builds the complete replacement list and swaps it in with one assignment,
so readers never see a half-applied change.
"""

import itertools
import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterable, Optional

from stitchplan.domain.calendar import DEFAULT_CALENDAR, WorkCalendar
from stitchplan.domain.models import ScheduledInterval
from stitchplan.validation.validator import (
    ScheduleValidationError,
    ScheduleValidator,
    ValidationError,
    ValidationErrorType,
)

logger = logging.getLogger(__name__)

# (interval being split, batch quantity) -> productive minutes
DurationFn = Callable[[ScheduledInterval, int], float]


def proportional_duration(interval: ScheduledInterval, quantity: int) -> float:
    """Share of the interval's duration matching a share of its quantity."""
    if interval.quantity <= 0:
        return interval.duration_minutes
    return interval.duration_minutes * quantity / interval.quantity


class ScheduleStore:
    """Single-writer collection of scheduled intervals.

    Placing an interval on a station pushes any overlapping intervals on
    that station later, back to back, so a station never runs two batches
    at once.

    Example:
        >>> store = ScheduleStore()
        >>> cut = store.assign("ORD-1", "cutting", "CUT-1", start, 480, 240)
        >>> batches = store.split(cut.id, [140, 100])
    """

    def __init__(
        self,
        calendar: Optional[WorkCalendar] = None,
        validator: Optional[ScheduleValidator] = None,
        duration_fn: Optional[DurationFn] = None,
        id_prefix: str = "SP",
        intervals: Iterable[ScheduledInterval] = (),
    ):
        """Initialize the store.

        Args:
            calendar: Working calendar used to derive end instants.
            validator: Validator applied before any interval is accepted.
            duration_fn: Duration for split batches. Defaults to a share of
                the parent's duration proportional to quantity.
            id_prefix: Prefix for ids generated by this store.
            intervals: Already validated intervals to start from, e.g.
                loaded from a plan file.
        """
        self.calendar = calendar or DEFAULT_CALENDAR
        self.validator = validator or ScheduleValidator(self.calendar)
        self.duration_fn = duration_fn or proportional_duration
        self.id_prefix = id_prefix
        self._intervals: tuple[ScheduledInterval, ...] = tuple(intervals)
        self._ids = itertools.count(self._highest_id_number() + 1)

    @property
    def intervals(self) -> list[ScheduledInterval]:
        """Snapshot of the current intervals."""
        return list(self._intervals)

    def __len__(self) -> int:
        return len(self._intervals)

    def get(self, interval_id: str) -> ScheduledInterval:
        """Look up an interval by id.

        Raises:
            KeyError: If no interval has this id.
        """
        for interval in self._intervals:
            if interval.id == interval_id:
                return interval
        raise KeyError(interval_id)

    def for_order(self, order_id: str) -> list[ScheduledInterval]:
        """All intervals belonging to an order."""
        return [i for i in self._intervals if i.order_id == order_id]

    def for_station(self, station_id: str) -> list[ScheduledInterval]:
        """Intervals on a station, in start order."""
        return sorted(
            (i for i in self._intervals if i.station_id == station_id),
            key=lambda i: i.start_datetime,
        )

    def siblings(self, interval_id: str) -> list[ScheduledInterval]:
        """Intervals that came out of the same split, in batch order.

        An interval that was never split is its own only sibling.
        """
        interval = self.get(interval_id)
        if interval.parent_id is None:
            return [interval]
        group = [i for i in self._intervals if i.parent_id == interval.parent_id]
        return sorted(group, key=lambda i: (i.batch_number or 0, i.start_datetime))

    def next_id(self) -> str:
        """Generate a new interval id owned by this store."""
        return f"{self.id_prefix}-{next(self._ids):05d}"

    def build_interval(
        self,
        order_id: str,
        process_id: str,
        station_id: str,
        start: datetime,
        duration_minutes: float,
        quantity: int,
        **lineage,
    ) -> ScheduledInterval:
        """Create an interval with its end derived from the calendar.

        The start is kept as given; the end is where the duration runs out.

        Raises:
            ScheduleValidationError: If the interval is malformed or its id
                is already scheduled.
        """
        interval_id = lineage.pop("id", None) or self.next_id()
        self._ensure_unused(interval_id)
        interval = ScheduledInterval(
            id=interval_id,
            order_id=order_id,
            process_id=process_id,
            station_id=station_id,
            start_datetime=start,
            duration_minutes=duration_minutes,
            end_datetime=self._derive_end(start, duration_minutes),
            quantity=quantity,
            **lineage,
        )
        self._check([interval])
        return interval

    def assign(
        self,
        order_id: str,
        process_id: str,
        station_id: str,
        start: datetime,
        duration_minutes: float,
        quantity: int,
    ) -> ScheduledInterval:
        """Place a new unit of work on a station.

        Raises:
            ScheduleValidationError: If the interval is malformed.
        """
        interval = self.build_interval(
            order_id, process_id, station_id, start, duration_minutes, quantity
        )
        self._commit(removed_ids=set(), placed=[interval])
        logger.debug("Assigned %r", interval)
        return interval

    def add(self, interval: ScheduledInterval) -> ScheduledInterval:
        """Insert an already built interval, keeping its id.

        Raises:
            ScheduleValidationError: If the interval is malformed or its id
                is already taken.
        """
        self._ensure_unused(interval.id)
        self._check([interval])
        self._commit(removed_ids=set(), placed=[interval])
        return interval

    def move(
        self,
        interval_id: str,
        start: datetime,
        station_id: Optional[str] = None,
    ) -> ScheduledInterval:
        """Re-schedule an interval to a new start (and optionally station).

        Raises:
            KeyError: If the interval does not exist.
        """
        original = self.get(interval_id)
        moved = replace(
            original,
            station_id=station_id or original.station_id,
            start_datetime=start,
            end_datetime=self._derive_end(start, original.duration_minutes),
        )
        self._check([moved])
        self._commit(removed_ids={interval_id}, placed=[moved])
        logger.debug("Moved %s to %s on %s", interval_id, start, moved.station_id)
        return moved

    def split(
        self,
        interval_id: str,
        quantities: list[int],
        whole_group: bool = False,
    ) -> list[ScheduledInterval]:
        """Replace an interval with batches that partition its quantity.

        Batches are laid out back to back from the original start on the
        original station. With whole_group, the interval and all of its
        split siblings are re-partitioned together, anchored at the
        earliest sibling. Otherwise the new batches hang under the split
        interval, and the siblings it leaves behind are renumbered.

        Args:
            interval_id: Interval to split.
            quantities: Batch quantities. Must sum to the quantity being
                split.
            whole_group: Re-split the whole sibling group instead of one
                interval.

        Returns:
            The new batches in order.

        Raises:
            KeyError: If the interval does not exist.
            ScheduleValidationError: If the quantities do not partition the
                original quantity, or a batch is malformed.
        """
        if whole_group:
            originals = self.siblings(interval_id)
        else:
            originals = [self.get(interval_id)]

        total = sum(i.quantity for i in originals)
        check = self.validator.validate_split(total, quantities, interval_id)
        if not check.is_valid:
            raise ScheduleValidationError(check.errors)

        anchor = min(originals, key=lambda i: i.start_datetime)
        if whole_group and anchor.parent_id is not None:
            parent_id = anchor.parent_id
        else:
            parent_id = anchor.id

        source = anchor if len(originals) == 1 else _merged(originals, total)
        batches = []
        cursor = anchor.start_datetime
        for number, quantity in enumerate(quantities, start=1):
            duration = self.duration_fn(source, quantity)
            batch = self.build_interval(
                anchor.order_id,
                anchor.process_id,
                anchor.station_id,
                cursor,
                duration,
                quantity,
                is_split=True,
                parent_id=parent_id,
                batch_number=number,
                total_batches=len(quantities),
            )
            batches.append(batch)
            cursor = batch.end_datetime

        relabeled = {} if whole_group else self._renumbered_siblings(anchor)
        self._commit(
            removed_ids={i.id for i in originals},
            placed=batches,
            relabeled=relabeled,
        )
        logger.info(
            "Split %s (%d units) into %s", interval_id, total, quantities
        )
        return batches

    def unschedule(
        self,
        interval_id: str,
        include_siblings: bool = True,
    ) -> list[ScheduledInterval]:
        """Remove an interval, by default together with its split siblings.

        Returns:
            The removed intervals.

        Raises:
            KeyError: If the interval does not exist.
        """
        if include_siblings:
            removed = self.siblings(interval_id)
            relabeled = {}
        else:
            removed = [self.get(interval_id)]
            relabeled = self._renumbered_siblings(removed[0])
        removed_ids = {i.id for i in removed}
        self._intervals = tuple(
            relabeled.get(i.id, i) for i in self._intervals if i.id not in removed_ids
        )
        return removed

    def _highest_id_number(self) -> int:
        """Largest counter value among ids carrying this store's prefix."""
        highest = 0
        prefix = f"{self.id_prefix}-"
        for interval in self._intervals:
            suffix = interval.id[len(prefix):]
            if interval.id.startswith(prefix) and suffix.isdigit():
                highest = max(highest, int(suffix))
        return highest

    def _ensure_unused(self, interval_id: str) -> None:
        if any(i.id == interval_id for i in self._intervals):
            raise ScheduleValidationError([
                ValidationError(
                    error_type=ValidationErrorType.DUPLICATE_ID,
                    message="Interval id is already scheduled",
                    interval_id=interval_id,
                )
            ])

    def _renumbered_siblings(
        self,
        removed: ScheduledInterval,
    ) -> dict[str, ScheduledInterval]:
        """Lineage of the siblings left behind when one batch is re-split."""
        if removed.parent_id is None:
            return {}
        left = [s for s in self.siblings(removed.id) if s.id != removed.id]
        return {
            s.id: replace(s, batch_number=number, total_batches=len(left))
            for number, s in enumerate(left, start=1)
        }

    def _derive_end(self, start: datetime, duration_minutes: float) -> datetime:
        try:
            return self.calendar.add_working_minutes(start, duration_minutes)
        except ValueError:
            # Non-finite duration; the validator reports it.
            return start

    def _check(self, intervals: list[ScheduledInterval]) -> None:
        result = self.validator.validate_intervals(intervals)
        if not result.is_valid:
            raise ScheduleValidationError(result.errors)

    def _commit(
        self,
        removed_ids: set[str],
        placed: list[ScheduledInterval],
        relabeled: Optional[dict[str, ScheduledInterval]] = None,
    ) -> None:
        """Swap in a new interval list with placed intervals on their station.

        Intervals on the same station that overlap the placed block, or
        that a pushed interval now overlaps, are pushed back to back after
        it, keeping their durations. Intervals in relabeled are replaced by
        their new version in the same swap.
        """
        relabeled = relabeled or {}
        remaining = [
            relabeled.get(i.id, i) for i in self._intervals if i.id not in removed_ids
        ]
        stations = {p.station_id for p in placed}

        result = [i for i in remaining if i.station_id not in stations]
        for station_id in stations:
            block = [p for p in placed if p.station_id == station_id]
            others = sorted(
                (i for i in remaining if i.station_id == station_id),
                key=lambda i: i.start_datetime,
            )
            result.extend(block)
            result.extend(self._cascade(block, others))

        self._intervals = tuple(result)

    def _cascade(
        self,
        block: list[ScheduledInterval],
        others: list[ScheduledInterval],
    ) -> list[ScheduledInterval]:
        block_start = min(p.start_datetime for p in block)
        last_end = max(p.end_datetime for p in block)

        shifted = []
        for interval in others:
            if interval.end_datetime <= block_start or interval.start_datetime >= last_end:
                shifted.append(interval)
                continue

            new_start = max(interval.start_datetime, last_end)
            new_end = self.calendar.add_working_minutes(
                new_start, interval.duration_minutes
            )
            logger.debug("Pushed %s to %s", interval.id, new_start)
            shifted.append(
                replace(interval, start_datetime=new_start, end_datetime=new_end)
            )
            last_end = new_end

        return shifted


def _merged(originals: list[ScheduledInterval], total: int) -> ScheduledInterval:
    """A stand-in interval covering a whole sibling group."""
    anchor = min(originals, key=lambda i: i.start_datetime)
    return replace(
        anchor,
        duration_minutes=sum(i.duration_minutes for i in originals),
        quantity=total,
    )
