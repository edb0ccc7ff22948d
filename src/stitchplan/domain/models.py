"""Domain models for the production planning core.

This module contains the reference data (orders and process definitions)
and the scheduled intervals placed on the planning board, plus the result
bundle produced by a PAB propagation pass.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional


@dataclass(frozen=True)
class RampUpEntry:
    """Efficiency reached from a given production day onward.

    Attributes:
        day: 1-based production day from which this efficiency applies.
        efficiency: Efficiency as a percentage, e.g. 85 for 85%.
    """

    day: int
    efficiency: float


@dataclass
class ProcessDef:
    """A process step that work orders flow through.

    Attributes:
        id: Unique identifier, e.g. "cutting" or "sewing".
        name: Display name.
        sam: Standard allocated minutes to produce one unit.
    """

    id: str
    name: str
    sam: float

    @property
    def output_per_minute(self) -> float:
        """Units produced per productive minute (0 when SAM is unusable)."""
        if self.sam <= 0:
            return 0.0
        return 1 / self.sam


@dataclass
class Order:
    """A work order to be produced.

    Attributes:
        id: Unique identifier, e.g. "ZAR4531-Shirt-Blue".
        quantity: Units ordered.
        process_ids: Canonical process sequence for the order.
        budgeted_efficiency: Default efficiency (%) when no ramp-up is given.
        ramp_up: Ramp-up scheme for line-paced processes such as sewing.
        lines: Number of lines the order runs on in parallel.
    """

    id: str
    quantity: int
    process_ids: list[str] = field(default_factory=list)
    budgeted_efficiency: float = 100.0
    ramp_up: list[RampUpEntry] = field(default_factory=list)
    lines: int = 1

    def canonical_index(self, process_id: str) -> Optional[int]:
        """Position of a process in the canonical sequence, if present."""
        try:
            return self.process_ids.index(process_id)
        except ValueError:
            return None


@dataclass(frozen=True)
class ScheduledInterval:
    """A batch of work for one order and process placed on a station.

    Intervals are immutable: moving or splitting one produces new
    intervals that replace it in the schedule store.

    Attributes:
        id: Unique identifier assigned by the schedule store.
        order_id: Order the work belongs to.
        process_id: Process being performed.
        station_id: Machine or line the work is placed on.
        start_datetime: When the work starts.
        duration_minutes: Productive minutes the work takes.
        end_datetime: When the work ends, derived from start and duration
            on the working calendar.
        quantity: Units this interval represents.
        is_split: True if the interval was produced by a split.
        parent_id: Id of the interval this one was split from.
        batch_number: 1-based position among its split siblings.
        total_batches: Number of siblings produced by the split.
    """

    id: str
    order_id: str
    process_id: str
    station_id: str
    start_datetime: datetime
    duration_minutes: float
    end_datetime: datetime
    quantity: int
    is_split: bool = False
    parent_id: Optional[str] = None
    batch_number: Optional[int] = None
    total_batches: Optional[int] = None

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Check if this interval overlaps the span [start, end)."""
        return self.start_datetime < end and start < self.end_datetime

    def __repr__(self) -> str:
        return (
            f"ScheduledInterval({self.id}: {self.order_id}/{self.process_id} "
            f"on {self.station_id} {self.start_datetime:%Y-%m-%d %H:%M}-"
            f"{self.end_datetime:%Y-%m-%d %H:%M}, qty={self.quantity})"
        )


DailyMap = dict[str, dict[str, dict[date, float]]]


@dataclass
class PabResult:
    """Everything computed by one PAB propagation pass.

    All daily maps are keyed order id -> process id -> calendar day.

    Attributes:
        outputs: Units produced per day.
        inputs: Units received per day from the predecessor (or order
            release for the first process).
        balances: Running balance per day. Negative values are shortfalls.
        sequences: Resolved execution order of processes per order.
        process_start_dates: First productive day of each process.
        process_date_ranges: (earliest start, latest end) per process.
        process_names: Display name per process id.
        errors: Orders whose computation failed, with the error message.
    """

    outputs: DailyMap = field(default_factory=dict)
    inputs: DailyMap = field(default_factory=dict)
    balances: DailyMap = field(default_factory=dict)
    sequences: dict[str, list[str]] = field(default_factory=dict)
    process_start_dates: dict[str, dict[str, date]] = field(default_factory=dict)
    process_date_ranges: dict[str, dict[str, tuple[datetime, datetime]]] = field(
        default_factory=dict
    )
    process_names: dict[str, str] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def order_ids(self) -> list[str]:
        """Orders that produced results, in computation order."""
        return list(self.sequences.keys())

    def balance(self, order_id: str, process_id: str, day: date) -> float:
        """Balance for a single cell (0 when not computed)."""
        return self.balances.get(order_id, {}).get(process_id, {}).get(day, 0.0)

    def total_output(self, order_id: str, process_id: str) -> float:
        """Total output of a process over the reporting window."""
        return sum(self.outputs.get(order_id, {}).get(process_id, {}).values())
