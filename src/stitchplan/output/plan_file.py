"""Plan file serialization and deserialization.

A plan file is a JSON document holding the reference data (orders and
process definitions) and the scheduled intervals of a planning board.
Instants are stored as ISO-8601 strings and rehydrated to datetime values
on load; the engines only ever see rehydrated values.

File Format:
    {
        "orders": [
            {"id": "ORD-1", "quantity": 1000,
             "process_ids": ["cutting", "sewing", "packing"],
             "budgeted_efficiency": 85,
             "ramp_up": [{"day": 1, "efficiency": 50}], "lines": 1}
        ],
        "processes": [{"id": "cutting", "name": "Cutting", "sam": 0.5}],
        "intervals": [
            {"id": "SP-00001", "order_id": "ORD-1", "process_id": "cutting",
             "station_id": "CUT-1", "start_datetime": "2024-01-15T09:00:00",
             "end_datetime": "2024-01-15T17:00:00", "duration_minutes": 480,
             "quantity": 960}
        ]
    }
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional, Union

from stitchplan.domain.calendar import DEFAULT_CALENDAR, WorkCalendar
from stitchplan.domain.models import (
    Order,
    PabResult,
    ProcessDef,
    RampUpEntry,
    ScheduledInterval,
)
from stitchplan.validation.validator import (
    ScheduleValidationError,
    ScheduleValidator,
)

logger = logging.getLogger(__name__)


@dataclass
class Plan:
    """Contents of a plan file."""

    orders: list[Order] = field(default_factory=list)
    processes: list[ProcessDef] = field(default_factory=list)
    intervals: list[ScheduledInterval] = field(default_factory=list)


class PlanFile:
    """Loads and saves plans as JSON documents.

    Example:
        >>> plan_file = PlanFile("plans/week42.json")
        >>> plan = plan_file.load()
        >>> plan_file.save(plan)
    """

    def __init__(
        self,
        file_path: Union[str, Path],
        calendar: Optional[WorkCalendar] = None,
    ):
        self.file_path = Path(file_path)
        self.calendar = calendar or DEFAULT_CALENDAR

    def save(self, plan: Plan) -> None:
        """Write a plan to the file, creating parent directories."""
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        data = plan_to_dict(plan)
        with open(self.file_path, "w") as f:
            json.dump(data, f, indent=2)
        logger.info(
            "Saved plan with %d intervals to %s", len(plan.intervals), self.file_path
        )

    def load(self) -> Plan:
        """Read and rehydrate a plan from the file.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            ValueError: If the document is malformed.
            ScheduleValidationError: If an interval is inconsistent with
                the working calendar.
        """
        if not self.file_path.exists():
            raise FileNotFoundError(f"Plan file not found: {self.file_path}")

        with open(self.file_path) as f:
            data = json.load(f)

        plan = plan_from_dict(data, self.calendar)
        logger.info(
            "Loaded plan with %d orders, %d intervals from %s",
            len(plan.orders),
            len(plan.intervals),
            self.file_path,
        )
        return plan


def plan_to_dict(plan: Plan) -> dict[str, Any]:
    """Convert a plan to a JSON-ready dictionary."""
    return {
        "orders": [asdict(o) for o in plan.orders],
        "processes": [asdict(p) for p in plan.processes],
        "intervals": [interval_to_dict(i) for i in plan.intervals],
    }


def plan_from_dict(
    data: dict[str, Any],
    calendar: Optional[WorkCalendar] = None,
) -> Plan:
    """Rehydrate a plan dictionary.

    Intervals without an end instant get one derived from the calendar.
    Intervals with one are checked against the calendar.
    """
    calendar = calendar or DEFAULT_CALENDAR
    try:
        orders = [_order_from_dict(o) for o in data.get("orders", [])]
        processes = [
            ProcessDef(id=p["id"], name=p.get("name", p["id"]), sam=float(p["sam"]))
            for p in data.get("processes", [])
        ]
        intervals = [
            interval_from_dict(i, calendar) for i in data.get("intervals", [])
        ]
    except (KeyError, TypeError) as exc:
        raise ValueError(f"Malformed plan document: {exc}") from exc

    validation = ScheduleValidator(calendar).validate_intervals(intervals)
    if not validation.is_valid:
        raise ScheduleValidationError(validation.errors)

    return Plan(orders=orders, processes=processes, intervals=intervals)


def interval_to_dict(interval: ScheduledInterval) -> dict[str, Any]:
    """Convert an interval to a dictionary with ISO-8601 instants."""
    data = asdict(interval)
    data["start_datetime"] = interval.start_datetime.isoformat()
    data["end_datetime"] = interval.end_datetime.isoformat()
    return data


def interval_from_dict(
    data: dict[str, Any],
    calendar: Optional[WorkCalendar] = None,
) -> ScheduledInterval:
    """Rehydrate an interval dictionary."""
    calendar = calendar or DEFAULT_CALENDAR
    start = _parse_instant(data["start_datetime"])
    duration = float(data["duration_minutes"])
    if data.get("end_datetime"):
        end = _parse_instant(data["end_datetime"])
    else:
        end = calendar.add_working_minutes(start, duration)

    return ScheduledInterval(
        id=data["id"],
        order_id=data["order_id"],
        process_id=data["process_id"],
        station_id=data["station_id"],
        start_datetime=start,
        duration_minutes=duration,
        end_datetime=end,
        quantity=int(data["quantity"]),
        is_split=bool(data.get("is_split", False)),
        parent_id=data.get("parent_id"),
        batch_number=data.get("batch_number"),
        total_batches=data.get("total_batches"),
    )


def pab_result_to_dict(result: PabResult) -> dict[str, Any]:
    """Convert a PAB result to a JSON-ready dictionary with ISO date keys."""
    return {
        "sequences": result.sequences,
        "process_names": result.process_names,
        "process_start_dates": {
            order_id: {pid: d.isoformat() for pid, d in starts.items()}
            for order_id, starts in result.process_start_dates.items()
        },
        "process_date_ranges": {
            order_id: {
                pid: [start.isoformat(), end.isoformat()]
                for pid, (start, end) in ranges.items()
            }
            for order_id, ranges in result.process_date_ranges.items()
        },
        "inputs": _daily_map_to_dict(result.inputs),
        "outputs": _daily_map_to_dict(result.outputs),
        "balances": _daily_map_to_dict(result.balances),
        "errors": result.errors,
    }


def pab_result_from_dict(data: dict[str, Any]) -> PabResult:
    """Rehydrate a dictionary written by pab_result_to_dict."""
    return PabResult(
        outputs=_daily_map_from_dict(data.get("outputs", {})),
        inputs=_daily_map_from_dict(data.get("inputs", {})),
        balances=_daily_map_from_dict(data.get("balances", {})),
        sequences={k: list(v) for k, v in data.get("sequences", {}).items()},
        process_start_dates={
            order_id: {pid: date.fromisoformat(d) for pid, d in starts.items()}
            for order_id, starts in data.get("process_start_dates", {}).items()
        },
        process_date_ranges={
            order_id: {
                pid: (_parse_instant(span[0]), _parse_instant(span[1]))
                for pid, span in ranges.items()
            }
            for order_id, ranges in data.get("process_date_ranges", {}).items()
        },
        process_names=dict(data.get("process_names", {})),
        errors=dict(data.get("errors", {})),
    )


def _parse_instant(value: str) -> datetime:
    """Parse an ISO-8601 instant, accepting a trailing Z for UTC.

    Offsets are kept; the working window then applies in that offset.
    """
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def _order_from_dict(data: dict[str, Any]) -> Order:
    return Order(
        id=data["id"],
        quantity=int(data["quantity"]),
        process_ids=list(data.get("process_ids", [])),
        budgeted_efficiency=float(data.get("budgeted_efficiency", 100.0)),
        ramp_up=[
            RampUpEntry(day=int(e["day"]), efficiency=float(e["efficiency"]))
            for e in data.get("ramp_up", [])
        ],
        lines=int(data.get("lines", 1)),
    )


def _daily_map_to_dict(daily_map) -> dict[str, Any]:
    return {
        order_id: {
            pid: {day.isoformat(): value for day, value in days.items()}
            for pid, days in per_process.items()
        }
        for order_id, per_process in daily_map.items()
    }


def _daily_map_from_dict(data: dict[str, Any]):
    return {
        order_id: {
            pid: {date.fromisoformat(day): float(value) for day, value in days.items()}
            for pid, days in per_process.items()
        }
        for order_id, per_process in data.items()
    }
