"""Process sequence inference from scheduled intervals."""

from datetime import datetime
from typing import Iterable, Optional

from stitchplan.domain.models import ScheduledInterval


class SequenceResolver:
    """Infers the order in which an order's processes actually run.

    Processes are ordered by their earliest scheduled start. Ties go to the
    order's canonical process sequence; processes missing from it come after
    the canonical ones and then alphabetically by id.
    """

    def earliest_starts(
        self,
        intervals: Iterable[ScheduledInterval],
    ) -> dict[str, datetime]:
        """Earliest start instant per process."""
        starts: dict[str, datetime] = {}
        for interval in intervals:
            current = starts.get(interval.process_id)
            if current is None or interval.start_datetime < current:
                starts[interval.process_id] = interval.start_datetime
        return starts

    def resolve(
        self,
        order_id: str,
        intervals: Iterable[ScheduledInterval],
        canonical_process_ids: Optional[list[str]] = None,
    ) -> list[str]:
        """Execution order of the processes scheduled for an order.

        Args:
            order_id: Order to resolve. Intervals of other orders are ignored.
            intervals: Scheduled intervals (may include other orders).
            canonical_process_ids: The order's canonical process sequence.

        Returns:
            Process ids in execution order; empty if nothing is scheduled.
        """
        starts = self.earliest_starts(i for i in intervals if i.order_id == order_id)
        canonical = canonical_process_ids or []
        rank: dict[str, int] = {}
        for index, pid in enumerate(canonical):
            rank.setdefault(pid, index)

        return sorted(
            starts,
            key=lambda pid: (starts[pid], rank.get(pid, len(canonical)), pid),
        )
