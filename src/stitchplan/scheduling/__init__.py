"""Scheduling engine: interval store, output projection and PAB propagation."""

from stitchplan.scheduling.pab import PabConfig, PabPropagator, compute_pab
from stitchplan.scheduling.projector import OutputProjector
from stitchplan.scheduling.sequence import SequenceResolver
from stitchplan.scheduling.store import ScheduleStore, proportional_duration

__all__ = [
    # Schedule state
    "ScheduleStore",
    "proportional_duration",
    # Engines
    "OutputProjector",
    "SequenceResolver",
    "PabPropagator",
    "PabConfig",
    "compute_pab",
]
