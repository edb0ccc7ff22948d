"""Tests for throughput and duration rules."""

import math

import pytest

from stitchplan.domain.models import Order, ProcessDef, RampUpEntry
from stitchplan.domain.throughput import (
    DurationEstimator,
    efficiency_for_day,
    output_per_minute,
    ramp_up_duration_minutes,
)

RAMP = [
    RampUpEntry(day=1, efficiency=50),
    RampUpEntry(day=2, efficiency=70),
    RampUpEntry(day=3, efficiency=85),
]


class TestEfficiencyForDay:
    """Tests for ramp-up efficiency lookup."""

    @pytest.mark.parametrize(
        "production_day,expected",
        [(1, 50), (2, 70), (3, 85), (10, 85)],
    )
    def test_last_reached_entry_wins(self, production_day, expected):
        assert efficiency_for_day(RAMP, production_day) == expected

    def test_no_scheme_uses_default(self):
        assert efficiency_for_day([], 1, default=85) == 85

    def test_before_first_entry_uses_peak(self):
        scheme = [RampUpEntry(day=2, efficiency=60), RampUpEntry(day=4, efficiency=90)]
        assert efficiency_for_day(scheme, 1) == 90


class TestOutputPerMinute:
    """Tests for SAM to rate conversion."""

    def test_reciprocal_of_sam(self):
        assert output_per_minute(ProcessDef("sewing", "Sewing", 2.0)) == 0.5

    def test_unknown_process(self):
        assert output_per_minute(None) == 0.0

    def test_zero_sam(self):
        assert output_per_minute(ProcessDef("qc", "QC", 0)) == 0.0


class TestRampUpDuration:
    """Tests for ramp-up aware duration calculation."""

    def test_flat_efficiency(self):
        assert ramp_up_duration_minutes(100, 2.0, []) == 200

    def test_single_partial_day(self):
        scheme = [RampUpEntry(day=1, efficiency=50)]
        assert ramp_up_duration_minutes(100, 2.0, scheme) == 400

    def test_spans_days(self):
        """Day 1 at 50% yields 120 units; the remaining 180 need 360 minutes."""
        scheme = [RampUpEntry(day=1, efficiency=50), RampUpEntry(day=2, efficiency=100)]
        assert ramp_up_duration_minutes(300, 2.0, scheme) == pytest.approx(840)

    def test_lines_share_the_work(self):
        assert ramp_up_duration_minutes(100, 2.0, [], lines=2) == 100

    def test_zero_efficiency_never_finishes(self):
        scheme = [RampUpEntry(day=1, efficiency=0)]
        assert math.isinf(ramp_up_duration_minutes(100, 2.0, scheme))

    @pytest.mark.parametrize("quantity,sam", [(0, 2.0), (100, 0), (-5, 2.0)])
    def test_nothing_to_do(self, quantity, sam):
        assert ramp_up_duration_minutes(quantity, sam, RAMP) == 0


class TestDurationEstimator:
    """Tests for DurationEstimator."""

    @pytest.fixture
    def estimator(self):
        processes = [
            ProcessDef("cutting", "Cutting", 0.5),
            ProcessDef("sewing", "Sewing", 2.0),
        ]
        orders = [
            Order("ORD-FLAT", 170, ["cutting", "sewing"], budgeted_efficiency=85),
            Order(
                "ORD-RAMP",
                100,
                ["cutting", "sewing"],
                ramp_up=[RampUpEntry(day=1, efficiency=50)],
            ),
        ]
        return DurationEstimator.from_lists(processes, orders)

    def test_plain_process_uses_sam(self, estimator):
        assert estimator.estimate("ORD-FLAT", "cutting", 500) == 250

    def test_sewing_uses_budgeted_efficiency(self, estimator):
        assert estimator.estimate("ORD-FLAT", "sewing", 170) == pytest.approx(400)

    def test_sewing_follows_ramp_up(self, estimator):
        assert estimator.estimate("ORD-RAMP", "sewing", 100) == pytest.approx(400)

    def test_unknown_order_uses_sam(self, estimator):
        assert estimator.estimate("ORD-NONE", "sewing", 10) == 20

    def test_unknown_process_raises(self, estimator):
        with pytest.raises(KeyError):
            estimator.estimate("ORD-FLAT", "dyeing", 10)
