"""Tests for PAB propagation."""

from datetime import date, datetime

import pytest

from stitchplan.domain.calendar import DEFAULT_CALENDAR
from stitchplan.domain.models import Order, ProcessDef, RampUpEntry, ScheduledInterval
from stitchplan.scheduling.pab import PabConfig, PabPropagator, compute_pab
from stitchplan.scheduling.sequence import SequenceResolver
from stitchplan.validation.validator import ScheduleValidator

MONDAY = date(2024, 1, 15)
TUESDAY = date(2024, 1, 16)
WEDNESDAY = date(2024, 1, 17)
THURSDAY = date(2024, 1, 18)
FRIDAY = date(2024, 1, 19)
SATURDAY = date(2024, 1, 20)
NEXT_MONDAY = date(2024, 1, 22)

PROCESSES = [
    ProcessDef("cutting", "Cutting", 2.0),
    ProcessDef("sewing", "Sewing", 2.0),
    ProcessDef("packing", "Packing", 2.0),
]


def _interval(
    interval_id: str,
    order_id: str,
    process_id: str,
    start: datetime,
    minutes: float,
    quantity: int = 0,
) -> ScheduledInterval:
    return ScheduledInterval(
        id=interval_id,
        order_id=order_id,
        process_id=process_id,
        station_id=f"{process_id}-1",
        start_datetime=start,
        duration_minutes=minutes,
        end_datetime=DEFAULT_CALENDAR.add_working_minutes(start, minutes),
        quantity=quantity,
    )


def _at(day: date, hour: int = 9) -> datetime:
    return datetime(day.year, day.month, day.day, hour, 0)


class TestSingleProcess:
    """Tests for the first process of an order."""

    @pytest.fixture
    def propagator(self):
        return PabPropagator()

    def test_one_full_day(self, propagator):
        """1000 units released, 240 made in one 8-hour day at SAM 2."""
        order = Order("ORD-1", 1000, ["cutting"])
        intervals = [_interval("I-1", "ORD-1", "cutting", _at(MONDAY), 480)]

        result = propagator.compute(intervals, [order], PROCESSES, [MONDAY])

        assert result.outputs["ORD-1"]["cutting"][MONDAY] == 240
        assert result.inputs["ORD-1"]["cutting"][MONDAY] == 1000
        assert result.balances["ORD-1"]["cutting"][MONDAY] == 760

    def test_balance_carries_forward(self, propagator):
        order = Order("ORD-1", 1000, ["cutting"])
        intervals = [_interval("I-1", "ORD-1", "cutting", _at(MONDAY), 960)]

        result = propagator.compute(
            intervals, [order], PROCESSES, [MONDAY, TUESDAY, WEDNESDAY]
        )

        balances = result.balances["ORD-1"]["cutting"]
        assert balances == {MONDAY: 760, TUESDAY: 520, WEDNESDAY: 520}
        assert result.inputs["ORD-1"]["cutting"][TUESDAY] == 0

    def test_release_on_normalized_start(self, propagator):
        """A start after Saturday closing releases the order on Monday."""
        order = Order("ORD-1", 100, ["cutting"])
        start = datetime(2024, 1, 13, 17, 30)
        intervals = [_interval("I-1", "ORD-1", "cutting", start, 60)]

        result = propagator.compute(
            intervals, [order], PROCESSES, [date(2024, 1, 13), MONDAY]
        )

        assert result.process_start_dates["ORD-1"]["cutting"] == MONDAY
        assert result.inputs["ORD-1"]["cutting"] == {date(2024, 1, 13): 0, MONDAY: 100}

    def test_dates_sorted_and_deduplicated(self, propagator):
        order = Order("ORD-1", 1000, ["cutting"])
        intervals = [_interval("I-1", "ORD-1", "cutting", _at(MONDAY), 960)]
        dates = [TUESDAY, _at(MONDAY), MONDAY]

        result = propagator.compute(intervals, [order], PROCESSES, dates)

        assert list(result.balances["ORD-1"]["cutting"]) == [MONDAY, TUESDAY]
        assert result.balance("ORD-1", "cutting", TUESDAY) == 520

    def test_ramp_up_on_sewing(self, propagator):
        order = Order(
            "ORD-1", 500, ["sewing"], ramp_up=[RampUpEntry(day=1, efficiency=50)]
        )
        intervals = [_interval("I-1", "ORD-1", "sewing", _at(MONDAY), 480)]

        result = propagator.compute(intervals, [order], PROCESSES, [MONDAY])

        assert result.outputs["ORD-1"]["sewing"][MONDAY] == 120

    def test_sewing_without_scheme_uses_budgeted_efficiency(self, propagator):
        order = Order("ORD-1", 500, ["sewing"], budgeted_efficiency=50)
        intervals = [_interval("I-1", "ORD-1", "sewing", _at(MONDAY), 480)]

        result = propagator.compute(intervals, [order], PROCESSES, [MONDAY])

        assert result.outputs["ORD-1"]["sewing"][MONDAY] == 120

    def test_missing_process_definition_produces_nothing(self, propagator):
        order = Order("ORD-1", 300, ["outsourcing"])
        intervals = [_interval("I-1", "ORD-1", "outsourcing", _at(MONDAY), 480)]

        result = propagator.compute(intervals, [order], PROCESSES, [MONDAY, TUESDAY])

        assert result.sequences["ORD-1"] == ["outsourcing"]
        assert result.total_output("ORD-1", "outsourcing") == 0
        assert result.balances["ORD-1"]["outsourcing"] == {MONDAY: 300, TUESDAY: 300}


class TestPropagation:
    """Tests for handing output from one process to the next."""

    @pytest.fixture
    def order(self):
        return Order("ORD-1", 100, ["cutting", "sewing"])

    @pytest.fixture
    def intervals(self):
        # Cutting makes 100 on Friday, sewing makes 20 on Saturday.
        return [
            _interval("I-1", "ORD-1", "cutting", _at(FRIDAY), 200, 100),
            _interval("I-2", "ORD-1", "sewing", _at(SATURDAY), 40, 20),
        ]

    @pytest.fixture
    def dates(self):
        return [MONDAY, TUESDAY, WEDNESDAY, THURSDAY, FRIDAY, SATURDAY, NEXT_MONDAY]

    def test_input_is_previous_day_output(self, order, intervals, dates):
        result = PabPropagator().compute(intervals, [order], PROCESSES, dates)

        sewing_inputs = result.inputs["ORD-1"]["sewing"]
        assert sewing_inputs[FRIDAY] == 0
        assert sewing_inputs[SATURDAY] == 100
        assert result.balances["ORD-1"]["sewing"][SATURDAY] == 80

    def test_output_handed_over_once(self, order, intervals, dates):
        result = PabPropagator().compute(intervals, [order], PROCESSES, dates)

        assert result.inputs["ORD-1"]["sewing"][NEXT_MONDAY] == 0
        assert result.balances["ORD-1"]["sewing"][NEXT_MONDAY] == 80

    def test_literal_handover_recounts(self, order, intervals, dates):
        config = PabConfig(consume_predecessor_output=False)
        result = PabPropagator(config=config).compute(
            intervals, [order], PROCESSES, dates
        )

        assert result.inputs["ORD-1"]["sewing"][NEXT_MONDAY] == 100
        assert result.balances["ORD-1"]["sewing"][NEXT_MONDAY] == 180

    def test_sequence_and_ranges(self, order, intervals, dates):
        result = PabPropagator().compute(intervals, [order], PROCESSES, dates)

        assert result.sequences["ORD-1"] == ["cutting", "sewing"]
        assert result.process_start_dates["ORD-1"] == {
            "cutting": FRIDAY,
            "sewing": SATURDAY,
        }
        start, end = result.process_date_ranges["ORD-1"]["cutting"]
        assert start == _at(FRIDAY)
        assert end == datetime(2024, 1, 19, 12, 20)

    def test_later_change_leaves_earlier_days(self, dates):
        """Shortening Wednesday's cutting only moves balances from Wednesday on."""
        order = Order("ORD-1", 480, ["cutting", "sewing"])
        sewing = _interval("I-3", "ORD-1", "sewing", _at(TUESDAY), 960, 480)
        monday_cut = _interval("I-1", "ORD-1", "cutting", _at(MONDAY), 480, 240)

        baseline = PabPropagator().compute(
            [monday_cut, _interval("I-2", "ORD-1", "cutting", _at(WEDNESDAY), 480, 240), sewing],
            [order],
            PROCESSES,
            dates,
        )
        shortened = PabPropagator().compute(
            [monday_cut, _interval("I-2", "ORD-1", "cutting", _at(WEDNESDAY), 240, 120), sewing],
            [order],
            PROCESSES,
            dates,
        )

        for process_id in ("cutting", "sewing"):
            before = baseline.balances["ORD-1"][process_id]
            after = shortened.balances["ORD-1"][process_id]
            for day in (MONDAY, TUESDAY):
                assert before[day] == after[day]

        assert baseline.balances["ORD-1"]["cutting"][WEDNESDAY] == 0
        assert shortened.balances["ORD-1"]["cutting"][WEDNESDAY] == 120
        assert baseline.balances["ORD-1"]["sewing"][THURSDAY] == 0
        assert shortened.balances["ORD-1"]["sewing"][THURSDAY] == -120

    def test_three_process_chain(self):
        order = Order("ORD-1", 240, ["cutting", "sewing", "packing"])
        intervals = [
            _interval("I-1", "ORD-1", "cutting", _at(MONDAY), 480, 240),
            _interval("I-2", "ORD-1", "sewing", _at(TUESDAY), 480, 240),
            _interval("I-3", "ORD-1", "packing", _at(WEDNESDAY), 480, 240),
        ]
        dates = [MONDAY, TUESDAY, WEDNESDAY, THURSDAY]

        result = compute_pab(intervals, [order], PROCESSES, dates)

        assert result.inputs["ORD-1"]["sewing"][TUESDAY] == 240
        assert result.inputs["ORD-1"]["packing"][WEDNESDAY] == 240
        for process_id in order.process_ids:
            assert result.balances["ORD-1"][process_id][THURSDAY] == 0

    def test_negative_balance_preserved(self):
        """Sewing starting the same day as cutting runs ahead of its input."""
        order = Order("ORD-1", 100, ["cutting", "sewing"])
        intervals = [
            _interval("I-1", "ORD-1", "cutting", _at(MONDAY), 200, 100),
            _interval("I-2", "ORD-1", "sewing", _at(MONDAY, 13), 60, 30),
        ]

        result = PabPropagator().compute(
            intervals, [order], PROCESSES, [MONDAY, TUESDAY]
        )

        assert result.balances["ORD-1"]["sewing"][MONDAY] == -30
        assert result.balances["ORD-1"]["sewing"][TUESDAY] == 70

    def test_balances_satisfy_recurrence(self, order, intervals, dates):
        result = PabPropagator().compute(intervals, [order], PROCESSES, dates)

        validation = ScheduleValidator().validate_result(result)
        assert validation.is_valid


class TestOrderHandling:
    """Tests for which orders end up in the result."""

    def test_order_without_intervals_omitted(self):
        orders = [Order("ORD-1", 100, ["cutting"]), Order("ORD-2", 50, ["cutting"])]
        intervals = [_interval("I-1", "ORD-1", "cutting", _at(MONDAY), 60)]

        result = PabPropagator().compute(intervals, orders, PROCESSES, [MONDAY])

        assert result.order_ids == ["ORD-1"]

    def test_unknown_order_skipped(self):
        orders = [Order("ORD-1", 100, ["cutting"])]
        intervals = [
            _interval("I-1", "ORD-1", "cutting", _at(MONDAY), 60),
            _interval("I-2", "GHOST", "cutting", _at(MONDAY), 60),
        ]

        result = PabPropagator().compute(intervals, orders, PROCESSES, [MONDAY])

        assert "GHOST" not in result.balances
        assert result.order_ids == ["ORD-1"]

    def test_failing_order_is_contained(self):
        class FailingResolver(SequenceResolver):
            def resolve(self, order_id, intervals, canonical_process_ids=None):
                if order_id == "BAD":
                    raise RuntimeError("cannot resolve")
                return super().resolve(order_id, intervals, canonical_process_ids)

        orders = [Order("BAD", 10, ["cutting"]), Order("GOOD", 10, ["cutting"])]
        intervals = [
            _interval("I-1", "BAD", "cutting", _at(MONDAY), 60),
            _interval("I-2", "GOOD", "cutting", _at(MONDAY), 60),
        ]

        result = PabPropagator(resolver=FailingResolver()).compute(
            intervals, orders, PROCESSES, [MONDAY]
        )

        assert result.errors == {"BAD": "cannot resolve"}
        assert result.order_ids == ["GOOD"]
        assert "BAD" not in result.balances

    def test_empty_input(self):
        result = PabPropagator().compute([], [], PROCESSES, [MONDAY])
        assert result.order_ids == []
        assert result.process_names["sewing"] == "Sewing"
