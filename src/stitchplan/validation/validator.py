"""Validation module for scheduled intervals and computed balances.

This module is the validation boundary of the planning core. Intervals are
checked here before the schedule store accepts them, split partitions are
checked before a split is applied, and PAB results can be checked against
the calendar and balance invariants.
"""

import math
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional

from stitchplan.domain.calendar import DEFAULT_CALENDAR, WorkCalendar
from stitchplan.domain.models import PabResult, ScheduledInterval

BALANCE_TOLERANCE = 1e-6


class ValidationErrorType(Enum):
    """Types of validation errors."""

    NON_POSITIVE_DURATION = "non_positive_duration"
    NON_FINITE_DURATION = "non_finite_duration"
    NEGATIVE_QUANTITY = "negative_quantity"
    END_MISMATCH = "end_mismatch"
    DUPLICATE_ID = "duplicate_id"
    SPLIT_QUANTITY_MISMATCH = "split_quantity_mismatch"
    SPLIT_TOO_FEW_BATCHES = "split_too_few_batches"
    SPLIT_NON_POSITIVE_BATCH = "split_non_positive_batch"
    OUTPUT_ON_NON_WORKING_DAY = "output_on_non_working_day"
    BALANCE_RECURRENCE = "balance_recurrence"


@dataclass
class ValidationError:
    """A single validation error."""

    error_type: ValidationErrorType
    message: str
    interval_id: Optional[str] = None
    day: Optional[date] = None
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        parts = [f"[{self.error_type.value}]"]
        if self.interval_id:
            parts.append(f"Interval {self.interval_id}:")
        parts.append(self.message)
        if self.day is not None:
            parts.append(f"({self.day.isoformat()})")
        return " ".join(parts)


@dataclass
class ValidationResult:
    """Result of a validation run."""

    is_valid: bool
    errors: list[ValidationError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def add_error(self, error: ValidationError) -> None:
        """Add an error and mark as invalid."""
        self.errors.append(error)
        self.is_valid = False

    def add_warning(self, warning: str) -> None:
        """Add a warning (doesn't affect validity)."""
        self.warnings.append(warning)


class ScheduleValidationError(ValueError):
    """Raised when a schedule mutation is rejected.

    Attributes:
        errors: The validation errors that caused the rejection.
    """

    def __init__(self, errors: list[ValidationError]):
        self.errors = errors
        super().__init__("; ".join(str(e) for e in errors))


class ScheduleValidator:
    """Validates intervals, split partitions and PAB results.

    Example:
        >>> validator = ScheduleValidator()
        >>> result = validator.validate_interval(interval)
        >>> if not result.is_valid:
        ...     for error in result.errors:
        ...         print(error)
    """

    def __init__(self, calendar: Optional[WorkCalendar] = None):
        self.calendar = calendar or DEFAULT_CALENDAR

    def validate_interval(self, interval: ScheduledInterval) -> ValidationResult:
        """Check a single interval before it enters the schedule."""
        result = ValidationResult(is_valid=True)
        duration = interval.duration_minutes

        if math.isnan(duration) or math.isinf(duration):
            result.add_error(
                ValidationError(
                    error_type=ValidationErrorType.NON_FINITE_DURATION,
                    message=f"Duration must be finite, got {duration}",
                    interval_id=interval.id,
                )
            )
            return result

        if duration <= 0:
            result.add_error(
                ValidationError(
                    error_type=ValidationErrorType.NON_POSITIVE_DURATION,
                    message=f"Duration must be positive, got {duration}",
                    interval_id=interval.id,
                )
            )

        if interval.quantity < 0:
            result.add_error(
                ValidationError(
                    error_type=ValidationErrorType.NEGATIVE_QUANTITY,
                    message=f"Quantity must not be negative, got {interval.quantity}",
                    interval_id=interval.id,
                )
            )

        expected_end = self.calendar.add_working_minutes(
            interval.start_datetime, duration
        )
        if interval.end_datetime != expected_end:
            result.add_error(
                ValidationError(
                    error_type=ValidationErrorType.END_MISMATCH,
                    message=(
                        f"End {interval.end_datetime.isoformat()} does not match "
                        f"calendar end {expected_end.isoformat()}"
                    ),
                    interval_id=interval.id,
                    details={"expected_end": expected_end},
                )
            )

        return result

    def validate_intervals(
        self,
        intervals: list[ScheduledInterval],
    ) -> ValidationResult:
        """Check a batch of intervals, including id uniqueness."""
        result = ValidationResult(is_valid=True)
        seen: set[str] = set()

        for interval in intervals:
            if interval.id in seen:
                result.add_error(
                    ValidationError(
                        error_type=ValidationErrorType.DUPLICATE_ID,
                        message="Interval id is used more than once",
                        interval_id=interval.id,
                    )
                )
            seen.add(interval.id)

            single = self.validate_interval(interval)
            for error in single.errors:
                result.add_error(error)

        return result

    def validate_split(
        self,
        total_quantity: int,
        quantities: list[int],
        interval_id: Optional[str] = None,
    ) -> ValidationResult:
        """Check that batch quantities partition the original quantity."""
        result = ValidationResult(is_valid=True)

        if len(quantities) < 2:
            result.add_error(
                ValidationError(
                    error_type=ValidationErrorType.SPLIT_TOO_FEW_BATCHES,
                    message=f"A split needs at least 2 batches, got {len(quantities)}",
                    interval_id=interval_id,
                )
            )

        if any(q <= 0 for q in quantities):
            result.add_error(
                ValidationError(
                    error_type=ValidationErrorType.SPLIT_NON_POSITIVE_BATCH,
                    message=f"Every batch must hold at least one unit: {quantities}",
                    interval_id=interval_id,
                )
            )

        if sum(quantities) != total_quantity:
            result.add_error(
                ValidationError(
                    error_type=ValidationErrorType.SPLIT_QUANTITY_MISMATCH,
                    message=(
                        f"Batches sum to {sum(quantities)}, "
                        f"expected {total_quantity}"
                    ),
                    interval_id=interval_id,
                    details={"quantities": list(quantities)},
                )
            )

        return result

    def validate_result(self, pab: PabResult) -> ValidationResult:
        """Check a PAB result against the calendar and balance invariants.

        Every output bucket must fall on a working day, and each day's
        balance must equal the previous balance plus input minus output.
        """
        result = ValidationResult(is_valid=True)

        for order_id, per_process in pab.outputs.items():
            for process_id, daily in per_process.items():
                for day, units in daily.items():
                    if units and not self.calendar.is_working_day(day):
                        result.add_error(
                            ValidationError(
                                error_type=ValidationErrorType.OUTPUT_ON_NON_WORKING_DAY,
                                message=(
                                    f"{order_id}/{process_id} has output "
                                    f"{units:.2f} on a non-working day"
                                ),
                                day=day,
                            )
                        )

        for order_id, per_process in pab.balances.items():
            for process_id, daily in per_process.items():
                inputs = pab.inputs.get(order_id, {}).get(process_id, {})
                outputs = pab.outputs.get(order_id, {}).get(process_id, {})
                previous = 0.0
                for day in sorted(daily):
                    expected = previous + inputs.get(day, 0.0) - outputs.get(day, 0.0)
                    if abs(daily[day] - expected) > BALANCE_TOLERANCE:
                        result.add_error(
                            ValidationError(
                                error_type=ValidationErrorType.BALANCE_RECURRENCE,
                                message=(
                                    f"{order_id}/{process_id} balance {daily[day]:.4f} "
                                    f"!= expected {expected:.4f}"
                                ),
                                day=day,
                            )
                        )
                    previous = daily[day]

        for order_id, message in pab.errors.items():
            result.add_warning(f"Order {order_id} was not computed: {message}")

        return result
