"""Validation module for verifying schedule and balance correctness."""

from stitchplan.validation.validator import (
    ScheduleValidationError,
    ScheduleValidator,
    ValidationError,
    ValidationErrorType,
    ValidationResult,
)

__all__ = [
    "ScheduleValidationError",
    "ScheduleValidator",
    "ValidationError",
    "ValidationErrorType",
    "ValidationResult",
]
