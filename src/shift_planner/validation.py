"""
Assignment validation.

Enforces time field formats and the rule that an employee holds at most one
shift per date across all departments.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .duration import is_valid_time, parse_time_to_minutes
from .errors import ConflictError, FormatError
from .models import Assignment, DaySchedule


class ValidationStatus(Enum):
    OK = "ok"
    CONFLICT = "conflict"
    FORMAT_ERROR = "format_error"


class ConstraintViolation:
    """Messages for validation failures"""
    INVALID_START = "Start time must be HH:MM (00:00-23:59)"
    INVALID_END = "End time must be HH:MM (00:00-23:59)"
    MISSING_BREAK = "Break start and end are required when a break is included"
    INVALID_BREAK = "Break times must be HH:MM (00:00-23:59)"
    BREAK_ORDER = "Break end must be after break start"
    DOUBLE_BOOKED = "Employee already has a shift on this date"


@dataclass
class ValidationResult:
    status: ValidationStatus
    message: str = ""
    conflicting_assignment_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is ValidationStatus.OK

    def raise_for_status(self):
        if self.status is ValidationStatus.FORMAT_ERROR:
            raise FormatError(self.message)
        if self.status is ValidationStatus.CONFLICT:
            raise ConflictError(self.message)


OK = ValidationResult(ValidationStatus.OK)


def check_format(candidate: Assignment) -> Optional[str]:
    """Return the first format violation, or None"""
    if not is_valid_time(candidate.start_time):
        return ConstraintViolation.INVALID_START
    if not is_valid_time(candidate.end_time):
        return ConstraintViolation.INVALID_END
    if candidate.include_break:
        if not candidate.break_start_time or not candidate.break_end_time:
            return ConstraintViolation.MISSING_BREAK
        if not is_valid_time(candidate.break_start_time) or not is_valid_time(candidate.break_end_time):
            return ConstraintViolation.INVALID_BREAK
        if parse_time_to_minutes(candidate.break_end_time) <= parse_time_to_minutes(candidate.break_start_time):
            return ConstraintViolation.BREAK_ORDER
    return None


def validate_assignment(candidate: Assignment, target_date: str,
                        existing: Optional[DaySchedule]) -> ValidationResult:
    """Validate a candidate against the assignments already on target_date"""
    violation = check_format(candidate)
    if violation:
        return ValidationResult(ValidationStatus.FORMAT_ERROR, violation)

    if existing is not None:
        for assignment in existing.all_assignments():
            if assignment.employee_id == candidate.employee_id and assignment.id != candidate.id:
                return ValidationResult(
                    ValidationStatus.CONFLICT,
                    f"{ConstraintViolation.DOUBLE_BOOKED} ({candidate.employee_id} on {target_date})",
                    conflicting_assignment_id=assignment.id
                )
    return OK
