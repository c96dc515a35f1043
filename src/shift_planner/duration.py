"""
Shift duration calculation and time formatting helpers.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, date, timedelta
from typing import Callable, Optional, Union

from .models import Assignment

logger = logging.getLogger(__name__)

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


@dataclass
class DurationComputationFailed:
    """Reported through the error channel when a duration cannot be computed"""
    assignment_id: str
    schedule_date: str
    reason: str


def is_valid_time(value: Optional[str]) -> bool:
    return bool(value) and TIME_PATTERN.match(value) is not None


def parse_time_to_minutes(value: Optional[str]) -> int:
    """Minutes from midnight for an "HH:MM" string, or 0 if invalid"""
    if not is_valid_time(value):
        return 0
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def format_to_12_hour(value: Optional[str]) -> str:
    """Render "HH:MM" as "h:mm AM/PM"; anything else is returned unchanged"""
    if not is_valid_time(value):
        return value or ""
    hours, minutes = (int(part) for part in value.split(":"))
    suffix = "AM" if hours < 12 else "PM"
    display_hour = hours % 12 or 12
    return f"{display_hour}:{minutes:02d} {suffix}"


def _as_date(schedule_date: Union[date, str]) -> date:
    if isinstance(schedule_date, datetime):
        return schedule_date.date()
    if isinstance(schedule_date, date):
        return schedule_date
    return datetime.strptime(schedule_date, "%Y-%m-%d").date()


def compute_net_hours(assignment: Assignment, schedule_date: Union[date, str],
                      on_error: Optional[Callable[[DurationComputationFailed], None]] = None) -> float:
    """
    Net worked hours for an assignment on a date.

    An end time earlier than the start time ends on the following day.
    Break minutes are clamped to zero when the break is reversed. Unparseable
    input yields 0.0 and is reported through on_error instead of raising.
    """
    try:
        day = _as_date(schedule_date)
        start = datetime.combine(day, datetime.strptime(assignment.start_time, "%H:%M").time())
        end = datetime.combine(day, datetime.strptime(assignment.end_time, "%H:%M").time())
    except (ValueError, TypeError) as e:
        failure = DurationComputationFailed(
            assignment_id=getattr(assignment, "id", ""),
            schedule_date=str(schedule_date),
            reason=str(e)
        )
        logger.warning(f"Could not compute duration for assignment {failure.assignment_id} "
                       f"on {failure.schedule_date}: {failure.reason}")
        if on_error is not None:
            on_error(failure)
        return 0.0

    if end < start:
        end += timedelta(days=1)
    gross_minutes = (end - start).total_seconds() / 60

    break_minutes = 0
    if assignment.include_break:
        if is_valid_time(assignment.break_start_time) and is_valid_time(assignment.break_end_time):
            break_minutes = max(0, parse_time_to_minutes(assignment.break_end_time)
                                - parse_time_to_minutes(assignment.break_start_time))

    return max(0.0, gross_minutes - break_minutes) / 60
