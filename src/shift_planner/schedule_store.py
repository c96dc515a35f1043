"""
Schedule Store for Shift Planner

Owns the date-indexed map of day schedules. Every write goes through the
assignment validator, and every successful mutation is followed by a save
of the full snapshot to the persistence collaborator.
"""

import copy
import json
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from .errors import DataValidationError
from .models import Assignment, DaySchedule
from .validation import ValidationResult, validate_assignment

logger = logging.getLogger(__name__)

SCHEDULE_KEY = "schedule"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class ScheduleStore:
    """Date-keyed assignments; a date with no assignments has no entry"""

    def __init__(self, persistence: Optional[KeyValueStore] = None, key: str = SCHEDULE_KEY,
                 on_persistence_error: Optional[Callable[[Exception], None]] = None,
                 on_persistence_success: Optional[Callable[[], None]] = None):
        self.persistence = persistence
        self.key = key
        self.on_persistence_error = on_persistence_error
        self.on_persistence_success = on_persistence_success
        self.last_persistence_error: Optional[Exception] = None
        self._days: Dict[str, DaySchedule] = {}

    # Loading and saving
    def load(self):
        """Replace in-memory state with the persisted snapshot, if any"""
        if self.persistence is None:
            return
        raw = self.persistence.get(self.key)
        if not raw:
            self._days = {}
            return
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Stored schedule snapshot is not valid JSON: {e}")
            self._days = {}
            return
        self._days = {}
        for key, day_data in data.items():
            day_data.setdefault("date", key)
            try:
                day = DaySchedule.from_dict(day_data)
            except (DataValidationError, KeyError, TypeError) as e:
                logger.error(f"Skipping unreadable schedule for {key}: {e}")
                continue
            if not day.is_empty():
                self._days[key] = day
        logger.info(f"Loaded schedule with {len(self._days)} scheduled dates")

    def snapshot(self) -> Dict[str, Any]:
        return {key: day.to_dict() for key, day in sorted(self._days.items())}

    def save(self) -> bool:
        """Write the snapshot; failures are logged and surfaced once per streak"""
        if self.persistence is None:
            return True
        try:
            self.persistence.set(self.key, json.dumps(self.snapshot(), ensure_ascii=False))
        except Exception as e:
            logger.error(f"Failed to persist schedule: {e}", exc_info=True)
            first_failure = self.last_persistence_error is None
            self.last_persistence_error = e
            if first_failure and self.on_persistence_error is not None:
                self.on_persistence_error(e)
            return False
        self.last_persistence_error = None
        if self.on_persistence_success is not None:
            self.on_persistence_success()
        return True

    # Reads
    def get(self, date_key: str) -> DaySchedule:
        """Copy of the day's schedule, or an empty one when the date is untouched"""
        day = self._days.get(date_key)
        if day is None:
            return DaySchedule(date=date_key)
        return copy.deepcopy(day)

    def has_day(self, date_key: str) -> bool:
        return date_key in self._days

    def date_keys(self) -> List[str]:
        return sorted(self._days)

    def find_assignment(self, date_key: str, assignment_id: str) -> Optional[str]:
        """Department id currently holding the assignment, if any"""
        day = self._days.get(date_key)
        if day is None:
            return None
        for dept_id, assignments in day.assignments_by_department.items():
            if any(a.id == assignment_id for a in assignments):
                return dept_id
        return None

    # Mutations
    def upsert(self, date_key: str, department_id: str, assignment: Assignment) -> ValidationResult:
        """Insert or replace (by id) an assignment; no mutation unless valid"""
        result = validate_assignment(assignment, date_key, self._days.get(date_key))
        if not result.ok:
            logger.debug(f"Rejected assignment {assignment.id} on {date_key}: {result.message}")
            return result

        day = self._days.setdefault(date_key, DaySchedule(date=date_key))
        previous_dept = self.find_assignment(date_key, assignment.id)
        if previous_dept is not None and previous_dept != department_id:
            self._drop(day, previous_dept, assignment.id)

        assignments = day.assignments_by_department.setdefault(department_id, [])
        for index, existing in enumerate(assignments):
            if existing.id == assignment.id:
                assignments[index] = copy.deepcopy(assignment)
                break
        else:
            assignments.append(copy.deepcopy(assignment))

        self.save()
        return result

    def remove(self, date_key: str, department_id: str, assignment_id: str) -> bool:
        day = self._days.get(date_key)
        if day is None or not self._drop(day, department_id, assignment_id):
            return False
        if day.is_empty():
            del self._days[date_key]
        self.save()
        return True

    def clear_day(self, date_key: str) -> bool:
        existed = self._days.pop(date_key, None) is not None
        if existed:
            self.save()
        return existed

    def clear_departments(self, date_keys: Iterable[str], department_ids: Iterable[str]) -> int:
        """Drop the given departments on the given dates; returns assignments removed"""
        dept_ids = set(department_ids)
        return self._remove_where(
            lambda key, dept_id, a: dept_id in dept_ids,
            date_keys=set(date_keys)
        )

    def remove_department(self, department_id: str) -> int:
        return self._remove_where(lambda key, dept_id, a: dept_id == department_id)

    def remove_employee(self, employee_id: str) -> int:
        return self._remove_where(lambda key, dept_id, a: a.employee_id == employee_id)

    def _remove_where(self, predicate: Callable[[str, str, Assignment], bool],
                      date_keys: Optional[set] = None) -> int:
        removed = 0
        for key in list(self._days):
            if date_keys is not None and key not in date_keys:
                continue
            day = self._days[key]
            for dept_id in list(day.assignments_by_department):
                kept = [a for a in day.assignments_by_department[dept_id] if not predicate(key, dept_id, a)]
                removed += len(day.assignments_by_department[dept_id]) - len(kept)
                if kept:
                    day.assignments_by_department[dept_id] = kept
                else:
                    del day.assignments_by_department[dept_id]
            if day.is_empty():
                del self._days[key]
        if removed:
            self.save()
        return removed

    @staticmethod
    def _drop(day: DaySchedule, department_id: str, assignment_id: str) -> bool:
        assignments = day.assignments_by_department.get(department_id)
        if not assignments:
            return False
        kept = [a for a in assignments if a.id != assignment_id]
        if len(kept) == len(assignments):
            return False
        if kept:
            day.assignments_by_department[department_id] = kept
        else:
            del day.assignments_by_department[department_id]
        return True
