"""
Day and week duplication.

Copies carry fresh assignment ids and are written through the schedule
store, so double-bookings at the target are rejected and reported.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence, Union

from .models import Employee, generate_assignment_id, resolve_employee, roster_by_id
from .schedule_store import ScheduleStore
from .week import next_day_key, next_week_date_keys, next_week_key

logger = logging.getLogger(__name__)


@dataclass
class DuplicationResult:
    target_date_keys: List[str]
    copied: int = 0
    conflicts: List[str] = field(default_factory=list)
    unresolved_employee_ids: List[str] = field(default_factory=list)
    days_copied: int = 0

    @property
    def skipped(self) -> int:
        return len(self.conflicts)

    @property
    def complete(self) -> bool:
        return not self.conflicts


class DuplicationEngine:

    def duplicate_day(self, source_date_key: str, store: ScheduleStore,
                      employee_roster: Union[Dict[str, Employee], Iterable[Employee]]) -> DuplicationResult:
        """Copy source_date_key's assignments to the following day"""
        target_key = next_day_key(source_date_key)
        result = DuplicationResult(target_date_keys=[target_key])
        self._copy_day(source_date_key, target_key, store, roster_by_id(employee_roster), result)
        logger.info(f"Duplicated {source_date_key} -> {target_key}: "
                    f"{result.copied} copied, {result.skipped} conflicts")
        return result

    def duplicate_week(self, current_week_date_keys: Sequence[str], store: ScheduleStore,
                       employee_roster: Union[Dict[str, Employee], Iterable[Employee]]) -> DuplicationResult:
        """Copy each scheduled day to the date seven days later"""
        next_week = next_week_date_keys(current_week_date_keys)
        result = DuplicationResult(target_date_keys=next_week)
        roster = roster_by_id(employee_roster)

        for source_key in current_week_date_keys:
            if store.get(source_key).is_empty():
                continue
            if self._copy_day(source_key, next_week_key(source_key), store, roster, result) > 0:
                result.days_copied += 1

        logger.info(f"Duplicated week starting {current_week_date_keys[0]}: {result.days_copied} days, "
                    f"{result.copied} copied, {result.skipped} conflicts")
        return result

    @staticmethod
    def _copy_day(source_key: str, target_key: str, store: ScheduleStore,
                  roster: Dict[str, Employee], result: DuplicationResult) -> int:
        copied = 0
        source = store.get(source_key)
        for dept_id, assignments in source.assignments_by_department.items():
            for assignment in assignments:
                employee = resolve_employee(roster, assignment.employee_id)
                if employee.id not in roster and employee.id not in result.unresolved_employee_ids:
                    result.unresolved_employee_ids.append(employee.id)

                duplicate = assignment.copy_with(
                    generate_assignment_id(employee.id, target_key, assignment.start_time))
                outcome = store.upsert(target_key, dept_id, duplicate)
                if outcome.ok:
                    copied += 1
                else:
                    result.conflicts.append(f"{employee.name} on {target_key}: {outcome.message}")
        result.copied += copied
        return copied
