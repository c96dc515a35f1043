"""
Template extraction and re-application.

Templates keep only times and employee ids so they survive later edits to
employee names or locations. Weekly templates are re-applied by weekday
position onto whichever week the caller chooses.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Union

from .errors import EmptyTemplateError
from .models import (
    Employee, Template, TemplateAssignment, generate_assignment_id, new_id,
    resolve_employee, roster_by_id
)
from .schedule_store import ScheduleStore
from .week import map_to_week_slot

logger = logging.getLogger(__name__)


@dataclass
class TemplateScope:
    type: str  # "daily" or "weekly"
    date_keys: List[str]

    @classmethod
    def daily(cls, date_key: str) -> 'TemplateScope':
        return cls(type="daily", date_keys=[date_key])

    @classmethod
    def weekly(cls, date_keys: Sequence[str]) -> 'TemplateScope':
        return cls(type="weekly", date_keys=list(date_keys))


@dataclass
class TemplateApplyResult:
    applied: int = 0
    skipped: int = 0
    placeholders: List[Employee] = field(default_factory=list)
    messages: List[str] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return self.skipped > 0


@dataclass
class TemplateImportResult:
    imported: int = 0
    skipped: int = 0
    renamed: int = 0
    messages: List[str] = field(default_factory=list)


class TemplateManager:
    """Creates templates from the store and re-applies them"""

    def extract(self, store: ScheduleStore, scope: TemplateScope, location_id: str,
                name: str = "", department_ids: Optional[Iterable[str]] = None) -> Template:
        """
        Snapshot the scoped dates into a template.

        Args:
            store: Source schedule store
            scope: Daily (one date) or weekly (the week's date keys)
            location_id: Location the template belongs to
            name: Display name
            department_ids: Restrict to these departments (the location's)

        Raises:
            EmptyTemplateError: No assignment found anywhere in scope
        """
        allowed = set(department_ids) if department_ids is not None else None
        days = {}
        for key in scope.date_keys:
            slots = {}
            for dept_id, assignments in store.get(key).assignments_by_department.items():
                if allowed is not None and dept_id not in allowed:
                    continue
                if assignments:
                    slots[dept_id] = [TemplateAssignment.from_assignment(a) for a in assignments]
            if slots:
                days[key] = slots

        if not days:
            raise EmptyTemplateError(f"No assignments to save for {', '.join(scope.date_keys)}")

        if scope.type == "daily":
            assignments = days[scope.date_keys[0]]
        else:
            assignments = days

        template = Template(
            id=new_id("tpl"),
            name=name or f"Template {datetime.now().strftime('%Y-%m-%d %H:%M')}",
            location_id=location_id,
            type=scope.type,
            created_at=datetime.now().isoformat(timespec="seconds"),
            assignments=assignments
        )
        logger.info(f"Extracted {scope.type} template '{template.name}' "
                    f"with {template.assignment_count()} assignments")
        return template

    def apply(self, template: Template, store: ScheduleStore,
              target: Union[str, Sequence[str]],
              employee_roster: Union[Dict[str, Employee], Iterable[Employee]]) -> TemplateApplyResult:
        """
        Apply a template to a date (daily) or a Monday-first week (weekly).

        Conflicting or invalid entries are skipped and counted.
        """
        roster = roster_by_id(employee_roster)
        result = TemplateApplyResult()
        placeholder_ids = set()

        for source_key, slots in template.days().items():
            target_key = self._target_for(template, source_key, target)
            if target_key is None:
                result.skipped += sum(len(items) for items in slots.values())
                result.messages.append(f"No target date for template day {source_key}")
                continue

            for dept_id, items in slots.items():
                for item in items:
                    employee = resolve_employee(roster, item.employee_id)
                    if employee.id not in roster and employee.id not in placeholder_ids:
                        placeholder_ids.add(employee.id)
                        result.placeholders.append(employee)

                    assignment = item.to_assignment(
                        generate_assignment_id(employee.id, target_key, item.start_time))
                    outcome = store.upsert(target_key, dept_id, assignment)
                    if outcome.ok:
                        result.applied += 1
                    else:
                        result.skipped += 1
                        result.messages.append(f"{employee.name} on {target_key}: {outcome.message}")

        logger.info(f"Applied template '{template.name}': {result.applied} applied, {result.skipped} skipped")
        return result

    @staticmethod
    def _target_for(template: Template, source_key: Optional[str],
                    target: Union[str, Sequence[str]]) -> Optional[str]:
        if template.type == "daily":
            return target if isinstance(target, str) else (target[0] if target else None)
        if isinstance(target, str):
            raise ValueError("Weekly templates need the target week's date keys")
        return map_to_week_slot(source_key, target)
