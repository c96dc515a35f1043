"""
Data Model for Shift Planner

Locations, departments, employees, shift assignments, day schedules and
templates, with camelCase dict serialization for persistence.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Any, Iterable, Set

from .errors import DataValidationError


class IconTag(Enum):
    """Presentation icons a department can reference"""
    BUILDING = "Building"
    USERS = "Users"
    EDIT = "Edit"
    BUILDING2 = "Building2"

    @classmethod
    def from_value(cls, value: Optional[str]) -> 'IconTag':
        for tag in cls:
            if tag.value == value:
                return tag
        return cls.BUILDING


@dataclass
class Location:
    id: str
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Location':
        return cls(id=data["id"], name=data.get("name", ""))


@dataclass
class Department:
    id: str
    name: str
    location_id: str
    icon_tag: IconTag = IconTag.BUILDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "locationId": self.location_id,
            "iconTag": self.icon_tag.value
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Department':
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            location_id=data["locationId"],
            icon_tag=IconTag.from_value(data.get("iconTag"))
        )


@dataclass
class Employee:
    """Employee with an externally assigned id, linked to one or more locations"""
    id: str
    name: str
    location_ids: Set[str] = field(default_factory=set)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "locationIds": sorted(self.location_ids)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Employee':
        location_ids = set(data.get("locationIds", []))
        # Older snapshots carried a single primary location
        if not location_ids and data.get("primaryLocationId"):
            location_ids = {data["primaryLocationId"]}
        return cls(id=str(data["id"]), name=data.get("name", ""), location_ids=location_ids)

    @classmethod
    def placeholder(cls, employee_id: str) -> 'Employee':
        """Stand-in for an id that is no longer on the roster"""
        return cls(id=employee_id, name=f"(ID: {employee_id})", location_ids=set())


def employee_ref(data: Dict[str, Any]) -> str:
    """Employee id from a stored shift, as `employeeId` or `employee: {id}`"""
    employee_id = data.get("employeeId")
    if employee_id is None:
        employee = data.get("employee")
        if isinstance(employee, dict):
            employee_id = employee.get("id")
    if employee_id is None or not str(employee_id).strip():
        raise DataValidationError(f"Shift {data.get('id', '(no id)')} has no employee reference")
    return str(employee_id)


@dataclass
class Assignment:
    """A single employee's shift in one department on one date"""
    id: str
    employee_id: str
    start_time: str  # "HH:MM"
    end_time: str  # "HH:MM", earlier than start_time means next day
    include_break: bool = False
    break_start_time: Optional[str] = None
    break_end_time: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "employee": {"id": self.employee_id},
            "startTime": self.start_time,
            "endTime": self.end_time,
            "includeBreak": self.include_break
        }
        if self.include_break:
            data["breakStartTime"] = self.break_start_time
            data["breakEndTime"] = self.break_end_time
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Assignment':
        return cls(
            id=data["id"],
            employee_id=employee_ref(data),
            start_time=data.get("startTime", ""),
            end_time=data.get("endTime", ""),
            include_break=bool(data.get("includeBreak", False)),
            break_start_time=data.get("breakStartTime"),
            break_end_time=data.get("breakEndTime")
        )

    def copy_with(self, new_id: str) -> 'Assignment':
        return Assignment(
            id=new_id,
            employee_id=self.employee_id,
            start_time=self.start_time,
            end_time=self.end_time,
            include_break=self.include_break,
            break_start_time=self.break_start_time,
            break_end_time=self.break_end_time
        )

    def shift_key(self) -> tuple:
        """Identity of the shift itself, ignoring the instance id"""
        return (self.employee_id, self.start_time, self.end_time, self.include_break,
                self.break_start_time if self.include_break else None,
                self.break_end_time if self.include_break else None)


@dataclass
class DaySchedule:
    date: str  # yyyy-MM-dd
    assignments_by_department: Dict[str, List[Assignment]] = field(default_factory=dict)

    def all_assignments(self) -> Iterable[Assignment]:
        for assignments in self.assignments_by_department.values():
            yield from assignments

    def is_empty(self) -> bool:
        return not any(self.assignments_by_department.values())

    def find_employee(self, employee_id: str) -> Optional[Assignment]:
        for assignment in self.all_assignments():
            if assignment.employee_id == employee_id:
                return assignment
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "assignments": {
                dept_id: [a.to_dict() for a in assignments]
                for dept_id, assignments in self.assignments_by_department.items()
            }
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DaySchedule':
        by_dept = {}
        for dept_id, items in data.get("assignments", {}).items():
            assignments = [Assignment.from_dict(item) for item in items]
            if assignments:
                by_dept[dept_id] = assignments
        return cls(date=data["date"][:10], assignments_by_department=by_dept)


@dataclass
class TemplateAssignment:
    """Assignment reduced to what a template keeps: times and an employee reference"""
    employee_id: str
    start_time: str
    end_time: str
    include_break: bool = False
    break_start_time: Optional[str] = None
    break_end_time: Optional[str] = None

    @classmethod
    def from_assignment(cls, assignment: Assignment) -> 'TemplateAssignment':
        return cls(
            employee_id=assignment.employee_id,
            start_time=assignment.start_time,
            end_time=assignment.end_time,
            include_break=assignment.include_break,
            break_start_time=assignment.break_start_time if assignment.include_break else None,
            break_end_time=assignment.break_end_time if assignment.include_break else None
        )

    def to_assignment(self, assignment_id: str) -> Assignment:
        return Assignment(
            id=assignment_id,
            employee_id=self.employee_id,
            start_time=self.start_time,
            end_time=self.end_time,
            include_break=self.include_break,
            break_start_time=self.break_start_time,
            break_end_time=self.break_end_time
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "startTime": self.start_time,
            "endTime": self.end_time,
            "includeBreak": self.include_break,
            "employee": {"id": self.employee_id}
        }
        if self.include_break:
            data["breakStartTime"] = self.break_start_time
            data["breakEndTime"] = self.break_end_time
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TemplateAssignment':
        return cls(
            employee_id=employee_ref(data),
            start_time=data.get("startTime", ""),
            end_time=data.get("endTime", ""),
            include_break=bool(data.get("includeBreak", False)),
            break_start_time=data.get("breakStartTime"),
            break_end_time=data.get("breakEndTime")
        )


DepartmentSlots = Dict[str, List[TemplateAssignment]]


@dataclass
class Template:
    """
    Reusable snapshot of a day or a week.

    Daily templates hold {department_id: [...]}; weekly templates hold
    {source_date_key: {department_id: [...]}} and are re-applied by weekday.
    """
    id: str
    name: str
    location_id: str
    type: str  # "daily" or "weekly"
    created_at: str
    assignments: Dict[str, Any] = field(default_factory=dict)

    def days(self) -> Dict[str, DepartmentSlots]:
        """Day-keyed view; daily templates report a single None key"""
        if self.type == "daily":
            return {None: self.assignments}
        return self.assignments

    def assignment_count(self) -> int:
        return sum(len(items) for slots in self.days().values() for items in slots.values())

    def to_dict(self) -> Dict[str, Any]:
        def _slots(slots: DepartmentSlots) -> Dict[str, Any]:
            return {dept_id: [t.to_dict() for t in items] for dept_id, items in slots.items()}

        if self.type == "daily":
            assignments = _slots(self.assignments)
        else:
            assignments = {day: _slots(slots) for day, slots in self.assignments.items()}
        return {
            "id": self.id,
            "name": self.name,
            "locationId": self.location_id,
            "type": self.type,
            "createdAt": self.created_at,
            "assignments": assignments
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Template':
        def _slots(raw: Dict[str, Any]) -> DepartmentSlots:
            return {dept_id: [TemplateAssignment.from_dict(i) for i in items]
                    for dept_id, items in raw.items()}

        template_type = data.get("type", "daily")
        raw = data.get("assignments", {})
        if template_type == "daily":
            assignments = _slots(raw)
        else:
            assignments = {day: _slots(slots) for day, slots in raw.items()}
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            location_id=data["locationId"],
            type=template_type,
            created_at=data.get("createdAt", datetime.now().isoformat()),
            assignments=assignments
        )


def resolve_employee(roster: Dict[str, Employee], employee_id: str) -> Employee:
    """Look up an employee, falling back to a placeholder record"""
    employee = roster.get(employee_id)
    if employee is None:
        return Employee.placeholder(employee_id)
    return employee


def roster_by_id(employees: Iterable[Employee]) -> Dict[str, Employee]:
    if isinstance(employees, dict):
        return employees
    return {emp.id: emp for emp in employees}


def generate_assignment_id(employee_id: str, date_key: str, start_time: str) -> str:
    """Fresh id; the random suffix separates shifts with identical start times"""
    return f"{employee_id}-{date_key}-{start_time.replace(':', '')}-{uuid.uuid4().hex[:8]}"


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"
