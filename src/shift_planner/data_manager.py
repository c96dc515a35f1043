"""
Data Manager for Shift Planner

Handles the JSON-backed key-value store, CRUD for locations, departments,
employees and templates (with cascading deletes), and wires the schedule
store, duplication, templates and CSV import together.
"""

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from .csv_import import CsvImportProcessor, ImportReport
from .duplication import DuplicationEngine, DuplicationResult
from .duration import compute_net_hours
from .errors import (
    DataFileCorruptedError, DataSaveError, DataValidationError, UnresolvedReferenceError
)
from .models import (
    Assignment, Department, Employee, IconTag, Location, Template, new_id, resolve_employee
)
from .schedule_store import SCHEDULE_KEY, ScheduleStore
from .templates import TemplateApplyResult, TemplateImportResult, TemplateManager, TemplateScope
from .validation import ValidationResult

logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"

LOCATIONS_KEY = "locations"
DEPARTMENTS_KEY = "departments"
EMPLOYEES_KEY = "employees"
TEMPLATES_KEY = "templates"
NOTES_KEY = "notes"
SETTINGS_KEY = "settings"


class JsonFileStore:
    """Key-value store kept in a single JSON file, written atomically with a backup"""

    def __init__(self, data_file: Union[str, Path]):
        self.data_file = Path(data_file)
        self.data: Dict[str, str] = self._load_or_create()

    def _load_or_create(self) -> Dict[str, str]:
        """Load the file, recovering from the backup when it is unreadable"""
        backup_file = self.data_file.with_suffix('.bak')
        if self.data_file.exists():
            try:
                return self._read(self.data_file)
            except (json.JSONDecodeError, IOError, ValueError) as e:
                logger.error(f"Error loading data file {self.data_file}: {e}")
                if not backup_file.exists():
                    raise DataFileCorruptedError(f"Data file corrupted and no backup available: {e}")
        elif not backup_file.exists():
            logger.info(f"No data file found at {self.data_file}, starting empty")
            return {}

        try:
            logger.info(f"Attempting recovery from backup file {backup_file}")
            data = self._read(backup_file)
            backup_file.replace(self.data_file)
            logger.info("Successfully recovered data from backup")
            return data
        except (json.JSONDecodeError, IOError, ValueError) as backup_e:
            logger.error(f"Backup file also corrupted: {backup_e}")
            return {}

    @staticmethod
    def _read(path: Path) -> Dict[str, str]:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError("top-level JSON value must be an object")
        return {key: value if isinstance(value, str) else json.dumps(value) for key, value in data.items()}

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str):
        self.data[key] = value
        self.flush()

    def flush(self):
        """Write to a temp file, keep the previous file as .bak, then swap in"""
        temp_file = self.data_file.with_suffix('.tmp')
        backup_file = self.data_file.with_suffix('.bak')
        try:
            self.data_file.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump(self.data, f, indent=2, ensure_ascii=False)
            if self.data_file.exists():
                self.data_file.replace(backup_file)
            temp_file.replace(self.data_file)
        except (IOError, OSError) as e:
            logger.error(f"I/O error during save operation: {e}", exc_info=True)
            raise DataSaveError(f"Failed to save data due to I/O error: {e}")
        finally:
            if temp_file.exists():
                try:
                    temp_file.unlink()
                except OSError as cleanup_e:
                    logger.error(f"Failed to clean up temporary file {temp_file}: {cleanup_e}")


class DataManager:
    """Manages persistence and CRUD for the planner's entities and schedule"""

    def __init__(self, data_file: Union[str, Path] = "data/shift_planner.json",
                 store=None, on_persistence_error: Optional[Callable[[Exception], None]] = None):
        if store is None:
            if str(data_file) == "data/shift_planner.json":
                # Use path relative to the package directory
                data_file = Path(__file__).parent.parent / "data" / "shift_planner.json"
            store = JsonFileStore(data_file)
        self.store = store
        self.data_file = getattr(store, "data_file", None)
        self.on_persistence_error = on_persistence_error
        self.last_persistence_error: Optional[Exception] = None

        self.locations: List[Location] = [Location.from_dict(d) for d in self._read(LOCATIONS_KEY, [])]
        self.departments: List[Department] = [Department.from_dict(d) for d in self._read(DEPARTMENTS_KEY, [])]
        self.employees: List[Employee] = [Employee.from_dict(d) for d in self._read(EMPLOYEES_KEY, [])]
        self.templates: List[Template] = self._load_templates()
        self.settings: Dict[str, Any] = self._read(SETTINGS_KEY, {})
        self.settings.setdefault("appVersion", APP_VERSION)
        self.settings.setdefault("weekStartsOn", 0)

        self.schedule = ScheduleStore(store, SCHEDULE_KEY, on_persistence_error=self._surface_error,
                                      on_persistence_success=self._clear_error)
        self.schedule.load()
        self.template_manager = TemplateManager()
        self.duplication_engine = DuplicationEngine()

    # Persistence
    def _read(self, key: str, default: Any) -> Any:
        raw = self.store.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Stored value for '{key}' is not valid JSON: {e}")
            return default

    def _load_templates(self) -> List[Template]:
        templates = []
        for entry in self._read(TEMPLATES_KEY, []):
            try:
                templates.append(Template.from_dict(entry))
            except (KeyError, TypeError, AttributeError, DataValidationError) as e:
                logger.error(f"Skipping unreadable stored template: {e}")
        return templates

    def _write(self, key: str, value: Any) -> bool:
        try:
            self.store.set(key, json.dumps(value, ensure_ascii=False))
        except Exception as e:
            logger.error(f"Failed to persist '{key}': {e}", exc_info=True)
            self._surface_error(e)
            return False
        self._clear_error()
        return True

    def _surface_error(self, error: Exception):
        first_failure = self.last_persistence_error is None
        self.last_persistence_error = error
        if first_failure and self.on_persistence_error is not None:
            self.on_persistence_error(error)

    def _clear_error(self):
        self.last_persistence_error = None

    def save_data(self) -> bool:
        """Write every section"""
        results = [
            self._save_locations(),
            self._save_departments(),
            self._save_employees(),
            self._save_templates(),
            self._write(SETTINGS_KEY, self.settings),
            self.schedule.save(),
        ]
        return all(results)

    def _save_locations(self) -> bool:
        return self._write(LOCATIONS_KEY, [loc.to_dict() for loc in self.locations])

    def _save_departments(self) -> bool:
        return self._write(DEPARTMENTS_KEY, [dep.to_dict() for dep in self.departments])

    def _save_employees(self) -> bool:
        return self._write(EMPLOYEES_KEY, [emp.to_dict() for emp in self.employees])

    def _save_templates(self) -> bool:
        return self._write(TEMPLATES_KEY, [tpl.to_dict() for tpl in self.templates])

    # Settings and notes
    def get_setting(self, key: str, default=None):
        return self.settings.get(key, default)

    def set_setting(self, key: str, value):
        self.settings[key] = value
        self._write(SETTINGS_KEY, self.settings)

    def get_notes(self) -> str:
        return self.store.get(NOTES_KEY) or ""

    def set_notes(self, notes: str) -> bool:
        try:
            self.store.set(NOTES_KEY, notes)
        except Exception as e:
            logger.error(f"Failed to persist notes: {e}", exc_info=True)
            self._surface_error(e)
            return False
        return True

    # Location Management
    def get_locations(self) -> List[Location]:
        return list(self.locations)

    def get_location(self, location_id: str) -> Optional[Location]:
        return next((loc for loc in self.locations if loc.id == location_id), None)

    def add_location(self, name: str, location_id: Optional[str] = None) -> Location:
        location = Location(id=location_id or new_id("loc"), name=name)
        if self.get_location(location.id):
            raise DataValidationError(f"Location {location.id} already exists")
        self.locations.append(location)
        self._save_locations()
        return location

    def rename_location(self, location_id: str, name: str) -> Location:
        location = self._require_location(location_id)
        location.name = name
        self._save_locations()
        return location

    def delete_location(self, location_id: str) -> bool:
        """Delete a location with its departments, their assignments and its templates"""
        location = self.get_location(location_id)
        if location is None:
            return False

        for department in [d for d in self.departments if d.location_id == location_id]:
            self.schedule.remove_department(department.id)
        self.departments = [d for d in self.departments if d.location_id != location_id]
        self.templates = [t for t in self.templates if t.location_id != location_id]

        kept_employees = []
        for employee in self.employees:
            employee.location_ids.discard(location_id)
            if employee.location_ids:
                kept_employees.append(employee)
            else:
                self.schedule.remove_employee(employee.id)
        self.employees = kept_employees
        self.locations.remove(location)

        if self.settings.get("lastLocationId") == location_id:
            self.settings.pop("lastLocationId")
        self.save_data()
        logger.info(f"Deleted location {location_id} and its dependent data")
        return True

    def _require_location(self, location_id: str) -> Location:
        location = self.get_location(location_id)
        if location is None:
            raise UnresolvedReferenceError(f"Unknown location {location_id}")
        return location

    # Department Management
    def get_departments(self, location_id: Optional[str] = None) -> List[Department]:
        return [d for d in self.departments if location_id is None or d.location_id == location_id]

    def get_department(self, department_id: str) -> Optional[Department]:
        return next((d for d in self.departments if d.id == department_id), None)

    def add_department(self, name: str, location_id: str, icon_tag: IconTag = IconTag.BUILDING,
                       department_id: Optional[str] = None) -> Department:
        self._require_location(location_id)
        department = Department(id=department_id or new_id("dep"), name=name,
                                location_id=location_id, icon_tag=icon_tag)
        if self.get_department(department.id):
            raise DataValidationError(f"Department {department.id} already exists")
        self.departments.append(department)
        self._save_departments()
        return department

    def update_department(self, department_id: str, name: str = None, icon_tag: IconTag = None) -> Department:
        department = self.get_department(department_id)
        if department is None:
            raise UnresolvedReferenceError(f"Unknown department {department_id}")
        if name is not None:
            department.name = name
        if icon_tag is not None:
            department.icon_tag = icon_tag
        self._save_departments()
        return department

    def delete_department(self, department_id: str) -> bool:
        department = self.get_department(department_id)
        if department is None:
            return False
        self.departments.remove(department)
        removed = self.schedule.remove_department(department_id)
        for template in self.templates:
            for slots in template.days().values():
                slots.pop(department_id, None)
        self._save_departments()
        self._save_templates()
        logger.info(f"Deleted department {department_id} and {removed} assignments")
        return True

    # Employee Management
    def get_employees(self, location_id: Optional[str] = None) -> List[Employee]:
        return [e for e in self.employees if location_id is None or location_id in e.location_ids]

    def get_employee(self, employee_id: str) -> Optional[Employee]:
        return next((e for e in self.employees if e.id == employee_id), None)

    def roster(self) -> Dict[str, Employee]:
        return {e.id: e for e in self.employees}

    def add_employee(self, employee_id: str, name: str, location_ids: Sequence[str]) -> Employee:
        employee_id = str(employee_id).strip()
        if not employee_id:
            raise DataValidationError("Employee id is required")
        if self.get_employee(employee_id):
            raise DataValidationError(f"Employee {employee_id} already exists")
        if not location_ids:
            raise DataValidationError("An employee must belong to at least one location")
        for location_id in location_ids:
            self._require_location(location_id)

        employee = Employee(id=employee_id, name=name, location_ids=set(location_ids))
        self.employees.append(employee)
        self._save_employees()
        return employee

    def update_employee(self, employee_id: str, name: str = None,
                        location_ids: Optional[Sequence[str]] = None) -> Employee:
        """Rename or relink an employee; dropping every location is rejected"""
        employee = self.get_employee(employee_id)
        if employee is None:
            raise UnresolvedReferenceError(f"Unknown employee {employee_id}")
        if location_ids is not None:
            if not location_ids:
                raise DataValidationError("An employee must belong to at least one location")
            for location_id in location_ids:
                self._require_location(location_id)
            employee.location_ids = set(location_ids)
        if name is not None:
            employee.name = name
        self._save_employees()
        return employee

    def delete_employee(self, employee_id: str) -> bool:
        employee = self.get_employee(employee_id)
        if employee is None:
            return False
        self.employees.remove(employee)
        removed = self.schedule.remove_employee(employee_id)
        self._save_employees()
        logger.info(f"Deleted employee {employee_id} and {removed} assignments")
        return True

    # Scheduling
    def assign_shift(self, date_key: str, department_id: str, employee_id: str,
                     start_time: str, end_time: str, include_break: bool = False,
                     break_start_time: Optional[str] = None, break_end_time: Optional[str] = None,
                     assignment_id: Optional[str] = None) -> ValidationResult:
        """Create a shift, or edit it in place when assignment_id is given"""
        if self.get_department(department_id) is None:
            raise UnresolvedReferenceError(f"Unknown department {department_id}")
        if self.get_employee(employee_id) is None:
            raise UnresolvedReferenceError(f"Unknown employee {employee_id}")
        assignment = Assignment(
            id=assignment_id or new_id("shift"),
            employee_id=employee_id,
            start_time=start_time,
            end_time=end_time,
            include_break=include_break,
            break_start_time=break_start_time if include_break else None,
            break_end_time=break_end_time if include_break else None
        )
        return self.schedule.upsert(date_key, department_id, assignment)

    def remove_shift(self, date_key: str, department_id: str, assignment_id: str) -> bool:
        return self.schedule.remove(date_key, department_id, assignment_id)

    def duplicate_day(self, source_date_key: str) -> DuplicationResult:
        return self.duplication_engine.duplicate_day(source_date_key, self.schedule, self.roster())

    def duplicate_week(self, week_date_keys: Sequence[str]) -> DuplicationResult:
        return self.duplication_engine.duplicate_week(week_date_keys, self.schedule, self.roster())

    def import_csv(self, raw_text: str, week_date_keys: Sequence[str], location_id: str) -> ImportReport:
        self._require_location(location_id)
        processor = CsvImportProcessor(location_id=location_id)
        return processor.parse_and_apply(raw_text, week_date_keys, self.get_departments(location_id),
                                         self.roster(), self.schedule)

    def employee_hours_summary(self, date_keys: Sequence[str],
                               location_id: Optional[str] = None) -> Dict[str, float]:
        """Total net hours per employee id over the dates, limited to a location's departments"""
        dept_ids = {d.id for d in self.get_departments(location_id)}
        totals: Dict[str, float] = {}
        for key in date_keys:
            for dept_id, assignments in self.schedule.get(key).assignments_by_department.items():
                if location_id is not None and dept_id not in dept_ids:
                    continue
                for assignment in assignments:
                    totals[assignment.employee_id] = totals.get(assignment.employee_id, 0.0) + \
                        compute_net_hours(assignment, key)
        return totals

    def employee_name(self, employee_id: str) -> str:
        return resolve_employee(self.roster(), employee_id).name

    # Template Management
    def get_templates(self, location_id: Optional[str] = None) -> List[Template]:
        return [t for t in self.templates if location_id is None or t.location_id == location_id]

    def get_template(self, template_id: str) -> Optional[Template]:
        return next((t for t in self.templates if t.id == template_id), None)

    def save_as_template(self, name: str, location_id: str, scope: TemplateScope) -> Template:
        """Extract and store a template; raises EmptyTemplateError when nothing is scheduled"""
        self._require_location(location_id)
        template = self.template_manager.extract(
            self.schedule, scope, location_id, name=name,
            department_ids=[d.id for d in self.get_departments(location_id)]
        )
        self.templates.append(template)
        self._save_templates()
        return template

    def apply_template(self, template_id: str, target: Union[str, Sequence[str]]) -> TemplateApplyResult:
        template = self.get_template(template_id)
        if template is None:
            raise UnresolvedReferenceError(f"Unknown template {template_id}")
        return self.template_manager.apply(template, self.schedule, target, self.roster())

    def delete_template(self, template_id: str) -> bool:
        template = self.get_template(template_id)
        if template is None:
            return False
        self.templates.remove(template)
        self._save_templates()
        return True

    def export_templates_json(self, location_id: Optional[str] = None) -> str:
        """Templates (all, or one location's) as a JSON array of stored dicts"""
        return json.dumps([t.to_dict() for t in self.get_templates(location_id)],
                          indent=2, ensure_ascii=False)

    def import_templates_json(self, raw: str) -> TemplateImportResult:
        """
        Add templates from an exported JSON array.

        Entries that cannot be read, belong to an unknown location or have no
        shifts left after dropping unknown departments are skipped. Entries
        whose id is already taken are stored under a fresh id.

        Raises:
            DataValidationError: Payload is not JSON or not a list of templates
        """
        try:
            entries = json.loads(raw)
        except json.JSONDecodeError as e:
            raise DataValidationError(f"Template file is not valid JSON: {e}")
        if isinstance(entries, dict):
            entries = entries.get("templates")
        if not isinstance(entries, list):
            raise DataValidationError("Template file must contain a list of templates")

        result = TemplateImportResult()
        known_departments = {d.id: d.location_id for d in self.departments}
        for position, entry in enumerate(entries, start=1):
            try:
                template = Template.from_dict(entry)
            except (KeyError, TypeError, AttributeError, ValueError, DataValidationError) as e:
                result.skipped += 1
                result.messages.append(f"Entry {position}: unreadable template ({e})")
                continue

            if self.get_location(template.location_id) is None:
                result.skipped += 1
                result.messages.append(f"Entry {position}: unknown location {template.location_id}")
                continue
            for slots in template.days().values():
                for dept_id in list(slots):
                    if known_departments.get(dept_id) != template.location_id:
                        slots.pop(dept_id)
            if template.assignment_count() == 0:
                result.skipped += 1
                result.messages.append(f"Entry {position}: no shifts for this location's departments")
                continue

            if self.get_template(template.id) is not None:
                template.id = new_id("tpl")
                result.renamed += 1
            self.templates.append(template)
            result.imported += 1

        if result.imported:
            self._save_templates()
        logger.info(f"Template import: {result.imported} imported, {result.skipped} skipped, "
                    f"{result.renamed} renamed")
        return result
