"""
CSV Import for Shift Planner

Parses a tabular payload of shifts, resolves employees and departments,
maps each row onto the displayed week by weekday and applies the rows
through the schedule store. Bad rows are counted, never fatal.
"""

import io
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Union

import pandas as pd

from .duration import is_valid_time, parse_time_to_minutes
from .errors import ImportFormatError
from .models import Assignment, Department, Employee, generate_assignment_id, roster_by_id
from .schedule_store import ScheduleStore
from .week import first_monday_of_year, map_to_week_slot, parse_date_key

logger = logging.getLogger(__name__)

COL_EMPLOYEE_ID = "id_empleado"
COL_DATE = "fecha"
COL_DEPARTMENT = "departamento"
COL_START = "hora_inicio"
COL_END = "hora_fin"
COL_INCLUDE_BREAK = "incluye_descanso"
COL_BREAK_START = "inicio_descanso"
COL_BREAK_END = "fin_descanso"

REQUIRED_COLUMNS = [COL_EMPLOYEE_ID, COL_DEPARTMENT, COL_START, COL_END]
TRUTHY_TOKENS = {"sí", "si", "true", "1"}


class ImportCategory:
    """Row outcome categories; the first group counts as errored, the second as skipped"""
    MISSING_EMPLOYEE_ID = "missing_employee_id"
    MISSING_DEPARTMENT = "missing_department"
    INVALID_TIME = "invalid_time"
    INVALID_BREAK = "invalid_break"
    INVALID_DATE = "invalid_date"
    MALFORMED_ROW = "malformed_row"

    UNKNOWN_EMPLOYEE = "unknown_employee"
    EMPLOYEE_NOT_IN_LOCATION = "employee_not_in_location"
    UNKNOWN_DEPARTMENT = "unknown_department"
    CONFLICT = "conflict"

    ERRORED = {MISSING_EMPLOYEE_ID, MISSING_DEPARTMENT, INVALID_TIME, INVALID_BREAK, INVALID_DATE,
               MALFORMED_ROW}


@dataclass
class ImportReport:
    applied: int = 0
    skipped: int = 0
    errored: int = 0
    categories: Counter = field(default_factory=Counter)
    row_messages: List[str] = field(default_factory=list)

    def record(self, row_number: int, category: str, message: str):
        self.categories[category] += 1
        if category in ImportCategory.ERRORED:
            self.errored += 1
        else:
            self.skipped += 1
        self.row_messages.append(f"Row {row_number}: {message}")

    def record_malformed(self, fields: List[str], expected: int):
        """Count a line the parser could not split into the header's columns"""
        self.categories[ImportCategory.MALFORMED_ROW] += 1
        self.errored += 1
        preview = ",".join(fields)
        self.row_messages.append(f"Malformed row ({len(fields)} fields, expected {expected}): {preview}")


@dataclass
class ParsedRow:
    row_number: int
    target_date_key: str
    department_id: str
    assignment: Assignment


class CsvImportProcessor:
    """Turns a CSV of shifts into store writes for the displayed week"""

    def __init__(self, location_id: Optional[str] = None, today: Optional[date] = None):
        self.location_id = location_id
        self.today = today

    def parse_and_apply(self, raw_text: str, current_week_date_keys: Sequence[str],
                        departments_in_scope: Iterable[Department],
                        employee_roster: Union[Dict[str, Employee], Iterable[Employee]],
                        store: ScheduleStore) -> ImportReport:
        """
        Replace the week's in-scope assignments with the rows of raw_text.

        Raises:
            ImportFormatError: Missing header row or required columns
        """
        report = ImportReport()
        frame = self._read_frame(raw_text, report)
        departments = list(departments_in_scope)
        roster = roster_by_id(employee_roster)

        parsed = []
        for offset, record in enumerate(frame.to_dict(orient="records")):
            row = self._parse_row(offset + 2, record, current_week_date_keys, departments, roster, report)
            if row is not None:
                parsed.append(row)

        removed = store.clear_departments(current_week_date_keys, [d.id for d in departments])
        logger.info(f"Cleared {removed} assignments before import")

        for row in parsed:
            outcome = store.upsert(row.target_date_key, row.department_id, row.assignment)
            if outcome.ok:
                report.applied += 1
            else:
                report.record(row.row_number, ImportCategory.CONFLICT, outcome.message)

        logger.info(f"CSV import finished: {report.applied} applied, {report.skipped} skipped, "
                    f"{report.errored} errored")
        return report

    @staticmethod
    def _read_frame(raw_text: str, report: ImportReport) -> pd.DataFrame:
        """
        Parse the payload; lines with more fields than the header are
        recorded on the report as malformed and left out of the frame.
        """
        if not raw_text or not raw_text.strip():
            raise ImportFormatError("CSV payload is empty")
        text = raw_text.lstrip("\ufeff")
        data_line_indexes = [i for i, line in enumerate(text.splitlines()) if line.strip()][1:]
        dropped: List[int] = []

        while True:
            bad_lines: List[List[str]] = []

            def collect_bad_line(fields: List[str]):
                bad_lines.append(fields)
                return None

            try:
                frame = pd.read_csv(io.StringIO(text), dtype=str, keep_default_na=False,
                                    skipinitialspace=True, engine="python", skiprows=dropped,
                                    on_bad_lines=collect_bad_line)
            except (pd.errors.EmptyDataError, pd.errors.ParserError) as e:
                raise ImportFormatError(f"Could not parse CSV: {e}")

            # pandas reads a first data row longer than the header as index columns
            if len(frame) == 0 or isinstance(frame.index, pd.RangeIndex):
                break
            dropped.append(data_line_indexes[len(dropped)])

        expected = len(frame.columns)
        for line_index in dropped:
            report.record(line_index + 1, ImportCategory.MALFORMED_ROW,
                          f"Row has more fields than the {expected} header columns")
        for fields in bad_lines:
            report.record_malformed(fields, expected)
        if dropped or bad_lines:
            logger.warning(f"Dropped {len(dropped) + len(bad_lines)} malformed CSV lines")

        frame = frame.fillna("")
        frame.columns = [str(col).strip().lower() for col in frame.columns]
        missing = [col for col in REQUIRED_COLUMNS if col not in frame.columns]
        if missing:
            raise ImportFormatError(f"Missing required columns: {', '.join(missing)}")
        return frame

    def _parse_row(self, row_number: int, record: Dict[str, str], week: Sequence[str],
                   departments: List[Department], roster: Dict[str, Employee],
                   report: ImportReport) -> Optional[ParsedRow]:
        def value(column: str) -> str:
            return str(record.get(column, "") or "").strip()

        employee_id = value(COL_EMPLOYEE_ID)
        if not employee_id:
            report.record(row_number, ImportCategory.MISSING_EMPLOYEE_ID, "ID_Empleado is required")
            return None

        department_name = value(COL_DEPARTMENT)
        if not department_name:
            report.record(row_number, ImportCategory.MISSING_DEPARTMENT, "Departamento is required")
            return None

        start_time, end_time = value(COL_START), value(COL_END)
        if not is_valid_time(start_time) or not is_valid_time(end_time):
            report.record(row_number, ImportCategory.INVALID_TIME,
                          f"Invalid shift times '{start_time}'-'{end_time}'")
            return None

        include_break = value(COL_INCLUDE_BREAK).lower() in TRUTHY_TOKENS
        break_start = break_end = None
        if include_break:
            break_start, break_end = value(COL_BREAK_START), value(COL_BREAK_END)
            if (not is_valid_time(break_start) or not is_valid_time(break_end)
                    or parse_time_to_minutes(break_end) <= parse_time_to_minutes(break_start)):
                report.record(row_number, ImportCategory.INVALID_BREAK,
                              f"Invalid break '{break_start}'-'{break_end}'")
                return None

        raw_date = value(COL_DATE)
        try:
            source_date = parse_date_key(raw_date) if raw_date else first_monday_of_year(
                (self.today or date.today()).year)
        except ValueError:
            report.record(row_number, ImportCategory.INVALID_DATE, f"Invalid Fecha '{raw_date}'")
            return None
        target_key = map_to_week_slot(source_date, week)
        if target_key is None:
            report.record(row_number, ImportCategory.INVALID_DATE, f"No slot for {raw_date} in week")
            return None

        employee = roster.get(employee_id)
        if employee is None:
            report.record(row_number, ImportCategory.UNKNOWN_EMPLOYEE, f"Unknown employee {employee_id}")
            return None
        if self.location_id is not None and self.location_id not in employee.location_ids:
            report.record(row_number, ImportCategory.EMPLOYEE_NOT_IN_LOCATION,
                          f"{employee.name} is not linked to this location")
            return None

        department = next((d for d in departments if d.name.strip().lower() == department_name.lower()), None)
        if department is None:
            report.record(row_number, ImportCategory.UNKNOWN_DEPARTMENT, f"Unknown department '{department_name}'")
            return None

        assignment = Assignment(
            id=generate_assignment_id(employee.id, target_key, start_time),
            employee_id=employee.id,
            start_time=start_time,
            end_time=end_time,
            include_break=include_break,
            break_start_time=break_start,
            break_end_time=break_end
        )
        return ParsedRow(row_number, target_key, department.id, assignment)
