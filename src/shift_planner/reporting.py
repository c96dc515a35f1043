"""
Reporting and Export Module for Shift Planner

Handles CSV, Excel and weekly PDF export of scheduled shifts with
net worked hours per assignment.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Any, Sequence
from xml.sax.saxutils import escape

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer

from .data_manager import DataManager
from .duration import compute_net_hours, format_to_12_hour
from .holidays import HolidayAnnotator
from .week import parse_date_key

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "ID_Empleado", "Nombre_Empleado", "Fecha", "Departamento", "Hora_Inicio", "Hora_Fin",
    "Incluye_Descanso", "Inicio_Descanso", "Fin_Descanso", "Horas_Trabajadas"
]

DAY_NAMES = ['Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat', 'Sun']


class ReportGenerator:
    """Main class for generating reports and exports"""

    def __init__(self, data_manager: DataManager, holiday_annotator: Optional[HolidayAnnotator] = None):
        self.data_manager = data_manager
        self.holiday_annotator = holiday_annotator
        self.styles = getSampleStyleSheet()
        self._setup_custom_styles()

    def _setup_custom_styles(self):
        self.styles.add(ParagraphStyle(
            name='CustomTitle',
            parent=self.styles['Heading1'],
            fontSize=18,
            spaceAfter=12,
            alignment=1  # Center alignment
        ))
        self.styles.add(ParagraphStyle(
            name='CellText',
            parent=self.styles['Normal'],
            fontSize=8,
            leading=10,
            alignment=1
        ))

    def build_export_rows(self, date_keys: Sequence[str], location_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """One row per assignment, ordered by date then department"""
        departments = {d.id: d for d in self.data_manager.get_departments(location_id)}
        rows = []
        for key in date_keys:
            day = self.data_manager.schedule.get(key)
            for dept_id, assignments in day.assignments_by_department.items():
                department = departments.get(dept_id)
                if department is None:
                    continue
                for assignment in assignments:
                    rows.append({
                        "ID_Empleado": assignment.employee_id,
                        "Nombre_Empleado": self.data_manager.employee_name(assignment.employee_id),
                        "Fecha": key,
                        "Departamento": department.name,
                        "Hora_Inicio": format_to_12_hour(assignment.start_time),
                        "Hora_Fin": format_to_12_hour(assignment.end_time),
                        "Incluye_Descanso": "Sí" if assignment.include_break else "No",
                        "Inicio_Descanso": format_to_12_hour(assignment.break_start_time) if assignment.include_break else "",
                        "Fin_Descanso": format_to_12_hour(assignment.break_end_time) if assignment.include_break else "",
                        "Horas_Trabajadas": round(compute_net_hours(assignment, key), 2),
                    })
        return rows

    def _create_schedule_dataframe(self, date_keys: Sequence[str], location_id: Optional[str]) -> pd.DataFrame:
        return pd.DataFrame(self.build_export_rows(date_keys, location_id), columns=EXPORT_COLUMNS)

    def _create_hours_dataframe(self, date_keys: Sequence[str], location_id: Optional[str]) -> pd.DataFrame:
        totals = self.data_manager.employee_hours_summary(date_keys, location_id)
        data = [
            {
                "ID_Empleado": emp_id,
                "Nombre_Empleado": self.data_manager.employee_name(emp_id),
                "Horas_Totales": round(hours, 2)
            }
            for emp_id, hours in sorted(totals.items())
        ]
        return pd.DataFrame(data, columns=["ID_Empleado", "Nombre_Empleado", "Horas_Totales"])

    def export_schedule_csv(self, date_keys: Sequence[str], output_path: str,
                            location_id: Optional[str] = None) -> bool:
        """Export shifts to CSV format"""
        try:
            schedule_df = self._create_schedule_dataframe(date_keys, location_id)
            schedule_df.to_csv(output_path, index=False)
            return True
        except Exception as e:
            logger.error(f"Error exporting to CSV: {e}", exc_info=True)
            return False

    def export_schedule_excel(self, date_keys: Sequence[str], output_path: str,
                              location_id: Optional[str] = None) -> bool:
        """Export shifts and an hours summary to an Excel workbook"""
        try:
            with pd.ExcelWriter(output_path, engine='openpyxl') as writer:
                self._create_schedule_dataframe(date_keys, location_id).to_excel(
                    writer, sheet_name='Turnos', index=False)
                self._create_hours_dataframe(date_keys, location_id).to_excel(
                    writer, sheet_name='Resumen Horas', index=False)
            return True
        except Exception as e:
            logger.error(f"Error exporting to Excel: {e}", exc_info=True)
            return False

    def export_week_pdf(self, week_date_keys: Sequence[str], output_path: str,
                        location_id: Optional[str] = None) -> bool:
        """Export a weekly grid: one row per employee working that week, one column per day"""
        try:
            doc = SimpleDocTemplate(
                output_path,
                pagesize=landscape(A4),
                rightMargin=0.5*inch,
                leftMargin=0.5*inch,
                topMargin=0.5*inch,
                bottomMargin=0.5*inch
            )
            location = self.data_manager.get_location(location_id) if location_id else None
            title_text = "Weekly Work Schedule"
            if location:
                title_text += f" - {location.name}"

            story = [
                Paragraph(title_text, self.styles['CustomTitle']),
                Paragraph(f"Week: {week_date_keys[0]} to {week_date_keys[-1]}", self.styles['Normal']),
                Spacer(1, 12),
                self._create_week_table(week_date_keys, location_id)
            ]
            doc.build(story)
            return True
        except Exception as e:
            logger.error(f"Error creating PDF: {e}", exc_info=True)
            return False

    def _create_week_table(self, week_date_keys: Sequence[str], location_id: Optional[str]) -> Table:
        dept_ids = {d.id for d in self.data_manager.get_departments(location_id)}
        header = ['EMPLOYEE / DAY']
        for key in week_date_keys:
            day = parse_date_key(key)
            label = f"{DAY_NAMES[day.weekday()]} {day.strftime('%d %b')}"
            if self.holiday_annotator and self.holiday_annotator.is_holiday(day):
                label += " *"
            header.append(label)

        cells: Dict[str, Dict[str, str]] = {}
        for key in week_date_keys:
            for dept_id, assignments in self.data_manager.schedule.get(key).assignments_by_department.items():
                if location_id is not None and dept_id not in dept_ids:
                    continue
                for assignment in assignments:
                    content = f"{format_to_12_hour(assignment.start_time)} - {format_to_12_hour(assignment.end_time)}"
                    if assignment.include_break and assignment.break_start_time and assignment.break_end_time:
                        content += (f"<br/>D: {format_to_12_hour(assignment.break_start_time)}"
                                    f"-{format_to_12_hour(assignment.break_end_time)}")
                    cells.setdefault(assignment.employee_id, {})[key] = content

        data = [header]
        for emp_id in sorted(cells, key=self.data_manager.employee_name):
            row = [Paragraph(f"<b>{escape(self.data_manager.employee_name(emp_id))}</b>", self.styles['Normal'])]
            for key in week_date_keys:
                row.append(Paragraph(cells[emp_id].get(key, " "), self.styles['CellText']))
            data.append(row)

        table = Table(data, colWidths=[1.8*inch] + [1.15*inch] * len(week_date_keys), repeatRows=1)
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#4C43DF')),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, 0), 9),
            ('ALIGN', (1, 0), (-1, -1), 'CENTER'),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.lightgrey),
        ]))
        return table


class ExportManager:
    """Manager class for handling all export operations"""

    def __init__(self, data_manager: DataManager, holiday_annotator: Optional[HolidayAnnotator] = None):
        self.data_manager = data_manager
        self.report_generator = ReportGenerator(data_manager, holiday_annotator)

    def export_week(self, week_date_keys: Sequence[str], format_type: str, output_path: str,
                    location_id: Optional[str] = None) -> bool:
        """Export a week in the specified format"""
        if format_type.lower() == 'pdf':
            return self.report_generator.export_week_pdf(week_date_keys, output_path, location_id)
        elif format_type.lower() == 'excel':
            return self.report_generator.export_schedule_excel(week_date_keys, output_path, location_id)
        elif format_type.lower() == 'csv':
            return self.report_generator.export_schedule_csv(week_date_keys, output_path, location_id)
        else:
            raise ValueError(f"Unsupported format: {format_type}")

    def get_default_filename(self, week_date_keys: Sequence[str], format_type: str) -> str:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        extension = 'xlsx' if format_type.lower() == 'excel' else format_type.lower()
        return f"shift_schedule_{week_date_keys[0]}_{timestamp}.{extension}"

    def batch_export(self, week_date_keys: Sequence[str], output_dir: str,
                     formats: List[str] = None, location_id: Optional[str] = None) -> Dict[str, bool]:
        """Export a week in multiple formats"""
        if formats is None:
            formats = ['pdf', 'excel', 'csv']

        results = {}
        output_path = Path(output_dir)
        output_path.mkdir(parents=True, exist_ok=True)

        for format_type in formats:
            file_path = output_path / self.get_default_filename(week_date_keys, format_type)
            try:
                results[format_type] = self.export_week(week_date_keys, format_type, str(file_path), location_id)
            except Exception as e:
                logger.error(f"Error exporting {format_type}: {e}", exc_info=True)
                results[format_type] = False

        return results
