"""
Main Entry Point for Shift Planner

Command-line access to the scheduling core over a JSON data file, with
logging configured once for the whole application.
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

from shift_planner.data_manager import DataManager
from shift_planner.errors import ShiftPlannerError
from shift_planner.holidays import HolidayAnnotator, SampleHolidayProvider
from shift_planner.reporting import ExportManager
from shift_planner.templates import TemplateScope
from shift_planner.week import parse_date_key, week_date_keys


def setup_logging(log_dir: str = "logs", level: int = logging.INFO):
    """Setup application logging"""
    log_path = Path(log_dir)
    log_path.mkdir(exist_ok=True)

    log_file = log_path / f"shift_planner_{datetime.now().strftime('%Y%m%d')}.log"

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stdout)
        ]
    )

    return logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="shift-planner", description="Shift assignment planner")
    parser.add_argument("--data-file", default="data/shift_planner.json", help="JSON data file")
    parser.add_argument("--log-dir", default="logs")
    parser.add_argument("--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    imp = sub.add_parser("import-csv", help="Replace a week's shifts with a CSV file")
    imp.add_argument("csv_file")
    imp.add_argument("--location", required=True)
    imp.add_argument("--week-of", required=True, help="Any date (yyyy-MM-dd) in the target week")

    exp = sub.add_parser("export", help="Export a week")
    exp.add_argument("--week-of", required=True)
    exp.add_argument("--location")
    exp.add_argument("--format", choices=["csv", "excel", "pdf"], default="csv")
    exp.add_argument("--output", required=True)

    dup_day = sub.add_parser("duplicate-day", help="Copy a day to the next day")
    dup_day.add_argument("date")

    dup_week = sub.add_parser("duplicate-week", help="Copy a week to the next week")
    dup_week.add_argument("--week-of", required=True)

    save_tpl = sub.add_parser("save-template", help="Save a day or week as a template")
    save_tpl.add_argument("name")
    save_tpl.add_argument("--location", required=True)
    save_tpl.add_argument("--date", required=True)
    save_tpl.add_argument("--weekly", action="store_true")

    apply_tpl = sub.add_parser("apply-template", help="Apply a saved template")
    apply_tpl.add_argument("template_id")
    apply_tpl.add_argument("--date", required=True, help="Target date, or any date of the target week")

    exp_tpl = sub.add_parser("export-templates", help="Write templates to a JSON file")
    exp_tpl.add_argument("--output", required=True)
    exp_tpl.add_argument("--location")

    imp_tpl = sub.add_parser("import-templates", help="Add templates from a JSON file")
    imp_tpl.add_argument("json_file")

    return parser


def run(args, data_manager: DataManager) -> int:
    logger = logging.getLogger(__name__)

    if args.command == "import-csv":
        raw_text = Path(args.csv_file).read_text(encoding="utf-8")
        report = data_manager.import_csv(raw_text, week_date_keys(args.week_of), args.location)
        print(f"Applied: {report.applied}  Skipped: {report.skipped}  Errored: {report.errored}")
        for message in report.row_messages:
            print(f"  {message}")

    elif args.command == "export":
        week = week_date_keys(args.week_of)
        annotator = HolidayAnnotator(SampleHolidayProvider())
        annotator.prefetch_for_week([parse_date_key(week[0]), parse_date_key(week[-1])])
        annotator.wait_for_pending(timeout=5)
        exporter = ExportManager(data_manager, annotator)
        if not exporter.export_week(week, args.format, args.output, args.location):
            logger.error(f"Export to {args.output} failed")
            return 1
        print(f"Exported {args.format} to {args.output}")

    elif args.command == "duplicate-day":
        result = data_manager.duplicate_day(args.date)
        print(f"Copied {result.copied} shifts to {result.target_date_keys[0]}, {result.skipped} conflicts")

    elif args.command == "duplicate-week":
        result = data_manager.duplicate_week(week_date_keys(args.week_of))
        print(f"Copied {result.copied} shifts over {result.days_copied} days, {result.skipped} conflicts")

    elif args.command == "save-template":
        scope = TemplateScope.weekly(week_date_keys(args.date)) if args.weekly else TemplateScope.daily(args.date)
        template = data_manager.save_as_template(args.name, args.location, scope)
        print(f"Saved template {template.id} ({template.assignment_count()} shifts)")

    elif args.command == "apply-template":
        template = data_manager.get_template(args.template_id)
        target = week_date_keys(args.date) if template and template.type == "weekly" else args.date
        result = data_manager.apply_template(args.template_id, target)
        print(f"Applied {result.applied} shifts, skipped {result.skipped}")

    elif args.command == "export-templates":
        Path(args.output).write_text(data_manager.export_templates_json(args.location), encoding="utf-8")
        print(f"Exported {len(data_manager.get_templates(args.location))} templates to {args.output}")

    elif args.command == "import-templates":
        result = data_manager.import_templates_json(Path(args.json_file).read_text(encoding="utf-8"))
        print(f"Imported: {result.imported}  Skipped: {result.skipped}  Renamed: {result.renamed}")
        for message in result.messages:
            print(f"  {message}")

    if data_manager.last_persistence_error or data_manager.schedule.last_persistence_error:
        print("Warning: changes could not be saved to the data file", file=sys.stderr)
        return 2
    return 0


def main(argv=None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)
    logger = setup_logging(args.log_dir, logging.DEBUG if args.verbose else logging.INFO)
    try:
        data_manager = DataManager(args.data_file)
        return run(args, data_manager)
    except (ShiftPlannerError, ValueError, OSError) as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
