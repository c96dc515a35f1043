import pytest
import sys
from pathlib import Path
import tempfile
import os
import json

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from shift_planner.data_manager import DataManager
from shift_planner.errors import (
    DataFileCorruptedError, DataSaveError, DataValidationError, EmptyTemplateError,
    UnresolvedReferenceError
)
from shift_planner.models import IconTag
from shift_planner.templates import TemplateScope
from shift_planner.week import week_date_keys


@pytest.fixture
def data_manager():
    """Fixture for a clean, isolated DataManager instance for each test."""
    with tempfile.NamedTemporaryFile(
        mode="w", suffix=".json", delete=False
    ) as temp_file:
        temp_path = temp_file.name
        json.dump({}, temp_file)

    dm = DataManager(temp_path)
    centro = dm.add_location("Sede Centro", "loc-1")
    norte = dm.add_location("Sucursal Norte", "loc-2")
    dm.add_department("Cocina", centro.id, IconTag.BUILDING, "dep-1")
    dm.add_department("Salón", centro.id, IconTag.USERS, "dep-2")
    dm.add_department("Cocina Norte", norte.id, IconTag.BUILDING2, "dep-3")
    dm.add_employee("E1", "Ana García", [centro.id])
    dm.add_employee("E2", "Carlos Ruiz", [centro.id, norte.id])
    dm.add_employee("E5", "Pedro Ramirez", [norte.id])
    yield dm
    os.unlink(temp_path)
    for suffix in (".bak", ".tmp"):
        leftover = Path(temp_path).with_suffix(suffix)
        if leftover.exists():
            leftover.unlink()


def test_entities_persist_across_reload(data_manager):
    data_manager.assign_shift("2025-03-10", "dep-1", "E1", "08:00", "16:00", True, "12:00", "13:00")
    data_manager.set_notes("Inventory on Friday")

    reloaded = DataManager(data_manager.data_file)
    assert [loc.name for loc in reloaded.get_locations()] == ["Sede Centro", "Sucursal Norte"]
    assert reloaded.get_department("dep-2").icon_tag is IconTag.USERS
    assert reloaded.get_employee("E2").location_ids == {"loc-1", "loc-2"}
    assert reloaded.schedule.get("2025-03-10").find_employee("E1").break_start_time == "12:00"
    assert reloaded.get_notes() == "Inventory on Friday"


def test_department_icons_are_stored_as_tags(data_manager):
    raw = json.loads(data_manager.store.get("departments"))
    assert {d["iconTag"] for d in raw} == {"Building", "Users", "Building2"}


def test_delete_location_cascades(data_manager):
    """
    Why this is important: deleting a location must leave nothing pointing at
    it: its departments, their shifts on every date, its templates, and any
    employee who worked only there.
    """
    data_manager.assign_shift("2025-03-10", "dep-3", "E5", "08:00", "16:00")
    data_manager.assign_shift("2025-03-11", "dep-3", "E2", "08:00", "16:00")
    data_manager.assign_shift("2025-03-10", "dep-1", "E1", "08:00", "16:00")
    data_manager.save_as_template("Norte Monday", "loc-2", TemplateScope.daily("2025-03-10"))

    assert data_manager.delete_location("loc-2")

    assert data_manager.get_location("loc-2") is None
    assert data_manager.get_departments("loc-2") == []
    assert data_manager.get_templates("loc-2") == []
    assert data_manager.get_employee("E5") is None
    assert data_manager.get_employee("E2").location_ids == {"loc-1"}
    assert not data_manager.schedule.has_day("2025-03-11")
    assert "dep-3" not in data_manager.schedule.get("2025-03-10").assignments_by_department
    assert data_manager.schedule.get("2025-03-10").find_employee("E1") is not None

    reloaded = DataManager(data_manager.data_file)
    assert reloaded.get_employee("E5") is None
    assert reloaded.get_departments("loc-2") == []


def test_employee_needs_a_location(data_manager):
    with pytest.raises(DataValidationError):
        data_manager.update_employee("E1", location_ids=[])
    with pytest.raises(DataValidationError):
        data_manager.add_employee("E9", "Nobody", [])
    with pytest.raises(UnresolvedReferenceError):
        data_manager.add_employee("E9", "Nobody", ["loc-404"])
    with pytest.raises(DataValidationError):
        data_manager.add_employee("E1", "Duplicate", ["loc-1"])


def test_rename_employee_keeps_shifts(data_manager):
    data_manager.assign_shift("2025-03-10", "dep-1", "E1", "08:00", "16:00")
    data_manager.update_employee("E1", name="Ana G.")
    assert data_manager.employee_name("E1") == "Ana G."
    assert data_manager.schedule.get("2025-03-10").find_employee("E1") is not None


def test_delete_employee_and_department_remove_their_shifts(data_manager):
    data_manager.assign_shift("2025-03-10", "dep-1", "E1", "08:00", "16:00")
    data_manager.assign_shift("2025-03-10", "dep-2", "E2", "08:00", "16:00")
    data_manager.assign_shift("2025-03-11", "dep-2", "E1", "08:00", "16:00")

    data_manager.delete_employee("E1")
    assert data_manager.schedule.date_keys() == ["2025-03-10"]
    data_manager.delete_department("dep-2")
    assert data_manager.schedule.date_keys() == []


def test_assign_shift_rejects_unknown_references(data_manager):
    with pytest.raises(UnresolvedReferenceError):
        data_manager.assign_shift("2025-03-10", "dep-404", "E1", "08:00", "16:00")
    with pytest.raises(UnresolvedReferenceError):
        data_manager.assign_shift("2025-03-10", "dep-1", "E404", "08:00", "16:00")


def test_save_and_apply_template_through_manager(data_manager):
    week = week_date_keys("2025-03-10")
    with pytest.raises(EmptyTemplateError):
        data_manager.save_as_template("Empty", "loc-1", TemplateScope.weekly(week))

    data_manager.assign_shift("2025-03-10", "dep-1", "E1", "08:00", "16:00")
    data_manager.assign_shift("2025-03-10", "dep-3", "E5", "08:00", "16:00")
    template = data_manager.save_as_template("Centro week", "loc-1", TemplateScope.weekly(week))
    assert template.assignment_count() == 1

    result = data_manager.apply_template(template.id, week_date_keys("2025-03-17"))
    assert result.applied == 1
    assert DataManager(data_manager.data_file).get_template(template.id).name == "Centro week"


def test_hours_summary(data_manager):
    data_manager.assign_shift("2025-03-10", "dep-1", "E1", "22:00", "06:00")
    data_manager.assign_shift("2025-03-11", "dep-2", "E1", "09:00", "17:00", True, "12:00", "13:00")
    data_manager.assign_shift("2025-03-11", "dep-3", "E5", "09:00", "17:00")
    totals = data_manager.employee_hours_summary(week_date_keys("2025-03-10"), "loc-1")
    assert totals == {"E1": 15.0}


def test_recovers_from_backup(tmp_path):
    data_file = tmp_path / "planner.json"
    dm = DataManager(data_file)
    dm.add_location("Sede Centro", "loc-1")
    dm.add_location("Sucursal Norte", "loc-2")
    data_file.write_text("{not json")

    recovered = DataManager(data_file)
    assert [loc.id for loc in recovered.get_locations()] == ["loc-1"]


def test_corrupted_without_backup_raises(tmp_path):
    data_file = tmp_path / "planner.json"
    data_file.write_text("{not json")
    with pytest.raises(DataFileCorruptedError):
        DataManager(data_file)


class FlakyStore:
    """In-memory store whose writes fail while `failing` is set."""

    def __init__(self):
        self.data = {}
        self.failing = False

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        if self.failing:
            raise DataSaveError("disk full")
        self.data[key] = value


def test_second_failure_streak_is_surfaced_after_schedule_recovers():
    """
    Why this is important: once the schedule is written again the user must
    hear about the next outage too, and the stale error must not linger.
    """
    flaky = FlakyStore()
    surfaced = []
    dm = DataManager(store=flaky, on_persistence_error=surfaced.append)
    dm.add_location("Sede Centro", "loc-1")
    dm.add_department("Cocina", "loc-1", IconTag.BUILDING, "dep-1")
    dm.add_employee("E1", "Ana García", ["loc-1"])

    flaky.failing = True
    assert dm.assign_shift("2025-03-10", "dep-1", "E1", "08:00", "16:00", assignment_id="a-1").ok
    assert len(surfaced) == 1

    flaky.failing = False
    assert dm.remove_shift("2025-03-10", "dep-1", "a-1")
    assert dm.last_persistence_error is None
    assert dm.schedule.last_persistence_error is None

    flaky.failing = True
    assert dm.assign_shift("2025-03-11", "dep-1", "E1", "08:00", "16:00").ok
    assert len(surfaced) == 2
    assert isinstance(dm.last_persistence_error, DataSaveError)


def test_template_json_export_and_import(data_manager, tmp_path):
    """
    Why this is important: templates shared between data files must not
    overwrite existing ones or carry shifts for departments that do not exist.
    """
    week = week_date_keys("2025-03-10")
    data_manager.assign_shift("2025-03-10", "dep-1", "E1", "08:00", "16:00")
    data_manager.assign_shift("2025-03-10", "dep-3", "E5", "08:00", "16:00")
    centro = data_manager.save_as_template("Centro", "loc-1", TemplateScope.weekly(week))
    data_manager.save_as_template("Norte", "loc-2", TemplateScope.daily("2025-03-10"))

    exported = json.loads(data_manager.export_templates_json("loc-1"))
    assert [entry["id"] for entry in exported] == [centro.id]

    foreign = {"id": "tpl-foreign", "name": "Foreign", "locationId": "loc-1", "type": "daily",
               "assignments": {"dep-404": [{"employee": {"id": "E1"}, "startTime": "08:00",
                                            "endTime": "16:00", "includeBreak": False}]}}
    payload = json.dumps(exported + [
        {"name": "No id"},
        {"id": "tpl-x", "locationId": "loc-404", "type": "daily", "assignments": {}},
        {"id": "tpl-y", "locationId": "loc-1", "type": "daily",
         "assignments": {"dep-1": [{"employee": None, "startTime": "08:00", "endTime": "16:00"}]}},
        foreign,
        "not a template",
    ])
    result = data_manager.import_templates_json(payload)

    assert (result.imported, result.skipped, result.renamed) == (1, 5, 1)
    assert len(result.messages) == 5
    assert len(data_manager.get_templates("loc-1")) == 2
    copy = next(t for t in data_manager.get_templates("loc-1") if t.id != centro.id)
    assert copy.name == "Centro"
    assert copy.assignment_count() == 1
    assert len(DataManager(data_manager.data_file).get_templates()) == 3


def test_template_import_rejects_non_list_payload(data_manager):
    with pytest.raises(DataValidationError):
        data_manager.import_templates_json("{not json")
    with pytest.raises(DataValidationError):
        data_manager.import_templates_json('"templates"')
    assert data_manager.import_templates_json('{"templates": []}').imported == 0
