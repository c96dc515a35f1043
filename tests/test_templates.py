import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from shift_planner.errors import EmptyTemplateError
from shift_planner.models import Assignment, Employee, Template
from shift_planner.schedule_store import ScheduleStore
from shift_planner.templates import TemplateManager, TemplateScope
from shift_planner.week import week_date_keys


ROSTER = {
    "E1": Employee(id="E1", name="Ana", location_ids={"loc-1"}),
    "E2": Employee(id="E2", name="Carlos", location_ids={"loc-1"}),
}


def shift_tuples(day):
    return {a.shift_key() for a in day.all_assignments()}


@pytest.fixture
def store():
    store = ScheduleStore()
    store.upsert("2025-03-10", "kitchen", Assignment("a-1", "E1", "08:00", "16:00", True, "12:00", "12:30"))
    store.upsert("2025-03-10", "hall", Assignment("a-2", "E2", "22:00", "06:00"))
    store.upsert("2025-03-12", "hall", Assignment("a-3", "E1", "10:00", "18:00"))
    return store


@pytest.fixture
def manager():
    return TemplateManager()


def test_extract_strips_ids(store, manager):
    template = manager.extract(store, TemplateScope.daily("2025-03-10"), "loc-1", name="Monday")
    assert template.type == "daily"
    assert template.assignment_count() == 2
    data = template.to_dict()
    entry = data["assignments"]["kitchen"][0]
    assert "id" not in entry
    assert entry["employee"] == {"id": "E1"}


def test_extract_empty_scope_raises(store, manager):
    with pytest.raises(EmptyTemplateError):
        manager.extract(store, TemplateScope.daily("2025-03-11"), "loc-1")


def test_extract_respects_department_filter(store, manager):
    with pytest.raises(EmptyTemplateError):
        manager.extract(store, TemplateScope.daily("2025-03-10"), "loc-1", department_ids=["bar"])


def test_daily_round_trip_onto_empty_date(store, manager):
    """Extract then apply reproduces the same shifts with fresh ids."""
    template = manager.extract(store, TemplateScope.daily("2025-03-10"), "loc-1")
    result = manager.apply(template, store, "2025-04-01", ROSTER)
    assert result.applied == 2 and result.skipped == 0

    source, target = store.get("2025-03-10"), store.get("2025-04-01")
    assert shift_tuples(source) == shift_tuples(target)
    source_ids = {a.id for a in source.all_assignments()}
    assert source_ids.isdisjoint({a.id for a in target.all_assignments()})


def test_weekly_template_maps_by_weekday(store, manager):
    template = manager.extract(store, TemplateScope.weekly(week_date_keys("2025-03-10")), "loc-1")
    target_week = week_date_keys("2025-06-04")
    result = manager.apply(template, store, target_week, ROSTER)
    assert result.applied == 3
    # 2025-03-12 is a Wednesday, as is 2025-06-04
    assert store.get("2025-06-04").find_employee("E1").start_time == "10:00"
    assert store.has_day("2025-06-02")


def test_apply_skips_conflicts_and_counts(store, manager):
    template = manager.extract(store, TemplateScope.daily("2025-03-10"), "loc-1")
    result = manager.apply(template, store, "2025-03-12", ROSTER)
    assert result.applied == 1
    assert result.skipped == 1
    assert result.partial


def test_apply_with_missing_employee_uses_placeholder(store, manager):
    template = manager.extract(store, TemplateScope.daily("2025-03-10"), "loc-1")
    roster = {"E1": ROSTER["E1"]}
    result = manager.apply(template, store, "2025-04-01", roster)
    assert result.applied == 2
    assert [p.name for p in result.placeholders] == ["(ID: E2)"]


def test_template_serialization_round_trip(store, manager):
    template = manager.extract(store, TemplateScope.weekly(week_date_keys("2025-03-10")), "loc-1")
    restored = Template.from_dict(template.to_dict())
    assert restored.type == "weekly"
    assert restored.assignment_count() == 3
    assert set(restored.assignments) == {"2025-03-10", "2025-03-12"}
