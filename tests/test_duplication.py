import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from shift_planner.duplication import DuplicationEngine
from shift_planner.models import Assignment, Employee
from shift_planner.schedule_store import ScheduleStore
from shift_planner.week import week_date_keys


ROSTER = [
    Employee(id="E1", name="Ana", location_ids={"loc-1"}),
    Employee(id="E2", name="Carlos", location_ids={"loc-1"}),
]


def assert_no_double_booking(store):
    for key in store.date_keys():
        employee_ids = [a.employee_id for a in store.get(key).all_assignments()]
        assert len(employee_ids) == len(set(employee_ids)), key


@pytest.fixture
def store():
    store = ScheduleStore()
    store.upsert("2025-03-10", "kitchen", Assignment("a-1", "E1", "08:00", "16:00"))
    store.upsert("2025-03-10", "hall", Assignment("a-2", "E2", "08:00", "16:00"))
    return store


@pytest.fixture
def engine():
    return DuplicationEngine()


def test_duplicate_day_into_empty_target(store, engine):
    result = engine.duplicate_day("2025-03-10", store, ROSTER)
    assert result.target_date_keys == ["2025-03-11"]
    assert result.copied == 2
    assert result.complete

    target = store.get("2025-03-11")
    assert {a.employee_id for a in target.all_assignments()} == {"E1", "E2"}
    # Identical start times still yield distinct ids
    ids = [a.id for a in target.all_assignments()]
    assert len(set(ids)) == 2
    assert not {"a-1", "a-2"} & set(ids)


def test_duplicate_day_twice_reports_conflicts(store, engine):
    """
    Why this is important: re-running a duplication must never double-book
    anyone on the target date; the second run reports every copy as a conflict.
    """
    engine.duplicate_day("2025-03-10", store, ROSTER)
    second = engine.duplicate_day("2025-03-10", store, ROSTER)
    assert second.copied == 0
    assert second.skipped == 2
    assert not second.complete
    assert_no_double_booking(store)


def test_duplicate_day_never_mutates_source(store, engine):
    before = store.get("2025-03-10")
    engine.duplicate_day("2025-03-10", store, ROSTER)
    assert store.get("2025-03-10") == before


def test_duplicate_week_aligns_weekdays(store, engine):
    store.upsert("2025-03-16", "hall", Assignment("a-3", "E1", "20:00", "04:00"))
    week = week_date_keys("2025-03-12")
    result = engine.duplicate_week(week, store, ROSTER)

    assert result.target_date_keys[0] == "2025-03-17"
    assert result.days_copied == 2
    assert result.copied == 3
    assert store.get("2025-03-23").find_employee("E1").start_time == "20:00"
    assert len(list(store.get("2025-03-17").all_assignments())) == 2
    assert_no_double_booking(store)


def test_duplicate_week_with_unknown_employee(store, engine):
    result = engine.duplicate_week(week_date_keys("2025-03-10"), store, ROSTER[:1])
    assert result.copied == 2
    assert result.unresolved_employee_ids == ["E2"]


def test_duplicate_partial_week_keeps_each_date(store, engine):
    """
    Why this is important: a caller passing only some days, or a week not
    starting on Monday, must still land every copy exactly seven days later.
    """
    store.upsert("2025-03-13", "hall", Assignment("a-3", "E1", "09:00", "17:00"))
    result = engine.duplicate_week(["2025-03-13", "2025-03-10"], store, ROSTER)

    assert result.target_date_keys == ["2025-03-20", "2025-03-17"]
    assert result.days_copied == 2
    assert store.get("2025-03-20").find_employee("E1").start_time == "09:00"
    assert len(list(store.get("2025-03-17").all_assignments())) == 2
    assert not store.has_day("2025-03-14")
