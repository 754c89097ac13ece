"""Search engine behaviour: the four reference scenarios plus the run-level guarantees."""

import threading
import time

import pytest

from classtime.algorithms.backtracking import BacktrackingSearch, SearchParams
from classtime.generate import generate_schedule, generate_timetable, parse_request
from classtime.models import ScheduleState, TimeSlot
from classtime.scheduling.model_builder import build_model
from classtime.scheduling.validation import conflicts_ok, hours_ok, pins_ok

from conftest import make_request, obligation


def _assert_hard_invariants(gen):
    entries = gen.schedule.entries
    model = gen.model
    assert conflicts_ok(entries, model.shareable_room_types)
    assert pins_ok(entries, model.pins)
    assert hours_ok(entries, model.obligations)


def _busy_request(**params):
    """Three classes sharing two teachers, enough to need many placements."""
    return make_request(
        [
            obligation("C1", "MATH", "T1", 4),
            obligation("C1", "ENG", "T2", 3),
            obligation("C2", "MATH", "T1", 4),
            obligation("C2", "ENG", "T2", 3),
            obligation("C3", "MATH", "T1", 4),
            obligation("C3", "ENG", "T2", 3),
        ],
        **params,
    )


# ─── Reference scenarios ──────────────────────────────────────────────────────

def test_single_obligation_completes():
    result = generate_timetable(make_request([obligation("C1", "MATH", "T1", 3)], days=5, periods=5))

    assert result.state == "COMPLETE"
    assert len(result.entries) == 3
    assert result.unplaced_obligation_hours == []
    assert len({(e.day, e.period) for e in result.entries}) == 3


def test_shared_teacher_with_six_usable_slots_cannot_finish():
    request = make_request(
        [obligation("C1", "MATH", "T1", 4), obligation("C2", "MATH", "T1", 4)],
        class_availability={
            "C1": [{"day": 1, "period": p} for p in (1, 2, 3)],
            "C2": [{"day": 1, "period": 4}, {"day": 1, "period": 5}, {"day": 2, "period": 1}],
        },
    )
    gen = generate_schedule(request)

    assert gen.result.state in ("PARTIAL", "INFEASIBLE")
    assert sum(u.missing_hours for u in gen.result.unplaced_obligation_hours) >= 2
    _assert_hard_invariants(gen)


def test_pinned_entry_survives_unchanged():
    request = make_request(
        [obligation("C1", "MATH", "T1", 3), obligation("C1", "ENG", "T2", 2)],
        rooms=[{"id": "R", "capacity": 30}, {"id": "S", "capacity": 30}],
        pins=[{"obligation": 0, "day": 1, "period": 1, "roomId": "R"}],
    )
    result = generate_timetable(request)

    pinned = [e for e in result.entries if e.pinned]
    assert len(pinned) == 1
    pin = pinned[0]
    assert (pin.class_id, pin.subject_id, pin.teacher_id) == ("C1", "MATH", "T1")
    assert (pin.day, pin.period, pin.room_id) == (1, 1, "R")
    assert result.state == "COMPLETE"


def test_one_iteration_budget_returns_consistent_partial():
    gen = generate_schedule(_busy_request(maxIterations=1))

    assert gen.result.state == "PARTIAL"
    assert gen.result.iterations_used <= 1
    assert gen.restarts.best.outcome.stop_reason == "max_iterations"
    _assert_hard_invariants(gen)


# ─── Run-level guarantees ─────────────────────────────────────────────────────

def test_busy_week_completes_without_conflicts():
    gen = generate_schedule(_busy_request())

    assert gen.result.state == "COMPLETE"
    assert len(gen.result.entries) == 21
    assert hours_ok(gen.schedule.entries, gen.model.obligations, exact=True)
    _assert_hard_invariants(gen)


def test_same_seed_same_timetable():
    first = generate_timetable(_busy_request(randomSeed=11))
    second = generate_timetable(_busy_request(randomSeed=11))

    assert first.entries == second.entries
    assert first.iterations_used == second.iterations_used
    assert first.soft_score == second.soft_score
    assert first.seed == 11


def test_entries_are_sorted_by_slot_then_ids():
    result = generate_timetable(_busy_request())
    keys = [(e.day, e.period, e.class_id, e.subject_id, e.teacher_id, e.room_id or "") for e in result.entries]
    assert keys == sorted(keys)


def test_cancel_before_start_yields_empty_partial():
    cancel = threading.Event()
    cancel.set()
    gen = generate_schedule(_busy_request(), cancel=cancel)

    assert gen.result.state == "PARTIAL"
    assert gen.result.iterations_used == 0
    assert gen.result.entries == []
    assert gen.restarts.best.outcome.stop_reason == "cancelled"


def test_elapsed_deadline_stops_the_search():
    gen = generate_schedule(_busy_request(), deadline=time.perf_counter() - 1.0)

    assert gen.result.state == "PARTIAL"
    assert gen.restarts.best.outcome.stop_reason == "deadline"


def test_exhausted_search_is_infeasible():
    only = [{"day": 1, "period": 1}]
    model = build_model(parse_request(make_request(
        [obligation("C1", "MATH", "T1", 1), obligation("C1", "ENG", "T2", 1)],
        availability={"T1": only, "T2": only},
    )))
    outcome = BacktrackingSearch(model).run()

    assert outcome.schedule.state == ScheduleState.INFEASIBLE
    assert outcome.stop_reason is None
    assert not outcome.proven_infeasible
    assert len(outcome.schedule.entries) == 1
    assert outcome.schedule.unplaced_hours(model.obligations) == 1


def test_fully_pinned_problem_needs_no_search():
    model = build_model(parse_request(make_request(
        [obligation("C1", "MATH", "T1", 2)],
        pins=[{"obligation": 0, "day": 1, "period": 1}, {"obligation": 0, "day": 3, "period": 2}],
    )))
    outcome = BacktrackingSearch(model).run()

    assert outcome.schedule.state == ScheduleState.COMPLETE
    assert outcome.iterations == 0
    assert sorted(e.slot for e in outcome.schedule.entries) == [TimeSlot(1, 1), TimeSlot(3, 2)]


def test_rooms_are_assigned_without_double_booking():
    request = make_request(
        [obligation("C1", "MATH", "T1", 3, classSize=25), obligation("C2", "ENG", "T2", 3, classSize=25)],
        rooms=[{"id": "R1", "capacity": 30}, {"id": "Tiny", "capacity": 10}],
    )
    gen = generate_schedule(request)

    assert gen.result.state == "COMPLETE"
    assert {e.room_id for e in gen.result.entries} == {"R1"}
    _assert_hard_invariants(gen)


def test_search_params_come_from_request():
    model = build_model(parse_request(_busy_request(maxIterations=7, timeoutMs=500, randomSeed=3)))
    assert isinstance(model.params, SearchParams)
    assert (model.params.max_iterations, model.params.timeout_ms, model.params.random_seed) == (7, 500, 3)


# ─── Limited room inventory ───────────────────────────────────────────────────

def test_untyped_class_leaves_the_only_lab_free():
    request = make_request(
        [obligation("C1", "MATH", "T1", 1), obligation("C2", "CHEM", "T2", 1, requiredRoomType="lab")],
        rooms=[{"id": "LAB", "capacity": 10, "type": "lab"}, {"id": "R1", "capacity": 30}],
        days=1, periods=1,
    )
    gen = generate_schedule(request)

    assert gen.result.state == "COMPLETE"
    assert {(e.subject_id, e.room_id) for e in gen.result.entries} == {("MATH", "R1"), ("CHEM", "LAB")}
    _assert_hard_invariants(gen)


def test_search_backtracks_over_room_choice():
    request = make_request(
        [obligation("C1", "MATH", "T1", 1), obligation("C2", "CHEM", "T2", 1, requiredRoomType="lab")],
        rooms=[{"id": "LAB", "capacity": 10, "type": "lab"}, {"id": "R1", "capacity": 30}],
        days=1, periods=1,
    )
    outcome = BacktrackingSearch(build_model(parse_request(request))).run()

    assert outcome.schedule.state == ScheduleState.COMPLETE
    assert outcome.stop_reason is None
    assert len(outcome.schedule.entries) == 2


@pytest.mark.parametrize("seed", [None, 3, 17])
def test_typed_rooms_decide_feasibility(seed):
    request = make_request(
        [
            obligation("C1", "MATH", "T1", 2, classSize=10),
            obligation("C2", "CHEM", "T2", 2, classSize=12, requiredRoomType="lab"),
        ],
        rooms=[{"id": "SMALL", "capacity": 15, "type": "lab"}, {"id": "BIG", "capacity": 30}],
        days=1, periods=2, randomSeed=seed,
    )
    gen = generate_schedule(request)

    assert gen.result.state == "COMPLETE"
    assert {e.room_id for e in gen.result.entries if e.subject_id == "MATH"} == {"BIG"}
    assert {e.room_id for e in gen.result.entries if e.subject_id == "CHEM"} == {"SMALL"}
    _assert_hard_invariants(gen)


@pytest.mark.parametrize("seed", [None, 3, 17])
def test_capacity_limited_rooms_decide_feasibility(seed):
    request = make_request(
        [
            obligation("C1", "ART", "T1", 2, classSize=5),
            obligation("C2", "MATH", "T2", 2, classSize=25),
            obligation("C3", "ENG", "T3", 2, classSize=8),
        ],
        rooms=[{"id": "Small", "capacity": 10}, {"id": "Mid", "capacity": 10}, {"id": "Big", "capacity": 30}],
        days=1, periods=2, randomSeed=seed, restarts=2,
    )
    gen = generate_schedule(request)

    assert gen.result.state == "COMPLETE"
    assert {e.room_id for e in gen.result.entries if e.subject_id == "MATH"} == {"Big"}
    _assert_hard_invariants(gen)


def test_too_few_rooms_is_infeasible():
    request = make_request(
        [obligation("C1", "MATH", "T1", 2, classSize=25), obligation("C2", "ENG", "T2", 2, classSize=25)],
        rooms=[{"id": "Big", "capacity": 30}, {"id": "Tiny", "capacity": 10}],
        days=1, periods=3,
    )
    gen = generate_schedule(request)

    assert gen.result.state == "INFEASIBLE"
    assert sum(u.missing_hours for u in gen.result.unplaced_obligation_hours) == 1
    _assert_hard_invariants(gen)
