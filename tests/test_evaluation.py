import pytest

from classtime.generate import parse_request
from classtime.models import Schedule, ScheduleEntry, ScheduleState, TimeSlot
from classtime.scheduling import evaluation
from classtime.scheduling.evaluation import (
    evaluate, penalty_rule, rank_key, registered_rules, suggest_improvements, summary, teacher_gaps,
)
from classtime.scheduling.model_builder import build_model

from conftest import make_request, obligation


@pytest.fixture
def model():
    return build_model(parse_request(make_request(
        [obligation("C1", "MATH", "T1", 3), obligation("C1", "ENG", "T2", 2)],
        maxConsecutive=2,
        difficultSubjects=["MATH"],
        afternoonFromPeriod=3,
    )))


def _schedule(model, placements, state=ScheduleState.PARTIAL):
    by_subject = {ob.subject_id: ob for ob in model.obligations}
    return Schedule(
        entries=[ScheduleEntry(by_subject[s], TimeSlot(d, p)) for s, d, p in placements],
        state=state,
    )


def test_each_rule_counts_what_it_names(model):
    # MATH three in a row on Monday, ENG on Monday P5 and Tuesday P1
    sched = _schedule(model, [("MATH", 1, 1), ("MATH", 1, 2), ("MATH", 1, 3), ("ENG", 1, 5), ("ENG", 2, 1)])
    ev = evaluate(sched, model)
    counts = {name: part["count"] for name, part in ev.breakdown.items()}

    assert counts["fatigue"] == 1      # run of 3 with max 2
    assert counts["clustering"] == 2   # 3 MATH hours on one day, cap ceil(3/5) = 1
    assert counts["placement"] == 1    # MATH at period 3
    assert counts["gap"] == 0
    assert counts["unplaced"] == 0
    assert ev.unplaced_hours == 0
    assert ev.score == pytest.approx(1 + 2 + 0.5)


def test_teacher_gaps_are_idle_periods_between_lessons(model):
    sched = _schedule(model, [("MATH", 2, 1), ("MATH", 2, 4), ("MATH", 3, 2)])
    assert teacher_gaps(sched.entries) == [("T1", 2, [2, 3])]
    assert evaluate(sched, model).breakdown["gap"]["count"] == 2


def test_unplaced_hours_dominate_the_score(model):
    fuller = _schedule(model, [("MATH", 1, 1), ("MATH", 2, 1), ("ENG", 3, 1), ("ENG", 4, 1)])
    emptier = _schedule(model, [("MATH", 1, 1)])

    assert evaluate(fuller, model).unplaced_hours == 1
    assert evaluate(emptier, model).unplaced_hours == 4
    assert evaluate(fuller, model).score < evaluate(emptier, model).score


def test_weights_override_and_zero_out(model):
    sched = _schedule(model, [("MATH", 1, 1), ("MATH", 1, 2), ("MATH", 1, 3)])
    ev = evaluate(sched, model, weights={"fatigue": 10.0})

    assert ev.breakdown["fatigue"]["weighted"] == 10.0
    assert ev.breakdown["clustering"]["weight"] == 0.0
    assert ev.score == pytest.approx(10.0)


def test_unknown_weights_are_logged(model, caplog):
    sched = _schedule(model, [("MATH", 1, 1)])
    with caplog.at_level("WARNING", logger="classtime"):
        evaluate(sched, model, weights={"lunch": 3.0})
    assert "lunch" in caplog.text


def test_registry_accepts_new_rules(model, monkeypatch):
    monkeypatch.setattr(evaluation, "_RULES", dict(evaluation._RULES))

    @penalty_rule("friday")
    def friday_penalty(entries, model):
        return float(sum(1 for e in entries if e.slot.day == 5))

    assert "friday" in registered_rules()
    sched = _schedule(model, [("MATH", 5, 1), ("ENG", 5, 2)])
    ev = evaluate(sched, model, weights={"friday": 2.0})
    assert ev.breakdown["friday"]["weighted"] == 4.0


def test_rank_key_orders_by_score_then_effort():
    a = evaluation.Evaluation(score=5.0, unplaced_hours=0)
    b = evaluation.Evaluation(score=5.0, unplaced_hours=0)
    assert rank_key(a, 10, 1) < rank_key(b, 20, 0)
    assert rank_key(a, 10, 0) < rank_key(b, 10, 1)


def test_suggestions_and_summary(model):
    sched = _schedule(
        model,
        [("MATH", 1, 1), ("MATH", 1, 2), ("MATH", 1, 4), ("ENG", 2, 1), ("ENG", 3, 1)],
        state=ScheduleState.COMPLETE,
    )
    kinds = {s["type"] for s in suggest_improvements(sched, model)}
    assert kinds == {"consecutive", "placement", "gap"}

    text = summary(sched, model)
    assert "State: COMPLETE" in text
    assert "Valid (conflicts): True" in text
    assert "Valid (hours): True" in text
