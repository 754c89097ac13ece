import pytest

from classtime.algorithms.backtracking import SearchParams
from classtime.algorithms.restarts import plan_runs, run_restarts, run_seed
from classtime.generate import generate_timetable, parse_request
from classtime.scheduling.model_builder import build_model

from conftest import make_request, obligation


def _request(**params):
    return make_request(
        [
            obligation("C1", "MATH", "T1", 3),
            obligation("C1", "ENG", "T2", 2),
            obligation("C2", "MATH", "T1", 3),
            obligation("C2", "ENG", "T2", 2),
        ],
        **params,
    )


def test_seeds_step_from_the_base_seed():
    assert [run_seed(7, i) for i in range(3)] == [7, 8, 9]
    assert [run_seed(None, i) for i in range(3)] == [None, 1, 2]


def test_independent_policy_gives_every_run_the_full_budget():
    plans = plan_runs(SearchParams(100, 1000, 7), restarts=3, policy="independent")
    assert [(p.max_iterations, p.timeout_ms, p.random_seed) for p in plans] == [
        (100, 1000, 7), (100, 1000, 8), (100, 1000, 9),
    ]


def test_split_policy_divides_the_budget():
    plans = plan_runs(SearchParams(100, 1000, None), restarts=4, policy="split")
    assert {p.max_iterations for p in plans} == {25}
    assert {p.timeout_ms for p in plans} == {250}


def test_split_budget_never_exceeds_max_iterations():
    plans = plan_runs(SearchParams(2, 3, None), restarts=5, policy="split")
    assert [p.max_iterations for p in plans] == [1, 1]
    assert all(p.timeout_ms == 1 for p in plans)


def test_split_budget_hands_the_remainder_to_early_runs():
    plans = plan_runs(SearchParams(10, 900, 4), restarts=3, policy="split")
    assert [p.max_iterations for p in plans] == [4, 3, 3]
    assert [p.timeout_ms for p in plans] == [300, 300, 300]
    assert [p.random_seed for p in plans] == [4, 5, 6]


def test_unknown_policy_is_rejected():
    with pytest.raises(ValueError):
        plan_runs(SearchParams(), restarts=2, policy="greedy")


def test_restarts_report_total_iterations_and_best_run():
    model = build_model(parse_request(_request(randomSeed=5)))
    outcome = run_restarts(model, restarts=3)

    assert len(outcome.runs) == 3
    assert outcome.total_iterations == sum(r.outcome.iterations for r in outcome.runs)
    assert outcome.best.evaluation.score == min(r.evaluation.score for r in outcome.runs)


def test_thread_pool_matches_sequential_runs():
    model = build_model(parse_request(_request(randomSeed=5)))
    sequential = run_restarts(model, restarts=4, workers=1)
    threaded = run_restarts(model, restarts=4, workers=4)

    assert threaded.best.index == sequential.best.index
    assert threaded.best.outcome.schedule.sorted_entries() == sequential.best.outcome.schedule.sorted_entries()


def test_result_carries_run_count_and_total_iterations():
    result = generate_timetable(_request(randomSeed=5, restarts=3, budgetPolicy="split", maxIterations=300))

    assert result.runs == 3
    assert result.state == "COMPLETE"
    assert result.seed in (5, 6, 7)
    assert result.iterations_used <= 300


def test_split_budget_caps_total_iterations():
    result = generate_timetable(_request(randomSeed=5, restarts=3, budgetPolicy="split", maxIterations=1))

    assert result.runs == 1
    assert result.iterations_used <= 1
    assert result.state == "PARTIAL"
    assert len(result.entries) == 1
