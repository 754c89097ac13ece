import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional

from ..scheduling.evaluation import Evaluation, evaluate, rank_key
from .backtracking import BacktrackingSearch, SearchOutcome, SearchParams

logger = logging.getLogger(__name__)

BUDGET_POLICIES = ("independent", "split")


@dataclass
class RunRecord:
    index: int
    outcome: SearchOutcome
    evaluation: Evaluation


@dataclass
class RestartOutcome:
    best: RunRecord
    runs: List[RunRecord] = field(default_factory=list)

    @property
    def total_iterations(self) -> int:
        return sum(r.outcome.iterations for r in self.runs)


def run_seed(base: Optional[int], i: int) -> Optional[int]:
    if i == 0:
        return base
    return (base or 0) + i


def plan_runs(params: SearchParams, restarts: int = 1, policy: str = "independent") -> List[SearchParams]:
    """Per-run parameters.

    ``independent``: each run gets the full iteration and time budget.
    ``split``: the iteration budgets add up to exactly ``max_iterations`` (so there are
    at most ``max_iterations`` runs, earlier runs taking the remainder); the time budget
    is divided evenly, at least 1 ms each.
    """
    if policy not in BUDGET_POLICIES:
        raise ValueError(f"budget policy must be one of {BUDGET_POLICIES}, got {policy!r}")
    restarts = max(1, int(restarts))
    if policy == "independent":
        return [
            SearchParams(params.max_iterations, params.timeout_ms, run_seed(params.random_seed, i))
            for i in range(restarts)
        ]
    runs = max(1, min(restarts, params.max_iterations))
    share, extra = divmod(params.max_iterations, runs)
    timeout = max(1, params.timeout_ms // runs)
    return [
        SearchParams(share + (1 if i < extra else 0), timeout, run_seed(params.random_seed, i))
        for i in range(runs)
    ]


def _one_run(model, i: int, params: SearchParams, cancel, deadline) -> RunRecord:
    outcome = BacktrackingSearch(model, params=params, cancel=cancel, deadline=deadline).run()
    return RunRecord(index=i, outcome=outcome, evaluation=evaluate(outcome.schedule, model))


def run_restarts(model, restarts: int = 1, policy: str = "independent", workers: int = 1,
                 cancel=None, deadline: Optional[float] = None) -> RestartOutcome:
    """Run isolated searches with different seeds and keep the best by soft score."""
    plans = plan_runs(model.params, restarts, policy)
    if workers > 1 and len(plans) > 1:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="classtime-run") as pool:
            futures = [pool.submit(_one_run, model, i, p, cancel, deadline) for i, p in enumerate(plans)]
            runs = [f.result() for f in futures]
    else:
        runs = [_one_run(model, i, p, cancel, deadline) for i, p in enumerate(plans)]

    for r in runs:
        logger.info(
            "Run %d (seed=%s): %s score=%.2f unplaced=%d iterations=%d",
            r.index, r.outcome.seed, r.outcome.schedule.state.value, r.evaluation.score,
            r.evaluation.unplaced_hours, r.outcome.iterations,
        )
    best = min(runs, key=lambda r: rank_key(r.evaluation, r.outcome.iterations, r.index))
    return RestartOutcome(best=best, runs=runs)
