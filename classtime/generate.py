import logging
import time
from dataclasses import dataclass
from typing import Optional, Union

from pydantic import ValidationError

from .algorithms.restarts import RestartOutcome, run_restarts
from .errors import InvalidInputError
from .models import Schedule
from .scheduling.model_builder import ConstraintModel, build_model
from .schemas import EntryOut, GenerationRequest, GenerationResult, PenaltyOut, UnplacedOut

logger = logging.getLogger(__name__)


@dataclass
class Generation:
    model: ConstraintModel
    restarts: RestartOutcome
    result: GenerationResult

    @property
    def schedule(self) -> Schedule:
        return self.restarts.best.outcome.schedule


def parse_request(data: Union[GenerationRequest, dict]) -> GenerationRequest:
    if isinstance(data, GenerationRequest):
        return data
    try:
        return GenerationRequest.model_validate(data)
    except ValidationError as e:
        raise InvalidInputError(f"invalid generation request: {e}") from e


def assemble_result(model: ConstraintModel, outcome: RestartOutcome, elapsed_ms: float) -> GenerationResult:
    best = outcome.best
    schedule = best.outcome.schedule
    entries = [
        EntryOut(
            class_id=e.obligation.class_id,
            subject_id=e.obligation.subject_id,
            teacher_id=e.obligation.teacher_id,
            day=e.slot.day,
            period=e.slot.period,
            room_id=e.room_id,
            pinned=e.pinned,
        )
        for e in schedule.sorted_entries()
    ]
    unplaced = [
        UnplacedOut(class_id=ob.class_id, subject_id=ob.subject_id, teacher_id=ob.teacher_id, missing_hours=n)
        for ob, n in schedule.missing_hours(model.obligations).items()
    ]
    return GenerationResult(
        state=schedule.state.value,
        entries=entries,
        unplaced_obligation_hours=unplaced,
        soft_score=best.evaluation.score,
        generation_time_ms=elapsed_ms,
        iterations_used=outcome.total_iterations,
        penalties={k: PenaltyOut(**v) for k, v in best.evaluation.breakdown.items()},
        runs=len(outcome.runs),
        seed=best.outcome.seed,
    )


def generate_schedule(request: Union[GenerationRequest, dict], cancel=None,
                      deadline: Optional[float] = None) -> Generation:
    """Build the model, search (with restarts) and assemble the response.

    Raises InvalidInputError / InfeasibleInputError before any search; PARTIAL and
    INFEASIBLE outcomes are returned normally.
    """
    started = time.perf_counter()
    request = parse_request(request)
    model = build_model(request)
    p = request.params
    outcome = run_restarts(
        model,
        restarts=p.restarts,
        policy=p.budget_policy,
        workers=p.workers,
        cancel=cancel,
        deadline=deadline,
    )
    elapsed_ms = (time.perf_counter() - started) * 1000.0
    result = assemble_result(model, outcome, elapsed_ms)
    logger.info(
        "Generated timetable: %s, %d entries, %d hours unplaced, score %.2f, %d iterations in %.1f ms",
        result.state, len(result.entries), outcome.best.evaluation.unplaced_hours,
        result.soft_score, result.iterations_used, elapsed_ms,
    )
    return Generation(model=model, restarts=outcome, result=result)


def generate_timetable(request: Union[GenerationRequest, dict], cancel=None,
                       deadline: Optional[float] = None) -> GenerationResult:
    return generate_schedule(request, cancel=cancel, deadline=deadline).result
