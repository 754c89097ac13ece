import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple

import numpy as np

from ..models import Schedule, ScheduleEntry
from .validation import conflicts_ok, hours_ok, pins_ok

logger = logging.getLogger(__name__)

PenaltyFn = Callable[[Sequence[ScheduleEntry], object], float]

DEFAULT_WEIGHTS: Dict[str, float] = {
    "gap": 1.0,
    "fatigue": 1.0,
    "clustering": 1.0,
    "placement": 0.5,
    "unplaced": 100.0,
}

_RULES: Dict[str, PenaltyFn] = {}


@dataclass(frozen=True)
class ScoringOptions:
    days: int = 5
    max_consecutive: int = 2
    difficult_subjects: FrozenSet[str] = frozenset()
    afternoon_from: Optional[int] = None


@dataclass
class Evaluation:
    score: float
    unplaced_hours: int
    breakdown: Dict[str, Dict[str, float]] = field(default_factory=dict)


def penalty_rule(name: str):
    """Register ``fn(entries, model) -> count`` under ``name``; its weight comes from softWeights."""
    def wrap(fn: PenaltyFn) -> PenaltyFn:
        _RULES[name] = fn
        return fn
    return wrap


def registered_rules() -> List[str]:
    return sorted(_RULES)


def _periods_by(entries: Sequence[ScheduleEntry], key) -> Dict[Tuple, List[ScheduleEntry]]:
    groups: Dict[Tuple, List[ScheduleEntry]] = defaultdict(list)
    for e in entries:
        groups[key(e)].append(e)
    return groups


def teacher_gaps(entries: Sequence[ScheduleEntry]) -> List[Tuple[str, int, List[int]]]:
    """(teacher, day, idle periods) for idle periods between two teaching periods."""
    out = []
    groups = _periods_by(entries, lambda e: (e.obligation.teacher_id, e.slot.day))
    for (teacher, day), group in sorted(groups.items()):
        taught = sorted({e.slot.period for e in group})
        idle = [p for p in range(taught[0], taught[-1] + 1) if p not in taught]
        if idle:
            out.append((teacher, day, idle))
    return out


def subject_runs(entries: Sequence[ScheduleEntry]) -> List[Tuple[str, str, int, List[int]]]:
    """(class, subject, day, periods) for every run of back-to-back periods of one subject."""
    runs = []
    groups = _periods_by(entries, lambda e: (e.obligation.class_id, e.slot.day))
    for (class_id, day), group in sorted(groups.items()):
        ordered = sorted(group, key=lambda e: e.slot.period)
        current: List[int] = []
        subject = None
        for e in ordered:
            if current and e.obligation.subject_id == subject and e.slot.period == current[-1] + 1:
                current.append(e.slot.period)
                continue
            if len(current) > 1:
                runs.append((class_id, subject, day, current))
            current = [e.slot.period]
            subject = e.obligation.subject_id
        if len(current) > 1:
            runs.append((class_id, subject, day, current))
    return runs


@penalty_rule("gap")
def gap_penalty(entries, model) -> float:
    return float(sum(len(idle) for _, _, idle in teacher_gaps(entries)))


@penalty_rule("fatigue")
def fatigue_penalty(entries, model) -> float:
    k = model.scoring.max_consecutive
    return float(sum(max(0, len(periods) - k) for _, _, _, periods in subject_runs(entries)))


@penalty_rule("clustering")
def clustering_penalty(entries, model) -> float:
    days = model.scoring.days
    total = 0
    groups = _periods_by(entries, lambda e: (e.obligation.class_id, e.obligation.subject_id))
    for group in groups.values():
        per_day = np.bincount([e.slot.day - 1 for e in group], minlength=days)
        cap = math.ceil(len(group) / days)
        total += int(np.clip(per_day - cap, 0, None).sum())
    return float(total)


@penalty_rule("placement")
def placement_penalty(entries, model) -> float:
    opts = model.scoring
    if opts.afternoon_from is None or not opts.difficult_subjects:
        return 0.0
    return float(sum(
        1 for e in entries
        if e.obligation.subject_id in opts.difficult_subjects and e.slot.period >= opts.afternoon_from
    ))


@penalty_rule("unplaced")
def unplaced_penalty(entries, model) -> float:
    return float(Schedule(list(entries)).unplaced_hours(model.obligations))


def evaluate(schedule: Schedule, model, weights: Optional[Dict[str, float]] = None) -> Evaluation:
    weights = dict(model.soft_weights if weights is None else weights)
    unknown = sorted(set(weights) - set(_RULES))
    if unknown:
        logger.warning("Ignoring weights for unregistered penalty rules: %s", unknown)
    breakdown: Dict[str, Dict[str, float]] = {}
    score = 0.0
    for name in registered_rules():
        w = float(weights.get(name, 0.0))
        count = _RULES[name](schedule.entries, model)
        breakdown[name] = {"weight": w, "count": count, "weighted": w * count}
        score += w * count
    return Evaluation(
        score=score,
        unplaced_hours=schedule.unplaced_hours(model.obligations),
        breakdown=breakdown,
    )


def rank_key(evaluation: Evaluation, iterations: int, run_index: int) -> Tuple[float, int, int, int]:
    """Lower is better: score, unplaced hours, search effort, run order."""
    return (evaluation.score, evaluation.unplaced_hours, iterations, run_index)


def suggest_improvements(schedule: Schedule, model) -> List[dict]:
    suggestions: List[dict] = []
    opts = model.scoring
    for class_id, subject, day, periods in subject_runs(schedule.entries):
        suggestions.append({
            "type": "consecutive",
            "classId": class_id,
            "subject": subject,
            "day": day,
            "periods": periods,
            "message": f"{subject} is scheduled for consecutive periods ({periods[0]}-{periods[-1]}) "
                       f"on day {day} for class {class_id}. Fine for labs; consider splitting a regular class.",
        })
    if opts.afternoon_from is not None:
        for e in schedule.sorted_entries():
            if e.obligation.subject_id in opts.difficult_subjects and e.slot.period >= opts.afternoon_from:
                suggestions.append({
                    "type": "placement",
                    "classId": e.obligation.class_id,
                    "subject": e.obligation.subject_id,
                    "day": e.slot.day,
                    "period": e.slot.period,
                    "message": f"{e.obligation.subject_id} is scheduled in the afternoon (period {e.slot.period}). "
                               f"Consider moving to morning for better student focus.",
                })
    for teacher, day, idle in teacher_gaps(schedule.entries):
        suggestions.append({
            "type": "gap",
            "teacherId": teacher,
            "day": day,
            "periods": idle,
            "message": f"Teacher {teacher} has {len(idle)} idle period(s) on day {day}: {idle}.",
        })
    return suggestions


def summary(schedule: Schedule, model, evaluation: Optional[Evaluation] = None) -> str:
    if evaluation is None:
        evaluation = evaluate(schedule, model)
    n = len(model.obligations)
    total = model.total_hours
    slots_used = len({e.slot for e in schedule.entries})
    ok_conf = conflicts_ok(schedule.entries, model.shareable_room_types)
    ok_pins = pins_ok(schedule.entries, model.pins)
    ok_hours = hours_ok(schedule.entries, model.obligations, exact=schedule.state.value == "COMPLETE")
    lines = [
        f"State: {schedule.state.value}",
        f"Obligations: {n}  Hours: {total}  Placed: {len(schedule.entries)}  Unplaced: {evaluation.unplaced_hours}",
        f"Slots available: {model.grid.size}  Used: {slots_used}",
        f"Valid (conflicts): {ok_conf}  Valid (pins): {ok_pins}  Valid (hours): {ok_hours}",
        f"Soft score: {evaluation.score:.2f}",
    ]
    for name, part in evaluation.breakdown.items():
        if part["count"]:
            lines.append(f"  {name}: {part['count']:g} x {part['weight']:g} = {part['weighted']:g}")
    return "\n".join(lines) + "\n"
