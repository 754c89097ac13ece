import logging
import random
import time
from dataclasses import dataclass
from typing import List, Optional

from ..errors import IndexCorruptionError
from ..graph_build import build_obligation_graph
from ..models import Schedule, ScheduleEntry, ScheduleState, TeachingObligation
from ..scheduling.domains import DomainTracker, Trail
from ..scheduling.room_assignment import free_rooms
from ..scheduling.validation import check_schedule

logger = logging.getLogger(__name__)


class SearchParams:
    def __init__(self, max_iterations=200000, timeout_ms=10000, random_seed=None):
        self.max_iterations = max_iterations
        self.timeout_ms = timeout_ms
        self.random_seed = random_seed

    def __repr__(self):
        return (f"SearchParams(max_iterations={self.max_iterations}, timeout_ms={self.timeout_ms}, "
                f"random_seed={self.random_seed})")


@dataclass
class SearchOutcome:
    schedule: Schedule
    iterations: int
    elapsed_ms: float
    stop_reason: Optional[str] = None  # max_iterations | timeout | deadline | cancelled
    proven_infeasible: bool = False
    seed: Optional[int] = None


class _ChoicePoint:
    __slots__ = ("obligation", "candidates", "cursor", "trail")

    def __init__(self, obligation: TeachingObligation, candidates):
        self.obligation = obligation
        self.candidates = candidates
        self.cursor = 0
        self.trail: Optional[Trail] = None


class BacktrackingSearch:
    """Depth-first placement of obligation hours with MRV, least-constraining values and forward checking.

    The recursion is kept on an explicit stack of choice points. Each frame holds the
    obligation being extended, its ordered (slot, room) candidates, a cursor and the trail of
    the placement currently made from it, so every unwind pairs an unplace with its place.

    ``cancel`` is anything with ``is_set()`` (e.g. ``threading.Event``); ``deadline`` is an
    absolute ``time.perf_counter()`` value. Both are polled with the iteration/time budget.
    """

    def __init__(self, model, params: Optional[SearchParams] = None, cancel=None, deadline: Optional[float] = None):
        self.model = model
        self.params = params if params is not None else model.params
        self.cancel = cancel
        self.deadline = deadline
        self.seed = self.params.random_seed

        slots = model.grid.slots
        obligations = list(model.obligations)
        room_ids = sorted(model.rooms)
        room_rank = None
        if self.seed is not None:
            rng = random.Random(self.seed)
            rng.shuffle(slots)
            rng.shuffle(obligations)
            rng.shuffle(room_ids)
            room_rank = {rid: float(i) for i, rid in enumerate(room_ids)}
        self.slot_rank = {s: i for i, s in enumerate(slots)}
        obligation_rank = {ob: i for i, ob in enumerate(obligations)}

        self.index = model.new_index()
        self.entries: List[ScheduleEntry] = [p.as_entry() for p in model.pins]
        self.graph = build_obligation_graph(model.obligations)
        self.tracker = DomainTracker(model, self.index, self.graph, obligation_rank, room_rank)
        self.iterations = 0
        self._started = 0.0

    def _stop_reason(self) -> Optional[str]:
        if self.cancel is not None and self.cancel.is_set():
            return "cancelled"
        now = time.perf_counter()
        if (now - self._started) * 1000.0 >= self.params.timeout_ms:
            return "timeout"
        if self.deadline is not None and now >= self.deadline:
            return "deadline"
        return None

    def _open(self, ob: TeachingObligation) -> _ChoicePoint:
        """Choice point over (slot, room) pairs, least constraining first."""
        tracker = self.tracker
        ranked = []
        for slot in tracker.viable(ob):
            for pos, room in enumerate(free_rooms(tracker.rooms[ob], self.index, slot)):
                ranked.append(((tracker.impact(ob, slot, room), self.slot_rank[slot], pos), slot, room))
        ranked.sort(key=lambda c: c[0])
        return _ChoicePoint(ob, [(slot, room) for _, slot, room in ranked])

    def _place(self, entry: ScheduleEntry) -> Trail:
        self.index.place(entry)
        self.entries.append(entry)
        return self.tracker.assign(entry)

    def _unplace(self, trail: Trail) -> None:
        self.tracker.unassign(trail)
        last = self.entries.pop()
        if last is not trail.entry:
            raise IndexCorruptionError(
                f"unwinding {trail.entry.obligation} at {trail.entry.slot} "
                f"but the newest entry is {last.obligation} at {last.slot}"
            )
        self.index.unplace(trail.entry)

    def run(self) -> SearchOutcome:
        tracker = self.tracker
        self._started = time.perf_counter()
        logger.debug(
            "Search start: %d obligations, %d hours (%d pinned), seed=%s, %r",
            len(self.model.obligations), self.model.total_hours, len(self.model.pins), self.seed, self.params,
        )

        best = list(self.entries)
        stop = None
        complete = tracker.done()
        stack: List[_ChoicePoint] = []
        if not complete:
            stack.append(self._open(tracker.pick_next()))

        while stack and not complete:
            stop = self._stop_reason()
            if stop:
                break
            frame = stack[-1]
            if frame.trail is not None:
                # returning from a child that could not be completed
                self._unplace(frame.trail)
                frame.trail = None
            child = None
            while frame.cursor < len(frame.candidates):
                if self.iterations >= self.params.max_iterations:
                    stop = "max_iterations"
                    break
                stop = self._stop_reason()
                if stop:
                    break
                ob = frame.obligation
                slot, room = frame.candidates[frame.cursor]
                frame.cursor += 1
                entry = ScheduleEntry(ob, slot, room)
                if not self.index.can_place(entry):
                    continue
                self.iterations += 1
                frame.trail = self._place(entry)
                if len(self.entries) > len(best):
                    best = list(self.entries)
                if tracker.done():
                    complete = True
                    break
                if tracker.wiped_out(frame.trail):
                    self._unplace(frame.trail)
                    frame.trail = None
                    continue
                child = self._open(tracker.pick_next())
                break
            if complete or stop:
                break
            if child is None:
                stack.pop()
            else:
                stack.append(child)

        if complete:
            entries = list(self.entries)
            state = ScheduleState.COMPLETE if tracker.meets_required() else ScheduleState.INFEASIBLE
        else:
            for frame in reversed(stack):
                if frame.trail is not None:
                    self._unplace(frame.trail)
                    frame.trail = None
            pins = len(self.model.pins)
            if len(self.index) != pins or len(self.entries) != pins:
                raise IndexCorruptionError(
                    f"after unwinding, index holds {len(self.index)} and entries {len(self.entries)} "
                    f"placements but only {pins} pins exist"
                )
            entries = best
            if stop is None or tracker.proven_infeasible:
                state = ScheduleState.INFEASIBLE
            else:
                state = ScheduleState.PARTIAL

        check_schedule(entries, self.model)
        elapsed_ms = (time.perf_counter() - self._started) * 1000.0
        schedule = Schedule(entries=entries, state=state)
        logger.info(
            "Search %s: placed %d/%d hours in %d iterations, %.1f ms (seed=%s%s)",
            state.value, len(entries), self.model.total_hours, self.iterations, elapsed_ms, self.seed,
            f", stopped by {stop}" if stop else "",
        )
        return SearchOutcome(
            schedule=schedule,
            iterations=self.iterations,
            elapsed_ms=elapsed_ms,
            stop_reason=stop,
            proven_infeasible=tracker.proven_infeasible,
            seed=self.seed,
        )


def backtracking_search(model, params: Optional[SearchParams] = None, cancel=None,
                        deadline: Optional[float] = None) -> SearchOutcome:
    return BacktrackingSearch(model, params=params, cancel=cancel, deadline=deadline).run()
