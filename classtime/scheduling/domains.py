from typing import Dict, List, Optional, Sequence, Set, Tuple

import networkx as nx

from ..models import Room, ScheduleEntry, TeachingObligation, TimeSlot
from .conflict_index import ConflictIndex
from .room_assignment import any_room_free, rank_rooms


def compute_domains(model, index: ConflictIndex) -> Dict[TeachingObligation, List[TimeSlot]]:
    """Slots each obligation could still take, given availability, rooms and pins already in ``index``.

    Fully pinned obligations get an empty domain.
    """
    pinned = model.pinned_hours()
    domains: Dict[TeachingObligation, List[TimeSlot]] = {}
    for ob in model.obligations:
        if pinned.get(ob, 0) >= ob.weekly_hours:
            domains[ob] = []
            continue
        rooms = model.candidate_rooms(ob)
        domain = []
        for slot in model.grid.slots_in(model.allowed_mask(ob)):
            if not index.teacher_free(ob.teacher_id, slot):
                continue
            if not index.class_free(ob.class_id, slot):
                continue
            if not any_room_free(rooms, index, slot):
                continue
            domain.append(slot)
        domains[ob] = domain
    return domains


def mrv_key(size: int, ob: TeachingObligation, degree: int, rank: int) -> Tuple[int, int, int, int]:
    return (size, -ob.weekly_hours, -degree, rank)


def mrv_order(domains: Dict[TeachingObligation, List[TimeSlot]],
              obligations: Sequence[TeachingObligation],
              graph: Optional[nx.Graph] = None) -> List[TeachingObligation]:
    """Most constrained first: smallest domain, then most weekly hours, then highest degree."""
    position = {ob: i for i, ob in enumerate(obligations)}
    degree = (lambda ob: graph.degree(ob)) if graph is not None else (lambda ob: 0)
    return sorted(
        (ob for ob in obligations if domains.get(ob)),
        key=lambda ob: mrv_key(len(domains[ob]), ob, degree(ob), position[ob]),
    )


class Trail:
    """What one placement changed, so it can be undone exactly."""

    __slots__ = ("entry", "removed", "prev_floor", "affected")

    def __init__(self, entry: ScheduleEntry, removed: List[TeachingObligation],
                 prev_floor: Optional[TimeSlot], affected: List[TeachingObligation]):
        self.entry = entry
        self.removed = removed
        self.prev_floor = prev_floor
        self.affected = affected


class DomainTracker:
    """Live remaining domains with forward checking for one search run.

    Hours of one obligation are interchangeable, so they are placed in increasing
    slot order; ``floor[ob]`` is the slot of its latest searched hour.
    """

    def __init__(self, model, index: ConflictIndex, graph: nx.Graph,
                 obligation_rank: Optional[Dict[TeachingObligation, int]] = None,
                 room_rank: Optional[Dict[str, float]] = None):
        self.index = index
        self.graph = graph
        self.obligations = list(model.obligations)
        self.rank = obligation_rank or {ob: i for i, ob in enumerate(self.obligations)}
        self.domains = compute_domains(model, index)
        self.remaining: Dict[TeachingObligation, Set[TimeSlot]] = {
            ob: set(slots) for ob, slots in self.domains.items()
        }
        self.floor: Dict[TeachingObligation, Optional[TimeSlot]] = {ob: None for ob in self.obligations}

        self.rooms: Dict[TeachingObligation, List[Optional[Room]]] = {}
        self.room_users: Dict[str, List[TeachingObligation]] = {}
        for ob in self.obligations:
            rooms = rank_rooms(model.candidate_rooms(ob), room_rank)
            self.rooms[ob] = rooms
            for r in rooms:
                if index.is_exclusive(r):
                    self.room_users.setdefault(r.id, []).append(ob)

        pinned = model.pinned_hours()
        self.placed: Dict[TeachingObligation, int] = {ob: pinned.get(ob, 0) for ob in self.obligations}
        # an obligation can never exceed pinned + |domain| hours; cap its target there
        self.targets: Dict[TeachingObligation, int] = {
            ob: min(ob.weekly_hours, self.placed[ob] + len(self.domains[ob])) for ob in self.obligations
        }
        self.proven_infeasible = any(self.targets[ob] < ob.weekly_hours for ob in self.obligations)
        self.short = sum(1 for ob in self.obligations if self.missing(ob) > 0)

    def missing(self, ob: TeachingObligation) -> int:
        return self.targets[ob] - self.placed[ob]

    def done(self) -> bool:
        return self.short == 0

    def meets_required(self) -> bool:
        return all(self.placed[ob] == ob.weekly_hours for ob in self.obligations)

    def can_host(self, ob: TeachingObligation, slot: TimeSlot) -> bool:
        return (
            self.index.teacher_free(ob.teacher_id, slot)
            and self.index.class_free(ob.class_id, slot)
            and any_room_free(self.rooms[ob], self.index, slot)
        )

    def _open_slot(self, ob: TeachingObligation, slot: TimeSlot) -> bool:
        floor = self.floor[ob]
        return slot in self.remaining[ob] and (floor is None or slot > floor)

    def viable(self, ob: TeachingObligation) -> List[TimeSlot]:
        return [s for s in self.domains[ob] if self._open_slot(ob, s)]

    def viable_count(self, ob: TeachingObligation) -> int:
        return sum(1 for s in self.domains[ob] if self._open_slot(ob, s))

    def pick_next(self) -> Optional[TeachingObligation]:
        """Live MRV choice among obligations still short of their target."""
        best = None
        best_key = None
        for ob in self.obligations:
            if self.missing(ob) <= 0:
                continue
            key = mrv_key(self.viable_count(ob), ob, self.graph.degree(ob), self.rank[ob])
            if best_key is None or key < best_key:
                best, best_key = ob, key
        return best

    def impact(self, ob: TeachingObligation, slot: TimeSlot, room: Optional[Room] = None) -> int:
        """How many short obligations would lose ``slot`` if ``ob`` took it in ``room``.

        Neighbours always lose it; other users of an exclusive ``room`` lose it when
        no other room of theirs is free there.
        """
        neighbours = set(self.graph.neighbors(ob))
        hit = sum(
            1 for other in self.graph.neighbors(ob)
            if self.missing(other) > 0 and self._open_slot(other, slot)
        )
        if self.index.is_exclusive(room):
            for other in self.room_users.get(room.id, ()):
                if other == ob or other in neighbours:
                    continue
                if self.missing(other) > 0 and self._open_slot(other, slot) and not any(
                    r != room and self.index.room_free(r, slot) for r in self.rooms[other]
                ):
                    hit += 1
        return hit

    def assign(self, entry: ScheduleEntry) -> Trail:
        """Record a placement already made in the index and prune affected domains."""
        ob = entry.obligation
        slot = entry.slot
        affected = [ob]
        seen = {ob}
        neighbours = list(self.graph.neighbors(ob))
        if self.index.is_exclusive(entry.room):
            neighbours += self.room_users.get(entry.room.id, [])
        for other in neighbours:
            if other not in seen:
                seen.add(other)
                affected.append(other)

        removed = []
        for other in affected:
            if slot in self.remaining[other] and not self.can_host(other, slot):
                self.remaining[other].discard(slot)
                removed.append(other)

        prev_floor = self.floor[ob]
        self.floor[ob] = slot
        self.placed[ob] += 1
        if self.missing(ob) == 0:
            self.short -= 1
        return Trail(entry, removed, prev_floor, affected)

    def unassign(self, trail: Trail) -> None:
        ob = trail.entry.obligation
        if self.missing(ob) == 0:
            self.short += 1
        self.placed[ob] -= 1
        self.floor[ob] = trail.prev_floor
        for other in trail.removed:
            self.remaining[other].add(trail.entry.slot)

    def wiped_out(self, trail: Trail) -> bool:
        """True when the placement left a short obligation with fewer viable slots than missing hours."""
        for other in trail.affected:
            need = self.missing(other)
            if need > 0 and self.viable_count(other) < need:
                return True
        return False
