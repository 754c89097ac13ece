import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Tuple

from ..algorithms.backtracking import SearchParams
from ..errors import InfeasibleInputError, InvalidInputError, PinConflictError
from ..models import (
    PinnedEntry, Room, TeacherAvailability, TeachingObligation, TimeSlot, WeekGrid,
)
from ..schemas import GenerationRequest
from .conflict_index import ConflictIndex
from .evaluation import DEFAULT_WEIGHTS, ScoringOptions
from .room_assignment import candidate_rooms

logger = logging.getLogger(__name__)


@dataclass
class ConstraintModel:
    """Normalized, read-only snapshot of one generation problem."""

    grid: WeekGrid
    obligations: List[TeachingObligation]
    teacher_availability: Dict[str, TeacherAvailability]
    rooms: Dict[str, Room]
    pins: List[PinnedEntry] = field(default_factory=list)
    class_masks: Dict[str, int] = field(default_factory=dict)
    params: SearchParams = field(default_factory=SearchParams)
    soft_weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    scoring: ScoringOptions = field(default_factory=ScoringOptions)
    shareable_room_types: FrozenSet[str] = frozenset()

    def new_index(self) -> ConflictIndex:
        index = ConflictIndex(self.shareable_room_types)
        for pin in self.pins:
            index.place(pin.as_entry())
        return index

    def pinned_hours(self) -> Dict[TeachingObligation, int]:
        counts: Dict[TeachingObligation, int] = {}
        for pin in self.pins:
            counts[pin.obligation] = counts.get(pin.obligation, 0) + 1
        return counts

    def allowed_mask(self, ob: TeachingObligation) -> int:
        teacher = self.teacher_availability.get(ob.teacher_id)
        mask = teacher.mask if teacher is not None else 0
        return mask & self.class_masks.get(ob.class_id, self.grid.full_mask)

    def candidate_rooms(self, ob: TeachingObligation) -> List[Optional[Room]]:
        return candidate_rooms(ob, self.rooms)

    @property
    def total_hours(self) -> int:
        return sum(ob.weekly_hours for ob in self.obligations)


def _slot(grid: WeekGrid, day: int, period: int, what: str) -> TimeSlot:
    slot = TimeSlot(day, period)
    if not grid.contains(slot):
        raise InvalidInputError(
            f"{what}: slot {slot} is outside the {grid.days}x{grid.periods} week"
        )
    return slot


def _teacher_availability(request: GenerationRequest, grid: WeekGrid) -> Dict[str, TeacherAvailability]:
    masks: Dict[str, int] = {}
    for rec in request.teacher_availability:
        what = f"availability of teacher {rec.teacher_id}"
        slots = [_slot(grid, s.day, s.period, what) for s in rec.available_slots]
        masks[rec.teacher_id] = masks.get(rec.teacher_id, 0) | grid.mask_of(slots)
    return {tid: TeacherAvailability(tid, mask) for tid, mask in masks.items()}


def _class_masks(request: GenerationRequest, grid: WeekGrid) -> Dict[str, int]:
    masks: Dict[str, int] = {}
    for rec in request.class_availability:
        what = f"availability of class {rec.class_id}"
        slots = [_slot(grid, s.day, s.period, what) for s in rec.available_slots]
        masks[rec.class_id] = masks.get(rec.class_id, 0) | grid.mask_of(slots)
    return masks


def _rooms(request: GenerationRequest) -> Dict[str, Room]:
    rooms: Dict[str, Room] = {}
    for r in request.rooms:
        if r.id in rooms:
            raise InvalidInputError(f"duplicate room id {r.id}")
        rooms[r.id] = Room(id=r.id, capacity=r.capacity, type=r.type)
    return rooms


def _check_refs(key: Tuple[str, str, str], request: GenerationRequest,
                availability: Dict[str, TeacherAvailability]) -> None:
    class_id, subject_id, teacher_id = key
    if teacher_id not in availability:
        raise InvalidInputError(f"obligation {'/'.join(key)} references unknown teacher {teacher_id}")
    if request.class_ids is not None and class_id not in request.class_ids:
        raise InvalidInputError(f"obligation {'/'.join(key)} references unknown class {class_id}")
    if request.subject_ids is not None and subject_id not in request.subject_ids:
        raise InvalidInputError(f"obligation {'/'.join(key)} references unknown subject {subject_id}")


def _obligations(request: GenerationRequest,
                 availability: Dict[str, TeacherAvailability]) -> List[TeachingObligation]:
    obligations: List[TeachingObligation] = []
    seen = set()
    for o in request.obligations:
        ob = TeachingObligation(
            class_id=o.class_id,
            subject_id=o.subject_id,
            teacher_id=o.teacher_id,
            weekly_hours=o.weekly_hours_required,
            required_room_type=o.required_room_type,
            class_size=o.class_size,
        )
        _check_refs(ob.key, request, availability)
        if ob.key in seen:
            raise InvalidInputError(f"duplicate obligation {ob}")
        seen.add(ob.key)
        obligations.append(ob)
    return obligations


def _pins(request: GenerationRequest, grid: WeekGrid, obligations: List[TeachingObligation],
          rooms: Dict[str, Room], availability: Dict[str, TeacherAvailability]):
    by_key = {ob.key: ob for ob in obligations}
    resolved = []
    implicit: Dict[Tuple[str, str, str], int] = {}
    for i, p in enumerate(request.pinned_entries):
        what = f"pinned entry #{i}"
        if isinstance(p.obligation, int):
            if not 0 <= p.obligation < len(obligations):
                raise InvalidInputError(f"{what} references obligation index {p.obligation}, "
                                        f"only {len(obligations)} obligations given")
            key = obligations[p.obligation].key
        else:
            key = (p.obligation.class_id, p.obligation.subject_id, p.obligation.teacher_id)
            if key not in by_key:
                _check_refs(key, request, availability)
                implicit[key] = implicit.get(key, 0) + 1
        slot = _slot(grid, p.day, p.period, what)
        if p.room_id is None:
            if rooms:
                raise InvalidInputError(f"{what} has no roomId")
            room = None
        elif p.room_id not in rooms:
            raise InvalidInputError(f"{what} references unknown room {p.room_id}")
        else:
            room = rooms[p.room_id]
        resolved.append((key, slot, room))

    # a pin naming an unlisted obligation declares it, one hour per pin
    for key, hours in implicit.items():
        ob = TeachingObligation(key[0], key[1], key[2], weekly_hours=hours)
        obligations.append(ob)
        by_key[key] = ob

    pins = [PinnedEntry(by_key[key], slot, room) for key, slot, room in resolved]
    counts: Dict[TeachingObligation, int] = defaultdict(int)
    for pin in pins:
        counts[pin.obligation] += 1
    for ob, n in counts.items():
        if n > ob.weekly_hours:
            raise InvalidInputError(f"{n} pins for {ob} exceed its {ob.weekly_hours} weekly hours")
    return obligations, pins


def _seed_pins(pins: List[PinnedEntry], shareable: FrozenSet[str]) -> None:
    index = ConflictIndex(shareable)
    placed: List[PinnedEntry] = []
    for pin in pins:
        entry = pin.as_entry()
        if index.can_place(entry):
            index.place(entry)
            placed.append(pin)
            continue
        ob = pin.obligation
        for other in placed:
            if other.slot != pin.slot:
                continue
            if other.obligation.teacher_id == ob.teacher_id:
                resource = ("teacher", ob.teacher_id)
            elif other.obligation.class_id == ob.class_id:
                resource = ("class", ob.class_id)
            elif index.is_exclusive(pin.room) and other.room == pin.room:
                resource = ("room", pin.room.id)
            else:
                continue
            logger.warning("Pins collide on %s %s at %s", resource[0], resource[1], pin.slot)
            raise PinConflictError(
                f"pinned {ob} and pinned {other.obligation} both use {resource[0]} {resource[1]} at {pin.slot}",
                entity_id=resource[1],
                details={"resource": resource[0], "slot": str(pin.slot), "pins": [other, pin]},
            )
        raise PinConflictError(f"pinned {ob} at {pin.slot} collides with an earlier pin", entity_id=ob.teacher_id)


def _check_teacher_load(obligations: List[TeachingObligation],
                        availability: Dict[str, TeacherAvailability]) -> None:
    load: Dict[str, int] = defaultdict(int)
    for ob in obligations:
        load[ob.teacher_id] += ob.weekly_hours
    offenders = []
    for tid in sorted(load):
        available = availability[tid].slot_count
        if load[tid] > available:
            offenders.append({"teacherId": tid, "required": load[tid], "available": available,
                              "shortfall": load[tid] - available})
    if offenders:
        first = offenders[0]
        logger.warning("Teacher over-committed: %s", offenders)
        raise InfeasibleInputError(
            f"teacher {first['teacherId']} needs {first['required']} weekly hours "
            f"but is available in only {first['available']} slots",
            entity_id=first["teacherId"],
            shortfall=first["shortfall"],
            details={"offenders": offenders},
        )


def build_model(request: GenerationRequest) -> ConstraintModel:
    """Validate the request and normalize it into a ConstraintModel.

    Raises InvalidInputError for malformed input, PinConflictError for colliding
    pins and InfeasibleInputError when a teacher's weekly load exceeds their
    available slots. No search is started.
    """
    p = request.params
    grid = WeekGrid(p.days, p.periods_per_day)
    shareable = frozenset(p.shareable_room_types)

    availability = _teacher_availability(request, grid)
    class_masks = _class_masks(request, grid)
    rooms = _rooms(request)
    obligations = _obligations(request, availability)
    obligations, pins = _pins(request, grid, obligations, rooms, availability)

    _seed_pins(pins, shareable)
    _check_teacher_load(obligations, availability)

    weights = dict(DEFAULT_WEIGHTS)
    weights.update(p.soft_weights.as_dict())
    model = ConstraintModel(
        grid=grid,
        obligations=obligations,
        teacher_availability=availability,
        rooms=rooms,
        pins=pins,
        class_masks=class_masks,
        params=SearchParams(
            max_iterations=p.max_iterations,
            timeout_ms=p.timeout_ms,
            random_seed=p.random_seed,
        ),
        soft_weights=weights,
        scoring=ScoringOptions(
            days=grid.days,
            max_consecutive=p.max_consecutive,
            difficult_subjects=frozenset(p.difficult_subjects),
            afternoon_from=p.afternoon_from_period,
        ),
        shareable_room_types=shareable,
    )
    logger.debug(
        "Model built: %d obligations (%d hours), %d teachers, %d rooms, %d pins, grid %dx%d",
        len(obligations), model.total_hours, len(availability), len(rooms), len(pins),
        grid.days, grid.periods,
    )
    return model
