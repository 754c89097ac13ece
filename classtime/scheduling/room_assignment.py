from typing import Dict, List, Optional, Sequence

from ..models import Room, TeachingObligation, TimeSlot
from .conflict_index import ConflictIndex


def candidate_rooms(ob: TeachingObligation, rooms: Dict[str, Room]) -> List[Optional[Room]]:
    """Rooms an obligation may use, smallest fitting capacity first.

    An empty inventory leaves rooms unconstrained, represented by a single ``None``.
    """
    if not rooms:
        return [] if ob.required_room_type else [None]
    fits = [
        r for r in rooms.values()
        if r.capacity >= ob.class_size
        and (ob.required_room_type is None or r.type == ob.required_room_type)
    ]
    fits.sort(key=lambda r: (r.capacity, r.id))
    return fits


def rank_rooms(rooms: Sequence[Optional[Room]], rank: Optional[Dict[str, float]]) -> List[Optional[Room]]:
    if rank is None:
        return list(rooms)
    return sorted(rooms, key=lambda r: rank.get(r.id, 0.0) if r is not None else 0.0)


def free_rooms(candidates: Sequence[Optional[Room]], index: ConflictIndex, slot: TimeSlot) -> List[Optional[Room]]:
    """Candidates free at ``slot``, in candidate order.

    Only the first non-exclusive room (shareable, or ``None``) is kept: such rooms never
    block anyone, so they are interchangeable.
    """
    rooms: List[Optional[Room]] = []
    shared = False
    for room in candidates:
        if not index.is_exclusive(room):
            if shared:
                continue
            shared = True
        elif not index.room_free(room, slot):
            continue
        rooms.append(room)
    return rooms


def any_room_free(candidates: Sequence[Optional[Room]], index: ConflictIndex, slot: TimeSlot) -> bool:
    return any(index.room_free(r, slot) for r in candidates)
