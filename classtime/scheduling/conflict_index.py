from collections import defaultdict
from typing import Dict, FrozenSet, Iterable, Optional, Set

from ..errors import IndexCorruptionError
from ..models import Room, ScheduleEntry, TimeSlot


class ConflictIndex:
    """Slot-keyed occupancy of teachers, classes and rooms for one search run.

    Rooms whose type is shareable are never recorded, so they never conflict.
    Not thread-safe; every run owns its own index.
    """

    def __init__(self, shareable_room_types: Iterable[str] = ()):
        self.teacher_busy: Dict[TimeSlot, Set[str]] = defaultdict(set)
        self.class_busy: Dict[TimeSlot, Set[str]] = defaultdict(set)
        self.room_busy: Dict[TimeSlot, Set[str]] = defaultdict(set)
        self.shareable_room_types: FrozenSet[str] = frozenset(shareable_room_types)
        self.placed = 0

    def is_exclusive(self, room: Optional[Room]) -> bool:
        return room is not None and room.type not in self.shareable_room_types

    def teacher_free(self, teacher_id: str, slot: TimeSlot) -> bool:
        return teacher_id not in self.teacher_busy.get(slot, ())

    def class_free(self, class_id: str, slot: TimeSlot) -> bool:
        return class_id not in self.class_busy.get(slot, ())

    def room_free(self, room: Optional[Room], slot: TimeSlot) -> bool:
        if not self.is_exclusive(room):
            return True
        return room.id not in self.room_busy.get(slot, ())

    def can_place(self, entry: ScheduleEntry) -> bool:
        ob = entry.obligation
        return (
            self.teacher_free(ob.teacher_id, entry.slot)
            and self.class_free(ob.class_id, entry.slot)
            and self.room_free(entry.room, entry.slot)
        )

    def place(self, entry: ScheduleEntry) -> None:
        if not self.can_place(entry):
            raise IndexCorruptionError(
                f"place() on occupied key: {entry.obligation} at {entry.slot} room={entry.room_id} "
                f"(teachers={sorted(self.teacher_busy.get(entry.slot, ()))}, "
                f"classes={sorted(self.class_busy.get(entry.slot, ()))}, "
                f"rooms={sorted(self.room_busy.get(entry.slot, ()))})"
            )
        ob = entry.obligation
        self.teacher_busy[entry.slot].add(ob.teacher_id)
        self.class_busy[entry.slot].add(ob.class_id)
        if self.is_exclusive(entry.room):
            self.room_busy[entry.slot].add(entry.room.id)
        self.placed += 1

    def unplace(self, entry: ScheduleEntry) -> None:
        ob = entry.obligation
        slot = entry.slot
        missing = []
        if ob.teacher_id not in self.teacher_busy.get(slot, ()):
            missing.append(f"teacher {ob.teacher_id}")
        if ob.class_id not in self.class_busy.get(slot, ()):
            missing.append(f"class {ob.class_id}")
        if self.is_exclusive(entry.room) and entry.room.id not in self.room_busy.get(slot, ()):
            missing.append(f"room {entry.room.id}")
        if missing:
            raise IndexCorruptionError(
                f"unplace() of {ob} at {slot} but index does not hold: {', '.join(missing)}"
            )
        self.teacher_busy[slot].discard(ob.teacher_id)
        self.class_busy[slot].discard(ob.class_id)
        if self.is_exclusive(entry.room):
            self.room_busy[slot].discard(entry.room.id)
        self.placed -= 1

    def __len__(self) -> int:
        return self.placed
