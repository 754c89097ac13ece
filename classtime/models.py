from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple


@dataclass(frozen=True, order=True)
class TimeSlot:
    day: int
    period: int

    def __str__(self) -> str:
        return f"D{self.day}P{self.period}"


@dataclass(frozen=True)
class WeekGrid:
    days: int = 5
    periods: int = 8

    @property
    def size(self) -> int:
        return self.days * self.periods

    @property
    def full_mask(self) -> int:
        return (1 << self.size) - 1

    @property
    def slots(self) -> List[TimeSlot]:
        return [TimeSlot(d, p) for d in range(1, self.days + 1) for p in range(1, self.periods + 1)]

    def contains(self, slot: TimeSlot) -> bool:
        return 1 <= slot.day <= self.days and 1 <= slot.period <= self.periods

    def index(self, slot: TimeSlot) -> int:
        return (slot.day - 1) * self.periods + (slot.period - 1)

    def slot(self, i: int) -> TimeSlot:
        return TimeSlot(i // self.periods + 1, i % self.periods + 1)

    def mask_of(self, slots: Iterable[TimeSlot]) -> int:
        mask = 0
        for s in slots:
            mask |= 1 << self.index(s)
        return mask

    def slots_in(self, mask: int) -> List[TimeSlot]:
        return [s for i, s in enumerate(self.slots) if mask >> i & 1]


@dataclass(frozen=True)
class Room:
    id: str
    capacity: int = 0
    type: str = "classroom"


@dataclass(frozen=True)
class TeachingObligation:
    class_id: str
    subject_id: str
    teacher_id: str
    weekly_hours: int
    required_room_type: Optional[str] = None
    class_size: int = 0  # rooms below this capacity are unusable

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.class_id, self.subject_id, self.teacher_id)

    def __str__(self) -> str:
        return f"{self.class_id}/{self.subject_id}/{self.teacher_id}"


@dataclass(frozen=True)
class TeacherAvailability:
    teacher_id: str
    mask: int  # bit i set -> grid.slot(i) is teachable

    @property
    def slot_count(self) -> int:
        return bin(self.mask).count("1")

    def allows(self, grid: WeekGrid, slot: TimeSlot) -> bool:
        return bool(self.mask >> grid.index(slot) & 1)


@dataclass(frozen=True)
class ScheduleEntry:
    obligation: TeachingObligation
    slot: TimeSlot
    room: Optional[Room] = None
    pinned: bool = False

    @property
    def room_id(self) -> Optional[str]:
        return self.room.id if self.room is not None else None

    def sort_key(self):
        ob = self.obligation
        return (self.slot, ob.class_id, ob.subject_id, ob.teacher_id, self.room_id or "")


@dataclass(frozen=True)
class PinnedEntry:
    obligation: TeachingObligation
    slot: TimeSlot
    room: Optional[Room] = None

    def as_entry(self) -> ScheduleEntry:
        return ScheduleEntry(self.obligation, self.slot, self.room, pinned=True)


class ScheduleState(str, Enum):
    BUILDING = "BUILDING"
    COMPLETE = "COMPLETE"
    PARTIAL = "PARTIAL"
    INFEASIBLE = "INFEASIBLE"


@dataclass
class Schedule:
    entries: List[ScheduleEntry] = field(default_factory=list)
    state: ScheduleState = ScheduleState.BUILDING

    def hours_by_obligation(self) -> Dict[TeachingObligation, int]:
        counts: Dict[TeachingObligation, int] = {}
        for e in self.entries:
            counts[e.obligation] = counts.get(e.obligation, 0) + 1
        return counts

    def missing_hours(self, obligations: Iterable[TeachingObligation]) -> Dict[TeachingObligation, int]:
        """Hours still short per obligation, in the given order; satisfied ones are left out."""
        counts = self.hours_by_obligation()
        missing: Dict[TeachingObligation, int] = {}
        for ob in obligations:
            short = ob.weekly_hours - counts.get(ob, 0)
            if short > 0:
                missing[ob] = short
        return missing

    def unplaced_hours(self, obligations: Iterable[TeachingObligation]) -> int:
        return sum(self.missing_hours(obligations).values())

    def sorted_entries(self) -> List[ScheduleEntry]:
        return sorted(self.entries, key=ScheduleEntry.sort_key)
