from collections import defaultdict
from typing import Dict, Iterable, List, Sequence, Tuple

from ..errors import IndexCorruptionError
from ..models import PinnedEntry, ScheduleEntry, TeachingObligation


def find_conflicts(entries: Sequence[ScheduleEntry], shareable_room_types: Iterable[str] = ()) -> List[dict]:
    """Every pair of entries that double-books a teacher, class or exclusive room."""
    shareable = set(shareable_room_types)
    seen: Dict[Tuple[str, str, object], ScheduleEntry] = {}
    conflicts: List[dict] = []
    for e in entries:
        ob = e.obligation
        keys = [("teacher", ob.teacher_id), ("class", ob.class_id)]
        if e.room is not None and e.room.type not in shareable:
            keys.append(("room", e.room.id))
        for kind, ident in keys:
            key = (kind, ident, e.slot)
            first = seen.get(key)
            if first is None:
                seen[key] = e
                continue
            conflicts.append({
                "type": kind,
                "id": ident,
                "day": e.slot.day,
                "period": e.slot.period,
                "entries": [str(first.obligation), str(ob)],
                "message": f"{kind.capitalize()} {ident} is scheduled for {first.obligation} and {ob} at {e.slot}",
            })
    return conflicts


def conflicts_ok(entries: Sequence[ScheduleEntry], shareable_room_types: Iterable[str] = ()) -> bool:
    return not find_conflicts(entries, shareable_room_types)


def pins_ok(entries: Sequence[ScheduleEntry], pins: Sequence[PinnedEntry]) -> bool:
    present = {(e.obligation, e.slot, e.room) for e in entries}
    return all((p.obligation, p.slot, p.room) in present for p in pins)


def hours_ok(entries: Sequence[ScheduleEntry], obligations: Sequence[TeachingObligation], exact: bool = False) -> bool:
    counts: Dict[TeachingObligation, int] = defaultdict(int)
    for e in entries:
        counts[e.obligation] += 1
    known = set(obligations)
    if any(ob not in known for ob in counts):
        return False
    for ob in obligations:
        n = counts.get(ob, 0)
        if n > ob.weekly_hours or (exact and n != ob.weekly_hours):
            return False
    return True


def check_schedule(entries: Sequence[ScheduleEntry], model) -> None:
    """Re-derive the hard invariants from scratch; disagreement with the search is a defect."""
    conflicts = find_conflicts(entries, model.shareable_room_types)
    problems = [c["message"] for c in conflicts]
    if not pins_ok(entries, model.pins):
        problems.append("a pinned entry is missing or altered")
    if not hours_ok(entries, model.obligations):
        problems.append("an obligation exceeds its weekly hours or is unknown")
    if problems:
        raise IndexCorruptionError(
            f"schedule of {len(entries)} entries violates hard invariants: " + "; ".join(problems[:10])
        )
