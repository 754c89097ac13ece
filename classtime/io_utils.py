import csv
import io
import json
import os
from collections import defaultdict
from typing import IO, Dict, List, Optional, Sequence, Union

from .errors import InvalidInputError
from .generate import parse_request
from .schemas import GenerationRequest, GenerationResult

TextOrPath = Union[str, os.PathLike, IO]


def _open_text(src: TextOrPath):
    """Return a text-mode file handle and a flag indicating whether to close it.

    Accepts a filesystem path, a text IO object, or a BytesIO buffer.
    """
    if isinstance(src, (str, os.PathLike)):
        return open(src, "r", newline="", encoding="utf-8"), True
    if isinstance(src, io.BytesIO):
        src.seek(0)
        return io.TextIOWrapper(src, encoding="utf-8", newline=""), True
    if hasattr(src, "read"):
        if hasattr(src, "seek"):
            src.seek(0)
        return src, False
    raise TypeError("Unsupported input type; expected path or file-like object")


def _rows(src: TextOrPath, required: Sequence[str]) -> List[Dict[str, str]]:
    f, should_close = _open_text(src)
    try:
        reader = csv.DictReader(f)
        missing = [c for c in required if c not in (reader.fieldnames or [])]
        if missing:
            raise InvalidInputError(f"CSV is missing column(s): {', '.join(missing)}")
        return [{k: (v or "").strip() for k, v in row.items() if k} for row in reader]
    finally:
        if should_close:
            f.close()


def load_request(src: TextOrPath) -> GenerationRequest:
    f, should_close = _open_text(src)
    try:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidInputError(f"request is not valid JSON: {e}") from e
    finally:
        if should_close:
            f.close()
    return parse_request(data)


def load_obligations_csv(src: TextOrPath) -> List[dict]:
    """class_id,subject_id,teacher_id,weekly_hours[,room_type][,class_size]"""
    out = []
    for row in _rows(src, ["class_id", "subject_id", "teacher_id", "weekly_hours"]):
        ob = {
            "classId": row["class_id"],
            "subjectId": row["subject_id"],
            "teacherId": row["teacher_id"],
            "weeklyHoursRequired": int(row["weekly_hours"]),
        }
        if row.get("room_type"):
            ob["requiredRoomType"] = row["room_type"]
        if row.get("class_size"):
            ob["classSize"] = int(row["class_size"])
        out.append(ob)
    return out


def load_availability_csv(src: TextOrPath) -> List[dict]:
    """teacher_id,day,period: one row per teachable slot."""
    slots: Dict[str, List[dict]] = defaultdict(list)
    for row in _rows(src, ["teacher_id", "day", "period"]):
        slots[row["teacher_id"]].append({"day": int(row["day"]), "period": int(row["period"])})
    return [{"teacherId": tid, "availableSlots": s} for tid, s in slots.items()]


def load_rooms_csv(src: TextOrPath) -> List[dict]:
    """id,capacity[,type]"""
    return [
        {"id": row["id"], "capacity": int(row["capacity"]), "type": row.get("type") or "classroom"}
        for row in _rows(src, ["id", "capacity"])
    ]


def request_from_csv(obligations: TextOrPath, availability: TextOrPath,
                     rooms: Optional[TextOrPath] = None, params: Optional[dict] = None) -> GenerationRequest:
    return parse_request({
        "obligations": load_obligations_csv(obligations),
        "teacherAvailability": load_availability_csv(availability),
        "rooms": load_rooms_csv(rooms) if rooms is not None else [],
        "params": params or {},
    })


def save_entries_csv(path: str, result: GenerationResult):
    with open(path, "w", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        w.writerow(["class_id", "subject_id", "teacher_id", "day", "period", "room_id", "pinned"])
        for e in result.entries:
            w.writerow([e.class_id, e.subject_id, e.teacher_id, e.day, e.period, e.room_id or "", int(e.pinned)])


def save_unplaced_csv(path: str, result: GenerationResult):
    with open(path, "w", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        w.writerow(["class_id", "subject_id", "teacher_id", "missing_hours"])
        for u in result.unplaced_obligation_hours:
            w.writerow([u.class_id, u.subject_id, u.teacher_id, u.missing_hours])


def save_result_json(path: str, result: GenerationResult):
    with open(path, "w", encoding="utf-8") as f:
        json.dump(result.to_json_dict(), f, indent=2)
