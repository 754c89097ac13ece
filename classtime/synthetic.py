import logging
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from faker import Faker

from .generate import parse_request
from .schemas import GenerationRequest

logger = logging.getLogger(__name__)

DEFAULT_SUBJECTS = ["MATH", "ENG", "SCI", "HIST", "GEO", "ART", "PE", "MUS"]


def generate_request(
    n_classes: int = 4,
    n_teachers: int = 6,
    subjects: Optional[Sequence[str]] = None,
    hours_range: Tuple[int, int] = (2, 4),
    days: int = 5,
    periods: int = 6,
    blockout: float = 0.1,
    n_rooms: int = 0,
    seed: int = 42,
    params: Optional[dict] = None,
) -> GenerationRequest:
    """Random but well-formed school week.

    Every class takes every subject; teachers are drawn with Faker and each
    obligation goes to the least loaded teacher that still has room for it, so
    no teacher is over-committed. ``blockout`` is the share of slots each
    teacher is unavailable.
    """
    rng = np.random.default_rng(seed)
    fake = Faker()
    Faker.seed(seed)
    subjects = list(subjects or DEFAULT_SUBJECTS)
    week = [(d, p) for d in range(1, days + 1) for p in range(1, periods + 1)]

    teachers: List[str] = []
    availability: Dict[str, List[Tuple[int, int]]] = {}
    for i in range(n_teachers):
        tid = f"{fake.last_name()}-{i + 1}"
        open_slots = [s for s in week if rng.random() >= blockout]
        teachers.append(tid)
        availability[tid] = open_slots
    load = {tid: 0 for tid in teachers}

    lo, hi = hours_range
    obligations = []
    for c in range(n_classes):
        class_id = f"C{c + 1}"
        class_hours = 0
        class_size = int(rng.integers(15, 31))
        for subject in subjects:
            hours = int(rng.integers(lo, hi + 1))
            hours = min(hours, len(week) - class_hours)
            if hours <= 0:
                break
            spare = {tid: len(availability[tid]) - load[tid] for tid in teachers}
            fits = [tid for tid in teachers if spare[tid] >= hours]
            if not fits:
                logger.debug("No teacher can take %d more hours of %s for %s", hours, subject, class_id)
                continue
            tid = min(fits, key=lambda t: (load[t], t))
            load[tid] += hours
            class_hours += hours
            ob = {
                "classId": class_id,
                "subjectId": subject,
                "teacherId": tid,
                "weeklyHoursRequired": hours,
            }
            if n_rooms:
                ob["classSize"] = class_size
            obligations.append(ob)

    rooms = [
        {"id": f"R{101 + r}", "capacity": int(rng.integers(30, 41)), "type": "classroom"}
        for r in range(n_rooms)
    ]
    request = {
        "obligations": obligations,
        "teacherAvailability": [
            {"teacherId": tid, "availableSlots": [{"day": d, "period": p} for d, p in availability[tid]]}
            for tid in teachers
        ],
        "rooms": rooms,
        "params": {"days": days, "periodsPerDay": periods, **(params or {})},
    }
    logger.debug(
        "Synthetic request: %d classes, %d teachers, %d obligations, %d hours",
        n_classes, n_teachers, len(obligations), sum(o["weeklyHoursRequired"] for o in obligations),
    )
    return parse_request(request)
