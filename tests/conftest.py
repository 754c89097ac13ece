"""Shared request builders for the timetable tests."""

import pytest

from classtime.config import get_settings


def week(days: int = 5, periods: int = 5):
    return [{"day": d, "period": p} for d in range(1, days + 1) for p in range(1, periods + 1)]


def obligation(class_id: str, subject_id: str, teacher_id: str, hours: int, **extra) -> dict:
    ob = {"classId": class_id, "subjectId": subject_id, "teacherId": teacher_id, "weeklyHoursRequired": hours}
    ob.update(extra)
    return ob


def make_request(obligations, availability=None, rooms=None, pins=None, class_availability=None,
                 days: int = 5, periods: int = 5, **params) -> dict:
    """Request dict; teachers without explicit availability get the whole week."""
    availability = dict(availability or {})
    for ob in obligations:
        availability.setdefault(ob["teacherId"], week(days, periods))
    request = {
        "obligations": obligations,
        "teacherAvailability": [
            {"teacherId": tid, "availableSlots": slots} for tid, slots in availability.items()
        ],
        "rooms": rooms or [],
        "pinnedEntries": pins or [],
        "params": {"days": days, "periodsPerDay": periods, **params},
    }
    if class_availability:
        request["classAvailability"] = [
            {"classId": cid, "availableSlots": slots} for cid, slots in class_availability.items()
        ]
    return request


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
    for name in ("MAX_ITERATIONS", "TIMEOUT_MS", "RESTARTS", "BUDGET_POLICY", "WORKERS",
                 "DAYS", "PERIODS_PER_DAY", "LOG_LEVEL", "LOG_FILE"):
        monkeypatch.delenv(f"CLASSTIME_{name}", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
