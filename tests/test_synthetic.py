from collections import Counter

from classtime.generate import generate_schedule
from classtime.scheduling.model_builder import build_model
from classtime.scheduling.validation import conflicts_ok, hours_ok
from classtime.synthetic import generate_request


def test_same_seed_same_request():
    a = generate_request(n_classes=3, n_teachers=4, seed=3)
    b = generate_request(n_classes=3, n_teachers=4, seed=3)
    assert a.model_dump() == b.model_dump()


def test_no_teacher_is_overcommitted():
    request = generate_request(n_classes=6, n_teachers=5, blockout=0.3, seed=9)
    load = Counter()
    for ob in request.obligations:
        load[ob.teacher_id] += ob.weekly_hours_required
    available = {rec.teacher_id: len(rec.available_slots) for rec in request.teacher_availability}

    assert load
    assert all(load[t] <= available[t] for t in load)
    # passes the pre-check
    build_model(request)


def test_grid_and_rooms_follow_arguments():
    request = generate_request(n_classes=2, n_teachers=3, days=4, periods=7, n_rooms=3, seed=1)
    assert (request.params.days, request.params.periods_per_day) == (4, 7)
    assert [r.id for r in request.rooms] == ["R101", "R102", "R103"]
    assert all(ob.class_size > 0 for ob in request.obligations)


def test_small_synthetic_week_schedules_cleanly():
    request = generate_request(n_classes=2, n_teachers=4, subjects=["MATH", "ENG", "SCI"], seed=5,
                               params={"randomSeed": 5, "maxIterations": 5000})
    gen = generate_schedule(request)

    assert gen.result.state in ("COMPLETE", "PARTIAL", "INFEASIBLE")
    assert conflicts_ok(gen.schedule.entries, gen.model.shareable_room_types)
    assert hours_ok(gen.schedule.entries, gen.model.obligations)
