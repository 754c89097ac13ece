import argparse
import logging
import sys

from classtime.config import get_settings
from classtime.errors import TimetableError, exit_code_for
from classtime.export import EXPORT_FORMATS, export_timetable
from classtime.generate import generate_schedule, parse_request
from classtime.io_utils import (
    load_request, request_from_csv, save_entries_csv, save_result_json, save_unplaced_csv
)
from classtime.logging_setup import setup_logging
from classtime.scheduling.evaluation import suggest_improvements, summary
from classtime.synthetic import generate_request

logger = logging.getLogger("classtime.cli")

# CLI flag -> request param
PARAM_FLAGS = {
    "seed": "randomSeed",
    "max_iterations": "maxIterations",
    "timeout_ms": "timeoutMs",
    "restarts": "restarts",
    "budget_policy": "budgetPolicy",
    "workers": "workers",
}


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="ClassTime – Weekly School Timetable Generator")
    # Input modes
    p.add_argument('--request', type=str, help='JSON generation request')
    p.add_argument('--obligations', type=str, help='obligations.csv with class_id,subject_id,teacher_id,weekly_hours')
    p.add_argument('--availability', type=str, help='availability.csv with teacher_id,day,period')
    p.add_argument('--rooms', type=str, required=False, help='rooms.csv with id,capacity[,type]')
    p.add_argument('--generate', type=int, default=None, help='Generate a synthetic week with N classes')
    p.add_argument('--teachers', type=int, default=6, help='Teachers in a synthetic week')
    p.add_argument('--synthetic_rooms', type=int, default=0, help='Rooms in a synthetic week')

    # Search
    p.add_argument('--seed', type=int, default=None)
    p.add_argument('--max_iterations', type=int, default=None)
    p.add_argument('--timeout_ms', type=int, default=None)
    p.add_argument('--restarts', type=int, default=None)
    p.add_argument('--budget_policy', type=str, choices=['independent', 'split'], default=None)
    p.add_argument('--workers', type=int, default=None)

    # Output
    p.add_argument('--out_entries', type=str, default='entries.csv')
    p.add_argument('--out_unplaced', type=str, default='unplaced.csv')
    p.add_argument('--out_json', type=str, default=None, help='Write the full result as JSON')
    p.add_argument('--export', type=str, choices=EXPORT_FORMATS, default=None)
    p.add_argument('--out_export', type=str, default=None, help='Export path (default timetable.<format>)')

    # Logging
    p.add_argument('--log_level', type=str, default=None)
    p.add_argument('--log_file', type=str, default=None)
    return p


def param_overrides(args) -> dict:
    return {key: getattr(args, flag) for flag, key in PARAM_FLAGS.items() if getattr(args, flag) is not None}


def load_input(args):
    overrides = param_overrides(args)
    if args.request:
        request = load_request(args.request)
        if not overrides:
            return request
        data = request.model_dump(by_alias=True)
        data["params"].update(overrides)
        return parse_request(data)
    if args.obligations and args.availability:
        return request_from_csv(args.obligations, args.availability, args.rooms, params=overrides)
    if args.generate is not None:
        return generate_request(
            n_classes=args.generate,
            n_teachers=args.teachers,
            n_rooms=args.synthetic_rooms,
            seed=args.seed if args.seed is not None else 42,
            params=overrides,
        )
    raise SystemExit("Provide --request, --obligations with --availability, or --generate N")


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(level=args.log_level or settings.log_level, log_file=args.log_file or settings.log_file)

    try:
        request = load_input(args)
        gen = generate_schedule(request)
    except TimetableError as e:
        logger.error("%s: %s", type(e).__name__, e)
        print(f"Error: {e}", file=sys.stderr)
        return exit_code_for(e)

    result = gen.result
    best = gen.restarts.best
    print(summary(gen.schedule, gen.model, best.evaluation))
    print(f"Runs: {result.runs}  Seed: {result.seed}  Iterations: {result.iterations_used}  "
          f"Time: {result.generation_time_ms:.1f} ms")
    suggestions = suggest_improvements(gen.schedule, gen.model)
    if suggestions:
        print("Suggestions:")
        for s in suggestions[:20]:
            print(f"  - {s['message']}")

    # Save outputs
    save_entries_csv(args.out_entries, result)
    saved = [args.out_entries]
    if result.unplaced_obligation_hours:
        save_unplaced_csv(args.out_unplaced, result)
        saved.append(args.out_unplaced)
    if args.out_json:
        save_result_json(args.out_json, result)
        saved.append(args.out_json)
    if args.export:
        path = args.out_export or f"timetable.{args.export}"
        data = export_timetable(result, args.export, gen.model.grid.days, gen.model.grid.periods)
        if isinstance(data, bytes):
            with open(path, "wb") as f:
                f.write(data)
        else:
            with open(path, "w", encoding="utf-8") as f:
                f.write(data)
        saved.append(path)
    print(f"Saved: {', '.join(saved)}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
