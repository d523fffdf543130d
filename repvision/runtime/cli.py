from __future__ import annotations
import argparse
import asyncio
import signal
import sys
from typing import List, Optional

from repvision.common.errors import ConfigurationError
from repvision.common.events import reps_to_csv
from repvision.config import Settings, configure_logging
from repvision.counter.detectors import Exercise
from repvision.counter.pipeline import VideoProcessor
from repvision.ghost.beat import WorkoutMetrics, calculate_beat_ghost, improvement_suggestions, performance_message
from repvision.ghost.targets import ghost_target_for


def _progress(pct: float, _preview, reps: int, metrics: dict):
    print(f"\r{pct:5.1f}%  reps={reps}  correct={metrics['correct_count']}  "
          f"bad={metrics['incorrect_count']}  state={metrics['state']}", end="", flush=True)


async def _run_process(args, settings: Settings) -> int:
    processor = VideoProcessor(settings)
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, processor.cancel)
    except NotImplementedError:
        pass
    result = await processor.process_video(args.video, args.exercise, on_progress=_progress)
    print(flush=True)
    if result is None:
        print("cancelled; no result produced", flush=True)
        return 130

    for rep in result.reps:
        flag = "ok " if rep.correct else "bad"
        print(f"  #{rep.count:<3} t={rep.timestamp:6.2f}s {flag}", flush=True)
    print(f"reps={result.total_reps} correct={result.correct_reps} bad={result.incorrect_reps} "
          f"posture={result.posture.value} form={result.form_score:.1f}%", flush=True)

    if args.out:
        with open(args.out, "wb") as f:
            f.write(result.video)
        print(f"video → {args.out} ({len(result.video)} bytes)", flush=True)
    if args.csv:
        with open(args.csv, "w", newline="") as f:
            f.write(reps_to_csv(result.reps))
        print(f"csv → {args.csv}", flush=True)
    if args.ghost:
        _print_ghost(args.exercise, WorkoutMetrics.from_result(result))
    return 0


def _print_ghost(exercise: str, metrics: WorkoutMetrics):
    res = calculate_beat_ghost(metrics, ghost_target_for(exercise))
    print(performance_message(res), flush=True)
    if res.badge:
        print(f"badge: {res.badge.name}", flush=True)
    for s in improvement_suggestions(res):
        print(f"  - {s}", flush=True)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="repvision", description="Count reps in exercise videos")
    sub = p.add_subparsers(dest="command", required=True)
    choices = [e.value for e in Exercise]

    pr = sub.add_parser("process", help="analyse a recorded video")
    pr.add_argument("video")
    pr.add_argument("--exercise", required=True, help=", ".join(choices))
    pr.add_argument("--out", help="write the annotated .webm here")
    pr.add_argument("--csv", help="write one row per rep here")
    pr.add_argument("--ghost", action="store_true", help="race the exercise's ghost")

    gh = sub.add_parser("ghost", help="compare a result against the ghost target")
    gh.add_argument("--exercise", required=True)
    gh.add_argument("--reps", type=int, required=True)
    gh.add_argument("--time", type=float, required=True)
    gh.add_argument("--form", type=float, required=True, help="form score in percent")

    sv = sub.add_parser("serve", help="run the HTTP / websocket API")
    sv.add_argument("--host", default="127.0.0.1")
    sv.add_argument("--port", type=int, default=8000)
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    try:
        if args.command == "process":
            return asyncio.run(_run_process(args, settings))
        if args.command == "serve":
            import uvicorn  # lazy import
            uvicorn.run("repvision.runtime.server:app", host=args.host, port=args.port)
            return 0
        _print_ghost(args.exercise, WorkoutMetrics(args.reps, args.time, args.form))
        return 0
    except ConfigurationError as e:
        print("Error:", e, file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
