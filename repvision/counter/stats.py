from __future__ import annotations
from typing import Any, Dict, List, Optional, Sequence

from repvision.common.events import Posture, ProcessingResult, RepEvent
from repvision.counter.detectors import Exercise, parse_exercise

GOOD_POSTURE_RATIO = 0.7

ANGLE_EXERCISES = {Exercise.PUSH_UPS, Exercise.PULL_UPS, Exercise.SIT_UPS}
JUMP_EXERCISES = {Exercise.VERTICAL_JUMP, Exercise.VERTICAL_BROAD_JUMP}


def posture_for(correct: int, total: int) -> Posture:
    # no attempted reps is reported as Bad rather than dividing by zero
    if total == 0:
        return Posture.BAD
    return Posture.GOOD if correct / total >= GOOD_POSTURE_RATIO else Posture.BAD


def _values(reps: Sequence[RepEvent], attr: str) -> List[float]:
    return [getattr(r, attr) for r in reps if getattr(r, attr) is not None]


def _mean(xs: List[float]) -> Optional[float]:
    return sum(xs) / len(xs) if xs else None


def calculate_stats(
    reps: Sequence[RepEvent],
    exercise: str,
    duration: float,
    video: bytes = b"",
) -> ProcessingResult:
    """Aggregate committed reps into the final ProcessingResult."""
    ex = parse_exercise(exercise)
    reps = list(reps)
    correct = sum(1 for r in reps if r.correct)
    incorrect = len(reps) - correct
    posture = posture_for(correct, len(reps))

    stats: Dict[str, Any] = {
        "exercise": ex.value,
        "total_reps": len(reps),
        "correct_reps": correct,
        "incorrect_reps": incorrect,
        "posture": posture.value,
        "total_time": duration,
        "avg_rep_duration": duration / len(reps) if reps else 0.0,
    }

    if ex in ANGLE_EXERCISES:
        angles = _values(reps, "min_angle")
        if angles:
            stats["min_angle"] = min(angles)
            stats["max_angle"] = max(angles)
            stats["avg_angle"] = _mean(angles)
        dips = _values(reps, "dip_duration")
        if dips:
            stats["avg_dip_duration"] = _mean(dips)
            stats["avg_rep_duration"] = stats["avg_dip_duration"]

    if ex in JUMP_EXERCISES:
        heights = _values(reps, "jump_height")
        if heights:
            stats["max_jump_height"] = max(heights)
            stats["avg_jump_height"] = _mean(heights)
        air = _values(reps, "air_time")
        if air:
            stats["avg_air_time"] = _mean(air)

    if ex == Exercise.SIT_REACH:
        reaches = _values(reps, "reach_distance")
        if reaches:
            stats["max_reach"] = max(reaches)

    if ex == Exercise.SHUTTLE_RUN:
        splits = _values(reps, "split_time")
        if splits:
            stats["avg_split_time"] = _mean(splits)
            stats["best_split_time"] = min(splits)

    return ProcessingResult(
        reps=reps,
        correct_reps=correct,
        incorrect_reps=incorrect,
        total_time=duration,
        posture=posture,
        video=video,
        stats=stats,
    )
