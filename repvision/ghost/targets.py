from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Union

from repvision.common.errors import MissingGhostTargetError
from repvision.counter.detectors import Exercise, parse_exercise


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


@dataclass(frozen=True)
class GhostTarget:
    target_reps: int
    target_time: float        # seconds
    target_form_score: float  # percent
    difficulty: Difficulty


GHOST_TARGETS: Dict[Exercise, GhostTarget] = {
    Exercise.PUSH_UPS: GhostTarget(25, 150, 95, Difficulty.MEDIUM),
    Exercise.PULL_UPS: GhostTarget(15, 120, 90, Difficulty.HARD),
    Exercise.SIT_UPS: GhostTarget(30, 120, 92, Difficulty.MEDIUM),
    Exercise.VERTICAL_JUMP: GhostTarget(10, 60, 88, Difficulty.EASY),
    Exercise.SHUTTLE_RUN: GhostTarget(8, 180, 90, Difficulty.HARD),    # complete shuttles
    Exercise.SIT_REACH: GhostTarget(3, 90, 85, Difficulty.EASY),       # holds
}


def ghost_target_for(exercise: Union[str, Exercise]) -> GhostTarget:
    """Target profile for an exercise; exercises without a ghost raise MissingGhostTargetError."""
    ex = parse_exercise(exercise)
    try:
        return GHOST_TARGETS[ex]
    except KeyError:
        raise MissingGhostTargetError(f"no ghost target for {ex.value!r}") from None
