from __future__ import annotations
import random
from dataclasses import dataclass
from typing import List, Optional

from repvision.common.events import ProcessingResult
from repvision.ghost.targets import GhostTarget

# Absolute form floor for a win, independent of the ghost's own form score.
MIN_FORM_SCORE = 85.0


@dataclass(frozen=True)
class Badge:
    id: str
    name: str
    description: str
    icon: str
    rarity: str
    color: str
    glow_color: str


GHOST_SLAYER_BADGE = Badge(
    id="ghost_slayer",
    name="Ghost Slayer",
    description="Beat the ghost in a workout challenge",
    icon="👻💀",
    rarity="epic",
    color="#A855F7",
    glow_color="#FFD700",
)


@dataclass(frozen=True)
class WorkoutMetrics:
    reps: int
    time: float        # seconds
    form_score: float  # percent

    @classmethod
    def from_result(cls, result: ProcessingResult) -> "WorkoutMetrics":
        return cls(reps=result.total_reps, time=result.total_time, form_score=result.form_score)


@dataclass(frozen=True)
class BeatGhostResult:
    did_beat: bool
    reps_diff: int      # positive if the user did more
    time_diff: float    # negative if the user was faster
    form_diff: float    # positive if the user had better form
    badge: Optional[Badge]


def calculate_beat_ghost(user: WorkoutMetrics, ghost: GhostTarget) -> BeatGhostResult:
    did_beat = user.reps >= ghost.target_reps and user.form_score >= MIN_FORM_SCORE
    return BeatGhostResult(
        did_beat=did_beat,
        reps_diff=user.reps - ghost.target_reps,
        time_diff=user.time - ghost.target_time,
        form_diff=user.form_score - ghost.target_form_score,
        badge=GHOST_SLAYER_BADGE if did_beat else None,
    )


WIN_MESSAGES = [
    "Amazing! Ghost Slayed!",
    "Legendary Performance!",
    "You Crushed It!",
    "Unstoppable!",
    "Champion Status!",
]


def performance_message(result: BeatGhostResult, rng: Optional[random.Random] = None) -> str:
    if result.did_beat:
        return (rng or random).choice(WIN_MESSAGES)
    return "Great Effort! Keep Pushing!"


def improvement_suggestions(result: BeatGhostResult) -> List[str]:
    suggestions = []
    if result.reps_diff < 0:
        suggestions.append(f"Complete {abs(result.reps_diff)} more reps to match the ghost")
    if result.form_diff < 0:
        suggestions.append(f"Improve form by {abs(result.form_diff):.1f}% for better technique")
    if result.time_diff > 0:
        suggestions.append(f"Try to complete the workout {abs(result.time_diff):g}s faster")
    if not suggestions:
        suggestions.append(f"You're very close! Just maintain good form ({MIN_FORM_SCORE:.0f}%+) to beat the ghost!")
    return suggestions
