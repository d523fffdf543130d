from __future__ import annotations
from typing import List, Optional

from pydantic import BaseModel, Field

from repvision.ghost.beat import BeatGhostResult


class GhostTargetOut(BaseModel):
    exercise: str
    target_reps: int
    target_time: float
    target_form_score: float
    difficulty: str


class BeatGhostRequest(BaseModel):
    exercise: str = Field(..., description="Exercise whose ghost to race")
    reps: int = Field(..., ge=0, description="Reps completed")
    time: float = Field(..., ge=0, description="Workout time in seconds")
    form_score: float = Field(..., ge=0, le=100, description="Percentage of correct reps")


class BadgeOut(BaseModel):
    id: str
    name: str
    description: str
    icon: str
    rarity: str
    color: str
    glow_color: str


class BeatGhostResponse(BaseModel):
    did_beat: bool
    reps_diff: int
    time_diff: float
    form_diff: float
    badge: Optional[BadgeOut] = None
    message: str
    suggestions: List[str] = []

    @classmethod
    def build(cls, result: BeatGhostResult, message: str, suggestions: List[str]) -> "BeatGhostResponse":
        badge = None
        if result.badge is not None:
            b = result.badge
            badge = BadgeOut(id=b.id, name=b.name, description=b.description, icon=b.icon,
                             rarity=b.rarity, color=b.color, glow_color=b.glow_color)
        return cls(
            did_beat=result.did_beat,
            reps_diff=result.reps_diff,
            time_diff=result.time_diff,
            form_diff=result.form_diff,
            badge=badge,
            message=message,
            suggestions=suggestions,
        )
