from __future__ import annotations
import math
from typing import Generic, Sequence, TypeVar

T = TypeVar("T")


def frame_index_at(t: float, n_frames: int, duration: float) -> int:
    """
    Nearest recorded frame for playback time t: round(t * N / D) clamped to
    [0, N-1]. Pose samples arrive at an uneven rate, so we snap instead of
    interpolating between them.
    """
    if n_frames <= 0:
        raise ValueError("no frames to map onto")
    if duration <= 0:
        raise ValueError(f"invalid duration: {duration}")
    fps = n_frames / duration
    # halves round up
    idx = math.floor(t * fps + 0.5)
    return max(0, min(idx, n_frames - 1))


class GhostPlayback(Generic[T]):
    """A recorded landmark sequence spread over the true source duration."""

    def __init__(self, frames: Sequence[T], duration: float):
        if not frames:
            raise ValueError("no frames to play back")
        if duration <= 0:
            raise ValueError(f"invalid duration: {duration}")
        self.frames = frames
        self.duration = duration

    @property
    def fps(self) -> float:
        return len(self.frames) / self.duration

    def index_at(self, t: float) -> int:
        return frame_index_at(t, len(self.frames), self.duration)

    def frame_at(self, t: float) -> T:
        return self.frames[self.index_at(t)]
