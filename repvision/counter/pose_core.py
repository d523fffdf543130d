from __future__ import annotations
import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

VISIBILITY_CUTOFF = 0.5
NUM_LANDMARKS = 33

# Assumed standing height used to turn normalized displacements into metres.
DEFAULT_BODY_HEIGHT_M = 1.7


class PoseLandmark(IntEnum):
    NOSE = 0
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28
    LEFT_HEEL = 29
    RIGHT_HEEL = 30
    LEFT_FOOT_INDEX = 31
    RIGHT_FOOT_INDEX = 32


# Skeleton edges for overlay drawing (subset of the BlazePose topology).
POSE_CONNECTIONS: Tuple[Tuple[int, int], ...] = (
    (11, 12), (11, 13), (13, 15), (12, 14), (14, 16),
    (11, 23), (12, 24), (23, 24),
    (23, 25), (25, 27), (27, 29), (29, 31), (27, 31),
    (24, 26), (26, 28), (28, 30), (30, 32), (28, 32),
)


@dataclass(frozen=True)
class Landmark:
    x: float
    y: float
    z: float = 0.0
    visibility: float = 1.0

    @property
    def visible(self) -> bool:
        return self.visibility > VISIBILITY_CUTOFF

    @property
    def xy(self) -> Tuple[float, float]:
        return (self.x, self.y)


LandmarkFrame = Sequence[Landmark]


def landmarks_from_mediapipe(landmarks: Iterable) -> List[Landmark]:
    """Convert a mediapipe NormalizedLandmarkList.landmark sequence."""
    return [Landmark(lm.x, lm.y, lm.z, lm.visibility) for lm in landmarks]


def landmarks_from_dicts(items: Iterable[Mapping[str, float]]) -> List[Landmark]:
    return [
        Landmark(
            float(d.get("x", 0.0)),
            float(d.get("y", 0.0)),
            float(d.get("z", 0.0)),
            float(d.get("visibility", 0.0)),
        )
        for d in items
    ]


def visible_point(landmarks: LandmarkFrame, idx: int) -> Optional[Tuple[float, float]]:
    """Return (x, y) of landmark idx, or None if it is missing or not visible."""
    if landmarks is None or idx >= len(landmarks):
        return None
    lm = landmarks[idx]
    if not lm.visible:
        return None
    return lm.xy


def midpoint(
    a: Optional[Tuple[float, float]],
    b: Optional[Tuple[float, float]],
) -> Optional[Tuple[float, float]]:
    if a is None or b is None:
        return None
    return ((a[0] + b[0]) / 2.0, (a[1] + b[1]) / 2.0)


def visible_midpoint(landmarks: LandmarkFrame, left: int, right: int) -> Optional[Tuple[float, float]]:
    """Midpoint of a left/right pair; falls back to whichever side is visible."""
    a = visible_point(landmarks, left)
    b = visible_point(landmarks, right)
    if a is None:
        return b
    if b is None:
        return a
    return midpoint(a, b)


# Utility math

def angle_3pt(a: Tuple[float, float], b: Tuple[float, float], c: Tuple[float, float]) -> float:
    """Return angle ABC in degrees with B as vertex, folded into [0, 180]."""
    ang = math.degrees(
        math.atan2(c[1] - b[1], c[0] - b[0]) - math.atan2(a[1] - b[1], a[0] - b[0])
    )
    ang = abs(ang)
    if ang > 180:
        ang = 360 - ang
    return ang


def joint_angle(landmarks: LandmarkFrame, a: int, b: int, c: int) -> Optional[float]:
    """Angle at landmark b, or None when any of the three points is not visible."""
    pa = visible_point(landmarks, a)
    pb = visible_point(landmarks, b)
    pc = visible_point(landmarks, c)
    if pa is None or pb is None or pc is None:
        return None
    return angle_3pt(pa, pb, pc)


def planar_distance(a: Tuple[float, float], b: Tuple[float, float]) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def vertical_displacement(reference_y: float, current_y: float) -> float:
    """Upward displacement in normalized units (image y grows downwards)."""
    return reference_y - current_y


def jump_height_m(
    displacement: float,
    body_height_norm: Optional[float],
    body_height_m: float = DEFAULT_BODY_HEIGHT_M,
) -> float:
    """Scale a normalized displacement to metres using the subject's on-screen height."""
    if not body_height_norm or body_height_norm <= 1e-6:
        return displacement * body_height_m
    return displacement / body_height_norm * body_height_m


def body_height_norm(landmarks: LandmarkFrame) -> Optional[float]:
    """Nose-to-ankle span in normalized image units."""
    nose = visible_point(landmarks, PoseLandmark.NOSE)
    ankle = visible_midpoint(landmarks, PoseLandmark.LEFT_ANKLE, PoseLandmark.RIGHT_ANKLE)
    if nose is None or ankle is None:
        return None
    span = ankle[1] - nose[1]
    return span if span > 1e-6 else None
