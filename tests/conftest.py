from __future__ import annotations
import math
import struct
from typing import Dict, List, Sequence, Tuple

import pytest

from repvision.counter.pose_core import NUM_LANDMARKS, Landmark, PoseLandmark as P

FPS = 30.0


def blank_frame(visibility: float = 0.0) -> List[Landmark]:
    return [Landmark(0.5, 0.5, 0.0, visibility) for _ in range(NUM_LANDMARKS)]


def frame_with(points: Dict[int, Tuple[float, float]], visibility: float = 0.9) -> List[Landmark]:
    lms = blank_frame()
    for idx, (x, y) in points.items():
        lms[idx] = Landmark(x, y, 0.0, visibility)
    return lms


def _joint_points(theta: float, a: int, b: int, c: int, bx: float) -> Dict[int, Tuple[float, float]]:
    # a sits straight above the vertex; c is rotated theta degrees away from it
    by = 0.5
    phi = math.radians(-90.0 + theta)
    return {
        a: (bx, by - 0.2),
        b: (bx, by),
        c: (bx + 0.2 * math.cos(phi), by + 0.2 * math.sin(phi)),
    }


def elbow_frame(theta: float, visibility: float = 0.9) -> List[Landmark]:
    pts = {}
    pts.update(_joint_points(theta, P.LEFT_SHOULDER, P.LEFT_ELBOW, P.LEFT_WRIST, 0.4))
    pts.update(_joint_points(theta, P.RIGHT_SHOULDER, P.RIGHT_ELBOW, P.RIGHT_WRIST, 0.6))
    return frame_with(pts, visibility)


def hip_frame(theta: float, visibility: float = 0.9) -> List[Landmark]:
    pts = {}
    pts.update(_joint_points(theta, P.LEFT_SHOULDER, P.LEFT_HIP, P.LEFT_KNEE, 0.4))
    pts.update(_joint_points(theta, P.RIGHT_SHOULDER, P.RIGHT_HIP, P.RIGHT_KNEE, 0.6))
    return frame_with(pts, visibility)


def standing_frame(hip_y: float, hip_x: float = 0.5, visibility: float = 0.9) -> List[Landmark]:
    """Nose 0.4 above the hips and ankles 0.4 below them."""
    return frame_with({
        P.NOSE: (hip_x, hip_y - 0.4),
        P.LEFT_HIP: (hip_x - 0.05, hip_y),
        P.RIGHT_HIP: (hip_x + 0.05, hip_y),
        P.LEFT_ANKLE: (hip_x - 0.05, hip_y + 0.4),
        P.RIGHT_ANKLE: (hip_x + 0.05, hip_y + 0.4),
    }, visibility)


def reach_frame(reach: float, visibility: float = 0.9) -> List[Landmark]:
    return frame_with({
        P.LEFT_HIP: (0.3, 0.6),
        P.RIGHT_HIP: (0.3, 0.6),
        P.LEFT_WRIST: (0.3 + reach, 0.6),
        P.RIGHT_WRIST: (0.3 + reach, 0.6),
    }, visibility)


def ramp(start: float, end: float, n: int) -> List[float]:
    return [start + (end - start) * (i + 1) / n for i in range(n)]


def angle_cycle(bottom: float, top: float = 170.0, hold: int = 10, travel: int = 15) -> List[float]:
    """Extended, down to bottom, hold, back up to extended."""
    return [top] * 5 + ramp(top, bottom, travel) + [bottom] * hold + ramp(bottom, top, travel) + [top] * 5


def feed(detector, frames: Sequence[List[Landmark]], t0: float = 0.0, fps: float = FPS):
    events = []
    for i, lms in enumerate(frames):
        ev = detector.process(lms, t0 + i / fps)
        if ev is not None:
            events.append(ev)
    return events


def synthetic_webm(duration_ms: float = 1234.0, size_code: int = 0x88) -> bytes:
    """EBML header + Segment + Info{TimecodeScale, Duration} + a fake cluster."""
    if size_code == 0x88:
        payload = struct.pack(">d", duration_ms)
    else:
        payload = struct.pack(">f", duration_ms)
    info_body = b"\x2a\xd7\xb1\x83\x0f\x42\x40" + b"\x44\x89" + bytes([size_code]) + payload
    info = b"\x15\x49\xa9\x66" + bytes([0x80 | len(info_body)]) + info_body
    header = b"\x1a\x45\xdf\xa3\x84\x42\x86\x81\x01"
    segment = b"\x18\x53\x80\x67\x01\xff\xff\xff\xff\xff\xff\xff"
    cluster = b"\x1f\x43\xb6\x75" + b"\x00" * 64
    return header + segment + info + cluster


@pytest.fixture
def webm_bytes() -> bytes:
    return synthetic_webm()
