from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np

from repvision.counter.pose_core import POSE_CONNECTIONS, LandmarkFrame

FONT = cv2.FONT_HERSHEY_SIMPLEX

# BGR
CYAN = (255, 255, 0)
WHITE = (255, 255, 255)
GREEN = (0, 255, 0)
OLIVE = (0, 200, 200)
RED = (0, 0, 255)
BLUE = (255, 0, 0)
YELLOW = (0, 255, 255)
BLACK = (0, 0, 0)


@dataclass
class OverlayInfo:
    exercise: str
    rep_count: int
    state: str
    correct: int
    incorrect: int
    current_time: float
    angle: Optional[float] = None
    angle_label: str = "Elbow"
    dip_time: float = 0.0


def draw_skeleton(frame: np.ndarray, landmarks: Optional[LandmarkFrame]):
    if not landmarks:
        return
    h, w = frame.shape[:2]

    def px(i):
        lm = landmarks[i]
        return int(lm.x * w), int(lm.y * h)

    for a, b in POSE_CONNECTIONS:
        if a < len(landmarks) and b < len(landmarks) and landmarks[a].visible and landmarks[b].visible:
            cv2.line(frame, px(a), px(b), CYAN, 2)
    for i, lm in enumerate(landmarks):
        if lm.visible:
            cv2.circle(frame, px(i), 3, WHITE, -1)


def _text(frame: np.ndarray, text: str, y: int, color):
    cv2.putText(frame, text, (10, y), FONT, 0.6, BLACK, 4, cv2.LINE_AA)
    cv2.putText(frame, text, (10, y), FONT, 0.6, color, 2, cv2.LINE_AA)


def draw_overlay(frame: np.ndarray, landmarks: Optional[LandmarkFrame], info: OverlayInfo) -> np.ndarray:
    """Draw skeleton and the running metrics block onto frame (in place)."""
    draw_skeleton(frame, landmarks)
    if info.angle is not None:
        _text(frame, f"{info.angle_label}: {round(info.angle)} deg", 25, GREEN)
    _text(frame, f"{info.exercise}: {info.rep_count}", 50, CYAN)
    _text(frame, f"State: {info.state}", 75, GREEN if info.state in ("DOWN", "AIRBORNE", "HOLD") else OLIVE)
    if info.dip_time > 0:
        _text(frame, f"Dip: {info.dip_time:.2f}s", 100, RED)
    _text(frame, f"Correct: {info.correct}", 125, GREEN)
    _text(frame, f"Bad: {info.incorrect}", 150, BLUE)
    _text(frame, f"Time: {info.current_time:.1f}s", 175, YELLOW)
    return frame
