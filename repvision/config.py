from __future__ import annotations
import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


@dataclass(frozen=True)
class Settings:
    target_fps: float = 30.0
    max_width: int = 640
    frame_timeout_s: float = 0.1       # per-frame wait on the estimator
    safety_factor: float = 5.0         # whole-run budget, multiple of source duration
    min_safety_timeout_s: float = 300.0
    progress_every: int = 5            # frames between progress callbacks
    preview_every: int = 10            # frames between JPEG previews
    min_detection_confidence: float = 0.5
    min_tracking_confidence: float = 0.5
    model_complexity: int = 1
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            target_fps=_env_float("REPVISION_TARGET_FPS", 30.0),
            max_width=_env_int("REPVISION_MAX_WIDTH", 640),
            frame_timeout_s=_env_float("REPVISION_FRAME_TIMEOUT_S", 0.1),
            safety_factor=_env_float("REPVISION_SAFETY_FACTOR", 5.0),
            min_safety_timeout_s=_env_float("REPVISION_MIN_SAFETY_TIMEOUT_S", 300.0),
            progress_every=_env_int("REPVISION_PROGRESS_EVERY", 5),
            preview_every=_env_int("REPVISION_PREVIEW_EVERY", 10),
            min_detection_confidence=_env_float("REPVISION_MIN_DETECTION_CONFIDENCE", 0.5),
            min_tracking_confidence=_env_float("REPVISION_MIN_TRACKING_CONFIDENCE", 0.5),
            model_complexity=_env_int("REPVISION_MODEL_COMPLEXITY", 1),
            log_level=os.getenv("REPVISION_LOG_LEVEL", "INFO"),
        )

    def safety_timeout(self, duration_s: float) -> float:
        return max(duration_s * self.safety_factor, self.min_safety_timeout_s)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
