from __future__ import annotations
import asyncio
import logging
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union

import cv2
import numpy as np

from repvision.common.errors import InvalidVideoError, VideoEncodingError
from repvision.common.events import ProcessingResult
from repvision.config import Settings
from repvision.counter.detectors import Exercise, RepDetector, make_detector, parse_exercise
from repvision.counter.estimator import PoseEstimator
from repvision.counter.stats import calculate_stats
from repvision.video.encoder import WebmEncoder, create_video_from_frames
from repvision.video.overlay import OverlayInfo, draw_overlay

logger = logging.getLogger(__name__)

# (percent 0..100, latest JPEG preview or None, reps so far, metrics)
ProgressCallback = Callable[[float, Optional[bytes], int, Dict[str, Any]], None]
EstimatorFactory = Callable[[Settings], PoseEstimator]


class FrameSource(ABC):
    """A finite stream of (timestamp seconds, BGR frame) with a known duration."""

    duration: float = 0.0

    @abstractmethod
    def frames(self) -> Iterator[Tuple[float, np.ndarray]]:
        ...

    def close(self):
        pass


class VideoFileSource(FrameSource):
    """Reads a recording with OpenCV, throttled to target_fps and downscaled to max_width."""

    def __init__(self, path: Union[str, Path], target_fps: float = 30.0, max_width: int = 640):
        self.path = str(path)
        self.target_fps = target_fps
        self.cap = cv2.VideoCapture(self.path)
        try:
            if not self.cap.isOpened():
                raise InvalidVideoError(f"cannot open video: {self.path}")
            self.fps = float(self.cap.get(cv2.CAP_PROP_FPS) or 0.0)
            n = float(self.cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0.0)
            w = int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
            h = int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)
            if not w or not h:
                raise InvalidVideoError("invalid video dimensions")
            if self.fps <= 0 or n <= 0:
                raise InvalidVideoError(f"invalid video duration: {self.path}")
        except InvalidVideoError:
            self.cap.release()
            raise
        self.duration = n / self.fps
        self.scale = min(1.0, max_width / w)
        self.size = (int(w * self.scale), int(h * self.scale))
        logger.info("video loaded: %dx%d, %.2fs @ %.1ffps", w, h, self.duration, self.fps)

    def frames(self) -> Iterator[Tuple[float, np.ndarray]]:
        idx = 0
        last_t = None
        step = 1.0 / self.target_fps - 0.001
        while True:
            ok, frame = self.cap.read()
            if not ok:
                break
            t = idx / self.fps
            idx += 1
            if last_t is not None and t - last_t < step:
                continue
            last_t = t
            if self.scale < 1.0:
                frame = cv2.resize(frame, self.size)
            yield t, frame

    def close(self):
        self.cap.release()


def _default_estimator(settings: Settings) -> PoseEstimator:
    from repvision.counter.mediapipe_backend import MediaPipePoseEstimator  # lazy import
    return MediaPipePoseEstimator(settings)


def _preview_jpeg(frame: np.ndarray) -> Optional[bytes]:
    ok, buf = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), 50])
    return buf.tobytes() if ok else None


def _annotate(frame: np.ndarray, landmarks, info: OverlayInfo, preview: bool) -> Tuple[np.ndarray, Optional[bytes]]:
    canvas = frame.copy()
    draw_overlay(canvas, landmarks, info)
    return canvas, _preview_jpeg(canvas) if preview else None


class VideoProcessor:
    """
    Drives one recording through pose estimation and a rep detector, then
    re-encodes the annotated frames.

    Processing is lockstep: frame i+1 is not read until the estimate for frame
    i has arrived or its per-frame wait expired. A wall-clock safety budget
    (settings.safety_timeout) forces early completion with whatever was
    committed so far. cancel() stops the run; process_video then returns None.
    Capture reads and overlay rendering run on a reader thread, so the event
    loop stays free.
    Use one processor per run.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        estimator_factory: Optional[EstimatorFactory] = None,
        encoder: Optional[WebmEncoder] = None,
    ):
        self.settings = settings or Settings.from_env()
        self._estimator_factory = estimator_factory or _default_estimator
        self.encoder = encoder
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self):
        self._cancelled = True

    def _metrics(self, detector: RepDetector, t: float) -> Dict[str, Any]:
        reps = detector.get_reps()
        correct = sum(1 for r in reps if r.correct)
        return {
            "correct_count": correct,
            "incorrect_count": len(reps) - correct,
            "current_angle": detector.get_current_angle(),
            "current_time": t,
            "dip_time": detector.get_dip_time(t),
            "state": detector.get_state(),
        }

    async def process_video(
        self,
        source: Union[str, Path, FrameSource],
        exercise: Union[str, Exercise],
        on_progress: Optional[ProgressCallback] = None,
    ) -> Optional[ProcessingResult]:
        s = self.settings
        # configuration errors surface before any state is created
        ex = parse_exercise(exercise)
        detector = make_detector(ex)
        if isinstance(source, FrameSource):
            src = source
        else:
            src = VideoFileSource(source, s.target_fps, s.max_width)
        if not src.duration or src.duration <= 0:
            src.close()
            raise InvalidVideoError(f"invalid video duration: {src.duration}")

        estimator = self._estimator_factory(s)
        loop = asyncio.get_running_loop()
        budget = s.safety_timeout(src.duration)
        deadline = loop.time() + budget
        frames: List[np.ndarray] = []
        preview: Optional[bytes] = None
        n = 0
        # capture reads and rendering block; they run on one reader thread in order
        reader = ThreadPoolExecutor(max_workers=1, thread_name_prefix="frames")
        it = iter(src.frames())
        pending: Optional[Future] = None

        async def off_loop(fn, *args):
            nonlocal pending
            pending = reader.submit(fn, *args)
            return await asyncio.wrap_future(pending)

        try:
            while True:
                item = await off_loop(next, it, None)
                if item is None:
                    break
                t, frame = item
                if self._cancelled:
                    break
                remaining = deadline - loop.time()
                if remaining <= 0:
                    logger.warning("processing timeout after %.0fs; forcing completion", budget)
                    break
                n += 1
                try:
                    landmarks = await asyncio.wait_for(
                        estimator.estimate(frame), timeout=min(s.frame_timeout_s, remaining)
                    )
                except asyncio.TimeoutError:
                    logger.debug("no pose result for frame %d within %.3fs", n, s.frame_timeout_s)
                    landmarks = None
                if self._cancelled:
                    break

                if landmarks:
                    detector.process(landmarks, t)
                metrics = self._metrics(detector, t)

                info = OverlayInfo(
                    exercise=ex.value,
                    rep_count=detector.count,
                    state=metrics["state"],
                    correct=metrics["correct_count"],
                    incorrect=metrics["incorrect_count"],
                    current_time=t,
                    angle=metrics["current_angle"],
                    angle_label=detector.metric_label,
                    dip_time=metrics["dip_time"],
                )
                want_preview = n == 1 or n % s.preview_every == 0
                canvas, jpg = await off_loop(_annotate, frame, landmarks, info, want_preview)
                frames.append(canvas)
                if want_preview:
                    preview = jpg

                if on_progress and n % s.progress_every == 0:
                    progress = min(t / src.duration * 100.0, 99.0)
                    on_progress(progress, preview, detector.count, metrics)
                if n % 30 == 0:
                    logger.debug("frame %d t=%.2fs state=%s reps=%d", n, t, metrics["state"], detector.count)
        finally:
            estimator.close()
            if pending is not None and not pending.done():
                # the capture is still in use by a stalled read
                pending.add_done_callback(lambda _f: src.close())
            else:
                src.close()
            reader.shutdown(wait=False)

        if self._cancelled:
            frames.clear()
            logger.info("processing cancelled after %d frames", n)
            return None

        logger.info("collected %d frames over %.2fs, %d reps", len(frames), src.duration, detector.count)
        try:
            video = await loop.run_in_executor(
                None, create_video_from_frames, frames, src.duration, self.encoder
            )
        except (VideoEncodingError, cv2.error, OSError) as e:
            logger.warning("video encoding failed, returning result without video: %s", e)
            video = b""
        return calculate_stats(detector.get_reps(), ex, src.duration, video)

