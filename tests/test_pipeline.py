import asyncio
import itertools
import threading

import numpy as np
import pytest

from repvision.common.errors import InvalidVideoError, UnknownExerciseError, VideoEncodingError
from repvision.common.events import Posture
from repvision.config import Settings
from repvision.counter import pipeline
from repvision.counter.pipeline import FrameSource, VideoProcessor
from repvision.video.encoder import read_webm_duration

from conftest import FPS, angle_cycle, elbow_frame, synthetic_webm


class ScriptedSource(FrameSource):
    def __init__(self, n_frames, duration=None, fps=FPS):
        self.n_frames = n_frames
        self.fps = fps
        self.duration = duration if duration is not None else n_frames / fps
        self.closed = False

    def frames(self):
        counter = range(self.n_frames) if self.n_frames is not None else itertools.count()
        for i in counter:
            yield i / self.fps, np.zeros((32, 48, 3), dtype=np.uint8)

    def close(self):
        self.closed = True


class ScriptedEstimator:
    """Hands out one landmark frame per call, in order."""

    def __init__(self, script=(), delay=0.0):
        self.script = list(script)
        self.delay = delay
        self.calls = 0
        self.closed = False

    async def estimate(self, frame):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.script.pop(0) if self.script else None

    def close(self):
        self.closed = True


class HangingEstimator(ScriptedEstimator):
    async def estimate(self, frame):
        self.calls += 1
        await asyncio.Event().wait()


class FakeEncoder:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def encode(self, frames, fps):
        self.calls.append((len(frames), fps))
        if self.fail:
            raise VideoEncodingError("no codec")
        return synthetic_webm(0.0)


SETTINGS = Settings(frame_timeout_s=0.02, min_safety_timeout_s=5.0, progress_every=5, preview_every=10)


def processor(estimator, encoder=None, settings=SETTINGS):
    return VideoProcessor(settings, estimator_factory=lambda _s: estimator, encoder=encoder or FakeEncoder())


async def test_counts_reps_through_the_pipeline():
    angles = angle_cycle(70) + angle_cycle(150)
    est = ScriptedEstimator([elbow_frame(a) for a in angles])
    enc = FakeEncoder()
    src = ScriptedSource(len(angles))
    progress = []

    result = await processor(est, enc).process_video(
        src, "Push-ups", on_progress=lambda pct, jpg, reps, m: progress.append((pct, jpg, reps, m))
    )

    assert [r.count for r in result.reps] == [1, 2]
    assert (result.correct_reps, result.incorrect_reps) == (1, 1)
    assert result.posture is Posture.BAD
    assert result.total_time == pytest.approx(src.duration)
    assert est.calls == len(angles)
    assert est.closed and src.closed

    # re-encoded at the effective rate, declared duration patched to the source's
    assert enc.calls == [(len(angles), pytest.approx(FPS))]
    assert read_webm_duration(result.video) == pytest.approx(src.duration * 1000)

    assert len(progress) == len(angles) // 5
    pcts = [p[0] for p in progress]
    assert pcts == sorted(pcts) and pcts[-1] <= 99.0
    assert [p[2] for p in progress] == sorted(p[2] for p in progress)
    assert all(p[1] is not None and p[1][:2] == b"\xff\xd8" for p in progress)
    assert {"correct_count", "incorrect_count", "current_angle", "current_time", "dip_time", "state"} <= set(progress[-1][3])


async def test_missing_pose_results_still_produce_frames():
    est = ScriptedEstimator([None] * 10)
    enc = FakeEncoder()
    result = await processor(est, enc).process_video(ScriptedSource(10), "Sit-ups")
    assert result.reps == []
    assert enc.calls[0][0] == 10


async def test_hung_estimator_does_not_stall_the_run():
    est = HangingEstimator()
    enc = FakeEncoder()
    result = await asyncio.wait_for(
        processor(est, enc).process_video(ScriptedSource(10), "Push-ups"), timeout=5
    )
    assert result is not None
    assert result.reps == []
    assert est.calls == 10
    assert enc.calls[0][0] == 10


async def test_frames_are_read_and_drawn_off_the_event_loop(monkeypatch):
    drawn_on = []
    real_draw = pipeline.draw_overlay

    def draw(canvas, landmarks, info):
        drawn_on.append(threading.get_ident())
        real_draw(canvas, landmarks, info)

    class ThreadedSource(ScriptedSource):
        def frames(self):
            for item in super().frames():
                self.read_on.append(threading.get_ident())
                yield item

    monkeypatch.setattr(pipeline, "draw_overlay", draw)
    src = ThreadedSource(12)
    src.read_on = []
    result = await processor(ScriptedEstimator()).process_video(src, "Push-ups")

    loop_thread = threading.get_ident()
    assert result is not None
    assert len(src.read_on) == 12 and len(drawn_on) == 12
    assert loop_thread not in src.read_on
    assert loop_thread not in drawn_on
    assert src.closed


async def test_safety_timeout_forces_completion():
    settings = Settings(frame_timeout_s=0.05, safety_factor=0.1, min_safety_timeout_s=0.2)
    est = ScriptedEstimator(delay=0.01)
    src = ScriptedSource(None, duration=1.0)
    result = await asyncio.wait_for(processor(est, settings=settings).process_video(src, "Push-ups"), timeout=5)
    assert result is not None
    assert 0 < est.calls < 1000
    assert est.closed and src.closed


async def test_cancel_returns_no_result():
    est = ScriptedEstimator()
    enc = FakeEncoder()
    proc = processor(est, enc)
    seen = []

    def on_progress(pct, jpg, reps, metrics):
        seen.append(pct)
        proc.cancel()

    result = await proc.process_video(ScriptedSource(100), "Push-ups", on_progress=on_progress)
    assert result is None
    assert proc.cancelled
    assert len(seen) == 1
    assert est.calls == 5
    assert est.closed
    assert enc.calls == []


async def test_unknown_exercise_fails_before_any_work():
    made = []
    proc = VideoProcessor(SETTINGS, estimator_factory=lambda s: made.append(s), encoder=FakeEncoder())
    src = ScriptedSource(10)
    with pytest.raises(UnknownExerciseError):
        await proc.process_video(src, "Burpees")
    assert made == []


async def test_zero_duration_source_is_rejected():
    made = []
    proc = VideoProcessor(SETTINGS, estimator_factory=lambda s: made.append(s), encoder=FakeEncoder())
    src = ScriptedSource(10, duration=0.0)
    with pytest.raises(InvalidVideoError):
        await proc.process_video(src, "Push-ups")
    assert made == []
    assert src.closed


async def test_encoding_failure_keeps_the_result():
    angles = angle_cycle(70)
    est = ScriptedEstimator([elbow_frame(a) for a in angles])
    result = await processor(est, FakeEncoder(fail=True)).process_video(ScriptedSource(len(angles)), "Push-ups")
    assert result.video == b""
    assert result.total_reps == 1


async def test_unreadable_file_is_rejected(tmp_path):
    path = tmp_path / "garbage.mp4"
    path.write_bytes(b"definitely not a video")
    proc = processor(ScriptedEstimator())
    with pytest.raises(InvalidVideoError):
        await proc.process_video(path, "Push-ups")
