from __future__ import annotations
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Union

from repvision.common.events import EventType, ProcessingResult, RepEvent, reps_to_csv
from repvision.counter.detectors import Exercise, make_detector, parse_exercise
from repvision.counter.pose_core import Landmark
from repvision.counter.stats import calculate_stats

logger = logging.getLogger(__name__)

EventSink = Callable[[dict], None]


@dataclass
class SessionStatus:
    session_id: str
    exercise: str
    state: str
    detector_state: str
    count: int
    correct: int
    incorrect: int


class WorkoutSession:
    """
    Caller-owned live workout: one detector, one ordered rep list.

    Landmark frames are pushed in as they arrive (browser or camera loop).
    Timestamps default to seconds since the session started. Nothing here is
    shared between sessions, so several can run side by side.
    """

    def __init__(
        self,
        exercise: Union[str, Exercise],
        event_sink: Optional[EventSink] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.exercise = parse_exercise(exercise)
        self.session_id = str(uuid.uuid4())
        self._clock = clock
        self._event_sink = event_sink
        self.detector = make_detector(self.exercise, debug_cb=self._emit_debug)
        self.started_at = clock()
        self.stopped_at: Optional[float] = None
        self.correct = 0
        self.incorrect = 0
        self._paused = False
        self._emit({"type": EventType.SESSION_STARTED.value, "session_id": self.session_id,
                    "exercise": self.exercise.value})

    def _emit(self, payload: dict):
        if self._event_sink is None:
            return
        try:
            self._event_sink(payload)
        except Exception:
            logger.exception("event sink failed")

    def _emit_debug(self, ev):
        """Forward detector traces ({"type":"trace","msg":...}) to the sink."""
        if isinstance(ev, dict):
            self._emit(ev)
        else:
            self._emit({"type": EventType.TRACE.value, "msg": str(ev)})

    @property
    def running(self) -> bool:
        return self.stopped_at is None and not self._paused

    @property
    def reps(self) -> List[RepEvent]:
        return self.detector.get_reps()

    def elapsed(self) -> float:
        end = self.stopped_at if self.stopped_at is not None else self._clock()
        return max(0.0, end - self.started_at)

    def push_landmarks(self, landmarks: Optional[Sequence[Landmark]], ts: Optional[float] = None) -> Optional[RepEvent]:
        """Feed one frame; returns the rep it completed, if any."""
        if not self.running:
            return None
        t = float(ts) if ts is not None else self.elapsed()
        ev = self.detector.process(landmarks, t)
        if ev is None:
            return None
        if ev.correct:
            self.correct += 1
        else:
            self.incorrect += 1
        self._emit({
            "type": EventType.REP.value,
            "count": ev.count,
            "correct": ev.correct,
            "correct_reps": self.correct,
            "incorrect_reps": self.incorrect,
            "rep": ev.to_row(),
        })
        return ev

    def pause(self) -> str:
        if self.stopped_at is None and not self._paused:
            self._paused = True
            self._emit({"type": EventType.SESSION_PAUSED.value, "session_id": self.session_id})
        return self.session_id

    def resume(self) -> str:
        if self.stopped_at is None and self._paused:
            self._paused = False
            self._emit({"type": EventType.SESSION_RESUMED.value, "session_id": self.session_id})
        return self.session_id

    def stop(self) -> ProcessingResult:
        if self.stopped_at is None:
            self.stopped_at = self._clock()
            self._emit({"type": EventType.SESSION_STOPPED.value, "session_id": self.session_id,
                        "count": self.detector.count})
        return self.summary()

    def summary(self) -> ProcessingResult:
        return calculate_stats(self.reps, self.exercise, self.elapsed())

    def status(self) -> SessionStatus:
        if self.stopped_at is not None:
            state = "stopped"
        elif self._paused:
            state = "paused"
        else:
            state = "running"
        return SessionStatus(
            session_id=self.session_id,
            exercise=self.exercise.value,
            state=state,
            detector_state=self.detector.get_state(),
            count=self.detector.count,
            correct=self.correct,
            incorrect=self.incorrect,
        )

    def to_csv(self) -> str:
        return reps_to_csv(self.reps)
