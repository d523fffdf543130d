from __future__ import annotations
import base64
import csv
import io
from dataclasses import dataclass, asdict, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class EventType(str, Enum):
    SESSION_STARTED = "session_started"
    SESSION_PAUSED = "session_paused"
    SESSION_RESUMED = "session_resumed"
    SESSION_STOPPED = "session_stopped"
    REP = "rep"
    TRACE = "trace"


class Posture(str, Enum):
    GOOD = "Good"
    BAD = "Bad"


@dataclass(frozen=True)
class RepEvent:
    """One completed repetition. Created once by a detector, never mutated."""
    count: int
    timestamp: float
    state: str
    correct: bool
    down_time: Optional[float] = None
    up_time: Optional[float] = None
    dip_duration: Optional[float] = None
    angle: Optional[float] = None
    min_angle: Optional[float] = None
    jump_height: Optional[float] = None
    air_time: Optional[float] = None
    reach_distance: Optional[float] = None
    split_time: Optional[float] = None

    def to_row(self) -> Dict[str, Any]:
        return asdict(self)


REP_COLUMNS = [f.name for f in fields(RepEvent)]


def reps_to_csv(reps: Sequence[RepEvent]) -> str:
    """Tabular export: one row per rep, columns follow RepEvent fields."""
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=REP_COLUMNS, lineterminator="\n")
    writer.writeheader()
    for rep in reps:
        writer.writerow({k: ("" if v is None else v) for k, v in rep.to_row().items()})
    return buf.getvalue()


@dataclass
class ProcessingResult:
    reps: List[RepEvent]
    correct_reps: int
    incorrect_reps: int
    total_time: float
    posture: Posture
    video: bytes = b""
    stats: Dict[str, Any] = field(default_factory=dict)

    @property
    def total_reps(self) -> int:
        return len(self.reps)

    @property
    def form_score(self) -> float:
        # percentage of committed reps flagged correct
        if not self.reps:
            return 0.0
        return 100.0 * self.correct_reps / len(self.reps)

    def to_dict(self, include_video: bool = False) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "reps": [r.to_row() for r in self.reps],
            "correct_reps": self.correct_reps,
            "incorrect_reps": self.incorrect_reps,
            "total_time": self.total_time,
            "posture": self.posture.value,
            "form_score": self.form_score,
            "stats": self.stats,
            "video_size": len(self.video),
        }
        if include_video:
            out["video_b64"] = base64.b64encode(self.video).decode("ascii")
        return out
