from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple, Union

from repvision.common.errors import UnknownExerciseError
from repvision.common.events import RepEvent
from repvision.counter.pose_core import (
    DEFAULT_BODY_HEIGHT_M,
    LandmarkFrame,
    PoseLandmark as P,
    body_height_norm,
    joint_angle,
    jump_height_m,
    planar_distance,
    vertical_displacement,
    visible_midpoint,
)

logger = logging.getLogger(__name__)

DebugCallback = Callable[[dict], None]


class Exercise(str, Enum):
    PUSH_UPS = "Push-ups"
    PULL_UPS = "Pull-ups"
    SIT_UPS = "Sit-ups"
    VERTICAL_JUMP = "Vertical Jump"
    VERTICAL_BROAD_JUMP = "Vertical Broad Jump"
    SHUTTLE_RUN = "Shuttle Run"
    SIT_REACH = "Sit Reach"


def parse_exercise(name: Union[str, Exercise]) -> Exercise:
    """Resolve a display name ("Push-ups") or enum name ("PUSH_UPS")."""
    if isinstance(name, Exercise):
        return name
    try:
        return Exercise(name)
    except ValueError:
        pass
    key = str(name).strip().upper().replace("-", "_").replace(" ", "_")
    try:
        return Exercise[key]
    except KeyError:
        raise UnknownExerciseError(str(name)) from None


class RepState(str, Enum):
    UP = "UP"
    DOWN = "DOWN"


class JumpState(str, Enum):
    GROUND = "GROUND"
    AIRBORNE = "AIRBORNE"


class ShuttleState(str, Enum):
    IDLE = "IDLE"
    MOVING_LEFT = "MOVING_LEFT"
    MOVING_RIGHT = "MOVING_RIGHT"


class ReachState(str, Enum):
    APPROACH = "APPROACH"
    HOLD = "HOLD"


class RepDetector(ABC):
    """
    Base for the per-exercise state machines.

    One instance per workout session. process() is fed one landmark frame at a
    time and returns the RepEvent it just committed, or None. Frames whose
    relevant joints are not visible are ignored without touching state, and so
    are frames whose timestamp does not advance.
    """

    family: str = ""
    metric_label: str = ""

    def __init__(self, initial_state: Enum, debug_cb: Optional[DebugCallback] = None):
        self._dbg = debug_cb or (lambda *_: None)
        self.state = initial_state
        self.reps: List[RepEvent] = []
        self.current_angle: Optional[float] = None
        self._last_t: Optional[float] = None

    @property
    def count(self) -> int:
        return len(self.reps)

    def process(self, landmarks: Optional[LandmarkFrame], t: float) -> Optional[RepEvent]:
        if not landmarks:
            return None
        t = float(t)
        if self._last_t is not None and t <= self._last_t:
            return None
        self._last_t = t
        return self._step(landmarks, t)

    @abstractmethod
    def _step(self, landmarks: LandmarkFrame, t: float) -> Optional[RepEvent]:
        ...

    def get_state(self) -> str:
        return self.state.value

    def get_current_angle(self) -> Optional[float]:
        return self.current_angle

    def get_dip_time(self, now: float) -> float:
        return 0.0

    def get_reps(self) -> List[RepEvent]:
        return list(self.reps)

    def _enter_state(self, new_state: Enum):
        if new_state != self.state:
            self.state = new_state
            self._dbg({"type": "trace", "msg": f"state→{new_state.value}"})

    def _emit(self, t: float, correct: bool, **metrics) -> RepEvent:
        ev = RepEvent(
            count=len(self.reps) + 1,
            timestamp=t,
            state=self.state.value,
            correct=bool(correct),
            **metrics,
        )
        self.reps.append(ev)
        self._dbg({"type": "trace", "msg": f"rep++ #{ev.count} correct={ev.correct}"})
        logger.debug("%s rep %d at %.2fs (correct=%s)", type(self).__name__, ev.count, t, ev.correct)
        return ev


# ----------------- Angle-threshold family -----------------

@dataclass(frozen=True)
class AngleRepConfig:
    joints: Tuple[Tuple[int, int, int], ...]
    down_threshold: float      # enter DOWN below this
    up_threshold: float        # complete the rep above this
    correct_max_angle: float   # deepest angle must reach at least this far
    min_dip_s: float           # minimum time under tension
    label: str = "Elbow"

    def __post_init__(self):
        if self.down_threshold >= self.up_threshold:
            raise ValueError("down_threshold must be below up_threshold")


ELBOWS = ((P.LEFT_SHOULDER, P.LEFT_ELBOW, P.LEFT_WRIST), (P.RIGHT_SHOULDER, P.RIGHT_ELBOW, P.RIGHT_WRIST))
HIPS = ((P.LEFT_SHOULDER, P.LEFT_HIP, P.LEFT_KNEE), (P.RIGHT_SHOULDER, P.RIGHT_HIP, P.RIGHT_KNEE))

ANGLE_CONFIGS: Dict[Exercise, AngleRepConfig] = {
    Exercise.PUSH_UPS: AngleRepConfig(ELBOWS, down_threshold=155.0, up_threshold=165.0,
                                      correct_max_angle=90.0, min_dip_s=0.3),
    Exercise.PULL_UPS: AngleRepConfig(ELBOWS, down_threshold=150.0, up_threshold=165.0,
                                      correct_max_angle=90.0, min_dip_s=0.2),
    Exercise.SIT_UPS: AngleRepConfig(HIPS, down_threshold=110.0, up_threshold=130.0,
                                     correct_max_angle=70.0, min_dip_s=0.2, label="Hip"),
}


class AngleRepDetector(RepDetector):
    """UP/DOWN machine over a joint angle, with hysteresis between thresholds."""

    family = "angle"

    def __init__(self, cfg: AngleRepConfig, debug_cb: Optional[DebugCallback] = None):
        super().__init__(RepState.UP, debug_cb)
        self.cfg = cfg
        self.metric_label = cfg.label
        self._down_t = 0.0
        self._min_angle = 180.0

    def _angle(self, landmarks: LandmarkFrame) -> Optional[float]:
        # average whichever sides are fully visible
        angles = [joint_angle(landmarks, *j) for j in self.cfg.joints]
        angles = [a for a in angles if a is not None]
        if not angles:
            return None
        return sum(angles) / len(angles)

    def _step(self, landmarks: LandmarkFrame, t: float) -> Optional[RepEvent]:
        ang = self._angle(landmarks)
        if ang is None:
            return None
        self.current_angle = ang

        if self.state == RepState.UP:
            if ang < self.cfg.down_threshold:
                self._down_t = t
                self._min_angle = ang
                self._enter_state(RepState.DOWN)
            return None

        self._min_angle = min(self._min_angle, ang)
        if ang > self.cfg.up_threshold:
            dip = t - self._down_t
            correct = self._min_angle <= self.cfg.correct_max_angle and dip >= self.cfg.min_dip_s
            self._enter_state(RepState.UP)
            return self._emit(
                t,
                correct,
                down_time=self._down_t,
                up_time=t,
                dip_duration=dip,
                angle=ang,
                min_angle=self._min_angle,
            )
        return None

    def get_dip_time(self, now: float) -> float:
        if self.state == RepState.DOWN:
            return max(0.0, now - self._down_t)
        return 0.0


# ----------------- Jump family -----------------

@dataclass(frozen=True)
class JumpConfig:
    liftoff_threshold: float = 0.05   # normalized rise above baseline
    landing_tolerance: float = 0.02   # back within this band of baseline
    baseline_alpha: float = 0.05      # drift adaptation while standing inside the band
    still_tolerance: float = 0.01     # hip movement still counted as "at rest"
    settle_s: float = 0.2             # rest after falling back that counts as a landing
    restance_s: float = 1.0           # rest outside the band that becomes the new stance
    max_air_time_s: float = 2.0
    min_air_time_s: float = 0.1
    min_height_m: float = 0.03
    body_height_m: float = DEFAULT_BODY_HEIGHT_M

    def __post_init__(self):
        if self.landing_tolerance >= self.liftoff_threshold:
            raise ValueError("landing_tolerance must be below liftoff_threshold")


class JumpRepDetector(RepDetector):
    """
    GROUND/AIRBORNE machine over the hip centre's rise above a standing baseline.

    The baseline only follows the hips while they stay inside the landing band,
    so a countermovement dip never drags it down. Holding still somewhere else
    for restance_s adopts that height as the new stance. A flight that comes to
    rest away from the take-off height (a step up, a deeper landing stance) is
    closed once the hips settle, and one that outlasts max_air_time_s is dropped.
    """

    family = "jump"
    metric_label = "Rise"

    def __init__(self, cfg: Optional[JumpConfig] = None, debug_cb: Optional[DebugCallback] = None):
        super().__init__(JumpState.GROUND, debug_cb)
        self.cfg = cfg or JumpConfig()
        self.baseline: Optional[float] = None
        self.displacement = 0.0
        self._body_h: Optional[float] = None
        self._liftoff_t = 0.0
        self._peak = 0.0
        self._still_y: Optional[float] = None
        self._still_t = 0.0

    def _track_body_height(self, landmarks: LandmarkFrame):
        h = body_height_norm(landmarks)
        if h is None:
            return
        if self._body_h is None:
            self._body_h = h
        else:
            self._body_h += self.cfg.baseline_alpha * (h - self._body_h)

    def _rest_time(self, y: float, t: float) -> float:
        if self._still_y is None or abs(y - self._still_y) > self.cfg.still_tolerance:
            self._still_y, self._still_t = y, t
        return t - self._still_t

    def _step(self, landmarks: LandmarkFrame, t: float) -> Optional[RepEvent]:
        hip = visible_midpoint(landmarks, P.LEFT_HIP, P.RIGHT_HIP)
        if hip is None:
            return None
        y = hip[1]
        if self.baseline is None:
            self.baseline = y
            self._still_y, self._still_t = y, t
            self._track_body_height(landmarks)
            return None

        disp = vertical_displacement(self.baseline, y)
        self.displacement = disp
        rest = self._rest_time(y, t)

        if self.state == JumpState.GROUND:
            if disp > self.cfg.liftoff_threshold:
                self._liftoff_t = t
                self._peak = disp
                self._enter_state(JumpState.AIRBORNE)
            elif abs(disp) <= self.cfg.landing_tolerance:
                self.baseline += self.cfg.baseline_alpha * (y - self.baseline)
                self._track_body_height(landmarks)
            elif rest >= self.cfg.restance_s:
                self.baseline = y
                self._track_body_height(landmarks)
                self._dbg({"type": "trace", "msg": f"new stance at y={y:.3f}"})
            return None

        self._peak = max(self._peak, disp)
        if disp <= self.cfg.landing_tolerance:
            return self._land(t, t)
        if disp < self._peak / 2 and rest >= self.cfg.settle_s:
            # came to rest away from the take-off height
            landed_t = self._still_t
            self.baseline = y
            return self._land(landed_t, t)
        if t - self._liftoff_t > self.cfg.max_air_time_s:
            self.baseline = y
            self._enter_state(JumpState.GROUND)
            self._dbg({"type": "trace", "msg": f"jump dropped after {t - self._liftoff_t:.2f}s airborne"})
        return None

    def _land(self, landed_t: float, t: float) -> Optional[RepEvent]:
        air = landed_t - self._liftoff_t
        height = jump_height_m(self._peak, self._body_h, self.cfg.body_height_m)
        self._enter_state(JumpState.GROUND)
        if air < self.cfg.min_air_time_s or height < self.cfg.min_height_m:
            self._dbg({"type": "trace", "msg": f"jump rejected (air={air:.2f}s, h={height:.2f}m)"})
            return None
        return self._emit(
            t,
            True,
            down_time=self._liftoff_t,
            up_time=landed_t,
            jump_height=height,
            air_time=air,
        )

    def get_dip_time(self, now: float) -> float:
        if self.state == JumpState.AIRBORNE:
            return max(0.0, now - self._liftoff_t)
        return 0.0


# ----------------- Shuttle run -----------------

@dataclass(frozen=True)
class ShuttleConfig:
    min_span: float = 0.2          # normalized x distance between turn boundaries
    boundary_margin: float = 0.25  # fraction of the span treated as "at the boundary"
    min_speed: float = 0.05        # normalized units/s below which direction is unknown
    velocity_alpha: float = 0.5
    debounce_s: float = 0.5


class ShuttleRunDetector(RepDetector):
    """
    Counts traversals of a lateral shuttle. A traversal ends at one of the two
    running x-extremes, either when the smoothed horizontal velocity of the
    body centre flips sign there or when the runner comes to rest there.
    Consecutive traversals must end at opposite extremes, and at most one ends
    per debounce window.
    """

    family = "shuttle"
    metric_label = "X"

    def __init__(self, cfg: Optional[ShuttleConfig] = None, debug_cb: Optional[DebugCallback] = None):
        super().__init__(ShuttleState.IDLE, debug_cb)
        self.cfg = cfg or ShuttleConfig()
        self.min_x: Optional[float] = None
        self.max_x: Optional[float] = None
        self._last_x: Optional[float] = None
        self._last_xt = 0.0
        self._vel: Optional[float] = None
        self._start_t = 0.0
        self._last_turn_t: Optional[float] = None
        self._last_side: Optional[str] = None

    def _step(self, landmarks: LandmarkFrame, t: float) -> Optional[RepEvent]:
        centre = visible_midpoint(landmarks, P.LEFT_HIP, P.RIGHT_HIP)
        if centre is None:
            centre = visible_midpoint(landmarks, P.LEFT_SHOULDER, P.RIGHT_SHOULDER)
        if centre is None:
            return None
        x = centre[0]
        if self._last_x is None:
            self._last_x, self._last_xt = x, t
            self.min_x = self.max_x = x
            self._start_t = t
            return None

        v = (x - self._last_x) / max(1e-3, t - self._last_xt)
        a = self.cfg.velocity_alpha
        self._vel = v if self._vel is None else a * v + (1 - a) * self._vel
        self._last_x, self._last_xt = x, t
        self.min_x = min(self.min_x, x)
        self.max_x = max(self.max_x, x)

        if abs(self._vel) < self.cfg.min_speed:
            if self.state == ShuttleState.IDLE:
                return None
            # stopped: the leg in progress ends here if it reached its boundary
            ev = self._end_traversal(x, t)
            self._enter_state(ShuttleState.IDLE)
            return ev
        direction = ShuttleState.MOVING_RIGHT if self._vel > 0 else ShuttleState.MOVING_LEFT
        if self.state == ShuttleState.IDLE:
            self._enter_state(direction)
            return None
        if direction == self.state:
            return None
        ev = self._end_traversal(x, t)
        self._enter_state(direction)
        return ev

    def _end_traversal(self, x: float, t: float) -> Optional[RepEvent]:
        span = self.max_x - self.min_x
        band = self.cfg.boundary_margin * span
        if self.state == ShuttleState.MOVING_RIGHT:
            side, near = "max", x >= self.max_x - band
        else:
            side, near = "min", x <= self.min_x + band
        if span < self.cfg.min_span or not near or side == self._last_side:
            return None
        if self._last_turn_t is not None and t - self._last_turn_t < self.cfg.debounce_s:
            return None
        split = t - (self._last_turn_t if self._last_turn_t is not None else self._start_t)
        self._last_turn_t = t
        self._last_side = side
        return self._emit(t, True, split_time=split)


# ----------------- Sit and reach -----------------

@dataclass(frozen=True)
class ReachConfig:
    reach_threshold: float = 0.35   # hip-to-wrist distance, normalized
    release_margin: float = 0.03
    min_hold_s: float = 2.0


class SitReachDetector(RepDetector):
    """APPROACH/HOLD machine: one rep per sustained reach past the threshold."""

    family = "reach"
    metric_label = "Reach"

    def __init__(self, cfg: Optional[ReachConfig] = None, debug_cb: Optional[DebugCallback] = None):
        super().__init__(ReachState.APPROACH, debug_cb)
        self.cfg = cfg or ReachConfig()
        self.reach = 0.0
        self._hold_t = 0.0
        self._max_reach = 0.0
        self._held = False

    def _step(self, landmarks: LandmarkFrame, t: float) -> Optional[RepEvent]:
        hip = visible_midpoint(landmarks, P.LEFT_HIP, P.RIGHT_HIP)
        wrist = visible_midpoint(landmarks, P.LEFT_WRIST, P.RIGHT_WRIST)
        if hip is None or wrist is None:
            return None
        reach = planar_distance(hip, wrist)
        self.reach = reach

        if self.state == ReachState.APPROACH:
            if reach > self.cfg.reach_threshold:
                self._hold_t = t
                self._max_reach = reach
                self._held = False
                self._enter_state(ReachState.HOLD)
            return None

        if reach < self.cfg.reach_threshold - self.cfg.release_margin:
            self._enter_state(ReachState.APPROACH)
            return None
        self._max_reach = max(self._max_reach, reach)
        if not self._held and t - self._hold_t >= self.cfg.min_hold_s:
            self._held = True
            return self._emit(
                t,
                True,
                down_time=self._hold_t,
                up_time=t,
                dip_duration=t - self._hold_t,
                reach_distance=self._max_reach,
            )
        return None

    def get_dip_time(self, now: float) -> float:
        if self.state == ReachState.HOLD:
            return max(0.0, now - self._hold_t)
        return 0.0


# ----------------- Variant selection -----------------

_FACTORIES: Dict[Exercise, Callable[[Optional[DebugCallback]], RepDetector]] = {
    Exercise.PUSH_UPS: lambda cb: AngleRepDetector(ANGLE_CONFIGS[Exercise.PUSH_UPS], cb),
    Exercise.PULL_UPS: lambda cb: AngleRepDetector(ANGLE_CONFIGS[Exercise.PULL_UPS], cb),
    Exercise.SIT_UPS: lambda cb: AngleRepDetector(ANGLE_CONFIGS[Exercise.SIT_UPS], cb),
    Exercise.VERTICAL_JUMP: lambda cb: JumpRepDetector(debug_cb=cb),
    Exercise.VERTICAL_BROAD_JUMP: lambda cb: JumpRepDetector(debug_cb=cb),
    Exercise.SHUTTLE_RUN: lambda cb: ShuttleRunDetector(debug_cb=cb),
    Exercise.SIT_REACH: lambda cb: SitReachDetector(debug_cb=cb),
}


def make_detector(exercise: Union[str, Exercise], debug_cb: Optional[DebugCallback] = None) -> RepDetector:
    """Build a fresh detector for one session; unknown names raise UnknownExerciseError."""
    ex = parse_exercise(exercise)
    return _FACTORIES[ex](debug_cb)
