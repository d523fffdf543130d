from __future__ import annotations


class RepVisionError(Exception):
    """Base class for errors raised by repvision."""


class ConfigurationError(RepVisionError):
    """Raised before any processing starts; no session or result is created."""


class UnknownExerciseError(ConfigurationError):
    def __init__(self, exercise: str):
        self.exercise = exercise
        super().__init__(f"unknown exercise: {exercise!r}")


class InvalidVideoError(ConfigurationError):
    pass


class VideoEncodingError(RepVisionError):
    pass


class MissingGhostTargetError(ConfigurationError):
    pass
