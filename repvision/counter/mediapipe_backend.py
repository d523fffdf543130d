from __future__ import annotations
from typing import List, Optional

import cv2
import mediapipe as mp
import numpy as np

from repvision.config import Settings
from repvision.counter.estimator import PoseEstimator
from repvision.counter.pose_core import Landmark, landmarks_from_mediapipe

mp_pose = mp.solutions.pose


class MediaPipePoseEstimator(PoseEstimator):
    """BlazePose (mediapipe) behind the async PoseEstimator contract."""

    def __init__(self, settings: Optional[Settings] = None):
        super().__init__()
        s = settings or Settings.from_env()
        self.pose = mp_pose.Pose(
            static_image_mode=False,
            model_complexity=s.model_complexity,
            smooth_landmarks=True,
            enable_segmentation=False,
            min_detection_confidence=s.min_detection_confidence,
            min_tracking_confidence=s.min_tracking_confidence,
        )

    def _detect(self, frame: np.ndarray) -> Optional[List[Landmark]]:
        image = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        res = self.pose.process(image)
        if not res.pose_landmarks:
            return None
        return landmarks_from_mediapipe(res.pose_landmarks.landmark)

    def _release(self):
        self.pose.close()
