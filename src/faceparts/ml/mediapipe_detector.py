"""Landmark detector backed by the MediaPipe Tasks FaceLandmarker.

Requires the ``mediapipe`` extra and a ``face_landmarker.task`` model file.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING

import mediapipe as mp
import numpy as np
from mediapipe.tasks.python import BaseOptions, vision

from faceparts.ml.detector import DetectionError
from faceparts.ml.mesh import observation_from_mesh

if TYPE_CHECKING:
    from faceparts.config import Settings
    from faceparts.core.imaging import Picture
    from faceparts.core.landmarks import FaceObservation

logger = logging.getLogger(__name__)


class MediaPipeLandmarkDetector:
    """Detects face meshes and reduces them to the five landmark regions."""

    def __init__(self, model_path: str | Path, max_faces: int = 4, min_detection_confidence: float = 0.5) -> None:
        path = Path(model_path)
        if not path.is_file():
            raise FileNotFoundError(f"FaceLandmarker model not found: {path}")

        options = vision.FaceLandmarkerOptions(
            base_options=BaseOptions(model_asset_path=str(path)),
            running_mode=vision.RunningMode.IMAGE,
            num_faces=max_faces,
            min_face_detection_confidence=min_detection_confidence,
            output_face_blendshapes=False,
            output_facial_transformation_matrixes=False,
        )
        self._landmarker = vision.FaceLandmarker.create_from_options(options)
        # FaceLandmarker graphs are not safe for concurrent detect() calls.
        self._lock = threading.Lock()
        logger.info("Loaded FaceLandmarker from %s (max_faces=%s)", path, max_faces)

    @classmethod
    def from_settings(cls, settings: Settings) -> MediaPipeLandmarkDetector:
        return cls(
            settings.landmarker_model_path,
            max_faces=settings.max_faces,
            min_detection_confidence=settings.min_detection_confidence,
        )

    @property
    def name(self) -> str:
        return "mediapipe"

    def detect(self, picture: Picture) -> list[FaceObservation]:
        rgb = np.ascontiguousarray(picture.pixels.convert("RGB"), dtype=np.uint8)
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb)
        try:
            with self._lock:
                result = self._landmarker.detect(mp_image)
        except RuntimeError as exc:
            raise DetectionError(f"FaceLandmarker failed: {exc}") from exc

        observations: list[FaceObservation] = []
        for face in result.face_landmarks:
            mesh = np.array([(lm.x, lm.y) for lm in face], dtype=np.float64)
            observation = observation_from_mesh(mesh)
            if observation is not None:
                observations.append(observation)
        return observations

    def close(self) -> None:
        self._landmarker.close()
