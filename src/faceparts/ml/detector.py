"""Face landmark detector protocol.

Implementations: MediaPipe FaceLandmarker (optional extra).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from faceparts.config import Settings
    from faceparts.core.imaging import Picture
    from faceparts.core.landmarks import FaceObservation


class DetectionError(RuntimeError):
    """The detector failed to run on an image."""


class LandmarkDetector(Protocol):
    """Protocol for face landmark detectors."""

    @property
    def name(self) -> str:
        """Return the detector identifier string."""
        ...

    def detect(self, picture: Picture) -> list[FaceObservation]:
        """Detect faces and their landmark regions.

        Args:
            picture: Upright picture; orientation is already normalized.

        Returns:
            One observation per face, possibly empty. Boxes are normalized to
            the whole image and region points to each face's box, Y up.

        Raises:
            DetectionError: If the detector cannot process the image.
        """
        ...

    def close(self) -> None:
        """Release backend resources."""
        ...


def create_detector(settings: Settings) -> LandmarkDetector:
    """Instantiate the detector backend selected in settings."""
    if settings.detector == "mediapipe":
        # mediapipe is an optional extra.
        from faceparts.ml.mediapipe_detector import MediaPipeLandmarkDetector

        return MediaPipeLandmarkDetector.from_settings(settings)
    raise ValueError(f"Unknown detector: {settings.detector}")
