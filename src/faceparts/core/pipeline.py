"""Landmark detection to face parts pipeline.

Flow:
    bytes -> decode_image -> detector.detect -> map_observation
          -> draw_composite (once per call) + per-face crops -> list[FaceParts]

Decode failures, detector failures and "no faces" all collapse into an empty
list; they are only told apart in the logs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from faceparts.core.geometry import map_observation
from faceparts.core.imaging import ImageDecodeError, decode_image
from faceparts.core.landmarks import REGION_ORDER, LandmarkRegion
from faceparts.core.render import CropMode, crop_rect, crop_region, draw_composite
from faceparts.ml.detector import DetectionError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from faceparts.core.geometry import MappedFace, PixelRect
    from faceparts.core.imaging import Picture
    from faceparts.core.landmarks import FaceObservation
    from faceparts.ml.detector import LandmarkDetector
    from faceparts.ml.inference import InferencePool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FaceParts:
    """Crops for one detected face.

    ``original_with_drawings`` is the same object for every face produced by
    one call. Each crop is None when its region was not detected or its
    geometry was degenerate.
    """

    original_with_drawings: Picture
    face_rect: PixelRect
    face: Picture | None = None
    face_contour: Picture | None = None
    left_eye: Picture | None = None
    right_eye: Picture | None = None
    nose: Picture | None = None
    outer_lips: Picture | None = None

    def region(self, name: LandmarkRegion) -> Picture | None:
        crop: Picture | None = getattr(self, LandmarkRegion(name).value)
        return crop


def _crop_face(
    picture: Picture,
    composite: Picture,
    mapped: MappedFace,
    crop_mode: CropMode,
    index: int,
    max_pixels: int | None,
) -> FaceParts:
    crops: dict[str, Picture | None] = {}
    for name in REGION_ORDER:
        points = mapped.regions.get(name)
        if points is None:
            crops[name.value] = None
            continue
        crop = crop_region(picture, points, crop_mode, max_pixels)
        if crop is None:
            logger.debug("Face %d: %s region is degenerate, skipping crop", index, name)
        crops[name.value] = crop

    face = None if mapped.rect.is_empty or not mapped.rect.is_finite else crop_rect(picture, mapped.rect)
    return FaceParts(original_with_drawings=composite, face_rect=mapped.rect, face=face, **crops)


def build_face_parts(
    picture: Picture,
    observations: Sequence[FaceObservation],
    crop_mode: CropMode = CropMode.BOUNDING_BOX,
    max_pixels: int | None = None,
) -> list[FaceParts]:
    """Turn detector observations into face parts for ``picture``.

    Draws a single composite with every face's outlines, then crops each
    face's regions from the undrawn source. ``max_pixels`` caps the canvas
    of a polygon crop; larger regions come back as None.
    """
    if not observations:
        logger.info("No faces found in %sx%s image", picture.width, picture.height)
        return []

    mapped = [map_observation(obs, picture.width, picture.height) for obs in observations]
    composite = draw_composite(picture, mapped)
    mode = CropMode(crop_mode)
    return [_crop_face(picture, composite, face, mode, i, max_pixels) for i, face in enumerate(mapped)]


def detect_face_parts(
    picture: Picture,
    detector: LandmarkDetector,
    crop_mode: CropMode = CropMode.BOUNDING_BOX,
    max_pixels: int | None = None,
) -> list[FaceParts]:
    """Run ``detector`` on ``picture`` and build face parts, never raising on detector failure."""
    try:
        observations = detector.detect(picture)
    except DetectionError as exc:
        logger.warning("Detector %s failed: %s", detector.name, exc)
        return []
    except Exception:
        logger.exception("Detector %s raised unexpectedly", detector.name)
        return []

    logger.debug("Detector %s returned %d face(s)", detector.name, len(observations))
    return build_face_parts(picture, observations, crop_mode, max_pixels)


def extract_face_parts(
    image_bytes: bytes,
    detector: LandmarkDetector,
    crop_mode: CropMode = CropMode.BOUNDING_BOX,
    *,
    scale: float = 1.0,
    max_pixels: int | None = None,
) -> tuple[Picture | None, list[FaceParts]]:
    """Decode ``image_bytes`` and run the full pipeline.

    Returns:
        The decoded picture (None if decoding failed) and the face parts.
    """
    try:
        picture = decode_image(image_bytes, scale=scale, max_pixels=max_pixels)
    except ImageDecodeError as exc:
        logger.warning("Image decode failed: %s", exc)
        return None, []
    return picture, detect_face_parts(picture, detector, crop_mode, max_pixels)


class FacePartsExtractor:
    """Asynchronous front end: runs the pipeline on the worker pool.

    Each call resolves exactly once with a (possibly empty) list. Only pool
    admission errors propagate.
    """

    def __init__(
        self,
        detector: LandmarkDetector,
        pool: InferencePool,
        crop_mode: CropMode = CropMode.BOUNDING_BOX,
        max_pixels: int | None = None,
    ) -> None:
        self._detector = detector
        self._pool = pool
        self._crop_mode = crop_mode
        self._max_pixels = max_pixels

    @property
    def detector(self) -> LandmarkDetector:
        return self._detector

    async def extract(self, picture: Picture, crop_mode: CropMode | None = None) -> list[FaceParts]:
        """Detect and crop faces in an already decoded picture.

        Raises:
            TimeoutError: If the worker pool has no free slot in time.
        """
        mode = crop_mode or self._crop_mode
        return await self._pool.run(detect_face_parts, picture, self._detector, mode, self._max_pixels)

    async def extract_bytes(
        self,
        image_bytes: bytes,
        crop_mode: CropMode | None = None,
        scale: float = 1.0,
    ) -> tuple[Picture | None, list[FaceParts]]:
        """Decode, detect and crop on the worker pool.

        Raises:
            TimeoutError: If the worker pool has no free slot in time.
        """
        mode = crop_mode or self._crop_mode
        return await self._pool.run(self._extract_blocking, image_bytes, mode, scale)

    def _extract_blocking(
        self, image_bytes: bytes, crop_mode: CropMode, scale: float
    ) -> tuple[Picture | None, list[FaceParts]]:
        return extract_face_parts(
            image_bytes,
            self._detector,
            crop_mode,
            scale=scale,
            max_pixels=self._max_pixels,
        )
