"""Geometry mapping from detector space to pixel space.

Detector space has its origin at the bottom-left with Y pointing up; pixel
space has its origin at the top-left with Y pointing down. Inputs outside
[0, 1] are not rejected and simply map outside the image.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from collections.abc import Mapping

    from numpy.typing import NDArray

    from faceparts.core.landmarks import FaceObservation, LandmarkRegion, NormalizedRect


@dataclass(frozen=True)
class PixelRect:
    """Axis-aligned rectangle in pixel coordinates (top-left origin)."""

    x: float
    y: float
    width: float
    height: float

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def max_y(self) -> float:
        return self.y + self.height

    @property
    def is_empty(self) -> bool:
        return not (self.width > 0 and self.height > 0)

    @property
    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.x, self.y, self.width, self.height))

    def intersection(self, other: PixelRect) -> PixelRect:
        """Overlap of two rectangles; an empty rect when they do not overlap."""
        x0 = max(self.x, other.x)
        y0 = max(self.y, other.y)
        x1 = min(self.max_x, other.max_x)
        y1 = min(self.max_y, other.max_y)
        return PixelRect(x=x0, y=y0, width=max(0.0, x1 - x0), height=max(0.0, y1 - y0))

    def integral(self) -> tuple[int, int, int, int]:
        """Return (left, upper, right, lower) rounded to whole pixels."""
        return (round(self.x), round(self.y), round(self.max_x), round(self.max_y))

    def enclosing(self) -> tuple[int, int, int, int]:
        """Return the smallest whole-pixel box covering this rect."""
        return (math.floor(self.x), math.floor(self.y), math.ceil(self.max_x), math.ceil(self.max_y))


def map_face_box(box: NormalizedRect, image_width: float, image_height: float) -> PixelRect:
    """Map a normalized face box onto an image of the given pixel size."""
    return PixelRect(
        x=box.x * image_width,
        y=(1 - box.y - box.height) * image_height,
        width=box.width * image_width,
        height=box.height * image_height,
    )


def map_region_points(points: NDArray[np.float64], reference: PixelRect) -> NDArray[np.float64]:
    """Map face-relative normalized points into pixel space.

    Args:
        points: (N, 2) array of normalized (x, y) points, Y up.
        reference: The face's pixel-space bounding box.

    Returns:
        (N, 2) array of pixel coordinates, Y down.
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    mapped = np.empty_like(points)
    mapped[:, 0] = reference.x + points[:, 0] * reference.width
    mapped[:, 1] = reference.y + (1 - points[:, 1]) * reference.height
    return mapped


@dataclass(frozen=True)
class MappedFace:
    """A face observation projected into pixel space."""

    rect: PixelRect
    regions: Mapping[LandmarkRegion, NDArray[np.float64]] = field(default_factory=dict)


def map_observation(observation: FaceObservation, image_width: float, image_height: float) -> MappedFace:
    rect = map_face_box(observation.bounding_box, image_width, image_height)
    return MappedFace(
        rect=rect,
        regions={name: map_region_points(points, rect) for name, points in observation.regions.items()},
    )


def bounding_rect(points: NDArray[np.float64]) -> PixelRect | None:
    """Minimal axis-aligned rect containing all points, or None if there are none."""
    points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    if len(points) == 0:
        return None
    min_x, min_y = points.min(axis=0)
    max_x, max_y = points.max(axis=0)
    return PixelRect(
        x=float(min_x),
        y=float(min_y),
        width=float(max_x - min_x),
        height=float(max_y - min_y),
    )
