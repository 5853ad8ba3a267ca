"""Detector-side data model: normalized face boxes and landmark regions.

All coordinates here follow the detector convention: fractional values in
[0, 1], origin bottom-left, Y axis pointing up.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from numpy.typing import NDArray


class LandmarkRegion(StrEnum):
    FACE_CONTOUR = "face_contour"
    LEFT_EYE = "left_eye"
    RIGHT_EYE = "right_eye"
    NOSE = "nose"
    OUTER_LIPS = "outer_lips"


# Drawing order for composite overlays.
REGION_ORDER: tuple[LandmarkRegion, ...] = (
    LandmarkRegion.FACE_CONTOUR,
    LandmarkRegion.LEFT_EYE,
    LandmarkRegion.RIGHT_EYE,
    LandmarkRegion.NOSE,
    LandmarkRegion.OUTER_LIPS,
)


@dataclass(frozen=True)
class NormalizedRect:
    """Face bounding box relative to the whole image (Y up)."""

    x: float
    y: float
    width: float
    height: float


def as_point_array(points: Iterable[tuple[float, float]] | NDArray[np.float64]) -> NDArray[np.float64]:
    """Coerce a point sequence into a read-only (N, 2) float64 array."""
    array = np.array(points, dtype=np.float64)
    if array.size == 0:
        array = np.empty((0, 2), dtype=np.float64)
    if array.ndim != 2 or array.shape[1] != 2:
        raise ValueError(f"Expected a sequence of (x, y) points, got shape {array.shape}")
    array.setflags(write=False)
    return array


@dataclass(frozen=True)
class FaceObservation:
    """One detected face: its box plus whichever landmark regions were found.

    Region points are normalized against the face's own bounding box, not
    the whole image. A missing key means the detector found no points for
    that region, which is not an error.
    """

    bounding_box: NormalizedRect
    regions: Mapping[LandmarkRegion, NDArray[np.float64]] = field(default_factory=dict)

    def region(self, name: LandmarkRegion) -> NDArray[np.float64] | None:
        return self.regions.get(name)

    @classmethod
    def from_points(
        cls,
        bounding_box: NormalizedRect,
        regions: Mapping[LandmarkRegion | str, Iterable[tuple[float, float]]],
    ) -> FaceObservation:
        """Build an observation from plain (x, y) tuples keyed by region name."""
        return cls(
            bounding_box=bounding_box,
            regions={LandmarkRegion(name): as_point_array(points) for name, points in regions.items()},
        )
