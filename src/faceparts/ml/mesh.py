"""Conversion from MediaPipe face mesh points to face observations.

MediaPipe reports each mesh point normalized to the whole image with Y
pointing down. Observations want a face box normalized to the image and
region points normalized to that box, both with Y pointing up.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from faceparts.core.landmarks import FaceObservation, LandmarkRegion, NormalizedRect, as_point_array

if TYPE_CHECKING:
    from numpy.typing import NDArray

# Ordered outlines over the 468-point mesh. Left/right are the subject's.
MESH_REGIONS: dict[LandmarkRegion, tuple[int, ...]] = {
    LandmarkRegion.FACE_CONTOUR: (
        10, 338, 297, 332, 284, 251, 389, 356, 454, 323, 361, 288, 397, 365, 379, 378, 400, 377,
        152, 148, 176, 149, 150, 136, 172, 58, 132, 93, 234, 127, 162, 21, 54, 103, 67, 109,
    ),
    LandmarkRegion.LEFT_EYE: (263, 466, 388, 387, 386, 385, 384, 398, 362, 382, 381, 380, 374, 373, 390, 249),
    LandmarkRegion.RIGHT_EYE: (33, 246, 161, 160, 159, 158, 157, 173, 133, 155, 154, 153, 145, 144, 163, 7),
    LandmarkRegion.NOSE: (
        168, 193, 245, 188, 174, 236, 198, 209, 49, 64, 98, 97, 2,
        326, 327, 294, 279, 429, 420, 456, 399, 412, 465, 417,
    ),
    LandmarkRegion.OUTER_LIPS: (
        61, 185, 40, 39, 37, 0, 267, 269, 270, 409, 291,
        375, 321, 405, 314, 17, 84, 181, 91, 146,
    ),
}


def observation_from_mesh(mesh: NDArray[np.float64]) -> FaceObservation | None:
    """Build an observation from one face's (N, 2) image-normalized mesh points.

    Returns None when the mesh spans no area.
    """
    mesh = np.asarray(mesh, dtype=np.float64).reshape(-1, 2)
    if len(mesh) == 0:
        return None

    min_x, min_y = mesh.min(axis=0)
    max_x, max_y = mesh.max(axis=0)
    width = max_x - min_x
    height = max_y - min_y
    if width <= 0 or height <= 0:
        return None

    box = NormalizedRect(x=float(min_x), y=float(1 - max_y), width=float(width), height=float(height))

    regions: dict[LandmarkRegion, NDArray[np.float64]] = {}
    for name, indices in MESH_REGIONS.items():
        if max(indices) >= len(mesh):
            continue
        selected = mesh[list(indices)]
        relative = np.column_stack(
            (
                (selected[:, 0] - min_x) / width,
                (max_y - selected[:, 1]) / height,
            )
        )
        regions[name] = as_point_array(relative)

    return FaceObservation(bounding_box=box, regions=regions)
