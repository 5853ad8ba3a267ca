"""Overlay drawing and per-region cropping.

Every function here is a pure function of its inputs: the source picture is
never drawn on, and each call returns a new ``Picture`` (or None when the
region's geometry is degenerate).
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, ImageDraw

from faceparts.core.geometry import PixelRect, bounding_rect
from faceparts.core.landmarks import REGION_ORDER

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

    from faceparts.core.geometry import MappedFace
    from faceparts.core.imaging import Picture

logger = logging.getLogger(__name__)

STROKE_COLOR: tuple[int, int, int] = (0, 255, 0)
STROKE_WIDTH_POINTS: float = 2.0


class CropMode(StrEnum):
    BOUNDING_BOX = "bbox"
    POLYGON = "polygon"


def _as_xy(points: NDArray[np.float64]) -> list[tuple[float, float]]:
    return [(float(x), float(y)) for x, y in points]


def _stroke_width(picture: Picture) -> int:
    return max(1, round(STROKE_WIDTH_POINTS * picture.scale))


def _stroke_rect(draw: ImageDraw.ImageDraw, rect: PixelRect, width: int) -> None:
    # Pillow requires x1 >= x0 and y1 >= y0.
    x0, x1 = sorted((rect.x, rect.max_x))
    y0, y1 = sorted((rect.y, rect.max_y))
    draw.rectangle([(x0, y0), (x1, y1)], outline=STROKE_COLOR, width=width)


def _stroke_closed_path(draw: ImageDraw.ImageDraw, points: NDArray[np.float64], width: int) -> None:
    xy = _as_xy(points)
    if not xy:
        return
    draw.line([*xy, xy[0]], fill=STROKE_COLOR, width=width, joint="curve")


def draw_composite(picture: Picture, faces: Sequence[MappedFace]) -> Picture:
    """Draw every face box and region outline onto one copy of the picture."""
    canvas = picture.pixels.copy()
    draw = ImageDraw.Draw(canvas)
    width = _stroke_width(picture)

    for face in faces:
        if face.rect.is_finite:
            _stroke_rect(draw, face.rect, width)
        for name in REGION_ORDER:
            points = face.regions.get(name)
            if points is not None and np.isfinite(points).all():
                _stroke_closed_path(draw, points, width)

    return picture.derive(canvas)


def crop_rect(picture: Picture, rect: PixelRect) -> Picture | None:
    """Crop to ``rect`` clamped to the picture's own bounds."""
    bounds = PixelRect(x=0.0, y=0.0, width=float(picture.width), height=float(picture.height))
    left, upper, right, lower = rect.intersection(bounds).integral()
    if right <= left or lower <= upper:
        return None
    return picture.derive(picture.pixels.crop((left, upper, right, lower)))


def crop_bounding_box(picture: Picture, points: NDArray[np.float64]) -> Picture | None:
    """Crop the minimal axis-aligned rectangle around a region's points."""
    rect = bounding_rect(points)
    if rect is None or rect.is_empty or not rect.is_finite:
        return None
    return crop_rect(picture, rect)


def crop_polygon(
    picture: Picture,
    points: NDArray[np.float64],
    max_pixels: int | None = None,
) -> Picture | None:
    """Crop a region's polygon, leaving everything outside it transparent.

    The output is sized to the polygon's bounding rectangle at the source's
    pixel resolution. Areas of the rectangle that fall outside the source
    image are transparent as well.

    Args:
        picture: Source picture.
        points: (N, 2) polygon in pixel coordinates.
        max_pixels: Largest canvas to allocate. Defaults to Pillow's
            ``Image.MAX_IMAGE_PIXELS``.

    Returns:
        The masked crop, or None for empty, non-finite or oversized geometry.
    """
    rect = bounding_rect(points)
    if rect is None or rect.is_empty or not rect.is_finite:
        return None

    left, upper, right, lower = rect.enclosing()
    size = (right - left, lower - upper)
    limit = Image.MAX_IMAGE_PIXELS if max_pixels is None else max_pixels
    if limit is not None and size[0] * size[1] > limit:
        logger.debug("Polygon canvas %dx%d exceeds %d pixels", size[0], size[1], limit)
        return None

    source = picture.pixels if picture.pixels.mode == "RGBA" else picture.pixels.convert("RGBA")
    # Pillow fills out-of-bounds crop areas with zeros, i.e. transparent.
    region = source.crop((left, upper, right, lower))

    mask = Image.new("L", size, 0)
    translated = [(x - left, y - upper) for x, y in _as_xy(points)]
    ImageDraw.Draw(mask).polygon(translated, fill=255)

    clear = Image.new("RGBA", size, (0, 0, 0, 0))
    return picture.derive(Image.composite(region, clear, mask))


def crop_region(
    picture: Picture,
    points: NDArray[np.float64],
    mode: CropMode,
    max_pixels: int | None = None,
) -> Picture | None:
    if mode == CropMode.POLYGON:
        return crop_polygon(picture, points, max_pixels)
    return crop_bounding_box(picture, points)
