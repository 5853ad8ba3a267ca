"""Image values and decoding.

Handles format detection, decoding, EXIF orientation, color mode
normalization and size validation. Every transform in this package returns
a new ``Picture``; pixel buffers are never modified once wrapped.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass

from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger(__name__)

_BASE_DPI = 72.0


class ImageDecodeError(ValueError):
    """The input has no usable pixel representation."""


@dataclass(frozen=True)
class Picture:
    """An immutable pixel buffer with a resolution scale factor.

    ``scale`` is the number of pixels per logical point, so a 3x capture has
    ``scale == 3.0``. Geometry is always computed in pixels.
    """

    pixels: Image.Image
    scale: float = 1.0

    @property
    def width(self) -> int:
        return self.pixels.width

    @property
    def height(self) -> int:
        return self.pixels.height

    @property
    def size(self) -> tuple[int, int]:
        return self.pixels.size

    def derive(self, pixels: Image.Image) -> Picture:
        """Wrap a new buffer produced from this picture, keeping its density."""
        if "dpi" in self.pixels.info:
            pixels.info["dpi"] = self.pixels.info["dpi"]
        return Picture(pixels=pixels, scale=self.scale)


def _normalize_mode(image: Image.Image) -> Image.Image:
    if image.mode in ("RGB", "RGBA"):
        return image
    has_alpha = image.mode in ("LA", "PA") or "transparency" in image.info
    return image.convert("RGBA" if has_alpha else "RGB")


def decode_image(image_bytes: bytes, *, scale: float = 1.0, max_pixels: int | None = None) -> Picture:
    """Decode raw image bytes into an upright RGB or RGBA picture.

    Args:
        image_bytes: Raw file bytes (any format Pillow can read).
        scale: Pixels per logical point of the source.
        max_pixels: Reject images with more pixels than this.

    Returns:
        Picture with EXIF orientation already applied.

    Raises:
        ImageDecodeError: If the bytes cannot be decoded or exceed size limits.
    """
    if not image_bytes:
        raise ImageDecodeError("Empty image data")

    try:
        with Image.open(io.BytesIO(image_bytes)) as opened:
            width, height = opened.size
            if max_pixels is not None and width * height > max_pixels:
                raise ImageDecodeError(f"Image has {width * height} pixels, limit is {max_pixels}")
            opened.load()
            upright = ImageOps.exif_transpose(opened)
            dpi = opened.info.get("dpi")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise ImageDecodeError(f"Cannot decode image: {exc}") from exc

    pixels = _normalize_mode(upright)
    if dpi is not None:
        pixels.info["dpi"] = dpi
    logger.debug("Decoded %sx%s image (mode=%s, scale=%s)", pixels.width, pixels.height, pixels.mode, scale)
    return Picture(pixels=pixels, scale=scale)


def encode_png(picture: Picture) -> bytes:
    """Encode a picture as PNG, recording its density as DPI."""
    buffer = io.BytesIO()
    dpi = _BASE_DPI * picture.scale
    picture.pixels.save(buffer, format="PNG", dpi=(dpi, dpi))
    return buffer.getvalue()
