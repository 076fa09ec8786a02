"""Thumbnail resize and encode helpers."""

from __future__ import annotations

import io

from PIL import Image
from PIL.Image import Resampling

from utils.logging import get_logger

from gallery_builder.errors import EncodingError

LOGGER = get_logger(__name__, extra={"component": "thumbnailing"})


def _get_resample_filter() -> Resampling:
    """Return the high-quality resample filter used for downscaling."""

    return Resampling.LANCZOS


def _resample_ready(image: Image.Image) -> Image.Image:
    """Convert palette and bilevel images so the resample filter is honoured."""

    if image.mode in ("RGB", "RGBA", "L"):
        return image
    if image.mode.endswith("A") or "transparency" in image.info:
        return image.convert("RGBA")
    return image.convert("RGB")


def thumbnail_size(target_size: tuple[int, int], divisor: int) -> tuple[int, int]:
    """Return ``target_size`` scaled down by ``divisor`` on each axis, never below 1×1."""

    width, height = target_size
    safe_divisor = max(1, int(divisor))
    return max(1, int(width) // safe_divisor), max(1, int(height) // safe_divisor)


def resize_thumbnail(image: Image.Image, target_size: tuple[int, int], divisor: int) -> Image.Image:
    """Resize ``image`` to ``target_size / divisor``.

    A definition without a usable target size falls back to the image's own
    dimensions, so the thumbnail is still a ``1/divisor`` scale copy.
    """

    if target_size[0] <= 0 or target_size[1] <= 0:
        target_size = image.size

    size = thumbnail_size(target_size, divisor)
    try:
        return _resample_ready(image).resize(size, resample=_get_resample_filter())
    except (OSError, ValueError) as exc:
        raise EncodingError(f"resize to {size[0]}x{size[1]} failed: {exc}") from exc


def encode_thumbnail(image: Image.Image, fmt: str, quality: int) -> bytes:
    """Encode ``image`` in a lossy ``fmt`` at ``quality`` and return the bytes."""

    if image.mode not in ("RGB", "L"):
        image = image.convert("RGB")

    buffer = io.BytesIO()
    try:
        image.save(buffer, format=fmt, quality=quality)
    except (OSError, ValueError, KeyError) as exc:
        LOGGER.error(
            "thumbnail_encode_error",
            extra={"format": fmt, "quality": quality, "size": image.size, "error": str(exc)},
        )
        raise EncodingError(f"{fmt} encode failed: {exc}") from exc

    data = buffer.getvalue()
    if not data:
        raise EncodingError(f"{fmt} encoder produced no data")
    return data


__all__ = ["encode_thumbnail", "resize_thumbnail", "thumbnail_size"]
