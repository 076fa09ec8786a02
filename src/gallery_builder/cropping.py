"""Crop provider: derives the presentation region of a source image."""

from __future__ import annotations

from PIL import Image

from gallery_builder.definitions import ImageSize, ItemDefinition


def crop_box(image_size: tuple[int, int], definition: ItemDefinition, size: ImageSize = ImageSize.FULL) -> tuple[int, int, int, int]:
    """Return the ``(left, top, right, bottom)`` box clamped to the image bounds."""

    width, height = image_size
    crop = definition.crop(size)

    if crop.width <= 0 or crop.height <= 0:
        return 0, 0, width, height

    left = min(max(crop.left, 0), width)
    top = min(max(crop.top, 0), height)
    right = min(max(crop.left + crop.width, 0), width)
    bottom = min(max(crop.top + crop.height, 0), height)

    if right <= left or bottom <= top:
        return 0, 0, width, height
    return left, top, right, bottom


def crop_image(image: Image.Image, definition: ItemDefinition, size: ImageSize = ImageSize.FULL) -> Image.Image:
    """Return the region of ``image`` that ``definition`` presents at ``size``.

    The input image is never modified; a degenerate or empty crop yields a
    copy of the whole image.
    """

    box = crop_box(image.size, definition, size)
    if box == (0, 0, image.width, image.height):
        return image.copy()
    return image.crop(box)


__all__ = ["crop_box", "crop_image"]
