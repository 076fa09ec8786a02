"""Tests for cropping, thumbnail sizing and encoding."""

from __future__ import annotations

import io

import pytest
from PIL import Image

from gallery_builder.cropping import crop_box, crop_image
from gallery_builder.definitions import CropInfo, ImageSize, ItemDefinition
from gallery_builder.errors import EncodingError
from gallery_builder.thumbnailing import encode_thumbnail, resize_thumbnail, thumbnail_size
from helpers import smooth_pattern


def _definition(crop: CropInfo) -> ItemDefinition:
    return ItemDefinition(md5="abc", source="https://images.example/abc.png", crops={ImageSize.FULL: crop})


def test_crop_box_is_clamped_to_image_bounds() -> None:
    definition = _definition(CropInfo(left=-10, top=5, width=50, height=500))

    assert crop_box((40, 30), definition) == (0, 5, 40, 30)


def test_empty_or_degenerate_crop_returns_full_copy() -> None:
    image = smooth_pattern(40, 30)

    whole = crop_image(image, _definition(CropInfo()))
    outside = crop_image(image, _definition(CropInfo(left=100, top=100, width=10, height=10)))

    assert whole.size == outside.size == (40, 30)
    assert whole is not image


def test_crop_image_selects_region() -> None:
    image = smooth_pattern(40, 30)

    cropped = crop_image(image, _definition(CropInfo(left=10, top=10, width=20, height=15)))

    assert cropped.size == (20, 15)
    assert cropped.getpixel((0, 0)) == image.getpixel((10, 10))
    assert image.size == (40, 30)


def test_thumbnail_is_a_quarter_of_the_target_size() -> None:
    resized = resize_thumbnail(smooth_pattern(300, 200), (600, 800), 4)

    assert resized.size == (150, 200)
    assert thumbnail_size((3, 2), 4) == (1, 1)


def test_missing_target_size_scales_the_image_itself() -> None:
    resized = resize_thumbnail(smooth_pattern(80, 40), (0, 0), 4)

    assert resized.size == (20, 10)


def test_palette_source_is_resampled_in_truecolour() -> None:
    palette = smooth_pattern(256, 256).convert("P", palette=Image.Palette.ADAPTIVE, colors=16)

    resized = resize_thumbnail(palette, (256, 256), 4)

    assert resized.mode == "RGB"
    assert resized.size == (64, 64)
    assert len(set(resized.getdata())) > 16


def test_transparent_palette_source_keeps_alpha() -> None:
    palette = smooth_pattern(64, 64).convert("P", palette=Image.Palette.ADAPTIVE, colors=8)
    palette.info["transparency"] = 0

    assert resize_thumbnail(palette, (64, 64), 4).mode == "RGBA"


def test_encode_thumbnail_produces_webp() -> None:
    image = smooth_pattern(64, 32).convert("RGBA")

    data = encode_thumbnail(image, "WEBP", 50)

    decoded = Image.open(io.BytesIO(data))
    assert decoded.format == "WEBP"
    assert decoded.size == (64, 32)


def test_encode_thumbnail_rejects_unknown_format() -> None:
    with pytest.raises(EncodingError):
        encode_thumbnail(smooth_pattern(8, 8), "NOT-A-FORMAT", 50)
