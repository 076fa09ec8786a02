"""Synthetic images, an in-memory fetcher and definition builders shared by the tests."""

from __future__ import annotations

import io

import numpy as np
from PIL import Image

from gallery_builder.definitions import CropInfo, ImageSize, ItemDefinition
from gallery_builder.errors import NetworkError


def smooth_pattern(width: int, height: int) -> Image.Image:
    """Band-limited RGB pattern that survives resampling almost unchanged."""

    ys, xs = np.mgrid[0:height, 0:width].astype(np.float64)
    u = xs / max(width - 1, 1)
    v = ys / max(height - 1, 1)
    red = 128 + 90 * np.sin(2 * np.pi * u) * np.cos(np.pi * v)
    green = 60 + 150 * u * v
    blue = 200 - 120 * v
    pixels = np.stack([red, green, blue], axis=-1)
    return Image.fromarray(np.clip(pixels, 0, 255).astype(np.uint8), mode="RGB")


def noise_image(width: int, height: int, seed: int = 7) -> Image.Image:
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
    return Image.fromarray(pixels, mode="RGB")


def encode_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class FakeFetcher:
    """In-memory fetcher keyed by source URI."""

    def __init__(self, payloads: dict[str, bytes] | None = None) -> None:
        self.payloads = dict(payloads or {})
        self.calls: list[str] = []

    def fetch(self, source: str) -> bytes:
        self.calls.append(source)
        if source not in self.payloads:
            raise NetworkError(f"GET {source} returned HTTP 404")
        return self.payloads[source]


def make_definition(md5: str, width: int = 80, height: int = 40, **kwargs) -> ItemDefinition:
    crop = CropInfo(final_width=width, final_height=height)
    return ItemDefinition(
        md5=md5,
        source=kwargs.pop("source", f"https://images.example/{md5 or 'anonymous'}.png"),
        crops={ImageSize.FULL: crop},
        **kwargs,
    )


