"""Content and perceptual hashing helpers for gallery images."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

import numpy as np
import xxhash
from PIL import Image, ImageFilter

from utils.logging import get_logger

LOGGER = get_logger(__name__)

CONTENT_HASH_ALGO: Final[str] = "xxhash64-v1"
FINGERPRINT_ALGO: Final[str] = "radial-variance-v1"

_CANONICAL_SIZE: Final[int] = 128
_BLUR_SIGMA: Final[float] = 1.0
_ANGLES: Final[int] = 180
_COEFFICIENTS: Final[int] = 40
_DCT_MATRIX: np.ndarray | None = None


def _get_dct_matrix(size: int) -> np.ndarray:
    """Return a cached orthonormal DCT-II transform matrix of the given size."""

    global _DCT_MATRIX
    if _DCT_MATRIX is not None and _DCT_MATRIX.shape == (size, size):
        return _DCT_MATRIX

    n = np.arange(size, dtype=np.float64)
    k = n[:, None]
    factor = np.pi / size

    mat = np.cos((2.0 * n + 1.0) * k * factor)
    mat[0, :] *= np.sqrt(1.0 / size)
    mat[1:, :] *= np.sqrt(2.0 / size)

    _DCT_MATRIX = mat
    return mat


def _angle_bins(size: int) -> np.ndarray:
    coords = np.arange(size, dtype=np.float64) - (size - 1) / 2.0
    ys, xs = np.meshgrid(coords, coords, indexing="ij")
    angles = np.mod(np.arctan2(ys, xs), np.pi)
    bins = np.floor(angles * _ANGLES / np.pi).astype(np.int64)
    return np.clip(bins, 0, _ANGLES - 1).ravel()


_BINS: Final[np.ndarray] = _angle_bins(_CANONICAL_SIZE)


@dataclass(frozen=True)
class Fingerprint:
    """Fixed-size perceptual digest of an image."""

    coefficients: bytes

    @property
    def vector(self) -> np.ndarray:
        return np.frombuffer(self.coefficients, dtype=np.uint8)

    def hex(self) -> str:
        return self.coefficients.hex()


def compute_content_hash(data: bytes) -> str:
    """Return the xxhash64 of ``data`` as a 16-character hexadecimal string."""

    return f"{xxhash.xxh64(data).intdigest():016x}"


def compute_fingerprint(image: Image.Image) -> Fingerprint:
    """Compute the radial-variance fingerprint of an image.

    - Convert to grayscale, resample to 128×128 and blur with σ=1, so the
      digest does not depend on the source resolution.
    - For each of 180 angular bins about the centre (angle modulo π), take
      the variance of the pixel intensities falling in that bin.
    - Apply a DCT-II to the 180 variances and keep coefficients 1..40.
    - Min-max scale the coefficients to ``uint8``.

    Args:
        image: PIL Image instance to fingerprint.

    Returns:
        A 40-byte :class:`Fingerprint`.
    """

    gray = image.convert("L").resize((_CANONICAL_SIZE, _CANONICAL_SIZE), resample=Image.Resampling.LANCZOS)
    gray = gray.filter(ImageFilter.GaussianBlur(radius=_BLUR_SIGMA))
    pixels = np.asarray(gray, dtype=np.float64).ravel()

    counts = np.bincount(_BINS, minlength=_ANGLES).astype(np.float64)
    sums = np.bincount(_BINS, weights=pixels, minlength=_ANGLES)
    squares = np.bincount(_BINS, weights=pixels * pixels, minlength=_ANGLES)
    safe_counts = np.maximum(counts, 1.0)
    means = sums / safe_counts
    variances = np.maximum(squares / safe_counts - means * means, 0.0)

    dct = _get_dct_matrix(_ANGLES) @ variances
    coeffs = dct[1 : _COEFFICIENTS + 1]

    low = float(coeffs.min())
    high = float(coeffs.max())
    if high - low <= 0.0:
        scaled = np.zeros(_COEFFICIENTS, dtype=np.uint8)
    else:
        scaled = np.rint((coeffs - low) * 255.0 / (high - low)).astype(np.uint8)

    return Fingerprint(coefficients=scaled.tobytes())


def cross_correlation(lhs: Fingerprint, rhs: Fingerprint) -> float:
    """Return the peak circular cross-correlation of two fingerprints in ``[0, 1]``.

    Operands are put in a canonical order first so that swapping them yields
    exactly the same floating point result.
    """

    if lhs.coefficients == rhs.coefficients:
        return 1.0
    if lhs.coefficients > rhs.coefficients:
        lhs, rhs = rhs, lhs

    x = lhs.vector.astype(np.float64)
    y = rhs.vector.astype(np.float64)
    if x.shape != y.shape:
        LOGGER.error("fingerprint_shape_mismatch", extra={"lhs": x.shape[0], "rhs": y.shape[0]})
        return 0.0

    xc = x - x.mean()
    yc = y - y.mean()
    denominator = float(np.sqrt(np.dot(xc, xc) * np.dot(yc, yc)))
    if denominator == 0.0:
        return 0.0

    peak = 0.0
    for shift in range(x.shape[0]):
        value = float(np.dot(xc, np.roll(yc, shift))) / denominator
        if value > peak:
            peak = value

    return min(peak, 1.0)


__all__ = [
    "CONTENT_HASH_ALGO",
    "FINGERPRINT_ALGO",
    "Fingerprint",
    "compute_content_hash",
    "compute_fingerprint",
    "cross_correlation",
]
