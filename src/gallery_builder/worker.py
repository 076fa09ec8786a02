"""Per-definition thumbnail worker: fetch, decode, fingerprint, crop, resize, encode, insert."""

from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Protocol, Union

from PIL import Image, UnidentifiedImageError

from utils.logging import get_logger

from gallery_builder.archive import ArchiveAssembler
from gallery_builder.config import Settings
from gallery_builder.cropping import crop_image
from gallery_builder.definitions import ImageSize, ItemDefinition
from gallery_builder.errors import DecodeError, EncodingError, ItemError, MissingIdentifierError
from gallery_builder.hasher import (
    CONTENT_HASH_ALGO,
    FINGERPRINT_ALGO,
    Fingerprint,
    compute_content_hash,
    compute_fingerprint,
)
from gallery_builder.thumbnailing import encode_thumbnail, resize_thumbnail

LOGGER = get_logger(__name__, extra={"component": "worker"})


class SourceFetcher(Protocol):
    def fetch(self, source: str) -> bytes: ...


@dataclass(frozen=True)
class ProcessedRecord:
    """A definition whose thumbnail made it into the archive."""

    definition: ItemDefinition
    fingerprint: Fingerprint
    width: int
    height: int
    entry_name: str
    content_hash: str = ""

    @property
    def identifier(self) -> str:
        return self.definition.md5

    @property
    def area(self) -> int:
        return self.width * self.height


@dataclass(frozen=True)
class ItemFailure:
    """A definition that was dropped, and why."""

    identifier: str
    reason: str
    message: str


ItemOutcome = Union[ProcessedRecord, ItemFailure]


def decode_image(data: bytes, identifier: str | None = None) -> Image.Image:
    """Decode ``data`` into a fully loaded PIL image."""

    if not data:
        raise DecodeError("empty response body", identifier)
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
        raise DecodeError(f"invalid image data: {exc}", identifier) from exc
    return image


class ThumbnailWorker:
    """Turn one :class:`ItemDefinition` into a thumbnail entry and a :class:`ProcessedRecord`."""

    def __init__(self, fetcher: SourceFetcher, archive: ArchiveAssembler, settings: Settings) -> None:
        self._fetcher = fetcher
        self._archive = archive
        self._settings = settings

    def process(self, definition: ItemDefinition) -> ItemOutcome:
        """Process ``definition``; every failure comes back as an :class:`ItemFailure`."""

        identifier = definition.md5
        try:
            return self._process(definition)
        except ItemError as exc:
            LOGGER.warning(
                "item_failed",
                extra={"md5": identifier, "source": definition.source, "reason": exc.reason, "error": str(exc)},
            )
            return ItemFailure(identifier=identifier, reason=exc.reason, message=str(exc))
        except Exception as exc:  # pragma: no cover - defensive
            LOGGER.exception(
                "item_failed_unexpected",
                extra={"md5": identifier, "source": definition.source, "error": str(exc)},
            )
            return ItemFailure(identifier=identifier, reason="unexpected", message=str(exc))

    def _process(self, definition: ItemDefinition) -> ProcessedRecord:
        identifier = definition.md5 or None
        thumb_cfg = self._settings.thumbnail

        raw = self._fetcher.fetch(definition.source)
        source = decode_image(raw, identifier)

        # Fingerprint the full source so similarity ignores the crop.
        fingerprint = compute_fingerprint(source)

        try:
            cropped = crop_image(source, definition, ImageSize.FULL)
        except (OSError, ValueError) as exc:
            raise EncodingError(f"crop failed: {exc}", identifier) from exc

        resized = resize_thumbnail(cropped, definition.target_size, thumb_cfg.scale_divisor)
        encoded = encode_thumbnail(resized, thumb_cfg.format, thumb_cfg.quality)

        if not definition.md5:
            raise MissingIdentifierError(f"definition for {definition.source} has no md5")

        entry_name = definition.entry_name(thumb_cfg.extension)
        self._archive.insert(entry_name, encoded)

        content_hash = compute_content_hash(raw)
        LOGGER.info(
            "item_added",
            extra={
                "md5": definition.md5,
                "entry": entry_name,
                "size": source.size,
                "content_hash": content_hash,
                "content_hash_algo": CONTENT_HASH_ALGO,
                "fingerprint": fingerprint.hex(),
                "fingerprint_algo": FINGERPRINT_ALGO,
            },
        )
        return ProcessedRecord(
            definition=definition,
            fingerprint=fingerprint,
            width=source.width,
            height=source.height,
            entry_name=entry_name,
            content_hash=content_hash,
        )


__all__ = ["ItemFailure", "ItemOutcome", "ProcessedRecord", "SourceFetcher", "ThumbnailWorker", "decode_image"]
