"""Error taxonomy for the gallery build.

Per-item errors (:class:`ItemError` subclasses) abort a single definition and
are reported as an item failure; everything else is fatal to the run.
"""

from __future__ import annotations


class GalleryError(Exception):
    """Base class for all gallery build errors."""


class ItemError(GalleryError):
    """An error that only affects the processing of one definition."""

    reason: str = "item_error"

    def __init__(self, message: str, identifier: str | None = None) -> None:
        super().__init__(message)
        self.identifier = identifier


class NetworkError(ItemError):
    """Fetching the source bytes failed (timeout, non-2xx, connection error)."""

    reason = "network"


class DecodeError(ItemError):
    """The fetched bytes are not a decodable image."""

    reason = "decode"


class MissingIdentifierError(ItemError):
    """The definition has no content identifier to name its archive entry."""

    reason = "missing_identifier"


class EncodingError(ItemError):
    """Cropping, resizing or re-encoding the thumbnail failed."""

    reason = "encoding"


class EnrichmentError(GalleryError):
    """Tag enrichment gave up after exhausting its retry budget."""


class ArchiveError(GalleryError):
    """The output archive was misused or its manifest diverged from its entries."""


class ConfigError(GalleryError):
    """Settings contain values the pipeline cannot run with."""


class DefinitionError(GalleryError):
    """The definition store could not be read."""


__all__ = [
    "ArchiveError",
    "ConfigError",
    "DecodeError",
    "DefinitionError",
    "EncodingError",
    "EnrichmentError",
    "GalleryError",
    "ItemError",
    "MissingIdentifierError",
    "NetworkError",
]
