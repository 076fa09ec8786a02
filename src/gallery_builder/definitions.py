"""Item definitions and the on-disk definition store."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from utils.logging import get_logger

from gallery_builder.config import Settings
from gallery_builder.errors import DefinitionError

LOGGER = get_logger(__name__, extra={"component": "definitions"})

_KNOWN_KEYS = frozenset({"md5", "source", "crops", "tags", "requeried"})


class ImageSize(str, Enum):
    """Presentation contexts a definition carries a crop for."""

    FULL = "full"
    SMALL = "small"


@dataclass(frozen=True)
class CropInfo:
    """Crop region in source pixels plus the nominal presentation size.

    A zero ``width`` or ``height`` selects the whole source image.
    """

    left: int = 0
    top: int = 0
    width: int = 0
    height: int = 0
    final_width: int = 0
    final_height: int = 0

    @property
    def final_size(self) -> tuple[int, int]:
        return self.final_width, self.final_height

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "CropInfo":
        return cls(
            left=int(raw.get("left", 0)),
            top=int(raw.get("top", 0)),
            width=int(raw.get("width", 0)),
            height=int(raw.get("height", 0)),
            final_width=int(raw.get("finalWidth", 0)),
            final_height=int(raw.get("finalHeight", 0)),
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "left": self.left,
            "top": self.top,
            "width": self.width,
            "height": self.height,
            "finalWidth": self.final_width,
            "finalHeight": self.final_height,
        }


@dataclass
class ItemDefinition:
    """One gallery item: where its image lives, how to crop it and how it is tagged."""

    md5: str
    source: str
    crops: dict[ImageSize, CropInfo] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)
    requeried: bool = False
    extras: dict[str, Any] = field(default_factory=dict)

    def crop(self, size: ImageSize = ImageSize.FULL) -> CropInfo:
        """Return the crop for ``size``, falling back to the full crop."""

        if size in self.crops:
            return self.crops[size]
        return self.crops.get(ImageSize.FULL, CropInfo())

    @property
    def target_size(self) -> tuple[int, int]:
        return self.crop(ImageSize.FULL).final_size

    def entry_name(self, extension: str) -> str:
        return f"{self.md5}.{extension}"

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "ItemDefinition":
        """Decode a camelCase JSON record; unknown keys are kept in ``extras``."""

        if not isinstance(raw, dict):
            raise ValueError("definition record must be a JSON object")

        crops: dict[ImageSize, CropInfo] = {}
        for key, value in (raw.get("crops") or {}).items():
            crops[ImageSize(str(key).lower())] = CropInfo.from_dict(value or {})

        tags = raw.get("tags") or []
        if not isinstance(tags, list):
            raise ValueError("tags must be a list")

        return cls(
            md5=str(raw.get("md5") or ""),
            source=str(raw.get("source") or ""),
            crops=crops,
            tags=[str(tag) for tag in tags],
            requeried=bool(raw.get("requeried", False)),
            extras={key: value for key, value in raw.items() if key not in _KNOWN_KEYS},
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.extras)
        payload.update(
            {
                "md5": self.md5,
                "source": self.source,
                "crops": {size.value: crop.to_dict() for size, crop in self.crops.items()},
                "tags": list(self.tags),
                "requeried": self.requeried,
            }
        )
        return payload


@dataclass(frozen=True)
class LoadedDefinition:
    """A decoded definition together with the file it was read from."""

    definition: ItemDefinition
    path: Path | None


def discover_definition_files(input_root: Path, settings: Settings) -> list[Path]:
    """Return every definition file under ``<input_root>/<definitions_dirname>`` in sorted order."""

    definitions_root = input_root / settings.archive.definitions_dirname
    if not definitions_root.is_dir():
        raise DefinitionError(f"definitions directory not found: {definitions_root}")

    return sorted(path for path in definitions_root.rglob(settings.archive.definition_filename) if path.is_file())


def load_definitions(input_root: Path, settings: Settings) -> list[LoadedDefinition]:
    """Decode all definitions under ``input_root``.

    Records that fail to parse are skipped with a warning. When two records
    share an identifier, the first one in discovery order wins.
    """

    files = discover_definition_files(input_root, settings)
    LOGGER.info("definitions_found", extra={"count": len(files), "root": str(input_root)})

    loaded: list[LoadedDefinition] = []
    seen: set[str] = set()
    for path in files:
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            definition = ItemDefinition.from_dict(raw)
        except (OSError, ValueError, TypeError, AttributeError) as exc:
            LOGGER.warning("definition_parse_error", extra={"path": str(path), "error": str(exc)})
            continue

        if definition.md5 and definition.md5 in seen:
            LOGGER.warning("definition_duplicate_identifier", extra={"path": str(path), "md5": definition.md5})
            continue
        if definition.md5:
            seen.add(definition.md5)

        loaded.append(LoadedDefinition(definition=definition, path=path))

    LOGGER.info("definitions_loaded", extra={"count": len(loaded)})
    return loaded


__all__ = [
    "CropInfo",
    "ImageSize",
    "ItemDefinition",
    "LoadedDefinition",
    "discover_definition_files",
    "load_definitions",
]
