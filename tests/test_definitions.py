"""Tests for definition decoding and discovery."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from gallery_builder.config import Settings
from gallery_builder.definitions import CropInfo, ImageSize, ItemDefinition, load_definitions
from gallery_builder.errors import DefinitionError

RAW_DEFINITION = {
    "md5": "0f343b0931126a20f133d67c2b018a3b",
    "source": "https://images.example/knight.png",
    "crops": {
        "full": {"left": 10, "top": 20, "width": 300, "height": 400, "finalWidth": 600, "finalHeight": 800},
        "small": {"left": 50, "top": 60, "width": 100, "height": 100, "finalWidth": 128, "finalHeight": 128},
    },
    "tags": ["knight", "armor"],
    "requeried": True,
    "attribution": "someone",
}


def _write_definition(root: Path, name: str, payload: object) -> Path:
    folder = root / "Definitions" / name
    folder.mkdir(parents=True, exist_ok=True)
    path = folder / "definition.json"
    path.write_text(payload if isinstance(payload, str) else json.dumps(payload), encoding="utf-8")
    return path


def test_definition_round_trips_camel_case_and_lowercase_enums() -> None:
    definition = ItemDefinition.from_dict(RAW_DEFINITION)

    assert definition.crops[ImageSize.SMALL] == CropInfo(50, 60, 100, 100, 128, 128)
    assert definition.target_size == (600, 800)
    assert definition.extras == {"attribution": "someone"}
    assert definition.entry_name("webp") == "0f343b0931126a20f133d67c2b018a3b.webp"
    assert definition.to_dict() == RAW_DEFINITION


def test_crop_falls_back_to_full() -> None:
    definition = ItemDefinition.from_dict({**RAW_DEFINITION, "crops": {"FULL": RAW_DEFINITION["crops"]["full"]}})

    assert definition.crop(ImageSize.SMALL) == definition.crop(ImageSize.FULL)
    assert list(definition.to_dict()["crops"]) == ["full"]


def test_load_definitions_skips_bad_records_and_repeated_ids(tmp_path: Path) -> None:
    _write_definition(tmp_path, "b_second", {**RAW_DEFINITION, "md5": "bbb"})
    _write_definition(tmp_path, "a_first", {**RAW_DEFINITION, "md5": "aaa"})
    _write_definition(tmp_path, "c_broken", "{not json")
    _write_definition(tmp_path, "d_repeat", {**RAW_DEFINITION, "md5": "aaa", "source": "https://images.example/other.png"})
    _write_definition(tmp_path, "e_bad_size", {**RAW_DEFINITION, "md5": "eee", "crops": {"huge": {}}})

    loaded = load_definitions(tmp_path, Settings())

    assert [entry.definition.md5 for entry in loaded] == ["aaa", "bbb"]
    assert loaded[0].definition.source == RAW_DEFINITION["source"]
    assert loaded[0].path.parent.name == "a_first"


def test_load_definitions_requires_definitions_directory(tmp_path: Path) -> None:
    with pytest.raises(DefinitionError):
        load_definitions(tmp_path, Settings())
