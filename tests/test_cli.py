from __future__ import annotations

import json
from pathlib import Path

import pytest
import typer
from typer.testing import CliRunner

from gallery_builder.archive import read_manifest
from gallery_builder.cli import main
from helpers import FakeFetcher, encode_png, make_definition, smooth_pattern


@pytest.fixture
def app() -> typer.Typer:
    application = typer.Typer()
    application.command()(main)
    return application


def _patch_fetcher(monkeypatch: pytest.MonkeyPatch, payloads: dict[str, bytes]) -> None:
    class _ContextFetcher(FakeFetcher):
        def __init__(self, _config) -> None:
            super().__init__(payloads)

        def __enter__(self) -> "_ContextFetcher":
            return self

        def __exit__(self, *_exc_info: object) -> None:
            return None

    monkeypatch.setattr("gallery_builder.pipeline.Fetcher", _ContextFetcher)


def test_cli_builds_gallery(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, app: typer.Typer) -> None:
    definition = make_definition("cli1")
    folder = tmp_path / "input" / "Definitions" / "cli1"
    folder.mkdir(parents=True)
    (folder / "definition.json").write_text(json.dumps(definition.to_dict()), encoding="utf-8")
    _patch_fetcher(monkeypatch, {definition.source: encode_png(smooth_pattern(32, 16))})
    monkeypatch.setenv("GALLERY_BUILDER_SETTINGS", str(tmp_path / "absent.yaml"))

    result = CliRunner().invoke(app, [str(tmp_path / "input"), str(tmp_path / "out"), "--concurrency", "2"])

    assert result.exit_code == 0, result.output
    rows, names = read_manifest(tmp_path / "out" / "gallery.zip")
    assert [row["md5"] for row in rows] == ["cli1"]
    assert names == ["cli1.webp"]


def test_cli_exits_non_zero_without_definitions(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, app: typer.Typer) -> None:
    (tmp_path / "input").mkdir()
    _patch_fetcher(monkeypatch, {})
    monkeypatch.setenv("GALLERY_BUILDER_SETTINGS", str(tmp_path / "absent.yaml"))

    result = CliRunner().invoke(app, [str(tmp_path / "input"), str(tmp_path / "out")])

    assert result.exit_code == 1
    assert not (tmp_path / "out" / "gallery.zip").exists()
