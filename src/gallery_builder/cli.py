"""CLI entrypoint that builds ``gallery.zip`` from a definitions tree."""

from __future__ import annotations

from pathlib import Path

import typer

from utils.logging import get_logger, set_log_level
from gallery_builder.config import Settings, load_settings
from gallery_builder.errors import GalleryError
from gallery_builder.pipeline import GalleryPipeline

LOGGER = get_logger(__name__, extra={"component": "cli"})


def _apply_cli_overrides(settings: Settings, concurrency: int | None, threshold: float | None) -> Settings:
    """Apply CLI overrides for pool size and duplicate threshold to the settings."""

    if concurrency is not None:
        settings.fetch.max_concurrency = concurrency
    if threshold is not None:
        settings.duplicates.similarity_threshold = threshold
    return settings


def main(
    input_root: Path = typer.Argument(
        ...,
        file_okay=False,
        dir_okay=True,
        exists=True,
        readable=True,
        help="Root directory containing the Definitions tree.",
    ),
    output_dir: Path = typer.Argument(
        ...,
        file_okay=False,
        dir_okay=True,
        help="Directory that receives the gallery archive.",
    ),
    settings_path: Path | None = typer.Option(
        None,
        "--settings",
        file_okay=True,
        dir_okay=False,
        help="Settings YAML file. Defaults to config/settings.yaml.",
    ),
    concurrency: int | None = typer.Option(
        None,
        "--concurrency",
        help="Override fetch.max_concurrency from settings.yaml.",
    ),
    threshold: float | None = typer.Option(
        None,
        "--threshold",
        help="Override duplicates.similarity_threshold from settings.yaml.",
    ),
    prune_sources: bool = typer.Option(
        False,
        "--prune-sources/--keep-sources",
        help="Delete the definition files of failed and duplicate items after a successful build.",
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        help="Root log level such as DEBUG or WARNING. Defaults to GALLERY_BUILDER_LOG_LEVEL or INFO.",
    ),
) -> None:
    """Build the gallery archive for INPUT_ROOT into OUTPUT_DIR."""

    if log_level:
        set_log_level(log_level)
    settings = _apply_cli_overrides(load_settings(settings_path), concurrency=concurrency, threshold=threshold)

    try:
        pipeline = GalleryPipeline(settings=settings, prune_sources=prune_sources)
        result = pipeline.run(input_root, output_dir)
    except GalleryError as exc:
        LOGGER.error("gallery_build_failed", extra={"error": str(exc), "error_type": type(exc).__name__})
        raise typer.Exit(code=1) from exc

    LOGGER.info(
        "Output zip is %s bytes in size",
        result.size_bytes,
        extra={"path": str(result.output_path), "kept": len(result.kept), "failed": len(result.failed)},
    )


def run() -> None:
    typer.run(main)


if __name__ == "__main__":
    run()


__all__ = ["main", "run"]
