"""Configuration loader and typed settings for the gallery builder."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from gallery_builder.errors import ConfigError


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/94.0.4606.81 Safari/537.36"
)


@dataclass
class FetchConfig:
    """HTTP fetch and worker pool configuration."""

    timeout_seconds: float = 30.0
    user_agent: str = DEFAULT_USER_AGENT
    max_concurrency: int = 32
    follow_redirects: bool = True


@dataclass
class ThumbnailConfig:
    """Thumbnail geometry and encoding parameters."""

    scale_divisor: int = 4
    quality: int = 50
    format: str = "WEBP"
    extension: str = "webp"


@dataclass
class DuplicateConfig:
    """Near-duplicate detection thresholds."""

    similarity_threshold: float = 0.99


@dataclass
class ArchiveConfig:
    """Input discovery and output container naming."""

    filename: str = "gallery.zip"
    manifest_name: str = "definitions.json"
    definitions_dirname: str = "Definitions"
    definition_filename: str = "definition.json"


@dataclass
class EnrichmentConfig:
    """Retry policy for the optional tag enrichment step."""

    max_attempts: int = 5
    min_delay_seconds: float = 0.5
    max_delay_seconds: float = 3.0


@dataclass
class Settings:
    """Top-level application settings."""

    fetch: FetchConfig = field(default_factory=FetchConfig)
    thumbnail: ThumbnailConfig = field(default_factory=ThumbnailConfig)
    duplicates: DuplicateConfig = field(default_factory=DuplicateConfig)
    archive: ArchiveConfig = field(default_factory=ArchiveConfig)
    enrichment: EnrichmentConfig = field(default_factory=EnrichmentConfig)

    def validate(self) -> "Settings":
        """Raise :class:`ConfigError` when a value would make the pipeline unusable."""

        if self.fetch.max_concurrency < 1:
            raise ConfigError(f"fetch.max_concurrency must be >= 1, got {self.fetch.max_concurrency}")
        if self.fetch.timeout_seconds <= 0:
            raise ConfigError(f"fetch.timeout_seconds must be positive, got {self.fetch.timeout_seconds}")
        if self.thumbnail.scale_divisor < 1:
            raise ConfigError(f"thumbnail.scale_divisor must be >= 1, got {self.thumbnail.scale_divisor}")
        if not 0 <= self.thumbnail.quality <= 100:
            raise ConfigError(f"thumbnail.quality must be within 0-100, got {self.thumbnail.quality}")
        if not self.thumbnail.extension:
            raise ConfigError("thumbnail.extension must not be empty")
        if not 0.0 <= self.duplicates.similarity_threshold <= 1.0:
            raise ConfigError(
                f"duplicates.similarity_threshold must be within [0, 1], got {self.duplicates.similarity_threshold}"
            )
        if self.enrichment.max_attempts < 1:
            raise ConfigError(f"enrichment.max_attempts must be >= 1, got {self.enrichment.max_attempts}")
        if self.enrichment.min_delay_seconds > self.enrichment.max_delay_seconds:
            raise ConfigError("enrichment.min_delay_seconds must not exceed enrichment.max_delay_seconds")
        return self


def _project_root() -> Path:
    """Best-effort detection of the repository root for config discovery."""

    module_path = Path(__file__).resolve()
    try:
        return module_path.parents[2]
    except IndexError:  # pragma: no cover - defensive fallback
        return module_path.parent


def _build_default_settings_paths() -> list[Path]:
    """Return candidate settings paths ordered by preference."""

    cwd_candidate = (Path.cwd() / "config" / "settings.yaml").resolve()
    repo_candidate = (_project_root() / "config" / "settings.yaml").resolve()

    candidates: list[Path] = []
    seen: set[Path] = set()
    for candidate in (cwd_candidate, repo_candidate):
        if candidate in seen:
            continue
        seen.add(candidate)
        candidates.append(candidate)
    return candidates


def _resolve_settings_path(settings_path: Path | str | None) -> Path:
    """Determine which settings file to load, honoring overrides."""

    if settings_path:
        return Path(settings_path).expanduser().resolve()

    env_override = os.getenv("GALLERY_BUILDER_SETTINGS")
    if env_override:
        return Path(env_override).expanduser().resolve()

    candidates = _build_default_settings_paths()
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return candidates[0]


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    return {}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def load_settings(settings_path: Path | str | None = None) -> Settings:
    """Load application settings from a YAML file, falling back to defaults.

    Missing files, malformed documents and individual values of the wrong type
    all fall back to the defaults; only the well-typed keys are applied.
    """
    path = _resolve_settings_path(settings_path)
    settings = Settings()

    if not path.exists() or not path.is_file():
        return settings

    try:
        with path.open("r", encoding="utf-8") as fp:
            raw = yaml.safe_load(fp) or {}
    except yaml.YAMLError:
        return settings

    if not isinstance(raw, dict):
        return settings

    fetch_raw = _as_dict(raw.get("fetch"))
    fetch_cfg = settings.fetch
    if _is_number(fetch_raw.get("timeout_seconds")):
        fetch_cfg.timeout_seconds = float(fetch_raw["timeout_seconds"])
    if isinstance(fetch_raw.get("user_agent"), str):
        fetch_cfg.user_agent = fetch_raw["user_agent"]
    if _is_int(fetch_raw.get("max_concurrency")):
        fetch_cfg.max_concurrency = fetch_raw["max_concurrency"]
    if isinstance(fetch_raw.get("follow_redirects"), bool):
        fetch_cfg.follow_redirects = fetch_raw["follow_redirects"]

    thumbnail_raw = _as_dict(raw.get("thumbnail"))
    thumbnail_cfg = settings.thumbnail
    if _is_int(thumbnail_raw.get("scale_divisor")):
        thumbnail_cfg.scale_divisor = thumbnail_raw["scale_divisor"]
    if _is_int(thumbnail_raw.get("quality")):
        thumbnail_cfg.quality = thumbnail_raw["quality"]
    if isinstance(thumbnail_raw.get("format"), str):
        thumbnail_cfg.format = thumbnail_raw["format"].upper()
    if isinstance(thumbnail_raw.get("extension"), str):
        thumbnail_cfg.extension = thumbnail_raw["extension"].lstrip(".")

    duplicates_raw = _as_dict(raw.get("duplicates"))
    if _is_number(duplicates_raw.get("similarity_threshold")):
        settings.duplicates.similarity_threshold = float(duplicates_raw["similarity_threshold"])

    archive_raw = _as_dict(raw.get("archive"))
    archive_cfg = settings.archive
    for key in ("filename", "manifest_name", "definitions_dirname", "definition_filename"):
        if isinstance(archive_raw.get(key), str) and archive_raw[key]:
            setattr(archive_cfg, key, archive_raw[key])

    enrichment_raw = _as_dict(raw.get("enrichment"))
    enrichment_cfg = settings.enrichment
    if _is_int(enrichment_raw.get("max_attempts")):
        enrichment_cfg.max_attempts = enrichment_raw["max_attempts"]
    if _is_number(enrichment_raw.get("min_delay_seconds")):
        enrichment_cfg.min_delay_seconds = float(enrichment_raw["min_delay_seconds"])
    if _is_number(enrichment_raw.get("max_delay_seconds")):
        enrichment_cfg.max_delay_seconds = float(enrichment_raw["max_delay_seconds"])

    return settings


__all__ = [
    "ArchiveConfig",
    "DuplicateConfig",
    "EnrichmentConfig",
    "FetchConfig",
    "Settings",
    "ThumbnailConfig",
    "load_settings",
]
