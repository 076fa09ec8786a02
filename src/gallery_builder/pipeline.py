"""Gallery build orchestration: load, process, resolve, prune, finalize."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import ExitStack
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from utils.logging import get_logger

from gallery_builder.archive import ArchiveAssembler, write_archive
from gallery_builder.config import Settings, load_settings
from gallery_builder.definitions import ItemDefinition, LoadedDefinition, load_definitions
from gallery_builder.duplicates import DuplicateResolution, resolve_duplicates
from gallery_builder.enrichment import Annotator, RetryPolicy, enrich_definition
from gallery_builder.errors import EnrichmentError
from gallery_builder.fetcher import Fetcher
from gallery_builder.worker import ItemFailure, ItemOutcome, ProcessedRecord, SourceFetcher, ThumbnailWorker


class PipelineStage(str, Enum):
    """Stages of a gallery build, in the only order they may run."""

    LOADING = "loading"
    PROCESSING = "processing"
    RESOLVING = "resolving"
    PRUNING = "pruning"
    FINALIZING = "finalizing"
    DONE = "done"


_STAGE_ORDER: tuple[PipelineStage, ...] = tuple(PipelineStage)


@dataclass
class GalleryResult:
    """Outcome of one gallery build."""

    archive_bytes: bytes
    kept: list[ItemDefinition]
    failed: list[ItemFailure]
    duplicates: DuplicateResolution
    output_path: Path | None = None
    stage_history: list[PipelineStage] = field(default_factory=list)

    @property
    def size_bytes(self) -> int:
        return len(self.archive_bytes)


class GalleryPipeline:
    """Build a gallery archive from item definitions.

    Thumbnails are produced by a bounded thread pool; duplicate resolution only
    starts once every submitted item has finished, successfully or not.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        fetcher: SourceFetcher | None = None,
        annotator: Annotator | None = None,
        retry_policy: RetryPolicy | None = None,
        prune_sources: bool = False,
    ) -> None:
        """Initialize the pipeline.

        Args:
            settings: Optional pre-loaded Settings. When omitted, configuration
                is loaded from ``config/settings.yaml``.
            fetcher: Source fetcher shared by all workers. When omitted, an
                HTTP :class:`Fetcher` is created per run and closed afterwards.
            annotator: Optional tag annotator, run for definitions that have
                not been requeried yet.
            retry_policy: Retry policy for the annotator; defaults to the
                enrichment settings.
            prune_sources: Delete the definition files of discarded items after
                the archive has been written.
        """

        self._settings = (settings or load_settings()).validate()
        self._fetcher = fetcher
        self._annotator = annotator
        self._retry_policy = retry_policy or RetryPolicy.from_config(self._settings.enrichment)
        self._prune_sources = prune_sources
        self._logger = get_logger(__name__, extra={"component": "pipeline"})
        self._history: list[PipelineStage] = []

    @property
    def stage(self) -> PipelineStage | None:
        return self._history[-1] if self._history else None

    @property
    def stage_history(self) -> list[PipelineStage]:
        return list(self._history)

    def _enter(self, stage: PipelineStage) -> None:
        expected = _STAGE_ORDER[len(self._history)] if len(self._history) < len(_STAGE_ORDER) else None
        if stage is not expected:
            raise RuntimeError(f"invalid stage transition {self.stage} -> {stage}")
        self._history.append(stage)
        self._logger.info("pipeline_stage", extra={"stage": stage.value})

    def run(self, input_root: Path, output_dir: Path) -> GalleryResult:
        """Build the gallery for ``input_root`` and write it into ``output_dir``."""

        self._history = []
        self._enter(PipelineStage.LOADING)
        loaded = load_definitions(input_root, self._settings)

        result = self._build(loaded)
        result.output_path = write_archive(result.archive_bytes, output_dir, self._settings.archive.filename)

        if self._prune_sources:
            kept_ids = {definition.md5 for definition in result.kept}
            self._prune_definition_files(entry for entry in loaded if entry.definition.md5 not in kept_ids)

        return result

    def build(self, definitions: Sequence[ItemDefinition]) -> GalleryResult:
        """Build the gallery archive in memory from already-loaded definitions."""

        self._history = []
        self._enter(PipelineStage.LOADING)
        return self._build([LoadedDefinition(definition=definition, path=None) for definition in definitions])

    def _build(self, loaded: Sequence[LoadedDefinition]) -> GalleryResult:
        settings = self._settings
        extension = settings.thumbnail.extension
        definitions = self._unique_definitions(loaded)

        self._enter(PipelineStage.PROCESSING)
        archive = ArchiveAssembler(manifest_name=settings.archive.manifest_name)
        records, failures = self._process_all(definitions, archive)
        self._logger.info(
            "processing_complete",
            extra={"total": len(definitions), "processed": len(records), "failed": len(failures)},
        )

        self._enter(PipelineStage.RESOLVING)
        self._logger.info("Finding duplicate images")
        resolution = resolve_duplicates(records, threshold=settings.duplicates.similarity_threshold)
        self._logger.info(
            "Found %s duplicate pairs",
            len(resolution.clusters),
            extra={"pairs": resolution.pair_count},
        )

        self._enter(PipelineStage.PRUNING)
        record_ids = {record.identifier for record in records}
        for kept_id, matches in resolution.clusters.items():
            for match in matches:
                self._logger.info(
                    "duplicate_removed",
                    extra={"md5": match.identifier, "kept": kept_id, "similarity": round(match.similarity, 4)},
                )
        discarded = resolution.discarded | {failure.identifier for failure in failures}
        for identifier in sorted(discarded):
            archive.remove(f"{identifier}.{extension}")

        kept = [
            definition
            for definition in definitions
            if definition.md5 in record_ids and definition.md5 not in discarded
        ]

        self._enter(PipelineStage.FINALIZING)
        archive_bytes = archive.finalize(kept, extension)

        self._enter(PipelineStage.DONE)
        self._logger.info(
            "gallery_built",
            extra={"kept": len(kept), "failed": len(failures), "duplicates": len(resolution.discarded), "bytes": len(archive_bytes)},
        )
        return GalleryResult(
            archive_bytes=archive_bytes,
            kept=kept,
            failed=failures,
            duplicates=resolution,
            stage_history=self.stage_history,
        )

    def _unique_definitions(self, loaded: Sequence[LoadedDefinition]) -> list[ItemDefinition]:
        definitions: list[ItemDefinition] = []
        seen: set[str] = set()
        for entry in loaded:
            md5 = entry.definition.md5
            if md5 and md5 in seen:
                self._logger.warning("definition_duplicate_identifier", extra={"md5": md5})
                continue
            if md5:
                seen.add(md5)
            definitions.append(entry.definition)
        return definitions

    def _process_all(
        self, definitions: Sequence[ItemDefinition], archive: ArchiveAssembler
    ) -> tuple[list[ProcessedRecord], list[ItemFailure]]:
        records: list[ProcessedRecord] = []
        failures: list[ItemFailure] = []
        if not definitions:
            return records, failures

        total = len(definitions)
        workers = max(1, min(self._settings.fetch.max_concurrency, total))

        with ExitStack() as stack:
            fetcher = self._fetcher
            if fetcher is None:
                fetcher = stack.enter_context(Fetcher(self._settings.fetch))
            worker = ThumbnailWorker(fetcher, archive, self._settings)

            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = [
                    executor.submit(self._process_item, worker, definition, idx, total)
                    for idx, definition in enumerate(definitions)
                ]
                for future in as_completed(futures):
                    outcome = future.result()
                    if isinstance(outcome, ProcessedRecord):
                        records.append(outcome)
                    else:
                        self._logger.info("BAD: %s", outcome.identifier, extra={"reason": outcome.reason})
                        failures.append(outcome)

        return records, failures

    def _process_item(self, worker: ThumbnailWorker, definition: ItemDefinition, idx: int, total: int) -> ItemOutcome:
        if self._annotator is not None and not definition.requeried:
            try:
                enrich_definition(definition, self._annotator, self._retry_policy)
            except EnrichmentError as exc:
                self._logger.warning("enrichment_failed", extra={"md5": definition.md5, "error": str(exc)})
            except Exception as exc:  # pragma: no cover - defensive
                self._logger.warning("enrichment_error", extra={"md5": definition.md5, "error": str(exc)})

        self._logger.info("[%s/%s] Adding %s", idx, total, definition.source[:70])
        return worker.process(definition)

    def _prune_definition_files(self, entries: Iterable[LoadedDefinition]) -> None:
        for entry in entries:
            if entry.path is None:
                continue
            entry.path.unlink(missing_ok=True)
            self._logger.info("definition_pruned", extra={"md5": entry.definition.md5, "path": str(entry.path)})


__all__ = ["GalleryPipeline", "GalleryResult", "PipelineStage"]
