"""Near-duplicate resolution over the complete set of processed records."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from utils.logging import get_logger

from gallery_builder.hasher import Fingerprint, cross_correlation
from gallery_builder.worker import ProcessedRecord

LOGGER = get_logger(__name__, extra={"component": "duplicates"})

DEFAULT_SIMILARITY_THRESHOLD = 0.99

Similarity = Callable[[Fingerprint, Fingerprint], float]


@dataclass(frozen=True)
class DuplicateMatch:
    """A record suppressed by a kept record, with their similarity."""

    identifier: str
    similarity: float


@dataclass
class DuplicateResolution:
    """Clusters keyed by the kept identifier, plus the flat discard set."""

    clusters: dict[str, list[DuplicateMatch]] = field(default_factory=dict)
    discarded: set[str] = field(default_factory=set)

    @property
    def pair_count(self) -> int:
        return sum(len(matches) for matches in self.clusters.values())


def outranks(src: ProcessedRecord, dest: ProcessedRecord) -> bool:
    """Return ``True`` when ``src`` should be kept over ``dest``.

    The larger original area wins; on an exact area tie the lexicographically
    smaller identifier wins, so equal-area duplicates never discard each other.
    """

    if src.area != dest.area:
        return src.area > dest.area
    return src.identifier < dest.identifier


def resolve_duplicates(
    records: Iterable[ProcessedRecord],
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    similarity: Similarity | None = None,
) -> DuplicateResolution:
    """Find near-duplicate records and choose which identifiers to discard.

    Every unordered pair is compared once. A pair at or above ``threshold`` is
    attributed to whichever record :func:`outranks` the other; the other lands
    in ``discarded``, however many clusters it appears in.
    """

    compare = similarity or cross_correlation
    ordered = sorted(records, key=lambda record: record.identifier)
    grouped: dict[str, list[DuplicateMatch]] = defaultdict(list)
    discarded: set[str] = set()

    for i, lhs in enumerate(ordered):
        for rhs in ordered[i + 1 :]:
            if lhs.identifier == rhs.identifier:
                continue
            score = compare(lhs.fingerprint, rhs.fingerprint)
            if score < threshold:
                continue

            kept, dropped = (lhs, rhs) if outranks(lhs, rhs) else (rhs, lhs)
            grouped[kept.identifier].append(DuplicateMatch(identifier=dropped.identifier, similarity=score))
            discarded.add(dropped.identifier)

    clusters = {
        kept_id: sorted(matches, key=lambda match: match.identifier) for kept_id, matches in sorted(grouped.items())
    }
    LOGGER.info(
        "duplicates_resolved",
        extra={"records": len(ordered), "clusters": len(clusters), "discarded": len(discarded), "threshold": threshold},
    )
    return DuplicateResolution(clusters=clusters, discarded=discarded)


__all__ = [
    "DEFAULT_SIMILARITY_THRESHOLD",
    "DuplicateMatch",
    "DuplicateResolution",
    "outranks",
    "resolve_duplicates",
]
