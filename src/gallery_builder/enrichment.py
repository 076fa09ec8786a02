"""Best-effort tag enrichment with a bounded, jittered retry policy."""

from __future__ import annotations

import random
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

import httpx

from utils.logging import get_logger

from gallery_builder.config import EnrichmentConfig
from gallery_builder.definitions import ItemDefinition
from gallery_builder.errors import EnrichmentError

LOGGER = get_logger(__name__, extra={"component": "enrichment"})

Annotator = Callable[[str], Sequence[str]]

_TRIM_CHARS = ",;+ "


@dataclass
class RetryPolicy:
    """Retry an operation at most ``max_attempts`` times with a random delay in between."""

    max_attempts: int = 5
    min_delay: float = 0.5
    max_delay: float = 3.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    rng: random.Random = field(default_factory=random.Random, repr=False)

    @classmethod
    def from_config(cls, config: EnrichmentConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            min_delay=config.min_delay_seconds,
            max_delay=config.max_delay_seconds,
        )

    def next_delay(self) -> float:
        return self.rng.uniform(self.min_delay, self.max_delay)


def normalize_tags(raw_tags: Sequence[str]) -> list[str]:
    """Lowercase, trim and de-duplicate tags while keeping their first-seen order."""

    tags: list[str] = []
    seen: set[str] = set()
    for raw in raw_tags:
        tag = str(raw).lower().strip(_TRIM_CHARS)
        if not tag or tag in seen:
            continue
        seen.add(tag)
        tags.append(tag)
    return tags


def enrich_definition(definition: ItemDefinition, annotator: Annotator, policy: RetryPolicy) -> bool:
    """Replace the tags of a not-yet-requeried definition with annotator output.

    An annotator signals "try again later" by raising :class:`EnrichmentError`
    or an :class:`httpx.HTTPError`, or by returning no tags.

    Returns:
        ``True`` when tags were assigned, ``False`` when the definition was
        already enriched.

    Raises:
        EnrichmentError: When every attempt came back empty or failed.
    """

    if definition.requeried:
        return False

    last_error: str = "no tags returned"
    for attempt in range(1, policy.max_attempts + 1):
        try:
            tags = normalize_tags(annotator(definition.source))
        except (EnrichmentError, httpx.HTTPError) as exc:
            tags = []
            last_error = str(exc)

        if tags:
            definition.tags = tags
            definition.requeried = True
            LOGGER.info("tags_assigned", extra={"md5": definition.md5, "tags": ", ".join(tags), "attempt": attempt})
            return True

        LOGGER.info(
            "enrichment_retry",
            extra={"md5": definition.md5, "attempt": attempt, "max_attempts": policy.max_attempts, "error": last_error},
        )
        if attempt < policy.max_attempts:
            policy.sleep(policy.next_delay())

    raise EnrichmentError(
        f"enrichment for {definition.md5 or definition.source} failed after {policy.max_attempts} attempts: {last_error}"
    )


__all__ = ["Annotator", "RetryPolicy", "enrich_definition", "normalize_tags"]
