"""Tests for near-duplicate resolution and its tie-break rules."""

from __future__ import annotations

import itertools

from gallery_builder.definitions import ItemDefinition
from gallery_builder.duplicates import outranks, resolve_duplicates
from gallery_builder.hasher import Fingerprint
from gallery_builder.worker import ProcessedRecord


def _record(md5: str, width: int, height: int, fingerprint: bytes = bytes(range(40))) -> ProcessedRecord:
    return ProcessedRecord(
        definition=ItemDefinition(md5=md5, source=f"https://images.example/{md5}.png"),
        fingerprint=Fingerprint(fingerprint),
        width=width,
        height=height,
        entry_name=f"{md5}.webp",
    )


def _table_similarity(table: dict[frozenset[bytes], float], default: float = 0.0):
    def _similarity(lhs: Fingerprint, rhs: Fingerprint) -> float:
        return table.get(frozenset({lhs.coefficients, rhs.coefficients}), default)

    return _similarity


def test_larger_area_is_kept_for_any_input_order() -> None:
    big = _record("aaa", 10, 10)
    small = _record("bbb", 10, 5)

    for ordering in ([big, small], [small, big]):
        resolution = resolve_duplicates(ordering)

        assert resolution.discarded == {"bbb"}
        assert list(resolution.clusters) == ["aaa"]
        assert resolution.clusters["aaa"][0].identifier == "bbb"
        assert resolution.clusters["aaa"][0].similarity == 1.0


def test_threshold_is_inclusive() -> None:
    fp_a, fp_b = b"a" * 40, b"b" * 40
    a = _record("a", 20, 10, fp_a)
    b = _record("b", 10, 10, fp_b)
    pair = frozenset({fp_a, fp_b})

    at_threshold = resolve_duplicates([a, b], threshold=0.99, similarity=_table_similarity({pair: 0.99}))
    below = resolve_duplicates([a, b], threshold=0.99, similarity=_table_similarity({pair: 0.989999}))

    assert at_threshold.discarded == {"b"}
    assert below.discarded == set()
    assert below.clusters == {}


def test_equal_area_tie_discards_only_the_greater_identifier() -> None:
    first = _record("1f3c", 8, 8)
    second = _record("9a0d", 16, 4)

    for ordering in ([first, second], [second, first]):
        resolution = resolve_duplicates(ordering)

        assert resolution.discarded == {"9a0d"}
        assert set(resolution.clusters) == {"1f3c"}


def test_record_discarded_by_several_anchors_is_listed_once() -> None:
    records = [_record("a", 30, 10), _record("b", 20, 10), _record("c", 10, 10)]

    resolution = resolve_duplicates(records)

    assert resolution.discarded == {"b", "c"}
    assert [m.identifier for m in resolution.clusters["a"]] == ["b", "c"]
    assert [m.identifier for m in resolution.clusters["b"]] == ["c"]
    assert resolution.pair_count == 3


def test_unmatched_records_are_retained() -> None:
    fp_a, fp_b, fp_c = b"a" * 40, b"b" * 40, b"c" * 40
    records = [_record("a", 20, 10, fp_a), _record("b", 15, 10, fp_b), _record("c", 10, 10, fp_c)]
    table = {frozenset({fp_a, fp_b}): 0.995, frozenset({fp_a, fp_c}): 0.2, frozenset({fp_b, fp_c}): 0.3}

    resolution = resolve_duplicates(records, similarity=_table_similarity(table))

    assert resolution.discarded == {"b"}
    assert "c" not in resolution.discarded


def test_resolution_does_not_depend_on_input_order() -> None:
    records = [_record("a", 30, 10), _record("b", 30, 10), _record("c", 5, 5), _record("d", 1, 1, bytes(reversed(range(40))))]
    baseline = resolve_duplicates(records)

    for permutation in itertools.permutations(records):
        resolution = resolve_duplicates(permutation)
        assert resolution.discarded == baseline.discarded
        assert resolution.clusters == baseline.clusters


def test_outranks_prefers_area_then_smaller_identifier() -> None:
    assert outranks(_record("z", 10, 10), _record("a", 9, 10))
    assert outranks(_record("a", 10, 10), _record("b", 10, 10))
    assert not outranks(_record("b", 10, 10), _record("a", 10, 10))
