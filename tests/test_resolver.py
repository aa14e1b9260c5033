from __future__ import annotations

from stylesmith.services.registry import GENRE_REGISTRY
from stylesmith.services.resolver import (
    detect_genre,
    display_name,
    is_valid_genre,
    parse_genre_components,
    resolve_genre,
)
from stylesmith.services.rng import seeded_rng
from stylesmith.services.trace import TraceCollector


def test_parse_genre_components_splits_compound_text() -> None:
    assert parse_genre_components("ambient symphonic rock") == ["ambient", "symphonic", "rock"]
    assert parse_genre_components("Jazz, Rock") == ["jazz", "rock"]
    assert parse_genre_components("jazz & rock") == ["jazz", "rock"]
    assert parse_genre_components("ambient and jazz") == ["ambient", "jazz"]
    assert parse_genre_components("rock-jazz/rock") == ["rock", "jazz"]


def test_parse_genre_components_edge_cases() -> None:
    assert parse_genre_components("") == []
    assert parse_genre_components("   ") == []
    assert parse_genre_components("polka") == []
    assert parse_genre_components("  HOUSE ") == ["house"]


def test_is_valid_genre_rejects_compound_and_unknown() -> None:
    assert is_valid_genre("JAZZ")
    assert not is_valid_genre("jazz rock")
    assert not is_valid_genre("polka")


def test_detect_genre_prefers_longest_keyword() -> None:
    assert detect_genre("late night in a smoky club with swing") == "jazz"
    assert detect_genre("a deep house set at sunrise") == "house"
    assert detect_genre("nothing musical here") is None
    assert detect_genre("") is None


def test_detect_genre_matches_whole_words_only() -> None:
    assert detect_genre("popular opinion") is None
    assert detect_genre("a pop song") == "pop"


def test_resolve_genre_branches_are_traced() -> None:
    trace = TraceCollector(run_id="run")
    resolved = resolve_genre("anything", "Jazz Rock", seeded_rng(1), trace)
    assert resolved.display_genre == "jazz rock"
    assert resolved.primary_genre == "jazz"
    assert resolved.components == ("jazz", "rock")
    assert resolved.detected is None

    detected = resolve_genre("thrash riffs", "polka", seeded_rng(1), trace)
    assert detected.detected == "metal"
    assert detected.components == ("metal",)

    fallback = resolve_genre("", None, seeded_rng(9), trace)
    assert fallback.primary_genre in GENRE_REGISTRY

    branches = [event.branch_taken for event in trace.events]
    assert branches == ["override", "keyword", "random"]
    assert trace.events[-1].selection is not None
    assert trace.events[-1].selection.candidates[trace.events[-1].selection.chosen_index] == (
        fallback.primary_genre
    )


def test_resolve_genre_uses_configured_fallback_before_random() -> None:
    trace = TraceCollector(run_id="fb")
    resolved = resolve_genre("", None, seeded_rng(3), trace, fallback=" Jazz ")
    assert resolved.components == ("jazz",)
    assert resolved.detected is None
    assert [event.branch_taken for event in trace.events] == ["fallback"]

    keyword = resolve_genre("thrash riffs", None, seeded_rng(3), fallback="jazz")
    assert keyword.components == ("metal",)

    unknown = resolve_genre("", None, seeded_rng(3), trace, fallback="polka")
    assert unknown.primary_genre in GENRE_REGISTRY
    assert trace.events[-1].branch_taken == "random"


def test_resolve_genre_random_is_seeded() -> None:
    first = resolve_genre("", None, seeded_rng(5))
    second = resolve_genre("", None, seeded_rng(5))
    assert first == second


def test_display_name() -> None:
    assert display_name("jazz rock") == "Jazz Rock"
    assert display_name("rnb") == "R&B"
