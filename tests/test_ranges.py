from __future__ import annotations

import itertools

from stylesmith.services.ranges import (
    RangeResult,
    blend_ranges,
    blended_range,
    bpm_text_for_genre,
    format_bpm_range,
    inject_bpm_range,
    is_valid_range,
    random_bpm_from_range,
)
from stylesmith.services.registry import ALL_GENRE_KEYS, BpmRange
from stylesmith.services.rng import seeded_rng


def test_single_genre_range_is_verbatim() -> None:
    assert blended_range("jazz") == RangeResult(min=80, max=160, is_intersection=True)


def test_overlapping_ranges_intersect() -> None:
    assert blended_range("jazz rock") == RangeResult(min=100, max=150, is_intersection=True)


def test_disjoint_ranges_narrow_around_union_midpoint() -> None:
    result = blended_range("ambient hyperpop")
    assert result == RangeResult(min=90, max=150, is_intersection=False)
    assert blended_range("ambient punk") == RangeResult(min=100, max=160, is_intersection=False)


def test_narrowed_window_is_clamped_to_union() -> None:
    ranges = [BpmRange(min=60, max=70, typical=65), BpmRange(min=80, max=90, typical=85)]
    assert blend_ranges(ranges, spread=100) == RangeResult(min=60, max=90, is_intersection=False)
    assert blend_ranges([]) is None


def test_every_pair_yields_a_valid_range() -> None:
    for key in ALL_GENRE_KEYS:
        assert is_valid_range(blended_range(key))
    for a, b in itertools.combinations(ALL_GENRE_KEYS, 2):
        result = blended_range(f"{a} {b}")
        assert is_valid_range(result)
        assert result is not None and result.min <= result.max


def test_unknown_genre_has_no_range() -> None:
    assert blended_range("polka") is None
    assert bpm_text_for_genre("polka") is None
    assert bpm_text_for_genre("polka", "between 90 and 140") == "between 90 and 140"


def test_format_and_random_bpm() -> None:
    result = RangeResult(min=100, max=150, is_intersection=True)
    assert format_bpm_range(result) == "between 100 and 150"
    rng = seeded_rng(11)
    assert all(100 <= random_bpm_from_range(result, rng) <= 150 for _ in range(100))


def test_inject_bpm_range_rewrites_existing_line() -> None:
    max_prompt = 'genre: "jazz rock"\nbpm: "120"\ninstruments: "piano"'
    assert 'bpm: "between 100 and 150"' in inject_bpm_range(max_prompt, "jazz rock", True)
    standard = "Genre: Jazz\nBPM: 120\nMood: warm"
    assert "BPM: between 100 and 150" in inject_bpm_range(standard, "jazz rock", False)
    assert inject_bpm_range(standard, "polka", False) == standard
