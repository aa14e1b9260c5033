from __future__ import annotations

import pytest

from stylesmith.services.blender import GuidanceCache
from stylesmith.services.builder import BuilderConfig, build_prompt
from stylesmith.services.exceptions import InvalidLockedPhraseError
from stylesmith.services.formatter import MAX_MODE_HEADER, PromptFormat
from stylesmith.services.moods import MOOD_CATEGORIES
from stylesmith.services.rng import seeded_rng
from stylesmith.services.trace import TraceCollector


def test_build_prompt_is_deterministic_for_a_seed() -> None:
    first = build_prompt("late night swing in a smoky club", rng=seeded_rng(42))
    second = build_prompt("late night swing in a smoky club", rng=seeded_rng(42))
    assert first == second
    assert first.metadata is not None
    assert first.metadata.genre == "Jazz"
    assert "Genre: Jazz" in first.text


def test_standard_layout_sections() -> None:
    prompt = build_prompt("thrash riffs", rng=seeded_rng(3))
    lines = prompt.text.split("\n")
    assert lines[0].startswith("[") and "Key: " in lines[0]
    assert lines[1] == ""
    assert [line.split(":", 1)[0] for line in lines[2:8]] == [
        "Genre",
        "BPM",
        "Mood",
        "Instruments",
        "Style Tags",
        "Recording",
    ]


def test_max_layout_keeps_genre_override_verbatim() -> None:
    prompt = build_prompt(
        "anything",
        genre="Jazz Rock",
        prompt_format=PromptFormat.MAX,
        rng=seeded_rng(5),
    )
    lines = prompt.text.split("\n")
    assert tuple(lines[:4]) == MAX_MODE_HEADER
    assert lines[4] == 'genre: "Jazz Rock"'
    assert lines[5] == 'bpm: "between 100 and 150"'
    assert prompt.metadata is not None
    assert prompt.metadata.components == ("jazz", "rock")
    assert len(prompt.metadata.style_tags) <= 10


def test_unknown_override_falls_back_to_detection() -> None:
    prompt = build_prompt("deep house groove", genre="polka", rng=seeded_rng(5))
    assert prompt.metadata is not None
    assert prompt.metadata.components == ("house",)
    assert prompt.metadata.genre == "House"


def test_locked_phrase_is_injected_into_instruments() -> None:
    prompt = build_prompt(
        "ambient drones",
        prompt_format=PromptFormat.MAX,
        locked_phrase="glass harmonica",
        rng=seeded_rng(9),
    )
    line = [row for row in prompt.text.split("\n") if row.startswith("instruments:")][0]
    assert line.endswith(', glass harmonica"')

    with pytest.raises(InvalidLockedPhraseError):
        build_prompt("ambient drones", locked_phrase="{{oops}}", rng=seeded_rng(9))


def test_mood_category_drives_moods() -> None:
    prompt = build_prompt("", mood_category="calm", rng=seeded_rng(12))
    assert prompt.metadata is not None
    assert set(prompt.metadata.moods) <= set(MOOD_CATEGORIES["calm"].moods)
    assert len(prompt.metadata.moods) == 3


def test_max_chars_budget_and_detected_progression() -> None:
    prompt = build_prompt(
        "a 2-5-1 jazz ballad",
        rng=seeded_rng(1),
        config=BuilderConfig(max_chars=120),
    )
    assert len(prompt.text) <= 120
    assert prompt.metadata is not None
    assert prompt.metadata.chord_progression.startswith("The 2-5-1 (ii-V-I)")


def test_cache_and_trace_are_used_without_rng() -> None:
    cache = GuidanceCache()
    trace = TraceCollector(run_id="build")
    first = build_prompt("smoky club", genre="jazz", cache=cache, trace=trace)
    second = build_prompt("smoky club", genre="jazz", cache=cache)
    assert "jazz" in cache
    assert first.metadata is not None and second.metadata is not None
    assert first.metadata.instruments == second.metadata.instruments
    assert trace.summary()["decisions"] >= 1


def test_configured_default_genre_replaces_random_pick() -> None:
    config = BuilderConfig(default_genre="blues")
    for seed in range(5):
        prompt = build_prompt("", rng=seeded_rng(seed), config=config)
        assert prompt.metadata is not None
        assert prompt.metadata.components == ("blues",)


def test_truncation_keeps_locked_phrase() -> None:
    for prompt_format in (PromptFormat.STANDARD, PromptFormat.MAX):
        prompt = build_prompt(
            "late night swing in a smoky club",
            prompt_format=prompt_format,
            locked_phrase="glass harmonica",
            rng=seeded_rng(4),
            config=BuilderConfig(max_chars=120),
        )
        assert "glass harmonica" in prompt.text
        assert len(prompt.text) <= 120
