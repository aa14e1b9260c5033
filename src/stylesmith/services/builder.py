"""Deterministic prompt builder tying genre resolution, blending and formatting together."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from loguru import logger

from .articulations import DEFAULT_ARTICULATION_CHANCE
from .blender import GuidanceCache, guidance_bundle
from .exceptions import StyleSmithError
from .formatter import (
    DEFAULT_RECORDING_COUNT,
    PromptFields,
    PromptFormat,
    PromptMetadata,
    PromptText,
    assemble_style_tags,
    format_prompt,
    join_instruments,
    select_key_and_mode,
    select_recording_context,
    truncate_prompt,
)
from .injection import DEFAULT_MAX_LOCKED_PHRASE_CHARS, inject_locked_phrase
from .moods import select_genre_for_mood_category, select_moods_for_category
from .postprocess import DEFAULT_MAX_CHARS
from .progressions import build_progression_short, detect_progression
from .ranges import NARROW_RANGE_SPREAD
from .resolver import detect_genre, display_name, parse_genre_components, resolve_genre
from .rng import Rng, default_rng
from .selector import DEFAULT_MAX_INSTRUMENTS
from .trace import TraceSink, trace_decision

CATEGORY_MOOD_COUNT = 3
FALLBACK_MOODS = ("evocative", "atmospheric")


@dataclass(frozen=True)
class BuilderConfig:
    max_chars: int = DEFAULT_MAX_CHARS
    max_instruments: int = DEFAULT_MAX_INSTRUMENTS
    articulation_chance: float = DEFAULT_ARTICULATION_CHANCE
    bpm_spread: int = NARROW_RANGE_SPREAD
    default_bpm_range: str = "between 90 and 140"
    recording_count: int = DEFAULT_RECORDING_COUNT
    max_locked_phrase_chars: int = DEFAULT_MAX_LOCKED_PHRASE_CHARS
    default_genre: Optional[str] = None


def _genre_override(
    description: str,
    genre: Optional[str],
    mood_category: Optional[str],
    rng: Rng,
    trace: Optional[TraceSink],
) -> Optional[str]:
    if genre and parse_genre_components(genre):
        return genre
    if not mood_category or detect_genre(description) is not None:
        return genre
    candidate = select_genre_for_mood_category(mood_category, rng)
    if candidate is not None:
        trace_decision(
            trace,
            domain="genre",
            key="genre.mood_category",
            branch_taken="mood_category",
            why=f"mood category '{mood_category}' suggested '{candidate}'",
        )
        return candidate
    return genre


def build_prompt(
    description: str = "",
    *,
    genre: Optional[str] = None,
    prompt_format: PromptFormat = PromptFormat.STANDARD,
    mood_category: Optional[str] = None,
    locked_phrase: Optional[str] = None,
    rng: Optional[Rng] = None,
    cache: Optional[GuidanceCache] = None,
    trace: Optional[TraceSink] = None,
    config: Optional[BuilderConfig] = None,
) -> PromptText:
    """Build a complete prompt without calling any external rewriter.

    Raises:
        InvalidLockedPhraseError: if ``locked_phrase`` is not injectable.
    """
    config = config or BuilderConfig()
    source = rng or default_rng

    override = _genre_override(description, genre, mood_category, source, trace)
    resolved = resolve_genre(description, override, source, trace, fallback=config.default_genre)
    genre_text = " ".join(resolved.components)

    progression = detect_progression(description)
    if progression is not None:
        trace_decision(
            trace,
            domain="harmony",
            key="progression.detect",
            branch_taken="keyword",
            why=f"description requested {progression.name}",
        )

    bundle = guidance_bundle(
        genre_text,
        rng,
        cache=cache,
        max_instruments=config.max_instruments,
        articulation_chance=config.articulation_chance,
        spread=config.bpm_spread,
        progression=progression,
    )
    if bundle is None:  # pragma: no cover - resolve_genre always yields registry genres
        raise StyleSmithError(f"no guidance available for '{genre_text}'")

    moods: list[str] = []
    if mood_category:
        moods = select_moods_for_category(mood_category, CATEGORY_MOOD_COUNT, source)
    if not moods:
        moods = list(bundle.moods) or list(FALLBACK_MOODS)

    if genre and parse_genre_components(genre):
        genre_label = genre.strip()
    else:
        genre_label = display_name(resolved.display_genre)

    key = select_key_and_mode(source)
    bpm_text = bundle.bpm_text or config.default_bpm_range
    progression_short = build_progression_short(bundle.progression)
    style_tags = assemble_style_tags(moods, bundle.production, progression_short)
    recording = select_recording_context(source, config.recording_count)

    fields = PromptFields(
        genre=genre_label,
        bpm=bpm_text,
        instruments=join_instruments(bundle.instruments),
        style_tags=", ".join(style_tags),
        recording=recording,
        moods=moods,
        key=key,
    )
    text = format_prompt(fields, prompt_format)
    phrase = locked_phrase.strip() if locked_phrase else ""
    # leave room for the phrase and its ", " separator so truncation never cuts it
    reserve = len(phrase) + 2 if phrase else 0
    text = truncate_prompt(text, max(config.max_chars - reserve, 0))
    text = inject_locked_phrase(
        text,
        phrase,
        prompt_format is PromptFormat.MAX,
        config.max_locked_phrase_chars,
    )
    logger.debug("Built {} prompt for '{}' ({} chars)", prompt_format.value, genre_text, len(text))

    metadata = PromptMetadata(
        genre=genre_label,
        components=bundle.components,
        instruments=bundle.instruments,
        moods=tuple(moods),
        chord_progression=bundle.chord_progression,
        vocal_style=bundle.vocal,
        production=bundle.production,
        style_tags=tuple(style_tags),
        recording=recording,
        bpm=bpm_text,
        harmonic=None if bundle.harmonic is None else bundle.harmonic.describe(),
        time_signature=bundle.time_signature,
        polyrhythm=bundle.polyrhythm,
        key=key,
        format=prompt_format,
    )
    return PromptText(text=text, metadata=metadata)
