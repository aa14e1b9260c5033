"""Render selected prompt attributes into the standard and max layouts."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from .blender import STYLES
from .resources import dedupe
from .rng import Rng, default_rng, select_random, select_random_n

MAX_MODE_HEADER = (
    "[Is_MAX_MODE: MAX](MAX)",
    "[QUALITY: MAX](MAX)",
    "[REALISM: MAX](MAX)",
    "[REAL_INSTRUMENTS: MAX](MAX)",
)
MAX_STYLE_TAGS = 10
DEFAULT_RECORDING_COUNT = 2


class PromptFormat(str, Enum):
    STANDARD = "standard"
    MAX = "max"


@dataclass(frozen=True)
class PromptFields:
    genre: str
    bpm: str
    instruments: str
    style_tags: str
    recording: str
    moods: Sequence[str] = ()
    key: Optional[str] = None


@dataclass(frozen=True)
class PromptMetadata:
    genre: str
    components: tuple[str, ...]
    instruments: tuple[str, ...]
    moods: tuple[str, ...]
    chord_progression: str
    vocal_style: str
    production: str
    style_tags: tuple[str, ...]
    recording: str
    bpm: str
    harmonic: Optional[str]
    time_signature: Optional[str]
    polyrhythm: Optional[str]
    key: Optional[str]
    format: PromptFormat


@dataclass(frozen=True)
class PromptText:
    text: str
    metadata: Optional[PromptMetadata] = None


def format_max(fields: PromptFields) -> str:
    lines = [
        *MAX_MODE_HEADER,
        f'genre: "{fields.genre}"',
        f'bpm: "{fields.bpm}"',
        f'instruments: "{fields.instruments}"',
        f'style tags: "{fields.style_tags}"',
        f'recording: "{fields.recording}"',
    ]
    return "\n".join(lines)


def format_standard(fields: PromptFields) -> str:
    header_parts = [mood.title() for mood in list(fields.moods)[:2]]
    header_parts.append(fields.genre)
    if fields.key:
        header_parts.append(f"Key: {fields.key}")
    lines = [
        f"[{', '.join(header_parts)}]",
        "",
        f"Genre: {fields.genre}",
        f"BPM: {fields.bpm}",
        f"Mood: {', '.join(fields.moods)}",
        f"Instruments: {fields.instruments}",
        f"Style Tags: {fields.style_tags}",
        f"Recording: {fields.recording}",
    ]
    return "\n".join(lines)


def format_prompt(fields: PromptFields, prompt_format: PromptFormat) -> str:
    if prompt_format is PromptFormat.MAX:
        return format_max(fields)
    return format_standard(fields)


def truncate_prompt(text: str, max_chars: int) -> str:
    """Cut to ``max_chars``, backing up to a quote or newline in the last fifth."""
    if len(text) <= max_chars:
        return text
    cut = text[:max_chars]
    boundary = max(cut.rfind('"'), cut.rfind("\n"))
    if boundary > max_chars * 0.8:
        cut = cut[: boundary + 1]
    return cut.rstrip()


def select_recording_context(
    rng: Rng = default_rng, count: int = DEFAULT_RECORDING_COUNT
) -> str:
    return ", ".join(select_random_n(STYLES.recording_descriptors, count, rng))


def select_key_and_mode(rng: Rng = default_rng) -> str:
    key = select_random(STYLES.musical_keys, rng)
    mode = select_random(STYLES.musical_modes, rng)
    return f"{key} {mode}"


def assemble_style_tags(
    moods: Sequence[str],
    production: str,
    progression_short: Optional[str] = None,
    limit: int = MAX_STYLE_TAGS,
) -> list[str]:
    tags = [mood.lower() for mood in moods]
    tags.extend(part.strip() for part in production.split(",") if part.strip())
    if progression_short:
        tags.append(progression_short)
    seen: set[str] = set()
    unique: list[str] = []
    for tag in tags:
        folded = tag.lower()
        if folded in seen:
            continue
        seen.add(folded)
        unique.append(tag)
    return unique[:limit]


def join_instruments(instruments: Sequence[str]) -> str:
    return ", ".join(dedupe(instruments))
