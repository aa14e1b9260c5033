"""Chord progression tables and helpers."""

from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional

from .exceptions import RegistryDataError
from .resources import load_resource
from .rng import Rng, default_rng, select_random

_EXISTING_HARMONY = re.compile(r"\([IViv\d\-#bmaj]+\)\s*harmony", re.IGNORECASE)
_QUOTED_INSTRUMENTS = re.compile(r'^(instruments:\s*")([^"]*)(")', re.IGNORECASE | re.MULTILINE)


@dataclass(frozen=True)
class ChordProgression:
    key: str
    name: str
    pattern: str
    numerals: str
    mood: tuple[str, ...]
    description: str


@dataclass(frozen=True)
class ProgressionTable:
    progressions: Mapping[str, ChordProgression]
    by_genre: Mapping[str, tuple[str, ...]]
    detection: tuple[tuple[tuple[str, ...], str], ...]
    default: str
    fallback_genre: str


def _load_table() -> ProgressionTable:
    raw = load_resource("progressions.json")
    progressions = {
        key: ChordProgression(
            key=key,
            name=entry["name"],
            pattern=entry["pattern"],
            numerals=entry.get("numerals", entry["pattern"]),
            mood=tuple(entry.get("mood", [])),
            description=entry.get("description", ""),
        )
        for key, entry in raw["progressions"].items()
    }
    by_genre = {genre: tuple(keys) for genre, keys in raw["genres"].items()}
    detection = tuple(
        (tuple(keyword.lower() for keyword in rule["keywords"]), rule["progression"])
        for rule in raw.get("detection", [])
    )
    referenced = [key for keys in by_genre.values() for key in keys]
    referenced.extend(progression for _keywords, progression in detection)
    referenced.append(raw["default"])
    unknown = sorted({key for key in referenced if key not in progressions})
    if unknown:  # pragma: no cover - configuration error
        raise RegistryDataError(f"progression tables reference unknown progressions {unknown}")
    if raw["fallback_genre"] not in by_genre:  # pragma: no cover - configuration error
        raise RegistryDataError("progression fallback genre has no progressions")
    return ProgressionTable(
        progressions=MappingProxyType(progressions),
        by_genre=MappingProxyType(by_genre),
        detection=detection,
        default=raw["default"],
        fallback_genre=raw["fallback_genre"],
    )


_TABLE = _load_table()


def get_progression(key: str) -> Optional[ChordProgression]:
    return _TABLE.progressions.get(key)


def progressions_for_genre(genre: str) -> list[ChordProgression]:
    keys = _TABLE.by_genre.get(genre.strip().lower()) or _TABLE.by_genre[_TABLE.fallback_genre]
    return [_TABLE.progressions[key] for key in keys]


def random_progression(genre: str, rng: Rng = default_rng) -> ChordProgression:
    return select_random(progressions_for_genre(genre), rng)


def build_progression_descriptor(progression: ChordProgression) -> str:
    return f"{progression.name} ({progression.pattern}): {progression.description}"


def build_progression_short(progression: ChordProgression) -> str:
    return f"{progression.name} ({progression.pattern})"


def detect_progression(description: str) -> Optional[ChordProgression]:
    lowered = description.lower()
    for keywords, key in _TABLE.detection:
        if any(keyword in lowered for keyword in keywords):
            return _TABLE.progressions[key]
    return None


def default_progression() -> ChordProgression:
    return _TABLE.progressions[_TABLE.default]


def inject_chord_progression(prompt: str, genre: str, rng: Rng = default_rng) -> str:
    """Append a progression harmony tag to the quoted instruments field."""
    if _EXISTING_HARMONY.search(prompt):
        return prompt
    match = _QUOTED_INSTRUMENTS.search(prompt)
    if match is None:
        return prompt
    tag = f"{build_progression_short(random_progression(genre, rng))} harmony"
    existing = match.group(2).strip()
    field = f"{existing}, {tag}" if existing else tag
    return prompt[: match.start()] + f"{match.group(1)}{field}{match.group(3)}" + prompt[match.end() :]
