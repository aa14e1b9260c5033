"""Genre validation, multi-genre parsing and description-based detection."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from loguru import logger

from .registry import ALL_GENRE_KEYS, GENRE_REGISTRY
from .resources import dedupe
from .rng import Rng, default_rng, select_random
from .trace import TraceSink, trace_decision

_COMPONENT_SPLIT = re.compile(r"[\s\-/,]+|(?:\s+and\s+)|(?:\s*&\s*)")


def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![\w]){re.escape(keyword.lower())}(?![\w])")


_KEYWORD_PATTERNS: tuple[tuple[str, str, re.Pattern[str]], ...] = tuple(
    (key, keyword, _keyword_pattern(keyword))
    for key, definition in GENRE_REGISTRY.items()
    for keyword in definition.keywords
)


@dataclass(frozen=True)
class ResolvedGenre:
    detected: Optional[str]
    display_genre: str
    primary_genre: str
    components: tuple[str, ...]


def is_valid_genre(genre: str) -> bool:
    return genre.lower() in GENRE_REGISTRY


def parse_genre_components(text: str) -> list[str]:
    """Split free text into registry genres, preserving first-seen order."""
    if not text:
        return []
    normalized = text.lower().strip()
    if not normalized:
        return []
    if is_valid_genre(normalized):
        return [normalized]
    tokens = [token for token in _COMPONENT_SPLIT.split(normalized) if token]
    return dedupe(token for token in tokens if is_valid_genre(token))


def detect_genre(description: str) -> Optional[str]:
    """Return the registry genre whose keyword best matches ``description``."""
    if not description:
        return None
    lowered = description.lower()
    best_key: Optional[str] = None
    best_length = 0
    for key, keyword, pattern in _KEYWORD_PATTERNS:
        if len(keyword) <= best_length:
            continue
        if pattern.search(lowered):
            best_key = key
            best_length = len(keyword)
    return best_key


def resolve_genre(
    description: str,
    override: Optional[str] = None,
    rng: Rng = default_rng,
    trace: Optional[TraceSink] = None,
    fallback: Optional[str] = None,
) -> ResolvedGenre:
    """Resolve an override, then description keywords, then ``fallback`` or a random genre."""
    if override and override.strip():
        display = override.lower().strip()
        components = parse_genre_components(display)
        if components:
            trace_decision(
                trace,
                domain="genre",
                key="genre.override",
                branch_taken="override",
                why=f"override '{display}' resolved to {components}",
            )
            return ResolvedGenre(
                detected=None,
                display_genre=display,
                primary_genre=components[0],
                components=tuple(components),
            )
        logger.warning("Ignoring unknown genre override '{}'", override)

    detected = detect_genre(description)
    if detected is not None:
        trace_decision(
            trace,
            domain="genre",
            key="genre.detect",
            branch_taken="keyword",
            why=f"description keywords matched '{detected}'",
        )
        return ResolvedGenre(
            detected=detected,
            display_genre=detected,
            primary_genre=detected,
            components=(detected,),
        )

    fallback = fallback.strip().lower() if fallback else None
    if fallback and is_valid_genre(fallback):
        trace_decision(
            trace,
            domain="genre",
            key="genre.fallback",
            branch_taken="fallback",
            why=f"no override or keyword match; using configured '{fallback}'",
        )
        return ResolvedGenre(
            detected=None,
            display_genre=fallback,
            primary_genre=fallback,
            components=(fallback,),
        )

    chosen = select_random(ALL_GENRE_KEYS, rng)
    trace_decision(
        trace,
        domain="genre",
        key="genre.random",
        branch_taken="random",
        why="no override or keyword match",
        candidates=ALL_GENRE_KEYS,
        chosen=chosen,
    )
    return ResolvedGenre(
        detected=None,
        display_genre=chosen,
        primary_genre=chosen,
        components=(chosen,),
    )


def display_name(genre_text: str) -> str:
    components = parse_genre_components(genre_text)
    if not components:
        return genre_text.strip().title()
    return " ".join(GENRE_REGISTRY[component].name for component in components)
