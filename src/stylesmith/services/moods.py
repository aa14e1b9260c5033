"""Mood categories and mood-driven genre selection."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional, Sequence

from .registry import GENRE_REGISTRY, get_genre
from .resources import dedupe, load_resource
from .rng import Rng, default_rng, pick_random, select_random_n


@dataclass(frozen=True)
class MoodCategory:
    key: str
    name: str
    moods: tuple[str, ...]


def _load_categories() -> Mapping[str, MoodCategory]:
    raw = load_resource("moods.json")
    return MappingProxyType(
        {
            key: MoodCategory(key=key, name=entry["name"], moods=tuple(entry["moods"]))
            for key, entry in raw["categories"].items()
        }
    )


MOOD_CATEGORIES: Mapping[str, MoodCategory] = _load_categories()

_category_genres: dict[str, tuple[str, ...]] = {}
_category_lock = threading.Lock()


def get_mood_category(category: str) -> Optional[MoodCategory]:
    return MOOD_CATEGORIES.get(category.strip().lower())


def select_moods_for_category(category: str, count: int, rng: Rng = default_rng) -> list[str]:
    entry = get_mood_category(category)
    if entry is None:
        return []
    return select_random_n(entry.moods, count, rng)


def _matches(genre_mood: str, category_moods: Sequence[str]) -> bool:
    return any(mood in genre_mood or genre_mood in mood for mood in category_moods)


def genres_for_category(category: str) -> tuple[str, ...]:
    """Registry genres whose moods overlap the category's moods."""
    entry = get_mood_category(category)
    if entry is None:
        return ()
    with _category_lock:
        cached = _category_genres.get(entry.key)
        if cached is not None:
            return cached
        category_moods = [mood.lower() for mood in entry.moods]
        genres = tuple(
            key
            for key, definition in GENRE_REGISTRY.items()
            if any(_matches(mood.lower(), category_moods) for mood in definition.moods)
        )
        _category_genres[entry.key] = genres
        return genres


def clear_category_cache() -> None:
    with _category_lock:
        _category_genres.clear()


def select_genre_for_mood_category(category: str, rng: Rng = default_rng) -> Optional[str]:
    return pick_random(genres_for_category(category), rng)


def select_moods_for_genres(
    genres: Sequence[str], per_genre: int = 2, rng: Rng = default_rng
) -> list[str]:
    moods: list[str] = []
    for genre in genres:
        definition = get_genre(genre)
        if definition is None:
            continue
        moods.extend(select_random_n(definition.moods, per_genre, rng))
    return dedupe(moods)
