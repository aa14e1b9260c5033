"""Performance articulations prefixed onto instrument names."""

from __future__ import annotations

import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from .exceptions import RegistryDataError
from .resources import load_resource
from .rng import Rng, default_rng

DEFAULT_ARTICULATION_CHANCE = 0.4


@dataclass(frozen=True)
class ArticulationTable:
    articulations: Mapping[str, tuple[str, ...]]
    categories: Mapping[str, str]
    theme_chance: float
    themes: Mapping[str, Mapping[str, tuple[str, ...]]]


def _load_table() -> ArticulationTable:
    raw = load_resource("articulations.json")
    articulations = {
        category: tuple(words) for category, words in raw["articulations"].items()
    }
    categories: dict[str, str] = {}
    for category, instruments in raw["instruments"].items():
        if category not in articulations:  # pragma: no cover - configuration error
            raise RegistryDataError(f"articulation category '{category}' has no articulations")
        for instrument in instruments:
            categories[instrument.lower()] = category
    bias = raw.get("theme_bias", {})
    themes = {
        theme: MappingProxyType({category: tuple(words) for category, words in entry.items()})
        for theme, entry in bias.get("themes", {}).items()
    }
    return ArticulationTable(
        articulations=MappingProxyType(articulations),
        categories=MappingProxyType(categories),
        theme_chance=float(bias.get("chance", 0.0)),
        themes=MappingProxyType(themes),
    )


_TABLE = _load_table()


def instrument_category(instrument: str) -> Optional[str]:
    return _TABLE.categories.get(instrument.strip().lower())


def _themed_articulations(category: str, themes: Iterable[str]) -> list[str]:
    words: list[str] = []
    for theme in themes:
        for word in _TABLE.themes.get(theme.lower(), {}).get(category, ()):
            if word not in words:
                words.append(word)
    return words


def articulate_instrument(
    instrument: str,
    rng: Rng = default_rng,
    chance: float = DEFAULT_ARTICULATION_CHANCE,
    themes: Iterable[str] = (),
) -> str:
    """Return ``instrument`` prefixed with an articulation, e.g. "Fingerpicked acoustic guitar"."""
    if rng() > chance:
        return instrument
    category = instrument_category(instrument)
    if category is None:
        return instrument
    options = list(_TABLE.articulations[category])
    themed = _themed_articulations(category, themes)
    if themed and rng() < _TABLE.theme_chance:
        options = themed
    articulation = options[math.floor(rng() * len(options))]
    return f"{articulation} {instrument}"
