"""Blend vocal, production and harmonic guidance across genre components."""

from __future__ import annotations

import math
import threading
from collections import Counter, OrderedDict
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Mapping, Optional, Sequence, Union

from loguru import logger

from .articulations import DEFAULT_ARTICULATION_CHANCE, articulate_instrument
from .compatibility import all_can_fuse
from .exceptions import RegistryDataError
from .moods import select_moods_for_genres
from .progressions import ChordProgression, build_progression_descriptor, random_progression
from .ranges import NARROW_RANGE_SPREAD, RangeResult, blended_range, format_bpm_range
from .registry import GENRE_REGISTRY
from .resolver import parse_genre_components
from .resources import dedupe, load_resource
from .rng import Rng, default_rng, pick_random, select_random
from .selector import DEFAULT_MAX_INSTRUMENTS, select_instruments

DEFAULT_CACHE_SIZE = 100
TOP_HALF_PROBABILITY = 0.75

FALLBACK_VOCAL_RANGE = "Tenor"
FALLBACK_DELIVERY = "Smooth"
FALLBACK_TECHNIQUE = "Stacked Harmonies"
FALLBACK_TEXTURE = "Polished Production"
FALLBACK_REVERB = "Studio Reverb"


@dataclass(frozen=True)
class VocalStyle:
    ranges: tuple[str, ...]
    deliveries: tuple[str, ...]
    techniques: tuple[str, ...]


@dataclass(frozen=True)
class ProductionStyle:
    reverbs: tuple[str, ...]
    textures: tuple[str, ...]
    dynamics: tuple[str, ...]


@dataclass(frozen=True)
class StyleTables:
    default_vocal: VocalStyle
    vocal: Mapping[str, VocalStyle]
    default_production: ProductionStyle
    production: Mapping[str, ProductionStyle]
    default_modes: tuple[str, ...]
    modes: Mapping[str, tuple[str, ...]]
    default_time_signatures: tuple[str, ...]
    time_signatures: Mapping[str, tuple[str, ...]]
    polyrhythms: Mapping[str, tuple[str, ...]]
    polyrhythm_descriptions: Mapping[str, str]
    recording_descriptors: tuple[str, ...]
    musical_keys: tuple[str, ...]
    musical_modes: tuple[str, ...]


def _vocal(entry: dict) -> VocalStyle:
    return VocalStyle(
        ranges=tuple(entry.get("ranges", [])),
        deliveries=tuple(entry.get("deliveries", [])),
        techniques=tuple(entry.get("techniques", [])),
    )


def _production(entry: dict) -> ProductionStyle:
    return ProductionStyle(
        reverbs=tuple(entry.get("reverbs", [])),
        textures=tuple(entry.get("textures", [])),
        dynamics=tuple(entry.get("dynamics", [])),
    )


def _genre_map(entries: dict, build: Callable[[object], object]) -> Mapping:
    unknown = sorted(genre for genre in entries if genre not in GENRE_REGISTRY)
    if unknown:  # pragma: no cover - configuration error
        raise RegistryDataError(f"style tables reference unknown genres {unknown}")
    return MappingProxyType({genre: build(entry) for genre, entry in entries.items()})


def _load_styles() -> StyleTables:
    raw = load_resource("styles.json")
    polyrhythms = raw["polyrhythms"]
    descriptions = dict(polyrhythms["descriptions"])
    for genre, keys in polyrhythms["genres"].items():
        missing = [key for key in keys if key not in descriptions]
        if missing:  # pragma: no cover - configuration error
            raise RegistryDataError(f"polyrhythms for '{genre}' lack descriptions: {missing}")
    return StyleTables(
        default_vocal=_vocal(raw["vocal"]["default"]),
        vocal=_genre_map(raw["vocal"]["genres"], _vocal),
        default_production=_production(raw["production"]["default"]),
        production=_genre_map(raw["production"]["genres"], _production),
        default_modes=tuple(raw["harmonic_modes"]["default"]),
        modes=_genre_map(raw["harmonic_modes"]["genres"], tuple),
        default_time_signatures=tuple(raw["time_signatures"]["default"]),
        time_signatures=_genre_map(raw["time_signatures"]["genres"], tuple),
        polyrhythms=_genre_map(polyrhythms["genres"], tuple),
        polyrhythm_descriptions=MappingProxyType(descriptions),
        recording_descriptors=tuple(raw["recording_descriptors"]),
        musical_keys=tuple(raw["musical_keys"]),
        musical_modes=tuple(raw["musical_modes"]),
    )


STYLES = _load_styles()


def collect_unique(components: Sequence[str], lookup: Callable[[str], Sequence[str]]) -> list[str]:
    values: list[str] = []
    for component in components:
        values.extend(lookup(component))
    return dedupe(values)


def _vocal_for(genre: str) -> VocalStyle:
    return STYLES.vocal.get(genre, STYLES.default_vocal)


def _production_for(genre: str) -> ProductionStyle:
    return STYLES.production.get(genre, STYLES.default_production)


def blended_vocal_descriptor(components: Sequence[str], rng: Rng = default_rng) -> str:
    """Vocal line descriptor drawn from the union of the component styles."""
    vocal_range = pick_random(collect_unique(components, lambda g: _vocal_for(g).ranges), rng)
    delivery = pick_random(collect_unique(components, lambda g: _vocal_for(g).deliveries), rng)
    technique = pick_random(collect_unique(components, lambda g: _vocal_for(g).techniques), rng)
    return (
        f"{vocal_range or FALLBACK_VOCAL_RANGE}, "
        f"{delivery or FALLBACK_DELIVERY} Delivery, "
        f"{technique or FALLBACK_TECHNIQUE}"
    )


def blended_production_descriptor(components: Sequence[str], rng: Rng = default_rng) -> str:
    texture = pick_random(collect_unique(components, lambda g: _production_for(g).textures), rng)
    reverb = pick_random(collect_unique(components, lambda g: _production_for(g).reverbs), rng)
    return f"{texture or FALLBACK_TEXTURE}, {reverb or FALLBACK_REVERB}"


def _mode_label(mode: str) -> str:
    return mode.replace("_", " ").title()


@dataclass(frozen=True)
class ModeCombination:
    primary: str
    secondary: str

    def describe(self) -> str:
        return f"{_mode_label(self.primary)} and {_mode_label(self.secondary)} modal fusion"


@dataclass(frozen=True)
class SingleMode:
    mode: str

    def describe(self) -> str:
        return f"{_mode_label(self.mode)} mode"


HarmonicGuidance = Union[ModeCombination, SingleMode, None]


def blended_harmonic_guidance(components: Sequence[str], rng: Rng = default_rng) -> HarmonicGuidance:
    if not components:
        return None
    modes = collect_unique(components, lambda g: STYLES.modes.get(g, STYLES.default_modes))
    if len(components) >= 2 and len(modes) >= 2 and all_can_fuse(components):
        primary = select_random(modes, rng)
        secondary = select_random([mode for mode in modes if mode != primary], rng)
        return ModeCombination(primary=primary, secondary=secondary)
    return SingleMode(mode=select_random(modes, rng))


def blended_time_signature(components: Sequence[str], rng: Rng = default_rng) -> str:
    """Favour signatures shared by several components."""
    counts: Counter[str] = Counter()
    order: list[str] = []
    for component in components:
        for signature in STYLES.time_signatures.get(component, STYLES.default_time_signatures):
            if signature not in counts:
                order.append(signature)
            counts[signature] += 1
    if not order:
        order = list(STYLES.default_time_signatures)
        counts.update(order)
    ranked = sorted(order, key=lambda signature: -counts[signature])
    top_half = ranked[: math.ceil(len(ranked) / 2)]
    if rng() < TOP_HALF_PROBABILITY:
        return select_random(top_half, rng)
    return select_random(ranked, rng)


def blended_polyrhythm(components: Sequence[str], rng: Rng = default_rng) -> Optional[str]:
    keys = collect_unique(components, lambda g: STYLES.polyrhythms.get(g, ()))
    chosen = pick_random(keys, rng)
    if chosen is None:
        return None
    return STYLES.polyrhythm_descriptions[chosen]


@dataclass(frozen=True)
class PerformanceGuidance:
    vocal: str
    production: str
    instruments: tuple[str, ...]


class GuidanceCache:
    """Bounded FIFO memo of performance guidance keyed by genre text."""

    def __init__(self, max_size: int = DEFAULT_CACHE_SIZE) -> None:
        self.max_size = max_size
        self._entries: OrderedDict[str, PerformanceGuidance] = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def key_for(genre_text: str) -> str:
        return genre_text.lower().strip()

    def get(self, genre_text: str) -> Optional[PerformanceGuidance]:
        with self._lock:
            return self._entries.get(self.key_for(genre_text))

    def put(self, genre_text: str, guidance: PerformanceGuidance) -> None:
        if self.max_size <= 0:
            return
        key = self.key_for(genre_text)
        with self._lock:
            if key not in self._entries:
                while len(self._entries) >= self.max_size:
                    self._entries.popitem(last=False)
            self._entries[key] = guidance

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, genre_text: object) -> bool:
        if not isinstance(genre_text, str):
            return False
        with self._lock:
            return self.key_for(genre_text) in self._entries


def performance_guidance(
    genre_text: str,
    rng: Optional[Rng] = None,
    *,
    cache: Optional[GuidanceCache] = None,
    max_instruments: int = DEFAULT_MAX_INSTRUMENTS,
    articulation_chance: float = DEFAULT_ARTICULATION_CHANCE,
) -> Optional[PerformanceGuidance]:
    """Vocal, production and instrument guidance; memoised only without a caller RNG."""
    components = parse_genre_components(genre_text)
    if not components:
        return None
    use_cache = rng is None and cache is not None
    if use_cache:
        cached = cache.get(genre_text)
        if cached is not None:
            logger.debug("Guidance cache hit for '{}'", genre_text)
            return cached
        logger.debug("Guidance cache miss for '{}'", genre_text)
    source = rng or default_rng
    instruments = select_instruments(components, max_instruments=max_instruments, rng=source)
    guidance = PerformanceGuidance(
        vocal=blended_vocal_descriptor(components, source),
        production=blended_production_descriptor(components, source),
        instruments=tuple(
            articulate_instrument(instrument, source, articulation_chance)
            for instrument in instruments
        ),
    )
    if use_cache:
        cache.put(genre_text, guidance)
    return guidance


@dataclass(frozen=True)
class GuidanceBundle:
    genre_text: str
    components: tuple[str, ...]
    instruments: tuple[str, ...]
    vocal: str
    production: str
    moods: tuple[str, ...]
    progression: ChordProgression
    bpm_range: Optional[RangeResult]
    bpm_text: Optional[str]
    harmonic: HarmonicGuidance
    time_signature: str
    polyrhythm: Optional[str]

    @property
    def chord_progression(self) -> str:
        return build_progression_descriptor(self.progression)


def guidance_bundle(
    genre_text: str,
    rng: Optional[Rng] = None,
    *,
    cache: Optional[GuidanceCache] = None,
    max_instruments: int = DEFAULT_MAX_INSTRUMENTS,
    articulation_chance: float = DEFAULT_ARTICULATION_CHANCE,
    spread: int = NARROW_RANGE_SPREAD,
    progression: Optional[ChordProgression] = None,
) -> Optional[GuidanceBundle]:
    components = parse_genre_components(genre_text)
    if not components:
        return None
    performance = performance_guidance(
        genre_text,
        rng,
        cache=cache,
        max_instruments=max_instruments,
        articulation_chance=articulation_chance,
    )
    if performance is None:
        return None
    source = rng or default_rng
    bpm = blended_range(genre_text, spread)
    return GuidanceBundle(
        genre_text=genre_text,
        components=tuple(components),
        instruments=performance.instruments,
        vocal=performance.vocal,
        production=performance.production,
        moods=tuple(mood.lower() for mood in select_moods_for_genres(components, 2, source)),
        progression=progression or random_progression(components[0], source),
        bpm_range=bpm,
        bpm_text=None if bpm is None else format_bpm_range(bpm),
        harmonic=blended_harmonic_guidance(components, source),
        time_signature=blended_time_signature(components, source),
        polyrhythm=blended_polyrhythm(components, source),
    )
