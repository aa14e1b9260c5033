"""Static genre registry loaded from ``data/genres.json``."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional

from loguru import logger

from .exceptions import RegistryDataError
from .resources import load_resource


@dataclass(frozen=True)
class InstrumentPool:
    name: str
    min_pick: int
    max_pick: int
    instruments: tuple[str, ...]
    chance: Optional[float] = None


@dataclass(frozen=True)
class BpmRange:
    min: int
    max: int
    typical: int


@dataclass(frozen=True)
class GenreDefinition:
    key: str
    name: str
    keywords: tuple[str, ...]
    description: str
    pools: Mapping[str, InstrumentPool]
    pool_order: tuple[str, ...]
    max_tags: int
    exclusions: tuple[tuple[str, str], ...]
    bpm: Optional[BpmRange]
    moods: tuple[str, ...]

    def ordered_pools(self) -> list[InstrumentPool]:
        return [self.pools[name] for name in self.pool_order]

    def all_instruments(self) -> list[str]:
        seen: list[str] = []
        for pool in self.ordered_pools():
            for instrument in pool.instruments:
                if instrument not in seen:
                    seen.append(instrument)
        return seen


def _build_pool(genre: str, name: str, entry: dict) -> InstrumentPool:
    instruments = tuple(entry["instruments"])
    min_pick = int(entry["pick"]["min"])
    max_pick = int(entry["pick"]["max"])
    if not 0 <= min_pick <= max_pick <= len(instruments):  # pragma: no cover - configuration error
        raise RegistryDataError(
            f"pool '{name}' of genre '{genre}' has invalid pick range {min_pick}..{max_pick}"
        )
    chance = entry.get("chance")
    if chance is not None and not 0.0 <= float(chance) <= 1.0:  # pragma: no cover - configuration error
        raise RegistryDataError(f"pool '{name}' of genre '{genre}' has invalid chance {chance}")
    return InstrumentPool(
        name=name,
        min_pick=min_pick,
        max_pick=max_pick,
        instruments=instruments,
        chance=None if chance is None else float(chance),
    )


def _build_bpm(genre: str, entry: Optional[dict]) -> Optional[BpmRange]:
    if entry is None:
        return None
    bpm = BpmRange(min=int(entry["min"]), max=int(entry["max"]), typical=int(entry["typical"]))
    if not bpm.min <= bpm.typical <= bpm.max:  # pragma: no cover - configuration error
        raise RegistryDataError(f"genre '{genre}' has inconsistent bpm {bpm}")
    return bpm


def _build_genre(key: str, entry: dict) -> GenreDefinition:
    pools = {name: _build_pool(key, name, pool) for name, pool in entry["pools"].items()}
    pool_order = tuple(entry.get("pool_order") or pools.keys())
    missing = [name for name in pool_order if name not in pools]
    if missing:  # pragma: no cover - configuration error
        raise RegistryDataError(f"genre '{key}' orders unknown pools {missing}")
    exclusions = []
    for pair in entry.get("exclusions", []):
        if len(pair) != 2:  # pragma: no cover - configuration error
            raise RegistryDataError(f"genre '{key}' has malformed exclusion {pair}")
        exclusions.append((str(pair[0]), str(pair[1])))
    return GenreDefinition(
        key=key,
        name=entry["name"],
        keywords=tuple(entry.get("keywords", [])),
        description=entry.get("description", ""),
        pools=MappingProxyType(pools),
        pool_order=pool_order,
        max_tags=int(entry["max_tags"]),
        exclusions=tuple(exclusions),
        bpm=_build_bpm(key, entry.get("bpm")),
        moods=tuple(entry.get("moods", [])),
    )


def _load_registry() -> Mapping[str, GenreDefinition]:
    raw = load_resource("genres.json")
    genres: dict[str, GenreDefinition] = {}
    for key, entry in raw["genres"].items():
        if key != key.lower():  # pragma: no cover - configuration error
            raise RegistryDataError(f"genre key '{key}' must be lowercase")
        try:
            genres[key] = _build_genre(key, entry)
        except KeyError as exc:  # pragma: no cover - configuration error
            raise RegistryDataError(f"genre '{key}' is missing field {exc}") from exc
    logger.debug("Loaded {} genre definitions", len(genres))
    return MappingProxyType(genres)


GENRE_REGISTRY: Mapping[str, GenreDefinition] = _load_registry()
ALL_GENRE_KEYS: tuple[str, ...] = tuple(GENRE_REGISTRY.keys())


def get_genre(key: str) -> Optional[GenreDefinition]:
    return GENRE_REGISTRY.get(key.strip().lower())
