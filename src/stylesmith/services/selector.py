"""Pool-based instrument selection with pairwise exclusion rules."""

from __future__ import annotations

import math
from typing import Iterable, Optional, Sequence

from .registry import GenreDefinition, InstrumentPool, get_genre
from .resources import dedupe
from .rng import Rng, default_rng, randint_inclusive, roll_chance, shuffle

DEFAULT_MAX_INSTRUMENTS = 5

ExclusionRule = tuple[str, str]


def has_exclusion(selected: Iterable[str], candidate: str, rules: Sequence[ExclusionRule]) -> bool:
    """True when ``candidate`` conflicts with an already selected instrument."""
    wanted = candidate.lower()
    chosen = [item.lower() for item in selected]
    for first, second in rules:
        left = first.lower()
        right = second.lower()
        for item in chosen:
            if left in wanted and right in item:
                return True
            if right in wanted and left in item:
                return True
    return False


def compute_pick_count(min_pick: int, max_pick: int, available: int, rng: Rng) -> int:
    return min(randint_inclusive(min_pick, max_pick, rng), available)


def pick_from_pool(
    pool: InstrumentPool,
    selected: Sequence[str],
    rules: Sequence[ExclusionRule],
    rng: Rng = default_rng,
) -> list[str]:
    if not roll_chance(pool.chance, rng):
        return []
    taken = {item.lower() for item in selected}
    available = [
        instrument
        for instrument in pool.instruments
        if instrument.lower() not in taken and not has_exclusion(selected, instrument, rules)
    ]
    count = compute_pick_count(pool.min_pick, pool.max_pick, len(available), rng)
    if count <= 0:
        return []
    picks: list[str] = []
    for candidate in shuffle(available, rng):
        if len(picks) >= count:
            break
        if candidate.lower() in {pick.lower() for pick in picks}:
            continue
        if has_exclusion([*selected, *picks], candidate, rules):
            continue
        picks.append(candidate)
    return picks


def _fill_from_genre(
    definition: GenreDefinition,
    selected: list[str],
    rules: Sequence[ExclusionRule],
    limit: int,
    rng: Rng,
) -> None:
    for pool in definition.ordered_pools():
        if len(selected) >= limit:
            break
        for pick in pick_from_pool(pool, selected, rules, rng):
            if len(selected) >= limit:
                break
            selected.append(pick)


def select_instruments_for_genre(
    genre: str,
    *,
    max_tags: Optional[int] = None,
    rng: Rng = default_rng,
    user_instruments: Sequence[str] = (),
) -> list[str]:
    """Instruments for a single genre; user instruments come first and count toward the cap."""
    definition = get_genre(genre)
    if definition is None:
        return dedupe(user_instruments)[: max_tags or DEFAULT_MAX_INSTRUMENTS]
    limit = max_tags if max_tags is not None else definition.max_tags
    selected = dedupe(user_instruments)[:limit]
    _fill_from_genre(definition, selected, definition.exclusions, limit, rng)
    return selected[:limit]


def select_instruments_for_genres(
    genres: Sequence[str],
    *,
    max_instruments: int = DEFAULT_MAX_INSTRUMENTS,
    rng: Rng = default_rng,
    user_instruments: Sequence[str] = (),
) -> list[str]:
    """Blend instruments across genres with shared selection and exclusion state.

    The remaining budget is split evenly across the genres still to be visited so
    every component gets a voice before the overall cap is reached.
    """
    definitions = [definition for definition in map(get_genre, genres) if definition is not None]
    selected = dedupe(user_instruments)[:max_instruments]
    rules: list[ExclusionRule] = []
    for definition in definitions:
        rules.extend(definition.exclusions)
    for index, definition in enumerate(definitions):
        remaining = max_instruments - len(selected)
        if remaining <= 0:
            break
        share = math.ceil(remaining / (len(definitions) - index))
        limit = len(selected) + min(share, definition.max_tags)
        _fill_from_genre(definition, selected, rules, limit, rng)
    return selected[:max_instruments]


def select_instruments(
    genres: Sequence[str],
    *,
    max_tags: Optional[int] = None,
    max_instruments: int = DEFAULT_MAX_INSTRUMENTS,
    rng: Rng = default_rng,
    user_instruments: Sequence[str] = (),
) -> list[str]:
    if len(genres) == 1:
        return select_instruments_for_genre(
            genres[0], max_tags=max_tags, rng=rng, user_instruments=user_instruments
        )
    return select_instruments_for_genres(
        genres, max_instruments=max_instruments, rng=rng, user_instruments=user_instruments
    )
