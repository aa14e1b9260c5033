"""BPM range blending across genre components."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Optional, Sequence

from .registry import BpmRange, get_genre
from .resolver import parse_genre_components
from .rng import Rng, default_rng, randint_inclusive

NARROW_RANGE_SPREAD = 60

_MAX_BPM_LINE = re.compile(r'^bpm:\s*"[^"]*"', re.IGNORECASE | re.MULTILINE)
_STANDARD_BPM_LINE = re.compile(r"^BPM:.*$", re.MULTILINE)


@dataclass(frozen=True)
class RangeResult:
    min: int
    max: int
    is_intersection: bool


def is_valid_range(result: Optional[RangeResult]) -> bool:
    return result is not None and 0 < result.min <= result.max


def blend_ranges(ranges: Sequence[BpmRange], spread: int = NARROW_RANGE_SPREAD) -> Optional[RangeResult]:
    """Intersect the ranges, or narrow their union around its midpoint when disjoint."""
    if not ranges:
        return None
    if len(ranges) == 1:
        return RangeResult(min=ranges[0].min, max=ranges[0].max, is_intersection=True)
    low = max(item.min for item in ranges)
    high = min(item.max for item in ranges)
    if low <= high:
        return RangeResult(min=low, max=high, is_intersection=True)
    union_min = min(item.min for item in ranges)
    union_max = max(item.max for item in ranges)
    midpoint = (union_min + union_max) / 2
    return RangeResult(
        min=max(union_min, math.floor(midpoint - spread / 2)),
        max=min(union_max, math.ceil(midpoint + spread / 2)),
        is_intersection=False,
    )


def blended_range(genre_text: str, spread: int = NARROW_RANGE_SPREAD) -> Optional[RangeResult]:
    ranges = []
    for component in parse_genre_components(genre_text):
        definition = get_genre(component)
        if definition is not None and definition.bpm is not None:
            ranges.append(definition.bpm)
    return blend_ranges(ranges, spread)


def format_bpm_range(result: RangeResult) -> str:
    return f"between {result.min} and {result.max}"


def bpm_text_for_genre(
    genre_text: str, default: Optional[str] = None, spread: int = NARROW_RANGE_SPREAD
) -> Optional[str]:
    result = blended_range(genre_text, spread)
    if result is None:
        return default
    return format_bpm_range(result)


def random_bpm_from_range(result: RangeResult, rng: Rng = default_rng) -> int:
    return randint_inclusive(result.min, result.max, rng)


def inject_bpm_range(prompt: str, genre_text: str, max_format: bool) -> str:
    """Rewrite an existing BPM line with the blended range of ``genre_text``."""
    text = bpm_text_for_genre(genre_text)
    if text is None:
        return prompt
    if max_format:
        return _MAX_BPM_LINE.sub(lambda _match: f'bpm: "{text}"', prompt, count=1)
    return _STANDARD_BPM_LINE.sub(lambda _match: f"BPM: {text}", prompt, count=1)
