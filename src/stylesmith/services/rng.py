"""Seedable random sources and the sampling helpers built on them.

Every selection routine takes an ``Rng``: a zero-argument callable returning a
float in ``[0, 1)``. Passing ``seeded_rng(seed)`` makes a run reproducible;
``default_rng`` is only used by outer convenience wrappers.
"""

from __future__ import annotations

import math
import random
from typing import Callable, Optional, Sequence, TypeVar

Rng = Callable[[], float]
T = TypeVar("T")

_MASK32 = 0xFFFFFFFF
_MULBERRY_INCREMENT = 0x6D2B79F5

default_rng: Rng = random.random


def _imul(a: int, b: int) -> int:
    return (a * b) & _MASK32


def seeded_rng(seed: int) -> Rng:
    """Return a Mulberry32 generator; identical seeds give identical streams."""
    state = seed & _MASK32

    def _next() -> float:
        nonlocal state
        state = (state + _MULBERRY_INCREMENT) & _MASK32
        value = _imul(state ^ (state >> 15), state | 1)
        value ^= (value + _imul(value ^ (value >> 7), value | 61)) & _MASK32
        return ((value ^ (value >> 14)) & _MASK32) / 4294967296

    return _next


def rng_for_seed(seed: Optional[int]) -> Rng:
    return default_rng if seed is None else seeded_rng(seed)


def pick_random(items: Sequence[T], rng: Rng = default_rng) -> Optional[T]:
    if not items:
        return None
    return items[math.floor(rng() * len(items))]


def select_random(items: Sequence[T], rng: Rng = default_rng) -> T:
    if not items:
        raise ValueError("cannot select from an empty sequence")
    return items[math.floor(rng() * len(items))]


def shuffle(items: Sequence[T], rng: Rng = default_rng) -> list[T]:
    result = list(items)
    for index in range(len(result) - 1, 0, -1):
        swap = math.floor(rng() * (index + 1))
        result[index], result[swap] = result[swap], result[index]
    return result


def select_random_n(items: Sequence[T], count: int, rng: Rng = default_rng) -> list[T]:
    if count <= 0:
        return []
    return shuffle(items, rng)[:count]


def randint_inclusive(low: int, high: int, rng: Rng = default_rng) -> int:
    if high < low:
        low, high = high, low
    return low + math.floor(rng() * (high - low + 1))


def roll_chance(chance: Optional[float], rng: Rng = default_rng) -> bool:
    if chance is None:
        return True
    return rng() <= chance
