"""Symmetric genre fusion scores loaded from ``data/compatibility.json``."""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Sequence

from loguru import logger

from .exceptions import RegistryDataError
from .registry import GENRE_REGISTRY
from .resources import load_resource

DEFAULT_FUSION_THRESHOLD = 0.5


def is_valid_score(value: float) -> bool:
    return 0.0 <= value <= 1.0


def _load_matrix() -> tuple[Mapping[str, Mapping[str, float]], float]:
    raw = load_resource("compatibility.json")
    threshold = float(raw.get("fusion_threshold", DEFAULT_FUSION_THRESHOLD))
    matrix: dict[str, dict[str, float]] = {}
    seen: set[frozenset[str]] = set()
    for genre, row in raw["pairs"].items():
        for other, value in row.items():
            for key in (genre, other):
                if key not in GENRE_REGISTRY:  # pragma: no cover - configuration error
                    raise RegistryDataError(f"compatibility table names unknown genre '{key}'")
            pair = frozenset((genre, other))
            if genre == other or pair in seen:  # pragma: no cover - configuration error
                raise RegistryDataError(f"compatibility pair {genre}/{other} is duplicated")
            score = float(value)
            if not is_valid_score(score):  # pragma: no cover - configuration error
                raise RegistryDataError(f"compatibility {genre}/{other} out of range: {score}")
            seen.add(pair)
            matrix.setdefault(genre, {})[other] = score
    logger.debug("Loaded {} genre compatibility pairs", len(seen))
    frozen = {genre: MappingProxyType(row) for genre, row in matrix.items()}
    return MappingProxyType(frozen), threshold


_MATRIX, FUSION_THRESHOLD = _load_matrix()


def score(a: str, b: str) -> float:
    """Fusion affinity of two genres; identical genres score 1.0, unknown pairs 0.0."""
    left = a.strip().lower()
    right = b.strip().lower()
    if left == right:
        return 1.0
    direct = _MATRIX.get(left, {}).get(right)
    if direct is not None:
        return direct
    return _MATRIX.get(right, {}).get(left, 0.0)


def can_fuse(a: str, b: str, threshold: float = FUSION_THRESHOLD) -> bool:
    return score(a, b) >= threshold


def all_can_fuse(genres: Sequence[str], threshold: float = FUSION_THRESHOLD) -> bool:
    return all(
        can_fuse(first, second, threshold)
        for index, first in enumerate(genres)
        for second in genres[index + 1 :]
    )


def compatible_genres(genre: str, threshold: float = FUSION_THRESHOLD) -> list[tuple[str, float]]:
    """Genres fusable with ``genre``, highest score first."""
    key = genre.strip().lower()
    merged: dict[str, float] = {}
    for other, value in _MATRIX.get(key, {}).items():
        merged[other] = value
    for other, row in _MATRIX.items():
        value = row.get(key)
        if value is not None:
            merged.setdefault(other, value)
    ranked = [(other, value) for other, value in merged.items() if value >= threshold]
    ranked.sort(key=lambda item: (-item[1], item[0]))
    return ranked
