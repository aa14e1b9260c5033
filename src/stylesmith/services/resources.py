"""Loading helpers for the JSON tables bundled under ``stylesmith/data``."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable

from .exceptions import RegistryDataError

DATA_DIR = Path(__file__).resolve().parents[1] / "data"


def load_resource(name: str) -> dict[str, Any]:
    path = DATA_DIR / name
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:  # pragma: no cover - configuration error
        raise RegistryDataError(f"data file missing at {path}") from exc
    except json.JSONDecodeError as exc:  # pragma: no cover - configuration error
        raise RegistryDataError(f"data file {path} is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):  # pragma: no cover - configuration error
        raise RegistryDataError(f"data file {path} must contain a JSON object")
    return raw


def dedupe(items: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        result.append(item)
    return result
