"""
CLI entry point to build and post-process a single style prompt.

Example:
    python -m stylesmith.generate --description "smoky late night club" --seed 42 --max
"""

from __future__ import annotations

import argparse
import asyncio
from typing import Optional

from .app.settings import Settings
from .services.blender import GuidanceCache
from .services.builder import build_prompt
from .services.exceptions import InvalidLockedPhraseError
from .services.formatter import PromptFormat
from .services.moods import MOOD_CATEGORIES
from .services.postprocess import PassthroughRewriter, PostProcessOptions, post_process_locked
from .services.rng import seeded_rng
from .services.trace import TraceCollector


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate a music style prompt.")
    parser.add_argument("--description", default="", help="Free-text description of the track.")
    parser.add_argument("--genre", default=None, help="Genre override, e.g. 'jazz rock'.")
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for reproducible selection (omit for a random prompt).",
    )
    parser.add_argument("--max", action="store_true", help="Render the max-mode layout.")
    parser.add_argument(
        "--mood",
        choices=sorted(MOOD_CATEGORIES.keys()),
        default=None,
        help="Mood category used for the mood words.",
    )
    parser.add_argument("--locked-phrase", default=None, help="Phrase forced into the instruments.")
    parser.add_argument(
        "--max-chars",
        type=int,
        default=None,
        help="Character budget override (defaults to settings).",
    )
    parser.add_argument("--trace", action="store_true", help="Print a decision trace summary.")
    return parser.parse_args(argv)


async def _run(
    description: str,
    *,
    genre: Optional[str],
    seed: Optional[int],
    max_format: bool,
    mood: Optional[str],
    locked_phrase: Optional[str],
    max_chars: Optional[int],
    trace_enabled: bool,
) -> None:
    settings = Settings()
    config = settings.builder_config(max_chars)
    trace = TraceCollector() if trace_enabled or settings.trace_enabled else None

    prompt = build_prompt(
        description,
        genre=genre,
        prompt_format=PromptFormat.MAX if max_format else PromptFormat.STANDARD,
        mood_category=mood,
        locked_phrase=locked_phrase,
        rng=None if seed is None else seeded_rng(seed),
        cache=GuidanceCache(settings.guidance_cache_size),
        trace=trace,
        config=config,
    )
    options = PostProcessOptions.from_rewriter(
        PassthroughRewriter(),
        max_chars=config.max_chars,
        min_chars=min(settings.min_prompt_chars, config.max_chars - 1),
    )
    text = await post_process_locked(prompt.text, options, locked_phrase, trace)

    print(text)
    print()
    metadata = prompt.metadata
    if metadata is not None:
        print(f"genre         : {metadata.genre}")
        print(f"instruments   : {', '.join(metadata.instruments)}")
        print(f"progression   : {metadata.chord_progression}")
        print(f"vocal         : {metadata.vocal_style}")
        print(f"production    : {metadata.production}")
        print(f"bpm           : {metadata.bpm}")
        print(f"harmonic      : {metadata.harmonic or 'none'}")
        print(f"time_signature: {metadata.time_signature}")
        print(f"length        : {len(text)}")
    if trace is not None:
        summary = trace.summary()
        print(f"trace         : {trace.run_id} {summary}")


def main(argv: Optional[list[str]] = None) -> None:
    args = _parse_args(argv)
    try:
        asyncio.run(
            _run(
                args.description,
                genre=args.genre,
                seed=args.seed,
                max_format=args.max,
                mood=args.mood,
                locked_phrase=args.locked_phrase,
                max_chars=args.max_chars,
                trace_enabled=args.trace,
            )
        )
    except InvalidLockedPhraseError as exc:
        raise SystemExit(f"invalid locked phrase: {exc.reason}") from exc


if __name__ == "__main__":
    main()
