"""Sanitize prompt text: deterministic rules first, async rewriters as fallback.

Each stage returns a ``StageResult``; a stage that does not succeed on its own
escalates to one of the injected collaborator coroutines. Collaborators are
awaited one at a time and their exceptions propagate unchanged.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, NamedTuple, Optional, Protocol, Sequence

from loguru import logger

from .injection import LOCKED_PHRASE_PLACEHOLDER, swap_locked_phrase_in, swap_locked_phrase_out
from .trace import TraceSink

DEFAULT_MAX_CHARS = 1000
DEFAULT_MIN_CHARS = 20
REPEATED_WORD_THRESHOLD = 3
MIN_REPEAT_WORD_LENGTH = 4

LEAKED_META_SUBSTRINGS = (
    "remove word repetition",
    "remove repetition",
    "these words repeat",
    "output only",
    "condense to under",
    "strict constraints",
    "here's the revised prompt",
    "here is the revised prompt",
)

_META_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\[Note:.*?\]", re.IGNORECASE), ""),
    (re.compile(r"\(Note:.*?\)", re.IGNORECASE), ""),
    (re.compile(r"^Note:.*$", re.IGNORECASE | re.MULTILINE), ""),
    (re.compile(r"\*\*Note\*\*:.*$", re.IGNORECASE | re.MULTILINE), ""),
    (re.compile(r"^Instructions?:.*$", re.IGNORECASE | re.MULTILINE), ""),
    (re.compile(r"^Output:.*$", re.IGNORECASE | re.MULTILINE), ""),
    (re.compile(r"^Response:.*$", re.IGNORECASE | re.MULTILINE), ""),
    (re.compile(r"^Here is.*:$", re.IGNORECASE | re.MULTILINE), ""),
    (re.compile(r"^Here's.*:$", re.IGNORECASE | re.MULTILINE), ""),
    (re.compile(r"\n{3,}"), "\n\n"),
)
_WORD_SPLIT = re.compile(r"[\s,;.()\[\]]+")
_GENRE_FIELD = re.compile(r"^Genre:\s*(.+)$", re.MULTILINE)
_MOOD_FIELD = re.compile(r"^Mood:\s*([^,\n]+)", re.MULTILINE)

DEFAULT_HEADER_GENRE = "Cinematic"
DEFAULT_HEADER_MOOD = "Evocative"

Rewrite = Callable[[str], Awaitable[str]]
DedupRewrite = Callable[[str, Sequence[str]], Awaitable[str]]


class StageResult(NamedTuple):
    text: str
    succeeded: bool


class PromptRewriter(Protocol):
    async def rewrite_without_meta(self, text: str) -> str: ...

    async def condense(self, text: str) -> str: ...

    async def condense_with_dedup(self, text: str, repeated_words: Sequence[str]) -> str: ...


class PassthroughRewriter:
    """Rewriter used when no language model is configured; returns text unchanged."""

    async def rewrite_without_meta(self, text: str) -> str:
        return text

    async def condense(self, text: str) -> str:
        return text

    async def condense_with_dedup(self, text: str, repeated_words: Sequence[str]) -> str:
        return text


@dataclass(frozen=True)
class PostProcessOptions:
    rewrite_without_meta: Rewrite
    condense: Rewrite
    condense_with_dedup: DedupRewrite
    max_chars: int = DEFAULT_MAX_CHARS
    min_chars: int = DEFAULT_MIN_CHARS

    @classmethod
    def from_rewriter(
        cls,
        rewriter: PromptRewriter,
        *,
        max_chars: int = DEFAULT_MAX_CHARS,
        min_chars: int = DEFAULT_MIN_CHARS,
    ) -> "PostProcessOptions":
        return cls(
            rewrite_without_meta=rewriter.rewrite_without_meta,
            condense=rewriter.condense,
            condense_with_dedup=rewriter.condense_with_dedup,
            max_chars=max_chars,
            min_chars=min_chars,
        )


def has_leaked_meta(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in LEAKED_META_SUBSTRINGS)


def strip_leaked_meta_lines(text: str) -> str:
    kept = [line for line in text.split("\n") if not has_leaked_meta(line)]
    return "\n".join(kept).strip()


def strip_meta_deterministic(text: str) -> str:
    result = text
    for pattern, replacement in _META_PATTERNS:
        result = pattern.sub(replacement, result)
    return result.strip()


def strip_meta_stage(text: str) -> StageResult:
    cleaned = strip_meta_deterministic(strip_leaked_meta_lines(text))
    return StageResult(cleaned, not has_leaked_meta(cleaned))


def validate_and_fix_format(text: str) -> str:
    """Ensure the prompt opens with a bracketed header line."""
    trimmed = text.strip()
    if trimmed.startswith("["):
        return trimmed
    genre_match = _GENRE_FIELD.search(trimmed)
    mood_match = _MOOD_FIELD.search(trimmed)
    genre = genre_match.group(1).strip() if genre_match else DEFAULT_HEADER_GENRE
    mood = mood_match.group(1).strip() if mood_match else DEFAULT_HEADER_MOOD
    return f"[{mood}, {genre}, Key: C Major]\n\n{trimmed}"


def dedup_deterministic(text: str) -> str:
    seen: set[str] = set()
    kept: list[str] = []
    for line in text.split("\n"):
        key = line.strip()
        if not key:
            kept.append(line)
            continue
        if key in seen:
            continue
        seen.add(key)
        kept.append(line)
    return "\n".join(kept)


def detect_repeated_words(text: str) -> list[str]:
    seen: set[str] = set()
    repeated: list[str] = []
    for word in _WORD_SPLIT.split(text.lower()):
        if len(word) < MIN_REPEAT_WORD_LENGTH:
            continue
        if word in seen:
            if word not in repeated:
                repeated.append(word)
            continue
        seen.add(word)
    return repeated


def dedup_successful(text: str, threshold: int = REPEATED_WORD_THRESHOLD) -> bool:
    return len(detect_repeated_words(text)) <= threshold


def dedup_stage(text: str) -> StageResult:
    deduped = dedup_deterministic(text)
    return StageResult(deduped, dedup_successful(deduped))


def truncate_to_limit(text: str, limit: int) -> str:
    """Hard-truncate with an ellipsis, preferring a line or comma break past 70%."""
    if len(text) <= limit:
        return text
    if limit <= 3:
        return text[:limit]
    cut = text[: limit - 3]
    boundary = max(cut.rfind("\n"), cut.rfind(","))
    if boundary > limit * 0.7:
        cut = cut[:boundary]
    return f"{cut}..."


async def _call_collaborator(
    name: str,
    call: Awaitable[str],
    before: str,
    trace: Optional[TraceSink],
) -> str:
    logger.info("Post-processing escalated to {} ({} chars)", name, len(before))
    try:
        result = await call
    except Exception:
        logger.exception("Post-processing collaborator {} failed", name)
        if trace is not None:
            trace.record_error(domain="postprocess", key=name, message="collaborator failed")
        raise
    if trace is not None:
        trace.record_rewrite(stage=name, before_chars=len(before), after_chars=len(result))
    return result


async def enforce_length_limit(
    text: str,
    max_chars: int,
    condense: Rewrite,
    trace: Optional[TraceSink] = None,
) -> StageResult:
    if len(text) <= max_chars:
        return StageResult(text, True)
    condensed = await _call_collaborator("condense", condense(text), text, trace)
    if len(condensed) <= max_chars:
        return StageResult(condensed, True)
    return StageResult(truncate_to_limit(condensed, max_chars), False)


async def post_process(
    text: str,
    options: PostProcessOptions,
    trace: Optional[TraceSink] = None,
) -> str:
    """Run the full sanitation pipeline over ``text``."""
    original = text.strip()

    stripped = strip_meta_stage(original)
    result = stripped.text
    if not stripped.succeeded:
        rewritten = await _call_collaborator(
            "rewrite_without_meta", options.rewrite_without_meta(result), result, trace
        )
        result = strip_meta_stage(rewritten).text

    result = validate_and_fix_format(result)

    deduped = dedup_stage(result)
    result = deduped.text
    if not deduped.succeeded:
        repeated = detect_repeated_words(result)
        result = await _call_collaborator(
            "condense_with_dedup", options.condense_with_dedup(result, repeated), result, trace
        )

    result = (await enforce_length_limit(result, options.max_chars, options.condense, trace)).text

    final = strip_meta_stage(result)
    result = final.text
    if not final.succeeded:
        rewritten = await _call_collaborator(
            "rewrite_without_meta", options.rewrite_without_meta(result), result, trace
        )
        result = strip_leaked_meta_lines(rewritten)

    result = truncate_to_limit(result, options.max_chars).strip()

    if len(result) < options.min_chars:
        logger.info("Post-processing fell below {} chars; returning original text", options.min_chars)
        return original
    return result


async def post_process_locked(
    text: str,
    options: PostProcessOptions,
    locked_phrase: Optional[str] = None,
    trace: Optional[TraceSink] = None,
) -> str:
    """Run ``post_process`` with ``locked_phrase`` hidden behind a placeholder.

    The length budget shrinks by however much longer the phrase is than the
    placeholder, so the restored text still fits ``options.max_chars``.
    """
    phrase = locked_phrase.strip() if locked_phrase else None
    protected = swap_locked_phrase_in(text, phrase)
    occurrences = protected.count(LOCKED_PHRASE_PLACEHOLDER)
    if not phrase or not occurrences:
        return await post_process(text, options, trace)

    growth = max(len(phrase) - len(LOCKED_PHRASE_PLACEHOLDER), 0) * occurrences
    max_chars = max(options.max_chars - growth, 1)
    budgeted = replace(
        options,
        max_chars=max_chars,
        min_chars=min(options.min_chars, max_chars - 1),
    )
    result = await post_process(protected, budgeted, trace)
    return swap_locked_phrase_out(result, phrase)
