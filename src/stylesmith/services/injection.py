"""Inject a user-locked phrase into a prompt's instruments field."""

from __future__ import annotations

import re
from typing import Optional

from .exceptions import InvalidLockedPhraseError

LOCKED_PHRASE_PLACEHOLDER = "{{LOCKED_PHRASE}}"
DEFAULT_MAX_LOCKED_PHRASE_CHARS = 300

_QUOTED_INSTRUMENTS = re.compile(r'^(instruments:\s*")([^"]*)', re.IGNORECASE | re.MULTILINE)
_UNQUOTED_INSTRUMENTS = re.compile(r'^(instruments:[^\S\n]*)([^"\n]*)$', re.IGNORECASE | re.MULTILINE)


def validate_locked_phrase(
    phrase: str, max_chars: Optional[int] = DEFAULT_MAX_LOCKED_PHRASE_CHARS
) -> None:
    if "{{" in phrase or "}}" in phrase:
        raise InvalidLockedPhraseError(phrase, "locked phrase cannot contain {{ or }} template syntax")
    if max_chars is not None and len(phrase) > max_chars:
        raise InvalidLockedPhraseError(
            phrase, f"locked phrase exceeds {max_chars} characters"
        )


def is_valid_locked_phrase(
    phrase: str, max_chars: Optional[int] = DEFAULT_MAX_LOCKED_PHRASE_CHARS
) -> bool:
    try:
        validate_locked_phrase(phrase, max_chars)
    except InvalidLockedPhraseError:
        return False
    return True


def inject_locked_phrase(
    prompt: str,
    phrase: Optional[str],
    max_format: bool,
    max_chars: Optional[int] = DEFAULT_MAX_LOCKED_PHRASE_CHARS,
) -> str:
    """Append ``phrase`` to the instruments field, or as a final line when none exists.

    The quoted or unquoted field layout is detected from the prompt itself;
    ``max_format`` does not change where the phrase lands.

    Raises:
        InvalidLockedPhraseError: if the phrase carries template syntax or is too long.
    """
    if not phrase or not phrase.strip():
        return prompt
    phrase = phrase.strip()
    validate_locked_phrase(phrase, max_chars)

    match = _QUOTED_INSTRUMENTS.search(prompt)
    if match is not None:
        existing = match.group(2)
        addition = f", {phrase}" if existing.strip() else phrase
        return prompt[: match.end()] + addition + prompt[match.end() :]

    match = _UNQUOTED_INSTRUMENTS.search(prompt)
    if match is not None:
        prefix, existing = match.group(1), match.group(2)
        if existing.strip():
            replacement = f"{prefix}{existing.rstrip()}, {phrase}"
        elif prefix.endswith(" "):
            replacement = f"{prefix}{phrase}"
        else:
            replacement = f"{prefix} {phrase}"
        return prompt[: match.start()] + replacement + prompt[match.end() :]

    return f"{prompt}\n{phrase}"


def swap_locked_phrase_in(prompt: str, phrase: Optional[str]) -> str:
    """Replace the phrase with a placeholder so an external rewrite leaves it untouched."""
    if not phrase:
        return prompt
    return prompt.replace(phrase, LOCKED_PHRASE_PLACEHOLDER)


def swap_locked_phrase_out(prompt: str, phrase: Optional[str]) -> str:
    if not phrase:
        return prompt
    return prompt.replace(LOCKED_PHRASE_PLACEHOLDER, phrase)
