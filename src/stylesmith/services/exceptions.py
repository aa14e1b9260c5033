"""Shared service-layer exceptions."""

from __future__ import annotations


class StyleSmithError(Exception):
    """Base class for errors raised by the prompt synthesis core."""


class InvalidLockedPhraseError(StyleSmithError, ValueError):
    """Raised when a user-locked phrase cannot be injected safely."""

    def __init__(self, phrase: str, reason: str) -> None:
        super().__init__(reason)
        self.phrase = phrase
        self.reason = reason


class RegistryDataError(StyleSmithError, RuntimeError):
    """Bundled data tables are missing or violate their invariants."""
