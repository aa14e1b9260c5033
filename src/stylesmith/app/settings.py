from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..services.builder import BuilderConfig
from ..services.registry import GENRE_REGISTRY

FALLBACK_GENRE = "pop"


class Settings(BaseSettings):
    """Runtime configuration for prompt synthesis."""

    model_config = SettingsConfigDict(
        env_prefix="STYLESMITH_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    max_prompt_chars: int = Field(
        default=1000,
        ge=50,
        le=10_000,
        description="Hard character budget enforced by post-processing.",
    )
    min_prompt_chars: int = Field(
        default=20,
        ge=0,
        description="Results shorter than this fall back to the original text.",
    )
    max_locked_phrase_chars: int = Field(default=300, ge=1)
    max_instruments: int = Field(
        default=5,
        ge=1,
        le=12,
        description="Instrument cap when blending several genres.",
    )
    guidance_cache_size: int = Field(
        default=100,
        ge=0,
        description="Entries kept by the guidance cache (0 disables memoisation).",
    )
    bpm_narrow_spread: int = Field(default=60, ge=2, le=200)
    articulation_chance: float = Field(default=0.4, ge=0.0, le=1.0)
    default_genre: Optional[str] = Field(
        default=None,
        max_length=64,
        description="Genre used when nothing resolves; unset picks a random registry genre.",
    )
    default_bpm_range: str = Field(default="between 90 and 140", max_length=64)
    recording_descriptor_count: int = Field(default=2, ge=1, le=6)
    trace_enabled: bool = Field(
        default=False,
        description="Attach an in-memory trace collector to API and CLI runs.",
    )
    log_level: str = Field(default="INFO", max_length=16)

    @model_validator(mode="after")
    def _align_limits(self) -> "Settings":
        if self.min_prompt_chars >= self.max_prompt_chars:
            self.min_prompt_chars = self.max_prompt_chars - 1
        if self.default_genre is not None:
            self.default_genre = self.default_genre.strip().lower() or None
        if self.default_genre is not None and self.default_genre not in GENRE_REGISTRY:
            self.default_genre = FALLBACK_GENRE
        return self

    def builder_config(self, max_chars: int | None = None) -> BuilderConfig:
        return BuilderConfig(
            max_chars=max_chars or self.max_prompt_chars,
            max_instruments=self.max_instruments,
            articulation_chance=self.articulation_chance,
            bpm_spread=self.bpm_narrow_spread,
            default_bpm_range=self.default_bpm_range,
            recording_count=self.recording_descriptor_count,
            max_locked_phrase_chars=self.max_locked_phrase_chars,
            default_genre=self.default_genre,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
