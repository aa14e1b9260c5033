from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from ..services.formatter import PromptFormat


class MoodCategory(str, Enum):
    ENERGETIC = "energetic"
    CALM = "calm"
    DARK = "dark"
    EMOTIONAL = "emotional"
    PLAYFUL = "playful"
    INTENSE = "intense"
    ATMOSPHERIC = "atmospheric"
    SEASONAL = "seasonal"
    SOCIAL = "social"
    SOPHISTICATED = "sophisticated"
    GRITTY = "gritty"
    EPIC = "epic"
    VULNERABLE = "vulnerable"
    TENSE = "tense"
    GROOVE = "groove"
    SPIRITUAL = "spiritual"
    ECLECTIC = "eclectic"
    ATTITUDE = "attitude"
    TEXTURE = "texture"
    MOVEMENT = "movement"


class PoolSummary(BaseModel):
    name: str
    min_pick: int = Field(..., ge=0)
    max_pick: int = Field(..., ge=0)
    chance: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    instruments: list[str] = Field(default_factory=list)


class BpmRangeModel(BaseModel):
    min: int = Field(..., ge=1)
    max: int = Field(..., ge=1)
    is_intersection: bool = True
    text: str


class GenreSummary(BaseModel):
    key: str
    name: str
    description: str = ""
    keywords: list[str] = Field(default_factory=list)
    moods: list[str] = Field(default_factory=list)
    max_tags: int = Field(..., ge=1)
    bpm: Optional[BpmRangeModel] = None
    pools: list[PoolSummary] = Field(default_factory=list)
    exclusions: list[list[str]] = Field(default_factory=list)


class CompatibilityResult(BaseModel):
    a: str
    b: str
    score: float = Field(..., ge=0.0, le=1.0)
    can_fuse: bool


class CompatibleGenre(BaseModel):
    genre: str
    score: float = Field(..., ge=0.0, le=1.0)


class GuidanceRequest(BaseModel):
    genre: str = Field(..., min_length=1, max_length=128)
    seed: Optional[int] = Field(default=None, ge=0)


class GuidanceModel(BaseModel):
    genre: str
    components: list[str]
    instruments: list[str]
    vocal: str
    production: str
    moods: list[str]
    chord_progression: str
    bpm: Optional[BpmRangeModel] = None
    harmonic: Optional[str] = None
    time_signature: str = Field(default="4/4", min_length=3, max_length=8)
    polyrhythm: Optional[str] = None


class TraceSummary(BaseModel):
    run_id: str
    decisions: int = 0
    errors: int = 0
    rewrites: int = 0
    total: int = 0


class GenerateRequest(BaseModel):
    description: str = Field(default="", max_length=2000)
    genre: Optional[str] = Field(default=None, max_length=128)
    seed: Optional[int] = Field(default=None, ge=0)
    format: PromptFormat = Field(default=PromptFormat.STANDARD)
    mood_category: Optional[MoodCategory] = Field(default=None)
    locked_phrase: Optional[str] = Field(default=None, max_length=1000)
    max_chars: Optional[int] = Field(default=None, ge=50, le=10_000)
    postprocess: bool = Field(default=True)


class PromptMetadataModel(BaseModel):
    genre: str
    components: list[str]
    instruments: list[str]
    moods: list[str]
    chord_progression: str
    vocal_style: str
    production: str
    style_tags: list[str]
    recording: str
    bpm: str
    harmonic: Optional[str] = None
    time_signature: Optional[str] = None
    polyrhythm: Optional[str] = None
    key: Optional[str] = None
    format: PromptFormat = PromptFormat.STANDARD


class GenerateResponse(BaseModel):
    text: str
    length: int = Field(..., ge=0)
    metadata: PromptMetadataModel
    trace: Optional[TraceSummary] = None


class PostProcessRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=20_000)
    max_chars: Optional[int] = Field(default=None, ge=50, le=10_000)
    min_chars: Optional[int] = Field(default=None, ge=0)
    locked_phrase: Optional[str] = Field(default=None, max_length=1000)
    genre: Optional[str] = Field(
        default=None,
        max_length=128,
        description="Re-inject this genre's BPM range and a chord progression before cleanup.",
    )
    max_format: bool = False
    seed: Optional[int] = Field(default=None, ge=0)


class PostProcessResponse(BaseModel):
    text: str
    length: int = Field(..., ge=0)


class InjectRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=20_000)
    phrase: str = Field(..., min_length=1)
    max_format: bool = False


class InjectResponse(BaseModel):
    text: str
