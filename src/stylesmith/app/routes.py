from __future__ import annotations

from typing import Optional, cast

from fastapi import APIRouter, HTTPException, Query, Request

from ..services.blender import GuidanceBundle, GuidanceCache, guidance_bundle
from ..services.builder import build_prompt
from ..services.compatibility import can_fuse, compatible_genres, score
from ..services.exceptions import InvalidLockedPhraseError
from ..services.formatter import PromptText
from ..services.injection import inject_locked_phrase
from ..services.postprocess import PostProcessOptions, PromptRewriter, post_process_locked
from ..services.progressions import inject_chord_progression
from ..services.ranges import RangeResult, blended_range, format_bpm_range, inject_bpm_range
from ..services.registry import GENRE_REGISTRY, GenreDefinition, get_genre
from ..services.resolver import parse_genre_components
from ..services.rng import default_rng, seeded_rng
from ..services.trace import TraceCollector
from .models import (
    BpmRangeModel,
    CompatibilityResult,
    CompatibleGenre,
    GenerateRequest,
    GenerateResponse,
    GenreSummary,
    GuidanceModel,
    GuidanceRequest,
    InjectRequest,
    InjectResponse,
    PoolSummary,
    PostProcessRequest,
    PostProcessResponse,
    PromptMetadataModel,
    TraceSummary,
)
from .settings import Settings

router = APIRouter()


def get_settings_state(request: Request) -> Settings:
    return cast(Settings, request.app.state.settings)


def get_guidance_cache(request: Request) -> GuidanceCache:
    return cast(GuidanceCache, request.app.state.guidance_cache)


def get_rewriter(request: Request) -> PromptRewriter:
    return cast(PromptRewriter, request.app.state.rewriter)


def _range_model(result: Optional[RangeResult]) -> Optional[BpmRangeModel]:
    if result is None:
        return None
    return BpmRangeModel(
        min=result.min,
        max=result.max,
        is_intersection=result.is_intersection,
        text=format_bpm_range(result),
    )


def _genre_summary(definition: GenreDefinition) -> GenreSummary:
    bpm = None
    if definition.bpm is not None:
        bpm = _range_model(RangeResult(definition.bpm.min, definition.bpm.max, True))
    return GenreSummary(
        key=definition.key,
        name=definition.name,
        description=definition.description,
        keywords=list(definition.keywords),
        moods=list(definition.moods),
        max_tags=definition.max_tags,
        bpm=bpm,
        pools=[
            PoolSummary(
                name=pool.name,
                min_pick=pool.min_pick,
                max_pick=pool.max_pick,
                chance=pool.chance,
                instruments=list(pool.instruments),
            )
            for pool in definition.ordered_pools()
        ],
        exclusions=[list(pair) for pair in definition.exclusions],
    )


def _guidance_model(bundle: GuidanceBundle) -> GuidanceModel:
    return GuidanceModel(
        genre=bundle.genre_text,
        components=list(bundle.components),
        instruments=list(bundle.instruments),
        vocal=bundle.vocal,
        production=bundle.production,
        moods=list(bundle.moods),
        chord_progression=bundle.chord_progression,
        bpm=_range_model(bundle.bpm_range),
        harmonic=None if bundle.harmonic is None else bundle.harmonic.describe(),
        time_signature=bundle.time_signature,
        polyrhythm=bundle.polyrhythm,
    )


def _metadata_model(prompt: PromptText) -> PromptMetadataModel:
    metadata = prompt.metadata
    if metadata is None:  # pragma: no cover - builder always attaches metadata
        raise HTTPException(status_code=500, detail="prompt metadata missing")
    return PromptMetadataModel(
        genre=metadata.genre,
        components=list(metadata.components),
        instruments=list(metadata.instruments),
        moods=list(metadata.moods),
        chord_progression=metadata.chord_progression,
        vocal_style=metadata.vocal_style,
        production=metadata.production,
        style_tags=list(metadata.style_tags),
        recording=metadata.recording,
        bpm=metadata.bpm,
        harmonic=metadata.harmonic,
        time_signature=metadata.time_signature,
        polyrhythm=metadata.polyrhythm,
        key=metadata.key,
        format=metadata.format,
    )


@router.get("/health")
async def health(request: Request) -> dict[str, object]:
    settings = get_settings_state(request)
    cache = get_guidance_cache(request)
    return {
        "status": "ok",
        "genre_count": len(GENRE_REGISTRY),
        "guidance_cache_size": len(cache),
        "max_prompt_chars": settings.max_prompt_chars,
        "default_genre": settings.default_genre,
        "trace_enabled": settings.trace_enabled,
    }


@router.get("/genres", response_model=list[GenreSummary])
async def list_genres() -> list[GenreSummary]:
    return [_genre_summary(definition) for definition in GENRE_REGISTRY.values()]


@router.get("/genres/{key}", response_model=GenreSummary)
async def fetch_genre(key: str) -> GenreSummary:
    definition = get_genre(key)
    if definition is None:
        raise HTTPException(status_code=404, detail=f"genre {key} not found")
    return _genre_summary(definition)


@router.get("/genres/{key}/compatible", response_model=list[CompatibleGenre])
async def fetch_compatible(key: str) -> list[CompatibleGenre]:
    if get_genre(key) is None:
        raise HTTPException(status_code=404, detail=f"genre {key} not found")
    return [CompatibleGenre(genre=other, score=value) for other, value in compatible_genres(key)]


@router.get("/compatibility", response_model=CompatibilityResult)
async def compatibility(a: str = Query(..., min_length=1), b: str = Query(..., min_length=1)) -> CompatibilityResult:
    for key in (a, b):
        if get_genre(key) is None:
            raise HTTPException(status_code=404, detail=f"genre {key} not found")
    return CompatibilityResult(a=a.lower(), b=b.lower(), score=score(a, b), can_fuse=can_fuse(a, b))


@router.get("/bpm", response_model=Optional[BpmRangeModel])
async def bpm(request: Request, genre: str = Query(..., min_length=1)) -> Optional[BpmRangeModel]:
    settings = get_settings_state(request)
    return _range_model(blended_range(genre, settings.bpm_narrow_spread))


@router.post("/guidance", response_model=GuidanceModel)
async def guidance(payload: GuidanceRequest, request: Request) -> GuidanceModel:
    settings = get_settings_state(request)
    if not parse_genre_components(payload.genre):
        raise HTTPException(status_code=404, detail=f"genre {payload.genre} not recognised")
    bundle = guidance_bundle(
        payload.genre,
        None if payload.seed is None else seeded_rng(payload.seed),
        cache=get_guidance_cache(request),
        max_instruments=settings.max_instruments,
        articulation_chance=settings.articulation_chance,
        spread=settings.bpm_narrow_spread,
    )
    if bundle is None:  # pragma: no cover - guarded above
        raise HTTPException(status_code=404, detail=f"genre {payload.genre} not recognised")
    return _guidance_model(bundle)


@router.post("/generate", response_model=GenerateResponse)
async def generate(payload: GenerateRequest, request: Request) -> GenerateResponse:
    settings = get_settings_state(request)
    trace = TraceCollector() if settings.trace_enabled else None
    config = settings.builder_config(payload.max_chars)
    try:
        prompt = build_prompt(
            payload.description,
            genre=payload.genre,
            prompt_format=payload.format,
            mood_category=None if payload.mood_category is None else payload.mood_category.value,
            locked_phrase=payload.locked_phrase,
            rng=None if payload.seed is None else seeded_rng(payload.seed),
            cache=get_guidance_cache(request),
            trace=trace,
            config=config,
        )
    except InvalidLockedPhraseError as exc:
        raise HTTPException(status_code=422, detail=exc.reason) from exc

    text = prompt.text
    if payload.postprocess:
        options = PostProcessOptions.from_rewriter(
            get_rewriter(request),
            max_chars=config.max_chars,
            min_chars=min(settings.min_prompt_chars, config.max_chars - 1),
        )
        text = await post_process_locked(text, options, payload.locked_phrase, trace)

    trace_summary = None
    if trace is not None:
        trace_summary = TraceSummary(run_id=trace.run_id, **trace.summary())
    return GenerateResponse(
        text=text,
        length=len(text),
        metadata=_metadata_model(prompt),
        trace=trace_summary,
    )


@router.post("/postprocess", response_model=PostProcessResponse)
async def postprocess(payload: PostProcessRequest, request: Request) -> PostProcessResponse:
    settings = get_settings_state(request)
    max_chars = payload.max_chars or settings.max_prompt_chars
    min_chars = payload.min_chars if payload.min_chars is not None else settings.min_prompt_chars
    options = PostProcessOptions.from_rewriter(
        get_rewriter(request),
        max_chars=max_chars,
        min_chars=min(min_chars, max_chars - 1),
    )
    text = payload.text
    components = parse_genre_components(payload.genre or "")
    if components:
        rng = default_rng if payload.seed is None else seeded_rng(payload.seed)
        text = inject_bpm_range(text, " ".join(components), payload.max_format)
        text = inject_chord_progression(text, components[0], rng)
    text = await post_process_locked(text, options, payload.locked_phrase)
    return PostProcessResponse(text=text, length=len(text))


@router.post("/inject", response_model=InjectResponse)
async def inject(payload: InjectRequest, request: Request) -> InjectResponse:
    settings = get_settings_state(request)
    try:
        text = inject_locked_phrase(
            payload.text,
            payload.phrase,
            payload.max_format,
            settings.max_locked_phrase_chars,
        )
    except InvalidLockedPhraseError as exc:
        raise HTTPException(status_code=422, detail=exc.reason) from exc
    return InjectResponse(text=text)
