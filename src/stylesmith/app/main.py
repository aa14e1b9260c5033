from __future__ import annotations

import sys

from fastapi import FastAPI
from loguru import logger

from ..services.blender import GuidanceCache
from ..services.postprocess import PassthroughRewriter
from .routes import router
from .settings import Settings, get_settings


def configure_logging(settings: Settings) -> None:
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level.upper())


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure FastAPI instance."""
    settings = settings or get_settings()
    configure_logging(settings)
    app = FastAPI(title="StyleSmith", version="0.1.0")
    app.state.settings = settings
    app.state.guidance_cache = GuidanceCache(settings.guidance_cache_size)
    app.state.rewriter = PassthroughRewriter()
    app.include_router(router)
    logger.info(
        "StyleSmith ready: max_prompt_chars={} cache_size={}",
        settings.max_prompt_chars,
        settings.guidance_cache_size,
    )
    return app


app = create_app()
