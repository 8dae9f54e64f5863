"""FastAPI application entry point."""

from __future__ import annotations

import importlib
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from normalizex.config import Settings
    from normalizex.imaging.decoders import HeicDecoder

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from normalizex.api.routes import router
from normalizex.api.schemas import InitializeRequest, TuningOverrides
from normalizex.config import get_settings
from normalizex.pipeline.worker import NormalizationWorker

logger = logging.getLogger(__name__)


def load_heic_decoder(path: str | None) -> HeicDecoder | None:
    """Import an external HEIC decoder from a ``module:attribute`` path.

    Classes are instantiated with no arguments; other objects are used as is.
    """
    if not path:
        return None
    module_name, _, attribute = path.partition(":")
    if not attribute:
        raise ValueError(f"HEIC decoder path must look like 'module:attribute', got {path!r}")
    target = getattr(importlib.import_module(module_name), attribute)
    decoder: HeicDecoder = target() if isinstance(target, type) else target
    return decoder


def init_worker(settings: Settings) -> tuple[NormalizationWorker, HeicDecoder | None]:
    """Create a worker and initialize it from settings."""
    heic_decoder = load_heic_decoder(settings.heic_decoder)
    worker = NormalizationWorker(platform_heif=settings.platform_heif)
    worker.initialize(
        InitializeRequest(
            max_long_side_px=settings.max_long_side_px,
            target_max_bytes=settings.target_max_bytes,
            overrides=TuningOverrides(
                jpeg_quality_start=settings.jpeg_quality_start,
                jpeg_min_quality=settings.jpeg_min_quality,
                jpeg_quality_step=settings.jpeg_quality_step,
                max_quality_iters=settings.max_quality_iters,
                max_resize_passes=settings.max_resize_passes,
                resize_down_factor=settings.resize_down_factor,
            ),
        ),
        heic_decoder,
    )
    return worker, heic_decoder


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting NormalizeX (max_long_side_px=%s, target_max_bytes=%s, platform_heif=%s, heic_decoder=%s)",
        settings.max_long_side_px,
        settings.target_max_bytes,
        settings.platform_heif,
        settings.heic_decoder,
    )

    worker, heic_decoder = init_worker(settings)
    app.state.worker = worker
    app.state.heic_decoder = heic_decoder

    logger.info("NormalizeX ready")
    yield

    logger.info("Shutting down NormalizeX")
    worker.shutdown()
    logger.info("NormalizeX shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="NormalizeX",
        description="Offline photo normalization: upright, size-bounded JPEG plus the untouched original",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()
