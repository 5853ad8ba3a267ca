"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from faceparts.api.routes import router
from faceparts.config import get_settings
from faceparts.core.pipeline import FacePartsExtractor
from faceparts.ml.detector import create_detector
from faceparts.ml.inference import InferencePool

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: load the detector on startup, release it on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting FaceParts (detector=%s, crop_mode=%s, max_concurrent=%s)",
        settings.detector,
        settings.crop_mode,
        settings.max_concurrent,
    )

    detector = create_detector(settings)
    inference_pool = InferencePool(settings)
    app.state.inference_pool = inference_pool
    app.state.extractor = FacePartsExtractor(
        detector,
        inference_pool,
        crop_mode=settings.crop_mode,
        max_pixels=settings.max_image_pixels,
    )

    logger.info("FaceParts ready")
    yield

    logger.info("Shutting down FaceParts")
    inference_pool.shutdown()
    detector.close()
    logger.info("FaceParts shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="FaceParts",
        description="Facial landmark overlays and per-region crops from a single photo",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Serve the app with uvicorn using the configured host and port."""
    settings = get_settings()
    uvicorn.run("faceparts.main:app", host=settings.host, port=settings.port)
