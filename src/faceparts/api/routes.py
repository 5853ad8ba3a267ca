"""API route definitions."""

from __future__ import annotations

import base64
import secrets
from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, UploadFile, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from faceparts.api.schemas import (
    ErrorResponse,
    FacePartsResponse,
    FaceResult,
    HealthResponse,
    PixelBox,
    RegionsResponse,
)
from faceparts.core.imaging import encode_png
from faceparts.core.landmarks import REGION_ORDER
from faceparts.core.render import CropMode

if TYPE_CHECKING:
    from faceparts.config import Settings
    from faceparts.core.imaging import Picture
    from faceparts.core.pipeline import FaceParts, FacePartsExtractor
    from faceparts.ml.inference import InferencePool

_bearer = HTTPBearer(auto_error=False, description="Required only when FACEPARTS_API_KEY is set")


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


async def _require_api_key(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)],
) -> None:
    api_key = _get_settings(request).api_key
    if api_key is None:
        return
    presented = credentials.credentials if credentials is not None else None
    if presented is None or not secrets.compare_digest(presented.encode(), api_key.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )


router = APIRouter(prefix="/api/v1", dependencies=[Depends(_require_api_key)])


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def _get_extractor(request: Request) -> FacePartsExtractor:
    extractor: FacePartsExtractor = request.app.state.extractor
    return extractor


def _encode(picture: Picture | None) -> str | None:
    if picture is None:
        return None
    return base64.b64encode(encode_png(picture)).decode("ascii")


def _build_response(picture: Picture | None, parts: list[FaceParts], crop_mode: CropMode) -> FacePartsResponse:
    faces = [
        FaceResult(
            rect=PixelBox(
                x=part.face_rect.x,
                y=part.face_rect.y,
                width=part.face_rect.width,
                height=part.face_rect.height,
            ),
            face=_encode(part.face),
            **{name.value: _encode(part.region(name)) for name in REGION_ORDER},
        )
        for part in parts
    ]
    # Every FaceParts from one call shares the same composite.
    composite = _encode(parts[0].original_with_drawings) if parts else None
    return FacePartsResponse(
        crop_mode=crop_mode.value,
        width=picture.width if picture is not None else None,
        height=picture.height if picture is not None else None,
        composite=composite,
        faces=faces,
    )


@router.post(
    "/face-parts",
    response_model=FacePartsResponse,
    responses={
        status.HTTP_413_CONTENT_TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Draw landmark outlines and crop face regions",
)
async def face_parts(
    request: Request,
    file: UploadFile,
    crop_mode: CropMode | None = None,
) -> FacePartsResponse:
    """Detect faces in an uploaded image and return the composite plus per-region crops.

    Undecodable images, detector failures and images without faces all return
    an empty ``faces`` list.
    """
    settings = _get_settings(request)
    data = await file.read(settings.max_file_size + 1)
    if len(data) > settings.max_file_size:
        raise HTTPException(
            status_code=status.HTTP_413_CONTENT_TOO_LARGE,
            detail=f"File exceeds {settings.max_file_size} bytes",
        )

    mode = crop_mode or settings.crop_mode
    extractor = _get_extractor(request)
    pool = _get_inference_pool(request)
    try:
        picture, parts = await extractor.extract_bytes(data, crop_mode=mode)
        return await pool.run(_build_response, picture, parts, mode)
    except TimeoutError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="All workers busy, try again later",
        ) from None


@router.get(
    "/regions",
    response_model=RegionsResponse,
    summary="List landmark regions",
)
async def list_regions() -> RegionsResponse:
    """Return the landmark region names in the order they are drawn."""
    return RegionsResponse(regions=[name.value for name in REGION_ORDER])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    pool = _get_inference_pool(request)
    extractor = _get_extractor(request)
    return HealthResponse(
        status="ok",
        detector=extractor.detector.name,
        crop_mode=settings.crop_mode.value,
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )
