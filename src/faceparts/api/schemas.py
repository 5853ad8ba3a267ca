"""Pydantic request/response schemas for the FaceParts API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class PixelBox(BaseModel):
    """Face rectangle in source-image pixels, top-left origin."""

    x: float
    y: float
    width: float
    height: float


class FaceResult(BaseModel):
    """Crops for one detected face. Each crop is a base64 PNG, or null when absent."""

    rect: PixelBox
    face: str | None = Field(default=None, description="Crop of the whole face rectangle")
    face_contour: str | None = None
    left_eye: str | None = None
    right_eye: str | None = None
    nose: str | None = None
    outer_lips: str | None = None


class FacePartsResponse(BaseModel):
    """Response for the face parts endpoint.

    ``composite`` is the source image with every face's outlines drawn. It is
    null when no faces were produced; callers should show the original.
    """

    crop_mode: str
    width: int | None = Field(default=None, description="Decoded image width in pixels")
    height: int | None = Field(default=None, description="Decoded image height in pixels")
    composite: str | None = None
    faces: list[FaceResult]


class RegionsResponse(BaseModel):
    """Landmark region names in drawing order."""

    regions: list[str]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    detector: str
    crop_mode: str
    concurrent_requests: int
    queue_depth: int


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
