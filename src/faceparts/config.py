"""Environment-based configuration for FaceParts."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from faceparts.core.render import CropMode


class Settings(BaseSettings):
    """Application settings loaded from FACEPARTS_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FACEPARTS_",
        case_sensitive=False,
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083

    # Authentication (None = disabled)
    api_key: str | None = None

    # Landmark detector
    detector: Literal["mediapipe"] = "mediapipe"
    landmarker_model_path: str = "models/face_landmarker.task"
    max_faces: int = Field(default=4, ge=1)
    min_detection_confidence: float = Field(default=0.5, ge=0.0, le=1.0)

    # Cropping
    crop_mode: CropMode = CropMode.BOUNDING_BOX

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)
    queue_timeout: float = Field(default=5.0, gt=0.0)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=52_428_800, ge=1)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
