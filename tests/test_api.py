"""Tests for the FaceParts API."""

from __future__ import annotations

import base64
import io
import os
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, patch

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from faceparts.core.imaging import Picture

import httpx
import pytest
from fastapi import FastAPI, status
from PIL import Image

from faceparts.config import get_settings
from faceparts.core.landmarks import FaceObservation, NormalizedRect
from faceparts.core.pipeline import FacePartsExtractor
from faceparts.main import create_app
from faceparts.ml.detector import DetectionError
from faceparts.ml.inference import InferencePool

EYE = [(0.2, 0.6), (0.3, 0.6), (0.3, 0.7), (0.2, 0.7)]


class StubDetector:
    def __init__(self, observations: list[FaceObservation] | None = None, error: Exception | None = None) -> None:
        self._observations = observations or []
        self._error = error

    @property
    def name(self) -> str:
        return "stub"

    def detect(self, picture: Picture) -> list[FaceObservation]:
        if self._error is not None:
            raise self._error
        return list(self._observations)

    def close(self) -> None:
        pass


def _two_faces() -> list[FaceObservation]:
    return [
        FaceObservation.from_points(
            NormalizedRect(x=0.1, y=0.5, width=0.3, height=0.4),
            {"left_eye": EYE, "right_eye": EYE, "nose": EYE},
        ),
        FaceObservation.from_points(
            NormalizedRect(x=0.6, y=0.1, width=0.3, height=0.4),
            {"outer_lips": EYE},
        ),
    ]


def _init_app_state(app: FastAPI, detector: StubDetector | None = None, **env_overrides: str) -> None:
    """Manually initialize app state (ASGITransport does not trigger lifespan)."""
    with patch.dict(os.environ, env_overrides):
        settings = get_settings()
    app.state.settings = settings
    pool = InferencePool(settings)
    app.state.inference_pool = pool
    app.state.extractor = FacePartsExtractor(
        detector or StubDetector(),
        pool,
        crop_mode=settings.crop_mode,
        max_pixels=settings.max_image_pixels,
    )


async def _make_client(app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://testserver",
    ) as ac:
        yield ac
    pool: InferencePool = app.state.inference_pool
    pool.shutdown()


def _png(width: int = 200, height: int = 100) -> io.BytesIO:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), (120, 110, 100)).save(buffer, format="PNG")
    buffer.seek(0)
    return buffer


def _decode_b64_png(data: str) -> Image.Image:
    return Image.open(io.BytesIO(base64.b64decode(data)))


@pytest.fixture()
def app() -> FastAPI:
    """Create a fresh app instance with a two-face stub detector."""
    application = create_app()
    _init_app_state(application, StubDetector(_two_faces()))
    return application


@pytest.fixture()
async def client(app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    """Async HTTP client for testing the app."""
    async for ac in _make_client(app):
        yield ac


class TestHealthEndpoint:
    async def test_health_returns_ok(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/health")
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "ok"
        assert data["detector"] == "stub"
        assert data["crop_mode"] == "bbox"
        assert isinstance(data["concurrent_requests"], int)
        assert isinstance(data["queue_depth"], int)

    async def test_health_reports_configured_crop_mode(self) -> None:
        polygon_app = create_app()
        _init_app_state(polygon_app, FACEPARTS_CROP_MODE="polygon")
        async for ac in _make_client(polygon_app):
            response = await ac.get("/api/v1/health")
            assert response.json()["crop_mode"] == "polygon"


class TestRegionsEndpoint:
    async def test_lists_regions_in_drawing_order(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/regions")
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["regions"] == ["face_contour", "left_eye", "right_eye", "nose", "outer_lips"]


class TestFacePartsEndpoint:
    async def test_returns_one_entry_per_face(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/api/v1/face-parts",
            files={"file": ("selfie.png", _png(), "image/png")},
        )
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["crop_mode"] == "bbox"
        assert (data["width"], data["height"]) == (200, 100)
        assert len(data["faces"]) == 2

        composite = _decode_b64_png(data["composite"])
        assert composite.size == (200, 100)

        first, second = data["faces"]
        assert first["rect"]["x"] == pytest.approx(20)
        assert first["left_eye"] is not None
        assert first["outer_lips"] is None
        assert first["face_contour"] is None
        assert second["left_eye"] is None
        assert second["outer_lips"] is not None

    async def test_polygon_mode_query_override(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/api/v1/face-parts",
            params={"crop_mode": "polygon"},
            files={"file": ("selfie.png", _png(), "image/png")},
        )
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["crop_mode"] == "polygon"
        nose = _decode_b64_png(data["faces"][0]["nose"])
        assert nose.mode == "RGBA"

    async def test_invalid_crop_mode_rejected(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/api/v1/face-parts",
            params={"crop_mode": "circle"},
            files={"file": ("selfie.png", _png(), "image/png")},
        )
        assert response.status_code == 422

    async def test_undecodable_image_returns_empty(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/api/v1/face-parts",
            files={"file": ("selfie.jpg", io.BytesIO(b"fake image data"), "image/jpeg")},
        )
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["faces"] == []
        assert data["composite"] is None
        assert data["width"] is None

    async def test_detector_failure_returns_empty(self) -> None:
        failing_app = create_app()
        _init_app_state(failing_app, StubDetector(error=DetectionError("offline")))
        async for ac in _make_client(failing_app):
            response = await ac.post(
                "/api/v1/face-parts",
                files={"file": ("selfie.png", _png(), "image/png")},
            )
            assert response.status_code == status.HTTP_200_OK
            data = response.json()
            assert data["faces"] == []
            assert data["composite"] is None
            assert data["width"] == 200

    async def test_no_faces_returns_empty(self) -> None:
        empty_app = create_app()
        _init_app_state(empty_app, StubDetector([]))
        async for ac in _make_client(empty_app):
            response = await ac.post(
                "/api/v1/face-parts",
                files={"file": ("selfie.png", _png(), "image/png")},
            )
            assert response.status_code == status.HTTP_200_OK
            assert response.json()["faces"] == []

    async def test_file_too_large_returns_413(self) -> None:
        small_app = create_app()
        _init_app_state(small_app, StubDetector(_two_faces()), FACEPARTS_MAX_FILE_SIZE="64")
        async for ac in _make_client(small_app):
            response = await ac.post(
                "/api/v1/face-parts",
                files={"file": ("selfie.png", io.BytesIO(b"x" * 65), "image/png")},
            )
            assert response.status_code == status.HTTP_413_CONTENT_TOO_LARGE

    async def test_out_of_range_polygon_region_is_null(self) -> None:
        wild = FaceObservation.from_points(
            NormalizedRect(x=0.1, y=0.5, width=0.3, height=0.4),
            {"nose": [(0.0, 0.0), (float("inf"), 0.5), (0.5, 1.0)], "left_eye": EYE},
        )
        wild_app = create_app()
        _init_app_state(wild_app, StubDetector([wild]), FACEPARTS_CROP_MODE="polygon")
        async for ac in _make_client(wild_app):
            response = await ac.post(
                "/api/v1/face-parts",
                files={"file": ("selfie.png", _png(), "image/png")},
            )
            assert response.status_code == status.HTTP_200_OK
            [face] = response.json()["faces"]
            assert face["nose"] is None
            assert face["left_eye"] is not None

    async def test_busy_pool_returns_503(self, app: FastAPI, client: httpx.AsyncClient) -> None:
        extractor: FacePartsExtractor = app.state.extractor
        with patch.object(extractor, "extract_bytes", AsyncMock(side_effect=TimeoutError)):
            response = await client.post(
                "/api/v1/face-parts",
                files={"file": ("selfie.png", _png(), "image/png")},
            )
        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE


class TestAuthentication:
    async def test_no_auth_required_by_default(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/health")
        assert response.status_code == status.HTTP_200_OK

    async def test_auth_required_when_api_key_set(self) -> None:
        app = create_app()
        _init_app_state(app, FACEPARTS_API_KEY="test-secret-key")
        async for ac in _make_client(app):
            response = await ac.get("/api/v1/health")
            assert response.status_code == status.HTTP_401_UNAUTHORIZED

    async def test_auth_passes_with_correct_key(self) -> None:
        app = create_app()
        _init_app_state(app, FACEPARTS_API_KEY="test-secret-key")
        async for ac in _make_client(app):
            response = await ac.get(
                "/api/v1/health",
                headers={"Authorization": "Bearer test-secret-key"},
            )
            assert response.status_code == status.HTTP_200_OK

    async def test_auth_fails_with_wrong_key(self) -> None:
        app = create_app()
        _init_app_state(app, FACEPARTS_API_KEY="test-secret-key")
        async for ac in _make_client(app):
            response = await ac.post(
                "/api/v1/face-parts",
                headers={"Authorization": "Bearer wrong-key"},
                files={"file": ("selfie.png", _png(), "image/png")},
            )
            assert response.status_code == status.HTTP_401_UNAUTHORIZED

    async def test_auth_fails_with_non_bearer_scheme(self) -> None:
        app = create_app()
        _init_app_state(app, FACEPARTS_API_KEY="test-secret-key")
        async for ac in _make_client(app):
            response = await ac.get(
                "/api/v1/regions",
                headers={"Authorization": "Basic test-secret-key"},
            )
            assert response.status_code == status.HTTP_401_UNAUTHORIZED
            assert response.headers["WWW-Authenticate"] == "Bearer"
