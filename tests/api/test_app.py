"""Tests for the application wiring in src/main.py."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from src.exceptions import CatchTrackError, ValidationFailure
from src.main import app


@pytest.fixture
def status_deriver():
    """Install a mocked status deriver on the shared app for one test."""
    deriver = MagicMock()
    deriver.lots_with_status = AsyncMock(return_value=[])
    app.state.production_status = deriver
    yield deriver
    del app.state.production_status


def _client():
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


class TestHealthEndpoint:
    """Tests for /health."""

    @pytest.mark.asyncio
    async def test_health_returns_healthy(self):
        async with _client() as client:
            response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
        assert "X-API-Version" not in response.headers


class TestApiVersionHeader:
    """Tests for the X-API-Version middleware."""

    @pytest.mark.asyncio
    async def test_header_on_api_routes(self, status_deriver, auth_headers):
        async with _client() as client:
            response = await client.get("/api/reports/project-lotno-with-status", headers=auth_headers)

        assert response.status_code == 200
        assert response.headers["X-API-Version"] == "1"

    @pytest.mark.asyncio
    async def test_header_on_error_responses(self):
        async with _client() as client:
            response = await client.get("/api/reports/under-production")

        assert response.status_code == 401
        assert response.headers["X-API-Version"] == "1"
        assert response.json()["error_code"] == "unauthorized"


class TestErrorHandlers:
    """Application errors escaping a route map to JSON error bodies."""

    @pytest.mark.asyncio
    async def test_validation_failure_is_bad_request(self, status_deriver, auth_headers):
        status_deriver.lots_with_status.side_effect = ValidationFailure("Unknown group")

        async with _client() as client:
            response = await client.get("/api/reports/project-lotno-with-status", headers=auth_headers)

        assert response.status_code == 400
        assert response.json() == {"detail": "Unknown group", "error_code": "bad_request"}

    @pytest.mark.asyncio
    async def test_application_error_is_hidden(self, status_deriver, auth_headers):
        status_deriver.lots_with_status.side_effect = CatchTrackError("store offline")

        async with _client() as client:
            response = await client.get("/api/reports/project-lotno-with-status", headers=auth_headers)

        assert response.status_code == 500
        assert response.json() == {"detail": "Internal server error", "error_code": "internal_error"}
