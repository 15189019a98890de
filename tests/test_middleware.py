"""
Unit tests for middleware and error handlers

- Request ID tracking
- Header masking
- ProgressServiceError rendering
- Catch-all 500 handler
"""
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from progress_service.config import Settings
from progress_service.errors import ConflictRetryableError, StorageUnavailableError
from progress_service.middleware import (
    RequestLoggingMiddleware,
    add_health_endpoint,
    setup_middleware,
)


@pytest.fixture
def app():
    app = FastAPI()
    setup_middleware(app, Settings())
    add_health_endpoint(app, Settings())

    @app.get("/ok")
    async def ok():
        return {"message": "ok"}

    @app.get("/conflict")
    async def conflict():
        raise ConflictRetryableError("Concurrent modification detected. Please retry.")

    @app.get("/storage")
    async def storage():
        raise StorageUnavailableError("Storage temporarily unavailable")

    @app.get("/boom")
    async def boom():
        raise RuntimeError("Test error")

    return app


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


class TestRequestID:

    @pytest.mark.asyncio
    async def test_generated_when_missing(self, client):
        response = await client.get("/ok")
        assert response.status_code == 200
        assert len(response.headers["X-Request-ID"]) == 36

    @pytest.mark.asyncio
    async def test_echoes_client_id(self, client):
        response = await client.get("/ok", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"


class TestErrorHandlers:

    @pytest.mark.asyncio
    async def test_conflict_maps_to_409(self, client):
        response = await client.get("/conflict", headers={"X-Request-ID": "req-409"})
        assert response.status_code == 409
        assert response.json() == {
            "error": "conflict",
            "message": "Concurrent modification detected. Please retry.",
            "request_id": "req-409",
        }

    @pytest.mark.asyncio
    async def test_storage_maps_to_503(self, client):
        response = await client.get("/storage")
        assert response.status_code == 503
        assert response.json()["error"] == "storage_unavailable"

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_500(self, client, caplog):
        response = await client.get("/boom", headers={"X-Request-ID": "req-500"})
        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "internal_server_error"
        assert data["request_id"] == "req-500"
        assert "Test error" not in data["message"]
        assert "Unhandled exception occurred" in caplog.text


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


def test_mask_headers():
    middleware = RequestLoggingMiddleware(app=FastAPI())
    masked = middleware._mask_headers({
        "Authorization": "Bearer secret",
        "Cookie": "session=abc",
        "X-User-ID": "reader-1",
    })

    assert masked["Authorization"] == "***MASKED***"
    assert masked["Cookie"] == "***MASKED***"
    assert masked["X-User-ID"] == "reader-1"
