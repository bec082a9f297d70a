"""
Tests for the application shell: root, metrics and error rendering.
"""

import json

import httpx
import pytest
from fastapi.exceptions import RequestValidationError
from starlette.requests import Request
from starlette.responses import Response

from app.exceptions import InsufficientCreditsError, RateLimitedError, StorageError
from app.main import (
    app,
    error_response,
    generation_error_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)


def body(response: Response) -> dict:
    return json.loads(response.body)


@pytest.fixture
def request_stub() -> Request:
    return Request({"type": "http", "method": "POST", "path": "/api/generate", "headers": []})


class TestErrorResponse:
    def test_omits_empty_fields(self) -> None:
        assert body(error_response(500, "Internal server error")) == {
            "error": "Internal server error"
        }

    def test_includes_balance(self) -> None:
        response = error_response(403, "Not enough credits", "msg", credits_remaining=0)

        assert body(response) == {
            "error": "Not enough credits",
            "message": "msg",
            "credits_remaining": 0,
        }


class TestGenerationErrorHandler:
    async def test_client_error_includes_message(self, request_stub: Request) -> None:
        response = await generation_error_handler(
            request_stub, InsufficientCreditsError(balance=0, required=1)
        )

        assert response.status_code == 403
        assert body(response)["message"] == "Insufficient credits. Balance: 0, Required: 1"
        assert body(response)["credits_remaining"] == 0

    async def test_server_error_hides_details(self, request_stub: Request) -> None:
        response = await generation_error_handler(request_stub, StorageError("bucket secret-x"))

        assert response.status_code == 500
        assert body(response) == {"error": "Storage failure"}

    async def test_retry_after_header(self, request_stub: Request) -> None:
        response = await generation_error_handler(request_stub, RateLimitedError(17))

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "17"


class TestOtherHandlers:
    async def test_validation_error_is_400(self, request_stub: Request) -> None:
        error = RequestValidationError(
            [{"type": "missing", "loc": ("body", "imageUrl"), "msg": "Field required"}]
        )

        response = await validation_exception_handler(request_stub, error)

        assert response.status_code == 400
        assert body(response) == {"error": "Invalid request", "message": "imageUrl: Field required"}

    async def test_unhandled_is_bare_500(self, request_stub: Request) -> None:
        response = await unhandled_exception_handler(request_stub, RuntimeError("db password"))

        assert response.status_code == 500
        assert body(response) == {"error": "Internal server error"}


class TestShellEndpoints:
    async def test_root(self) -> None:
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://testserver"
        ) as client:
            response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "running"

    async def test_metrics(self) -> None:
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://testserver"
        ) as client:
            response = await client.get("/metrics")

        assert response.status_code == 200
        assert "generation_http_requests_total" in response.text

    async def test_unknown_path_is_404_in_error_shape(self) -> None:
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://testserver"
        ) as client:
            response = await client.get("/api/nope")

        assert response.status_code == 404
        assert response.json() == {"error": "Not Found"}
