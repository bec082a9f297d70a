"""
Tests for the Gen AI backend adapter and its response normalizers.
"""

import asyncio
import base64
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from google.genai import errors as genai_errors

from app.exceptions import BackendError, BackendQuotaError, NoArtifactProducedError
from app.services.generation_backend import (
    GeminiBackend,
    extract_image_bytes,
    extract_operation_name,
    map_backend_error,
    to_operation_outcome,
)

IMAGE = b"\x89PNG\r\n\x1a\nfake-image"


def sdk_response(data: object) -> SimpleNamespace:
    part = SimpleNamespace(inline_data=SimpleNamespace(data=data, mime_type="image/png"))
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))])


class TestExtractImageBytes:
    def test_sdk_object_with_raw_bytes(self) -> None:
        assert extract_image_bytes(sdk_response(IMAGE)) == IMAGE

    def test_mapping_with_base64_and_camel_case(self) -> None:
        response = {
            "response": {
                "candidates": [
                    {
                        "content": {
                            "parts": [
                                {"text": "Here is your room"},
                                {"inlineData": {"data": base64.b64encode(IMAGE).decode()}},
                            ]
                        }
                    }
                ]
            }
        }

        assert extract_image_bytes(response) == IMAGE

    def test_text_only_response(self) -> None:
        response = {"candidates": [{"content": {"parts": [{"text": "I cannot do that"}]}}]}

        with pytest.raises(NoArtifactProducedError):
            extract_image_bytes(response)

    def test_no_candidates(self) -> None:
        with pytest.raises(NoArtifactProducedError):
            extract_image_bytes(SimpleNamespace(candidates=None))


class TestOperationNormalizers:
    def test_operation_name(self) -> None:
        assert extract_operation_name(SimpleNamespace(name="operations/1")) == "operations/1"
        assert extract_operation_name({"operation": {"name": "operations/2"}}) == "operations/2"

    def test_missing_operation_name(self) -> None:
        with pytest.raises(NoArtifactProducedError):
            extract_operation_name({})

    def test_pending(self) -> None:
        assert to_operation_outcome({"done": False}).done is False

    def test_completed(self) -> None:
        operation = {
            "done": True,
            "response": {"generatedVideos": [{"video": {"uri": "https://files/v.mp4"}}]},
        }

        outcome = to_operation_outcome(operation)

        assert outcome.done is True
        assert outcome.artifact_uri == "https://files/v.mp4"
        assert outcome.failed is False

    def test_failed_with_error(self) -> None:
        outcome = to_operation_outcome({"done": True, "error": {"code": 3, "message": "Unsafe"}})

        assert outcome.failed is True
        assert outcome.error_code == 3
        assert outcome.error_message == "Unsafe"

    def test_done_without_video(self) -> None:
        outcome = to_operation_outcome({"done": True, "response": {"generatedVideos": []}})

        assert outcome.failed is True
        assert outcome.error_message == "No video produced"


class TestMapBackendError:
    def test_quota_error(self) -> None:
        error = genai_errors.ClientError(
            429, {"error": {"code": 429, "message": "Quota exceeded", "status": "RESOURCE_EXHAUSTED"}}
        )

        assert isinstance(map_backend_error(error), BackendQuotaError)

    def test_other_api_error(self) -> None:
        error = genai_errors.ServerError(
            503, {"error": {"code": 503, "message": "Overloaded", "status": "UNAVAILABLE"}}
        )

        mapped = map_backend_error(error)

        assert type(mapped) is BackendError
        assert mapped.status_code == 500

    def test_timeout(self) -> None:
        mapped = map_backend_error(asyncio.TimeoutError())

        assert mapped.message == "Generation backend timed out"

    def test_backend_error_passthrough(self) -> None:
        error = NoArtifactProducedError()

        assert map_backend_error(error) is error


class TestGeminiBackend:
    def make_client(self) -> MagicMock:
        client = MagicMock()
        client.aio.models.generate_content = AsyncMock(return_value=sdk_response(IMAGE))
        client.aio.models.generate_videos = AsyncMock(
            return_value=SimpleNamespace(name="models/veo/operations/abc")
        )
        client.aio.operations.get = AsyncMock(return_value=SimpleNamespace(done=False))
        return client

    async def test_edit(self) -> None:
        client = self.make_client()
        backend = GeminiBackend(client, "image-model", "video-model")

        result = await backend.edit("Redesign this room", b"source", "image/png")

        assert result == IMAGE
        kwargs = client.aio.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "image-model"
        assert kwargs["contents"][1] == "Redesign this room"

    async def test_submit(self) -> None:
        client = self.make_client()
        backend = GeminiBackend(client, "image-model", "video-model")

        token = await backend.submit("Fly around", b"source", "image/png", duration_seconds=5)

        assert token == "models/veo/operations/abc"
        kwargs = client.aio.models.generate_videos.call_args.kwargs
        assert kwargs["model"] == "video-model"
        assert kwargs["config"].duration_seconds == 5

    async def test_poll(self) -> None:
        backend = GeminiBackend(self.make_client(), "image-model", "video-model")

        outcome = await backend.poll("models/veo/operations/abc")

        assert outcome.done is False

    async def test_sdk_error_is_mapped(self) -> None:
        client = self.make_client()
        client.aio.models.generate_content = AsyncMock(side_effect=RuntimeError("socket closed"))
        backend = GeminiBackend(client, "image-model", "video-model")

        with pytest.raises(BackendError, match="socket closed"):
            await backend.edit("prompt", b"source", "image/png")

    async def test_timeout(self) -> None:
        client = self.make_client()

        async def slow(**kwargs: object) -> None:
            await asyncio.sleep(1)

        client.aio.models.generate_content = slow
        backend = GeminiBackend(client, "image-model", "video-model", timeout_seconds=0.01)

        with pytest.raises(BackendError, match="timed out"):
            await backend.edit("prompt", b"source", "image/png")
