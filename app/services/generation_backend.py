"""
Generation Backend - Google Gen AI adapter for image edits and video jobs.

NO DICTIONARIES - Callers get bytes, an opaque token or an OperationOutcome.

Response shapes from the SDK (objects or plain mappings, with or without a
"response" wrapper, base64 text or raw bytes) are normalized here so the
orchestrator never inspects them. Every failure is raised as a BackendError
subclass.
"""

import asyncio
import base64
import binascii
import time
from typing import Any, Protocol

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from app.config import settings
from app.exceptions import BackendError, BackendQuotaError, NoArtifactProducedError
from app.models.domain import OperationOutcome
from app.observability.logging import get_logger
from app.observability.metrics import metrics
from app.observability.tracing import trace_operation

logger = get_logger(__name__)

_QUOTA_MARKERS = ("RESOURCE_EXHAUSTED", "quota", "billing")


class GenerationBackend(Protocol):
    """Generative model interface used by the orchestrator."""

    async def edit(self, prompt: str, image_bytes: bytes, mime_type: str) -> bytes:
        """Synchronous image edit. Returns the generated image bytes."""
        ...

    async def submit(
        self, prompt: str, image_bytes: bytes, mime_type: str, duration_seconds: int
    ) -> str:
        """Start a video job. Returns the opaque operation token."""
        ...

    async def poll(self, token: str) -> OperationOutcome:
        """Read the current state of a video job."""
        ...


def _field(obj: Any, *names: str) -> Any:
    """Read the first present attribute or mapping key among names."""
    if obj is None:
        return None
    for name in names:
        if isinstance(obj, dict):
            if name in obj and obj[name] is not None:
                return obj[name]
        else:
            value = getattr(obj, name, None)
            if value is not None:
                return value
    return None


def _decode_image_data(data: Any) -> bytes | None:
    if isinstance(data, (bytes, bytearray)):
        return bytes(data) if data else None
    if isinstance(data, str) and data:
        try:
            return base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError):
            return None
    return None


def extract_image_bytes(response: Any) -> bytes:
    """
    Return the first inline image in a generate_content response.

    Raises NoArtifactProducedError when no candidate carries image data.
    """
    wrapped = _field(response, "response")
    if wrapped is not None and _field(response, "candidates") is None:
        response = wrapped

    for candidate in _field(response, "candidates") or []:
        content = _field(candidate, "content")
        for part in _field(content, "parts") or []:
            inline = _field(part, "inline_data", "inlineData")
            data = _decode_image_data(_field(inline, "data"))
            if data:
                return data

    raise NoArtifactProducedError()


def extract_operation_name(operation: Any) -> str:
    """Operation token from `name` or `operation.name`."""
    name = _field(operation, "name")
    if not name:
        name = _field(_field(operation, "operation"), "name")
    if not name:
        raise NoArtifactProducedError("Backend did not return an operation name")
    return str(name)


def to_operation_outcome(operation: Any) -> OperationOutcome:
    """Normalize a video operation into an OperationOutcome."""
    if not _field(operation, "done"):
        return OperationOutcome(done=False)

    error = _field(operation, "error")
    if error:
        code = _field(error, "code")
        return OperationOutcome(
            done=True,
            error_code=int(code) if code is not None else None,
            error_message=str(_field(error, "message") or "Video generation failed"),
        )

    result = _field(operation, "response", "result")
    videos = _field(result, "generated_videos", "generatedVideos") or []
    for generated in videos:
        uri = _field(_field(generated, "video"), "uri")
        if uri:
            return OperationOutcome(done=True, artifact_uri=str(uri))

    return OperationOutcome(done=True, error_message="No video produced")


def map_backend_error(error: Exception) -> BackendError:
    """Translate an SDK exception into the backend error taxonomy."""
    if isinstance(error, BackendError):
        return error
    if isinstance(error, genai_errors.APIError):
        text = f"{error.status or ''} {error.message or ''}"
        if error.code == 429 or any(marker in text for marker in _QUOTA_MARKERS):
            return BackendQuotaError(error.message or "Generation backend quota exhausted")
        return BackendError(error.message or f"Generation backend error {error.code}")
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return BackendError("Generation backend timed out")
    return BackendError(str(error) or "Generation backend error")


class GeminiBackend:
    """Gemini image model + Veo video model through the async Gen AI client."""

    def __init__(
        self,
        client: genai.Client,
        image_model: str,
        video_model: str,
        timeout_seconds: float = 120.0,
    ) -> None:
        """Initialize with a configured client and model ids."""
        self._client = client
        self.image_model = image_model
        self.video_model = video_model
        self.timeout_seconds = timeout_seconds

    async def _call(self, operation: str, coro: Any) -> Any:
        start = time.perf_counter()
        try:
            with trace_operation(f"backend_{operation}"):
                return await asyncio.wait_for(coro, timeout=self.timeout_seconds)
        except Exception as e:
            mapped = map_backend_error(e)
            metrics.record_error(type(mapped).__name__, f"backend_{operation}")
            logger.error(
                "backend_call_failed",
                operation=operation,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise mapped from e
        finally:
            metrics.record_backend_call(operation, time.perf_counter() - start)

    async def edit(self, prompt: str, image_bytes: bytes, mime_type: str) -> bytes:
        """Redesign a photo. Returns the first generated image."""
        response = await self._call(
            "edit",
            self._client.aio.models.generate_content(
                model=self.image_model,
                contents=[
                    types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
                    prompt,
                ],
            ),
        )
        return extract_image_bytes(response)

    async def submit(
        self, prompt: str, image_bytes: bytes, mime_type: str, duration_seconds: int
    ) -> str:
        """Start a drone tour video job."""
        operation = await self._call(
            "submit",
            self._client.aio.models.generate_videos(
                model=self.video_model,
                prompt=prompt,
                image=types.Image(image_bytes=image_bytes, mime_type=mime_type),
                config=types.GenerateVideosConfig(duration_seconds=duration_seconds),
            ),
        )
        token = extract_operation_name(operation)
        logger.info("video_job_submitted", operation_name=token, model=self.video_model)
        return token

    async def poll(self, token: str) -> OperationOutcome:
        """Fetch the job state by token."""
        operation = await self._call(
            "poll",
            self._client.aio.operations.get(types.GenerateVideosOperation(name=token)),
        )
        return to_operation_outcome(operation)


def create_generation_backend() -> GeminiBackend:
    """Build the backend from settings."""
    return GeminiBackend(
        client=genai.Client(api_key=settings.gemini_api_key),
        image_model=settings.gemini_image_model,
        video_model=settings.gemini_video_model,
        timeout_seconds=settings.backend_timeout_seconds,
    )
