"""
API Routes - FastAPI endpoints for the generation pipeline.

NO DICTIONARIES - All requests/responses use Pydantic models.

Pipeline errors (GenerationError subclasses) propagate to the application
exception handler, which renders the shared error body and status code.
"""

import httpx
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from app.api.dependencies import get_current_principal, get_media_principal, get_orchestrator
from app.config import settings
from app.exceptions import RequestValidationFailed
from app.models.api import (
    DroneTourRequest,
    DroneTourResponse,
    GeneratedVideo,
    GeneratedVideoUri,
    GenerateImageRequest,
    GenerateImageResponse,
    OperationErrorBody,
    OperationResultBody,
    OperationStatusResponse,
)
from app.models.domain import DroneTourCommand, ImageEditCommand, OperationStatus, Principal
from app.observability.logging import get_logger
from app.services.media_proxy import content_disposition, open_media_stream
from app.services.orchestrator import GenerationOrchestrator

logger = get_logger(__name__)
router = APIRouter(prefix="/api", tags=["generation"])


@router.post("/generate", response_model=GenerateImageResponse)
async def generate_image(
    request: GenerateImageRequest,
    principal: Principal = Depends(get_current_principal),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> GenerateImageResponse:
    """
    Redesign a room photo.

    Costs image_edit_cost credits; refunded automatically if generation,
    storage or persistence fails.
    """
    try:
        command = ImageEditCommand(
            mode=request.generation_mode,
            style=request.style,
            custom_prompt=request.custom_prompt,
            image_base64=request.image_base64,
            image_url=request.image_url,
            property_id=request.property_id,
        )
    except ValueError as e:
        raise RequestValidationFailed(str(e)) from e

    result = await orchestrator.generate_image(principal, command)
    return GenerateImageResponse(
        result=result.signed_url,
        credits_remaining=result.credits_remaining,
        is_compressed=result.is_compressed,
        storage_path=result.storage_path,
    )


@router.post("/generate-drone-tour", response_model=DroneTourResponse)
async def generate_drone_tour(
    request: DroneTourRequest,
    principal: Principal = Depends(get_current_principal),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> DroneTourResponse:
    """
    Start a cinematic drone tour video job.

    Returns an operation token to poll with /api/check-operation.
    """
    try:
        command = DroneTourCommand(
            image_url=request.image_url,
            custom_prompt=request.custom_prompt,
            property_id=request.property_id,
        )
    except ValueError as e:
        raise RequestValidationFailed(str(e)) from e

    result = await orchestrator.generate_drone_tour(principal, command)
    return DroneTourResponse(
        video_operation_name=result.operation_name,
        credits_remaining=result.credits_remaining,
    )


def to_operation_response(status: OperationStatus) -> OperationStatusResponse:
    """Render a poll result in the backend's operation shape."""
    error = None
    if status.done and status.video_url is None:
        error = OperationErrorBody(
            code=status.error_code or 500,
            message=status.error_message or "Video generation failed",
        )

    response = None
    if status.video_url is not None:
        response = OperationResultBody(
            generated_videos=[GeneratedVideo(video=GeneratedVideoUri(uri=status.video_url))]
        )

    return OperationStatusResponse(
        name=status.name,
        done=status.done,
        error=error,
        response=response,
        public_video_url=status.video_url,
    )


@router.get("/check-operation", response_model=OperationStatusResponse)
async def check_operation(
    operation_name: str = Query(..., alias="operationName", min_length=1, max_length=512),
    principal: Principal = Depends(get_current_principal),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> OperationStatusResponse:
    """Poll a drone tour job owned by the caller."""
    status = await orchestrator.check_operation(principal, operation_name)
    return to_operation_response(status)


@router.get("/media-proxy")
async def media_proxy(
    request: Request,
    uri: str = Query(..., min_length=1, max_length=2048),
    type: str | None = Query(None, max_length=100),
    filename: str | None = Query(None, max_length=255),
    principal: Principal = Depends(get_media_principal),
) -> StreamingResponse:
    """
    Stream a backend-hosted artifact using the server's API key.

    Auth: Bearer header, or ?token= for direct browser downloads.
    """
    client: httpx.AsyncClient = request.app.state.http_client
    stream = await open_media_stream(
        client,
        uri,
        api_key=settings.gemini_api_key,
        allowed_hosts=settings.allowed_media_hosts,
        content_type=type,
    )

    headers: dict[str, str] = {}
    if filename:
        headers["Content-Disposition"] = content_disposition(filename)

    logger.info("media_proxy_streaming", user_id=str(principal.user_id))
    return StreamingResponse(stream.chunks, media_type=stream.content_type, headers=headers)
