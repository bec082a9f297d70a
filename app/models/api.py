"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.

Wire field names stay camelCase where the web client sends them; Python
attributes are snake_case and mapped through aliases.
"""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PlanTier(str, Enum):
    """Account plan enumeration."""

    FREE = "free"
    STARTER = "starter"
    PRO = "pro"


class GenerationMode(str, Enum):
    """Generation mode - exactly one is active per request."""

    REDESIGN = "Redesign"
    VIRTUAL_STAGING = "Virtual Staging (Mobiliar)"
    PAINT_ONLY = "Paint Only (Apenas Pintura)"
    DRONE_TOUR = "Drone Tour"


class ArchitecturalStyle(str, Enum):
    """Style selector values sent by the web client."""

    MODERN = "Moderno"
    SCANDINAVIAN = "Escandinavo"
    INDUSTRIAL = "Industrial"
    BOHEMIAN = "Boêmio"
    MINIMALIST = "Minimalista"
    MID_CENTURY = "Moderno de Meados do Século"
    COASTAL = "Costeiro"
    FARMHOUSE = "Casa de Fazenda"


class RecordStatus(str, Enum):
    """Lifecycle of a generation record."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class LedgerEntryKind(str, Enum):
    """Credit ledger entry type."""

    DEBIT = "debit"
    REFUND = "refund"


class ArtifactKind(str, Enum):
    """Logical storage bucket."""

    ORIGINAL = "original"
    GENERATED = "generated"


# Base64 of a 10 MB payload plus a data-URI header
MAX_IMAGE_BASE64_LENGTH = 14_000_200
MAX_CUSTOM_PROMPT_LENGTH = 1000
MAX_DRONE_PROMPT_LENGTH = 500


# ============================================================================
# Image Generation Models
# ============================================================================


class GenerateImageRequest(BaseModel):
    """POST /api/generate request body."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    image_base64: str | None = Field(
        None,
        alias="imageBase64",
        min_length=1,
        max_length=MAX_IMAGE_BASE64_LENGTH,
        description="Data URI or raw base64 of the source photo",
    )
    image_url: str | None = Field(
        None,
        alias="imageUrl",
        min_length=1,
        max_length=2048,
        description="URL of a photo already held in this deployment's storage",
    )
    style: ArchitecturalStyle | None = None
    custom_prompt: str | None = Field(
        None, alias="customPrompt", max_length=MAX_CUSTOM_PROMPT_LENGTH
    )
    generation_mode: GenerationMode = Field(GenerationMode.REDESIGN, alias="generationMode")
    property_id: str | None = Field(None, alias="propertyId", max_length=255)

    @model_validator(mode="after")
    def validate_single_source(self) -> "GenerateImageRequest":
        """Exactly one image source; drone tours have their own endpoint."""
        if bool(self.image_base64) == bool(self.image_url):
            raise ValueError("Provide exactly one of imageBase64 or imageUrl")
        if self.generation_mode == GenerationMode.DRONE_TOUR:
            raise ValueError("Drone tours are generated via /api/generate-drone-tour")
        return self


class GenerateImageResponse(BaseModel):
    """POST /api/generate response."""

    result: str = Field(..., description="Signed URL of the generated image")
    credits_remaining: int
    is_compressed: bool
    storage_path: str | None = None


# ============================================================================
# Drone Tour Models
# ============================================================================


class DroneTourRequest(BaseModel):
    """POST /api/generate-drone-tour request body."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    image_url: str = Field(..., alias="imageUrl", min_length=1, max_length=2048)
    custom_prompt: str | None = Field(
        None, alias="customPrompt", max_length=MAX_DRONE_PROMPT_LENGTH
    )
    property_id: str | None = Field(None, alias="propertyId", max_length=255)


class DroneTourResponse(BaseModel):
    """POST /api/generate-drone-tour response."""

    video_operation_name: str = Field(..., serialization_alias="videoOperationName")
    credits_remaining: int


# ============================================================================
# Operation Polling Models
# ============================================================================


class OperationErrorBody(BaseModel):
    """Backend-reported job error."""

    code: int
    message: str


class GeneratedVideoUri(BaseModel):
    """Video reference inside an operation response."""

    uri: str


class GeneratedVideo(BaseModel):
    """One generated video entry."""

    video: GeneratedVideoUri


class OperationResultBody(BaseModel):
    """Backend-shaped operation result."""

    generated_videos: list[GeneratedVideo] = Field(
        default_factory=list, serialization_alias="generatedVideos"
    )


class OperationStatusResponse(BaseModel):
    """GET /api/check-operation response - mirrors the backend operation shape."""

    name: str
    done: bool
    error: OperationErrorBody | None = None
    response: OperationResultBody | None = None
    public_video_url: str | None = Field(None, serialization_alias="publicVideoUrl")


# ============================================================================
# Health Check Models
# ============================================================================


class EnvironmentCheck(BaseModel):
    """Presence of the external credentials the pipeline needs."""

    gemini_api_key: bool
    auth_jwt_secret: bool
    storage_credentials: bool
    redis_url: bool


class HealthResponse(BaseModel):
    """GET /api/health response."""

    status: Literal["ok", "degraded"]
    message: str
    database: Literal["connected", "disconnected"]
    env: EnvironmentCheck
    timestamp: str


# ============================================================================
# Error Models
# ============================================================================


class ErrorResponse(BaseModel):
    """Error body shared by every failure status."""

    error: str
    message: str | None = None
    credits_remaining: int | None = None
