"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed dataclasses.
Everything is immutable except CreditReservation, whose state moves
unreserved -> reserved -> refunded during one request.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from app.models.api import (
    ArchitecturalStyle,
    ArtifactKind,
    GenerationMode,
    PlanTier,
    RecordStatus,
)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller - the result of verifying a bearer token."""

    user_id: UUID
    email: str | None = None
    client_ip: str = "unknown"

    @property
    def rate_limit_key(self) -> str:
        """Per-account, per-origin limiter identity."""
        return f"{self.user_id}:{self.client_ip}"


@dataclass(frozen=True)
class AccountData:
    """Immutable account snapshot. Never used to compute a new balance."""

    account_id: UUID
    email: str | None
    plan: PlanTier
    credits_remaining: int
    created_at: datetime

    def __post_init__(self) -> None:
        """Validate balance constraints."""
        if self.credits_remaining < 0:
            raise ValueError(f"Balance cannot be negative: {self.credits_remaining}")


# ============================================================================
# Request Commands
# ============================================================================


@dataclass(frozen=True)
class ImageEditCommand:
    """Image redesign request as received, before deep validation."""

    mode: GenerationMode
    style: ArchitecturalStyle | None = None
    custom_prompt: str | None = None
    image_base64: str | None = None
    image_url: str | None = None
    property_id: str | None = None

    def __post_init__(self) -> None:
        """Validate command constraints."""
        if self.mode == GenerationMode.DRONE_TOUR:
            raise ValueError("Drone tours use DroneTourCommand")
        if bool(self.image_base64) == bool(self.image_url):
            raise ValueError("Exactly one image source is required")


@dataclass(frozen=True)
class DroneTourCommand:
    """Drone tour (video) request as received."""

    image_url: str
    custom_prompt: str | None = None
    property_id: str | None = None

    def __post_init__(self) -> None:
        """Validate command constraints."""
        if not self.image_url:
            raise ValueError("image_url cannot be empty")


@dataclass(frozen=True)
class SourceImage:
    """Validated, decoded source photo."""

    data: bytes
    mime_type: str
    origin_url: str | None = None

    @property
    def size_bytes(self) -> int:
        return len(self.data)


# ============================================================================
# Credits
# ============================================================================


class ReservationState(str, Enum):
    """Credit reservation lifecycle."""

    UNRESERVED = "unreserved"
    RESERVED = "reserved"
    REFUNDED = "refunded"


@dataclass
class CreditReservation:
    """Transient claim on an account's credits for one request."""

    account_id: UUID
    amount: int
    request_id: str
    state: ReservationState = ReservationState.UNRESERVED
    balance_after: int | None = None

    def __post_init__(self) -> None:
        if self.amount <= 0:
            raise ValueError(f"Reservation amount must be positive: {self.amount}")

    def mark_reserved(self, balance_after: int) -> None:
        if self.state != ReservationState.UNRESERVED:
            raise ValueError(f"Cannot reserve from state {self.state.value}")
        self.state = ReservationState.RESERVED
        self.balance_after = balance_after

    def claim_refund(self) -> bool:
        """
        Move reserved -> refunded.

        Returns False when there is nothing to refund (never reserved, or
        already refunded), so a second failure path cannot credit twice.
        """
        if self.state != ReservationState.RESERVED:
            return False
        self.state = ReservationState.REFUNDED
        return True

    @property
    def is_refunded(self) -> bool:
        return self.state == ReservationState.REFUNDED


# ============================================================================
# Artifacts & Records
# ============================================================================


@dataclass(frozen=True)
class Artifact:
    """Object written to storage during a request."""

    kind: ArtifactKind
    path: str
    content_type: str
    size_bytes: int


@dataclass(frozen=True)
class GenerationRecordIntent:
    """Generation row before persistence - immutable intent."""

    user_id: UUID
    original_image_url: str
    generated_image_url: str
    prompt_used: str
    generation_mode: GenerationMode
    is_compressed: bool
    status: RecordStatus
    request_id: str
    property_id: str | None = None

    def __post_init__(self) -> None:
        """Validate record constraints."""
        if not self.generated_image_url:
            raise ValueError("generated_image_url cannot be empty")
        if not self.prompt_used:
            raise ValueError("prompt_used cannot be empty")


@dataclass(frozen=True)
class GenerationRecordData:
    """Immutable generation row after persistence."""

    record_id: UUID
    user_id: UUID
    original_image_url: str
    generated_image_url: str
    prompt_used: str
    generation_mode: GenerationMode
    is_compressed: bool
    status: RecordStatus
    request_id: str | None
    result_uri: str | None
    error_message: str | None
    created_at: datetime


# ============================================================================
# Backend Outcomes
# ============================================================================


@dataclass(frozen=True)
class OperationOutcome:
    """Normalized state of an asynchronous backend job."""

    done: bool
    artifact_uri: str | None = None
    error_code: int | None = None
    error_message: str | None = None

    @property
    def failed(self) -> bool:
        return self.done and self.artifact_uri is None


@dataclass(frozen=True)
class RateLimitDecision:
    """Admission decision for one identity key."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    degraded: bool = False


# ============================================================================
# Pipeline Results
# ============================================================================


@dataclass(frozen=True)
class ImageEditResult:
    """Successful image redesign."""

    signed_url: str
    credits_remaining: int
    is_compressed: bool
    storage_path: str


@dataclass(frozen=True)
class DroneTourResult:
    """Accepted drone tour job."""

    operation_name: str
    credits_remaining: int


@dataclass(frozen=True)
class OperationStatus:
    """Poll result returned to the caller."""

    name: str
    done: bool
    video_url: str | None = None
    error_code: int | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class MetricEvent:
    """Fire-and-forget usage record."""

    endpoint: str
    model: str
    success: bool
    latency_ms: int
    user_id: UUID | None = None
    error_message: str | None = None
    # Metric label; a GenerationError class name or "UnexpectedError"
    error_type: str | None = None
    input_bytes: int = 0
    output_bytes: int = 0
    credits_charged: int = 0
    estimated_cost_usd: float = 0.0


@dataclass(frozen=True)
class StuckReservation:
    """Debit with neither a refund nor a generation row for its request id."""

    account_id: UUID
    request_id: str
    amount: int
    reason: str
    created_at: datetime
