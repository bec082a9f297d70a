"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.

Every failure of the generation pipeline maps to exactly one status code and
body shape; the client branches on the status code.
"""

from uuid import UUID


class GenerationError(Exception):
    """Base exception for all generation pipeline errors."""

    status_code: int = 500
    error: str = "Internal server error"
    requires_refund: bool = False
    requires_cleanup: bool = False

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.error
        super().__init__(self.message)

    @property
    def credits_remaining(self) -> int | None:
        """Balance to echo to the caller, when the error carries one."""
        return None


# ============================================================================
# Pre-reservation failures (no compensation needed)
# ============================================================================


class AuthError(GenerationError):
    """Raised when the bearer token is missing or invalid."""

    status_code = 401
    error = "Unauthorized"


class QuotaExceededError(GenerationError):
    """Raised when a plan-tier hard cap is reached."""

    status_code = 403
    error = "Free limit reached"

    def __init__(self, message: str, balance: int) -> None:
        self.balance = balance
        super().__init__(message)

    @property
    def credits_remaining(self) -> int | None:
        return self.balance


class RateLimitedError(GenerationError):
    """Raised when the caller exceeded the request window."""

    status_code = 429
    error = "Too many requests"

    def __init__(self, retry_after_seconds: int) -> None:
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"Rate limit exceeded, retry in {retry_after_seconds}s")


class RequestValidationFailed(GenerationError):
    """Raised when the payload is malformed, oversized or points at a disallowed host."""

    status_code = 400
    error = "Invalid request"


class InsufficientCreditsError(GenerationError):
    """Raised when account has insufficient balance for the reservation."""

    status_code = 403
    error = "Not enough credits"

    def __init__(self, balance: int, required: int) -> None:
        self.balance = balance
        self.required = required
        super().__init__(f"Insufficient credits. Balance: {balance}, Required: {required}")

    @property
    def credits_remaining(self) -> int | None:
        return self.balance


class OperationAccessDenied(GenerationError):
    """Raised when a caller polls an operation it does not own."""

    status_code = 403
    error = "Forbidden"

    def __init__(self) -> None:
        super().__init__("Operation not found for this account")


# ============================================================================
# Post-reservation failures (compensation required)
# ============================================================================


class BackendError(GenerationError):
    """Raised when the generation backend fails or declines."""

    status_code = 500
    error = "Generation failed"
    requires_refund = True


class NoArtifactProducedError(BackendError):
    """Raised when the backend response contains no usable artifact."""

    def __init__(self, message: str = "No image data found in response") -> None:
        super().__init__(message)


class BackendQuotaError(BackendError):
    """Raised when the backend reports its own quota or billing exhaustion."""

    def __init__(self, message: str = "Generation backend quota exhausted") -> None:
        super().__init__(message)


class StorageError(GenerationError):
    """Raised when writing or signing an artifact fails."""

    status_code = 500
    error = "Storage failure"
    requires_refund = True
    requires_cleanup = True


class ArtifactExistsError(StorageError):
    """Raised when a non-upserting write hits an existing path."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Artifact already exists: {path}")


class PersistenceError(GenerationError):
    """Raised when the generation record cannot be written."""

    status_code = 500
    error = "Failed to save generation"
    requires_refund = True
    requires_cleanup = True


# ============================================================================
# Ledger errors
# ============================================================================


class AccountNotFoundError(GenerationError):
    """Raised when the account row doesn't exist."""

    status_code = 500
    error = "Failed to fetch user profile"

    def __init__(self, account_id: UUID) -> None:
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class DuplicateRefundError(GenerationError):
    """Raised when a refund for the same request was already recorded."""

    def __init__(self, request_id: str) -> None:
        self.request_id = request_id
        super().__init__(f"Refund already recorded for request {request_id}")


# ============================================================================
# Media proxy
# ============================================================================


class UpstreamMediaError(GenerationError):
    """Raised when the backend host refuses or fails a media download."""

    error = "Failed to fetch media from upstream"

    def __init__(self, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(f"Upstream returned {status_code}")
