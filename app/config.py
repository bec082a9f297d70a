"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


def _split_csv(value: str) -> list[str]:
    """Split a comma-separated setting into trimmed, non-empty items."""
    items: list[str] = []
    for item in value.split(","):
        item = item.strip()
        if item and item not in items:
            items.append(item)
    return items


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_pool_size: int = 25
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    run_migrations_on_startup: bool = False

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Room Redesign Generation API"
    api_version: str = "0.1.0"
    api_description: str = "Credit-metered AI room redesign and drone tour generation"

    # Authentication - bearer tokens issued by the auth backend (HS256 JWT)
    auth_jwt_secret: str = ""
    auth_jwt_audience: str = "authenticated"
    auth_jwt_algorithms: str = "HS256"

    # Rate limiting (fixed window per account + client IP)
    redis_url: str = ""
    rate_limit_requests: int = 5
    rate_limit_window_seconds: int = 60
    rate_limit_key_prefix: str = "ratelimit"
    # Reverse proxies that append to X-Forwarded-For; 0 trusts only the socket peer
    trusted_proxy_count: int = 1

    # Object storage (S3-compatible)
    storage_endpoint_url: str = ""
    storage_access_key_id: str = ""
    storage_secret_access_key: str = ""
    storage_region: str = "auto"
    storage_originals_bucket: str = "originals"
    storage_generations_bucket: str = "generations"
    storage_public_hosts: str = ""  # Hosts allowed for server-side imageUrl fetches
    signed_url_ttl_seconds: int = 3600
    store_original_uploads: bool = True

    # Generation backend - Google Gen AI
    gemini_api_key: str = ""
    gemini_image_model: str = "gemini-2.5-flash-image"
    gemini_video_model: str = "veo-3.1-generate-preview"
    drone_tour_duration_seconds: int = 5
    backend_timeout_seconds: float = 120.0
    media_proxy_allowed_hosts: str = "generativelanguage.googleapis.com"

    # Pricing Configuration
    image_edit_cost: int = 1
    drone_tour_cost: int = 50
    free_drone_tour_limit: int = 1
    uncompressed_plans: str = "pro"
    estimated_cost_per_image_usd: float = 0.039
    estimated_cost_per_video_second_usd: float = 0.40

    # Input limits
    max_image_bytes: int = 10 * 1024 * 1024
    source_fetch_timeout_seconds: float = 15.0

    # Compression for non-premium plans
    compression_quality: int = 70
    compression_max_dimension: int = 1600

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True
    usage_log_timeout_seconds: float = 2.0

    # Observability - Tracing
    tracing_enabled: bool = True
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "room-redesign-api"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start if critical config is missing.
        """
        errors: list[str] = []

        # DATABASE_URL is absolutely required
        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if self.image_edit_cost <= 0 or self.drone_tour_cost <= 0:
            errors.append("Generation costs must be positive")

        if self.rate_limit_requests <= 0 or self.rate_limit_window_seconds <= 0:
            errors.append("Rate limit quota and window must be positive")

        if self.trusted_proxy_count < 0:
            errors.append("TRUSTED_PROXY_COUNT cannot be negative")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    @property
    def allowed_source_hosts(self) -> list[str]:
        """Hosts whose images the server may fetch on a caller's behalf."""
        return _split_csv(self.storage_public_hosts)

    @property
    def allowed_media_hosts(self) -> list[str]:
        """Backend hosts the media proxy may stream from."""
        return _split_csv(self.media_proxy_allowed_hosts)

    @property
    def uncompressed_plan_names(self) -> list[str]:
        """Plans whose outputs are stored at full resolution."""
        return _split_csv(self.uncompressed_plans)

    @property
    def jwt_algorithms(self) -> list[str]:
        """Accepted JWT signing algorithms."""
        return _split_csv(self.auth_jwt_algorithms)


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
