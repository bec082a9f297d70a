"""
Artifact Store - S3-compatible object storage for originals and generations.

NO DICTIONARIES - Writes return typed Artifact records.

boto3 is synchronous; every call runs in a worker thread so the event loop is
never blocked by storage I/O.
"""

import asyncio
from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import UUID

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.config import settings
from app.exceptions import ArtifactExistsError, StorageError
from app.models.api import ArtifactKind
from app.models.domain import Artifact
from app.observability.logging import get_logger

logger = get_logger(__name__)

_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "video/mp4": "mp4",
}


def extension_for(content_type: str) -> str:
    """File extension for a content type (defaults to bin)."""
    return _EXTENSIONS.get(content_type, "bin")


def build_artifact_path(
    account_id: UUID,
    content_type: str,
    suffix: str = "",
    timestamp_ms: int | None = None,
) -> str:
    """
    Build an object path: {account_id}/{timestamp}{suffix}.{ext}.

    suffix is "_input" for stored originals, "_compressed" for lossy outputs
    and empty for full resolution outputs.
    """
    if timestamp_ms is None:
        timestamp_ms = int(datetime.now(UTC).timestamp() * 1000)
    return f"{account_id}/{timestamp_ms}{suffix}.{extension_for(content_type)}"


class ArtifactStore(Protocol):
    """Artifact storage interface used by the orchestrator."""

    async def put(self, kind: ArtifactKind, path: str, data: bytes, content_type: str) -> Artifact:
        """Write a new object. Never overwrites."""
        ...

    async def sign(self, kind: ArtifactKind, path: str, ttl_seconds: int) -> str:
        """Create a time-limited retrieval URL."""
        ...

    async def remove(self, kind: ArtifactKind, paths: list[str]) -> None:
        """Delete objects. Best effort; never raises."""
        ...


class S3ArtifactStore:
    """Artifact store for any S3-compatible endpoint (Supabase Storage, R2, MinIO)."""

    def __init__(self, client: Any, buckets: dict[ArtifactKind, str]) -> None:
        """Initialize with a boto3 S3 client and the bucket for each artifact kind."""
        self._client = client
        self._buckets = buckets

    def _bucket(self, kind: ArtifactKind) -> str:
        return self._buckets[kind]

    async def put(self, kind: ArtifactKind, path: str, data: bytes, content_type: str) -> Artifact:
        """Upload without upsert; an existing object raises ArtifactExistsError."""
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self._bucket(kind),
                Key=path,
                Body=data,
                ContentType=content_type,
                IfNoneMatch="*",
            )
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in ("PreconditionFailed", "412", "ConditionalRequestConflict"):
                raise ArtifactExistsError(path) from e
            logger.error("artifact_put_failed", kind=kind.value, path=path, error=str(e))
            raise StorageError(f"Failed to store {kind.value} artifact: {code or e}") from e
        except BotoCoreError as e:
            logger.error("artifact_put_failed", kind=kind.value, path=path, error=str(e))
            raise StorageError(f"Failed to store {kind.value} artifact") from e

        logger.info("artifact_stored", kind=kind.value, path=path, size_bytes=len(data))
        return Artifact(kind=kind, path=path, content_type=content_type, size_bytes=len(data))

    async def sign(self, kind: ArtifactKind, path: str, ttl_seconds: int) -> str:
        """Presigned GET URL for the object."""
        try:
            url: str = await asyncio.to_thread(
                self._client.generate_presigned_url,
                ClientMethod="get_object",
                Params={"Bucket": self._bucket(kind), "Key": path},
                ExpiresIn=ttl_seconds,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("artifact_sign_failed", kind=kind.value, path=path, error=str(e))
            raise StorageError("Failed to create signed URL") from e

        if not url:
            raise StorageError("Failed to create signed URL")
        return url

    async def remove(self, kind: ArtifactKind, paths: list[str]) -> None:
        """Delete objects, logging (never raising) on failure."""
        if not paths:
            return
        try:
            await asyncio.to_thread(
                self._client.delete_objects,
                Bucket=self._bucket(kind),
                Delete={"Objects": [{"Key": path} for path in paths], "Quiet": True},
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(
                "artifact_remove_failed", kind=kind.value, paths=paths, error=str(e)
            )
            return
        logger.info("artifacts_removed", kind=kind.value, count=len(paths))


def create_artifact_store() -> S3ArtifactStore:
    """Build the store from settings."""
    client = boto3.client(
        "s3",
        endpoint_url=settings.storage_endpoint_url or None,
        aws_access_key_id=settings.storage_access_key_id or None,
        aws_secret_access_key=settings.storage_secret_access_key or None,
        config=Config(signature_version="s3v4"),
        region_name=settings.storage_region,
    )
    return S3ArtifactStore(
        client=client,
        buckets={
            ArtifactKind.ORIGINAL: settings.storage_originals_bucket,
            ArtifactKind.GENERATED: settings.storage_generations_bucket,
        },
    )
