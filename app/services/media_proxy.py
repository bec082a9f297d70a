"""
Media Proxy - Streams backend-hosted artifacts to callers.

Backend download URIs require the server's API key, so the client is given a
proxy URL instead. Only https URIs on allow-listed backend hosts are fetched.
"""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from urllib.parse import urlparse

import httpx

from app.exceptions import RequestValidationFailed, UpstreamMediaError
from app.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class MediaStream:
    """An open upstream response ready to be relayed."""

    content_type: str
    chunks: AsyncIterator[bytes]


def ensure_allowed_media_uri(uri: str, allowed_hosts: list[str]) -> None:
    """Reject non-https URIs and hosts outside the backend allow-list."""
    parsed = urlparse(uri)
    if parsed.scheme != "https" or not parsed.hostname:
        raise RequestValidationFailed("Invalid or restricted URI")
    if parsed.hostname.lower() not in {h.lower() for h in allowed_hosts}:
        raise RequestValidationFailed("Invalid or restricted URI")


def content_disposition(filename: str) -> str:
    """Attachment header with quotes and path separators removed."""
    safe = filename.replace('"', "").replace("\\", "").replace("/", "").strip()
    return f'attachment; filename="{safe or "download"}"'


async def open_media_stream(
    client: httpx.AsyncClient,
    uri: str,
    api_key: str,
    allowed_hosts: list[str],
    content_type: str | None = None,
) -> MediaStream:
    """
    Start the upstream download and return a relay stream.

    The upstream response is closed when the returned iterator is exhausted
    or closed.
    """
    ensure_allowed_media_uri(uri, allowed_hosts)

    request = client.build_request("GET", uri, headers={"x-goog-api-key": api_key})
    response = await client.send(request, stream=True, follow_redirects=True)

    if response.status_code >= 400:
        await response.aclose()
        logger.warning("media_proxy_upstream_error", status_code=response.status_code)
        raise UpstreamMediaError(response.status_code)

    async def relay() -> AsyncIterator[bytes]:
        try:
            async for chunk in response.aiter_bytes():
                yield chunk
        finally:
            await response.aclose()

    return MediaStream(
        content_type=content_type
        or response.headers.get("content-type", "application/octet-stream"),
        chunks=relay(),
    )
