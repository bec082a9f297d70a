"""
Image Input - Decode inline uploads and fetch allow-listed source URLs.

Server-side fetches are restricted to https URLs on configured storage hosts;
the host check happens before any network I/O. Every rejection raises
RequestValidationFailed (HTTP 400).
"""

import base64
import binascii
import re
from urllib.parse import urlparse

import httpx

from app.exceptions import RequestValidationFailed
from app.models.domain import SourceImage
from app.observability.logging import get_logger

logger = get_logger(__name__)

ALLOWED_IMAGE_TYPES = frozenset({"image/png", "image/jpeg", "image/jpg", "image/webp"})

_DATA_URI = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.*)$", re.DOTALL)


def _normalize_mime(mime_type: str) -> str:
    mime_type = mime_type.split(";", 1)[0].strip().lower()
    return "image/jpeg" if mime_type == "image/jpg" else mime_type


def parse_data_uri(value: str, max_bytes: int) -> SourceImage:
    """
    Decode `data:<mime>;base64,<payload>` (or bare base64, taken as JPEG).

    Rejects non-image types, malformed base64, empty payloads and payloads
    larger than max_bytes once decoded.
    """
    match = _DATA_URI.match(value.strip())
    if match:
        mime_type = _normalize_mime(match.group("mime"))
        payload = match.group("data")
    elif value.startswith("data:"):
        raise RequestValidationFailed("Malformed data URI")
    else:
        mime_type = "image/jpeg"
        payload = value

    if mime_type not in ALLOWED_IMAGE_TYPES:
        raise RequestValidationFailed(f"Unsupported image type: {mime_type}")

    # base64 inflates by 4/3; reject before decoding anything absurd
    if len(payload) > (max_bytes * 4) // 3 + 4:
        raise RequestValidationFailed("Image exceeds maximum size")

    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise RequestValidationFailed("Image is not valid base64") from e

    if not data:
        raise RequestValidationFailed("Image is empty")
    if len(data) > max_bytes:
        raise RequestValidationFailed("Image exceeds maximum size")

    return SourceImage(data=data, mime_type=mime_type)


def ensure_allowed_source(url: str, allowed_hosts: list[str]) -> None:
    """Reject anything other than https on an allow-listed host."""
    parsed = urlparse(url)
    if parsed.scheme != "https":
        raise RequestValidationFailed("Image URL must use https")
    if not parsed.hostname or parsed.hostname.lower() not in {h.lower() for h in allowed_hosts}:
        raise RequestValidationFailed("Image URL host is not allowed")


async def fetch_source_image(
    url: str,
    client: httpx.AsyncClient,
    allowed_hosts: list[str],
    max_bytes: int,
) -> SourceImage:
    """
    Fetch an allow-listed image with a streaming size cap.

    Redirects are not followed so the host check cannot be bypassed.
    """
    ensure_allowed_source(url, allowed_hosts)

    try:
        async with client.stream("GET", url, follow_redirects=False) as response:
            if response.status_code != 200:
                raise RequestValidationFailed(
                    f"Could not fetch image (status {response.status_code})"
                )
            mime_type = _normalize_mime(response.headers.get("content-type", "image/jpeg"))
            if mime_type not in ALLOWED_IMAGE_TYPES:
                raise RequestValidationFailed(f"Unsupported image type: {mime_type}")

            chunks: list[bytes] = []
            total = 0
            async for chunk in response.aiter_bytes():
                total += len(chunk)
                if total > max_bytes:
                    raise RequestValidationFailed("Image exceeds maximum size")
                chunks.append(chunk)
    except httpx.HTTPError as e:
        logger.warning("source_fetch_failed", url=url, error=str(e))
        raise RequestValidationFailed("Could not fetch image") from e

    data = b"".join(chunks)
    if not data:
        raise RequestValidationFailed("Image is empty")

    return SourceImage(data=data, mime_type=mime_type, origin_url=url)
