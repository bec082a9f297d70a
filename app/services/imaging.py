"""
Imaging - Lossy compression of generated images for non-premium plans.
"""

from io import BytesIO

from PIL import Image, UnidentifiedImageError

from app.exceptions import BackendError


def compress_image(data: bytes, quality: int = 70, max_dimension: int = 1600) -> bytes:
    """
    Downscale to fit max_dimension and re-encode as JPEG.

    Undecodable input means the backend returned something that is not an
    image, so it is reported as a BackendError.
    """
    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            if img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            img.thumbnail((max_dimension, max_dimension))
            out = BytesIO()
            img.save(out, format="JPEG", quality=quality, optimize=True)
    except (UnidentifiedImageError, OSError) as e:
        raise BackendError("Generated image could not be decoded") from e
    return out.getvalue()


def sniff_image_type(data: bytes) -> str:
    """Content type from magic bytes (defaults to PNG)."""
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return "image/png"
