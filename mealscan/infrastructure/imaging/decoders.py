"""
Image decoders.

Camera-native HEIC/HEIF payloads go through pillow-heif first and fall
back to Pillow's own decoders (some devices label plain JPEGs as HEIC).
Every other format goes straight to Pillow.
"""

from __future__ import annotations

from io import BytesIO

import pillow_heif
import structlog
from PIL import Image, UnidentifiedImageError

from mealscan.domain.analysis.models import RawImageInput
from mealscan.domain.shared.errors import UnsupportedFormat

logger = structlog.get_logger(__name__)


HEIC_UNSUPPORTED_MESSAGE = "HEIC format not supported. Please convert to JPEG or PNG"

# Pillow raises a handful of unrelated types for broken payloads
_PIL_DECODE_ERRORS = (
    UnidentifiedImageError,
    OSError,
    ValueError,
    SyntaxError,
    Image.DecompressionBombError,
)


def decode_heif(data: bytes) -> Image.Image:
    """
    Decode a HEIC/HEIF payload with libheif.

    Raises:
        ValueError, RuntimeError, EOFError: If libheif rejects the payload
    """
    heif_file = pillow_heif.open_heif(BytesIO(data))
    return Image.frombytes(
        heif_file.mode,
        heif_file.size,
        heif_file.data,
        "raw",
        heif_file.mode,
        heif_file.stride,
    )


def decode_generic(data: bytes) -> Image.Image:
    """
    Decode any format Pillow understands.

    The raster is loaded eagerly so truncated files fail here and not
    later during resize.
    """
    image = Image.open(BytesIO(data))
    image.load()
    return image


def decode_image(raw: RawImageInput) -> Image.Image:
    """
    Decode a raw input into a Pillow image.

    Args:
        raw: Image as captured or uploaded

    Returns:
        Decoded Pillow image (orientation not yet applied)

    Raises:
        UnsupportedFormat: If no decoder can read the payload
    """
    if raw.is_camera_native():
        try:
            return decode_heif(raw.data)
        except Exception as e:
            # libheif maps its error codes to several unrelated exception types
            logger.warning(
                "HEIF decode failed, trying generic decoder",
                mime_type=raw.mime_type,
                filename=raw.filename,
                error=str(e),
            )

        try:
            return decode_generic(raw.data)
        except _PIL_DECODE_ERRORS as e:
            logger.warning(
                "Generic decode of HEIF payload failed", mime_type=raw.mime_type, error=str(e)
            )
            raise UnsupportedFormat(
                f"{HEIC_UNSUPPORTED_MESSAGE} ({raw.mime_type}, {raw.byte_length} bytes)"
            ) from e

    try:
        return decode_generic(raw.data)
    except _PIL_DECODE_ERRORS as e:
        logger.warning("Image decode failed", mime_type=raw.mime_type, error=str(e))
        raise UnsupportedFormat(f"Cannot decode {raw.mime_type} image: {e}") from e
