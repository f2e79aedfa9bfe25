"""
Pillow image normalizer.

Turns any decodable photo into an upright, metadata-free JPEG whose sides
sit between the dimension floor and the profile cap, and whose encoded
size is large enough for the vision model to work with.
"""

from __future__ import annotations

from io import BytesIO
from typing import Tuple

import structlog
from PIL import Image, ImageOps

from mealscan.domain.analysis.models import NormalizedImage, RawImageInput
from mealscan.domain.analysis.profiles import NormalizerConstraints
from mealscan.domain.shared.errors import ImageTooDegraded, UnsupportedFormat
from mealscan.infrastructure.imaging.decoders import decode_image
from mealscan.metrics import analysis as metrics

logger = structlog.get_logger(__name__)


ORIENTED_MAX_DIMENSION_PX = 2048
BACKGROUND_COLOR = (255, 255, 255)


def flatten_to_rgb(image: Image.Image) -> Image.Image:
    """
    Re-raster onto a fresh RGB surface.

    Transparent pixels are composited on white. The result carries no
    EXIF, ICC or other metadata from the source.
    """
    if image.mode in ("RGBA", "LA", "P", "PA"):
        rgba = image.convert("RGBA")
        surface = Image.new("RGB", rgba.size, BACKGROUND_COLOR)
        surface.paste(rgba, mask=rgba.split()[-1])
        return surface

    surface = Image.new("RGB", image.size, BACKGROUND_COLOR)
    surface.paste(image.convert("RGB"))
    return surface


def orient(image: Image.Image, max_dimension: int = ORIENTED_MAX_DIMENSION_PX) -> Image.Image:
    """Apply EXIF orientation, flatten to RGB and bound the longest side."""
    surface = flatten_to_rgb(ImageOps.exif_transpose(image))

    longest = max(surface.size)
    if longest > max_dimension:
        scale = max_dimension / longest
        size = (max(1, round(surface.width * scale)), max(1, round(surface.height * scale)))
        surface = surface.resize(size, Image.Resampling.LANCZOS)
    return surface


def target_size(width: int, height: int, max_dimension: int, min_dimension: int) -> Tuple[int, int]:
    """
    Compute the resized dimensions before padding.

    Scales down so neither side exceeds ``max_dimension``; scales up so the
    short side reaches ``min_dimension`` unless that would push the long
    side past the cap.

    Example:
        >>> target_size(3000, 2000, 1200, 600)
        (1200, 800)
        >>> target_size(50, 50, 1200, 600)
        (600, 600)
        >>> target_size(1000, 100, 1200, 600)
        (1200, 120)
    """
    scale = min(1.0, max_dimension / max(width, height))
    if min(width, height) * scale < min_dimension:
        scale = min(min_dimension / min(width, height), max_dimension / max(width, height))

    new_width = min(max_dimension, max(1, round(width * scale)))
    new_height = min(max_dimension, max(1, round(height * scale)))
    return new_width, new_height


def pad_to_floor(image: Image.Image, min_dimension: int) -> Image.Image:
    """Center the image on a white canvas whose sides are at least the floor."""
    width, height = image.size
    if width >= min_dimension and height >= min_dimension:
        return image

    canvas = Image.new(
        "RGB", (max(width, min_dimension), max(height, min_dimension)), BACKGROUND_COLOR
    )
    canvas.paste(image, ((canvas.width - width) // 2, (canvas.height - height) // 2))
    return canvas


def encode_jpeg(image: Image.Image, quality: float) -> bytes:
    """Encode an RGB image as baseline JPEG without metadata."""
    output = BytesIO()
    image.save(output, format="JPEG", quality=round(quality * 100), optimize=True)
    return output.getvalue()


class PillowImageNormalizer:
    """
    Image normalizer backed by Pillow (and pillow-heif for HEIC).

    Pure and in-memory: identical input and constraints always produce
    identical output.

    Steps:
    1. Decode (HEIF decoder first for camera-native formats)
    2. Orientation correction and flattening on white
    3. Resize within [min_dimension, max_dimension] and JPEG encode
    4. One high-quality retry if the output is below min_viable_bytes

    Example:
        >>> normalizer = PillowImageNormalizer()
        >>> raw = RawImageInput(data=png_bytes, mime_type="image/png")
        >>> image = normalizer.normalize(raw, NormalizerConstraints())
        >>> assert max(image.width, image.height) <= 1200
    """

    def __init__(self, oriented_max_dimension: int = ORIENTED_MAX_DIMENSION_PX):
        self.oriented_max_dimension = oriented_max_dimension

    def normalize(
        self, raw: RawImageInput, constraints: NormalizerConstraints
    ) -> NormalizedImage:
        """
        Normalize a raw image.

        Raises:
            UnsupportedFormat: Non-image MIME type, empty or undecodable payload
            ImageTooDegraded: Output below min_viable_bytes after the retry
        """
        try:
            return self._normalize(raw, constraints)
        except UnsupportedFormat:
            metrics.record_normalization_failed("unsupported_format")
            raise
        except ImageTooDegraded:
            metrics.record_normalization_failed("too_degraded")
            raise

    def _normalize(
        self, raw: RawImageInput, constraints: NormalizerConstraints
    ) -> NormalizedImage:
        if not raw.data:
            raise UnsupportedFormat("Empty image payload")
        if not raw.is_image_type() and not raw.is_camera_native():
            raise UnsupportedFormat(f"Unsupported MIME type: {raw.mime_type}")

        decoded = decode_image(raw)
        oriented = orient(decoded, self.oriented_max_dimension)

        image = self._resize_and_encode(
            oriented,
            max_dimension=constraints.max_dimension,
            min_dimension=constraints.min_dimension,
            quality=constraints.quality,
        )
        if image.byte_length >= constraints.min_viable_bytes:
            logger.debug(
                "Image normalized",
                source_bytes=raw.byte_length,
                output_bytes=image.byte_length,
                width=image.width,
                height=image.height,
            )
            return image

        logger.info(
            "Normalized image below viable size, retrying at high quality",
            output_bytes=image.byte_length,
            threshold=constraints.min_viable_bytes,
        )
        metrics.record_normalization_retry()

        image = self._resize_and_encode(
            oriented,
            max_dimension=constraints.retry_max_dimension,
            min_dimension=constraints.min_dimension,
            quality=constraints.retry_quality,
        )
        if image.byte_length < constraints.min_viable_bytes:
            raise ImageTooDegraded(
                f"Encoded {image.byte_length} bytes < {constraints.min_viable_bytes} "
                "after high-quality retry"
            )
        return image

    @staticmethod
    def _resize_and_encode(
        oriented: Image.Image,
        *,
        max_dimension: int,
        min_dimension: int,
        quality: float,
    ) -> NormalizedImage:
        size = target_size(oriented.width, oriented.height, max_dimension, min_dimension)
        resized = oriented
        if size != oriented.size:
            resized = oriented.resize(size, Image.Resampling.LANCZOS)
        canvas = pad_to_floor(resized, min_dimension)

        return NormalizedImage(
            data=encode_jpeg(canvas, quality),
            width=canvas.width,
            height=canvas.height,
            quality=quality,
        )
