"""Pillow-based image decoding and normalization."""

from mealscan.infrastructure.imaging.decoders import decode_image
from mealscan.infrastructure.imaging.normalizer import PillowImageNormalizer

__all__ = [
    "PillowImageNormalizer",
    "decode_image",
]
