"""
Content key of a normalized image.

Shared by the orchestrator and any IResultCache implementation so both
agree on what "the same photo" means.
"""

from __future__ import annotations

import zlib

from mealscan.domain.analysis.models import NormalizedImage


FINGERPRINT_SLICE_BYTES = 100


def fingerprint(image: NormalizedImage, slice_bytes: int = FINGERPRINT_SLICE_BYTES) -> str:
    """
    Cheap content key for a normalized image.

    Combines byte length, dimensions and CRC32 checksums of the first and
    last ``slice_bytes`` of the JPEG stream. Not a cryptographic hash:
    different images sharing length, dimensions and both slices collide.

    Example:
        >>> key = fingerprint(image)
        >>> key
        '84213:1200x800:3a1f09c2:9b0e77d1'
    """
    data = image.data
    head = zlib.crc32(data[:slice_bytes])
    tail = zlib.crc32(data[-slice_bytes:])
    return f"{len(data)}:{image.width}x{image.height}:{head:08x}:{tail:08x}"
