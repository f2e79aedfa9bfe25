"""
Device profiles and normalization constraints.

One set of thresholds for every capture path (camera or file upload).
Constrained devices trade resolution for speed but keep a higher JPEG
quality, since the vision model needs clarity more than small payloads.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


MIN_DIMENSION_PX = 600
DEFAULT_MAX_DIMENSION_PX = 1200
CONSTRAINED_MAX_DIMENSION_PX = 1000
DEFAULT_QUALITY = 0.90
CONSTRAINED_QUALITY = 0.92
RETRY_QUALITY = 0.95
RETRY_MAX_DIMENSION_PX = 1200
MIN_VIABLE_BYTES = 10_000


class DeviceProfile(str, Enum):
    """Device class of the capturing client."""

    CONSTRAINED = "constrained"  # Mobile
    UNCONSTRAINED = "unconstrained"  # Desktop


class NormalizerConstraints(BaseModel):
    """
    Thresholds applied by the image normalizer.

    Attributes:
        max_dimension: Cap for the longest side after resize
        min_dimension: Floor for the shortest side (upscale/pad target)
        quality: JPEG quality factor (0-1) for the first encode
        retry_quality: Quality for the minimum-size retry
        retry_max_dimension: Cap for the minimum-size retry
        min_viable_bytes: Encoded size below which the image is rejected

    Example:
        >>> c = NormalizerConstraints.for_profile(DeviceProfile.CONSTRAINED)
        >>> assert c.max_dimension == 1000
        >>> assert c.quality == 0.92
    """

    model_config = ConfigDict(frozen=True)

    max_dimension: int = Field(DEFAULT_MAX_DIMENSION_PX, gt=0)
    min_dimension: int = Field(MIN_DIMENSION_PX, gt=0)
    quality: float = Field(DEFAULT_QUALITY, gt=0.0, le=1.0)
    retry_quality: float = Field(RETRY_QUALITY, gt=0.0, le=1.0)
    retry_max_dimension: int = Field(RETRY_MAX_DIMENSION_PX, gt=0)
    min_viable_bytes: int = Field(MIN_VIABLE_BYTES, ge=0)

    @model_validator(mode="after")
    def floor_below_cap(self) -> NormalizerConstraints:
        """Ensure the dimension floor fits under both caps."""
        if self.min_dimension > min(self.max_dimension, self.retry_max_dimension):
            raise ValueError(
                f"min_dimension {self.min_dimension} exceeds max dimension cap"
            )
        return self

    @classmethod
    def for_profile(
        cls,
        profile: DeviceProfile,
        *,
        min_viable_bytes: int = MIN_VIABLE_BYTES,
    ) -> NormalizerConstraints:
        """Build the constraints for a device profile."""
        if profile == DeviceProfile.CONSTRAINED:
            return cls(
                max_dimension=CONSTRAINED_MAX_DIMENSION_PX,
                quality=CONSTRAINED_QUALITY,
                min_viable_bytes=min_viable_bytes,
            )
        return cls(min_viable_bytes=min_viable_bytes)
