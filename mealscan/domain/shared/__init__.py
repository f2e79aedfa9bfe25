"""Shared domain primitives and exceptions."""

from mealscan.domain.shared.errors import (
    ConfigurationError,
    ImageError,
    ImageTooDegraded,
    InferenceAccessDenied,
    InferenceAttemptFailed,
    InferenceError,
    InferenceUnavailable,
    InvalidResponse,
    MealScanError,
    UnsupportedFormat,
)
from mealscan.domain.shared.value_objects import RecordId, UserId

__all__ = [
    "MealScanError",
    "ConfigurationError",
    "ImageError",
    "UnsupportedFormat",
    "ImageTooDegraded",
    "InferenceError",
    "InferenceAttemptFailed",
    "InvalidResponse",
    "InferenceAccessDenied",
    "InferenceUnavailable",
    "UserId",
    "RecordId",
]
