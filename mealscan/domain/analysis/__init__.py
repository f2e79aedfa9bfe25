"""Meal photo analysis domain."""

from mealscan.domain.analysis.models import (
    AnalysisStage,
    InferenceRequest,
    MealType,
    NormalizedImage,
    NutritionRecord,
    ProgressEvent,
    Provenance,
    RawImageInput,
    RawInferenceResult,
)
from mealscan.domain.analysis.profiles import DeviceProfile, NormalizerConstraints

__all__ = [
    "AnalysisStage",
    "DeviceProfile",
    "InferenceRequest",
    "MealType",
    "NormalizedImage",
    "NormalizerConstraints",
    "NutritionRecord",
    "ProgressEvent",
    "Provenance",
    "RawImageInput",
    "RawInferenceResult",
]
