"""
Fallback nutrition synthesizer.

Produces a plausible generic estimate when live inference is exhausted,
refused or out of time, so the user still gets an editable record.
"""

from __future__ import annotations

from typing import Any

import structlog

from mealscan.domain.analysis.models import (
    MealType,
    NormalizedImage,
    NutritionRecord,
    Provenance,
)
from mealscan.domain.shared.value_objects import UserId

logger = structlog.get_logger(__name__)


FALLBACK_NAME = "Mixed Meal"
FALLBACK_NOTES = "Estimated nutrition values - API connection issue"
FALLBACK_VALUES = {
    "calories": 450.0,
    "protein": 25.0,
    "carbs": 40.0,
    "fat": 15.0,
    "fiber": 6.0,
    "sugar": 8.0,
}


class FallbackSynthesizer:
    """
    Deterministic generator of fallback-provenance records.

    Never raises: every record it returns is tagged ``fallback`` so the
    UI can flag the values as uncertain.

    Example:
        >>> synthesizer = FallbackSynthesizer()
        >>> record = synthesizer.synthesize(image, UserId(value="user_1"))
        >>> assert record.is_fallback
        >>> assert record.calories == 450
    """

    def synthesize(
        self,
        image: NormalizedImage,
        user_id: UserId,
        **overrides: Any,
    ) -> NutritionRecord:
        """
        Build a fallback record for an image.

        Args:
            image: Normalized image to keep attached to the record
            user_id: Owner of the record
            **overrides: Record fields to override (e.g. meal_type)

        Returns:
            NutritionRecord with provenance ``fallback``
        """
        fields: dict = {
            "name": FALLBACK_NAME,
            **FALLBACK_VALUES,
            "quantity": 1.0,
            "meal_type": MealType.LUNCH,
            "notes": FALLBACK_NOTES,
            **overrides,
        }
        record = NutritionRecord(
            provenance=Provenance.FALLBACK,
            image=image,
            user_id=user_id,
            **fields,
        )
        logger.info("Synthesized fallback record", record_id=record.id, user_id=str(user_id))
        return record
