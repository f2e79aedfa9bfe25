"""
Ports (Interfaces) for the analysis pipeline.

Defines the collaborators the AnalysisOrchestrator depends on, so the
application layer never imports Pillow or aiohttp directly.

Design Pattern: Ports & Adapters (Hexagonal Architecture)
"""

from typing import Any, Awaitable, Callable, Optional, Protocol, runtime_checkable

from mealscan.domain.analysis.models import (
    InferenceRequest,
    NormalizedImage,
    NutritionRecord,
    ProgressEvent,
    RawImageInput,
    RawInferenceResult,
)
from mealscan.domain.analysis.profiles import NormalizerConstraints
from mealscan.domain.shared.value_objects import UserId


AttemptObserver = Callable[[int], Optional[Awaitable[None]]]
ProgressObserver = Callable[[ProgressEvent], Optional[Awaitable[None]]]


@runtime_checkable
class IImageNormalizer(Protocol):
    """
    Port for the image normalizer.

    Turns an arbitrary photo into a bounded-size upright JPEG.
    """

    def normalize(
        self, raw: RawImageInput, constraints: NormalizerConstraints
    ) -> NormalizedImage:
        """
        Normalize an input image.

        Args:
            raw: Image as captured or uploaded
            constraints: Thresholds for the device profile

        Returns:
            NormalizedImage within the dimension and size invariants

        Raises:
            UnsupportedFormat: If the image cannot be decoded
            ImageTooDegraded: If the output stays below the viable size
        """
        ...


@runtime_checkable
class IInferenceClient(Protocol):
    """
    Port for the remote nutrition-vision service.

    Implementations own their retry budget and backoff.
    """

    async def infer(
        self,
        request: InferenceRequest,
        *,
        on_attempt: Optional[AttemptObserver] = None,
        max_attempts: Optional[int] = None,
    ) -> RawInferenceResult:
        """
        Estimate nutrition for a normalized image.

        Args:
            request: Normalized image plus user attribution
            on_attempt: Called with the 1-based attempt number before each try
            max_attempts: Override of the default retry budget

        Returns:
            RawInferenceResult with coerced numeric fields

        Raises:
            InferenceUnavailable: After exhausting all attempts
            InferenceAccessDenied: On non-transient upstream refusal
        """
        ...


@runtime_checkable
class IFallbackSynthesizer(Protocol):
    """Port for the fallback record generator."""

    def synthesize(
        self, image: NormalizedImage, user_id: UserId, **overrides: Any
    ) -> NutritionRecord:
        """Produce a fallback-provenance record. Never raises."""
        ...


@runtime_checkable
class IResultCache(Protocol):
    """
    Port for the short-lived result cache.

    ``get`` and ``put`` are individually atomic.
    """

    def get(self, fingerprint: str) -> Optional[NutritionRecord]:
        """Return the cached record, or None if absent or expired."""
        ...

    def put(self, fingerprint: str, record: NutritionRecord) -> None:
        """Store a record under a fingerprint."""
        ...
