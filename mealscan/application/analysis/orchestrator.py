"""
Analysis orchestrator.

Coordinates the photo analysis pipeline:
1. Normalize the image (worker thread)
2. Look up the result cache
3. Run remote inference within the caller's deadline
4. Synthesize a fallback record when inference cannot deliver
5. Cache live results and return the record

State machine:
    NORMALIZING -> FAILED | CACHE_CHECK
    CACHE_CHECK -> DONE (hit) | INFERRING (miss)
    INFERRING -> DONE | SYNTHESIZING
    SYNTHESIZING -> DONE
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Callable, Mapping, Optional

import structlog

from mealscan.application.analysis.fallback import FallbackSynthesizer
from mealscan.application.analysis.progress import ProgressReporter
from mealscan.domain.analysis.fingerprint import fingerprint
from mealscan.domain.analysis.models import (
    AnalysisStage,
    InferenceRequest,
    MealType,
    NormalizedImage,
    NutritionRecord,
    Provenance,
    RawImageInput,
    RawInferenceResult,
)
from mealscan.domain.analysis.ports import (
    IFallbackSynthesizer,
    IImageNormalizer,
    IInferenceClient,
    IResultCache,
    ProgressObserver,
)
from mealscan.domain.analysis.profiles import (
    MIN_VIABLE_BYTES,
    DeviceProfile,
    NormalizerConstraints,
)
from mealscan.domain.shared.errors import (
    ImageError,
    InferenceAccessDenied,
    InferenceError,
    InferenceUnavailable,
)
from mealscan.domain.shared.value_objects import RecordId, UserId
from mealscan.metrics import analysis as metrics

logger = structlog.get_logger(__name__)


DEFAULT_DEADLINES_S = {
    DeviceProfile.CONSTRAINED: 45.0,
    DeviceProfile.UNCONSTRAINED: 100.0,
}


class AnalysisOrchestrator:
    """
    Orchestrates meal photo analysis end to end.

    Only image errors (UnsupportedFormat, ImageTooDegraded) leave
    :meth:`analyze`. Every inference failure, refusal or timeout ends in
    a fallback-provenance record. Fallback records are never cached, so a
    repeated upload gets a fresh inference attempt.

    Example:
        >>> orchestrator = AnalysisOrchestrator(
        ...     normalizer=PillowImageNormalizer(),
        ...     inference_client=HttpInferenceClient(url),
        ...     cache=ResultCache(),
        ... )
        >>> record = await orchestrator.analyze(raw, UserId(value="user_1"))
        >>> print(record.name, record.provenance)
    """

    def __init__(
        self,
        normalizer: IImageNormalizer,
        inference_client: IInferenceClient,
        cache: IResultCache,
        fallback: Optional[IFallbackSynthesizer] = None,
        *,
        deadlines_s: Optional[Mapping[DeviceProfile, float]] = None,
        max_attempts: Optional[Mapping[DeviceProfile, int]] = None,
        min_viable_bytes: int = MIN_VIABLE_BYTES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize orchestrator with its collaborators.

        Args:
            normalizer: Image normalizer
            inference_client: Remote inference client
            cache: Result cache owned by this orchestrator
            fallback: Fallback synthesizer (default FallbackSynthesizer)
            deadlines_s: Default deadline per device profile
            max_attempts: Retry budget per device profile (client default if absent)
            min_viable_bytes: Normalizer viable-size threshold
            clock: Monotonic time source, injectable for tests
        """
        self.normalizer = normalizer
        self.inference_client = inference_client
        self.cache = cache
        self.fallback = fallback or FallbackSynthesizer()
        self.deadlines_s = {**DEFAULT_DEADLINES_S, **(deadlines_s or {})}
        self.max_attempts = dict(max_attempts or {})
        self.min_viable_bytes = min_viable_bytes
        self._clock = clock

    async def analyze(
        self,
        raw_image: RawImageInput,
        user_id: UserId,
        profile: DeviceProfile = DeviceProfile.UNCONSTRAINED,
        *,
        deadline_s: Optional[float] = None,
        on_progress: Optional[ProgressObserver] = None,
        meal_type: MealType = MealType.LUNCH,
    ) -> NutritionRecord:
        """
        Analyze a meal photo.

        Args:
            raw_image: Image as captured or uploaded
            user_id: Owner of the resulting record
            profile: Device class (drives thresholds, deadline, retries)
            deadline_s: Overall time budget (profile default if None)
            on_progress: Observer receiving ProgressEvents (sync or async)
            meal_type: Meal classification for the record

        Returns:
            NutritionRecord, live (``inference``) or synthetic (``fallback``)

        Raises:
            UnsupportedFormat: Image cannot be decoded
            ImageTooDegraded: Image too small or flat for reliable analysis
        """
        started = self._clock()
        budget = deadline_s if deadline_s is not None else self.deadlines_s[profile]
        progress = ProgressReporter(on_progress)
        log = logger.bind(user_id=str(user_id), profile=profile.value)

        # 1. Normalize (CPU bound, off the event loop)
        await progress.stage(AnalysisStage.NORMALIZING, "Preparing image")
        constraints = NormalizerConstraints.for_profile(
            profile, min_viable_bytes=self.min_viable_bytes
        )
        try:
            image = await asyncio.to_thread(self.normalizer.normalize, raw_image, constraints)
        except ImageError as e:
            log.warning("Image rejected", error=str(e), error_type=type(e).__name__)
            metrics.record_request("rejected")
            await progress.failed(e.user_message)
            raise

        # 2. Cache lookup
        await progress.stage(AnalysisStage.CACHE_CHECK, "Checking recent analyses")
        key = fingerprint(image)
        cached = self.cache.get(key)
        metrics.record_cache_lookup(cached is not None)
        if cached is not None:
            log.info("Returning cached analysis", record_id=cached.id)
            record = self._reuse(cached, user_id, meal_type)
            return await self._finish(record, progress, started)

        # 3. Inference within the remaining budget
        await progress.stage(AnalysisStage.INFERRING, "Analyzing photo")
        remaining = budget - (self._clock() - started)
        reason: str
        if remaining <= 0:
            reason = "deadline"
        else:
            try:
                result = await asyncio.wait_for(
                    self.inference_client.infer(
                        InferenceRequest(image=image, user_id=user_id),
                        on_attempt=progress.attempt,
                        max_attempts=self.max_attempts.get(profile),
                    ),
                    timeout=remaining,
                )
            except InferenceAccessDenied as e:
                log.warning("Inference access denied", status=e.status)
                reason = "access_denied"
            except InferenceUnavailable as e:
                log.warning("Inference exhausted", attempts=e.attempts, error=str(e.last_error))
                reason = "exhausted"
            except asyncio.TimeoutError:
                log.warning("Analysis deadline elapsed during inference", deadline_s=budget)
                reason = "deadline"
            except InferenceError as e:
                log.warning("Inference failed", error=str(e))
                reason = "inference_error"
            except Exception:
                log.exception("Unexpected inference failure")
                reason = "unexpected_error"
            else:
                record = self._to_record(result, image, user_id, meal_type)
                self.cache.put(key, record)
                return await self._finish(record, progress, started)

        # 4. Fallback
        await progress.stage(AnalysisStage.SYNTHESIZING, "Estimating nutrition values")
        metrics.record_fallback(reason)
        record = self.fallback.synthesize(image, user_id, meal_type=meal_type)
        log.info("Returning fallback analysis", reason=reason, record_id=record.id)
        return await self._finish(record, progress, started)

    async def _finish(
        self, record: NutritionRecord, progress: ProgressReporter, started: float
    ) -> NutritionRecord:
        await progress.stage(AnalysisStage.DONE)
        metrics.record_request("completed", provenance=record.provenance.value)
        metrics.record_analysis_latency_ms(
            (self._clock() - started) * 1000.0, provenance=record.provenance.value
        )
        return record

    @staticmethod
    def _reuse(
        cached: NutritionRecord, user_id: UserId, meal_type: MealType
    ) -> NutritionRecord:
        """Return the cached record, re-issued when owner or meal type differ."""
        if cached.user_id == user_id and cached.meal_type == meal_type:
            return cached
        return cached.with_changes(
            id=RecordId.generate().value,
            user_id=user_id,
            meal_type=meal_type,
            timestamp=datetime.now(timezone.utc),
        )

    @staticmethod
    def _to_record(
        result: RawInferenceResult,
        image: NormalizedImage,
        user_id: UserId,
        meal_type: MealType,
    ) -> NutritionRecord:
        return NutritionRecord(
            name=result.name,
            calories=result.calories,
            protein=result.protein,
            carbs=result.carbs,
            fat=result.fat,
            fiber=result.fiber,
            sugar=result.sugar,
            provenance=Provenance.INFERENCE,
            image=image,
            user_id=user_id,
            meal_type=meal_type,
        )
