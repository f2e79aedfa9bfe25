"""
Wiring of the analysis pipeline from settings.

The orchestrator owns its cache and inference client; callers create one
per process (or per test) and close it on shutdown.
"""

from __future__ import annotations

from typing import Optional

from mealscan.application.analysis.fallback import FallbackSynthesizer
from mealscan.application.analysis.orchestrator import AnalysisOrchestrator
from mealscan.config import MealScanSettings, load_settings
from mealscan.infrastructure.cache.result_cache import ResultCache
from mealscan.infrastructure.imaging.normalizer import PillowImageNormalizer
from mealscan.infrastructure.inference.client import HttpInferenceClient


def build_inference_client(settings: MealScanSettings) -> HttpInferenceClient:
    return HttpInferenceClient(
        settings.inference_url,
        api_key=settings.inference_api_key,
        max_attempts=settings.max_attempts,
        initial_delay_s=settings.initial_delay_s,
        backoff_multiplier=settings.backoff_multiplier,
        attempt_timeout_s=settings.attempt_timeout_s,
    )


def build_orchestrator(
    settings: Optional[MealScanSettings] = None,
) -> AnalysisOrchestrator:
    """
    Create an orchestrator with the production adapters.

    Example:
        >>> orchestrator = build_orchestrator()
        >>> try:
        ...     record = await orchestrator.analyze(raw, UserId(value="user_1"))
        ... finally:
        ...     await orchestrator.inference_client.close()
    """
    settings = settings or load_settings()
    return AnalysisOrchestrator(
        normalizer=PillowImageNormalizer(),
        inference_client=build_inference_client(settings),
        cache=ResultCache(ttl_seconds=settings.cache_ttl_s),
        fallback=FallbackSynthesizer(),
        deadlines_s=settings.deadlines(),
        max_attempts=settings.attempts(),
        min_viable_bytes=settings.min_viable_bytes,
    )
