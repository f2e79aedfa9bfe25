"""Meal photo analysis use case."""

from mealscan.application.analysis.fallback import FallbackSynthesizer
from mealscan.application.analysis.orchestrator import AnalysisOrchestrator
from mealscan.application.analysis.progress import ProgressReporter

__all__ = [
    "AnalysisOrchestrator",
    "FallbackSynthesizer",
    "ProgressReporter",
]
