"""Progress reporting for the analysis orchestrator."""

from __future__ import annotations

import inspect
from typing import Optional

import structlog

from mealscan.domain.analysis.models import AnalysisStage, ProgressEvent
from mealscan.domain.analysis.ports import ProgressObserver

logger = structlog.get_logger(__name__)


STAGE_PERCENT = {
    AnalysisStage.NORMALIZING: 10,
    AnalysisStage.CACHE_CHECK: 25,
    AnalysisStage.INFERRING: 40,
    AnalysisStage.SYNTHESIZING: 90,
    AnalysisStage.DONE: 100,
}
ATTEMPT_PERCENT = 60


class ProgressReporter:
    """
    Forwards progress events to an optional UI observer.

    Observer failures are logged and dropped; a broken progress bar must
    not fail the analysis. Percentages never go backwards.
    """

    def __init__(self, observer: Optional[ProgressObserver] = None) -> None:
        self._observer = observer
        self._last_percent = 0

    async def stage(self, stage: AnalysisStage, message: Optional[str] = None) -> None:
        percent = STAGE_PERCENT.get(stage, self._last_percent)
        await self._emit(ProgressEvent(stage=stage, percent=percent, message=message))

    async def attempt(self, attempt: int) -> None:
        """Report a dispatched inference attempt (1-based)."""
        await self._emit(
            ProgressEvent(
                stage=AnalysisStage.INFERRING,
                percent=ATTEMPT_PERCENT,
                attempt=attempt,
                message=f"Analyzing photo (attempt {attempt})",
            )
        )

    async def failed(self, message: str) -> None:
        await self._emit(
            ProgressEvent(stage=AnalysisStage.FAILED, percent=self._last_percent, message=message)
        )

    async def _emit(self, event: ProgressEvent) -> None:
        if event.percent < self._last_percent:
            event = event.model_copy(update={"percent": self._last_percent})
        self._last_percent = event.percent

        if self._observer is None:
            return
        try:
            outcome = self._observer(event)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning("Progress observer failed", stage=event.stage.value, error=str(e))
