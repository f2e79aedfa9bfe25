"""
Nutrition-vision HTTP client.

Posts normalized images to the food-analysis service and turns the reply
into a RawInferenceResult. Handles retries with exponential backoff.
"""

from __future__ import annotations

import asyncio
import inspect
import json
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from mealscan.domain.analysis.coercion import parse_inference_payload
from mealscan.domain.analysis.models import (
    InferenceRequest,
    RawInferenceResult,
    strip_data_url_prefix,
)
from mealscan.domain.analysis.ports import AttemptObserver
from mealscan.domain.analysis.prompts import NUTRITION_INSTRUCTIONS
from mealscan.domain.shared.errors import (
    InferenceAccessDenied,
    InferenceAttemptFailed,
    InferenceUnavailable,
    InvalidResponse,
)
from mealscan.metrics import analysis as metrics

logger = structlog.get_logger(__name__)


DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_INITIAL_DELAY_S = 1.0
DEFAULT_BACKOFF_MULTIPLIER = 1.5
DEFAULT_ATTEMPT_TIMEOUT_S = 30.0

# Upstream refusals that no retry will fix
ACCESS_DENIED_STATUSES = frozenset({401, 402, 403})

RETRYABLE_ERRORS = (
    InferenceAttemptFailed,
    InvalidResponse,
    aiohttp.ClientError,
    asyncio.TimeoutError,
)


class HttpInferenceClient:
    """
    Client for the food-analysis inference endpoint.

    Features:
    - Up to ``max_attempts`` tries with exponential backoff
      (1s, 1.5s, 2.25s... by default), non-blocking sleeps
    - Per-attempt HTTP timeout
    - Immediate failure on access refusals (401/402/403)
    - Lenient numeric coercion of the returned fields

    Example:
        >>> async with HttpInferenceClient("https://api.example.com/food-analysis") as client:
        ...     result = await client.infer(request)
        >>> print(result.name, result.calories)
    """

    def __init__(
        self,
        endpoint_url: str,
        *,
        api_key: Optional[str] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        initial_delay_s: float = DEFAULT_INITIAL_DELAY_S,
        backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
        attempt_timeout_s: float = DEFAULT_ATTEMPT_TIMEOUT_S,
        instructions: str = NUTRITION_INSTRUCTIONS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize inference client.

        Args:
            endpoint_url: Full URL of the food-analysis endpoint
            api_key: Optional bearer token
            max_attempts: Total attempts including the first one
            initial_delay_s: Delay before the second attempt
            backoff_multiplier: Growth factor between consecutive delays
            attempt_timeout_s: Total timeout of a single HTTP attempt
            instructions: Prompt sent along with the image
            sleep: Async sleep used between attempts (injectable for tests)
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.endpoint_url = endpoint_url
        self.api_key = api_key
        self.max_attempts = max_attempts
        self.initial_delay_s = initial_delay_s
        self.backoff_multiplier = backoff_multiplier
        self.attempt_timeout_s = attempt_timeout_s
        self.instructions = instructions
        self._sleep = sleep
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "HttpInferenceClient":
        """Async context manager entry."""
        await self._get_session()
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

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
            InferenceUnavailable: All attempts failed (carries the last error)
            InferenceAccessDenied: Upstream refused the request, no retry
        """
        budget = max_attempts or self.max_attempts
        retrying = AsyncRetrying(
            stop=stop_after_attempt(budget),
            wait=wait_exponential(
                multiplier=self.initial_delay_s, exp_base=self.backoff_multiplier
            ),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        attempts = 0

        with metrics.time_inference():
            try:
                async for attempt in retrying:
                    with attempt:
                        attempts = attempt.retry_state.attempt_number
                        await _notify(on_attempt, attempts)
                        result = await self._attempt(request, attempts)
            except RETRYABLE_ERRORS as e:
                logger.warning(
                    "Inference unavailable after retries",
                    attempts=attempts,
                    error=str(e) or type(e).__name__,
                )
                raise InferenceUnavailable(
                    f"Inference failed after {attempts} attempts: {e}",
                    attempts=attempts,
                    last_error=e,
                ) from e

        return result

    async def _attempt(self, request: InferenceRequest, attempt: int) -> RawInferenceResult:
        try:
            result = await self._post(request)
        except InferenceAccessDenied:
            metrics.record_inference_attempt("denied")
            raise
        except InvalidResponse:
            metrics.record_inference_attempt("invalid")
            raise
        except RETRYABLE_ERRORS:
            metrics.record_inference_attempt("failed")
            raise

        metrics.record_inference_attempt("success")
        logger.info(
            "Inference succeeded",
            attempt=attempt,
            name=result.name,
            calories=result.calories,
        )
        return result

    async def _post(self, request: InferenceRequest) -> RawInferenceResult:
        session = await self._get_session()
        payload = {
            "image": strip_data_url_prefix(request.image.to_base64()),
            "instructions": self.instructions,
        }

        async with session.post(
            self.endpoint_url,
            json=payload,
            headers=self._headers(request),
            timeout=aiohttp.ClientTimeout(total=self.attempt_timeout_s),
        ) as response:
            if response.status in ACCESS_DENIED_STATUSES:
                detail = await response.text()
                raise InferenceAccessDenied(
                    f"Inference service refused request ({response.status}): {detail[:200]}",
                    status=response.status,
                )

            if not 200 <= response.status < 300:
                detail = await response.text()
                raise InferenceAttemptFailed(
                    f"Inference service error {response.status}: {detail[:200]}",
                    status=response.status,
                )

            try:
                body = await response.json(content_type=None)
            except (json.JSONDecodeError, ValueError) as e:
                raise InvalidResponse(f"Response is not JSON: {e}") from e

        return self._parse_body(body)

    @staticmethod
    def _parse_body(body: Any) -> RawInferenceResult:
        if not isinstance(body, dict):
            raise InvalidResponse(f"Expected JSON object, got {type(body).__name__}")

        if body.get("success") is not True:
            error = body.get("error") or "success flag not set"
            raise InferenceAttemptFailed(f"Inference service reported failure: {error}")

        return parse_inference_payload(body.get("data"))

    def _headers(self, request: InferenceRequest) -> Dict[str, str]:
        headers = {"X-User-Id": str(request.user_id)}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Inference attempt failed, retrying",
            attempt=retry_state.attempt_number,
            delay_s=retry_state.next_action.sleep if retry_state.next_action else None,
            error=str(error) or type(error).__name__,
        )


async def _notify(observer: Optional[AttemptObserver], attempt: int) -> None:
    """Call an attempt observer, awaiting it when it is a coroutine function."""
    if observer is None:
        return
    outcome = observer(attempt)
    if inspect.isawaitable(outcome):
        await outcome
