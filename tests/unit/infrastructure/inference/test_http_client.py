"""
Unit tests for HttpInferenceClient.

HTTP calls are mocked by patching ``aiohttp.ClientSession.post``;
backoff sleeps are recorded instead of awaited.
"""

import json
from typing import Any, List, Optional
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest
import pytest_asyncio

from mealscan.domain.analysis.models import InferenceRequest, NormalizedImage
from mealscan.domain.shared.errors import (
    InferenceAccessDenied,
    InferenceAttemptFailed,
    InferenceUnavailable,
    InvalidResponse,
)
from mealscan.domain.shared.value_objects import UserId
from mealscan.infrastructure.inference.client import HttpInferenceClient
from mealscan.metrics import analysis as metrics
from mealscan.metrics.core import registry


ENDPOINT = "https://nutrition.example.com/food-analysis"

SUCCESS_BODY = {
    "success": True,
    "data": {
        "name": "Spaghetti Carbonara",
        "calories": "650 kcal",
        "protein": 25,
        "carbs": 75.5,
        "fat": "28",
        "fiber": None,
    },
}


def make_response(
    status: int = 200, body: Any = None, text: str = "", json_error: Optional[Exception] = None
) -> MagicMock:
    response = MagicMock()
    response.status = status
    if json_error is not None:
        response.json = AsyncMock(side_effect=json_error)
    else:
        response.json = AsyncMock(return_value=body)
    response.text = AsyncMock(return_value=text)
    return response


@pytest.fixture
def inference_request(normalized_image: NormalizedImage, user_id: UserId) -> InferenceRequest:
    return InferenceRequest(image=normalized_image, user_id=user_id)


@pytest_asyncio.fixture
async def client(fake_sleep):
    client = HttpInferenceClient(ENDPOINT, api_key="secret-token", sleep=fake_sleep)
    yield client
    await client.close()


class TestHttpInferenceClient:
    """Test suite for HttpInferenceClient."""

    @pytest.mark.asyncio
    async def test_success_coerces_fields(
        self,
        client: HttpInferenceClient,
        inference_request: InferenceRequest,
        recorded_sleeps: List[float],
    ) -> None:
        """Should return a coerced result after one call."""
        with patch("aiohttp.ClientSession.post") as mock_post:
            mock_post.return_value.__aenter__.return_value = make_response(body=SUCCESS_BODY)

            result = await client.infer(inference_request)

        assert result.name == "Spaghetti Carbonara"
        assert result.calories == 650.0
        assert result.carbs == 75.5
        assert result.fat == 28.0
        assert result.fiber == 0.0
        assert result.sugar == 0.0
        assert mock_post.call_count == 1
        assert recorded_sleeps == []

    @pytest.mark.asyncio
    async def test_inference_requestformat(
        self, client: HttpInferenceClient, inference_request: InferenceRequest
    ) -> None:
        """Should post bare base64 with instructions and attribution headers."""
        with patch("aiohttp.ClientSession.post") as mock_post:
            mock_post.return_value.__aenter__.return_value = make_response(body=SUCCESS_BODY)

            await client.infer(inference_request)

        call = mock_post.call_args
        assert call.args[0] == ENDPOINT
        payload = call.kwargs["json"]
        assert payload["image"] == inference_request.image.to_base64()
        assert not payload["image"].startswith("data:")
        assert '"calories": X' in payload["instructions"]
        assert call.kwargs["headers"]["X-User-Id"] == "user_123"
        assert call.kwargs["headers"]["Authorization"] == "Bearer secret-token"
        assert call.kwargs["timeout"].total == 30.0

    @pytest.mark.asyncio
    async def test_no_authorization_without_key(
        self, fake_sleep, inference_request: InferenceRequest
    ) -> None:
        async with HttpInferenceClient(ENDPOINT, sleep=fake_sleep) as client:
            with patch("aiohttp.ClientSession.post") as mock_post:
                mock_post.return_value.__aenter__.return_value = make_response(
                    body=SUCCESS_BODY
                )
                await client.infer(inference_request)

        assert "Authorization" not in mock_post.call_args.kwargs["headers"]

    @pytest.mark.asyncio
    async def test_retry_then_success(
        self,
        client: HttpInferenceClient,
        inference_request: InferenceRequest,
        recorded_sleeps: List[float],
    ) -> None:
        """Two failures then success should take three calls with 1s/1.5s backoff."""
        with patch("aiohttp.ClientSession.post") as mock_post:
            mock_post.return_value.__aenter__.side_effect = [
                make_response(status=500, text="Internal error"),
                make_response(status=502, text="Bad gateway"),
                make_response(body=SUCCESS_BODY),
            ]

            result = await client.infer(inference_request)

        assert result.name == "Spaghetti Carbonara"
        assert mock_post.call_count == 3
        assert recorded_sleeps == [1.0, 1.5]
        assert registry.counter_value(metrics.INFERENCE_ATTEMPTS_TOTAL, outcome="failed") == 2
        assert registry.counter_value(metrics.INFERENCE_ATTEMPTS_TOTAL, outcome="success") == 1

    @pytest.mark.asyncio
    async def test_exhausted_raises_unavailable(
        self,
        client: HttpInferenceClient,
        inference_request: InferenceRequest,
        recorded_sleeps: List[float],
    ) -> None:
        """Should raise InferenceUnavailable carrying the last error."""
        with patch("aiohttp.ClientSession.post") as mock_post:
            mock_post.return_value.__aenter__.return_value = make_response(status=503)

            with pytest.raises(InferenceUnavailable) as exc_info:
                await client.infer(inference_request)

        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_error, InferenceAttemptFailed)
        assert exc_info.value.last_error.status == 503
        assert mock_post.call_count == 3
        assert recorded_sleeps == [1.0, 1.5]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 402, 403])
    async def test_access_denied_not_retried(
        self,
        client: HttpInferenceClient,
        inference_request: InferenceRequest,
        recorded_sleeps: List[float],
        status: int,
    ) -> None:
        """Access refusals should fail immediately without backoff."""
        with patch("aiohttp.ClientSession.post") as mock_post:
            mock_post.return_value.__aenter__.return_value = make_response(
                status=status, text="Forbidden"
            )

            with pytest.raises(InferenceAccessDenied) as exc_info:
                await client.infer(inference_request)

        assert exc_info.value.status == status
        assert mock_post.call_count == 1
        assert recorded_sleeps == []
        assert registry.counter_value(metrics.INFERENCE_ATTEMPTS_TOTAL, outcome="denied") == 1

    @pytest.mark.asyncio
    async def test_success_false_retried(
        self, client: HttpInferenceClient, inference_request: InferenceRequest
    ) -> None:
        with patch("aiohttp.ClientSession.post") as mock_post:
            mock_post.return_value.__aenter__.side_effect = [
                make_response(body={"success": False, "error": "model overloaded"}),
                make_response(body=SUCCESS_BODY),
            ]

            result = await client.infer(inference_request)

        assert result.name == "Spaghetti Carbonara"
        assert mock_post.call_count == 2

    @pytest.mark.asyncio
    async def test_missing_name_retried(
        self, client: HttpInferenceClient, inference_request: InferenceRequest
    ) -> None:
        """Payload without a name should count as an invalid attempt."""
        with patch("aiohttp.ClientSession.post") as mock_post:
            mock_post.return_value.__aenter__.side_effect = [
                make_response(body={"success": True, "data": {"calories": 100}}),
                make_response(body=SUCCESS_BODY),
            ]

            await client.infer(inference_request)

        assert mock_post.call_count == 2
        assert registry.counter_value(metrics.INFERENCE_ATTEMPTS_TOTAL, outcome="invalid") == 1

    @pytest.mark.asyncio
    async def test_non_json_body_exhausts(
        self, client: HttpInferenceClient, inference_request: InferenceRequest
    ) -> None:
        with patch("aiohttp.ClientSession.post") as mock_post:
            mock_post.return_value.__aenter__.return_value = make_response(
                json_error=json.JSONDecodeError("Expecting value", "<html>", 0)
            )

            with pytest.raises(InferenceUnavailable) as exc_info:
                await client.infer(inference_request)

        assert isinstance(exc_info.value.last_error, InvalidResponse)

    @pytest.mark.asyncio
    async def test_connection_error_retried(
        self, client: HttpInferenceClient, inference_request: InferenceRequest
    ) -> None:
        with patch("aiohttp.ClientSession.post") as mock_post:
            mock_post.return_value.__aenter__.side_effect = [
                aiohttp.ClientConnectionError("connection reset"),
                make_response(body=SUCCESS_BODY),
            ]

            result = await client.infer(inference_request)

        assert result.name == "Spaghetti Carbonara"
        assert mock_post.call_count == 2

    @pytest.mark.asyncio
    async def test_on_attempt_observer(
        self, client: HttpInferenceClient, inference_request: InferenceRequest
    ) -> None:
        """Observer should see every attempt number before the call."""
        seen: List[int] = []

        with patch("aiohttp.ClientSession.post") as mock_post:
            mock_post.return_value.__aenter__.return_value = make_response(status=500)

            with pytest.raises(InferenceUnavailable):
                await client.infer(inference_request, on_attempt=seen.append)

        assert seen == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_async_observer_awaited(
        self, client: HttpInferenceClient, inference_request: InferenceRequest
    ) -> None:
        seen: List[int] = []

        async def observer(attempt: int) -> None:
            seen.append(attempt)

        with patch("aiohttp.ClientSession.post") as mock_post:
            mock_post.return_value.__aenter__.return_value = make_response(body=SUCCESS_BODY)
            await client.infer(inference_request, on_attempt=observer)

        assert seen == [1]

    @pytest.mark.asyncio
    async def test_max_attempts_override(
        self,
        client: HttpInferenceClient,
        inference_request: InferenceRequest,
        recorded_sleeps: List[float],
    ) -> None:
        """Per-call budget should replace the configured one."""
        with patch("aiohttp.ClientSession.post") as mock_post:
            mock_post.return_value.__aenter__.return_value = make_response(status=500)

            with pytest.raises(InferenceUnavailable) as exc_info:
                await client.infer(inference_request, max_attempts=2)

        assert exc_info.value.attempts == 2
        assert mock_post.call_count == 2
        assert recorded_sleeps == [1.0]

    @pytest.mark.asyncio
    async def test_latency_observed(
        self, client: HttpInferenceClient, inference_request: InferenceRequest
    ) -> None:
        with patch("aiohttp.ClientSession.post") as mock_post:
            mock_post.return_value.__aenter__.return_value = make_response(body=SUCCESS_BODY)
            await client.infer(inference_request)

        histograms = [
            h for h in metrics.snapshot()["histograms"] if h["name"] == metrics.INFERENCE_LATENCY_MS
        ]
        assert histograms[0]["count"] == 1

    def test_reject_zero_attempts(self) -> None:
        with pytest.raises(ValueError):
            HttpInferenceClient(ENDPOINT, max_attempts=0)
