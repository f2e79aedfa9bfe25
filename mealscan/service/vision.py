"""OpenAI vision call behind the food-analysis endpoint.

Sends the image with the fixed nutrition prompt to a GPT-4 class vision
model and extracts the JSON object from the free-text reply.

The model call sits behind a circuit breaker (5 failures -> 60s open),
one breaker per analyzer instance.
"""

from __future__ import annotations

import json
import re
import time
from typing import Any, Dict, Optional

import structlog
from circuitbreaker import CircuitBreaker
from openai import AsyncOpenAI

from mealscan.domain.analysis.prompts import NUTRITION_INSTRUCTIONS, build_vision_messages

logger = structlog.get_logger(__name__)


DEFAULT_MODEL = "gpt-4o"
DEFAULT_MAX_TOKENS = 1000

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class VisionParseError(ValueError):
    """Model reply does not contain a usable JSON object."""


def extract_json_object(content: Optional[str]) -> Dict[str, Any]:
    """
    Extract the outermost ``{...}`` block from a model reply.

    Example:
        >>> extract_json_object('Here it is: {"name": "Apple", "calories": 95}')
        {'name': 'Apple', 'calories': 95}

    Raises:
        VisionParseError: No JSON object or invalid JSON
    """
    if not content:
        raise VisionParseError("Empty response from vision model")

    match = _JSON_OBJECT.search(content)
    if not match:
        raise VisionParseError("Could not extract JSON from vision model response")

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise VisionParseError(f"Failed to parse nutritional data: {e}") from e

    if not isinstance(data, dict):
        raise VisionParseError("Nutritional data is not a JSON object")
    return data


class VisionNutritionAnalyzer:
    """
    Nutrition estimation through OpenAI chat completions with vision.

    Example:
        >>> analyzer = VisionNutritionAnalyzer(api_key="sk-...")
        >>> data = await analyzer.analyze(image_base64)
        >>> print(data["name"], data["calories"])
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        client: Optional[AsyncOpenAI] = None,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
    ) -> None:
        """
        Initialize analyzer.

        Args:
            api_key: OpenAI API key (ignored when ``client`` is given)
            model: Vision model name
            max_tokens: Completion token cap
            client: Pre-configured AsyncOpenAI client
            failure_threshold: Consecutive failures before the breaker opens
            recovery_timeout: Seconds the breaker stays open
        """
        self._client = client or AsyncOpenAI(api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens
        self._breaker = CircuitBreaker(
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
            name="food_analysis_vision",
        )
        self._guarded_complete = self._breaker(self._complete)

    @property
    def circuit_open(self) -> bool:
        return self._breaker.opened

    async def analyze(
        self, image_base64: str, instructions: str = NUTRITION_INSTRUCTIONS
    ) -> Dict[str, Any]:
        """
        Estimate nutrition for a base64 JPEG.

        Args:
            image_base64: Image payload without data URL prefix
            instructions: User instruction text

        Returns:
            Parsed JSON object from the model reply

        Raises:
            CircuitBreakerError: Breaker open after repeated failures
            openai.APIError: Upstream failure (auth, rate limit, 5xx...)
            VisionParseError: Reply without a usable JSON object
        """
        start = time.perf_counter()
        content = await self._guarded_complete(image_base64, instructions)
        data = extract_json_object(content)
        logger.info(
            "Vision analysis complete",
            model=self.model,
            name=data.get("name"),
            elapsed_ms=int((time.perf_counter() - start) * 1000),
        )
        return data

    async def _complete(self, image_base64: str, instructions: str) -> Optional[str]:
        response = await self._client.chat.completions.create(
            model=self.model,
            messages=build_vision_messages(image_base64, instructions),  # type: ignore[arg-type]
            max_tokens=self.max_tokens,
        )
        if not response.choices:
            raise VisionParseError("Invalid response from vision model: no choices")
        return response.choices[0].message.content

    async def close(self) -> None:
        await self._client.close()
