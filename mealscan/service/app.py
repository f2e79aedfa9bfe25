"""Food-analysis HTTP service.

Thin proxy between the inference client and OpenAI vision:

    POST /food-analysis  {image, instructions?} -> {success, data}
    GET  /health
    OPTIONS *            CORS preflight (origins from MEALSCAN_CORS_ORIGINS)

Status codes:
    200  {success: true, data}
    400  empty or malformed image
    403  OpenAI rejected the credentials (clients must not retry)
    413  image larger than the upload limit
    500  model/parse error or missing API key
    503  circuit breaker open
"""

from __future__ import annotations

import base64
import binascii
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import openai
import structlog
from circuitbreaker import CircuitBreakerError
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from mealscan import __version__
from mealscan.config import MealScanSettings, load_settings
from mealscan.domain.analysis.models import strip_data_url_prefix
from mealscan.domain.analysis.prompts import NUTRITION_INSTRUCTIONS
from mealscan.service.vision import VisionNutritionAnalyzer, VisionParseError

logger = structlog.get_logger(__name__)

CORS_ALLOWED_HEADERS = ["authorization", "x-client-info", "apikey", "content-type", "x-user-id"]


class FoodAnalysisRequest(BaseModel):
    """Request body of POST /food-analysis."""

    image: str = Field(..., description="Base64 JPEG, with or without data URL prefix")
    instructions: Optional[str] = Field(None, description="Override of the nutrition prompt")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def create_app(
    settings: Optional[MealScanSettings] = None,
    analyzer: Optional[VisionNutritionAnalyzer] = None,
) -> FastAPI:
    """
    Build the food-analysis application.

    Args:
        settings: Runtime settings (loaded from the environment if None)
        analyzer: Vision analyzer (built from settings.openai_api_key if None)

    Returns:
        Configured FastAPI app
    """
    settings = settings or load_settings()
    if analyzer is None and settings.openai_api_key:
        analyzer = VisionNutritionAnalyzer(
            api_key=settings.openai_api_key, model=settings.openai_model
        )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "Food-analysis service starting",
            model=settings.openai_model,
            vision_configured=analyzer is not None,
        )
        yield
        if analyzer is not None:
            await analyzer.close()
        logger.info("Food-analysis service stopped")

    app = FastAPI(title="mealscan food-analysis", version=__version__, lifespan=lifespan)

    # Browser clients call the service directly
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=CORS_ALLOWED_HEADERS,
    )

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "version": __version__,
            "vision_configured": analyzer is not None,
            "circuit_open": analyzer.circuit_open if analyzer else False,
        }

    @app.post("/food-analysis")
    async def food_analysis(body: FoodAnalysisRequest) -> JSONResponse:
        if analyzer is None:
            logger.error("OpenAI API key not configured")
            return _error(500, "OpenAI API key not configured")

        image_base64 = strip_data_url_prefix(body.image.strip())
        if not image_base64:
            return _error(400, "No image data provided")

        try:
            image_bytes = base64.b64decode(image_base64, validate=True)
        except binascii.Error:
            return _error(400, "Image is not valid base64")
        if not image_bytes:
            return _error(400, "No image data provided")
        if len(image_bytes) > settings.max_upload_bytes:
            return _error(
                413, f"Image too large (max {settings.max_upload_bytes // (1024 * 1024)}MB)"
            )

        try:
            data = await analyzer.analyze(
                image_base64, body.instructions or NUTRITION_INSTRUCTIONS
            )
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            logger.error("OpenAI rejected credentials", status=e.status_code)
            return _error(403, "Vision provider rejected the credentials")
        except CircuitBreakerError:
            logger.warning("Vision circuit breaker open")
            return _error(503, "Vision service temporarily unavailable")
        except VisionParseError as e:
            logger.warning("Vision reply could not be parsed", error=str(e))
            return _error(500, str(e))
        except openai.APIError as e:
            logger.error("Vision API error", error=str(e))
            return _error(500, f"AI Vision API error: {e}")

        return JSONResponse(status_code=200, content={"success": True, "data": data})

    return app
