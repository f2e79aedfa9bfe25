"""Food-analysis HTTP service (OpenAI vision proxy)."""

from mealscan.service.app import FoodAnalysisRequest, create_app
from mealscan.service.vision import VisionNutritionAnalyzer, VisionParseError, extract_json_object

__all__ = [
    "FoodAnalysisRequest",
    "VisionNutritionAnalyzer",
    "VisionParseError",
    "create_app",
    "extract_json_object",
]
