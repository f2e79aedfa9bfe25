"""Remote nutrition-vision inference client."""

from mealscan.infrastructure.inference.client import HttpInferenceClient

__all__ = [
    "HttpInferenceClient",
]
