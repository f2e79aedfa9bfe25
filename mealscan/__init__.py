"""
mealscan: food-photo analysis pipeline.

Turns a meal photo into a structured nutrition record through image
normalization, remote vision inference with retries, fallback synthesis
and short-lived result caching.

Structure:
- domain/: Domain models, ports and errors
- infrastructure/: Pillow imaging, aiohttp inference client, result cache
- application/: Analysis orchestrator and fallback synthesizer
- metrics/: In-memory counters and histograms
- service/: FastAPI food-analysis endpoint (OpenAI vision proxy)
"""

__version__ = "1.0.0"
