"""Result cache implementations."""

from mealscan.infrastructure.cache.result_cache import CacheEntry, ResultCache

__all__ = [
    "CacheEntry",
    "ResultCache",
]
