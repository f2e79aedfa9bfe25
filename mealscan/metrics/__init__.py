"""In-memory metrics for the analysis pipeline."""

from mealscan.metrics.core import MetricsRegistry, RegistrySnapshot, registry

__all__ = [
    "MetricsRegistry",
    "RegistrySnapshot",
    "registry",
]
