"""
Environment-driven configuration.

All settings come from ``MEALSCAN_*`` environment variables, optionally
seeded from a ``.env`` file. OpenAI credentials use the conventional
``OPENAI_API_KEY`` / ``OPENAI_VISION_MODEL`` names.

Example .env:
    MEALSCAN_INFERENCE_URL=https://api.example.com/food-analysis
    MEALSCAN_INFERENCE_API_KEY=...
    MEALSCAN_MAX_ATTEMPTS=3
    MEALSCAN_LOG_JSON=true
    MEALSCAN_CORS_ORIGINS=https://app.example.com,https://admin.example.com
    OPENAI_API_KEY=sk-...
"""

from __future__ import annotations

import os
from typing import Any, Dict, List, Mapping, Optional

from dotenv import load_dotenv
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from mealscan.domain.analysis.profiles import MIN_VIABLE_BYTES, DeviceProfile
from mealscan.domain.shared.errors import ConfigurationError


ENV_PREFIX = "MEALSCAN_"

# Environment variable -> settings field
_ENV_FIELDS = {
    f"{ENV_PREFIX}INFERENCE_URL": "inference_url",
    f"{ENV_PREFIX}INFERENCE_API_KEY": "inference_api_key",
    f"{ENV_PREFIX}MAX_ATTEMPTS": "max_attempts",
    f"{ENV_PREFIX}CONSTRAINED_MAX_ATTEMPTS": "constrained_max_attempts",
    f"{ENV_PREFIX}INITIAL_DELAY_S": "initial_delay_s",
    f"{ENV_PREFIX}BACKOFF_MULTIPLIER": "backoff_multiplier",
    f"{ENV_PREFIX}ATTEMPT_TIMEOUT_S": "attempt_timeout_s",
    f"{ENV_PREFIX}CACHE_TTL_S": "cache_ttl_s",
    f"{ENV_PREFIX}MIN_VIABLE_BYTES": "min_viable_bytes",
    f"{ENV_PREFIX}CONSTRAINED_DEADLINE_S": "constrained_deadline_s",
    f"{ENV_PREFIX}UNCONSTRAINED_DEADLINE_S": "unconstrained_deadline_s",
    f"{ENV_PREFIX}MAX_UPLOAD_BYTES": "max_upload_bytes",
    f"{ENV_PREFIX}HOST": "host",
    f"{ENV_PREFIX}PORT": "port",
    f"{ENV_PREFIX}CORS_ORIGINS": "cors_origins",
    f"{ENV_PREFIX}LOG_LEVEL": "log_level",
    f"{ENV_PREFIX}LOG_JSON": "log_json",
    "OPENAI_API_KEY": "openai_api_key",
    "OPENAI_VISION_MODEL": "openai_model",
}


class MealScanSettings(BaseModel):
    """
    Runtime settings.

    Attributes:
        inference_url: Food-analysis endpoint used by the inference client
        inference_api_key: Bearer token for the endpoint
        max_attempts: Inference attempts on unconstrained devices
        constrained_max_attempts: Inference attempts on constrained devices
        initial_delay_s: First backoff delay
        backoff_multiplier: Backoff growth factor
        attempt_timeout_s: Per-attempt HTTP timeout
        cache_ttl_s: Result cache TTL
        min_viable_bytes: Normalized JPEG size threshold (10-20 KB band)
        constrained_deadline_s: Default analysis deadline on mobile
        unconstrained_deadline_s: Default analysis deadline on desktop
        max_upload_bytes: Largest image accepted by the service
        host: Bind address of the service
        port: Bind port of the service
        cors_origins: Origins allowed to call the service from a browser
        log_level: Minimum log level
        log_json: Render logs as JSON lines
        openai_api_key: Key used by the food-analysis service
        openai_model: Vision model used by the food-analysis service
    """

    model_config = ConfigDict(frozen=True)

    inference_url: str = "http://localhost:8080/food-analysis"
    inference_api_key: Optional[str] = None
    max_attempts: int = Field(3, ge=1, le=10)
    constrained_max_attempts: int = Field(3, ge=1, le=10)
    initial_delay_s: float = Field(1.0, ge=0)
    backoff_multiplier: float = Field(1.5, ge=1.0)
    attempt_timeout_s: float = Field(30.0, gt=0)
    cache_ttl_s: float = Field(24 * 60 * 60, gt=0)
    min_viable_bytes: int = Field(MIN_VIABLE_BYTES, ge=10_000, le=20_000)
    constrained_deadline_s: float = Field(45.0, gt=0)
    unconstrained_deadline_s: float = Field(100.0, gt=0)
    max_upload_bytes: int = Field(10 * 1024 * 1024, gt=0)
    host: str = "0.0.0.0"
    port: int = Field(8080, gt=0, lt=65536)
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    log_json: bool = False
    openai_api_key: Optional[str] = Field(None, repr=False)
    openai_model: str = "gpt-4o"

    @field_validator("cors_origins", mode="before")
    @classmethod
    def split_origins(cls, v: Any) -> Any:
        # MEALSCAN_CORS_ORIGINS is comma separated
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @model_validator(mode="after")
    def check_log_level(self) -> MealScanSettings:
        if self.log_level.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {self.log_level}")
        return self

    def deadlines(self) -> Dict[DeviceProfile, float]:
        return {
            DeviceProfile.CONSTRAINED: self.constrained_deadline_s,
            DeviceProfile.UNCONSTRAINED: self.unconstrained_deadline_s,
        }

    def attempts(self) -> Dict[DeviceProfile, int]:
        return {
            DeviceProfile.CONSTRAINED: self.constrained_max_attempts,
            DeviceProfile.UNCONSTRAINED: self.max_attempts,
        }


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    *,
    dotenv: bool = True,
) -> MealScanSettings:
    """
    Build settings from the environment.

    Args:
        environ: Variables to read (defaults to os.environ)
        dotenv: Load a ``.env`` file into os.environ first

    Returns:
        Validated MealScanSettings

    Raises:
        ConfigurationError: If any variable has an invalid value

    Example:
        >>> settings = load_settings({"MEALSCAN_MAX_ATTEMPTS": "5"}, dotenv=False)
        >>> assert settings.max_attempts == 5
    """
    if environ is None:
        if dotenv:
            load_dotenv()
        environ = os.environ

    values = {
        field: environ[name]
        for name, field in _ENV_FIELDS.items()
        if environ.get(name) not in (None, "")
    }
    try:
        return MealScanSettings(**values)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}") from e
