"""
Shared fixtures for mealscan tests.

Images are generated with Pillow at test time; noise images stand in for
real meal photos because they compress poorly, like detailed pictures.
"""

from io import BytesIO
from typing import Any, Callable, List, Tuple

import pytest
from PIL import Image

from mealscan.domain.analysis.models import (
    NormalizedImage,
    RawImageInput,
    RawInferenceResult,
)
from mealscan.domain.shared.value_objects import UserId
from mealscan.metrics import analysis as metrics


# ═══════════════════════════════════════════════════════════
# IMAGE HELPERS
# ═══════════════════════════════════════════════════════════


def noise_image(size: Tuple[int, int], sigma: float = 64.0) -> Image.Image:
    """Gray gaussian noise, RGB."""
    return Image.effect_noise(size, sigma).convert("RGB")


def encode(image: Image.Image, fmt: str = "JPEG", **params: Any) -> bytes:
    buffer = BytesIO()
    image.save(buffer, format=fmt, **params)
    return buffer.getvalue()


def raw_input(
    image: Image.Image, fmt: str = "JPEG", mime_type: str = "image/jpeg"
) -> RawImageInput:
    return RawImageInput(data=encode(image, fmt), mime_type=mime_type)


@pytest.fixture
def make_noise() -> Callable[..., Image.Image]:
    return noise_image


@pytest.fixture
def make_raw() -> Callable[..., RawImageInput]:
    return raw_input


@pytest.fixture
def encode_image() -> Callable[..., bytes]:
    return encode


# ═══════════════════════════════════════════════════════════
# DOMAIN FIXTURES
# ═══════════════════════════════════════════════════════════


@pytest.fixture
def user_id() -> UserId:
    return UserId(value="user_123")


@pytest.fixture
def meal_photo() -> RawImageInput:
    """1024x768 detailed JPEG, comfortably above the viable size."""
    return raw_input(noise_image((1024, 768)))


@pytest.fixture
def normalized_image() -> NormalizedImage:
    """Small fake JPEG payload (not decodable, fine for cache/fallback tests)."""
    return NormalizedImage(
        data=b"\xff\xd8\xff\xe0" + bytes(range(256)) * 60 + b"\xff\xd9",
        width=1200,
        height=800,
        quality=0.9,
    )


@pytest.fixture
def inference_result() -> RawInferenceResult:
    return RawInferenceResult(
        name="Grilled Chicken Salad",
        calories=350.0,
        protein=32.0,
        carbs=12.5,
        fat=18.0,
        fiber=4.0,
        sugar=5.0,
    )


# ═══════════════════════════════════════════════════════════
# TEST UTILITIES
# ═══════════════════════════════════════════════════════════


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recorded_sleeps() -> List[float]:
    return []


@pytest.fixture
def fake_sleep(recorded_sleeps: List[float]) -> Callable[[float], Any]:
    """Async sleep that records delays without waiting."""

    async def _sleep(delay: float) -> None:
        recorded_sleeps.append(delay)

    return _sleep


@pytest.fixture(autouse=True)
def reset_metrics() -> None:
    """Every test starts from an empty metrics registry."""
    metrics.reset_all()
