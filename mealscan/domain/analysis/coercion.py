"""
Coercion of loosely typed model output into a nutrition estimate.

Vision models answer with numbers, numeric strings or strings with a unit
suffix ("12 g", "350kcal"). Anything that cannot be read as a finite,
non-negative number becomes 0.
"""

from __future__ import annotations

import math
import re
from typing import Any, Mapping

from mealscan.domain.analysis.models import RawInferenceResult
from mealscan.domain.analysis.prompts import REQUIRED_FIELDS
from mealscan.domain.shared.errors import InvalidResponse


NUMERIC_FIELDS = tuple(field for field in REQUIRED_FIELDS if field != "name")
MAX_NAME_LENGTH = 200

_LEADING_NUMBER = re.compile(
    r"^\s*([-+]?"
    r"(?:[1-9]\d{0,2}(?:,\d{3})+(?!\d)(?:\.\d*)?|\d+(?:[.,]\d*)?|[.,]\d+)"
    r"(?:[eE][-+]?\d+)?)"
)
# "1,200" groups thousands; any other comma is a decimal separator ("4,5")
_THOUSANDS = re.compile(r"^[-+]?[1-9]\d{0,2}(?:,\d{3})+(?!\d)")


def _normalize_separators(text: str) -> str:
    if _THOUSANDS.match(text):
        return text.replace(",", "")
    return text.replace(",", ".")


def coerce_number(value: Any) -> float:
    """
    Coerce a model-provided value to a non-negative finite float.

    Example:
        >>> coerce_number("12 g")
        12.0
        >>> coerce_number("1,200 kcal")
        1200.0
        >>> coerce_number("4,5")
        4.5
        >>> coerce_number("-3")
        0.0
        >>> coerce_number(None)
        0.0
    """
    if value is None or isinstance(value, bool):
        return 0.0

    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = _LEADING_NUMBER.match(value)
        if not match:
            return 0.0
        try:
            number = float(_normalize_separators(match.group(1)))
        except ValueError:
            return 0.0
    else:
        return 0.0

    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def parse_inference_payload(data: Any) -> RawInferenceResult:
    """
    Build a RawInferenceResult from the ``data`` object of a response.

    Raises:
        InvalidResponse: If data is not an object or name is missing/empty
    """
    if not isinstance(data, Mapping):
        raise InvalidResponse(f"Expected object in 'data', got {type(data).__name__}")

    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise InvalidResponse("Response is missing a food name")

    values = {field: coerce_number(data.get(field)) for field in NUMERIC_FIELDS}
    return RawInferenceResult(name=name.strip()[:MAX_NAME_LENGTH], payload=dict(data), **values)
