"""
Domain models for meal photo analysis.

Models flowing through the pipeline: raw input, normalized JPEG,
inference request/result and the final nutrition record.
"""

from __future__ import annotations

import base64
import binascii
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from mealscan.domain.shared.value_objects import RecordId, UserId


HEIF_MIME_TYPES = frozenset(
    {
        "image/heic",
        "image/heif",
        "image/heic-sequence",
        "image/heif-sequence",
    }
)
HEIF_EXTENSIONS = (".heic", ".heif")
DATA_URL_MARKER = "base64,"


def strip_data_url_prefix(payload: str) -> str:
    """
    Remove a ``data:<mime>;base64,`` prefix if present.

    Example:
        >>> strip_data_url_prefix("data:image/jpeg;base64,AAAA")
        'AAAA'
        >>> strip_data_url_prefix("AAAA")
        'AAAA'
    """
    if payload.startswith("data:") and DATA_URL_MARKER in payload:
        return payload.split(DATA_URL_MARKER, 1)[1]
    return payload


class MealType(str, Enum):
    """Meal classification of a record."""

    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACK = "snack"


class Provenance(str, Enum):
    """Origin of the nutrition values."""

    INFERENCE = "inference"  # Live vision model estimate
    FALLBACK = "fallback"  # Synthesized estimate, flag as uncertain


class RawImageInput(BaseModel):
    """
    Image as captured or uploaded, before normalization.

    Attributes:
        data: Encoded image bytes in the declared format
        mime_type: Declared MIME type (e.g. "image/heic")
        byte_length: Original size in bytes (defaults to len(data))
        filename: Original file name, if any

    Example:
        >>> raw = RawImageInput(data=b"...", mime_type="image/png")
        >>> assert raw.byte_length == 3
    """

    model_config = ConfigDict(frozen=True)

    data: bytes = Field(..., repr=False, description="Encoded image bytes")
    mime_type: str = Field(..., min_length=1, description="Declared MIME type")
    byte_length: int = Field(0, ge=0, description="Original size in bytes")
    filename: Optional[str] = Field(None, description="Original file name")

    @model_validator(mode="before")
    @classmethod
    def default_byte_length(cls, values: Any) -> Any:
        """Fill byte_length from the payload when not supplied."""
        if isinstance(values, dict) and not values.get("byte_length"):
            data = values.get("data")
            if isinstance(data, (bytes, bytearray)):
                values = {**values, "byte_length": len(data)}
        return values

    @field_validator("mime_type")
    @classmethod
    def normalize_mime(cls, v: str) -> str:
        return v.strip().lower()

    def is_image_type(self) -> bool:
        return self.mime_type.startswith("image/")

    def is_camera_native(self) -> bool:
        """True for HEIC/HEIF payloads, by MIME type or file extension."""
        if self.mime_type in HEIF_MIME_TYPES:
            return True
        return bool(self.filename and self.filename.lower().endswith(HEIF_EXTENSIONS))

    @classmethod
    def from_data_url(cls, data_url: str, filename: Optional[str] = None) -> RawImageInput:
        """
        Build an input from a ``data:`` URL as produced by a canvas.

        Raises:
            ValueError: If the URL is not a base64 data URL
        """
        if not data_url.startswith("data:") or DATA_URL_MARKER not in data_url:
            raise ValueError("Not a base64 data URL")
        header, encoded = data_url.split(DATA_URL_MARKER, 1)
        mime_type = header[len("data:") :].rstrip(";") or "application/octet-stream"
        try:
            data = base64.b64decode(encoded, validate=True)
        except binascii.Error as exc:
            raise ValueError(f"Invalid base64 payload: {exc}") from exc
        return cls(data=data, mime_type=mime_type, filename=filename)


class NormalizedImage(BaseModel):
    """
    Upright, metadata-free JPEG ready for inference.

    Attributes:
        data: JPEG bytes
        width: Width in pixels
        height: Height in pixels
        quality: JPEG quality factor used (0-1)
    """

    model_config = ConfigDict(frozen=True)

    data: bytes = Field(..., repr=False, min_length=1, description="JPEG bytes")
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    quality: float = Field(..., gt=0.0, le=1.0)

    @property
    def byte_length(self) -> int:
        return len(self.data)

    @property
    def mime_type(self) -> str:
        return "image/jpeg"

    def to_base64(self) -> str:
        """Base64 payload without any data URL prefix."""
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:image/jpeg;{DATA_URL_MARKER}{self.to_base64()}"


class InferenceRequest(BaseModel):
    """
    Request for the remote nutrition-vision service.

    The user id is attribution metadata only.
    """

    model_config = ConfigDict(frozen=True)

    image: NormalizedImage
    user_id: UserId


class RawInferenceResult(BaseModel):
    """
    Coerced nutrition estimate returned by the inference service.

    Numeric fields are already non-negative floats; ``payload`` keeps
    the original ``data`` object for debugging.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    calories: float = Field(0.0, ge=0)
    protein: float = Field(0.0, ge=0)
    carbs: float = Field(0.0, ge=0)
    fat: float = Field(0.0, ge=0)
    fiber: float = Field(0.0, ge=0)
    sugar: float = Field(0.0, ge=0)
    payload: Dict[str, Any] = Field(default_factory=dict, repr=False)


class NutritionRecord(BaseModel):
    """
    Canonical output of an analysis.

    Immutable once returned. Callers amend a copy through
    :meth:`with_changes` (meal type, notes...) before persisting it.

    Attributes:
        id: Freshly generated unique id
        name: Display name
        calories: Energy in kcal
        protein: Protein in g
        carbs: Carbohydrates in g
        fat: Fat in g
        fiber: Fiber in g (default 0)
        sugar: Sugar in g (default 0)
        provenance: Live inference or fallback synthesis
        image: Normalized image, None once detached
        user_id: Owner of the record
        timestamp: Creation time (UTC)
        meal_type: Meal classification (default lunch)
        quantity: Number of servings
        notes: Free text

    Example:
        >>> record = NutritionRecord(
        ...     name="Caesar Salad",
        ...     calories=320,
        ...     protein=18,
        ...     carbs=12,
        ...     fat=22,
        ...     provenance=Provenance.INFERENCE,
        ...     user_id=UserId(value="user_1"),
        ... )
        >>> dinner = record.with_changes(meal_type=MealType.DINNER)
        >>> assert dinner.id == record.id
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: RecordId.generate().value)
    name: str = Field(..., min_length=1, max_length=200)
    calories: float = Field(..., ge=0, description="Energy in kcal")
    protein: float = Field(..., ge=0, description="Protein in g")
    carbs: float = Field(..., ge=0, description="Carbohydrates in g")
    fat: float = Field(..., ge=0, description="Fat in g")
    fiber: float = Field(0.0, ge=0, description="Fiber in g")
    sugar: float = Field(0.0, ge=0, description="Sugar in g")

    provenance: Provenance
    image: Optional[NormalizedImage] = Field(None, repr=False)
    user_id: UserId
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    meal_type: MealType = MealType.LUNCH
    quantity: float = Field(1.0, gt=0)
    notes: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Record name cannot be empty or whitespace")
        return v.strip()

    @property
    def is_fallback(self) -> bool:
        return self.provenance == Provenance.FALLBACK

    @property
    def image_url(self) -> Optional[str]:
        """Data URL of the attached image, for display."""
        return self.image.to_data_url() if self.image else None

    def with_changes(self, **changes: Any) -> NutritionRecord:
        """Return a validated copy with the given fields replaced."""
        current = {name: getattr(self, name) for name in type(self).model_fields}
        current.update(changes)
        return type(self).model_validate(current)

    def detach_image(self) -> NutritionRecord:
        return self.with_changes(image=None)


class AnalysisStage(str, Enum):
    """Orchestrator states reported to the UI."""

    NORMALIZING = "NORMALIZING"
    CACHE_CHECK = "CACHE_CHECK"
    INFERRING = "INFERRING"
    SYNTHESIZING = "SYNTHESIZING"
    DONE = "DONE"
    FAILED = "FAILED"


class ProgressEvent(BaseModel):
    """Progress signal for UI consumption."""

    model_config = ConfigDict(frozen=True)

    stage: AnalysisStage
    percent: int = Field(..., ge=0, le=100)
    attempt: Optional[int] = Field(None, ge=1)
    message: Optional[str] = None
