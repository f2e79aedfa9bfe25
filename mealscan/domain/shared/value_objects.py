"""
Shared value objects.

Immutable, validated domain primitives.
"""

from __future__ import annotations

import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator


class UserId(BaseModel):
    """
    User ID value object.

    Used only for request attribution; never encoded in image bytes.

    Example:
        >>> user_id = UserId(value="user_123")
        >>> assert str(user_id) == "user_123"
    """

    model_config = ConfigDict(frozen=True)

    value: str = Field(..., min_length=1, description="User identifier")

    @field_validator("value")
    @classmethod
    def not_empty(cls, v: str) -> str:
        """Ensure not empty or whitespace."""
        if not v.strip():
            raise ValueError("UserId cannot be empty or whitespace")
        return v.strip()

    def __str__(self) -> str:
        return self.value

    def __hash__(self) -> int:
        return hash(self.value)

    @classmethod
    def from_string(cls, s: str) -> UserId:
        """Create from string."""
        return cls(value=s)


class RecordId(BaseModel):
    """
    Nutrition record ID value object.

    Format: canonical UUID4 string, generated fresh per analysis.

    Example:
        >>> record_id = RecordId.generate()
        >>> assert len(record_id.value) == 36
    """

    model_config = ConfigDict(frozen=True)

    value: str = Field(
        ...,
        pattern=r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
        description="Record identifier",
    )

    def __str__(self) -> str:
        return self.value

    def __hash__(self) -> int:
        return hash(self.value)

    @classmethod
    def generate(cls) -> RecordId:
        """Generate new record ID."""
        return cls(value=str(uuid.uuid4()))
