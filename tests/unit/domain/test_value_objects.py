"""
Unit tests for value objects.

Testing immutability, validation, and equality.
"""

import pytest

from mealscan.domain.shared.value_objects import RecordId, UserId


class TestUserId:
    """Test UserId value object."""

    def test_create_valid(self) -> None:
        """Should create valid UserId."""
        user_id = UserId(value="user_123")
        assert user_id.value == "user_123"
        assert str(user_id) == "user_123"

    def test_strips_whitespace(self) -> None:
        """Should strip surrounding whitespace."""
        assert UserId(value="  user_1 ").value == "user_1"

    def test_reject_whitespace(self) -> None:
        """Should reject whitespace-only string."""
        with pytest.raises(ValueError):
            UserId(value="   ")

    def test_immutable(self) -> None:
        """Should be immutable."""
        user_id = UserId(value="user_123")
        with pytest.raises((AttributeError, ValueError)):
            user_id.value = "user_456"

    def test_hashable_and_equal(self) -> None:
        """Should be usable as dict key and compare by value."""
        assert UserId.from_string("u") == UserId(value="u")
        assert {UserId(value="u"): 1}[UserId(value="u")] == 1


class TestRecordId:
    """Test RecordId value object."""

    def test_generate_unique(self) -> None:
        """Should generate distinct UUID4 strings."""
        first, second = RecordId.generate(), RecordId.generate()
        assert first != second
        assert len(str(first)) == 36

    def test_reject_malformed(self) -> None:
        """Should reject non-UUID values."""
        with pytest.raises(ValueError):
            RecordId(value="not-a-uuid")
