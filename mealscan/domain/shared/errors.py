"""
Domain exceptions.

Typed exceptions for the photo analysis pipeline. Only the image errors
ever leave the orchestrator; inference errors are absorbed by the
fallback path.
"""

from __future__ import annotations

from typing import Optional


# ═══════════════════════════════════════════════════════════
# BASE EXCEPTION
# ═══════════════════════════════════════════════════════════


class MealScanError(Exception):
    """
    Base exception for all mealscan errors.

    Allows catching every pipeline error with a single except clause.
    """

    pass


class ConfigurationError(MealScanError):
    """
    Invalid configuration value.

    Example:
        >>> raise ConfigurationError("MEALSCAN_MAX_ATTEMPTS must be >= 1")
    """

    pass


# ═══════════════════════════════════════════════════════════
# IMAGE EXCEPTIONS (fatal, surfaced to the user)
# ═══════════════════════════════════════════════════════════


class ImageError(MealScanError):
    """
    Base exception for input images that cannot be analyzed.

    Carries a short actionable message suitable for a toast in the UI.
    """

    user_message: str = "Please try again with a different photo."

    def __init__(self, message: str, *, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        if user_message is not None:
            self.user_message = user_message


class UnsupportedFormat(ImageError):
    """
    Input image cannot be decoded.

    Raised when:
    - Declared MIME type is not an image
    - Payload is empty or corrupted
    - Camera-native format (HEIC/HEIF) fails both decoder paths

    Example:
        >>> raise UnsupportedFormat("HEIC decode failed")
    """

    user_message = (
        "We couldn't read this image. Please convert it to JPEG or PNG, "
        "or take a photo directly with the camera."
    )


class ImageTooDegraded(ImageError):
    """
    Normalized image is below the minimum viable size.

    Raised after the high-quality retry still produced too few bytes for
    reliable inference (tiny, flat or blurry pictures).

    Example:
        >>> raise ImageTooDegraded("encoded 4312 bytes < 10000")
    """

    user_message = (
        "The image quality is too low. Please try again with a clearer photo "
        "and better lighting."
    )


# ═══════════════════════════════════════════════════════════
# INFERENCE EXCEPTIONS (recovered through fallback)
# ═══════════════════════════════════════════════════════════


class InferenceError(MealScanError):
    """Base exception for remote inference failures."""

    pass


class InferenceAttemptFailed(InferenceError):
    """
    Single inference attempt failed with a transient condition.

    Raised when:
    - Service answered non-2xx (other than access refusals)
    - Service answered ``success: false``
    - Network error or per-attempt timeout

    Retried by the inference client.
    """

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class InvalidResponse(InferenceError):
    """
    Service payload cannot be interpreted as a nutrition estimate.

    Raised when:
    - Body is not JSON
    - ``data`` is missing or not an object
    - ``name`` is missing or empty

    Treated as a failed attempt and retried.
    """

    pass


class InferenceAccessDenied(InferenceError):
    """
    Upstream refused the request (non-transient).

    Raised immediately, without spending retry budget, on HTTP
    401/402/403 so the caller can show an actionable message.

    Example:
        >>> raise InferenceAccessDenied("forbidden", status=403)
    """

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class InferenceUnavailable(InferenceError):
    """
    All inference attempts exhausted.

    Carries the last underlying error for diagnostics. The orchestrator,
    not the client, decides to fall back.
    """

    def __init__(
        self,
        message: str,
        *,
        attempts: int,
        last_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error
