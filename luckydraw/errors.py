"""Error kinds raised by the lucky draw engine.

Each error carries a machine-readable ``code`` and the HTTP-equivalent status
the API layer should answer with.
"""

from __future__ import annotations

from typing import Any, Optional


class LuckyDrawError(Exception):
    """Base class for all domain errors surfaced to callers."""

    code: str = "LUCKY_DRAW_ERROR"
    status_code: int = 400

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code}


class ValidationError(LuckyDrawError):
    code = "VALIDATION_ERROR"
    status_code = 400


class FeatureDisabled(LuckyDrawError):
    code = "FEATURE_DISABLED"
    status_code = 400


class Forbidden(LuckyDrawError):
    code = "FORBIDDEN"
    status_code = 403


class NotFound(LuckyDrawError):
    code = "NOT_FOUND"
    status_code = 404


class InvalidState(LuckyDrawError):
    code = "INVALID_STATE"
    status_code = 409


class NoEntries(LuckyDrawError):
    code = "NO_ENTRIES"
    status_code = 409


class LimitExceeded(LuckyDrawError):
    code = "LIMIT_EXCEEDED"
    status_code = 409


INTERNAL_ERROR_STATUS = 500
INTERNAL_ERROR_PAYLOAD = {
    "error": "An unexpected error occurred. Please try again later.",
    "code": "INTERNAL_ERROR",
}


__all__ = [
    "FeatureDisabled",
    "Forbidden",
    "INTERNAL_ERROR_PAYLOAD",
    "INTERNAL_ERROR_STATUS",
    "InvalidState",
    "LimitExceeded",
    "LuckyDrawError",
    "NoEntries",
    "NotFound",
    "ValidationError",
]
