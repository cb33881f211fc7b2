"""Helpers for opaque participant fingerprints."""

from __future__ import annotations

import uuid

from ..errors import ValidationError

MANUAL_FINGERPRINT_PREFIX = "manual_"


def normalize_fingerprint(fingerprint: str) -> str:
    """Trim a raw participant fingerprint and reject blank values.

    Fingerprints are opaque: they may be account ids, device hashes or
    generated ids for manual entries, so no case folding is applied.

    Parameters
    ----------
    fingerprint : str
        Raw fingerprint supplied by the client or organizer.
    """

    if fingerprint is None:
        raise ValidationError("Participant fingerprint is required")
    if not isinstance(fingerprint, str):
        raise TypeError("fingerprint must be a string")
    normalized = fingerprint.strip()
    if not normalized:
        raise ValidationError("Participant fingerprint is required")
    if len(normalized) > 255:
        raise ValidationError("Participant fingerprint is too long")
    return normalized


def generate_manual_fingerprint() -> str:
    """Return a fresh fingerprint for an organizer-created participant."""

    return f"{MANUAL_FINGERPRINT_PREFIX}{uuid.uuid4().hex}"


def display_fallback(fingerprint: str) -> str:
    """Short name shown when a participant left no display name."""

    return fingerprint[:8] or "Anonymous"


__all__ = [
    "MANUAL_FINGERPRINT_PREFIX",
    "display_fallback",
    "generate_manual_fingerprint",
    "normalize_fingerprint",
]
