"""Shared-secret handling for the trigger endpoint."""

from __future__ import annotations

import secrets

SECRET_BYTES = 32


def generate_secret() -> str:
    """Return a new URL-safe random secret."""
    return secrets.token_urlsafe(SECRET_BYTES)


def validate_secret(provided: str | None, expected: str | None) -> bool:
    """Compare a request secret against the configured one in constant time.

    Empty or missing values never validate.
    """
    if not provided or not expected:
        return False
    return secrets.compare_digest(provided.encode(), expected.encode())
