"""
Validation utilities for request input.
"""
import re
from typing import Any
from fastapi import HTTPException

MAX_TOP_K = 50

_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
_ENTITY_ID_RE = re.compile(r"^[A-Za-z0-9._:@+-]+$")


def validate_email(email: str) -> str:
    """Validate email format."""
    if not email or not isinstance(email, str):
        raise HTTPException(status_code=400, detail="Email is required")

    email = email.strip().lower()
    if len(email) > 255:
        raise HTTPException(status_code=400, detail="Email too long (max 255 characters)")

    if not _EMAIL_RE.match(email):
        raise HTTPException(status_code=400, detail="Invalid email format")

    return email


def validate_string_field(
    value: Any,
    field_name: str,
    min_length: int = 1,
    max_length: int = 1000,
    required: bool = True,
    pattern: str | None = None,
) -> str | None:
    """Validate a string field with common rules."""
    if value is None:
        if required:
            raise HTTPException(status_code=400, detail=f"{field_name} is required")
        return None

    if not isinstance(value, str):
        raise HTTPException(status_code=400, detail=f"{field_name} must be a string")

    value = value.strip()

    if required and not value:
        raise HTTPException(status_code=400, detail=f"{field_name} is required")

    if len(value) < min_length:
        raise HTTPException(
            status_code=400,
            detail=f"{field_name} must be at least {min_length} characters"
        )

    if len(value) > max_length:
        raise HTTPException(
            status_code=400,
            detail=f"{field_name} must not exceed {max_length} characters"
        )

    if pattern and not re.match(pattern, value):
        raise HTTPException(status_code=400, detail=f"{field_name} format is invalid")

    return value


def validate_entity_id(value: Any, field_name: str = "job_id") -> str:
    """Job ids end up in URLs and index keys; keep them to a safe charset."""
    return validate_string_field(value, field_name, max_length=120, pattern=_ENTITY_ID_RE.pattern)


def validate_top_k(value: Any, default: int) -> int:
    """top_k defaults when missing and must stay within [1, MAX_TOP_K]."""
    if value is None:
        return default
    try:
        k = int(value)
    except (ValueError, TypeError):
        raise HTTPException(status_code=400, detail="top_k must be a valid integer")
    if k < 1 or k > MAX_TOP_K:
        raise HTTPException(status_code=400, detail=f"top_k must be between 1 and {MAX_TOP_K}")
    return k

