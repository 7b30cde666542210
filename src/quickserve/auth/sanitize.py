"""Customer input sanitization and table-number format guard."""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import Any

import structlog

from quickserve.errors import ValidationError

logger = structlog.get_logger()

TABLE_NUMBER_RE = re.compile(r"^[A-Za-z0-9_-]+$")
SCRIPT_BLOCK_RE = re.compile(
    r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>",
    re.IGNORECASE,
)
PHONE_DISALLOWED_RE = re.compile(r"[^0-9+]")

CUSTOMER_NAME_MAX = 100
CUSTOMER_PHONE_MAX = 15
CUSTOMER_EMAIL_MAX = 100
SPECIAL_INSTRUCTIONS_MAX = 500


def _clean_name(value: str) -> str:
    return value.strip()[:CUSTOMER_NAME_MAX]


def _clean_phone(value: str) -> str:
    return PHONE_DISALLOWED_RE.sub("", value)[:CUSTOMER_PHONE_MAX]


def _clean_email(value: str) -> str:
    return value.strip().lower()[:CUSTOMER_EMAIL_MAX]


def _clean_free_text(value: str) -> str:
    return SCRIPT_BLOCK_RE.sub("", value).strip()[:SPECIAL_INSTRUCTIONS_MAX]


FIELD_CLEANERS: dict[str, Callable[[str], str]] = {
    "customerName": _clean_name,
    "customerPhone": _clean_phone,
    "customerEmail": _clean_email,
    "specialInstructions": _clean_free_text,
}


def sanitize_customer_input(payload: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *payload* with customer text fields cleaned.

    Never raises: a field that cannot be cleaned (wrong type) is logged and
    left as it was, so optional customer input cannot break checkout.
    """
    cleaned = dict(payload)
    for field, clean in FIELD_CLEANERS.items():
        value = cleaned.get(field)
        if not value:
            continue
        try:
            cleaned[field] = clean(value)
        except (AttributeError, TypeError) as exc:
            logger.warning(
                "customer_input_sanitize_failed",
                field=field,
                value_type=type(value).__name__,
                error=str(exc),
            )
    return cleaned


def validate_table_number(value: str, param: str = "tableNumber") -> str:
    """Check a customer-facing table identifier such as ``t1`` or ``table-1``.

    Raises:
        ValidationError: value contains anything outside ``[A-Za-z0-9_-]``.
    """
    if not TABLE_NUMBER_RE.fullmatch(value):
        logger.warning("invalid_table_number", param=param, value=value[:50])
        raise ValidationError("invalid_table_number", param=param)
    return value
