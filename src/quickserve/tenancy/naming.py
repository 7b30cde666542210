"""Slugs, tenant codes and schema names."""

from __future__ import annotations

import re
import secrets

from quickserve.errors import ValidationError

# "-" is the only separator; schema names rewrite it to "_" one-to-one.
SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
MAX_SLUG_LENGTH = 50
TENANT_CODE_PREFIX = "QS"


def validate_slug(slug: str) -> str:
    """Return *slug* if it is URL-safe and short enough to name a schema.

    Raises:
        ValidationError: slug is empty, too long or has disallowed characters.
    """
    if not slug or len(slug) > MAX_SLUG_LENGTH or not SLUG_RE.fullmatch(slug):
        raise ValidationError("invalid_slug", param="slug")
    return slug


def schema_name_for(slug: str, prefix: str = "tenant_") -> str:
    """Schema name for *slug*: ``acme-diner`` -> ``tenant_acme_diner``."""
    return f"{prefix}{validate_slug(slug).replace('-', '_')}"


def slugify(name: str) -> str:
    """Derive a URL slug from a restaurant name.

    >>> slugify("  Joe's Diner & Bar ")
    'joes-diner-bar'
    """
    slug = name.strip().lower()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:MAX_SLUG_LENGTH].rstrip("-")


def generate_tenant_code() -> str:
    """Random human code for admin re-entry, ``QS`` plus four digits."""
    return f"{TENANT_CODE_PREFIX}{1000 + secrets.randbelow(9000)}"
