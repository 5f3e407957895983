"""Identifier normalization for ids arriving from the workflow engine.

n8n forwards Mongo-style extended JSON, so an id can show up either as a plain
string or wrapped as ``{"$oid": "..."}``.
"""

import re

from promptverse.core.exceptions import ValidationError

_ID_PATTERN = re.compile(r"^[0-9a-f]{24,32}$")


def normalize_id(value: object, field: str = "id") -> str | None:
    """Unwrap and validate an id.

    Args:
        value: ``None``, a string, or ``{"$oid": str}``
        field: Field name used in the error message

    Returns:
        Lowercase hex id without dashes, or None when ``value`` is None/empty

    Raises:
        ValidationError: value has an unsupported shape or is not a hex id
    """
    if value is None:
        return None

    if isinstance(value, dict):
        if set(value) != {"$oid"}:
            raise ValidationError(f"Invalid {field}: unsupported id wrapper")
        value = value["$oid"]

    if not isinstance(value, str):
        raise ValidationError(f"Invalid {field}: expected string id")

    candidate = value.strip().lower().replace("-", "")
    if not candidate:
        return None
    if not _ID_PATTERN.match(candidate):
        raise ValidationError(f"Invalid {field}: {value!r}")
    return candidate
