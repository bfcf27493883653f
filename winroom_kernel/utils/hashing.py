"""
Deterministic hashing and JSON utilities.

Fingerprints, config checksums and stored JSON payloads all go through
these functions so the same input always produces the same bytes.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    """
    Custom JSON serializer for types not natively supported.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Decimal):
        # Normalized so 10.50 and 10.5 serialize identically
        return str(obj.normalize())
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """
    Convert data to canonical JSON string.

    Keys sorted, no whitespace, Decimal/datetime/UUID rendered as strings.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
        ensure_ascii=False,
    )


def json_safe(data: dict) -> dict:
    """Round-trip *data* through canonical JSON so it fits a JSON column."""
    return json.loads(canonicalize_json(data))


def hash_pipe_fields(components: list[Any]) -> str:
    """
    Hex SHA-256 of ``|``-joined components.

    None becomes the empty string; everything else is ``str()``-ed.
    """
    data = "|".join("" if c is None else str(c) for c in components)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()
