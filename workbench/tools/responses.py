"""Tool response helpers.

Every tool result crosses the dispatch boundary as serialized JSON text. The
load-bearing convention: the PRESENCE of an ``error`` key marks a failure,
whatever its value. ``{"error": 0}`` and ``{"error": ""}`` are failures.
"""

from __future__ import annotations

import json
from typing import Any


def tool_error(message: str, **context: Any) -> dict[str, Any]:
    """Build an error payload with optional extra context fields."""
    return {"error": message, **context}


def serialize_payload(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, default=str)


def decode_payload(text: str | None) -> dict[str, Any] | None:
    """Decode a tool result; None when it is not a JSON object."""
    if not text:
        return None
    try:
        decoded = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    return decoded if isinstance(decoded, dict) else None


def is_error_payload(payload: dict[str, Any] | str | None) -> bool:
    """Classify a tool result as failure by key presence, not truthiness.

    Text that cannot be decoded to an object is treated as a failure too.
    """
    if isinstance(payload, str) or payload is None:
        payload = decode_payload(payload)
        if payload is None:
            return True
    return "error" in payload
