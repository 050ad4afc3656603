"""Batch serializer — JSON payload for the import endpoint."""

import json
from datetime import date, datetime, time, timezone
from typing import Any, Iterable, Mapping, Optional

from analytics_pipeline.messages import Message, message_to_dict

LIBRARY_NAME = "analytics-pipeline"
LIBRARY_VERSION = "1.0.0"


def default_context() -> dict:
    return {"library": {"name": LIBRARY_NAME, "version": LIBRARY_VERSION}}


def _encode_extra(value: Any):
    """json.dumps fallback for property values JSON has no type for."""
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, (set, frozenset)):
        return list(value)
    return str(value)


def serialize_batch(
    messages: Iterable[Message],
    sequence: int,
    sent_at: Optional[str] = None,
    context: Optional[dict] = None,
) -> bytes:
    """Serialize a batch of messages to UTF-8 JSON bytes.

    The envelope carries the messages under ``batch`` plus ``sentAt``,
    ``sequence`` and a library ``context``. Dates and times in property
    bags are written as ISO-8601 strings, sets as lists, and any other
    value JSON cannot represent as its ``str()``.
    """
    payload = {
        "batch": [message_to_dict(m) for m in messages],
        "sentAt": sent_at or datetime.now(timezone.utc).isoformat(),
        "sequence": sequence,
        "context": context if context is not None else default_context(),
    }
    return json.dumps(payload, default=_encode_extra).encode("utf-8")


def deserialize_batch(data: bytes) -> dict:
    """Decode bytes produced by *serialize_batch* back to the envelope dict."""
    return json.loads(data)
