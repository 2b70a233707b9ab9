"""Output Parser — turns raw backend text into ``{content, payload}``.

Backends return plain text, a JSON ``{content, payload}`` envelope, or a
structured import payload (documents/compendiums). Parsing never raises:
anything that is not recognised passes through as plain text.
"""

from __future__ import annotations

import json
from typing import Any

from foundry_gateway.gateway.types import ResponseEnvelope

# Keys that mark the whole JSON object as an import payload
PAYLOAD_MARKER_KEYS = ("documents", "document", "compendiums")


def parse_output(raw: str | None, usage: dict[str, Any] | None = None) -> ResponseEnvelope:
    """Normalize raw output into a response envelope.

    Pure: the same input always yields an equal envelope.
    """
    text = (raw or "").strip()
    if not text:
        return ResponseEnvelope(content="", payload=None, usage=usage)

    try:
        parsed = json.loads(text)
    except (ValueError, RecursionError):
        return ResponseEnvelope(content=text, payload=None, usage=usage)

    if isinstance(parsed, dict):
        if any(parsed.get(key) for key in PAYLOAD_MARKER_KEYS):
            return ResponseEnvelope(content=text, payload=parsed, usage=usage)
        if isinstance(parsed.get("content"), str):
            return ResponseEnvelope(content=parsed["content"], payload=parsed.get("payload"), usage=usage)

    return ResponseEnvelope(content=text, payload=None, usage=usage)
