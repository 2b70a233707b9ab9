"""Message Normalizer — canonical conversation from caller-supplied shapes.

Callers send either a ``messages`` list of ``{role, content}`` objects or a
flat ``prompt`` with an optional ``system`` string.
"""

from __future__ import annotations

from typing import Any

from foundry_gateway.core.exceptions import InvalidRequestError
from foundry_gateway.gateway.types import Message, Role


def _is_well_formed(entry: dict) -> bool:
    role = entry.get("role")
    return isinstance(role, str) and bool(role) and isinstance(entry.get("content"), str)


def normalize_messages(
    messages: Any = None,
    prompt: Any = None,
    system: Any = None,
) -> tuple[Message, ...]:
    """Return the ordered conversation, or raise InvalidRequestError.

    A non-empty ``messages`` list wins over ``prompt``. Entries that are not
    objects, or whose role/content is not a string, are dropped; the rest
    keep their original order.
    """
    if isinstance(messages, list) and messages:
        normalized = tuple(
            Message(role=entry["role"], content=entry["content"])
            for entry in messages
            if isinstance(entry, dict) and _is_well_formed(entry)
        )
        if not normalized:
            raise InvalidRequestError("messages contained no valid entries.")
        return normalized

    if not prompt or not isinstance(prompt, str):
        raise InvalidRequestError("prompt or messages are required.")

    conversation: list[Message] = []
    if system and isinstance(system, str):
        conversation.append(Message(role=Role.SYSTEM.value, content=system))
    conversation.append(Message(role=Role.USER.value, content=prompt))
    return tuple(conversation)
