"""Core types and DTOs for the execution gateway."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from foundry_gateway.core.exceptions import InvalidRequestError


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ProviderKind(str, Enum):
    """How a provider's unit of work is executed."""

    REMOTE_CALL = "remote_call"  # HTTP call to a hosted chat API
    SUBPROCESS = "subprocess"  # Local CLI tool


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Message:
    role: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


def flatten_conversation(messages: tuple[Message, ...] | list[Message]) -> str:
    """Join message contents into the single prompt a CLI tool receives."""
    return "\n".join(m.content for m in messages)


# ---------------------------------------------------------------------------
# Generation options
# ---------------------------------------------------------------------------

# camelCase (plugin) and snake_case spellings accepted for each option
_OPTION_KEYS: dict[str, tuple[str, ...]] = {
    "temperature": ("temperature",),
    "top_p": ("topP", "top_p"),
    "presence_penalty": ("presencePenalty", "presence_penalty"),
    "frequency_penalty": ("frequencyPenalty", "frequency_penalty"),
    "max_tokens": ("maxTokens", "max_tokens"),
    "response_format": ("responseFormat", "response_format"),
}


def _pick(options: Mapping[str, Any], name: str) -> Any:
    for key in _OPTION_KEYS[name]:
        value = options.get(key)
        if value is not None:
            return value
    return None


def _as_number(name: str, value: Any, cast: type) -> Any:
    if isinstance(value, bool):
        raise InvalidRequestError(f"options.{name} must be a number.")
    try:
        if not math.isfinite(float(value)):
            raise ValueError(value)
        return cast(value)
    except (TypeError, ValueError, OverflowError):
        raise InvalidRequestError(f"options.{name} must be a number.")


@dataclass(frozen=True)
class GenerationOptions:
    """Decoded sampling options.

    ``max_tokens`` is None when the caller did not ask for a ceiling and the
    backend has no default of its own.
    """

    temperature: float = 0.7
    top_p: float = 1.0
    presence_penalty: float = 0.0
    frequency_penalty: float = 0.0
    max_tokens: int | None = None
    response_format: str | None = None

    @property
    def wants_json(self) -> bool:
        return self.response_format == "json"

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any] | None, default_max_tokens: int | None = None) -> GenerationOptions:
        options = options or {}
        values: dict[str, Any] = {}
        for name in ("temperature", "top_p", "presence_penalty", "frequency_penalty"):
            raw = _pick(options, name)
            if raw is not None:
                values[name] = _as_number(name, raw, float)

        raw_max = _pick(options, "max_tokens")
        values["max_tokens"] = _as_number("max_tokens", raw_max, int) if raw_max is not None else default_max_tokens

        fmt = _pick(options, "response_format")
        if fmt is not None:
            values["response_format"] = str(fmt)
        return cls(**values)


# ---------------------------------------------------------------------------
# Execution request / result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExecutionRequest:
    """Canonical unit of work handed to an execution backend."""

    provider: str
    messages: tuple[Message, ...]
    model: str | None = None
    options: GenerationOptions = field(default_factory=GenerationOptions)
    client_id: str | None = None
    task_type: str | None = None

    @property
    def prompt(self) -> str:
        return flatten_conversation(self.messages)


@dataclass
class ExecutionResult:
    """Raw backend output before parsing."""

    text: str
    model: str | None = None
    status_code: int | None = None  # Remote call
    exit_code: int | None = None  # Subprocess
    usage: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Admission
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BudgetEstimate:
    """Heuristic upper-bound projection computed before execution.

    ``estimated_cost_usd`` is the unrounded figure used for the ceiling
    check; callers see ``reported_cost_usd`` (6 decimal places).
    """

    input_tokens: int
    output_tokens: int
    estimated_total_tokens: int
    estimated_cost_usd: float | None = None

    @property
    def reported_cost_usd(self) -> float | None:
        if self.estimated_cost_usd is None:
            return None
        return round(self.estimated_cost_usd, 6)

    def to_dict(self) -> dict[str, Any]:
        return {
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "estimatedTotalTokens": self.estimated_total_tokens,
            "estimatedCostUsd": self.reported_cost_usd,
        }


# ---------------------------------------------------------------------------
# Response envelope
# ---------------------------------------------------------------------------


@dataclass
class ResponseEnvelope:
    content: str = ""
    payload: Any = None
    usage: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"content": self.content, "payload": self.payload, "usage": self.usage}
