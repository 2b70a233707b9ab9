"""Pydantic schemas for the gateway HTTP API.

Field types are kept loose where the gateway itself decides validity (prompt,
messages): malformed shapes are reported by the message normalizer with the
gateway's own error messages instead of a generic validation error.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class GenerateRequest(BaseModel):
    """Body of POST /v1/generate."""

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    provider: str | None = None
    model: str | None = None
    prompt: Any = None
    system: Any = None
    messages: Any = None
    options: dict[str, Any] = Field(default_factory=dict)
    task_type: str | None = Field(None, alias="taskType")
    client_id: str | None = Field(None, alias="clientId")


class CliRunRequest(BaseModel):
    """Body of POST /v1/cli/run."""

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    provider: str | None = None
    prompt: Any = None
    model: str | None = None
    options: dict[str, Any] = Field(default_factory=dict)
    client_id: str | None = Field(None, alias="clientId")


class PayloadRequest(BaseModel):
    """Body of POST /v1/payload."""

    paths: list[str] | None = None
    type: str | None = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str = "ok"


class ProvidersResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    providers: list[str]
    default_provider: str = Field(alias="defaultProvider")
    default_model: str = Field(alias="defaultModel")


class CliUsage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    estimated_cost_usd: float | None = Field(None, alias="estimatedCostUsd")


class CliRunResponse(BaseModel):
    content: str
    payload: Any = None
    usage: CliUsage


class GenerateResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    content: str
    payload: Any = None
    usage: dict[str, Any] | None = None
    model: str | None = None
