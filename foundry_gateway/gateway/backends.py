"""Execution backends — one ``execute(request, timeout)`` contract.

Two variants:
  - RemoteCallBackend: single chat-completions call to an OpenAI-compatible API
  - SubprocessBackend: local CLI tool (see subprocess_backend.py)

Backends never retry: a failure is raised once and reported to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any

import httpx

from foundry_gateway.core.exceptions import (
    MisconfiguredServerError,
    UpstreamError,
    UpstreamTimeoutError,
)
from foundry_gateway.gateway.types import ExecutionRequest, ExecutionResult, ProviderKind

logger = logging.getLogger(__name__)

# Remote calls get this output ceiling when the caller does not set one
DEFAULT_REMOTE_MAX_TOKENS = 800


class BaseBackend(ABC):
    """Base class for all execution backends."""

    kind: ProviderKind
    default_max_tokens: int | None = None

    def __init__(self, provider: str):
        self.provider = provider

    @abstractmethod
    async def execute(self, request: ExecutionRequest, timeout: float) -> ExecutionResult:
        """Run the request to completion or raise a GatewayError.

        ``timeout`` (seconds) bounds the whole operation; when it elapses the
        in-flight work is aborted.
        """
        ...


# ---------------------------------------------------------------------------
# Remote call (OpenAI-compatible chat completions)
# ---------------------------------------------------------------------------


class RemoteCallBackend(BaseBackend):
    """Chat completions over HTTP."""

    kind = ProviderKind.REMOTE_CALL
    default_max_tokens = DEFAULT_REMOTE_MAX_TOKENS

    def __init__(
        self,
        provider: str,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        default_model: str = "gpt-4o-mini",
        api_key_setting: str = "OPENAI_API_KEY",
    ):
        super().__init__(provider)
        self.api_key = api_key
        self.api_url = f"{base_url.rstrip('/')}/chat/completions"
        self.default_model = default_model
        self.api_key_setting = api_key_setting

    def build_payload(self, request: ExecutionRequest, model: str) -> dict[str, Any]:
        options = request.options
        max_tokens = options.max_tokens if options.max_tokens is not None else self.default_max_tokens
        payload: dict[str, Any] = {
            "model": model,
            "messages": [m.to_dict() for m in request.messages],
            "temperature": options.temperature,
            "max_tokens": max_tokens,
            "top_p": options.top_p,
            "presence_penalty": options.presence_penalty,
            "frequency_penalty": options.frequency_penalty,
        }
        if options.wants_json:
            payload["response_format"] = {"type": "json_object"}
        if request.client_id:
            payload["user"] = request.client_id
        if request.task_type:
            payload["metadata"] = {"taskType": request.task_type}
        return payload

    async def execute(self, request: ExecutionRequest, timeout: float) -> ExecutionResult:
        if not self.api_key:
            raise MisconfiguredServerError(f"Missing {self.api_key_setting} on server.")

        model = request.model or self.default_model
        payload = self.build_payload(request, model)
        start = time.monotonic()

        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                resp = await asyncio.wait_for(
                    client.post(
                        self.api_url,
                        json=payload,
                        headers={
                            "Authorization": f"Bearer {self.api_key}",
                            "Content-Type": "application/json",
                        },
                    ),
                    timeout,
                )
        except (httpx.TimeoutException, asyncio.TimeoutError):
            logger.warning("%s call timed out after %.1fs", self.provider, timeout)
            raise UpstreamTimeoutError(f"Upstream request timed out after {timeout:g}s.")
        except httpx.HTTPError as e:
            logger.warning("%s call failed: %s", self.provider, e)
            raise UpstreamError(f"Upstream request failed: {e}")

        elapsed_ms = int((time.monotonic() - start) * 1000)

        if resp.is_error:
            logger.warning("%s returned HTTP %d in %dms", self.provider, resp.status_code, elapsed_ms)
            raise UpstreamError(resp.text or f"Upstream returned HTTP {resp.status_code}.", upstream_status=resp.status_code)

        try:
            data = resp.json()
        except ValueError:
            raise UpstreamError("Upstream returned a non-JSON body.", upstream_status=resp.status_code)
        if not isinstance(data, dict):
            raise UpstreamError("Upstream returned an unexpected body.", upstream_status=resp.status_code)

        logger.info("%s answered in %dms", self.provider, elapsed_ms)
        return ExecutionResult(
            text=_first_choice_content(data),
            model=data.get("model") or model,
            status_code=resp.status_code,
            usage=data.get("usage"),
        )


def _first_choice_content(data: dict[str, Any]) -> str:
    choices = data.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return ""
    message = choices[0].get("message") or {}
    content = message.get("content") if isinstance(message, dict) else None
    return content if isinstance(content, str) else ""
