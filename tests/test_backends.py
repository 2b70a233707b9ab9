"""Tests for the remote-call backend (mocked HTTP) and the provider registry."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from foundry_gateway.core.exceptions import (
    InvalidRequestError,
    MisconfiguredServerError,
    UpstreamError,
    UpstreamTimeoutError,
)
from foundry_gateway.gateway.backends import RemoteCallBackend
from foundry_gateway.gateway.registry import ProviderRegistry, build_registry
from foundry_gateway.gateway.subprocess_backend import SubprocessBackend
from foundry_gateway.gateway.types import ExecutionRequest, GenerationOptions, Message, ProviderKind

from tests.conftest import make_settings

API_URL = "https://llm.test/v1/chat/completions"


def _mock_client(mock_client_cls, post):
    mock_client = AsyncMock()
    mock_client.post = post
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=None)
    mock_client_cls.return_value = mock_client
    return mock_client


def _response(status: int, **kwargs) -> httpx.Response:
    return httpx.Response(status, request=httpx.Request("POST", API_URL), **kwargs)


def _request(**kwargs) -> ExecutionRequest:
    values = {
        "provider": "openai",
        "messages": (Message("system", "Be brief."), Message("user", "Name a sword.")),
    }
    values.update(kwargs)
    return ExecutionRequest(**values)


@pytest.fixture
def backend():
    return RemoteCallBackend(provider="openai", api_key="sk-test", base_url="https://llm.test/v1/", default_model="gpt-4o-mini")


# ==========================================================================
# Remote call
# ==========================================================================


class TestRemoteCallBackend:
    def test_payload_defaults(self, backend):
        payload = backend.build_payload(_request(), "gpt-4o-mini")
        assert payload == {
            "model": "gpt-4o-mini",
            "messages": [
                {"role": "system", "content": "Be brief."},
                {"role": "user", "content": "Name a sword."},
            ],
            "temperature": 0.7,
            "max_tokens": 800,
            "top_p": 1.0,
            "presence_penalty": 0.0,
            "frequency_penalty": 0.0,
        }

    def test_payload_options(self, backend):
        options = GenerationOptions.from_mapping(
            {"temperature": 0.2, "maxTokens": 64, "topP": 0.9, "presencePenalty": 0.5, "frequency_penalty": 0.1, "responseFormat": "json"}
        )
        payload = backend.build_payload(_request(options=options, client_id="gm-1", task_type="npc"), "gpt-4o")
        assert payload["temperature"] == 0.2
        assert payload["max_tokens"] == 64
        assert payload["top_p"] == 0.9
        assert payload["presence_penalty"] == 0.5
        assert payload["frequency_penalty"] == 0.1
        assert payload["response_format"] == {"type": "json_object"}
        assert payload["user"] == "gm-1"
        assert payload["metadata"] == {"taskType": "npc"}

    def test_invalid_option_type(self):
        with pytest.raises(InvalidRequestError, match="options.temperature"):
            GenerationOptions.from_mapping({"temperature": "hot"})

    @pytest.mark.parametrize("value", [float("inf"), float("nan"), 10**400, "Infinity"])
    def test_non_finite_option_rejected(self, value):
        with pytest.raises(InvalidRequestError, match="options.max_tokens"):
            GenerationOptions.from_mapping({"maxTokens": value})

    @pytest.mark.asyncio
    async def test_success(self, backend):
        data = {
            "model": "gpt-4o-mini-2024-07-18",
            "choices": [{"message": {"role": "assistant", "content": "Dawnbreaker"}}],
            "usage": {"prompt_tokens": 12, "completion_tokens": 3, "total_tokens": 15},
        }
        with patch("foundry_gateway.gateway.backends.httpx.AsyncClient") as mock_client_cls:
            client = _mock_client(mock_client_cls, AsyncMock(return_value=_response(200, json=data)))
            result = await backend.execute(_request(), timeout=5)

        assert result.text == "Dawnbreaker"
        assert result.model == "gpt-4o-mini-2024-07-18"
        assert result.usage["total_tokens"] == 15
        assert result.status_code == 200

        args, kwargs = client.post.call_args
        assert args[0] == API_URL
        assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
        assert kwargs["json"]["model"] == "gpt-4o-mini"

    @pytest.mark.asyncio
    async def test_missing_content_is_empty(self, backend):
        data = {"choices": [{"message": {"content": None}}]}
        with patch("foundry_gateway.gateway.backends.httpx.AsyncClient") as mock_client_cls:
            _mock_client(mock_client_cls, AsyncMock(return_value=_response(200, json=data)))
            result = await backend.execute(_request(model="gpt-4o"), timeout=5)
        assert result.text == ""
        assert result.model == "gpt-4o"
        assert result.usage is None

    @pytest.mark.asyncio
    async def test_upstream_status_error_carries_body(self, backend):
        body = json.dumps({"error": {"message": "Rate limit reached"}})
        with patch("foundry_gateway.gateway.backends.httpx.AsyncClient") as mock_client_cls:
            _mock_client(mock_client_cls, AsyncMock(return_value=_response(429, text=body)))
            with pytest.raises(UpstreamError) as exc_info:
                await backend.execute(_request(), timeout=5)
        assert exc_info.value.message == body
        assert exc_info.value.upstream_status == 429
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_httpx_timeout(self, backend):
        with patch("foundry_gateway.gateway.backends.httpx.AsyncClient") as mock_client_cls:
            _mock_client(mock_client_cls, AsyncMock(side_effect=httpx.ReadTimeout("timed out")))
            with pytest.raises(UpstreamTimeoutError):
                await backend.execute(_request(), timeout=5)

    @pytest.mark.asyncio
    async def test_deadline_cancels_slow_call(self, backend):
        async def slow_post(*args, **kwargs):
            await asyncio.sleep(10)

        with patch("foundry_gateway.gateway.backends.httpx.AsyncClient") as mock_client_cls:
            _mock_client(mock_client_cls, slow_post)
            with pytest.raises(UpstreamTimeoutError):
                await backend.execute(_request(), timeout=0.2)

    @pytest.mark.asyncio
    async def test_connection_error(self, backend):
        with patch("foundry_gateway.gateway.backends.httpx.AsyncClient") as mock_client_cls:
            _mock_client(mock_client_cls, AsyncMock(side_effect=httpx.ConnectError("refused")))
            with pytest.raises(UpstreamError, match="Upstream request failed"):
                await backend.execute(_request(), timeout=5)

    @pytest.mark.asyncio
    async def test_non_json_body(self, backend):
        with patch("foundry_gateway.gateway.backends.httpx.AsyncClient") as mock_client_cls:
            _mock_client(mock_client_cls, AsyncMock(return_value=_response(200, text="<html>")))
            with pytest.raises(UpstreamError, match="non-JSON"):
                await backend.execute(_request(), timeout=5)

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        backend = RemoteCallBackend(provider="openai", api_key="")
        with patch("foundry_gateway.gateway.backends.httpx.AsyncClient") as mock_client_cls:
            with pytest.raises(MisconfiguredServerError, match="OPENAI_API_KEY"):
                await backend.execute(_request(), timeout=5)
            mock_client_cls.assert_not_called()


# ==========================================================================
# Provider registry
# ==========================================================================


class TestProviderRegistry:
    def test_build_from_settings(self):
        registry = build_registry(make_settings(codex_args="exec --model {{model}}"))
        assert registry.names() == ["openai", "codex", "claude"]
        assert registry.default_provider == "openai"
        assert registry.names(ProviderKind.SUBPROCESS) == ["codex", "claude"]
        codex = registry.get("codex")
        assert isinstance(codex, SubprocessBackend)
        assert codex.args == ["exec", "--model", "{{model}}"]
        assert isinstance(registry.get("openai"), RemoteCallBackend)

    def test_unknown_provider(self):
        registry = build_registry(make_settings())
        with pytest.raises(InvalidRequestError, match="Unsupported provider: gemini."):
            registry.get("gemini")

    def test_kind_restriction(self):
        registry = build_registry(make_settings())
        with pytest.raises(InvalidRequestError):
            registry.get("openai", kind=ProviderKind.SUBPROCESS)
        assert registry.get("claude", kind=ProviderKind.SUBPROCESS).provider == "claude"
        assert registry.kind("openai") == ProviderKind.REMOTE_CALL
        assert "codex" in registry
        assert "gemini" not in registry

    def test_default_must_be_registered(self):
        with pytest.raises(ValueError):
            ProviderRegistry({}, default_provider="openai")
