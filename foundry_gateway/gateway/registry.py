"""Provider registry — maps provider names to execution backends."""

from __future__ import annotations

import logging

from foundry_gateway.core.config import CLI_PROVIDERS, Settings
from foundry_gateway.core.exceptions import InvalidRequestError
from foundry_gateway.gateway.backends import BaseBackend, RemoteCallBackend
from foundry_gateway.gateway.subprocess_backend import SubprocessBackend, parse_args
from foundry_gateway.gateway.types import ProviderKind

logger = logging.getLogger(__name__)


class ProviderRegistry:
    def __init__(self, backends: dict[str, BaseBackend], default_provider: str):
        if default_provider not in backends:
            raise ValueError(f"Default provider {default_provider!r} is not registered")
        self._backends = dict(backends)
        self.default_provider = default_provider

    def names(self, kind: ProviderKind | None = None) -> list[str]:
        return [name for name, backend in self._backends.items() if kind is None or backend.kind == kind]

    def get(self, name: str, kind: ProviderKind | None = None) -> BaseBackend:
        """Look up a backend, optionally restricted to one kind."""
        backend = self._backends.get(name)
        if backend is None or (kind is not None and backend.kind != kind):
            raise InvalidRequestError(f"Unsupported provider: {name}.")
        return backend

    def kind(self, name: str) -> ProviderKind:
        return self.get(name).kind

    def __contains__(self, name: str) -> bool:
        return name in self._backends


def build_registry(config: Settings) -> ProviderRegistry:
    """Create the hosted-API provider plus one subprocess provider per CLI tool."""
    backends: dict[str, BaseBackend] = {
        "openai": RemoteCallBackend(
            provider="openai",
            api_key=config.openai_api_key,
            base_url=config.openai_base_url,
            default_model=config.default_model,
        ),
    }
    for provider in CLI_PROVIDERS:
        backends[provider] = SubprocessBackend(
            provider=provider,
            command=getattr(config, f"{provider}_command"),
            args=parse_args(getattr(config, f"{provider}_args")),
            max_output_bytes=config.max_output_bytes,
        )

    logger.debug("Registered providers: %s", ", ".join(backends))
    return ProviderRegistry(backends, default_provider="openai")
