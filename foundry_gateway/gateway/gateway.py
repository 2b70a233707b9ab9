"""Gateway service — per-request orchestration.

Pipeline for every request:
  1. Rate gate (per client identity)
  2. Normalize the conversation and enforce MAX_PROMPT_CHARS
  3. Resolve the provider's backend
  4. Budget gate (token/cost estimate)
  5. Execute under the provider kind's deadline
  6. Parse output into the response envelope

Authentication runs before this, as a route dependency. A failure at any
step raises a GatewayError and nothing after it runs; there are no retries.

Usage:
    gateway = GatewayService.from_settings(settings)
    body = await gateway.generate(client_id="peer-1", prompt="Describe a tavern")
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from foundry_gateway.core.config import Settings
from foundry_gateway.core.exceptions import (
    BudgetExceededError,
    GatewayError,
    InvalidRequestError,
    RateLimitedError,
)
from foundry_gateway.core.logging import bind_log_context
from foundry_gateway.core.metrics import (
    ADMISSION_REJECTIONS,
    EXECUTION_DURATION,
    EXECUTIONS,
    EXECUTIONS_IN_FLIGHT,
)
from foundry_gateway.gateway.admission import AdmissionController, BudgetEstimator, RateLimiter
from foundry_gateway.gateway.backends import BaseBackend
from foundry_gateway.gateway.messages import normalize_messages
from foundry_gateway.gateway.output_parser import parse_output
from foundry_gateway.gateway.registry import ProviderRegistry, build_registry
from foundry_gateway.gateway.types import (
    BudgetEstimate,
    ExecutionRequest,
    ExecutionResult,
    GenerationOptions,
    Message,
    ProviderKind,
    flatten_conversation,
)

logger = logging.getLogger(__name__)


class GatewayService:
    """Main gateway orchestrator.

    Integrates:
      - AdmissionController: rate and budget gates
      - ProviderRegistry: backend selection by provider name
      - Output parser: envelope construction
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        admission: AdmissionController,
        max_prompt_chars: int = 8000,
        remote_timeout: float = 30.0,
        subprocess_timeout: float = 60.0,
        price_per_1k: Callable[[str], float] | None = None,
        default_model: str = "",
    ):
        self.registry = registry
        self.admission = admission
        self.max_prompt_chars = max_prompt_chars
        self.timeouts = {
            ProviderKind.REMOTE_CALL: remote_timeout,
            ProviderKind.SUBPROCESS: subprocess_timeout,
        }
        self._price_per_1k = price_per_1k or (lambda provider: 0.0)
        self.default_model = default_model

    @classmethod
    def from_settings(cls, config: Settings) -> GatewayService:
        admission = AdmissionController(
            rate_limiter=RateLimiter(
                max_requests=config.rate_limit_max,
                window_seconds=config.rate_limit_window_ms / 1000,
            ),
            budget=BudgetEstimator(
                chars_per_token=config.token_chars_per_token,
                max_tokens=config.max_tokens,
                max_cost_usd=config.max_cost_usd,
            ),
        )
        return cls(
            registry=build_registry(config),
            admission=admission,
            max_prompt_chars=config.max_prompt_chars,
            remote_timeout=config.request_timeout_ms / 1000,
            subprocess_timeout=config.runner_timeout_ms / 1000,
            price_per_1k=config.cost_per_1k_tokens,
            default_model=config.default_model,
        )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def generate(
        self,
        client_id: str,
        provider: str | None = None,
        model: str | None = None,
        prompt: Any = None,
        system: Any = None,
        messages: Any = None,
        options: dict[str, Any] | None = None,
        task_type: str | None = None,
        caller_id: str | None = None,
    ) -> dict[str, Any]:
        """Chat generation against any registered provider."""
        bind_log_context(client_id=client_id)
        self._admit_rate(client_id)

        conversation = normalize_messages(messages=messages, prompt=prompt, system=system)
        prompt_text = self._check_length(conversation)

        provider = provider or self.registry.default_provider
        backend = self.registry.get(provider)
        bind_log_context(provider=provider)
        decoded = GenerationOptions.from_mapping(options, default_max_tokens=backend.default_max_tokens)
        estimate = self._admit_budget(provider, prompt_text, decoded.max_tokens)

        request = ExecutionRequest(
            provider=provider,
            messages=conversation,
            model=model or (self.default_model if backend.kind == ProviderKind.REMOTE_CALL else None),
            options=decoded,
            client_id=caller_id,
            task_type=task_type,
        )
        result = await self._execute(backend, request)

        usage = result.usage if result.usage is not None else self._estimate_usage(backend, estimate)
        envelope = parse_output(result.text, usage=usage)
        body = envelope.to_dict()
        body["model"] = result.model or request.model
        return body

    async def run_cli(
        self,
        client_id: str,
        provider: str | None,
        prompt: Any,
        model: str | None = None,
        options: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Single-prompt run of a local CLI provider."""
        bind_log_context(client_id=client_id)
        self._admit_rate(client_id)

        if not prompt or not isinstance(prompt, str):
            raise InvalidRequestError("prompt is required.")
        conversation = normalize_messages(prompt=prompt)
        prompt_text = self._check_length(conversation)

        if not provider:
            raise InvalidRequestError("Unsupported provider.")
        backend = self.registry.get(provider, kind=ProviderKind.SUBPROCESS)
        bind_log_context(provider=provider)
        decoded = GenerationOptions.from_mapping(options)
        estimate = self._admit_budget(provider, prompt_text, decoded.max_tokens)

        request = ExecutionRequest(provider=provider, messages=conversation, model=model or None, options=decoded)
        result = await self._execute(backend, request)

        envelope = parse_output(result.text, usage={"estimatedCostUsd": estimate.reported_cost_usd})
        return envelope.to_dict()

    def providers_info(self) -> dict[str, Any]:
        return {
            "providers": self.registry.names(),
            "defaultProvider": self.registry.default_provider,
            "defaultModel": self.default_model,
        }

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _admit_rate(self, client_id: str) -> None:
        try:
            self.admission.admit_rate(client_id)
        except RateLimitedError:
            ADMISSION_REJECTIONS.labels(reason="rate").inc()
            raise

    def _check_length(self, conversation: tuple[Message, ...]) -> str:
        prompt_text = flatten_conversation(conversation)
        if len(prompt_text) > self.max_prompt_chars:
            raise InvalidRequestError("prompt exceeds MAX_PROMPT_CHARS.")
        return prompt_text

    def _admit_budget(self, provider: str, prompt_text: str, max_tokens: int | None) -> BudgetEstimate:
        try:
            return self.admission.admit_budget(len(prompt_text), max_tokens, self._price_per_1k(provider))
        except BudgetExceededError as e:
            ADMISSION_REJECTIONS.labels(reason=e.kind).inc()
            logger.info("Budget rejected %s request: %s", provider, e.estimate)
            raise

    async def _execute(self, backend: BaseBackend, request: ExecutionRequest) -> ExecutionResult:
        timeout = self.timeouts[backend.kind]
        start = time.monotonic()
        outcome = "cancelled"
        in_flight = EXECUTIONS_IN_FLIGHT.labels(provider=request.provider)
        in_flight.inc()
        try:
            result = await backend.execute(request, timeout=timeout)
            outcome = "success"
            return result
        except GatewayError as e:
            outcome = type(e).__name__
            raise
        except Exception:
            outcome = "error"
            raise
        finally:
            in_flight.dec()
            EXECUTIONS.labels(provider=request.provider, outcome=outcome).inc()
            EXECUTION_DURATION.labels(provider=request.provider).observe(time.monotonic() - start)

    @staticmethod
    def _estimate_usage(backend: BaseBackend, estimate: BudgetEstimate) -> dict[str, Any] | None:
        if backend.kind == ProviderKind.SUBPROCESS:
            return {"estimatedCostUsd": estimate.reported_cost_usd}
        return None
