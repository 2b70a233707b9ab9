"""Admission Controller — per-client rate limiting and budget estimation.

Two gates, evaluated before any expensive work starts:
  - Rate gate: fixed-window request counter per client identity
  - Budget gate: heuristic token/cost estimate checked against ceilings

Bucket updates are atomic under a single lock, so two concurrent requests
can never both take the last slot of a window.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from foundry_gateway.core.exceptions import BudgetExceededError, RateLimitedError
from foundry_gateway.gateway.types import BudgetEstimate

logger = logging.getLogger(__name__)


@dataclass
class RateBucket:
    """Request counter for one client within the current window."""

    count: int
    window_reset_at: float  # clock() seconds


class RateLimiter:
    """Fixed-window rate limiter keyed by client identity.

    Usage:
        limiter = RateLimiter(max_requests=30, window_seconds=60)
        limiter.check("client-1")  # raises RateLimitedError when over the limit

    Expired buckets are swept at most once per window so the map only holds
    clients seen in the last window.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._buckets: dict[str, RateBucket] = {}
        self._lock = threading.Lock()
        self._next_sweep_at = 0.0

    @property
    def enabled(self) -> bool:
        return self.max_requests > 0 and self.window_seconds > 0

    def check(self, client_id: str) -> None:
        """Admit one request for the client or raise RateLimitedError."""
        if not self.enabled:
            return

        with self._lock:
            now = self._clock()
            self._maybe_sweep(now)

            bucket = self._buckets.get(client_id)
            if bucket is None or now >= bucket.window_reset_at:
                self._buckets[client_id] = RateBucket(count=1, window_reset_at=now + self.window_seconds)
                return

            if bucket.count < self.max_requests:
                bucket.count += 1
                return

            retry_after = max(1, math.ceil(bucket.window_reset_at - now))

        logger.info("Rate limit hit for client %s (retry in %ds)", client_id, retry_after)
        raise RateLimitedError(retry_after_seconds=retry_after)

    def _maybe_sweep(self, now: float) -> None:
        if now < self._next_sweep_at:
            return
        expired = [key for key, bucket in self._buckets.items() if now >= bucket.window_reset_at]
        for key in expired:
            del self._buckets[key]
        if expired:
            logger.debug("Evicted %d expired rate buckets", len(expired))
        self._next_sweep_at = now + self.window_seconds

    def get_bucket(self, client_id: str) -> RateBucket | None:
        with self._lock:
            bucket = self._buckets.get(client_id)
            return RateBucket(bucket.count, bucket.window_reset_at) if bucket else None

    def get_stats(self) -> dict:
        with self._lock:
            return {
                "enabled": self.enabled,
                "max_requests": self.max_requests,
                "window_seconds": self.window_seconds,
                "tracked_clients": len(self._buckets),
            }


class BudgetEstimator:
    """Token/cost budget gate.

    Estimates are coarse: input tokens are derived from the
    character count, output tokens from the requested ceiling.
    """

    def __init__(
        self,
        chars_per_token: float = 4,
        max_tokens: int = 0,
        max_cost_usd: float = 0.0,
    ):
        self.chars_per_token = chars_per_token
        self.max_tokens = max_tokens
        self.max_cost_usd = max_cost_usd

    def estimate(self, total_chars: int, max_output_tokens: int | None, price_per_1k: float = 0.0) -> BudgetEstimate:
        input_tokens = math.ceil(total_chars / self.chars_per_token)
        output_tokens = max(0, max_output_tokens or 0)
        total = input_tokens + output_tokens
        cost = None
        if price_per_1k > 0:
            cost = total / 1000 * price_per_1k
        return BudgetEstimate(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            estimated_total_tokens=total,
            estimated_cost_usd=cost,
        )

    def check(self, total_chars: int, max_output_tokens: int | None, price_per_1k: float = 0.0) -> BudgetEstimate:
        """Return the estimate, or raise BudgetExceededError when over a ceiling."""
        estimate = self.estimate(total_chars, max_output_tokens, price_per_1k)

        if self.max_tokens > 0 and estimate.estimated_total_tokens > self.max_tokens:
            raise BudgetExceededError(
                kind="tokens",
                message="Estimated tokens exceed MAX_TOKENS.",
                estimate=estimate.to_dict(),
            )

        if self.max_cost_usd > 0 and estimate.estimated_cost_usd is not None:
            if estimate.estimated_cost_usd > self.max_cost_usd:
                raise BudgetExceededError(
                    kind="cost",
                    message="Estimated cost exceeds MAX_COST_USD.",
                    estimate=estimate.to_dict(),
                )

        return estimate


class AdmissionController:
    """Both gates behind one object, injected into the gateway service."""

    def __init__(self, rate_limiter: RateLimiter, budget: BudgetEstimator):
        self.rate_limiter = rate_limiter
        self.budget = budget

    def admit_rate(self, client_id: str) -> None:
        self.rate_limiter.check(client_id)

    def admit_budget(self, total_chars: int, max_output_tokens: int | None, price_per_1k: float = 0.0) -> BudgetEstimate:
        return self.budget.check(total_chars, max_output_tokens, price_per_1k)
