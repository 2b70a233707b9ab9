"""Gateway error taxonomy.

Every failure a request can hit is raised as a ``GatewayError`` subclass and
rendered once, by the application-level handler, as ``{"error": ...}`` plus
any diagnostic fields the subclass carries.
"""

from __future__ import annotations

from typing import Any


class GatewayError(Exception):
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def extra(self) -> dict[str, Any]:
        """Diagnostic fields merged into the JSON error body."""
        return {}

    def headers(self) -> dict[str, str] | None:
        return None

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, **self.extra()}


class UnauthorizedError(GatewayError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized."):
        super().__init__(message)


class MisconfiguredServerError(GatewayError):
    status_code = 500


class InvalidRequestError(GatewayError):
    status_code = 400


class RateLimitedError(GatewayError):
    status_code = 429

    def __init__(self, retry_after_seconds: int, message: str = "Rate limit exceeded."):
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds

    def extra(self) -> dict[str, Any]:
        return {"retryAfterSeconds": self.retry_after_seconds}

    def headers(self) -> dict[str, str]:
        return {"Retry-After": str(self.retry_after_seconds)}


class BudgetExceededError(GatewayError):
    status_code = 400

    def __init__(self, kind: str, message: str, estimate: dict[str, Any]):
        super().__init__(message)
        self.kind = kind
        self.estimate = estimate

    def extra(self) -> dict[str, Any]:
        return {"kind": self.kind, **self.estimate}


class UpstreamTimeoutError(GatewayError):
    status_code = 504


class UpstreamError(GatewayError):
    status_code = 500

    def __init__(self, message: str, upstream_status: int | None = None):
        super().__init__(message)
        self.upstream_status = upstream_status

    def extra(self) -> dict[str, Any]:
        if self.upstream_status is None:
            return {}
        return {"upstreamStatus": self.upstream_status}


class ExecutionTimeoutError(GatewayError):
    status_code = 504


class ExecutionFailedError(GatewayError):
    status_code = 500

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.exit_code = exit_code


class OutputExceededError(GatewayError):
    status_code = 500
