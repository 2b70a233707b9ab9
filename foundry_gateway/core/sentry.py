"""Optional Sentry error reporting, enabled by SENTRY_DSN.

Events never carry request bodies (prompts) or the shared-secret headers.
"""

import logging
from typing import Any

from foundry_gateway import __version__
from foundry_gateway.core.config import Settings, settings
from foundry_gateway.core.security import PROXY_TOKEN_HEADER, RUNNER_TOKEN_HEADER

logger = logging.getLogger(__name__)

_SECRET_HEADERS = {PROXY_TOKEN_HEADER.lower(), RUNNER_TOKEN_HEADER.lower(), "authorization"}


def scrub_event(event: dict[str, Any], hint: dict[str, Any] | None = None) -> dict[str, Any]:
    """``before_send`` hook: drop the request body and secret headers."""
    request = event.get("request")
    if isinstance(request, dict):
        request.pop("data", None)
        headers = request.get("headers")
        if isinstance(headers, dict):
            request["headers"] = {k: v for k, v in headers.items() if k.lower() not in _SECRET_HEADERS}
    return event


def init_sentry(config: Settings | None = None) -> bool:
    """Start the Sentry SDK when a DSN is configured. Returns True when enabled."""
    config = config or settings
    if not config.sentry_dsn:
        logger.debug("SENTRY_DSN not set, error reporting disabled")
        return False

    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration

    sentry_sdk.init(
        dsn=config.sentry_dsn,
        environment=config.app_env,
        release=f"foundry-gateway@{__version__}",
        traces_sample_rate=0.1 if config.app_env == "production" else 1.0,
        send_default_pii=False,
        before_send=scrub_event,
        integrations=[FastApiIntegration(transaction_style="endpoint")],
    )
    logger.info("Sentry enabled (env=%s)", config.app_env)
    return True
