import secrets

from foundry_gateway.core.exceptions import MisconfiguredServerError, UnauthorizedError

PROXY_TOKEN_HEADER = "X-Foundry-Proxy-Token"
RUNNER_TOKEN_HEADER = "X-Foundry-Runner-Token"


def verify_shared_secret(expected: str, provided: str | None, setting_name: str) -> None:
    """Check a shared-secret header value against the configured secret.

    Fails closed: an unset secret rejects every request with
    MisconfiguredServerError rather than letting it through.
    """
    if not expected:
        raise MisconfiguredServerError(f"Missing {setting_name} on server.")
    if not provided or not secrets.compare_digest(provided.encode(), expected.encode()):
        raise UnauthorizedError()
