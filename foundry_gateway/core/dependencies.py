from fastapi import Header, Request

from foundry_gateway.core.config import Settings
from foundry_gateway.core.security import PROXY_TOKEN_HEADER, RUNNER_TOKEN_HEADER, verify_shared_secret
from foundry_gateway.gateway.gateway import GatewayService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_gateway(request: Request) -> GatewayService:
    return request.app.state.gateway


async def require_proxy_token(
    request: Request,
    token: str | None = Header(None, alias=PROXY_TOKEN_HEADER),
) -> None:
    verify_shared_secret(get_settings(request).proxy_token, token, "PROXY_TOKEN")


async def require_runner_token(
    request: Request,
    token: str | None = Header(None, alias=RUNNER_TOKEN_HEADER),
) -> None:
    verify_shared_secret(get_settings(request).runner_token, token, "RUNNER_TOKEN")
