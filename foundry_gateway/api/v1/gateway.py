"""API endpoints for the execution gateway.

Provides:
  - GET  /health — liveness, no auth
  - GET  /v1/providers — registered providers and defaults, no auth
  - POST /v1/generate — chat generation (proxy token)
  - POST /v1/cli/run — local CLI run (runner token)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from slowapi.util import get_remote_address

from foundry_gateway.core.dependencies import get_gateway, require_proxy_token, require_runner_token
from foundry_gateway.gateway.gateway import GatewayService
from foundry_gateway.schemas.gateway import (
    CliRunRequest,
    CliRunResponse,
    GenerateRequest,
    GenerateResponse,
    HealthResponse,
    ProvidersResponse,
)

router = APIRouter(tags=["gateway"])


def client_identity(request: Request, client_id: str | None) -> str:
    """Rate-limit bucket key: caller-supplied id, else the peer address."""
    if client_id and client_id.strip():
        return client_id.strip()
    return get_remote_address(request)


@router.get("/health", response_model=HealthResponse)
async def health():
    return {"status": "ok"}


@router.get("/v1/providers", response_model=ProvidersResponse)
async def list_providers(gateway: GatewayService = Depends(get_gateway)):
    return gateway.providers_info()


@router.post("/v1/generate", response_model=GenerateResponse, dependencies=[Depends(require_proxy_token)])
async def generate(
    body: GenerateRequest,
    request: Request,
    gateway: GatewayService = Depends(get_gateway),
):
    """Generate a chat completion.

    Accepts either ``messages`` or ``prompt`` (+ optional ``system``).
    """
    return await gateway.generate(
        client_id=client_identity(request, body.client_id),
        provider=body.provider,
        model=body.model,
        prompt=body.prompt,
        system=body.system,
        messages=body.messages,
        options=body.options,
        task_type=body.task_type,
        caller_id=body.client_id,
    )


@router.post("/v1/cli/run", response_model=CliRunResponse, dependencies=[Depends(require_runner_token)])
async def run_cli(
    body: CliRunRequest,
    request: Request,
    gateway: GatewayService = Depends(get_gateway),
):
    """Run a prompt through a local CLI provider and parse its output."""
    return await gateway.run_cli(
        client_id=client_identity(request, body.client_id),
        provider=body.provider,
        prompt=body.prompt,
        model=body.model,
        options=body.options,
    )
