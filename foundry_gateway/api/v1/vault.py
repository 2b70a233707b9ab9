from fastapi import APIRouter, Depends, Request

from foundry_gateway.core.dependencies import require_runner_token
from foundry_gateway.schemas.gateway import PayloadRequest

router = APIRouter(prefix="/v1", tags=["vault"])


@router.post("/payload", dependencies=[Depends(require_runner_token)])
def load_payload(body: PayloadRequest, request: Request):
    """Import payload built from vault notes (optionally a subset / one type)."""
    loader = request.app.state.vault_loader
    return loader.load_payload(paths=body.paths or None, filter_type=body.type)
