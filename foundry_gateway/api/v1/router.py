from fastapi import APIRouter

from foundry_gateway.api.v1.gateway import router as gateway_router
from foundry_gateway.api.v1.vault import router as vault_router

api_router = APIRouter()
api_router.include_router(gateway_router)
api_router.include_router(vault_router)
