"""
Gateway API: reachability check for the settings panel and status badge.
"""
from typing import Annotated

from fastapi import APIRouter, Depends

from command_center.api.deps import get_gateway
from command_center.services.gateway import GatewayClient

router = APIRouter(prefix="/gateway", tags=["gateway"])


@router.get("/status")
async def gateway_status(gateway: Annotated[GatewayClient, Depends(get_gateway)]) -> dict:
    """Ping the gateway with a one-token request. Returns {ok, latencyMs}."""
    return await gateway.ping()
