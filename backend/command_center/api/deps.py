"""
FastAPI dependencies: the gateway client bound to the app-wide httpx.AsyncClient.
"""
from fastapi import HTTPException, Request, status

from command_center.services.gateway import GatewayClient


def get_gateway(request: Request) -> GatewayClient:
    """
    Return a GatewayClient over the AsyncClient opened in the app lifespan.
    Raises 503 if the app was started without one.
    """
    http = getattr(request.app.state, "gateway_http", None)
    if http is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Gateway client is not initialised",
        )
    return GatewayClient(http)
