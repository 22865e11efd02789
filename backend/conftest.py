"""
Shared pytest setup: an in-memory SQLite database created by the app lifespan,
and a TestClient whose gateway is an httpx.MockTransport.
"""
import os

# Must be set before command_center.core.* is imported.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DB_CREATE_TABLES"] = "true"

from typing import Callable

import httpx
import pytest
from fastapi.testclient import TestClient

from command_center.api.deps import get_gateway
from command_center.main import app
from command_center.services.gateway import GatewayClient

GATEWAY_TOKEN = "test-token"


@pytest.fixture
def api():
    """
    Factory: api(handler) -> TestClient with the gateway routed to handler.
    Each client gets a fresh database (created in lifespan, dropped on dispose).
    """
    opened: list[TestClient] = []

    def _make(handler: Callable[[httpx.Request], httpx.Response]) -> TestClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://gateway.test")
        app.dependency_overrides[get_gateway] = lambda: GatewayClient(http, token=GATEWAY_TOKEN)
        client = TestClient(app, raise_server_exceptions=False)
        client.__enter__()
        opened.append(client)
        return client

    yield _make
    for client in opened:
        client.__exit__(None, None, None)
    app.dependency_overrides.clear()
