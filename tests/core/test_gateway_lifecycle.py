import pytest
import logging
from asgi_lifespan import LifespanManager
from clinic_gateway.core.gateway_router import GatewayRouter, build_http_client
from tests.fixtures.mock_backends import make_settings


@pytest.mark.anyio
async def test_gateway_lifecycle_runs_without_error():
    app = GatewayRouter()

    # This ensures both startup and shutdown complete without raising exceptions
    async with LifespanManager(app):
        pass

    assert app.client.is_closed


@pytest.mark.anyio
async def test_gateway_graceful_shutdown_logs(caplog):
    caplog.set_level(logging.INFO)

    app = GatewayRouter(make_settings(clinic=None))

    async with LifespanManager(app):
        pass

    assert "clinic: Not Configured" in caplog.text
    assert "patients: http://patients.local" in caplog.text
    assert "[gateway] Shutdown complete. All resources closed." in caplog.text


@pytest.mark.anyio
async def test_default_client_does_not_add_encoding_or_agent():
    client = build_http_client(make_settings(upstream_timeout=2.0))
    try:
        assert "accept-encoding" not in client.headers
        assert "user-agent" not in client.headers
        assert client.timeout.read == 2.0
    finally:
        await client.aclose()
