from typing import Optional
import httpx
from starlette.types import ASGIApp
from clinic_gateway.config.settings import GatewaySettings
from clinic_gateway.core.admin_router import AdminRouter
from clinic_gateway.core.gateway_router import GatewayRouter, build_http_client
from clinic_gateway.core.mount_admin_first import MountAdminFirst
from clinic_gateway.core.routing_table import RouteTable
from clinic_gateway.core.trace import TraceMiddleware


def build_gateway(
    settings: GatewaySettings,
    client: Optional[httpx.AsyncClient] = None,
) -> ASGIApp:
    route_table = RouteTable.from_settings(settings)
    core_gateway = GatewayRouter(
        settings,
        route_table=route_table,
        client=client or build_http_client(settings),
    )
    gateway_app = TraceMiddleware(core_gateway)

    # admin gets direct access to the unwrapped GatewayRouter instance
    admin_app = AdminRouter(core_gateway)
    return MountAdminFirst(admin_app, gateway_app)
