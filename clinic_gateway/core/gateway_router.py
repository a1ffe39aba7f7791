import asyncio
import time
import logging
import httpx
from typing import Callable, Optional
from starlette.types import Scope, Receive, Send
from starlette.responses import JSONResponse, PlainTextResponse
from clinic_gateway.config.settings import GatewaySettings, SERVICE_ENV_VARS
from clinic_gateway.core.auth_gate import AuthGate, IdentityClaims
from clinic_gateway.core.disconnect import cancel_on_disconnect
from clinic_gateway.core.errors import ClientDisconnected, ProxyError, RouteNotFound
from clinic_gateway.core.forwarder import Forwarder, ProxyRequest
from clinic_gateway.core.metrics import REQUEST_COUNT, REQUEST_DURATION, ACTIVE_REQUESTS
from clinic_gateway.core.responses import ResponseTracker, classify, error_response
from clinic_gateway.core.routing_table import RouteBinding, RouteTable


logger = logging.getLogger(__name__)

HEALTH_PAYLOAD = {"status": "UP", "message": "Gateway is healthy"}


def build_http_client(settings: GatewaySettings) -> httpx.AsyncClient:
    client = httpx.AsyncClient(timeout=settings.upstream_timeout)
    # only forward what the caller actually sent
    for name in ("accept-encoding", "user-agent"):
        client.headers.pop(name, None)
    return client


class GatewayRouter:
    def __init__(
        self,
        settings: Optional[GatewaySettings] = None,
        route_table: Optional[RouteTable] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or GatewaySettings()
        if route_table is None:
            route_table = RouteTable.from_settings(self.settings)
        self.route_table = route_table
        self.client = client or build_http_client(self.settings)
        self.auth_gate = AuthGate(
            self.settings.services.auth,
            self.client,
            timeout=self.settings.auth_timeout,
        )
        self.forwarder = Forwarder(
            self.client,
            timeout=self.settings.upstream_timeout,
            log_rewrites=not self.settings.is_production,
        )
        self.expose_errors = not self.settings.is_production
        self.mount_path = self.settings.mount_path.rstrip("/")
        self.health_path = f"{self.mount_path}/health"

        self.cleanup_callbacks: list[Callable] = []
        self.add_cleanup_callback(self.client.aclose)

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] == "lifespan":
            await self._handle_lifespan(scope, receive, send)
            return

        if scope["type"] != "http":
            await PlainTextResponse("Unsupported", status_code=400)(scope, receive, send)
            return

        tracker = ResponseTracker(send)
        try:
            await self._handle_http(scope, receive, tracker)
        except ClientDisconnected:
            logger.info(f"Client went away: {scope['method']} {scope['path']}")
        except Exception as exc:
            await self._handle_error(exc, scope, receive, tracker)

    async def _handle_http(self, scope: Scope, receive: Receive, send: Send):
        path = scope["path"]
        method = scope["method"]

        if path == self.health_path and method == "GET":
            await JSONResponse(HEALTH_PAYLOAD)(scope, receive, send)
            return

        relative = self._strip_mount(path)
        found = self.route_table.match(relative) if relative is not None else None
        if found is None:
            logger.warning(f"No route match for {method} {path}")
            raise RouteNotFound()

        binding, suffix = found
        body = await self._read_body(receive)
        request = ProxyRequest.from_scope(scope, path, body)

        ACTIVE_REQUESTS.inc()
        start = time.time()
        try:
            backend_response = await cancel_on_disconnect(
                receive, self._authorize_and_forward(request, binding, suffix)
            )
        except ProxyError as e:
            REQUEST_COUNT.labels(method=method, route=binding.match_prefix,
                                 status=str(e.status_code)).inc()
            raise
        finally:
            ACTIVE_REQUESTS.dec()
            REQUEST_DURATION.labels(route=binding.match_prefix).observe(time.time() - start)

        REQUEST_COUNT.labels(method=method, route=binding.match_prefix,
                             status=str(backend_response.status_code)).inc()
        logger.info(f"Backend {binding.target.name} answered {method} {path} "
                    f"with {backend_response.status_code}")
        try:
            await self.forwarder.relay(backend_response, scope, receive, send)
        finally:
            await backend_response.aclose()

    async def _authorize_and_forward(
        self,
        request: ProxyRequest,
        binding: RouteBinding,
        suffix: str,
    ) -> httpx.Response:
        claims: Optional[IdentityClaims] = None
        if binding.auth_required:
            claims = await self.auth_gate.authenticate(request.headers)
        return await self.forwarder.forward(request, binding, suffix, claims)

    def _strip_mount(self, path: str) -> Optional[str]:
        if not self.mount_path:
            return path
        if path.startswith(self.mount_path + "/"):
            return path[len(self.mount_path):]
        return None

    async def _read_body(self, receive: Receive) -> bytes:
        body = b""
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                raise ClientDisconnected()
            body += message.get("body", b"")
            more_body = message.get("more_body", False)
        return body

    async def _handle_error(self, exc: Exception, scope: Scope, receive: Receive, send: ResponseTracker):
        error = classify(exc)
        if error is exc:
            logger.warning(f"{error.kind} for {scope['method']} {scope['path']}: {error.message}")
        else:
            logger.exception(f"Gateway global error for {scope['method']} {scope['path']}")

        if send.started:
            logger.error(f"Response already started for {scope['path']}, dropping {error.kind}")
            return
        await error_response(error, self.expose_errors)(scope, receive, send)

    def add_cleanup_callback(self, cb: Callable) -> None:
        self.cleanup_callbacks.append(cb)

    def _log_service_targets(self) -> None:
        logger.info(f"API Gateway mounted at {self.mount_path or '/'}")
        logger.info("Service Targets:")
        for name in SERVICE_ENV_VARS:
            logger.info(f"  {name}: {self.settings.services.get(name) or 'Not Configured'}")

    async def _handle_lifespan(self, scope: Scope, receive: Receive, send: Send):
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                self._log_service_targets()
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                for cb in self.cleanup_callbacks:
                    result = cb()
                    if asyncio.iscoroutine(result): await result
                logger.info("[gateway] Shutdown complete. All resources closed.")
                await send({"type": "lifespan.shutdown.complete"})
                return
