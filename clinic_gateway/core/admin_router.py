from starlette.types import Scope, Receive, Send
from starlette.responses import PlainTextResponse, JSONResponse, Response
from clinic_gateway.core.metrics import render_prometheus_metrics
from clinic_gateway.core.gateway_router import GatewayRouter


class AdminRouter:
    def __init__(self, router: GatewayRouter) -> None:
        self.router = router

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        path = scope.get("path", "")
        if path == "/__health":
            await self.health(scope, receive, send)
        elif path == "/__routes":
            await self.routes(scope, receive, send)
        elif path == "/__metrics":
            await self.metrics(scope, receive, send)
        else:
            await PlainTextResponse("Not Found", status_code=404)(scope, receive, send)

    async def health(self, scope: Scope, receive: Receive, send: Send) -> None:
        await PlainTextResponse("OK")(scope, receive, send)

    async def routes(self, scope: Scope, receive: Receive, send: Send) -> None:
        data = {
            "mount_path": self.router.mount_path or "/",
            "routes": self.router.route_table.describe(),
        }
        await JSONResponse(data)(scope, receive, send)

    async def metrics(self, scope: Scope, receive: Receive, send: Send) -> None:
        data, content_type = render_prometheus_metrics()
        await Response(content=data, media_type=content_type)(scope, receive, send)
