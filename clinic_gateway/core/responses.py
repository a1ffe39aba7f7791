from starlette.responses import JSONResponse
from starlette.types import Message, Send
from clinic_gateway.core.errors import ProxyError, Unhandled


class ResponseTracker:
    """Wraps ``send`` and remembers whether a response has been started."""

    def __init__(self, send: Send) -> None:
        self._send = send
        self.started = False
        self.status_code: int | None = None

    async def __call__(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.started = True
            self.status_code = message["status"]
        await self._send(message)


def error_response(error: ProxyError, expose_detail: bool) -> JSONResponse:
    return JSONResponse(error.to_payload(expose_detail), status_code=error.status_code)


def classify(exc: BaseException) -> ProxyError:
    if isinstance(exc, ProxyError):
        return exc
    return Unhandled(cause=exc)
