import logging
import httpx
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional
from urllib.parse import quote, quote_from_bytes
from starlette.background import BackgroundTask
from starlette.responses import StreamingResponse
from starlette.types import Scope, Receive, Send
from clinic_gateway.core.auth_gate import IdentityClaims
from clinic_gateway.core.errors import BackendUnreachable
from clinic_gateway.core.header_rewrite import (
    OUTBOUND_REWRITER,
    HeaderRewriter,
    filter_response_headers,
)
from clinic_gateway.core.routing_table import RouteBinding
from clinic_gateway.core.trace import trace_id_var

logger = logging.getLogger(__name__)

# printable ASCII other than space; existing %XX escapes pass through untouched
_URL_SAFE = bytes(range(0x21, 0x7F))


@dataclass(frozen=True)
class ProxyRequest:
    method: str
    path: str
    query_string: bytes = b""
    headers: list[tuple[bytes, bytes]] = field(default_factory=list)
    body: bytes = b""
    raw_path: bytes = b""

    @classmethod
    def from_scope(cls, scope: Scope, path: str, body: bytes) -> "ProxyRequest":
        raw_path = scope.get("raw_path") or quote(path).encode("ascii")
        return cls(
            method=scope["method"],
            path=path,
            query_string=scope.get("query_string", b""),
            headers=list(scope.get("headers", [])),
            body=body,
            raw_path=raw_path.split(b"?", 1)[0],
        )

    def raw_suffix(self, suffix: str) -> bytes:
        """
        The still-encoded form of ``suffix``, the decoded tail of ``path``.
        Keeps escapes such as %2F and %3F that decoding would turn into
        path or query delimiters.
        """
        consumed = self.path[: len(self.path) - len(suffix)].encode("utf-8")
        if self.raw_path and self.raw_path.startswith(consumed):
            return self.raw_path[len(consumed):]
        return quote(suffix).encode("ascii")


def build_target_url(binding: RouteBinding, raw_suffix: bytes, query_string: bytes = b"") -> httpx.URL:
    base = httpx.URL(binding.target.base_url)
    raw_path = (
        base.raw_path.split(b"?", 1)[0].rstrip(b"/")
        + binding.target.rewrite_prefix.encode("ascii")
        + raw_suffix
    )
    if query_string:
        raw_path += b"?" + query_string
    return base.copy_with(raw_path=quote_from_bytes(raw_path, safe=_URL_SAFE).encode("ascii"))


class Forwarder:
    def __init__(
        self,
        client: httpx.AsyncClient,
        timeout: float = 5.0,
        header_rewriter: Optional[HeaderRewriter] = None,
        log_rewrites: bool = False,
    ):
        self.client = client
        self.timeout = timeout
        self.header_rewriter = header_rewriter or OUTBOUND_REWRITER
        self.log_rewrites = log_rewrites

    async def forward(
        self,
        request: ProxyRequest,
        binding: RouteBinding,
        suffix: str,
        claims: Optional[IdentityClaims] = None,
    ) -> httpx.Response:
        """
        Sends the request to the binding's backend and returns the response
        with its body still unread. Raises BackendUnreachable on any
        transport failure; the caller owns closing the response.
        """
        target_url = build_target_url(binding, request.raw_suffix(suffix), request.query_string)
        if self.log_rewrites:
            logger.debug(f"[gateway] Proxying '{request.path}' to '{target_url}'")

        headers = self.header_rewriter.rewrite(
            request.headers,
            trace_id=trace_id_var.get(),
            extra=claims.to_headers() if claims else None,
        )
        outbound = self.client.build_request(
            request.method,
            target_url,
            headers=headers,
            content=request.body,
            timeout=self.timeout,
        )
        try:
            return await self.client.send(outbound, stream=True)
        except httpx.HTTPError as e:
            logger.error(f"Proxy error for {request.method} {request.path} -> {target_url}: {e!r}")
            raise BackendUnreachable(cause=e) from e

    async def relay(
        self,
        backend_response: httpx.Response,
        scope: Scope,
        receive: Receive,
        send: Send,
    ) -> None:
        response = StreamingResponse(
            _stream_body(backend_response),
            status_code=backend_response.status_code,
            background=BackgroundTask(backend_response.aclose),
        )
        response.raw_headers = filter_response_headers(backend_response.headers.raw)
        await response(scope, receive, send)


async def _stream_body(backend_response: httpx.Response) -> AsyncIterator[bytes]:
    try:
        async for chunk in backend_response.aiter_raw():
            yield chunk
    except httpx.HTTPError as e:
        logger.error(f"Backend stream closed prematurely for {backend_response.request.url}: {e!r}")
        raise BackendUnreachable(cause=e) from e
