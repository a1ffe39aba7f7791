import logging
import httpx
from dataclasses import dataclass
from typing import Optional
from clinic_gateway.core.errors import (
    AuthServiceUnconfigured,
    AuthServiceUnreachable,
    AuthTokenInvalid,
    BadAuthFormat,
)
from clinic_gateway.core.metrics import AUTH_FAILURES

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "
INTROSPECT_PATH = "/auth/introspect"


@dataclass(frozen=True)
class IdentityClaims:
    user_id: str = ""
    email: str = ""
    roles: tuple[str, ...] = ()

    def to_headers(self) -> dict[str, str]:
        return {
            "x-user-id": self.user_id,
            "x-user-email": self.email,
            "x-user-roles": ",".join(self.roles),
        }

    @classmethod
    def from_introspection(cls, data: dict) -> "IdentityClaims":
        roles = data.get("roles") or []
        if not isinstance(roles, list):
            roles = []
        return cls(
            user_id=_as_str(data.get("userId")),
            email=_as_str(data.get("email")),
            roles=tuple(r for r in roles if isinstance(r, str)),
        )


class AuthGate:
    """
    Validates bearer tokens against the auth service's introspection endpoint.

    Every failure is raised as a single ProxyError; the caller writes it once
    and never forwards the request.
    """

    def __init__(self, auth_base_url: Optional[str], client: httpx.AsyncClient, timeout: float = 5.0):
        self.auth_base_url = auth_base_url
        self.client = client
        self.timeout = timeout

    @property
    def introspection_url(self) -> Optional[str]:
        if not self.auth_base_url:
            return None
        return f"{self.auth_base_url}{INTROSPECT_PATH}"

    async def authenticate(self, headers: list[tuple[bytes, bytes]]) -> IdentityClaims:
        token = extract_bearer_token(headers)
        if token is None:
            AUTH_FAILURES.labels(reason="bad_format").inc()
            raise BadAuthFormat()

        url = self.introspection_url
        if url is None:
            logger.error("Auth service URL is not configured.")
            AUTH_FAILURES.labels(reason="unconfigured").inc()
            raise AuthServiceUnconfigured()

        data = await self._introspect(url, token)

        if not isinstance(data, dict) or data.get("active") is not True:
            AUTH_FAILURES.labels(reason="inactive").inc()
            raise AuthTokenInvalid()

        claims = IdentityClaims.from_introspection(data)
        logger.debug(f"Token accepted for user '{claims.user_id}'")
        return claims

    async def _introspect(self, url: str, token: str):
        try:
            response = await self.client.post(url, json={"token": token}, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.error(f"Auth introspection error: {e!r}")
            AUTH_FAILURES.labels(reason="unreachable").inc()
            raise AuthServiceUnreachable(cause=e) from e

        if response.status_code == 401:
            logger.warning("Auth service rejected the token")
            AUTH_FAILURES.labels(reason="rejected").inc()
            raise AuthTokenInvalid("Unauthorized: Token validation failed.")

        if not response.is_success:
            logger.error(f"Auth introspection returned {response.status_code}")
            AUTH_FAILURES.labels(reason="unreachable").inc()
            error = httpx.HTTPStatusError(
                f"Introspection returned {response.status_code}",
                request=response.request,
                response=response,
            )
            raise AuthServiceUnreachable(cause=error)

        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Auth introspection returned malformed JSON: {e}")
            AUTH_FAILURES.labels(reason="unreachable").inc()
            raise AuthServiceUnreachable(cause=e) from e


def extract_bearer_token(headers: list[tuple[bytes, bytes]]) -> Optional[str]:
    """Token from the first Authorization header, or None if it is not a single bearer token."""
    for name, value in headers:
        if name.lower() == b"authorization":
            value = value.decode("latin-1")
            if not value.startswith(BEARER_PREFIX):
                return None
            token = value[len(BEARER_PREFIX):].strip()
            if not token or any(c.isspace() for c in token):
                return None
            return token
    return None


def _as_str(value) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)
