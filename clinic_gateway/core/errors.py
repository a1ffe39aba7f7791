from typing import Optional


class ProxyError(Exception):
    """A failure that resolves to exactly one JSON response for the client."""

    status_code = 500
    default_message = "An unexpected error occurred on the gateway."

    def __init__(self, message: Optional[str] = None, cause: Optional[BaseException] = None):
        self.message = message or self.default_message
        self.cause = cause
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_payload(self, expose_detail: bool) -> dict:
        payload = {"message": self.message}
        if expose_detail and self.cause is not None:
            payload["error"] = {
                "type": type(self.cause).__name__,
                "detail": str(self.cause),
            }
        return payload


class BadAuthFormat(ProxyError):
    status_code = 401
    default_message = "Unauthorized: Missing or invalid token format."


class AuthServiceUnconfigured(ProxyError):
    status_code = 503
    default_message = "Service Unavailable: Auth service not configured."


class AuthTokenInvalid(ProxyError):
    status_code = 401
    default_message = "Unauthorized: Invalid or inactive token."


class AuthServiceUnreachable(ProxyError):
    status_code = 503
    default_message = "Service Unavailable: Could not connect to authentication service."


class BackendUnreachable(ProxyError):
    status_code = 503
    default_message = "Error connecting to the downstream service."


class RouteNotFound(ProxyError):
    status_code = 404
    default_message = "Resource not found on API Gateway."


class Unhandled(ProxyError):
    status_code = 500


class ClientDisconnected(Exception):
    """The client went away before the backend answered."""
