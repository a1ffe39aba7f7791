import pytest
from clinic_gateway.core.auth_gate import AuthGate, IdentityClaims, extract_bearer_token
from clinic_gateway.core.errors import (
    AuthServiceUnconfigured,
    AuthServiceUnreachable,
    AuthTokenInvalid,
    BadAuthFormat,
)
from tests.fixtures.mock_backends import (
    AUTH_URL,
    FakeAuthService,
    TimeoutTransport,
    UnreachableTransport,
    build_client,
)

GOOD = [(b"authorization", b"Bearer good-token")]


@pytest.mark.parametrize("headers", [
    [],
    [(b"authorization", b"Basic dXNlcjpwYXNz")],
    [(b"authorization", b"bearer lowercase-scheme")],
    [(b"authorization", b"Bearer ")],
    [(b"authorization", b"Bearer")],
    [(b"authorization", b"Bearer a b")],
    [(b"authorization", b"Bearer a\tb")],
])
def test_extract_bearer_token_rejects_bad_formats(headers):
    assert extract_bearer_token(headers) is None


def test_extract_bearer_token():
    assert extract_bearer_token([(b"Authorization", b"Bearer abc.def")]) == "abc.def"
    assert extract_bearer_token([(b"authorization", b"Bearer  padded ")]) == "padded"


@pytest.mark.anyio
async def test_missing_header_fails_without_network_call():
    auth = FakeAuthService()
    gate = AuthGate(AUTH_URL, build_client(auth=auth))

    with pytest.raises(BadAuthFormat) as info:
        await gate.authenticate([])

    assert info.value.status_code == 401
    assert auth.calls == []


@pytest.mark.anyio
async def test_unconfigured_auth_service_is_503_without_network_call():
    auth = FakeAuthService()
    gate = AuthGate(None, build_client(auth=auth))

    with pytest.raises(AuthServiceUnconfigured) as info:
        await gate.authenticate(GOOD)

    assert info.value.status_code == 503
    assert auth.calls == []


@pytest.mark.anyio
async def test_active_token_yields_claims():
    auth = FakeAuthService({
        "active": True,
        "userId": "u-1",
        "email": "doc@example.com",
        "roles": ["doctor", "admin"],
        "permissions": ["read:patients"],
    })
    gate = AuthGate(AUTH_URL, build_client(auth=auth))

    claims = await gate.authenticate(GOOD)

    assert claims == IdentityClaims("u-1", "doc@example.com", ("doctor", "admin"))
    assert auth.calls == [{"method": "POST", "path": "/auth/introspect", "body": {"token": "good-token"}}]


@pytest.mark.anyio
async def test_missing_optional_claims_default_to_empty():
    gate = AuthGate(AUTH_URL, build_client(auth=FakeAuthService({"active": True})))

    claims = await gate.authenticate(GOOD)

    assert claims.to_headers() == {"x-user-id": "", "x-user-email": "", "x-user-roles": ""}


@pytest.mark.parametrize("payload", [{"active": False}, {"userId": "u-1"}, {"active": "yes"}])
@pytest.mark.anyio
async def test_inactive_token_is_401(payload):
    gate = AuthGate(AUTH_URL, build_client(auth=FakeAuthService(payload)))

    with pytest.raises(AuthTokenInvalid) as info:
        await gate.authenticate(GOOD)

    assert info.value.status_code == 401
    assert info.value.message == "Unauthorized: Invalid or inactive token."


@pytest.mark.anyio
async def test_auth_service_401_is_token_validation_failure():
    gate = AuthGate(AUTH_URL, build_client(auth=FakeAuthService({"error": "bad"}, status_code=401)))

    with pytest.raises(AuthTokenInvalid) as info:
        await gate.authenticate(GOOD)

    assert info.value.status_code == 401
    assert info.value.message == "Unauthorized: Token validation failed."


@pytest.mark.parametrize("backend", [
    FakeAuthService({"error": "boom"}, status_code=500),
    FakeAuthService(raw="not json"),
    UnreachableTransport(),
    TimeoutTransport(),
])
@pytest.mark.anyio
async def test_other_failures_are_503(backend):
    gate = AuthGate(AUTH_URL, build_client(auth=backend))

    with pytest.raises(AuthServiceUnreachable) as info:
        await gate.authenticate(GOOD)

    assert info.value.status_code == 503
    assert info.value.message == "Service Unavailable: Could not connect to authentication service."
    assert info.value.cause is not None


def test_roles_header_is_comma_joined():
    claims = IdentityClaims.from_introspection({"userId": 7, "roles": ["a", 3, "b"]})
    assert claims.user_id == "7"
    assert claims.to_headers()["x-user-roles"] == "a,b"
