from clinic_gateway.core.header_rewrite import (
    OUTBOUND_REWRITER,
    HeaderRewriter,
    filter_response_headers,
)


def test_outbound_rewriter_drops_hop_by_hop_and_host():
    headers = [
        (b"Host", b"gateway.example.com"),
        (b"Connection", b"keep-alive"),
        (b"Transfer-Encoding", b"chunked"),
        (b"Content-Length", b"12"),
        (b"Authorization", b"Bearer abc123"),
        (b"Cookie", b"sessionid=xyz456"),
        (b"X-Custom", b"my-value"),
    ]

    out = OUTBOUND_REWRITER.rewrite(headers, trace_id="trace-1")
    names = [k.lower() for k, _ in out]

    assert b"host" not in names
    assert b"connection" not in names
    assert b"transfer-encoding" not in names
    assert b"content-length" not in names
    # credentials pass through untouched
    assert (b"Authorization", b"Bearer abc123") in out
    assert (b"Cookie", b"sessionid=xyz456") in out
    assert (b"X-Custom", b"my-value") in out
    assert (b"x-trace-id", b"trace-1") in out


def test_identity_headers_only_come_from_claims():
    headers = [(b"X-User-Id", b"forged"), (b"x-user-roles", b"admin")]

    assert OUTBOUND_REWRITER.rewrite(headers) == []

    out = OUTBOUND_REWRITER.rewrite(headers, extra={"x-user-id": "u-1", "x-user-roles": "nurse"})
    assert out == [(b"x-user-id", b"u-1"), (b"x-user-roles", b"nurse")]


def test_repeated_headers_keep_order():
    rewriter = HeaderRewriter(remove=["x-remove-this"], set_={"X-Api": "clinic"})
    headers = [(b"accept", b"a"), (b"x-remove-this", b"bad"), (b"accept", b"b"), (b"x-api", b"old")]

    assert rewriter.rewrite(headers) == [(b"accept", b"a"), (b"accept", b"b"), (b"x-api", b"clinic")]


def test_non_ascii_values_are_kept_as_bytes():
    headers = [(b"x-name", "caf\xe9".encode("latin-1"))]

    out = OUTBOUND_REWRITER.rewrite(headers, extra={"x-user-email": "josé@example.com"})

    assert out == [
        (b"x-name", b"caf\xe9"),
        (b"x-user-email", "josé@example.com".encode("utf-8")),
    ]


def test_response_hop_by_hop_headers_are_filtered():
    raw = [
        (b"Content-Type", b"application/json"),
        (b"Transfer-Encoding", b"chunked"),
        (b"Set-Cookie", b"a=1"),
        (b"Set-Cookie", b"b=2"),
        (b"Connection", b"close"),
    ]

    assert filter_response_headers(raw) == [
        (b"Content-Type", b"application/json"),
        (b"Set-Cookie", b"a=1"),
        (b"Set-Cookie", b"b=2"),
    ]
