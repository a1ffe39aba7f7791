from typing import Iterable, Optional

Header = tuple[bytes, bytes]

HOP_BY_HOP = frozenset({
    b"connection",
    b"keep-alive",
    b"proxy-authenticate",
    b"proxy-authorization",
    b"te",
    b"trailer",
    b"transfer-encoding",
    b"upgrade",
})

IDENTITY_HEADERS = frozenset({b"x-user-id", b"x-user-email", b"x-user-roles"})


def _name(name) -> bytes:
    return (name.encode("latin-1") if isinstance(name, str) else name).lower()


class HeaderRewriter:
    """
    Works on raw ASGI header pairs. Values set by the gateway are encoded
    as UTF-8 so identity claims survive any character the auth service sends.
    """

    def __init__(
        self,
        remove: Optional[Iterable] = None,
        set_: Optional[dict[str, str]] = None,
    ) -> None:
        self.remove = set(_name(h) for h in (remove or []))
        self.set = {_name(k): v.encode("utf-8") for k, v in (set_ or {}).items()}

    def rewrite(
        self,
        headers: list[Header],
        trace_id: Optional[str] = None,
        extra: Optional[dict[str, str]] = None,
    ) -> list[Header]:
        """Returns a new header list; repeated headers keep their order."""
        overrides = dict(self.set)
        for k, v in (extra or {}).items():
            overrides[_name(k)] = v.encode("utf-8")
        if trace_id:
            overrides[b"x-trace-id"] = trace_id.encode("latin-1")

        out = [
            (k, v) for k, v in headers
            if k.lower() not in self.remove and k.lower() not in overrides
        ]
        out.extend(overrides.items())
        return out


# host is dropped so the client sets it from the backend URL
OUTBOUND_REWRITER = HeaderRewriter(remove=HOP_BY_HOP | IDENTITY_HEADERS | {b"host", b"content-length"})


def filter_response_headers(raw: list[Header]) -> list[Header]:
    return [(k, v) for k, v in raw if k.lower() not in HOP_BY_HOP]
