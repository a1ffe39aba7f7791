import logging
from dataclasses import dataclass
from typing import Iterable, Optional
from clinic_gateway.config.routes import ROUTE_SPECS, RouteSpec
from clinic_gateway.config.settings import GatewaySettings

logger = logging.getLogger(__name__)


class RouteConfigError(ValueError):
    pass


@dataclass(frozen=True)
class BackendTarget:
    name: str
    base_url: str
    rewrite_prefix: str


@dataclass(frozen=True)
class RouteBinding:
    match_prefix: str
    target: BackendTarget
    auth_required: bool = True

    def matches(self, path: str) -> bool:
        prefix = self.match_prefix
        return path == prefix or path.startswith(prefix + "/")


class RouteTable:
    """Immutable, longest-prefix-first set of route bindings."""

    def __init__(self, bindings: Iterable[RouteBinding]):
        bindings = tuple(bindings)
        _check_bindings(bindings)
        self.bindings: tuple[RouteBinding, ...] = tuple(
            sorted(bindings, key=lambda b: len(b.match_prefix), reverse=True)
        )

    @classmethod
    def from_settings(
        cls,
        settings: GatewaySettings,
        specs: Iterable[RouteSpec] = ROUTE_SPECS,
    ) -> "RouteTable":
        bindings = []
        for spec in specs:
            base_url = settings.services.get(spec.service)
            if not base_url:
                logger.info(f"Service '{spec.service}' not configured, skipping route {spec.prefix}")
                continue
            target = BackendTarget(
                name=spec.service,
                base_url=base_url,
                rewrite_prefix=spec.rewrite_prefix,
            )
            bindings.append(RouteBinding(spec.prefix, target, settings.auth_required))
        return cls(bindings)

    def match(self, path: str) -> Optional[tuple[RouteBinding, str]]:
        for binding in self.bindings:
            if binding.matches(path):
                return binding, path[len(binding.match_prefix):]
        return None

    def describe(self) -> list[dict]:
        return [
            {
                "prefix": b.match_prefix,
                "service": b.target.name,
                "backend": b.target.base_url,
                "rewrite_prefix": b.target.rewrite_prefix,
                "auth_required": b.auth_required,
            }
            for b in self.bindings
        ]

    def __len__(self) -> int:
        return len(self.bindings)


def _check_bindings(bindings: tuple[RouteBinding, ...]) -> None:
    seen: dict[str, RouteBinding] = {}
    for binding in bindings:
        prefix = binding.match_prefix
        if not prefix.startswith("/") or prefix == "/" or prefix.endswith("/"):
            raise RouteConfigError(f"Invalid route prefix: {prefix!r}")
        if not binding.target.base_url:
            raise RouteConfigError(f"Route {prefix} has no backend URL")
        if prefix in seen:
            raise RouteConfigError(
                f"Duplicate route prefix {prefix} "
                f"({seen[prefix].target.name} and {binding.target.name})"
            )
        seen[prefix] = binding

    # nested prefixes are legal, the longer one always wins
    for outer in bindings:
        for inner in bindings:
            if inner is not outer and inner.matches(outer.match_prefix):
                logger.debug(f"Route {outer.match_prefix} shadows part of {inner.match_prefix}")
