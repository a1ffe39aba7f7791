from typing import NamedTuple


class RouteSpec(NamedTuple):
    prefix: str
    service: str
    rewrite_prefix: str


# Public prefix (relative to the mount path) -> backend service, backend path prefix
ROUTE_SPECS: tuple[RouteSpec, ...] = (
    RouteSpec("/patients", "patients", "/api/patients"),
    RouteSpec("/doctors", "clinic", "/api/v1/doctors"),
    RouteSpec("/specializations", "clinic", "/api/v1/specializations"),
    RouteSpec("/procedures/categories", "clinic", "/api/v1/procedures/categories"),
    RouteSpec("/procedures/types", "clinic", "/api/v1/procedures/types"),
    RouteSpec("/appointments", "appointments", "/api/v1/appointments"),
    RouteSpec("/actions", "appointments", "/api/v1/actions"),
)
