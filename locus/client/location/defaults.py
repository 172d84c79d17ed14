"""Default location table.

API stacks in production (US and EMEA), integration and development, plus the
console UIs the client links to.
"""

from __future__ import annotations

from ..core.enums import LocationType
from .matrix import LocationDescriptor, LocationMatrix

_API_STACKS = {
    LocationType.GLOBAL_API: {
        ("production", "US"): "https://api.global-services.global.alertlogic.com",
        ("production", "EMEA"): "https://api.global-services.global.alertlogic.com",
        ("integration", None): "https://api.global-integration.product.dev.alertlogic.com",
        ("development", None): "https://api.global-integration.product.dev.alertlogic.com",
    },
    LocationType.INSIGHT_API: {
        ("production", "US"): "https://api.cloudinsight.alertlogic.com",
        ("production", "EMEA"): "https://api.cloudinsight.alertlogic.co.uk",
        ("integration", None): "https://api.product.dev.alertlogic.com",
        ("development", None): "https://api.product.dev.alertlogic.com",
    },
}

_CONSOLE_UIS = [
    (LocationType.OVERVIEW_UI, "overview", 4213),
    (LocationType.ACCOUNTS_UI, "account", 8002),
    (LocationType.SEARCH_UI, "search", 8003),
    (LocationType.INCIDENTS_UI, "incidents", 8001),
]


def default_locations() -> list[LocationDescriptor]:
    """Fresh descriptors for the standard stacks (safe to mutate)."""
    nodes: list[LocationDescriptor] = []
    for loc_type_id, hosts in _API_STACKS.items():
        for (environment, residency), uri in hosts.items():
            nodes.append(
                LocationDescriptor(
                    loc_type_id=loc_type_id,
                    environment=environment,
                    residency=residency,
                    uri=uri,
                    aspect="api",
                )
            )
    for loc_type_id, app_code, dev_port in _CONSOLE_UIS:
        nodes.extend(LocationMatrix.ui_locations(loc_type_id, app_code, dev_port))
    return nodes


DEFAULT_LOCATIONS = default_locations()
