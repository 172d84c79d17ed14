"""Core enumerations and logical identifiers.

Key Types:
    - CacheType: where a Cabinet keeps its data between synchronizations
    - LocationType: logical ids of the sites and API stacks the matrix knows
"""

from enum import Enum, IntEnum


class CacheType(IntEnum):
    """Storage class of a Cabinet."""

    LOCAL = 1  # in memory only
    EPHEMERAL = 2  # flushed to a process-lifetime store
    PERSISTENT = 3  # flushed to disk, survives restarts


class LocationType(str, Enum):
    """Logical location identifiers.

    Each type has a single instance per environment and residency. Values are
    plain strings so descriptors can be declared with either the member or its
    value.
    """

    LEGACY_UI = "cd14:ui"
    INSIGHT_API = "insight:api"
    GLOBAL_API = "global:api"
    OVERVIEW_UI = "cd17:overview"
    INTELLIGENCE_UI = "cd17:intelligence"
    CONFIGURATION_UI = "cd17:config"
    REMEDIATIONS_UI = "cd17:remediations"
    INCIDENTS_UI = "cd17:incidents"
    ACCOUNTS_UI = "cd17:accounts"
    LANDSCAPE_UI = "cd17:landscape"
    INTEGRATIONS_UI = "cd17:integrations"
    SEARCH_UI = "cd17:search"
    ENDPOINTS_UI = "cd19:endpoints"
    SUPPORT_PORTAL = "cd14:support"
    AUTH0 = "auth0"

    def __str__(self) -> str:
        return self.value


def location_key(loc_type_id: "str | LocationType") -> str:
    """Normalize a logical id (enum member or raw string) to its string form."""
    if isinstance(loc_type_id, LocationType):
        return loc_type_id.value
    return loc_type_id
