"""Client-wide settings.

ClientSettings holds the knobs the execution engine, endpoint discovery and
response cache read at runtime. Values can be given directly; anything not
given is read from ``LOCUS_*`` environment variables, then the defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .enums import LocationType

# Services whose endpoints are resolved in the first discovery call per account
DEFAULT_SERVICE_LIST = [
    "aims",
    "subscriptions",
    "search",
    "sources",
    "assets_query",
    "assets_write",
    "dashboards",
    "iris",
    "suggestions",
    "cargo",
]


class ClientSettings(BaseSettings):
    """Engine-wide configuration.

    List-valued settings are comma separated in the environment, e.g.
    ``LOCUS_ENDPOINT_STACKS=insight:api,global:api``.
    """

    model_config = SettingsConfigDict(
        env_prefix="LOCUS_",
        extra="ignore",
        validate_assignment=True,
    )

    timeout: float = Field(default=60.0, gt=0)
    default_service_list: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_SERVICE_LIST)
    )
    # Stacks whose service URLs come from endpoint discovery
    endpoint_stacks: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: [LocationType.INSIGHT_API.value]
    )
    endpoints_ttl: int = Field(default=15 * 60, ge=0)
    endpoints_fallback_ttl: int = Field(default=5 * 60, ge=0)
    default_cache_ttl_ms: int = Field(default=60_000, ge=0)
    default_retry_interval_ms: int = Field(default=1000, ge=0)
    cache_sync_delay: float = Field(default=0.25, ge=0)
    cache_directory: Path | None = None
    acting_uri: str | None = None
    verbose: bool = False
    collect_request_log: bool = False

    @field_validator("default_service_list", "endpoint_stacks", mode="before")
    @classmethod
    def _split_csv(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value
