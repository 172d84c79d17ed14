"""Typed request configuration.

Architecture:
    RequestParams is the boundary contract between calling code and the
    execution engine. Every field defaults to None, meaning "not set", so that
    engine-wide defaults can be layered under caller values with
    merge_request_params(). The merge enumerates each recognized option; there
    is no reflective copying of arbitrary attributes.

Field groups:
    - Location: service_name, service_stack, residency, version, account_id,
      context_account_id, path, no_endpoints_resolution
    - Transport: method, url, params, headers, data, response_type, timeout
    - Caching: ttl, cache_key, disable_cache, cache_type
    - Retry: retry_count, retry_interval
    - Diagnostics: curl
    - Deprecated shorthand: accept_header (folded into headers["Accept"])
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any
from urllib.parse import quote, urlencode

from .enums import CacheType, LocationType, location_key


@dataclass
class RequestParams:
    """A single request description (caller-owned, built once per call)."""

    method: str | None = None
    url: str | None = None

    service_name: str | None = None
    service_stack: str | None = None
    residency: str | None = None
    version: str | int | None = None
    account_id: str | None = None
    context_account_id: str | None = None
    path: str | None = None
    no_endpoints_resolution: bool | None = None

    params: dict[str, Any] | None = None
    headers: dict[str, str] | None = None
    data: Any = None
    response_type: str | None = None
    timeout: float | None = None

    # ttl is milliseconds, or True for the engine default
    ttl: int | float | bool | None = None
    cache_key: str | None = None
    disable_cache: bool | None = None
    cache_type: CacheType | None = None

    retry_count: int | None = None
    retry_interval: int | float | None = None

    curl: bool | None = None
    accept_header: str | None = None

    def __post_init__(self) -> None:
        if self.service_stack is not None:
            self.service_stack = location_key(self.service_stack)
        if self.method is not None:
            self.method = self.method.upper()

    @classmethod
    def coerce(cls, request: RequestParams | None = None, /, **options: Any) -> RequestParams:
        """Build a RequestParams from an instance, keyword options, or both.

        Keyword options override fields of the given instance. The instance
        itself is never modified.
        """
        if request is None:
            return cls(**options)
        if not options:
            return request.copy()
        return replace(request.copy(), **options)

    def copy(self) -> RequestParams:
        """Shallow copy with fresh containers for params and headers."""
        return replace(
            self,
            params=dict(self.params) if self.params is not None else None,
            headers=dict(self.headers) if self.headers is not None else None,
        )

    @property
    def targets_service(self) -> bool:
        return self.service_name is not None or self.service_stack is not None

    def query_string(self) -> str:
        if not self.params:
            return ""
        return urlencode(
            {key: v if isinstance(v, str) else str(v) for key, v in self.params.items()},
            quote_via=quote,
        )

    def full_url(self) -> str:
        """URL plus serialized query parameters."""
        query = self.query_string()
        base = self.url or ""
        return f"{base}?{query}" if query else base

    def set_header(self, name: str, value: str) -> None:
        if self.headers is None:
            self.headers = {}
        self.headers[name] = value

    def set_param(self, name: str, value: Any) -> None:
        if self.params is None:
            self.params = {}
        self.params[name] = value


def merge_request_params(base: RequestParams, override: RequestParams) -> RequestParams:
    """Layer ``override`` over ``base``; set fields of ``override`` win.

    Headers and query params are merged key by key rather than replaced.
    """
    merged = RequestParams(
        method=_pick(override.method, base.method),
        url=_pick(override.url, base.url),
        service_name=_pick(override.service_name, base.service_name),
        service_stack=_pick(override.service_stack, base.service_stack),
        residency=_pick(override.residency, base.residency),
        version=_pick(override.version, base.version),
        account_id=_pick(override.account_id, base.account_id),
        context_account_id=_pick(override.context_account_id, base.context_account_id),
        path=_pick(override.path, base.path),
        no_endpoints_resolution=_pick(
            override.no_endpoints_resolution, base.no_endpoints_resolution
        ),
        params=_merge_dicts(base.params, override.params),
        headers=_merge_dicts(base.headers, override.headers),
        data=_pick(override.data, base.data),
        response_type=_pick(override.response_type, base.response_type),
        timeout=_pick(override.timeout, base.timeout),
        ttl=_pick(override.ttl, base.ttl),
        cache_key=_pick(override.cache_key, base.cache_key),
        disable_cache=_pick(override.disable_cache, base.disable_cache),
        cache_type=_pick(override.cache_type, base.cache_type),
        retry_count=_pick(override.retry_count, base.retry_count),
        retry_interval=_pick(override.retry_interval, base.retry_interval),
        curl=_pick(override.curl, base.curl),
        accept_header=_pick(override.accept_header, base.accept_header),
    )
    return merged


def default_service_params() -> RequestParams:
    """Factory defaults applied under every service-targeted request."""
    return RequestParams(
        service_stack=LocationType.INSIGHT_API.value,
        residency="default",
        version="v1",
        ttl=False,
    )


def _pick(value: Any, fallback: Any) -> Any:
    return value if value is not None else fallback


def _merge_dicts(
    base: dict[str, Any] | None, override: dict[str, Any] | None
) -> dict[str, Any] | None:
    if base is None and override is None:
        return None
    merged: dict[str, Any] = dict(base or {})
    merged.update(override or {})
    return merged


REQUEST_FIELDS = tuple(f.name for f in fields(RequestParams))
