"""Fluent construction of a single request.

Architecture:
    RequestDescriptor collects method, target, payload, headers, params,
    caching and retry options through chained calls, then hands the resulting
    RequestParams to an executor (normally ``APIClient.execute_request``).
    The raw response payload is post-processed in a fixed order: schema
    validation (whose converter, if any, runs on valid data), else converter,
    else the payload itself.

Design Decisions:
    - Fluent API: every mutator returns the descriptor itself
    - Executor injection: the descriptor never touches the network, so it can
      be driven by a fake executor in tests
    - Cache TTL is given in seconds here and converted to the engine's
      milliseconds in build()

See Also:
    - RequestParams: The typed request configuration produced by build()
    - APIClient.request: Factory that binds a descriptor to a client
    - SchemaValidator: Validation step of execute()
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

from ..core.enums import CacheType
from ..core.request import RequestParams
from ..validation.schema import SchemaValidator

T = TypeVar("T")

RequestExecutor = Callable[[RequestParams], Awaitable[Any]]
ResponseConverter = Callable[[Any], T]


class RequestDescriptor(Generic[T]):
    """Chainable description of one request, bound to an executor.

    Example:
        >>> accounts = await (client.request("GET")
        ...     .for_service("aims", account_id="2", path="/accounts")
        ...     .with_param("active", "true")
        ...     .enable_cache(CacheType.LOCAL, ttl=120)
        ...     .execute())
    """

    def __init__(self, executor: RequestExecutor, method: str = "GET") -> None:
        self._executor = executor
        self._method = method.upper()
        self._url: str | None = None
        self._service: dict[str, Any] = {}
        self._data: Any = None
        self._headers: dict[str, str] = {}
        self._params: dict[str, str] = {}
        self._cache_type = CacheType.LOCAL
        self._cache_ttl: float = 0
        self._max_retry_count = 0
        self._retry_interval: float | None = None
        self._schema: Any = None
        self._converter: ResponseConverter[T] | None = None

    def use_method(self, method: str) -> RequestDescriptor[T]:
        self._method = method.upper()
        return self

    def for_service(
        self,
        service_name: str,
        *,
        version: str | int | None = None,
        account_id: str | None = None,
        path: str | None = None,
        service_stack: str | None = None,
        residency: str | None = None,
    ) -> RequestDescriptor[T]:
        """Target a logical service; the URL is computed by the engine."""
        self._service = {
            "service_name": service_name,
            "version": version,
            "account_id": account_id,
            "path": path,
            "service_stack": service_stack,
            "residency": residency,
        }
        return self

    def for_url(self, url: str) -> RequestDescriptor[T]:
        self._url = url
        return self

    def with_data(self, data: Any) -> RequestDescriptor[T]:
        self._data = data
        return self

    def with_header(self, header: str, value: str) -> RequestDescriptor[T]:
        self._headers[header] = value
        return self

    def with_param(self, parameter: str, value: str | int | float) -> RequestDescriptor[T]:
        self._params[parameter] = str(value)
        return self

    def with_param_if(
        self, expression: bool, parameter: str, value: str | int | float
    ) -> RequestDescriptor[T]:
        if expression:
            self._params[parameter] = str(value)
        return self

    def with_schema_validation(self, schema: Any) -> RequestDescriptor[T]:
        """Validate the response against ``schema`` or ``[schema, *references]``."""
        self._schema = schema
        return self

    def with_converter(self, converter: ResponseConverter[T]) -> RequestDescriptor[T]:
        self._converter = converter
        return self

    def enable_cache(
        self, cache_type: CacheType = CacheType.LOCAL, ttl: float = 60
    ) -> RequestDescriptor[T]:
        """Cache the response for ``ttl`` seconds."""
        self._cache_type = cache_type
        self._cache_ttl = ttl
        return self

    def enable_auto_retry(
        self, max_retry_count: int, interval: float | None = None
    ) -> RequestDescriptor[T]:
        """Retry transient failures up to ``max_retry_count`` times.

        ``interval`` is the base delay in milliseconds.
        """
        self._max_retry_count = max_retry_count
        self._retry_interval = interval
        return self

    def build(self) -> RequestParams:
        """Snapshot the descriptor as RequestParams."""
        params = RequestParams(
            method=self._method,
            url=self._url,
            headers=dict(self._headers),
            params=dict(self._params) if self._params else None,
            data=self._data,
            **{key: value for key, value in self._service.items() if value is not None},
        )
        if self._cache_ttl > 0:
            params.ttl = int(self._cache_ttl * 1000)
            params.cache_type = self._cache_type
        if self._max_retry_count > 0:
            params.retry_count = self._max_retry_count
            params.retry_interval = self._retry_interval
        return params

    async def execute(self) -> T | Any:
        """Send the request and post-process its payload."""
        data = await self._executor(self.build())
        if self._schema is not None:
            return SchemaValidator[T]().validate(data, self._schema, self._converter)
        if self._converter is not None:
            return self._converter(data)
        return data
