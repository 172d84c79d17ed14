"""Per-account service endpoint discovery.

Architecture:
    Services on endpoint-resolving stacks are not served from one host per
    environment; the endpoints service maps each (account, service) pair to a
    regional host. EndpointResolver asks for many services at once and keeps
    at most one outstanding discovery task per (environment, account):

    1. The first request for a pair starts a task resolving the default
       service list plus the requested service.
    2. Concurrent requests for the same pair await that task.
    3. If the resolved collection lacks the requested service, the cached
       collection is dropped and one new task resolves the old services plus
       the new one. A caller that finds such a task already started joins it.

    Results are cached in the client's local cabinet. When discovery fails,
    every requested service maps to the environment's default API URL; that
    fallback is cached for a shorter time and the task slot is released so
    discovery is attempted again once the fallback expires.

See Also:
    - APIClient.calculate_request_url: Consumer of prepare()
    - LocationMatrix: Source of the endpoints service and fallback URLs
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from ..core.enums import LocationType
from ..core.exceptions import (
    APIResponseError,
    EndpointDiscoveryError,
    LocationResolutionError,
)
from ..core.request import RequestParams

if TYPE_CHECKING:
    from .client import APIClient

logger = logging.getLogger(__name__)

ServiceCollection = dict[str, str]


def endpoints_cache_key(environment: str, account_id: str) -> str:
    return f"/endpoints/{environment}/{account_id}"


class EndpointResolver:
    """Resolves and caches service hosts for (environment, account) pairs."""

    def __init__(self, client: APIClient) -> None:
        self._client = client
        self._tasks: dict[tuple[str, str], asyncio.Task[ServiceCollection]] = {}
        self._service_lists: dict[tuple[str, str], list[str]] = {}

    def reset(self) -> None:
        self._tasks.clear()
        self._service_lists.clear()

    def account_for(self, params: RequestParams) -> str:
        """Account whose endpoints apply to a request."""
        session = self._client.session
        return (
            params.context_account_id
            or params.account_id
            or self._client.default_account_id
            or (session.get_acting_account_id() if session is not None else None)
            or "0"
        )

    async def prepare(self, params: RequestParams) -> ServiceCollection:
        """Service collection for the request's account, containing its service if possible."""
        environment = self._client.matrix.current_environment
        account_id = self.account_for(params)
        key = (environment, account_id)
        service_name = params.service_name

        task = self._tasks.get(key)
        if task is None:
            services = self._service_lists.setdefault(
                key, list(self._client.settings.default_service_list)
            )
            if service_name and service_name not in services:
                services.append(service_name)
            task = self._start(key, list(services))

        collection = await asyncio.shield(task)
        if not service_name or service_name in collection:
            return collection

        current = self._tasks.get(key)
        if current is None or current is task:
            self._client.storage.delete(endpoints_cache_key(environment, account_id))
            services = list(dict.fromkeys([*collection, service_name]))
            self._service_lists[key] = services
            current = self._start(key, services)
        return await asyncio.shield(current)

    def _start(
        self, key: tuple[str, str], services: list[str]
    ) -> asyncio.Task[ServiceCollection]:
        # Registered before the event loop can switch to another caller
        task = asyncio.create_task(self._discover(key, services))
        self._tasks[key] = task
        return task

    async def _discover(self, key: tuple[str, str], services: list[str]) -> ServiceCollection:
        try:
            return await self.get_service_endpoints(key[1], services)
        except LocationResolutionError:
            self._release(key)
            raise

    def _release(self, key: tuple[str, str]) -> None:
        if self._tasks.get(key) is asyncio.current_task():
            del self._tasks[key]

    async def get_service_endpoints(
        self, account_id: str, service_list: list[str] | None = None
    ) -> ServiceCollection:
        """Map each service to its host for an account.

        Never raises for discovery failures; the default API URL is used for
        every service instead.
        """
        settings = self._client.settings
        matrix = self._client.matrix
        environment = matrix.current_environment
        cache_key = endpoints_cache_key(environment, account_id)
        services = service_list or list(settings.default_service_list)

        cached = self._client.storage.get(cache_key)
        if cached:
            return cached

        try:
            collection = await self._request_endpoints(account_id, services)
        except EndpointDiscoveryError as e:
            logger.warning(
                "Could not get endpoints response; using defaults for environment '%s': %s",
                environment,
                e,
            )
            default_url = matrix.resolve_url(LocationType.INSIGHT_API)
            fallback = {service: default_url for service in services}
            self._client.storage.set(cache_key, fallback, settings.endpoints_fallback_ttl)
            self._release((environment, account_id))
            return fallback

        self._client.storage.set(cache_key, collection, settings.endpoints_ttl)
        return collection

    async def _request_endpoints(self, account_id: str, services: list[str]) -> ServiceCollection:
        try:
            url = self._client.matrix.resolve_url(
                LocationType.GLOBAL_API,
                f"/endpoints/v1/{account_id}/residency/default/endpoints",
            )
            response = await self._client.send(RequestParams(method="POST", url=url, data=services))
        except (APIResponseError, LocationResolutionError) as e:
            raise EndpointDiscoveryError(str(e), account_id=account_id) from e

        if not isinstance(response.data, dict):
            raise EndpointDiscoveryError(
                "Endpoints response is not a service map", account_id=account_id
            )
        if not all(isinstance(host, str) and host for host in response.data.values()):
            raise EndpointDiscoveryError(
                "Endpoints response has a missing or non-string host", account_id=account_id
            )
        return {
            service: host if host.startswith("http") else f"https://{host}"
            for service, host in response.data.items()
        }
