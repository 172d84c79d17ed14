"""Request execution engine.

Architecture:
    APIClient turns logical requests into HTTP calls:

    1. normalize_request() layers engine-wide parameters under the request and
       computes its URL from service fields (endpoint discovery first, then
       the location matrix).
    2. GETs are served from the response cabinet when cacheable, joined to an
       identical in-flight GET when one exists, or sent as a new shared task.
    3. Writes (POST, PUT, DELETE, form posts) invalidate cached entries for
       their URL and are always sent.
    4. Every outgoing attempt triggers a BeforeRequestEvent, receives the
       session token, and is retried on transient failures with linear
       backoff when the request asks for retries.

    The client is an explicit object; applications that want a process-wide
    instance create one and share it. reset() returns it to factory defaults.

Design Decisions:
    - The in-flight map is checked and written with no suspension point in
      between, so concurrent identical GETs issue one network call
    - Shared tasks are awaited through asyncio.shield so a cancelled joiner
      does not cancel the request other callers are waiting on
    - Every non-2xx response is an error; see core.exceptions for the mapping

See Also:
    - EndpointResolver: Per-account service host discovery
    - RequestDescriptor: Fluent construction on top of execute_request()
    - HTTPClient: aiohttp transport
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import random
import time
from functools import partial
from typing import Any

from ..api.request_builder import RequestDescriptor
from ..core.config import ClientSettings
from ..core.enums import CacheType, LocationType
from ..core.exceptions import (
    APIResponseError,
    APITransportError,
    LocationResolutionError,
    error_for_status,
)
from ..core.request import RequestParams, default_service_params, merge_request_params
from ..core.session import AUTH_TOKEN_HEADER, SessionProvider
from ..location.matrix import LocationMatrix
from ..models.events import BeforeRequestEvent, EventStream
from ..models.execution import ErrorSnapshot, ExecutionLogItem, ExecutionSummary
from ..storage.cabinet import Cabinet
from ..utils.curl import to_curl_command
from ..utils.http import HTTPClient, HTTPResponse, Transport
from .endpoints import EndpointResolver
from .telemetry import (
    log_cache_hit,
    log_inflight_reuse,
    log_request_completed,
    log_request_failed,
    log_retry_scheduled,
)

logger = logging.getLogger(__name__)

CACHE_NAME = "locus.client.cache"
DEFAULT_ACCEPT = "application/json, text/plain, */*"
CACHE_BUSTER_VERBS = ["debork", "breaker", "breaker-breaker", "fix", "unbork", "corex", "help"]


class APIClient:
    """Executes logical requests against the services of a location matrix.

    Example:
        >>> async with APIClient(session=StaticSession(token="...")) as client:
        ...     accounts = await client.get(service_name="aims", account_id="2", path="/accounts")
    """

    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        matrix: LocationMatrix | None = None,
        session: SessionProvider | None = None,
        events: EventStream | None = None,
        transport: Transport | None = None,
    ) -> None:
        self.settings = settings or ClientSettings()
        self.matrix = matrix or LocationMatrix.with_defaults(acting_uri=self.settings.acting_uri)
        self.session = session
        self.events = events or EventStream()
        self.verbose = self.settings.verbose
        self.collect_request_log = self.settings.collect_request_log
        # Account used for endpoint discovery when a request names none
        self.default_account_id: str | None = None

        self._transport: Transport = transport or HTTPClient(timeout=self.settings.timeout)
        self.storage = Cabinet(CACHE_NAME)
        self._cabinets: dict[CacheType, Cabinet] = {CacheType.LOCAL: self.storage}
        self.endpoints = EndpointResolver(self)
        self._global_params = default_service_params()
        self._in_flight: dict[str, asyncio.Task[HTTPResponse]] = {}
        self._execution_log: list[ExecutionLogItem] = []
        self._last_error: ErrorSnapshot | None = None

    # --- Lifecycle -----------------------------------------------------------

    def reset(self) -> APIClient:
        """Return to factory defaults: endpoints, logs, caches and global parameters."""
        self.endpoints.reset()
        self._execution_log = []
        for cabinet in self._cabinets.values():
            cabinet.destroy()
        self._global_params = default_service_params()
        self._in_flight.clear()
        self._last_error = None
        return self

    def set_global_parameters(
        self, request: RequestParams | None = None, /, **options: Any
    ) -> APIClient:
        """Amend the parameters layered under every service-targeted request.

        Setting ``no_endpoints_resolution=True`` here disables discovery for
        all requests.
        """
        self._global_params = merge_request_params(
            self._global_params, RequestParams.coerce(request, **options)
        )
        return self

    async def close(self) -> None:
        for cabinet in self._cabinets.values():
            if cabinet.cache_type != CacheType.LOCAL:
                cabinet.synchronize()
        await self._transport.close()

    async def __aenter__(self) -> APIClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # --- Operations ----------------------------------------------------------

    async def get(self, request: RequestParams | None = None, /, **options: Any) -> Any:
        """GET, served from cache or a matching in-flight request when possible."""
        request = RequestParams.coerce(request, **options)
        request.method = "GET"
        normalized = await self.normalize_request(request)
        full_url = normalized.full_url()
        cache_key = normalized.cache_key or full_url
        ttl_ms = self._cache_ttl(normalized)
        cacheable = ttl_ms > 0 and not normalized.disable_cache
        cabinet = self._cabinet(normalized.cache_type)

        if cacheable:
            cached = cabinet.get(cache_key)
            if cached is not None:
                log_cache_hit(cache_key=cache_key)
                return cached

        task = self._in_flight.get(cache_key)
        if task is not None:
            log_inflight_reuse(cache_key=cache_key)
        else:
            task = asyncio.create_task(
                self._fetch(normalized, full_url, cabinet, cache_key, ttl_ms if cacheable else 0)
            )
            self._in_flight[cache_key] = task
            task.add_done_callback(partial(self._release_in_flight, cache_key))
        response = await asyncio.shield(task)
        return response.data

    async def _fetch(
        self, request: RequestParams, full_url: str, cabinet: Cabinet, cache_key: str, ttl_ms: int
    ) -> HTTPResponse:
        response = await self._send_logged(request, full_url)
        if ttl_ms:
            self._set_cached_value(cabinet, cache_key, response.data, ttl_ms)
        return response

    def _release_in_flight(self, cache_key: str, task: asyncio.Task[HTTPResponse]) -> None:
        if self._in_flight.get(cache_key) is task:
            del self._in_flight[cache_key]
        # Failures of a request every caller abandoned are already logged
        if not task.cancelled():
            task.exception()

    async def post(self, request: RequestParams | None = None, /, **options: Any) -> Any:
        return await self._write("POST", RequestParams.coerce(request, **options))

    async def put(self, request: RequestParams | None = None, /, **options: Any) -> Any:
        return await self._write("PUT", RequestParams.coerce(request, **options))

    async def delete(self, request: RequestParams | None = None, /, **options: Any) -> Any:
        return await self._write("DELETE", RequestParams.coerce(request, **options))

    async def form(self, request: RequestParams | None = None, /, **options: Any) -> Any:
        """POST ``data`` as multipart form fields."""
        request = RequestParams.coerce(request, **options)
        request.set_header("Content-Type", "multipart/form-data")
        return await self._write("POST", request)

    # Deprecated spellings
    fetch = get
    set = put

    def request(self, method: str = "GET") -> RequestDescriptor[Any]:
        """Start a fluent request description bound to this client."""
        return RequestDescriptor(self.execute_request, method)

    async def execute_request(self, params: RequestParams) -> Any:
        """Run a fully described request through the matching operation."""
        method = (params.method or "GET").upper()
        if method == "GET":
            return await self.get(params)
        if method in ("POST", "PUT", "DELETE"):
            return await self._write(method, params.copy())
        normalized = await self.normalize_request(params)
        response = await self._send_logged(normalized, normalized.full_url())
        return response.data

    async def authenticate(
        self, user: str, password: str, mfa_code: str | None = None
    ) -> Any:
        """Authenticate with HTTP basic credentials.

        Returns the raw authentication response; no session is created.
        """
        return await self.post(
            service_stack=LocationType.GLOBAL_API.value,
            service_name="aims",
            path="authenticate",
            headers={"Authorization": f"Basic {self.base64_encode(f'{user}:{password}')}"},
            data={"mfa_code": mfa_code} if mfa_code else {},
        )

    async def authenticate_with_session_token(self, token: str, mfa_code: str) -> Any:
        """Complete an MFA authentication started with username and password."""
        return await self.post(
            service_stack=LocationType.GLOBAL_API.value,
            service_name="aims",
            path="authenticate",
            headers={"X-AIMS-Session-Token": token},
            data={"mfa_code": mfa_code},
        )

    @staticmethod
    def base64_encode(data: str) -> str:
        return base64.b64encode(data.encode("utf-8")).decode("ascii")

    # --- URL calculation -----------------------------------------------------

    async def normalize_request(self, params: RequestParams) -> RequestParams:
        """Copy of ``params`` with its URL computed and deprecated fields folded."""
        request = params.copy()
        if not request.url:
            if request.targets_service:
                request = merge_request_params(self._global_params, request)
                request.url = await self.calculate_request_url(request)
            else:
                logger.warning("Request has neither a URL nor a service to resolve one from")
        if request.accept_header:
            logger.warning("accept_header is deprecated; set the Accept header instead")
            request.set_header("Accept", request.accept_header)
            request.accept_header = None
        return request

    async def calculate_request_url(self, params: RequestParams) -> str:
        """Service URL: discovered host or stack URL, then service, version, account and path."""
        full_path: str | None = None
        if (
            params.service_name
            and params.service_stack in self.settings.endpoint_stacks
            and not params.no_endpoints_resolution
        ):
            collection = await self.endpoints.prepare(params)
            full_path = collection.get(params.service_name)
        if not full_path:
            full_path = self.matrix.resolve_url(params.service_stack or LocationType.INSIGHT_API)

        if params.service_name:
            full_path += f"/{params.service_name}"
        version = params.version
        if isinstance(version, str) and version:
            full_path += f"/{version}"
        elif isinstance(version, int) and not isinstance(version, bool) and version > 0:
            full_path += f"/v{version}"
        if params.account_id and params.account_id != "0":
            full_path += f"/{params.account_id}"
        if params.path:
            full_path += ("" if params.path.startswith("/") else "/") + params.path
        return full_path

    # --- Caching -------------------------------------------------------------

    def _cabinet(self, cache_type: CacheType | None) -> Cabinet:
        cache_type = cache_type or CacheType.LOCAL
        if cache_type in self._cabinets:
            return self._cabinets[cache_type]
        delay = self.settings.cache_sync_delay
        if cache_type == CacheType.EPHEMERAL:
            cabinet = Cabinet.ephemeral(f"{CACHE_NAME}.session", sync_delay=delay)
        elif self.settings.cache_directory is not None:
            cabinet = Cabinet.persistent(
                f"{CACHE_NAME}.persistent", self.settings.cache_directory, sync_delay=delay
            )
        else:
            logger.warning("No cache_directory configured; persistent responses cached in memory")
            return self.storage
        self._cabinets[cache_type] = cabinet
        return cabinet

    def _cache_ttl(self, params: RequestParams) -> int:
        """Cache lifetime in milliseconds, 0 for no caching."""
        ttl = params.ttl
        if isinstance(ttl, bool):
            return self.settings.default_cache_ttl_ms if ttl else 0
        if isinstance(ttl, (int, float)) and ttl > 0:
            return int(ttl)
        return 0

    @staticmethod
    def _set_cached_value(cabinet: Cabinet, key: str, data: Any, ttl_ms: int) -> None:
        if ttl_ms < 1000:
            return
        cabinet.set(key, data, ttl_ms // 1000)

    def _invalidate(self, url: str | None) -> None:
        """Drop cached responses for ``url`` and any of its query-string variants."""
        if not url:
            return
        for cabinet in self._cabinets.values():
            for key in cabinet.keys():
                if key == url or key.startswith(f"{url}?"):
                    cabinet.delete(key)

    def get_cached_data(self) -> dict[str, Any]:
        """Snapshot of the response cache after purging expired entries."""
        self.storage.synchronize()
        return dict(self.storage.data)

    def merge_cache_data(self, data: dict[str, Any]) -> None:
        """Merge raw cache entries (as from get_cached_data) into the cache."""
        self.storage.data.update(data)
        self.storage.synchronize()

    # --- Sending -------------------------------------------------------------

    async def _write(self, method: str, request: RequestParams) -> Any:
        request.method = method
        normalized = await self.normalize_request(request)
        self._invalidate(normalized.url)
        response = await self._send_logged(normalized, normalized.full_url())
        return response.data

    async def send(self, params: RequestParams) -> HTTPResponse:
        """Send an already normalized request, with retries, returning the response."""
        return await self._send_with_retry(params)

    async def _send_logged(self, request: RequestParams, log_url: str) -> HTTPResponse:
        method = request.method or "GET"
        start = time.perf_counter()
        try:
            response = await self._send_with_retry(request)
        except APIResponseError as e:
            duration_ms = (time.perf_counter() - start) * 1000
            log_request_failed(
                method=method,
                url=log_url,
                status=e.status_code,
                error_type=type(e).__name__,
                error_message=str(e),
            )
            if self.collect_request_log:
                self._execution_log.append(
                    ExecutionLogItem(
                        method=method,
                        url=log_url,
                        response_code=e.status_code,
                        duration_ms=duration_ms,
                        error_message=str(e),
                    )
                )
            raise

        if self.collect_request_log:
            self._execution_log.append(
                ExecutionLogItem(
                    method=method,
                    url=log_url,
                    response_code=response.status,
                    response_content_length=response.content_length,
                    duration_ms=(time.perf_counter() - start) * 1000,
                )
            )
        return response

    async def _send_with_retry(self, request: RequestParams) -> HTTPResponse:
        attempt = 0
        while True:
            try:
                return await self._dispatch(request, attempt)
            except APIResponseError as error:
                if not self.is_retryable_error(error, request, attempt):
                    raise
                interval = request.retry_interval or self.settings.default_retry_interval_ms
                delay_ms = interval * (attempt + 1)
                log_retry_scheduled(
                    url=request.url or "",
                    status=error.status_code,
                    attempt=attempt,
                    delay_ms=delay_ms,
                )
                await asyncio.sleep(delay_ms / 1000)
                attempt += 1
                request = request.copy()
                request.set_param("breaker", self.generate_cache_buster(attempt))

    async def _dispatch(self, request: RequestParams, attempt: int) -> HTTPResponse:
        if not request.url:
            raise LocationResolutionError("Cannot send a request without a URL")

        outgoing = request.copy()
        outgoing.headers = {"Accept": DEFAULT_ACCEPT, **(outgoing.headers or {})}
        self.events.trigger(BeforeRequestEvent(outgoing))
        token = self.session.get_token() if self.session is not None else None
        if token and AUTH_TOKEN_HEADER not in outgoing.headers:
            outgoing.headers[AUTH_TOKEN_HEADER] = token

        if outgoing.curl and self.verbose:
            logger.info("%s", self.request_to_curl_command(outgoing))

        method = outgoing.method or "GET"
        content_type = outgoing.headers.get("Content-Type", "")
        start = time.perf_counter()
        response = await self._transport.request(
            method,
            outgoing.url,
            params=outgoing.params,
            headers=outgoing.headers,
            data=outgoing.data,
            form=content_type.startswith("multipart/form-data"),
            response_type=outgoing.response_type,
            timeout=outgoing.timeout,
        )
        if self.verbose:
            self.log_response(response, include_curl=bool(outgoing.curl))

        if not response.ok:
            raise self._on_request_error(outgoing, response)

        log_request_completed(
            method=method,
            url=outgoing.url,
            status=response.status,
            duration_ms=(time.perf_counter() - start) * 1000,
            content_length=response.content_length,
            attempt=attempt,
        )
        return response

    def _on_request_error(self, request: RequestParams, response: HTTPResponse) -> APIResponseError:
        self._last_error = ErrorSnapshot(
            status=response.status,
            status_text=response.reason,
            url=request.url,
            headers=dict(request.headers or {}),
            data=response.data,
        )
        message = (
            f"Received response {response.status} from API request "
            f"[{response.method} {request.url}]"
        )
        logger.error(message)
        logger.debug("Failed request snapshot: %s", self._last_error.model_dump_json(indent=4))
        return error_for_status(
            response.status, message, response=response, service_name=request.service_name
        )

    def is_retryable_error(
        self, error: APIResponseError | None, request: RequestParams, attempt: int
    ) -> bool:
        """Whether a failed attempt may be retried under the request's retry policy."""
        if request.retry_count is None or attempt >= request.retry_count:
            return False
        if error is None or isinstance(error, APITransportError) or error.status_code == 0:
            logger.warning("Will retry request for %s (no response)", request.url)
            return True
        status = error.status_code
        if 300 <= status <= 399 or 500 <= status <= 599:
            logger.warning("Will retry request for %s (%s response code)", request.url, status)
            return True
        return False

    @staticmethod
    def generate_cache_buster(attempt: int) -> str:
        """Random query value that defeats intermediate caches on retries."""
        verb = random.choice(CACHE_BUSTER_VERBS)
        digest = f"{int(time.time() * 1000) % 60000}{random.getrandbits(32):08x}"
        return f"{verb}-{digest}-{attempt}"

    # --- Diagnostics ---------------------------------------------------------

    def get_last_error(self) -> ErrorSnapshot | None:
        return self._last_error

    def get_execution_request_log(self) -> list[ExecutionLogItem]:
        return list(self._execution_log)

    def get_execution_summary(self) -> ExecutionSummary:
        return ExecutionSummary.from_log(self._execution_log)

    def request_to_curl_command(self, params: RequestParams, prettify: bool = True) -> str:
        return to_curl_command(
            params.method or "GET", params.full_url(), params.headers, params.data, prettify
        )

    def log_response(self, response: HTTPResponse, include_curl: bool = False) -> None:
        logger.info(
            "Received HTTP %s (%s) from [%s %s]",
            response.status,
            response.reason,
            response.method,
            response.url,
        )
        if response.data:
            logger.info("Response data: %s", json.dumps(response.data, indent=4, default=str))
        if include_curl:
            logger.info(
                "CURL command to reproduce: %s",
                to_curl_command(response.method, response.url, response.request_headers),
            )
