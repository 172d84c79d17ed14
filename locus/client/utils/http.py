"""HTTP client helper."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import aiohttp

from ..core.exceptions import APITransportError

logger = logging.getLogger(__name__)


@dataclass
class HTTPResponse:
    """A completed HTTP exchange, whatever its status."""

    status: int
    reason: str
    url: str
    method: str
    headers: dict[str, str] = field(default_factory=dict)
    data: Any = None
    request_headers: dict[str, str] = field(default_factory=dict)
    content_length: int = 0

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class Transport(Protocol):
    """Anything that can send a request and return an HTTPResponse."""

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        data: Any = None,
        form: bool = False,
        response_type: str | None = None,
        timeout: float | None = None,
    ) -> HTTPResponse: ...

    async def close(self) -> None: ...


class HTTPClient:
    """Async HTTP client wrapper.

    Unlike aiohttp's raise_for_status mode, every response is returned to the
    caller; only transport failures raise (as APITransportError).
    """

    def __init__(self, timeout: float = 60.0) -> None:
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    @property
    def session(self) -> aiohttp.ClientSession:
        """Get or create session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        data: Any = None,
        form: bool = False,
        response_type: str | None = None,
        timeout: float | None = None,
    ) -> HTTPResponse:
        """Send one request and return its response."""
        request_headers = dict(headers or {})
        kwargs: dict[str, Any] = {"headers": request_headers, "allow_redirects": True}
        if params:
            kwargs["params"] = {k: v if isinstance(v, str) else str(v) for k, v in params.items()}
        if timeout is not None:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=timeout)

        if form:
            # aiohttp writes the multipart boundary into Content-Type itself
            request_headers.pop("Content-Type", None)
            kwargs["data"] = _form_data(data or {})
        elif isinstance(data, (dict, list)):
            kwargs["json"] = data
        elif data is not None:
            kwargs["data"] = data

        try:
            async with self.session.request(method, url, **kwargs) as response:
                payload, size = await _read_payload(response, response_type)
                return HTTPResponse(
                    status=response.status,
                    reason=response.reason or "",
                    url=str(response.url),
                    method=method,
                    headers=dict(response.headers),
                    data=payload,
                    request_headers=request_headers,
                    content_length=size,
                )
        except asyncio.TimeoutError as e:
            raise APITransportError(f"{method} {url} timed out") from e
        except aiohttp.ClientError as e:
            raise APITransportError(f"{method} {url} failed: {e}") from e

    async def close(self) -> None:
        """Close session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> HTTPClient:
        """Context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        await self.close()


def _form_data(fields: dict[str, Any]) -> aiohttp.FormData:
    form = aiohttp.FormData()
    for name, value in fields.items():
        if isinstance(value, (dict, list)):
            value = json.dumps(value)
        elif not isinstance(value, (str, bytes)):
            value = str(value)
        form.add_field(name, value)
    return form


async def _read_payload(
    response: aiohttp.ClientResponse, response_type: str | None
) -> tuple[Any, int]:
    body = await response.read()
    if response_type in ("arraybuffer", "bytes", "blob"):
        return body, len(body)
    if not body:
        return None, 0
    content_type = response.headers.get("Content-Type", "")
    text = body.decode(response.charset or "utf-8", errors="replace")
    if "json" in content_type or response_type == "json":
        try:
            return json.loads(text), len(body)
        except ValueError:
            logger.debug("Response declared JSON but did not parse; returning text")
    return text, len(body)
