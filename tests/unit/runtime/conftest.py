"""Shared fixtures for engine tests."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any

import pytest

from locus.client.core import ClientSettings
from locus.client.runtime import APIClient
from locus.client.storage import Cabinet
from locus.client.utils import HTTPResponse


@dataclass
class SentRequest:
    method: str
    url: str
    params: dict[str, Any] | None
    headers: dict[str, str]
    data: Any
    form: bool


class FakeTransport:
    """Scripted transport: responses are queued per (method, url).

    The last queued outcome for a route is reused once the queue runs down.
    Unrouted requests get a 404.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Any]] = {}
        self.calls: list[SentRequest] = []
        self.closed = False

    def respond(
        self, method: str, url: str, status: int = 200, data: Any = None, delay: float = 0.0
    ) -> FakeTransport:
        self.routes.setdefault((method, url), []).append((status, data, delay))
        return self

    def fail(self, method: str, url: str, error: Exception) -> FakeTransport:
        self.routes.setdefault((method, url), []).append(error)
        return self

    def calls_to(self, url: str, method: str | None = None) -> list[SentRequest]:
        return [
            call
            for call in self.calls
            if call.url == url and (method is None or call.method == method)
        ]

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
        self.calls.append(
            SentRequest(
                method, url, dict(params) if params else None, dict(headers or {}), data, form
            )
        )
        queue = self.routes.get((method, url))
        if not queue:
            return HTTPResponse(status=404, reason="Not Found", url=url, method=method)
        outcome = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(outcome, Exception):
            raise outcome
        status, payload, delay = outcome
        if delay:
            await asyncio.sleep(delay)
        body = json.dumps(payload) if payload is not None else ""
        return HTTPResponse(
            status=status,
            reason="OK" if status < 400 else "Error",
            url=url,
            method=method,
            headers={"Content-Type": "application/json"},
            data=payload,
            request_headers=dict(headers or {}),
            content_length=len(body),
        )

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture(autouse=True)
def _close_cabinets():
    yield
    Cabinet.close_all()


@pytest.fixture
def client(transport: FakeTransport) -> APIClient:
    return APIClient(ClientSettings(default_retry_interval_ms=1), transport=transport)
