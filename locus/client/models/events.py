"""Pre-request events.

Events form a tagged union discriminated by ``kind``. Subscribers receive the
event object and dispatch on its type with ``match``; the request an event
carries is live, so header changes made by a subscriber are sent.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

from ..core.request import RequestParams

logger = logging.getLogger(__name__)


@dataclass
class BeforeRequestEvent:
    """Triggered immediately before a request goes on the wire."""

    request: RequestParams
    kind: Literal["before_request"] = field(default="before_request", init=False)

    def set_header(self, name: str, value: str) -> None:
        self.request.set_header(name, value)


# Union of every event the client emits
ClientEvent = BeforeRequestEvent

EventHandler = Callable[[ClientEvent], Any]


class EventDispatcher(Protocol):
    """Anything that can deliver client events to subscribers."""

    def trigger(self, event: ClientEvent) -> None: ...


class EventStream:
    """Synchronous in-process dispatcher."""

    def __init__(self) -> None:
        self._handlers: list[EventHandler] = []

    def attach(self, handler: EventHandler) -> EventHandler:
        self._handlers.append(handler)
        return handler

    def detach(self, handler: EventHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def clear(self) -> None:
        self._handlers.clear()

    def trigger(self, event: ClientEvent) -> None:
        match event:
            case BeforeRequestEvent(request=request):
                logger.debug("Dispatching before_request for %s", request.url)
            case _:
                raise TypeError(f"Unsupported event type: {type(event).__name__}")
        for handler in list(self._handlers):
            handler(event)
