"""Data models.

Architecture:
    Execution records are immutable Pydantic v2 models; events are plain
    dataclasses because subscribers mutate the request they carry.

Model Categories:
    - Execution: ExecutionLogItem, ExecutionSummary, ErrorSnapshot
    - Events: BeforeRequestEvent, EventStream
"""

from .events import BeforeRequestEvent, ClientEvent, EventDispatcher, EventHandler, EventStream
from .execution import ErrorSnapshot, ExecutionLogItem, ExecutionSummary

__all__ = [
    "BeforeRequestEvent",
    "ClientEvent",
    "EventDispatcher",
    "EventHandler",
    "EventStream",
    "ErrorSnapshot",
    "ExecutionLogItem",
    "ExecutionSummary",
]
