"""Execution log and error snapshot models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ExecutionLogItem(BaseModel):
    """One network request issued by the client."""

    method: str
    url: str
    response_code: int = 0
    response_content_length: int = Field(default=0, ge=0)
    duration_ms: float = Field(default=0.0, ge=0)
    error_message: str | None = None

    model_config = ConfigDict(frozen=True)


class ExecutionSummary(BaseModel):
    """Totals over the collected execution log."""

    number_of_requests: int = 0
    total_request_time: float = 0.0
    total_bytes: int = 0

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_log(cls, log: list[ExecutionLogItem]) -> ExecutionSummary:
        return cls(
            number_of_requests=len(log),
            total_request_time=sum(item.duration_ms for item in log),
            total_bytes=sum(item.response_content_length for item in log),
        )


class ErrorSnapshot(BaseModel):
    """The most recent abnormal response."""

    status: int
    status_text: str = ""
    url: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    data: Any = None

    model_config = ConfigDict(frozen=True)
