"""Structured logging for request execution.

Each function emits one event with snake_case name and its fields in
``extra`` so log handlers can index them.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


def log_request_completed(
    *,
    method: str,
    url: str,
    status: int,
    duration_ms: float,
    content_length: int = 0,
    attempt: int = 0,
) -> None:
    """Log a request that produced a 2xx response.

    Args:
        method: HTTP method
        url: Request URL without query string
        status: Response status code
        duration_ms: Wall time of the final attempt
        content_length: Size of the response body in bytes
        attempt: Zero-based index of the attempt that succeeded
    """
    logger.info(
        "request_completed",
        extra={
            "method": method,
            "url": url,
            "status": status,
            "duration_ms": duration_ms,
            "content_length": content_length,
            "attempt": attempt,
        },
    )
    if attempt > 0:
        logger.warning("Resolved request for %s with retry logic", url)


def log_request_failed(
    *,
    method: str,
    url: str,
    status: int,
    error_type: str,
    error_message: str,
) -> None:
    """Log a request that ended without a 2xx response.

    Args:
        method: HTTP method
        url: Request URL without query string
        status: Response status code, 0 when none was received
        error_type: Exception class name
        error_message: Exception message
    """
    logger.error(
        "request_failed",
        extra={
            "method": method,
            "url": url,
            "status": status,
            "error_type": error_type,
            "error_message": error_message,
        },
    )


def log_retry_scheduled(*, url: str, status: int, attempt: int, delay_ms: float) -> None:
    logger.warning(
        "request_retry_scheduled",
        extra={"url": url, "status": status, "attempt": attempt, "delay_ms": delay_ms},
    )


def log_cache_hit(*, cache_key: str) -> None:
    logger.debug("request_cache_hit", extra={"cache_key": cache_key})


def log_inflight_reuse(*, cache_key: str) -> None:
    logger.debug("request_inflight_reused", extra={"cache_key": cache_key})
