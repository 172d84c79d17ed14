"""Render requests as reproducible curl commands."""

from __future__ import annotations

import json
import shlex
from collections.abc import Mapping
from typing import Any


def to_curl_command(
    method: str,
    url: str,
    headers: Mapping[str, str] | None = None,
    data: Any = None,
    prettify: bool = True,
) -> str:
    """Build a shell-safe curl invocation equivalent to the given request."""
    continuation = " \\\n    " if prettify else " "
    parts = [f"curl -X {method.upper()} {shlex.quote(url)}"]
    for name, value in (headers or {}).items():
        parts.append(f"-H {shlex.quote(f'{name}: {value}')}")
    if data is not None:
        body = data if isinstance(data, str) else json.dumps(data)
        parts.append(f"--data {shlex.quote(body)}")
    parts.append("--verbose")
    return continuation.join(parts)
