"""Runtime orchestration components."""

from .client import APIClient
from .endpoints import EndpointResolver, ServiceCollection

__all__ = [
    "APIClient",
    "EndpointResolver",
    "ServiceCollection",
]
