"""Locus Client - location-aware request execution for REST service families."""

from .api import RequestDescriptor
from .core import (
    AUTH_TOKEN_HEADER,
    DEFAULT_SERVICE_LIST,
    APIClientError,
    APIRedirectError,
    APIRequestError,
    APIResponseError,
    APIServerError,
    APITransportError,
    CacheType,
    ClientSettings,
    EndpointDiscoveryError,
    LocationResolutionError,
    LocationType,
    RequestParams,
    ResponseValidationError,
    SessionProvider,
    StaticSession,
    merge_request_params,
)
from .location import (
    DEFAULT_LOCATIONS,
    LocationContext,
    LocationDescriptor,
    LocationMatrix,
)
from .models import (
    BeforeRequestEvent,
    ErrorSnapshot,
    EventStream,
    ExecutionLogItem,
    ExecutionSummary,
)
from .runtime import APIClient, EndpointResolver
from .storage import Cabinet
from .utils import HTTPClient, HTTPResponse
from .validation import SchemaValidator

__version__ = "0.1.0"

__all__ = [
    # Engine
    "APIClient",
    "EndpointResolver",
    "RequestDescriptor",
    "RequestParams",
    "merge_request_params",
    "ClientSettings",
    "DEFAULT_SERVICE_LIST",
    # Locations
    "LocationMatrix",
    "LocationDescriptor",
    "LocationContext",
    "LocationType",
    "DEFAULT_LOCATIONS",
    # Storage
    "Cabinet",
    "CacheType",
    # Session and events
    "AUTH_TOKEN_HEADER",
    "SessionProvider",
    "StaticSession",
    "BeforeRequestEvent",
    "EventStream",
    # Diagnostics
    "ExecutionLogItem",
    "ExecutionSummary",
    "ErrorSnapshot",
    # Transport
    "HTTPClient",
    "HTTPResponse",
    # Validation
    "SchemaValidator",
    # Exceptions
    "APIClientError",
    "LocationResolutionError",
    "EndpointDiscoveryError",
    "APIResponseError",
    "APITransportError",
    "APIRedirectError",
    "APIRequestError",
    "APIServerError",
    "ResponseValidationError",
]
