"""Core components."""

from .config import DEFAULT_SERVICE_LIST, ClientSettings
from .enums import CacheType, LocationType, location_key
from .exceptions import (
    APIClientError,
    APIRedirectError,
    APIRequestError,
    APIResponseError,
    APIServerError,
    APITransportError,
    EndpointDiscoveryError,
    LocationResolutionError,
    ResponseValidationError,
    error_for_status,
)
from .request import RequestParams, default_service_params, merge_request_params
from .session import AUTH_TOKEN_HEADER, SessionProvider, StaticSession

__all__ = [
    "ClientSettings",
    "DEFAULT_SERVICE_LIST",
    "CacheType",
    "LocationType",
    "location_key",
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
    "error_for_status",
    # Requests
    "RequestParams",
    "merge_request_params",
    "default_service_params",
    # Session
    "AUTH_TOKEN_HEADER",
    "SessionProvider",
    "StaticSession",
]
