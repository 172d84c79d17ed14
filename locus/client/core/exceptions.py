"""Custom exception hierarchy."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..utils.http import HTTPResponse


class APIClientError(Exception):
    """Base exception for all library errors."""

    pass


class LocationResolutionError(APIClientError):
    """No location descriptor could be resolved where a URL is mandatory."""

    def __init__(
        self,
        message: str,
        loc_type_id: str | None = None,
        environment: str | None = None,
        residency: str | None = None,
    ) -> None:
        super().__init__(message)
        self.loc_type_id = loc_type_id
        self.environment = environment
        self.residency = residency


class EndpointDiscoveryError(APIClientError):
    """The endpoints service could not map services to hosts for an account.

    Recovered internally: callers fall back to the default stack URL.
    """

    def __init__(self, message: str, account_id: str | None = None) -> None:
        super().__init__(message)
        self.account_id = account_id


class APIResponseError(APIClientError):
    """A request did not produce a 2xx response.

    Carries the response (when one was received) so callers can inspect
    status, headers and payload.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        response: HTTPResponse | None = None,
        service_name: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response = response
        self.service_name = service_name

    @property
    def data(self) -> Any:
        return self.response.data if self.response is not None else None


class APITransportError(APIResponseError):
    """No usable response: network failure, timeout or status 0."""

    pass


class APIRedirectError(APIResponseError):
    """Unexpected 3xx response."""

    pass


class APIRequestError(APIResponseError):
    """4xx response. Never retried."""

    pass


class APIServerError(APIResponseError):
    """5xx response."""

    pass


class ResponseValidationError(APIClientError):
    """Response payload does not match its JSON schema."""

    def __init__(
        self,
        message: str,
        schema_id: str | None = None,
        errors: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.schema_id = schema_id
        self.errors = errors or []


def error_for_status(
    status: int,
    message: str,
    *,
    response: HTTPResponse | None = None,
    service_name: str | None = None,
) -> APIResponseError:
    """Build the exception class matching an abnormal status code."""
    if 300 <= status < 400:
        error_class: type[APIResponseError] = APIRedirectError
    elif 400 <= status < 500:
        error_class = APIRequestError
    elif status >= 500:
        error_class = APIServerError
    else:
        error_class = APITransportError
    return error_class(message, status_code=status, response=response, service_name=service_name)
