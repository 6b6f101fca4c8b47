"""Zotero API exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx


class ZoteroError(Exception):
    """Base exception for all Zotero API client errors."""

    pass


# Construction time


class ConfigError(ZoteroError):
    """Raised when the client configuration is invalid."""

    pass


class InvalidEndpoint(ConfigError):
    """Raised when the endpoint is not an absolute http(s) URL."""

    def __init__(self, endpoint: str, reason: str | None = None):
        self.endpoint = endpoint
        message = f"`{endpoint}` is not a valid API endpoint"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class MissingCredentials(ConfigError):
    """Raised when a client is built without an API key."""

    def __init__(self, message: str = "Zotero API key not provided"):
        super().__init__(message)


# Composition time


class ComposeError(ZoteroError):
    """Raised when a request cannot be composed."""

    pass


class NotBlankURLError(ComposeError):
    """Raised when composing onto a URL that is no longer the bare endpoint."""

    def __init__(self, url: str, endpoint: str):
        self.url = url
        self.endpoint = endpoint
        super().__init__(f"Initial URL `{url}` must be the endpoint `{endpoint}`")


class ScopeRequired(ComposeError):
    """Raised when a library-scoped request is composed on an unscoped client."""

    def __init__(self, path: str | None = None):
        self.path = path
        message = "A user or group library scope is required"
        if path:
            message = f"{message} to request `{path}`"
        super().__init__(message)


class InvalidCredentials(ComposeError):
    """Raised when the API key cannot be sent as a header value."""

    def __init__(self, message: str = "API key is not a valid header value"):
        super().__init__(message)


class InvalidPath(ComposeError):
    """Raised when a resource path would leave the client's library."""

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"`{path}` is not a path inside the library: {reason}")


class InvalidQuery(ComposeError):
    """Raised when a raw query string is not ASCII."""

    def __init__(self, query: str):
        self.query = query
        super().__init__(f"raw query `{query}` must be ASCII and already percent-encoded")


# Network


class TransportError(ZoteroError):
    """Raised when the request never produced a response."""

    pass


class TransportTimeout(TransportError):
    """Raised when the transport timed out or the request was cancelled."""

    pass


# Server-reported status


class HTTPError(ZoteroError):
    """Raised for a non-2xx response.

    Attributes:
        status_code: HTTP status code of the response.
        response: The response itself, when available.
        retry_after: Seconds the server asked the client to wait, if it said so.
    """

    default_message = "HTTP error"

    def __init__(
        self,
        status_code: int,
        response: httpx.Response | None = None,
        retry_after: float | None = None,
        message: str | None = None,
    ):
        self.status_code = status_code
        self.response = response
        self.retry_after = retry_after
        super().__init__(message or f"{self.default_message}: `{status_code}`")


class Conflict(HTTPError):
    """409: the target library is locked."""

    default_message = "library is locked"

    def __init__(
        self, response: httpx.Response | None = None, retry_after: float | None = None
    ):
        super().__init__(409, response, retry_after, self.default_message)


class PreConditionFailed(HTTPError):
    """412: the object changed on the server, or the write token was already used."""

    default_message = "library or object has been modified, or Zotero-Write-Token already submitted"

    def __init__(
        self, response: httpx.Response | None = None, retry_after: float | None = None
    ):
        super().__init__(412, response, retry_after, self.default_message)


class RequestEntityTooLarge(HTTPError):
    """413: the upload would exceed the library owner's storage quota."""

    default_message = "upload would exceed the storage quota of library owner"

    def __init__(
        self, response: httpx.Response | None = None, retry_after: float | None = None
    ):
        super().__init__(413, response, retry_after, self.default_message)


class PreConditionRequired(HTTPError):
    """428: a version precondition header was required but missing."""

    default_message = "If-Match, If-None-Match or If-Unmodified-Since-Version was not provided"

    def __init__(
        self, response: httpx.Response | None = None, retry_after: float | None = None
    ):
        super().__init__(428, response, retry_after, self.default_message)


class TooManyRequests(HTTPError):
    """429: rate limited, or too many unfinished uploads."""

    default_message = "too many requests"

    def __init__(
        self, response: httpx.Response | None = None, retry_after: float | None = None
    ):
        super().__init__(429, response, retry_after, self.default_message)


STATUS_ERRORS: dict[int, type[HTTPError]] = {
    409: Conflict,
    412: PreConditionFailed,
    413: RequestEntityTooLarge,
    428: PreConditionRequired,
    429: TooManyRequests,
}


class DiscoveryFailed(ZoteroError):
    """Raised when the key-info response does not identify a user."""

    pass


class TooManyRetries(ZoteroError):
    """Raised when the required backoff would exceed the maximum wait."""

    def __init__(self, delay: float, max_delay: float):
        self.delay = delay
        self.max_delay = max_delay
        super().__init__(
            f"backoff period for new requests ({delay:g}s) exceeds {max_delay:g}s"
        )


# Caller input for read/write helpers


class ValidationError(ZoteroError):
    """Base exception for invalid arguments to API helpers."""

    pass


class ParamNotPassed(ValidationError):
    def __init__(self, required: str):
        self.required = required
        super().__init__(f"required parameter `{required}` not passed")


class InvalidAPICall(ValidationError):
    def __init__(self, call: str):
        self.call = call
        super().__init__(f"`{call}` is not a valid API call")


class UnsupportedParams(ValidationError):
    def __init__(self, call: str, unsupported: list[str]):
        self.call = call
        self.unsupported = unsupported
        super().__init__(f"{unsupported} are not supported in the API call `{call}`")


class TooManyItems(ValidationError):
    def __init__(self, count: int, limit: int):
        self.count = count
        self.limit = limit
        super().__init__(f"too many objects passed to a write method ({count} > {limit})")


class InvalidItemFields(ValidationError):
    def __init__(self, invalid: list[str]):
        self.invalid = invalid
        super().__init__(f"create/update objects with invalid fields {invalid}")


class ResourceNotFound(ValidationError):
    def __init__(self, resource: str):
        self.resource = resource
        super().__init__(f"resource `{resource}` not found")
