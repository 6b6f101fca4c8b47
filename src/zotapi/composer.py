"""Request composition and execution against a Zotero library.

Turns a ``ZoteroClient`` plus a relative resource path into an absolute,
authenticated ``httpx.Request``, sends it, and classifies failures.
"""

import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any
from urllib.parse import quote

import httpx

from zotapi.client import ZoteroClient
from zotapi.exceptions import (
    STATUS_ERRORS,
    DiscoveryFailed,
    HTTPError,
    InvalidCredentials,
    InvalidPath,
    InvalidQuery,
    NotBlankURLError,
    ScopeRequired,
    TransportError,
    TransportTimeout,
)
from zotapi.scope import User, library_prefix

logger = logging.getLogger(__name__)

# Visible ASCII only: anything else cannot travel in a header value
_HEADER_TOKEN = re.compile(r"[\x21-\x7e]+")

QueryArgs = Sequence[tuple[str, str]]


def set_url(
    client: ZoteroClient,
    request: httpx.Request,
    path: str,
    args: QueryArgs | None = None,
    query: str | None = None,
) -> None:
    """Address a fresh request to a resource in the client's library.

    Args:
        client: Client whose endpoint and scope are used.
        request: Request whose URL is still exactly the client endpoint.
        path: Resource path relative to the library, e.g. "items" or
            "collections/ABCD2345/items".
        args: Query parameters as ordered (key, value) pairs. Repeated keys
            are kept as repeated parameters.
        query: Raw, already-encoded query string. Replaces anything set by
            args when both are given.

    Raises:
        NotBlankURLError: If the request URL has already been composed.
        ScopeRequired: If the client has no library scope.
        InvalidPath: If path is absolute or climbs out of the library.
        InvalidQuery: If the raw query is not ASCII.
    """
    if request.url != client.endpoint:
        raise NotBlankURLError(str(request.url), str(client.endpoint))
    if client.scope is None:
        raise ScopeRequired(path)

    base = client.endpoint.join(library_prefix(client.scope))
    url = _join_library_path(base, path)
    if args:
        url = url.copy_with(params=httpx.QueryParams([*url.params.multi_items(), *args]))
    if query is not None:
        try:
            raw_query = query.encode("ascii")
        except UnicodeEncodeError as e:
            raise InvalidQuery(query) from e
        url = url.copy_with(query=raw_query)

    request.url = url


def _join_library_path(base: httpx.URL, path: str) -> httpx.URL:
    """Join a relative path onto the library base, refusing to leave it."""
    if path.startswith("/"):
        raise InvalidPath(path, "must be relative to the library")
    try:
        if httpx.URL(path).is_absolute_url:
            raise InvalidPath(path, "must not carry its own host")
        url = base.join(path)
    except httpx.InvalidURL as e:
        raise InvalidPath(path, str(e)) from e

    if not str(url).startswith(str(base)):
        raise InvalidPath(path, "resolves outside the library")
    return url


def insert_headers(client: ZoteroClient, request: httpx.Request) -> None:
    """Add the protocol version and bearer token headers.

    Raises:
        InvalidCredentials: If the API key cannot be sent as a header value.
    """
    if not _HEADER_TOKEN.fullmatch(client.api_key):
        raise InvalidCredentials()

    request.headers["Zotero-API-Version"] = str(client.version)
    request.headers["Authorization"] = f"Bearer {client.api_key}"


def compose_request(
    client: ZoteroClient,
    method: str,
    path: str,
    args: QueryArgs | None = None,
    query: str | None = None,
    *,
    json: Any = None,
    headers: Mapping[str, str] | None = None,
) -> httpx.Request:
    """Compose an authenticated request for a resource in the client's library.

    No network I/O happens here. See ``set_url`` for how path, args and query
    combine.

    Args:
        client: Client configuration.
        method: HTTP method.
        path: Resource path relative to the library.
        args: Query parameters as ordered (key, value) pairs.
        query: Raw query string; wins over args.
        json: Optional JSON body.
        headers: Extra headers, e.g. "If-Unmodified-Since-Version".

    Returns:
        A new request, never shared with another call.

    Raises:
        ScopeRequired: If the client has no library scope.
        InvalidPath: If path is absolute or climbs out of the library.
        InvalidCredentials: If the API key is not a valid header value.
    """
    request = httpx.Request(method, client.endpoint, headers=headers, json=json)
    set_url(client, request, path, args, query)
    insert_headers(client, request)
    logger.debug(f"Composed {request.method} {request.url}")
    return request


def get_key_info(client: ZoteroClient) -> httpx.Request:
    """Compose a request for information about the client's API key.

    The response includes ``userID``, the user the key belongs to. This
    request does not depend on the library scope.

    **WARNING** the API key travels in the URL path, where proxies and access
    logs can record it. Prefer OAuth where it is available.
    """
    request = httpx.Request(
        "GET", client.endpoint.join(f"keys/{quote(client.api_key, safe='')}")
    )
    insert_headers(client, request)
    logger.debug(f"Composed GET {client.endpoint.join('keys/<redacted>')}")
    return request


def execute(client: ZoteroClient, request: httpx.Request) -> httpx.Response:
    """Send a request through the client's transport.

    Without a configured transport a one-off ``httpx.Client`` is opened and
    closed for this single call, so no connection is reused.

    Raises:
        TransportTimeout: If the transport timed out.
        TransportError: If no response was received for any other reason.
    """
    try:
        if client.transport is not None:
            return client.transport.send(request)

        logger.warning("No transport supplied, this may impact performance")
        logger.info("Creating a one-off HTTP client")
        with httpx.Client() as one_off:
            return one_off.send(request)
    except httpx.TimeoutException as e:
        raise TransportTimeout(f"Request timed out: {e}") from e
    except httpx.RequestError as e:
        raise TransportError(f"Request failed: {e}") from e


def advised_delay(headers: httpx.Headers) -> float | None:
    """Get the wait in seconds requested by "Backoff" or "Retry-After" headers."""
    delays = []
    for name in ("Backoff", "Retry-After"):
        value = headers.get(name)
        if value is None:
            continue
        try:
            delays.append(float(value))
        except ValueError:
            logger.debug(f"Ignoring non-numeric {name} header: {value!r}")
    return max(delays) if delays else None


def check_response(response: httpx.Response) -> httpx.Response:
    """Raise the matching error for a non-2xx response.

    409, 412, 413, 428 and 429 raise their named errors; every other non-2xx
    status raises ``HTTPError`` carrying the status code.

    Returns:
        The response, when successful.
    """
    delay = advised_delay(response.headers)

    if response.is_success:
        if delay is not None:
            logger.warning(f"Server requested a backoff of {delay:g}s before the next request")
        return response

    error_class = STATUS_ERRORS.get(response.status_code)
    if error_class is not None:
        raise error_class(response, delay)
    raise HTTPError(response.status_code, response, delay)


def send(
    client: ZoteroClient,
    method: str,
    path: str,
    args: QueryArgs | None = None,
    query: str | None = None,
    *,
    json: Any = None,
    headers: Mapping[str, str] | None = None,
) -> httpx.Response:
    """Compose, execute and check a library-scoped request."""
    request = compose_request(client, method, path, args, query, json=json, headers=headers)
    return check_response(execute(client, request))


def resolve_own_library(client: ZoteroClient) -> ZoteroClient:
    """Discover the API key's user and return a client scoped to that user.

    The given client is left untouched.

    Raises:
        DiscoveryFailed: If the response does not carry a usable ``userID``.
        HTTPError: If the key-info request was rejected.
        TransportError: If no response was received.
    """
    response = check_response(execute(client, get_key_info(client)))

    try:
        payload = response.json()
    except ValueError as e:
        raise DiscoveryFailed(f"Key info response is not valid JSON: {e}") from e

    user_id = payload.get("userID") if isinstance(payload, dict) else None
    # bool is an int subclass, but never a user ID
    if isinstance(user_id, bool) or not isinstance(user_id, int | str) or not str(user_id):
        raise DiscoveryFailed("Key info response has no usable `userID` field")

    logger.info(f"Resolved API key to user library {user_id}")
    return client.with_scope(User(str(user_id)))
