"""Zotero API client configuration.

A ``ZoteroClient`` is an immutable value holding everything needed to address
and authenticate requests: endpoint, protocol version, API key, library scope
and an optional transport. It is assembled and validated by ``ClientBuilder``.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

import httpx

from zotapi.exceptions import InvalidEndpoint, MissingCredentials
from zotapi.scope import LibraryScope, library_scope

DEFAULT_ENDPOINT = "https://api.zotero.org"
DEFAULT_VERSION = 3


@runtime_checkable
class Transport(Protocol):
    """Anything that can send a prepared request, such as ``httpx.Client``."""

    def send(self, request: httpx.Request) -> httpx.Response: ...


def parse_endpoint(raw: str | httpx.URL) -> httpx.URL:
    """Parse and normalize an API endpoint.

    Args:
        raw: Absolute http(s) URL of the API root.

    Returns:
        The endpoint URL, with a trailing slash on its path.

    Raises:
        InvalidEndpoint: If raw is not an absolute http(s) URL.
    """
    try:
        url = httpx.URL(raw)
    except (httpx.InvalidURL, TypeError) as e:
        raise InvalidEndpoint(str(raw), str(e)) from e

    if url.scheme not in ("http", "https") or not url.host:
        raise InvalidEndpoint(str(raw), "expected an absolute http(s) URL")
    if url.query or url.fragment:
        raise InvalidEndpoint(str(raw), "endpoint must not carry a query or fragment")

    # Relative resource paths are joined below the endpoint
    path = url.path if url.path.endswith("/") else f"{url.path}/"
    return url.copy_with(path=path)


@dataclass(frozen=True)
class ZoteroClient:
    """Immutable, validated client configuration.

    Build one with ``ClientBuilder``:

    Example:
        >>> client = (
        ...     ClientBuilder()
        ...     .api_key("your-api-key")
        ...     .scope(User("12345"))
        ...     .build()
        ... )
        >>> request = compose_request(client, "GET", "items")
    """

    endpoint: httpx.URL
    version: int
    api_key: str = field(repr=False)
    scope: LibraryScope | None = None
    transport: Transport | None = field(default=None, compare=False, repr=False)

    @classmethod
    def builder(cls) -> ClientBuilder:
        return ClientBuilder()

    @property
    def is_scoped(self) -> bool:
        return self.scope is not None

    def with_scope(self, scope: LibraryScope | None) -> ZoteroClient:
        """Return a copy of this client addressing another library."""
        return dataclasses.replace(self, scope=scope)

    def with_transport(self, transport: Transport | None) -> ZoteroClient:
        """Return a copy of this client sending through another transport."""
        return dataclasses.replace(self, transport=transport)


class ClientBuilder:
    """Validating builder for ``ZoteroClient``.

    Only the API key is required. The endpoint is validated as soon as it is
    set, so a bad URL fails here rather than on the first request.
    """

    def __init__(self):
        self._endpoint: httpx.URL | None = None
        self._version: int = DEFAULT_VERSION
        self._api_key: str | None = None
        self._scope: LibraryScope | None = None
        self._transport: Transport | None = None

    def endpoint(self, raw: str | httpx.URL) -> ClientBuilder:
        """Set the API root.

        Raises:
            InvalidEndpoint: If raw is not an absolute http(s) URL.
        """
        self._endpoint = parse_endpoint(raw)
        return self

    def api_key(self, key: str) -> ClientBuilder:
        self._api_key = key
        return self

    def version(self, version: int) -> ClientBuilder:
        if version < 1:
            raise ValueError(f"API version must be a positive integer, got {version}")
        self._version = version
        return self

    def scope(self, scope: LibraryScope | None) -> ClientBuilder:
        self._scope = scope
        return self

    def library(self, library_type: str, library_id: str | int) -> ClientBuilder:
        """Set the scope from "user"/"group" and a library ID."""
        return self.scope(library_scope(library_type, library_id))

    def transport(self, transport: Transport | None) -> ClientBuilder:
        self._transport = transport
        return self

    def build(self) -> ZoteroClient:
        """Build the client. No I/O happens here.

        Raises:
            MissingCredentials: If no API key was set.
        """
        if not self._api_key:
            raise MissingCredentials()

        return ZoteroClient(
            endpoint=self._endpoint or parse_endpoint(DEFAULT_ENDPOINT),
            version=self._version,
            api_key=self._api_key,
            scope=self._scope,
            transport=self._transport,
        )
