"""Zotero Web API client.

Build a client, address a user or group library, and compose authenticated
requests against it.

Usage:
    from zotapi import ClientBuilder, User, compose_request, resolve_own_library

    client = ClientBuilder().api_key("your-api-key").scope(User("12345")).build()
    request = compose_request(client, "GET", "items")

    # Or discover the key's own library
    client = resolve_own_library(ClientBuilder().api_key("your-api-key").build())
"""

from zotapi.api import ZoteroAPI
from zotapi.backoff import BackoffPolicy, send_with_backoff
from zotapi.client import ClientBuilder, Transport, ZoteroClient
from zotapi.composer import (
    check_response,
    compose_request,
    execute,
    get_key_info,
    resolve_own_library,
    send,
)
from zotapi.exceptions import (
    ComposeError,
    ConfigError,
    Conflict,
    DiscoveryFailed,
    HTTPError,
    InvalidAPICall,
    InvalidCredentials,
    InvalidEndpoint,
    InvalidItemFields,
    InvalidPath,
    InvalidQuery,
    MissingCredentials,
    NotBlankURLError,
    ParamNotPassed,
    PreConditionFailed,
    PreConditionRequired,
    RequestEntityTooLarge,
    ResourceNotFound,
    ScopeRequired,
    TooManyItems,
    TooManyRequests,
    TooManyRetries,
    TransportError,
    TransportTimeout,
    UnsupportedParams,
    ValidationError,
    ZoteroError,
)
from zotapi.scope import Group, LibraryScope, User, library_scope

__all__ = [
    "ZoteroAPI",
    "ZoteroClient",
    "ClientBuilder",
    "Transport",
    "BackoffPolicy",
    "LibraryScope",
    "User",
    "Group",
    "library_scope",
    "compose_request",
    "get_key_info",
    "execute",
    "check_response",
    "send",
    "send_with_backoff",
    "resolve_own_library",
    "ZoteroError",
    "ConfigError",
    "InvalidEndpoint",
    "MissingCredentials",
    "ComposeError",
    "NotBlankURLError",
    "ScopeRequired",
    "InvalidCredentials",
    "InvalidPath",
    "InvalidQuery",
    "TransportError",
    "TransportTimeout",
    "HTTPError",
    "Conflict",
    "PreConditionFailed",
    "RequestEntityTooLarge",
    "PreConditionRequired",
    "TooManyRequests",
    "DiscoveryFailed",
    "TooManyRetries",
    "ValidationError",
    "ParamNotPassed",
    "InvalidAPICall",
    "UnsupportedParams",
    "TooManyItems",
    "InvalidItemFields",
    "ResourceNotFound",
]
