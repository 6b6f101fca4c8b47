"""Tests for request composition, execution and user discovery."""

import logging

import httpx
import pytest

from zotapi import (
    ClientBuilder,
    ComposeError,
    Conflict,
    DiscoveryFailed,
    Group,
    HTTPError,
    InvalidCredentials,
    InvalidPath,
    InvalidQuery,
    NotBlankURLError,
    PreConditionFailed,
    PreConditionRequired,
    RequestEntityTooLarge,
    ScopeRequired,
    TooManyRequests,
    TransportError,
    TransportTimeout,
    User,
    check_response,
    compose_request,
    execute,
    get_key_info,
    resolve_own_library,
    send,
)
from zotapi.composer import advised_delay, insert_headers, set_url

from helpers import responses


class TestSetUrl:
    """Test URL composition below the library prefix."""

    def test_user_library_items(self, client):
        """Should address items in a user library."""
        request = compose_request(client, "GET", "items")
        assert str(request.url) == "https://api.zotero.org/users/555/items"

    def test_group_library_items(self, builder):
        """Should address items in a group library."""
        client = builder.scope(Group("42")).build()
        request = compose_request(client, "GET", "items")
        assert str(request.url) == "https://api.zotero.org/groups/42/items"

    def test_nested_path(self, builder):
        """Should extend the prefix with multi-segment paths."""
        client = builder.scope(User("999")).build()
        request = compose_request(client, "GET", "collections/ABCD2345/items/top")
        assert str(request.url) == "https://api.zotero.org/users/999/collections/ABCD2345/items/top"

    def test_custom_endpoint_with_base_path(self):
        """Should join the library below an endpoint base path."""
        client = (
            ClientBuilder()
            .endpoint("http://localhost:23119/api")
            .api_key("12345")
            .scope(User("0"))
            .build()
        )
        request = compose_request(client, "GET", "items")
        assert str(request.url) == "http://localhost:23119/api/users/0/items"

    def test_args_become_query_parameters(self, client):
        """Should append ordered query parameters."""
        request = compose_request(client, "GET", "items", [("limit", "5"), ("sort", "title")])
        assert request.url.params.multi_items() == [("limit", "5"), ("sort", "title")]
        assert request.url.path == "/users/555/items"

    def test_duplicate_args_are_preserved(self, client):
        """Should keep repeated keys as repeated parameters."""
        request = compose_request(client, "GET", "items", [("tag", "a"), ("tag", "b")])
        assert request.url.params.get_list("tag") == ["a", "b"]

    def test_args_are_escaped(self, client):
        """Should escape reserved characters in parameter values."""
        request = compose_request(client, "GET", "items", [("q", "a&b=c")])
        assert request.url.params["q"] == "a&b=c"
        assert "a&b=c" not in str(request.url)

    def test_raw_query(self, client):
        """Should set a raw query string as-is."""
        request = compose_request(client, "GET", "items", query="limit=5&format=keys")
        assert request.url.query == b"limit=5&format=keys"

    def test_raw_query_wins_over_args(self, client):
        """Should replace args with the raw query when both are given."""
        request = compose_request(client, "GET", "items", [("limit", "5")], "start=10")
        assert str(request.url) == "https://api.zotero.org/users/555/items?start=10"

    def test_refuses_non_blank_url(self, client):
        """Should fail instead of composing onto an already composed URL."""
        request = compose_request(client, "GET", "items")
        with pytest.raises(NotBlankURLError):
            set_url(client, request, "items")

    def test_refuses_key_info_url(self, client):
        """Should fail when given the key-info request."""
        with pytest.raises(NotBlankURLError):
            set_url(client, get_key_info(client), "items")

    def test_requires_scope(self, builder):
        """Should fail on an unscoped client."""
        client = builder.build()
        request = httpx.Request("GET", client.endpoint)
        with pytest.raises(ScopeRequired, match="items"):
            set_url(client, request, "items")

    @pytest.mark.parametrize(
        "path",
        [
            "https://evil.example/x",
            "//evil.example/x",
            "/groups/1/items",
            "../../groups/1/items",
        ],
    )
    def test_rejects_paths_outside_library(self, client, path):
        """Should refuse paths that would address another host or library."""
        with pytest.raises(InvalidPath):
            compose_request(client, "GET", path)

    def test_rejected_path_leaves_request_blank(self, client):
        """Should leave the request URL untouched when the path is refused."""
        request = httpx.Request("GET", client.endpoint)
        with pytest.raises(InvalidPath, match="evil.example"):
            set_url(client, request, "https://evil.example/x")
        assert request.url == client.endpoint

    def test_path_error_is_a_compose_error(self, client):
        """Should report a refused path as a composition failure."""
        with pytest.raises(ComposeError):
            compose_request(client, "GET", "/users/555/items")

    def test_non_ascii_raw_query(self, client):
        """Should refuse a raw query that is not percent-encoded ASCII."""
        with pytest.raises(InvalidQuery) as exc_info:
            compose_request(client, "GET", "items", query="q=café")

        assert isinstance(exc_info.value, ComposeError)
        assert isinstance(exc_info.value.__cause__, UnicodeEncodeError)

    def test_encoded_raw_query(self, client):
        """Should accept the percent-encoded form of the same query."""
        request = compose_request(client, "GET", "items", query="q=caf%C3%A9")
        assert request.url.params["q"] == "café"


class TestHeaders:
    """Test authentication header injection."""

    def test_every_request_carries_headers(self, client):
        """Should send the protocol version and bearer token."""
        request = compose_request(client, "GET", "items")
        assert request.headers["Zotero-API-Version"] == "3"
        assert request.headers["Authorization"] == "Bearer 12345"

    def test_configured_version_is_sent(self, builder):
        """Should send the configured protocol version."""
        client = builder.version(2).scope(User("1")).build()
        request = compose_request(client, "GET", "items")
        assert request.headers["Zotero-API-Version"] == "2"

    def test_extra_headers_and_json_body(self, client):
        """Should keep extra headers and encode the JSON body."""
        request = compose_request(
            client,
            "POST",
            "items",
            json=[{"itemType": "book"}],
            headers={"Zotero-Write-Token": "abc"},
        )
        assert request.method == "POST"
        assert request.headers["Zotero-Write-Token"] == "abc"
        assert request.headers["Content-Type"] == "application/json"
        assert b'"itemType"' in request.content

    @pytest.mark.parametrize("api_key", ["bad key", "line\nbreak", "ключ"])
    def test_invalid_api_key(self, builder, api_key):
        """Should fail when the key cannot be a header value."""
        client = builder.api_key(api_key).scope(User("1")).build()
        with pytest.raises(InvalidCredentials):
            compose_request(client, "GET", "items")

    def test_insert_headers_on_any_request(self, client):
        """Should add headers to a request built elsewhere."""
        request = httpx.Request("GET", "https://api.zotero.org/itemTypes")
        insert_headers(client, request)
        assert request.headers["Authorization"] == "Bearer 12345"


class TestKeyInfo:
    """Test the key-info request."""

    def test_key_info_url(self, builder):
        """Should address keys/{apiKey} directly below the endpoint."""
        request = get_key_info(builder.build())
        assert request.method == "GET"
        assert str(request.url) == "https://api.zotero.org/keys/12345"

    def test_ignores_scope(self, client):
        """Should not apply the library prefix."""
        assert str(get_key_info(client).url) == "https://api.zotero.org/keys/12345"

    def test_carries_headers(self, builder):
        """Should authenticate the key-info request too."""
        request = get_key_info(builder.build())
        assert request.headers["Zotero-API-Version"] == "3"
        assert request.headers["Authorization"] == "Bearer 12345"


class TestExecute:
    """Test sending requests through the transport."""

    def test_uses_configured_transport(self, client, transport_factory):
        """Should send through the client's transport."""
        transport = transport_factory(responses((200, [], None)))
        client = client.with_transport(transport)

        response = execute(client, compose_request(client, "GET", "items"))

        assert response.status_code == 200
        assert len(transport.requests) == 1
        assert transport.requests[0].url.path == "/users/555/items"

    def test_one_off_transport_warns(self, client, caplog, monkeypatch):
        """Should create a one-off client and warn about performance."""
        one_off = httpx.Client(transport=httpx.MockTransport(responses((200, [], None))))
        monkeypatch.setattr(httpx, "Client", lambda *args, **kwargs: one_off)

        with caplog.at_level(logging.WARNING, logger="zotapi.composer"):
            response = execute(client, compose_request(client, "GET", "items"))

        assert response.status_code == 200
        assert "may impact performance" in caplog.text
        assert one_off.is_closed

    def test_timeout_is_distinct(self, client, transport_factory):
        """Should raise TransportTimeout for timeouts."""

        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = client.with_transport(transport_factory(handler))
        with pytest.raises(TransportTimeout):
            execute(client, compose_request(client, "GET", "items"))

    def test_connection_error(self, client, transport_factory):
        """Should raise TransportError for connection failures."""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = client.with_transport(transport_factory(handler))
        with pytest.raises(TransportError) as exc_info:
            execute(client, compose_request(client, "GET", "items"))

        assert not isinstance(exc_info.value, TransportTimeout)
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


class TestCheckResponse:
    """Test HTTP status classification."""

    @pytest.mark.parametrize(
        "status,error_class",
        [
            (409, Conflict),
            (412, PreConditionFailed),
            (413, RequestEntityTooLarge),
            (428, PreConditionRequired),
            (429, TooManyRequests),
        ],
    )
    def test_named_errors(self, status, error_class):
        """Should raise the named error for each documented status."""
        with pytest.raises(error_class) as exc_info:
            check_response(httpx.Response(status))
        assert exc_info.value.status_code == status

    @pytest.mark.parametrize("status", [304, 400, 403, 404, 500, 503])
    def test_generic_http_error(self, status):
        """Should raise HTTPError with the code for other statuses."""
        with pytest.raises(HTTPError) as exc_info:
            check_response(httpx.Response(status))
        assert type(exc_info.value) is HTTPError
        assert exc_info.value.status_code == status
        assert str(status) in str(exc_info.value)

    @pytest.mark.parametrize("status", [200, 201, 204])
    def test_success_passes_through(self, status):
        """Should return successful responses unchanged."""
        response = httpx.Response(status)
        assert check_response(response) is response

    def test_retry_after_is_carried(self):
        """Should attach the server-advised wait to the error."""
        with pytest.raises(TooManyRequests) as exc_info:
            check_response(httpx.Response(429, headers={"Retry-After": "5"}))
        assert exc_info.value.retry_after == 5.0

    def test_backoff_on_success_is_logged(self, caplog):
        """Should warn when a successful response asks for a backoff."""
        with caplog.at_level(logging.WARNING, logger="zotapi.composer"):
            check_response(httpx.Response(200, headers={"Backoff": "10"}))
        assert "backoff of 10s" in caplog.text

    def test_advised_delay(self):
        """Should take the longer of Backoff and Retry-After."""
        headers = httpx.Headers({"Backoff": "3", "Retry-After": "7"})
        assert advised_delay(headers) == 7.0
        assert advised_delay(httpx.Headers({})) is None
        assert advised_delay(httpx.Headers({"Retry-After": "soon"})) is None

    def test_send_checks_status(self, client, transport_factory):
        """Should compose, execute and classify in one call."""
        client = client.with_transport(transport_factory(responses(409)))
        with pytest.raises(Conflict):
            send(client, "GET", "items")


class TestResolveOwnLibrary:
    """Test discovery of the key's user library."""

    def test_scopes_client_to_user(self, builder, transport_factory):
        """Should return a client scoped to the key's user."""
        transport = transport_factory(responses((200, {"key": "12345", "userID": 555}, None)))
        client = builder.transport(transport).build()

        resolved = resolve_own_library(client)

        assert resolved.scope == User("555")
        assert client.scope is None
        assert str(transport.requests[0].url) == "https://api.zotero.org/keys/12345"

    def test_accepts_string_user_id(self, builder, transport_factory):
        """Should accept a userID sent as a string."""
        transport = transport_factory(responses((200, {"userID": "555"}, None)))
        resolved = resolve_own_library(builder.transport(transport).build())
        assert resolved.scope == User("555")

    def test_is_idempotent(self, builder, transport_factory):
        """Should resolve the same scope every time for the same account."""
        transport = transport_factory(responses((200, {"userID": 555}, None)))
        client = builder.transport(transport).build()

        first = resolve_own_library(client)
        second = resolve_own_library(first)

        assert first.scope == second.scope == User("555")

    def test_replaces_existing_scope(self, builder, transport_factory):
        """Should rebind a group-scoped client to the user library."""
        transport = transport_factory(responses((200, {"userID": 7}, None)))
        client = builder.scope(Group("42")).transport(transport).build()
        assert resolve_own_library(client).scope == User("7")

    def test_scoped_requests_work_after_resolution(self, builder, transport_factory):
        """Should allow library requests once the scope is resolved."""
        transport = transport_factory(responses((200, {"userID": 555}, None)))
        client = builder.transport(transport).build()

        with pytest.raises(ScopeRequired):
            compose_request(client, "GET", "items")

        resolved = resolve_own_library(client)
        request = compose_request(resolved, "GET", "items")
        assert str(request.url) == "https://api.zotero.org/users/555/items"

    @pytest.mark.parametrize(
        "body",
        [{"key": "12345"}, {"userID": None}, {"userID": True}, {"userID": ""}, ["userID"]],
    )
    def test_missing_user_id(self, builder, transport_factory, body):
        """Should raise DiscoveryFailed when userID is missing or unusable."""
        transport = transport_factory(responses((200, body, None)))
        with pytest.raises(DiscoveryFailed):
            resolve_own_library(builder.transport(transport).build())

    def test_unparseable_body(self, builder, transport_factory):
        """Should raise DiscoveryFailed when the body is not JSON."""
        transport = transport_factory(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(DiscoveryFailed, match="JSON"):
            resolve_own_library(builder.transport(transport).build())

    def test_http_error_propagates(self, builder, transport_factory):
        """Should raise the HTTP error for a rejected key."""
        transport = transport_factory(responses(403))
        with pytest.raises(HTTPError) as exc_info:
            resolve_own_library(builder.transport(transport).build())
        assert exc_info.value.status_code == 403


class TestEndToEnd:
    """Build, fail without scope, then address a user library."""

    def test_scope_required_then_user_url(self):
        """Should require a scope, then compose the user items URL."""
        client = ClientBuilder().api_key("12345").build()
        with pytest.raises(ScopeRequired):
            compose_request(client, "GET", "items")

        client = client.with_scope(User("555"))
        request = compose_request(client, "GET", "items")
        assert str(request.url) == "https://api.zotero.org/users/555/items"
        assert request.headers["Authorization"] == "Bearer 12345"
