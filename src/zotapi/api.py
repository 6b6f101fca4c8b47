"""High-level access to a Zotero library.

Provides validated read and write helpers on top of the request composer.
Payloads are returned as decoded JSON; modelling them is left to the caller.
"""

import logging
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from zotapi.backoff import BackoffPolicy, send_with_backoff
from zotapi.client import ZoteroClient
from zotapi.composer import check_response, execute, get_key_info, resolve_own_library
from zotapi.exceptions import (
    HTTPError,
    InvalidAPICall,
    InvalidItemFields,
    ParamNotPassed,
    ResourceNotFound,
    ScopeRequired,
    TooManyItems,
    UnsupportedParams,
)
from zotapi.scope import Group, User

logger = logging.getLogger(__name__)

# Objects per write request accepted by the API
MAX_WRITE_OBJECTS = 50

_FORMAT_PARAMS = {"format", "include", "style", "linkwrap", "locale"}
_PAGING_PARAMS = {"limit", "start", "sort", "direction"}
_SEARCH_PARAMS = {"q", "qmode", "itemType", "tag", "since", "includeTrashed"}

ITEM_PARAMS = frozenset(_FORMAT_PARAMS | _PAGING_PARAMS | _SEARCH_PARAMS | {"itemKey"})
SINGLE_OBJECT_PARAMS = frozenset(_FORMAT_PARAMS)
COLLECTION_PARAMS = frozenset(_PAGING_PARAMS | {"format", "since", "collectionKey"})
TAG_PARAMS = frozenset(_PAGING_PARAMS | {"format", "q", "qmode", "since"})


@dataclass(frozen=True)
class APICall:
    """A read call: its path below the library and the query parameters it accepts.

    ``path`` may contain a ``{key}`` placeholder, filled from ``key_name``.
    """

    path: str
    params: frozenset[str]
    key_name: str | None = None

    def resolve(self, key: str | None) -> str:
        if self.key_name is None:
            return self.path
        if not key:
            raise ParamNotPassed(self.key_name)
        return self.path.format(key=quote(key, safe=""))


CALLS: dict[str, APICall] = {
    "items": APICall("items", ITEM_PARAMS),
    "top_items": APICall("items/top", ITEM_PARAMS),
    "trash": APICall("items/trash", ITEM_PARAMS),
    "item": APICall("items/{key}", SINGLE_OBJECT_PARAMS, "item_key"),
    "item_children": APICall("items/{key}/children", ITEM_PARAMS, "item_key"),
    "collections": APICall("collections", COLLECTION_PARAMS),
    "top_collections": APICall("collections/top", COLLECTION_PARAMS),
    "collection": APICall("collections/{key}", frozenset({"format"}), "collection_key"),
    "subcollections": APICall("collections/{key}/collections", COLLECTION_PARAMS, "collection_key"),
    "collection_items": APICall("collections/{key}/items", ITEM_PARAMS, "collection_key"),
    "tags": APICall("tags", TAG_PARAMS),
    "searches": APICall("searches", frozenset({"format"})),
}


def query_args(params: Mapping[str, Any]) -> list[tuple[str, str]]:
    """Flatten keyword parameters into ordered query pairs.

    Lists and tuples become repeated parameters, booleans become "1"/"0",
    and None values are dropped.
    """
    args = []
    for name, value in params.items():
        if value is None:
            continue
        values = value if isinstance(value, list | tuple) else [value]
        for v in values:
            if isinstance(v, bool):
                v = int(v)
            args.append((name, str(v)))
    return args


class ZoteroAPI:
    """Validated read/write access to one Zotero library.

    Owns an ``httpx.Client`` when the given client has no transport, and
    closes it on ``close()``.

    Example:
        >>> client = ClientBuilder().api_key("your-api-key").build()
        >>> with ZoteroAPI(client) as zot:
        ...     zot.resolve_own_library()
        ...     items = zot.items(limit=10)
    """

    def __init__(
        self,
        client: ZoteroClient,
        policy: BackoffPolicy | None = None,
        timeout: float = 30.0,
    ):
        """Initialize the API wrapper.

        Args:
            client: Built client configuration. May be unscoped until
                ``resolve_own_library`` is called.
            policy: Backoff policy for 409/429 responses.
            timeout: Timeout for the transport created when client has none.
        """
        self._owns_transport = client.transport is None
        if self._owns_transport:
            client = client.with_transport(httpx.Client(timeout=timeout))
        self.client = client
        self.policy = policy or BackoffPolicy()

    @classmethod
    def from_env(cls, **kwargs) -> "ZoteroAPI":
        """Create from ZOTERO_* environment variables (see ``zotapi.config``)."""
        from zotapi.config import builder_from_env

        return cls(builder_from_env().build(), **kwargs)

    # Key and scope

    def key_info(self) -> dict[str, Any]:
        """Get information about the API key, including its ``userID``."""
        response = check_response(execute(self.client, get_key_info(self.client)))
        return response.json()

    def resolve_own_library(self) -> ZoteroClient:
        """Scope this wrapper to the API key's own user library."""
        self.client = resolve_own_library(self.client)
        return self.client

    # Reads

    def call(self, name: str, key: str | None = None, **params) -> Any:
        """Run a named read call.

        Args:
            name: One of ``CALLS``.
            key: Item or collection key, for calls that address one object.
            **params: Query parameters supported by the call.

        Returns:
            Decoded JSON, or text when a non-JSON ``format`` was requested.

        Raises:
            InvalidAPICall: If name is not a known call.
            ParamNotPassed: If the call needs a key and none was given.
            UnsupportedParams: If any parameter is not accepted by the call.
        """
        api_call = CALLS.get(name)
        if api_call is None:
            raise InvalidAPICall(name)

        path = api_call.resolve(key)
        unsupported = sorted(set(params) - api_call.params)
        if unsupported:
            raise UnsupportedParams(name, unsupported)

        response = send_with_backoff(
            self.client, "GET", path, query_args(params), policy=self.policy
        )
        response_format = params.get("format", "json")
        if response_format == "keys":
            return response.text.split()
        if response_format in ("json", "versions"):
            return response.json()
        return response.text

    def items(self, **params) -> list[dict[str, Any]]:
        return self.call("items", **params)

    def top_items(self, **params) -> list[dict[str, Any]]:
        return self.call("top_items", **params)

    def item(self, item_key: str, **params) -> dict[str, Any]:
        """Get a single item.

        Raises:
            ResourceNotFound: If no item has this key.
        """
        return self._get_object("item", item_key, **params)

    def item_children(self, item_key: str, **params) -> list[dict[str, Any]]:
        return self.call("item_children", item_key, **params)

    def search(self, query: str, **params) -> list[dict[str, Any]]:
        """Search items by title, creator and year (or everything with qmode="everything")."""
        if not query:
            raise ParamNotPassed("query")
        return self.call("items", q=query, **params)

    def collections(self, **params) -> list[dict[str, Any]]:
        return self.call("collections", **params)

    def collection(self, collection_key: str, **params) -> dict[str, Any]:
        return self._get_object("collection", collection_key, **params)

    def collection_items(self, collection_key: str, **params) -> list[dict[str, Any]]:
        return self.call("collection_items", collection_key, **params)

    def tags(self, **params) -> list[dict[str, Any]]:
        return self.call("tags", **params)

    def _get_object(self, name: str, key: str, **params) -> Any:
        try:
            return self.call(name, key, **params)
        except HTTPError as e:
            if e.status_code == 404:
                raise ResourceNotFound(CALLS[name].resolve(key)) from e
            raise

    # Writes

    def create_items(self, items: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
        """Create up to 50 items.

        Returns:
            The API's write report with "successful", "unchanged" and "failed".

        Raises:
            TooManyItems: If more than 50 items are passed.
            InvalidItemFields: If an item is not an object or has no itemType.
        """
        return self._create("items", items, required="itemType")

    def create_collections(self, collections: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
        """Create up to 50 collections, each with at least a "name"."""
        return self._create("collections", collections, required="name")

    def update_item(self, item: Mapping[str, Any]) -> None:
        """Patch an item. ``item`` must carry its "key" and current "version"."""
        for field_name in ("key", "version"):
            if item.get(field_name) in (None, ""):
                raise ParamNotPassed(field_name)

        send_with_backoff(
            self.client,
            "PATCH",
            f"items/{quote(str(item['key']), safe='')}",
            json=dict(item),
            headers={"If-Unmodified-Since-Version": str(item["version"])},
            policy=self.policy,
        )

    def delete_item(self, item_key: str, version: int | None) -> None:
        """Delete an item, provided it is still at ``version`` on the server."""
        if not item_key:
            raise ParamNotPassed("item_key")
        if version is None:
            raise ParamNotPassed("version")

        send_with_backoff(
            self.client,
            "DELETE",
            f"items/{quote(item_key, safe='')}",
            headers={"If-Unmodified-Since-Version": str(version)},
            policy=self.policy,
        )

    def _create(
        self, path: str, objects: Sequence[Mapping[str, Any]], required: str
    ) -> dict[str, Any]:
        if not objects:
            raise ParamNotPassed(path)
        if len(objects) > MAX_WRITE_OBJECTS:
            raise TooManyItems(len(objects), MAX_WRITE_OBJECTS)

        invalid = []
        for i, obj in enumerate(objects):
            if not isinstance(obj, Mapping):
                invalid.append(f"[{i}]")
            elif not obj.get(required):
                invalid.append(f"[{i}].{required}")
        if invalid:
            raise InvalidItemFields(invalid)

        # Resent unchanged on retries
        write_token = uuid.uuid4().hex
        logger.debug(f"Creating {len(objects)} {path} with write token {write_token}")
        response = send_with_backoff(
            self.client,
            "POST",
            path,
            json=[dict(obj) for obj in objects],
            headers={"Zotero-Write-Token": write_token},
            policy=self.policy,
        )
        return response.json()

    # Links

    def item_uri(self, item_key: str) -> str:
        """Get the Zotero URI for an item.

        Returns:
            Zotero URI (e.g., http://zotero.org/users/12345/items/ABC123).
        """
        return f"http://zotero.org/{self._library_path()}/items/{item_key}"

    def web_url(self, item_key: str) -> str:
        """Get the web URL for viewing an item."""
        return f"https://www.zotero.org/{self._library_path()}/items/{item_key}"

    def _library_path(self) -> str:
        match self.client.scope:
            case User(id=library_id):
                return f"users/{library_id}"
            case Group(id=library_id):
                return f"groups/{library_id}"
            case _:
                raise ScopeRequired()

    def close(self):
        """Close the HTTP client, if this wrapper created it."""
        if self._owns_transport:
            self.client.transport.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
