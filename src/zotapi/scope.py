"""Library scopes: the personal or group library a request addresses."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

LibraryType = Literal["user", "group"]


@dataclass(frozen=True)
class User:
    """A personal library, addressed as ``users/{id}/``."""

    id: str

    @property
    def prefix(self) -> str:
        return library_prefix(self)


@dataclass(frozen=True)
class Group:
    """A shared group library, addressed as ``groups/{id}/``."""

    id: str

    @property
    def prefix(self) -> str:
        return library_prefix(self)


LibraryScope = User | Group


def library_prefix(scope: LibraryScope) -> str:
    """Get the path prefix for a scope.

    The prefix always ends in ``/`` so that joining a relative resource path
    extends it instead of replacing its last segment.
    """
    match scope:
        case User(id=library_id):
            return f"users/{library_id}/"
        case Group(id=library_id):
            return f"groups/{library_id}/"
        case _:
            raise TypeError(f"Unknown library scope: {scope!r}")


def scope_type(scope: LibraryScope) -> LibraryType:
    """Get the configuration name ("user" or "group") of a scope."""
    match scope:
        case User():
            return "user"
        case Group():
            return "group"
        case _:
            raise TypeError(f"Unknown library scope: {scope!r}")


def library_scope(library_type: str, library_id: str | int) -> LibraryScope:
    """Build a scope from the "user"/"group" naming used in configuration.

    Args:
        library_type: "user" or "group" (case-insensitive).
        library_id: Numeric user or group ID.

    Returns:
        The matching scope.

    Raises:
        ValueError: If library_type is not recognised or library_id is empty.
    """
    library_id = str(library_id).strip()
    if not library_id:
        raise ValueError("library_id must not be empty")

    kind = library_type.strip().lower()
    if kind == "user":
        return User(library_id)
    if kind == "group":
        return Group(library_id)
    raise ValueError(f"Unknown library type: {library_type}. Expected 'user' or 'group'")
