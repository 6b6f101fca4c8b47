"""CLI for zotapi - inspect configuration and talk to the Zotero API.

Usage:
    zotapi status                                  # Show configured values
    zotapi whoami                                  # Resolve the API key's user library
    zotapi url GET items --param limit=5           # Print a composed URL, send nothing
    zotapi get collections --param sort=title      # Send a GET and print the JSON
"""

from __future__ import annotations

import argparse
import json
import sys


def _parse_params(pairs: list[str] | None) -> list[tuple[str, str]]:
    """Parse repeated ``key=value`` options into ordered pairs."""
    params = []
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected key=value, got {pair!r}")
        params.append((key, value))
    return params


def cmd_status() -> int:
    """Show configured Zotero values."""
    from zotapi.config import ENV_FILE, get_credential_status

    status = get_credential_status()
    zotero = status["zotero"]

    print("=" * 60)
    print("ZOTAPI CONFIGURATION")
    print("=" * 60)
    print()
    print(f"Repository: {status['repo_root']}")
    print(f"  {ENV_FILE}: {'[x]' if status['env_file'] else '[ ]'}")
    print()
    print("Zotero:")
    print(f"  API key:      {'[x]' if zotero['api_key'] else '[ ]'}")
    print(f"  Library:      {zotero['library_type']} {zotero['library_id'] or '(unresolved)'}")
    print(f"  Endpoint:     {zotero['endpoint'] or '(default)'}")
    print(f"  API version:  {zotero['api_version'] or '(default)'}")
    print()

    return 0 if zotero["api_key"] else 1


def cmd_whoami() -> int:
    """Resolve and print the user library the API key belongs to."""
    from zotapi.api import ZoteroAPI
    from zotapi.config import builder_from_env
    from zotapi.exceptions import ZoteroError
    from zotapi.scope import scope_type

    try:
        with ZoteroAPI(builder_from_env().build()) as api:
            client = api.resolve_own_library()
    except (ZoteroError, ValueError) as e:
        print(f"[✗] {e}", file=sys.stderr)
        return 1

    print(f"[✓] {scope_type(client.scope)} {client.scope.id}")
    return 0


def cmd_url(method: str, path: str, params: list[tuple[str, str]], query: str | None) -> int:
    """Print the URL a request would be sent to."""
    from zotapi.composer import compose_request
    from zotapi.config import builder_from_env
    from zotapi.exceptions import ZoteroError

    try:
        client = builder_from_env().build()
        request = compose_request(client, method.upper(), path, params or None, query)
    except (ZoteroError, ValueError) as e:
        print(f"[✗] {e}", file=sys.stderr)
        return 1

    print(f"{request.method} {request.url}")
    return 0


def cmd_get(path: str, params: list[tuple[str, str]]) -> int:
    """Send a GET request and print the JSON response."""
    from zotapi.api import ZoteroAPI
    from zotapi.backoff import send_with_backoff
    from zotapi.config import builder_from_env
    from zotapi.exceptions import ZoteroError

    try:
        with ZoteroAPI(builder_from_env().build()) as api:
            if not api.client.is_scoped:
                api.resolve_own_library()
            response = send_with_backoff(api.client, "GET", path, params or None, policy=api.policy)
    except (ZoteroError, ValueError) as e:
        print(f"[✗] {e}", file=sys.stderr)
        return 1

    try:
        print(json.dumps(response.json(), indent=2, ensure_ascii=False))
    except ValueError:
        print(response.text)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="zotapi",
        description="Zotero Web API client",
    )
    subparsers = parser.add_subparsers(dest="command", help="Command")

    # status command
    subparsers.add_parser("status", help="Show configured Zotero values")

    # whoami command
    subparsers.add_parser("whoami", help="Resolve the API key's user library")

    # url command
    url_parser = subparsers.add_parser("url", help="Print a composed request URL")
    url_parser.add_argument("method", help="HTTP method, e.g. GET")
    url_parser.add_argument("path", help="Resource path, e.g. items/top")
    url_parser.add_argument(
        "--param",
        action="append",
        metavar="KEY=VALUE",
        help="Query parameter (repeatable)",
    )
    url_parser.add_argument("--query", help="Raw query string (overrides --param)")

    # get command
    get_parser = subparsers.add_parser("get", help="Send a GET request and print JSON")
    get_parser.add_argument("path", help="Resource path, e.g. collections")
    get_parser.add_argument(
        "--param",
        action="append",
        metavar="KEY=VALUE",
        help="Query parameter (repeatable)",
    )

    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "status":
        return cmd_status()

    if args.command == "whoami":
        return cmd_whoami()

    if args.command in ("url", "get"):
        try:
            params = _parse_params(args.param)
        except ValueError as e:
            parser.error(str(e))

        if args.command == "url":
            return cmd_url(args.method, args.path, params, args.query)
        return cmd_get(args.path, params)

    return 0


if __name__ == "__main__":
    sys.exit(main())
