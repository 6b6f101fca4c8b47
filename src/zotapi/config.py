"""Environment-based client configuration.

Credentials live in a .env file at the repository root:
    ZOTERO_API_KEY       - API key (required)
    ZOTERO_LIBRARY_ID    - user or group ID (optional, see ``zotapi whoami``)
    ZOTERO_LIBRARY_TYPE  - "user" (default) or "group"
    ZOTERO_ENDPOINT      - API root (default: https://api.zotero.org)
    ZOTERO_API_VERSION   - protocol version (default: 3)

This module auto-loads the .env file on import. Variables already set in the
environment take precedence over the file.
"""

import os
from pathlib import Path

from zotapi.client import ClientBuilder

# Repository root (where this package is installed from)
# __file__ is src/zotapi/config.py, so 3 levels up
REPO_ROOT = Path(__file__).parent.parent.parent
ENV_FILE = REPO_ROOT / ".env"

ENV_API_KEY = "ZOTERO_API_KEY"
ENV_LIBRARY_ID = "ZOTERO_LIBRARY_ID"
ENV_LIBRARY_TYPE = "ZOTERO_LIBRARY_TYPE"
ENV_ENDPOINT = "ZOTERO_ENDPOINT"
ENV_API_VERSION = "ZOTERO_API_VERSION"


def _load_env_file(env_path: Path) -> dict[str, str]:
    """Load environment variables from a file.

    Args:
        env_path: Path to .env file.

    Returns:
        Dictionary of loaded variables.
    """
    loaded = {}
    if not env_path.exists():
        return loaded

    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue

            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip()

            # Remove surrounding quotes
            if (value.startswith('"') and value.endswith('"')) or (
                value.startswith("'") and value.endswith("'")
            ):
                value = value[1:-1]

            if key and key not in os.environ:
                os.environ[key] = value
                loaded[key] = value

    return loaded


def builder_from_env(environ: dict[str, str] | None = None) -> ClientBuilder:
    """Create a ClientBuilder pre-filled from ZOTERO_* variables.

    Missing values are left at the builder defaults, so ``build()`` still
    reports a missing API key.

    Args:
        environ: Mapping to read instead of ``os.environ``.

    Raises:
        InvalidEndpoint: If ZOTERO_ENDPOINT is set but not a valid URL.
        ValueError: If ZOTERO_API_VERSION or ZOTERO_LIBRARY_TYPE is invalid.
    """
    env = os.environ if environ is None else environ
    builder = ClientBuilder()

    if api_key := env.get(ENV_API_KEY):
        builder.api_key(api_key)
    if endpoint := env.get(ENV_ENDPOINT):
        builder.endpoint(endpoint)
    if version := env.get(ENV_API_VERSION):
        try:
            parsed_version = int(version)
        except ValueError as e:
            raise ValueError(f"{ENV_API_VERSION} must be an integer, got {version!r}") from e
        builder.version(parsed_version)
    if library_id := env.get(ENV_LIBRARY_ID):
        builder.library(env.get(ENV_LIBRARY_TYPE) or "user", library_id)

    return builder


def get_credential_status(environ: dict[str, str] | None = None) -> dict:
    """Get status of the configured Zotero values.

    Returns:
        Dictionary with configuration status. Secrets are reported as booleans.
    """
    env = os.environ if environ is None else environ
    return {
        "repo_root": str(REPO_ROOT),
        "env_file": ENV_FILE.exists(),
        "zotero": {
            "api_key": bool(env.get(ENV_API_KEY)),
            "library_id": env.get(ENV_LIBRARY_ID),
            "library_type": env.get(ENV_LIBRARY_TYPE) or "user",
            "endpoint": env.get(ENV_ENDPOINT) or None,
            "api_version": env.get(ENV_API_VERSION) or None,
        },
    }


# Auto-load .env from repo root on import
_loaded = _load_env_file(ENV_FILE)
