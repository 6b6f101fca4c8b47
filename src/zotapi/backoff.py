"""Backoff contract for rate-limited and locked-library responses.

After a 429 (too many requests) or 409 (library locked) the API expects the
client to wait before trying again, for an interval that doubles with each
attempt. Once the required wait would exceed 32 seconds the request is given
up with ``TooManyRetries``.
"""

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from zotapi.client import ZoteroClient
from zotapi.composer import QueryArgs, send
from zotapi.exceptions import Conflict, TooManyRequests, TooManyRetries

logger = logging.getLogger(__name__)

DEFAULT_BASE_DELAY = 1.0  # seconds
DEFAULT_MAX_DELAY = 32.0  # seconds

RETRYABLE_ERRORS = (Conflict, TooManyRequests)


@dataclass
class BackoffPolicy:
    """Exponential backoff settings.

    Attributes:
        base_delay: Wait before the first retry, in seconds.
        max_delay: Longest wait allowed. A longer required wait fails the call.
        sleep: Function used to wait; replaceable in tests.
    """

    base_delay: float = DEFAULT_BASE_DELAY
    max_delay: float = DEFAULT_MAX_DELAY
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def delay_for(self, attempt: int, advised: float | None = None) -> float:
        """Required wait before retry number ``attempt`` (0-based).

        A server-advised delay raises the wait, never shortens it.
        """
        delay = self.base_delay * (2**attempt)
        if advised is not None:
            delay = max(delay, advised)
        return delay


def send_with_backoff(
    client: ZoteroClient,
    method: str,
    path: str,
    args: QueryArgs | None = None,
    query: str | None = None,
    *,
    json: Any = None,
    headers: Mapping[str, str] | None = None,
    policy: BackoffPolicy | None = None,
) -> httpx.Response:
    """Send a library-scoped request, waiting and retrying on 409 and 429.

    A new request is composed for every attempt. All other errors propagate
    unchanged on the first occurrence.

    Raises:
        TooManyRetries: If the next required wait exceeds ``policy.max_delay``.
            The last HTTP error is chained as its cause.
    """
    policy = policy or BackoffPolicy()
    attempt = 0

    while True:
        try:
            return send(client, method, path, args, query, json=json, headers=headers)
        except RETRYABLE_ERRORS as e:
            delay = policy.delay_for(attempt, e.retry_after)
            if delay > policy.max_delay:
                logger.error(f"{method} {path} still failing after {attempt + 1} attempts: {e}")
                raise TooManyRetries(delay, policy.max_delay) from e

            logger.warning(
                f"{method} {path} attempt {attempt + 1} failed: {e}. Retrying in {delay:g}s..."
            )
            policy.sleep(delay)
            attempt += 1
