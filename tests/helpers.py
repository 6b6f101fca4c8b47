"""Test doubles for the transport capability."""

import httpx


class RecordingTransport:
    """An httpx.Client over a MockTransport that remembers every request sent."""

    def __init__(self, handler):
        self.requests: list[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        self._client = httpx.Client(transport=httpx.MockTransport(record))

    def send(self, request: httpx.Request) -> httpx.Response:
        return self._client.send(request)

    def close(self):
        self._client.close()


def responses(*items):
    """Build a handler returning the given responses in order.

    Each item is a status code or a ``(status, json, headers)`` tuple. The
    last one is repeated once the others are used up.
    """
    queue = list(items)

    def handler(request: httpx.Request) -> httpx.Response:
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, int):
            return httpx.Response(item)
        status, body, headers = item
        return httpx.Response(status, json=body, headers=headers or {})

    return handler
