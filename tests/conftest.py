"""Shared fixtures for zotapi tests."""

import pytest
from helpers import RecordingTransport

from zotapi import ClientBuilder, User


@pytest.fixture
def builder():
    """A builder with only the API key set."""
    return ClientBuilder().api_key("12345")


@pytest.fixture
def client(builder):
    """A client scoped to user 555, without a transport."""
    return builder.scope(User("555")).build()


@pytest.fixture
def transport_factory():
    """Create RecordingTransports and close them after the test."""
    created = []

    def make(handler):
        transport = RecordingTransport(handler)
        created.append(transport)
        return transport

    yield make

    for transport in created:
        transport.close()
