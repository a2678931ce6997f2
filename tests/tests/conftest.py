"""
Shared pytest fixtures for Tether tests.
"""

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from fixtures.relay_fixtures import FakeClock, make_relay_config, make_settings
from tether.client import RelayClient
from tether.services.relay_fastapi import create_app
from tether.sessions import SessionRegistry
from tether.storage import InMemorySessionStore


@pytest.fixture
def clock():
    """Controllable time source shared by the store, actors and app."""
    return FakeClock()


@pytest.fixture
def relay_config():
    return make_relay_config()


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def registry(store, relay_config, clock):
    return SessionRegistry(store, relay_config, clock=clock)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def app(settings, store, clock):
    return create_app(settings=settings, store=store, clock=clock, configure_logs=False)


@pytest.fixture
def client(app):
    """FastAPI TestClient with startup and shutdown events run."""
    with TestClient(app) as test_client:
        yield test_client


@pytest_asyncio.fixture
async def relay_client(app):
    """RelayClient talking to the app in-process through ASGITransport."""
    transport = httpx.ASGITransport(app=app)
    async with RelayClient("http://testserver", transport=transport, backoff_factor=0) as relay:
        yield relay
