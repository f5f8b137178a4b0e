from unittest.mock import patch

import pytest

from grip_auth import SessionManager
from grip_gateway import GatewayClient, MemoryCredentialStore

from fakes import FakeBackend


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def store() -> MemoryCredentialStore:
    return MemoryCredentialStore()


@pytest.fixture
def gateway(store, backend):
    client = GatewayClient(store, base_url="https://api.test.com/api")
    with patch.object(client, "_fetch", new=backend.fetch):
        yield client


@pytest.fixture
def manager(gateway, store) -> SessionManager:
    return SessionManager(gateway, store)
