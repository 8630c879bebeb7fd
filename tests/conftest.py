"""Shared fixtures: an in-memory Junos device and engines bound to it."""
import pytest

from junos_reconciler.config import ClientSettings
from junos_reconciler.config_engine import AllocationCoordinator, Client, ResourceEngine
from junos_reconciler.devices import MemoryBackend, MemoryDevice


@pytest.fixture
def device():
    """Empty simulated vSRX."""
    return MemoryDevice()


@pytest.fixture
def make_client(device):
    """Build a client on the memory device with settings overrides."""
    def factory(**overrides):
        overrides.setdefault("cmd_sleep_short", 0)
        settings = ClientSettings(host="memory", **overrides)
        return Client(settings, backend_factory=lambda s: MemoryBackend(device))
    return factory


@pytest.fixture
def make_engine(make_client):
    """Build an engine with its own allocation coordinator."""
    def factory(coordinator=None, **overrides):
        return ResourceEngine(make_client(**overrides), coordinator or AllocationCoordinator())
    return factory


@pytest.fixture
def engine(make_engine):
    return make_engine()
