import pytest

from capability_adapter.clients.registry import ConnectionRegistry, mcp_transport_from_settings
from capability_adapter.config import Settings
from capability_adapter.infra.cache import DiscoveryCache
from capability_adapter.models.capability import Environment
from capability_adapter.services.discovery import DiscoveryService
from capability_adapter.services.invocation_tracker import InvocationTracker
from capability_adapter.services.operation_factory import OperationFactory

from .helpers import CREATE_POST, LIST_ITEMS, UPDATE_POST, ManualClock, StubTransport


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        CIRCUIT_FAILURE_THRESHOLD=3,
        CIRCUIT_COOL_DOWN_S=30,
        DISCOVERY_CACHE_TTL_S=300,
        OPERATION_CACHE_TTL_S=300,
    )


@pytest.fixture
def transports():
    return {
        "sandbox": StubTransport([LIST_ITEMS, CREATE_POST, UPDATE_POST]),
        "production": StubTransport([LIST_ITEMS, CREATE_POST, UPDATE_POST]),
    }


@pytest.fixture
def registry(test_settings, transports, clock):
    def factory(env):
        if env.value in transports:
            return transports[env.value]
        return mcp_transport_from_settings(test_settings, env)

    return ConnectionRegistry(test_settings, transport_factory=factory, clock=clock)


@pytest.fixture
def discovery(registry, clock):
    return DiscoveryService(registry, DiscoveryCache(300, name="descriptors", clock=clock))


@pytest.fixture
def tracker():
    return InvocationTracker("sandbox")


@pytest.fixture
def factory(discovery, registry, clock, tracker):
    return OperationFactory(
        discovery,
        registry,
        DiscoveryCache(300, name="operations", clock=clock),
        trackers={Environment.SANDBOX: tracker},
    )
