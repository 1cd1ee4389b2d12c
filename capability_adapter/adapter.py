# capability_adapter/adapter.py
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional, Union

from capability_adapter.clients.registry import ConnectionRegistry
from capability_adapter.clients.transport import Transport
from capability_adapter.config import Settings
from capability_adapter.errors import AdapterError, GenerationError
from capability_adapter.infra.cache import DiscoveryCache
from capability_adapter.models.capability import Environment
from capability_adapter.models.invocation import SyncReport
from capability_adapter.results import Result
from capability_adapter.services.discovery import DiscoveryService, as_environment
from capability_adapter.services.invocation_tracker import InvocationTracker
from capability_adapter.services.operation_factory import OperationFactory, OperationSet
from capability_adapter.services.sync import ReplayService

log = logging.getLogger(__name__)


class CapabilityAdapter:
    """
    Wires settings into one registry, two cache tiers, discovery, the
    operation factory, per-environment trackers and a replay service.

    Only environments listed in ``TRACKED_ENVIRONMENTS`` record invocations.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        transport_factory: Optional[Callable[[Environment], Transport]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or Settings()
        self.connections = ConnectionRegistry(self.settings, transport_factory=transport_factory, clock=clock)
        self.discovery = DiscoveryService(
            self.connections,
            DiscoveryCache(self.settings.DISCOVERY_CACHE_TTL_S, name="descriptors", clock=clock),
        )
        self._trackers: Dict[Environment, InvocationTracker] = {}
        for name in self.settings.TRACKED_ENVIRONMENTS:
            env = Environment(name)
            self._trackers[env] = InvocationTracker(env.value)
        self.factory = OperationFactory(
            self.discovery,
            self.connections,
            DiscoveryCache(self.settings.OPERATION_CACHE_TTL_S, name="operations", clock=clock),
            trackers=self._trackers,
            max_schema_depth=self.settings.SCHEMA_MAX_DEPTH,
        )
        self.source_environment = Environment(self.settings.SYNC_SOURCE_ENV)
        self.replay = ReplayService(self.factory, Environment(self.settings.SYNC_TARGET_ENV))

    async def get_operations(self, environment: Union[Environment, str]) -> Result[OperationSet, GenerationError]:
        return await self.factory.get_operations(environment)

    async def invoke(
        self,
        environment: Union[Environment, str],
        name: str,
        args: Optional[Dict[str, Any]] = None,
    ) -> Result[Any, AdapterError]:
        return await self.factory.invoke(environment, name, args)

    def invalidate(self, environment: Union[Environment, str, None] = None) -> Dict[str, int]:
        """Both tiers: descriptors and generated operations."""
        return {
            "descriptors": self.discovery.invalidate(environment),
            "operations": self.factory.invalidate(environment),
        }

    def tracker(self, environment: Union[Environment, str, None] = None) -> Optional[InvocationTracker]:
        """The tracker for an environment (the sync source by default); None when untracked or unknown."""
        if environment is None:
            return self._trackers.get(self.source_environment)
        env_r = as_environment(environment)
        if not env_r.ok:
            log.warning("tracker: %s", env_r.error.message)
            return None
        return self._trackers.get(env_r.value)

    async def sync(self, *, clear_on_success: bool = True) -> Result[SyncReport, GenerationError]:
        """
        Replay the source environment's tracked calls into the target. The
        tracker is cleared only when every record applied.
        """
        tracker = self.tracker(self.source_environment)
        records = tracker.drain() if tracker is not None else ()
        outcome = await self.replay.apply(records, source_environment=self.source_environment.value)
        if outcome.ok and outcome.value.success and clear_on_success and tracker is not None:
            tracker.clear()
        return outcome

    def status(self) -> Dict[str, Any]:
        return {
            "breakers": self.connections.breakers(),
            "tracked": {env.value: len(t) for env, t in self._trackers.items()},
        }

    async def aclose(self) -> None:
        await self.connections.close()
        log.info("capability adapter closed")
