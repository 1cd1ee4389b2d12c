# capability_adapter/services/discovery.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from capability_adapter.clients.registry import ConnectionRegistry
from capability_adapter.errors import AdapterError, ConfigurationError, DiscoveryError, TransportError
from capability_adapter.infra.cache import DiscoveryCache
from capability_adapter.infra.single_flight import SingleFlight
from capability_adapter.models.capability import CapabilityDescriptor, Environment, RawOperation
from capability_adapter.results import Err, Ok, Result

log = logging.getLogger(__name__)

DescriptorList = List[CapabilityDescriptor]


def as_environment(environment: Union[Environment, str]) -> Result[Environment, ConfigurationError]:
    try:
        return Ok(Environment(environment))
    except ValueError:
        return Err(ConfigurationError(
            f"unknown environment {environment!r}",
            details={"allowed": [e.value for e in Environment]},
        ))


def to_descriptors(entries: Any, environment: Environment) -> DescriptorList:
    """
    Map raw listing entries to descriptors. Entries without a usable name are
    skipped; a repeated name keeps the last entry.
    """
    if not isinstance(entries, list):
        raise TransportError(f"operation listing must be a list, got {type(entries).__name__}")

    by_name: Dict[str, CapabilityDescriptor] = {}
    for i, entry in enumerate(entries):
        try:
            raw = RawOperation.model_validate(entry)
        except PydanticValidationError as e:
            log.warning("skipping listing entry %d for %s: %s", i, environment.value, e.errors()[:1])
            continue
        if raw.name in by_name:
            log.warning("duplicate operation %s in %s listing; last entry wins", raw.name, environment.value)
            del by_name[raw.name]
        by_name[raw.name] = CapabilityDescriptor.from_raw(raw, environment)
    return list(by_name.values())


class DiscoveryService:
    """
    Lists a provider's operations per environment, through that provider's
    circuit breaker, and keeps the result in a TTL cache.

    Concurrent misses for one environment share a single listing call.
    Failures are returned and never cached.
    """

    def __init__(self, connections: ConnectionRegistry, cache: Optional[DiscoveryCache[DescriptorList]] = None):
        self._connections = connections
        self._cache: DiscoveryCache[DescriptorList] = cache if cache is not None else DiscoveryCache(name="descriptors")
        self._flights: SingleFlight[Result[DescriptorList, DiscoveryError]] = SingleFlight()
        self._generation: Dict[Environment, int] = {}

    @property
    def cache(self) -> DiscoveryCache[DescriptorList]:
        return self._cache

    async def discover(self, environment: Union[Environment, str]) -> Result[DescriptorList, DiscoveryError]:
        env_r = as_environment(environment)
        if not env_r.ok:
            return Err(DiscoveryError(str(environment), env_r.error))
        env = env_r.value

        cached = self._cache.get(env)
        if cached is not None:
            log.debug("descriptor cache hit for %s", env.value)
            return Ok(list(cached))

        result = await self._flights.do(env, lambda: self._fetch(env))
        if result.ok:
            return Ok(list(result.value))
        return result

    async def _fetch(self, env: Environment) -> Result[DescriptorList, DiscoveryError]:
        generation = self._generation.get(env, 0)
        try:
            conn = self._connections.get(env)
            entries = await conn.breaker.call(conn.transport.list_operations)
            descriptors = to_descriptors(entries, env)
        except AdapterError as e:
            log.warning("discovery failed for %s: %s", env.value, e.message)
            return Err(DiscoveryError(env.value, e))
        except Exception as e:
            log.exception("unexpected discovery failure for %s", env.value)
            return Err(DiscoveryError(env.value, TransportError(f"{e.__class__.__name__}: {e}")))

        if self._generation.get(env, 0) == generation:
            self._cache.set(env, descriptors)
        log.info("discovered %d operations for %s", len(descriptors), env.value)
        return Ok(descriptors)

    def invalidate(self, environment: Union[Environment, str, None] = None) -> int:
        """Drop cached descriptors for one environment, or for all of them."""
        if environment is None:
            for env in Environment:
                self._generation[env] = self._generation.get(env, 0) + 1
            self._flights.forget()
            dropped = self._cache.invalidate()
        else:
            env_r = as_environment(environment)
            if not env_r.ok:
                log.warning("invalidate: %s", env_r.error.message)
                return 0
            env = env_r.value
            self._generation[env] = self._generation.get(env, 0) + 1
            self._flights.forget(env)
            dropped = self._cache.invalidate(env)
        log.info("invalidated %d descriptor cache entr%s (%s)",
                 dropped, "y" if dropped == 1 else "ies", getattr(environment, "value", environment) or "all")
        return dropped
