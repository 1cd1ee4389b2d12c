# capability_adapter/services/operation_factory.py
from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any, Dict, Iterator, List, Optional, Union

import orjson

from capability_adapter.clients.registry import Connection, ConnectionRegistry
from capability_adapter.errors import (
    AdapterError,
    GenerationError,
    InvocationError,
    RemoteOperationError,
    SchemaError,
    TransportError,
    UnknownOperationError,
    ValidationError,
    ValidationErrorKind,
)
from capability_adapter.infra.cache import DiscoveryCache
from capability_adapter.infra.single_flight import SingleFlight
from capability_adapter.models.capability import CapabilityDescriptor, Environment
from capability_adapter.models.schema import SchemaKind
from capability_adapter.results import Err, Ok, Result
from capability_adapter.schemas.converter import DEFAULT_MAX_DEPTH, Validator, convert
from .discovery import DiscoveryService, as_environment
from .invocation_tracker import InvocationTracker

log = logging.getLogger(__name__)


def _envelope_text(envelope: Mapping) -> Optional[str]:
    content = envelope.get("content")
    if isinstance(content, list):
        for part in content:
            if isinstance(part, Mapping) and part.get("type") == "text" and isinstance(part.get("text"), str):
                return part["text"]
    return None


def unwrap_envelope(envelope: Any) -> Any:
    """
    Pull the payload out of a provider response.

    ``structuredContent`` wins when present; otherwise the first text part is
    parsed as JSON, falling back to the raw text; otherwise the content list
    itself. Never raises.
    """
    if not isinstance(envelope, Mapping):
        return envelope
    structured = envelope.get("structuredContent")
    if structured is not None:
        return structured
    if "content" not in envelope:
        return dict(envelope)
    text = _envelope_text(envelope)
    if text is not None:
        try:
            return orjson.loads(text)
        except orjson.JSONDecodeError:
            return text
    return envelope.get("content")


class Operation:
    """
    A callable remote operation for one environment.

    ``invoke`` validates first (no network on mismatch), then calls the
    provider through the environment's breaker and unwraps the envelope.
    """

    def __init__(
        self,
        descriptor: CapabilityDescriptor,
        validator: Validator,
        connection: Connection,
        tracker: Optional[InvocationTracker] = None,
    ):
        self.descriptor = descriptor
        self.validator = validator
        self._connection = connection
        self._tracker = tracker

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def environment(self) -> Environment:
        return self.descriptor.environment

    @property
    def description(self) -> Optional[str]:
        return self.descriptor.description

    @property
    def category(self) -> str:
        return self.descriptor.category

    def __repr__(self) -> str:
        return f"<Operation {self.environment.value}:{self.name}>"

    async def invoke(self, args: Optional[Dict[str, Any]] = None) -> Result[Any, InvocationError]:
        checked = self.validator({} if args is None else args)
        if not checked.ok:
            log.info("%s rejected input: %s", self.name, checked.error.message)
            return checked
        payload = checked.value if checked.value is not None else {}
        if not isinstance(payload, dict):
            return Err(ValidationError(
                f"arguments for {self.name} must be an object",
                kind=ValidationErrorKind.TYPE_MISMATCH,
            ))

        transport = self._connection.transport
        try:
            envelope = await self._connection.breaker.call(lambda: transport.invoke(self.name, payload))
        except AdapterError as e:
            log.warning("%s failed on %s: %s", self.name, self.environment.value, e.message)
            return Err(e)
        except Exception as e:
            log.exception("%s raised unexpectedly on %s", self.name, self.environment.value)
            return Err(TransportError(f"{e.__class__.__name__}: {e}"))

        if isinstance(envelope, Mapping) and envelope.get("isError"):
            text = _envelope_text(envelope) or "remote operation reported an error"
            return Err(RemoteOperationError(
                f"{self.name}: {text}",
                details={"content": envelope.get("content")},
            ))

        output = unwrap_envelope(envelope)
        if self._tracker is not None:
            self._tracker.record(self.name, payload, output)
        return Ok(output)

    __call__ = invoke


class OperationSet(Mapping):
    """Operations by name for one environment, plus the descriptors that failed to build."""

    def __init__(self, environment: Environment, operations: Dict[str, Operation], failures: Dict[str, str]):
        self.environment = environment
        self._operations = dict(operations)
        self.failures = dict(failures)

    def __getitem__(self, name: str) -> Operation:
        return self._operations[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._operations)

    def __len__(self) -> int:
        return len(self._operations)

    @property
    def partial(self) -> bool:
        return bool(self.failures)

    def descriptors(self) -> List[CapabilityDescriptor]:
        return [op.descriptor for op in self._operations.values()]


class OperationFactory:
    """
    Turns discovered descriptors into validated, breaker-guarded Operations.

    Each descriptor is built independently; a failure is logged and listed in
    ``OperationSet.failures`` without affecting the others. Results are cached
    per environment on a clock separate from the descriptor cache.
    """

    def __init__(
        self,
        discovery: DiscoveryService,
        connections: ConnectionRegistry,
        cache: Optional[DiscoveryCache[OperationSet]] = None,
        *,
        trackers: Optional[Dict[Environment, InvocationTracker]] = None,
        max_schema_depth: int = DEFAULT_MAX_DEPTH,
    ):
        self._discovery = discovery
        self._connections = connections
        self._cache: DiscoveryCache[OperationSet] = cache if cache is not None else DiscoveryCache(name="operations")
        self._trackers = dict(trackers or {})
        self._max_schema_depth = max_schema_depth
        self._flights: SingleFlight[Result[OperationSet, GenerationError]] = SingleFlight()
        self._generation: Dict[Environment, int] = {}

    @property
    def cache(self) -> DiscoveryCache[OperationSet]:
        return self._cache

    async def get_operations(self, environment: Union[Environment, str]) -> Result[OperationSet, GenerationError]:
        env_r = as_environment(environment)
        if not env_r.ok:
            return Err(GenerationError(str(environment), env_r.error))
        env = env_r.value

        cached = self._cache.get(env)
        if cached is not None:
            log.debug("operation cache hit for %s", env.value)
            return Ok(cached)
        return await self._flights.do(env, lambda: self._generate(env))

    async def _generate(self, env: Environment) -> Result[OperationSet, GenerationError]:
        generation = self._generation.get(env, 0)
        discovered = await self._discovery.discover(env)
        if not discovered.ok:
            return Err(GenerationError(env.value, discovered.error))
        descriptors = discovered.value

        try:
            connection = self._connections.get(env)
        except AdapterError as e:
            return Err(GenerationError(env.value, e))

        tracker = self._trackers.get(env)
        outcomes = await asyncio.gather(
            *(self._build(d, connection, tracker) for d in descriptors),
            return_exceptions=True,
        )

        operations: Dict[str, Operation] = {}
        failures: Dict[str, str] = {}
        for descriptor, outcome in zip(descriptors, outcomes):
            if isinstance(outcome, Operation):
                operations[descriptor.name] = outcome
            elif isinstance(outcome, asyncio.CancelledError):
                raise outcome
            else:
                reason = outcome.message if isinstance(outcome, AdapterError) else f"{outcome.__class__.__name__}: {outcome}"
                failures[descriptor.name] = reason
                log.warning("skipping operation %s for %s: %s", descriptor.name, env.value, reason)

        op_set = OperationSet(env, operations, failures)
        if self._generation.get(env, 0) == generation:
            self._cache.set(env, op_set)
        log.info(
            "generated %d operations for %s (%d failed)",
            len(operations), env.value, len(failures),
        )
        return Ok(op_set)

    async def _build(
        self,
        descriptor: CapabilityDescriptor,
        connection: Connection,
        tracker: Optional[InvocationTracker],
    ) -> Operation:
        validator = convert(descriptor.input_shape, max_depth=self._max_schema_depth, name=descriptor.name)
        root = validator.node
        if root is not None and root.kind not in (SchemaKind.OBJECT, SchemaKind.UNKNOWN):
            raise SchemaError(f"input of {descriptor.name} must describe an object, not {root.kind.value}")
        return Operation(descriptor, validator, connection, tracker)

    async def invoke(
        self,
        environment: Union[Environment, str],
        name: str,
        args: Optional[Dict[str, Any]] = None,
    ) -> Result[Any, AdapterError]:
        """Look up ``name`` in the environment's operations and invoke it."""
        ops = await self.get_operations(environment)
        if not ops.ok:
            return ops
        op = ops.value.get(name)
        if op is None:
            return Err(UnknownOperationError(
                f"no operation {name!r} in {ops.value.environment.value}",
                details={"environment": ops.value.environment.value, "operation": name},
            ))
        return await op.invoke(args)

    def invalidate(self, environment: Union[Environment, str, None] = None) -> int:
        """Drop cached operations for one environment, or for all of them."""
        if environment is None:
            for env in Environment:
                self._generation[env] = self._generation.get(env, 0) + 1
            self._flights.forget()
            return self._cache.invalidate()
        env_r = as_environment(environment)
        if not env_r.ok:
            log.warning("invalidate: %s", env_r.error.message)
            return 0
        self._generation[env_r.value] = self._generation.get(env_r.value, 0) + 1
        self._flights.forget(env_r.value)
        return self._cache.invalidate(env_r.value)
