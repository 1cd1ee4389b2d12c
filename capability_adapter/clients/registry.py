# capability_adapter/clients/registry.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Union

from capability_adapter.config import Settings
from capability_adapter.errors import ConfigurationError
from capability_adapter.infra.circuit_breaker import CircuitBreaker
from capability_adapter.models.capability import Environment
from .mcp_http import McpHttpTransport
from .transport import Transport

log = logging.getLogger(__name__)


@dataclass
class Connection:
    """A provider transport and the breaker every call through it shares."""

    environment: Environment
    transport: Transport
    breaker: CircuitBreaker


def mcp_transport_from_settings(settings: Settings, environment: Environment) -> Transport:
    url, username, password = settings.mcp_credentials(environment.value)
    if not url or not username or not password:
        prefix = environment.value.upper()
        raise ConfigurationError(
            f"Missing {environment.value} MCP credentials. Set {prefix}_MCP_URL, "
            f"{prefix}_MCP_USERNAME and {prefix}_MCP_PASSWORD",
            details={"environment": environment.value},
        )
    log.info("[MCP] creating %s transport for %s", environment.value, url)
    return McpHttpTransport(url, username=username, password=password, timeout=settings.REQUEST_TIMEOUT_S)


class ConnectionRegistry:
    """
    One Connection per environment, created lazily on first use.

    Transports come from ``transport_factory`` (settings-driven MCP transports
    by default) or are registered explicitly.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        transport_factory: Optional[Callable[[Environment], Transport]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._settings = settings or Settings()
        self._factory = transport_factory or (lambda env: mcp_transport_from_settings(self._settings, env))
        self._clock = clock
        self._connections: Dict[Environment, Connection] = {}

    def _breaker(self, environment: Environment) -> CircuitBreaker:
        return CircuitBreaker(
            f"mcp:{environment.value}",
            threshold=self._settings.CIRCUIT_FAILURE_THRESHOLD,
            cool_down=self._settings.CIRCUIT_COOL_DOWN_S,
            clock=self._clock,
        )

    def register(
        self,
        environment: Union[Environment, str],
        transport: Transport,
        breaker: Optional[CircuitBreaker] = None,
    ) -> Connection:
        env = Environment(environment)
        conn = Connection(env, transport, breaker or self._breaker(env))
        self._connections[env] = conn
        return conn

    def get(self, environment: Union[Environment, str]) -> Connection:
        """Raises ConfigurationError when the environment cannot be served."""
        env = Environment(environment)
        conn = self._connections.get(env)
        if conn is None:
            conn = self.register(env, self._factory(env))
        return conn

    def breakers(self) -> Dict[str, dict]:
        return {env.value: c.breaker.snapshot() for env, c in self._connections.items()}

    async def close(self, environment: Union[Environment, str, None] = None) -> None:
        envs = [Environment(environment)] if environment is not None else list(self._connections)
        for env in envs:
            conn = self._connections.pop(env, None)
            if conn is not None:
                log.info("[MCP] closing %s connection", env.value)
                await conn.transport.aclose()
