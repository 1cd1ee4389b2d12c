# capability_adapter/config.py
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

from capability_adapter.models.capability import Environment

ENVIRONMENT_NAMES = frozenset(e.value for e in Environment)


def _environment_name(value: str) -> str:
    name = value.strip().lower()
    if name not in ENVIRONMENT_NAMES:
        raise ValueError(f"unknown environment {value!r}; expected one of {sorted(ENVIRONMENT_NAMES)}")
    return name


class Settings(BaseSettings):
    # Service Metadata
    SERVICE_NAME: str = "capability-adapter"
    ENV: str = "local"
    LOG_LEVEL: str = "INFO"

    # MCP providers, one per environment (credentials are checked lazily)
    SANDBOX_MCP_URL: Optional[str] = None
    SANDBOX_MCP_USERNAME: Optional[str] = None
    SANDBOX_MCP_PASSWORD: Optional[str] = None

    PRODUCTION_MCP_URL: Optional[str] = None
    PRODUCTION_MCP_USERNAME: Optional[str] = None
    PRODUCTION_MCP_PASSWORD: Optional[str] = None

    EXTERNAL_MCP_URL: Optional[str] = None
    EXTERNAL_MCP_USERNAME: Optional[str] = None
    EXTERNAL_MCP_PASSWORD: Optional[str] = None

    REQUEST_TIMEOUT_S: float = 60

    # Caching
    DISCOVERY_CACHE_TTL_S: float = 300
    OPERATION_CACHE_TTL_S: float = 300

    # Circuit breaker (per provider)
    CIRCUIT_FAILURE_THRESHOLD: int = 5
    CIRCUIT_COOL_DOWN_S: float = 30

    # Schema conversion
    SCHEMA_MAX_DEPTH: int = 32

    # Invocation tracking / replay
    TRACKED_ENVIRONMENTS: List[str] = ["sandbox"]
    SYNC_SOURCE_ENV: str = "sandbox"
    SYNC_TARGET_ENV: str = "production"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("SYNC_SOURCE_ENV", "SYNC_TARGET_ENV")
    @classmethod
    def _known_environment(cls, v: str) -> str:
        return _environment_name(v)

    @field_validator("TRACKED_ENVIRONMENTS")
    @classmethod
    def _known_environments(cls, v: List[str]) -> List[str]:
        return [_environment_name(name) for name in v]

    @field_validator("CIRCUIT_FAILURE_THRESHOLD", "SCHEMA_MAX_DEPTH")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    def mcp_credentials(self, environment: str) -> tuple[Optional[str], Optional[str], Optional[str]]:
        prefix = environment.upper()
        return (
            getattr(self, f"{prefix}_MCP_URL", None),
            getattr(self, f"{prefix}_MCP_USERNAME", None),
            getattr(self, f"{prefix}_MCP_PASSWORD", None),
        )


settings = Settings()  # type: ignore
