# capability_adapter/models/capability.py
from __future__ import annotations

import re
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class Environment(str, Enum):
    SANDBOX = "sandbox"
    PRODUCTION = "production"
    EXTERNAL = "external"


_SEPARATORS = re.compile(r"[-/_.:]")


def derive_category(name: str) -> str:
    """Leading segment of an operation name, e.g. ``wordpress-list-posts`` -> ``wordpress``."""
    m = _SEPARATORS.search(name or "")
    if not m:
        return "unknown"
    head = name[: m.start()].strip()
    return head or "unknown"


class RawOperation(BaseModel):
    """One entry of a provider's ``tools/list`` answer, as received."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str = Field(min_length=1)
    description: Optional[str] = None
    # left untyped: a malformed schema must survive listing and fail per-operation
    input_schema: Any = Field(default=None, alias="inputSchema")


class CapabilityDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: Optional[str] = None
    category: str = "unknown"
    input_shape: Any = None
    environment: Environment

    @classmethod
    def from_raw(cls, raw: RawOperation, environment: Environment) -> "CapabilityDescriptor":
        return cls(
            name=raw.name,
            description=raw.description,
            category=derive_category(raw.name),
            input_shape=raw.input_schema,
            environment=environment,
        )

    def summary(self) -> dict:
        return {"name": self.name, "description": self.description, "category": self.category}
