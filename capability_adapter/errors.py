"""
errors.py

Error taxonomy for the adapter. Every public operation returns these as
``Err`` values; they are only raised inside a component (e.g. by a transport
into the circuit breaker) and converted back at the component boundary.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Union


class AdapterError(Exception):
    """Base class for every error the adapter reports."""

    code = "adapter_error"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            out["details"] = self.details
        return out


class ConfigurationError(AdapterError):
    """An environment was requested that has no usable provider settings."""

    code = "configuration_error"


class SchemaError(AdapterError):
    """Raised when an input description is not a schema document at all."""

    code = "schema_error"


class ValidationErrorKind(str, Enum):
    TYPE_MISMATCH = "type_mismatch"
    ENUM_MISMATCH = "enum_mismatch"
    MISSING_REQUIRED = "missing_required"
    CONSTRAINT = "constraint"


class ValidationError(AdapterError):
    """Input rejected by a generated validator, before any network activity."""

    code = "validation_error"

    def __init__(
        self,
        message: str,
        *,
        kind: ValidationErrorKind,
        path: str = "",
        issues: Optional[List[Dict[str, Any]]] = None,
    ):
        self.kind = kind
        self.path = path
        self.issues = issues or []
        super().__init__(message, details={"kind": kind.value, "path": path, "issues": self.issues})


class TransportError(AdapterError):
    """Network / provider level failure. Counted by the circuit breaker."""

    code = "transport_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.status_code = status_code
        merged = dict(details or {})
        if status_code is not None:
            merged["status_code"] = status_code
        super().__init__(message, details=merged)


class RemoteOperationError(TransportError):
    """The provider executed the call and reported a tool-level error."""

    code = "remote_operation_error"


class CircuitOpenError(AdapterError):
    """The breaker for a provider is open; the transport was not called."""

    code = "circuit_open"

    def __init__(self, name: str, retry_after: float):
        self.name = name
        self.retry_after = max(0.0, retry_after)
        super().__init__(
            f"circuit '{name}' is open; retry in {self.retry_after:.1f}s",
            details={"breaker": name, "retry_after_s": round(self.retry_after, 3)},
        )


class UnknownOperationError(AdapterError):
    code = "unknown_operation"


class DiscoveryError(AdapterError):
    """Listing the provider's operations failed."""

    code = "discovery_error"

    def __init__(self, environment: str, cause: AdapterError):
        self.environment = environment
        self.cause = cause
        super().__init__(
            f"discovery failed for '{environment}': {cause.message}",
            details={"environment": environment, "cause": cause.to_dict()},
        )


class GenerationError(AdapterError):
    """Operations could not be generated for an environment at all."""

    code = "generation_error"

    def __init__(self, environment: str, cause: AdapterError):
        self.environment = environment
        self.cause = cause
        super().__init__(
            f"operation generation failed for '{environment}': {cause.message}",
            details={"environment": environment, "cause": cause.to_dict()},
        )


InvocationError = Union[ValidationError, TransportError, CircuitOpenError]
