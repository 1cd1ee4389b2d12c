from .capability import CapabilityDescriptor, Environment, RawOperation
from .invocation import InvocationRecord, SyncItemResult, SyncReport
from .schema import SchemaKind, SchemaNode

__all__ = [
    "CapabilityDescriptor",
    "Environment",
    "RawOperation",
    "InvocationRecord",
    "SyncItemResult",
    "SyncReport",
    "SchemaKind",
    "SchemaNode",
]
