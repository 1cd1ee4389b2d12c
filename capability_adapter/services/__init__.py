from .discovery import DiscoveryService
from .invocation_tracker import InvocationTracker
from .operation_factory import Operation, OperationFactory, OperationSet
from .sync import ReplayService

__all__ = [
    "DiscoveryService",
    "InvocationTracker",
    "Operation",
    "OperationFactory",
    "OperationSet",
    "ReplayService",
]
