# capability_adapter/clients/transport.py
from __future__ import annotations

from typing import Any, Dict, List, Protocol, runtime_checkable


@runtime_checkable
class Transport(Protocol):
    """
    Wire-level access to one remote provider.

    Implementations raise ``TransportError`` on failure. ``list_operations``
    returns raw listing entries (``{name, description?, inputSchema?}``);
    ``invoke`` returns the raw response envelope.
    """

    async def list_operations(self) -> List[Dict[str, Any]]: ...

    async def invoke(self, name: str, args: Dict[str, Any]) -> Dict[str, Any]: ...

    async def aclose(self) -> None: ...
