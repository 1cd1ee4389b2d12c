import asyncio
from typing import Any, Dict, List, Optional

from capability_adapter.errors import TransportError


class ManualClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubTransport:
    """
    In-memory provider. Counts calls, records what it was sent and can be
    told to fail the next N listings or invocations.
    """

    def __init__(self, tools: Optional[List[Dict[str, Any]]] = None, responses: Optional[Dict[str, Any]] = None):
        self.tools = list(tools or [])
        self.responses = dict(responses or {})
        self.list_calls = 0
        self.invocations: List[tuple] = []
        self.fail_list = 0
        self.fail_invoke = 0
        self.list_gate: Optional[asyncio.Event] = None
        self.closed = False

    async def list_operations(self):
        self.list_calls += 1
        if self.list_gate is not None:
            await self.list_gate.wait()
        if self.fail_list > 0:
            self.fail_list -= 1
            raise TransportError("provider unavailable", status_code=503)
        return [dict(t) for t in self.tools]

    async def invoke(self, name, args):
        self.invocations.append((name, args))
        if self.fail_invoke > 0:
            self.fail_invoke -= 1
            raise TransportError("provider unavailable", status_code=503)
        resp = self.responses.get(name)
        if callable(resp):
            return resp(args)
        if resp is not None:
            return resp
        return {"structuredContent": {"echo": name, "args": args}}

    async def aclose(self):
        self.closed = True


LIST_ITEMS = {
    "name": "list-items",
    "description": "List items",
    "inputSchema": {"kind": "object", "properties": {"perPage": {"kind": "integer", "defaultValue": 10}}},
}

CREATE_POST = {
    "name": "wordpress-create-post",
    "description": "Create a post",
    "inputSchema": {
        "type": "object",
        "properties": {
            "title": {"type": "string"},
            "status": {"enum": ["draft", "publish"], "default": "draft"},
        },
        "required": ["title"],
    },
}

UPDATE_POST = {
    "name": "wordpress-update-post",
    "inputSchema": {
        "type": "object",
        "properties": {"id": {"type": "integer"}, "title": {"type": "string"}},
        "required": ["id"],
    },
}


