import base64
import json

import httpx
import pytest

from capability_adapter.clients.mcp_http import McpHttpTransport
from capability_adapter.errors import TransportError

URL = "https://example.test/wp-json/mcp/v1"


class FakeMcpServer:
    """Answers JSON-RPC posts the way a streamable-HTTP MCP server does."""

    def __init__(self, pages=None, sse=False):
        self.pages = pages or [{"tools": [{"name": "list-items"}]}]
        self.sse = sse
        self.requests = []
        self.expire_next_call = False

    def _reply(self, req_id, result):
        body = {"jsonrpc": "2.0", "id": req_id, "result": result}
        headers = {"Mcp-Session-Id": "session-1"}
        if self.sse:
            text = f"event: message\ndata: {json.dumps(body)}\n\n"
            return httpx.Response(200, text=text, headers={**headers, "Content-Type": "text/event-stream"})
        return httpx.Response(200, json=body, headers=headers)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        msg = json.loads(request.content)
        self.requests.append((msg, request.headers))
        method = msg.get("method")
        if method == "notifications/initialized":
            return httpx.Response(202)
        if method == "initialize":
            return self._reply(msg["id"], {"serverInfo": {"name": "fake"}, "capabilities": {}})
        if method == "tools/list":
            cursor = (msg.get("params") or {}).get("cursor")
            idx = int(cursor) if cursor else 0
            return self._reply(msg["id"], self.pages[idx])
        if method == "tools/call":
            if self.expire_next_call:
                self.expire_next_call = False
                return httpx.Response(404, text="session not found")
            params = msg["params"]
            if params["name"] == "broken":
                return httpx.Response(
                    200,
                    json={"jsonrpc": "2.0", "id": msg["id"], "error": {"code": -32602, "message": "bad params"}},
                )
            return self._reply(msg["id"], {"structuredContent": params["arguments"]})
        return httpx.Response(400)

    def methods(self):
        return [m.get("method") for m, _ in self.requests]


def _transport(server):
    client = httpx.AsyncClient(transport=httpx.MockTransport(server))
    return McpHttpTransport(URL, username="admin", password="app pass", client=client)


@pytest.mark.asyncio
async def test_handshake_then_list():
    server = FakeMcpServer()
    transport = _transport(server)
    tools = await transport.list_operations()
    assert tools == [{"name": "list-items"}]
    assert server.methods() == ["initialize", "notifications/initialized", "tools/list"]
    assert transport.server_info == {"name": "fake"}

    _, headers = server.requests[-1]
    assert headers["mcp-session-id"] == "session-1"
    expected = base64.b64encode(b"admin:app pass").decode()
    assert headers["authorization"] == f"Basic {expected}"
    assert "x-request-id" in headers


@pytest.mark.asyncio
async def test_list_follows_cursor():
    server = FakeMcpServer(pages=[
        {"tools": [{"name": "a"}], "nextCursor": "1"},
        {"tools": [{"name": "b"}]},
    ])
    tools = await _transport(server).list_operations()
    assert [t["name"] for t in tools] == ["a", "b"]


@pytest.mark.asyncio
async def test_event_stream_responses():
    server = FakeMcpServer(sse=True)
    transport = _transport(server)
    assert await transport.list_operations() == [{"name": "list-items"}]
    envelope = await transport.invoke("list-items", {"perPage": 10})
    assert envelope == {"structuredContent": {"perPage": 10}}


@pytest.mark.asyncio
async def test_initialize_happens_once():
    server = FakeMcpServer()
    transport = _transport(server)
    await transport.list_operations()
    await transport.invoke("x", {})
    assert server.methods().count("initialize") == 1


@pytest.mark.asyncio
async def test_rpc_error_raises_transport_error():
    transport = _transport(FakeMcpServer())
    with pytest.raises(TransportError) as exc:
        await transport.invoke("broken", {})
    assert "bad params" in exc.value.message


@pytest.mark.asyncio
async def test_expired_session_reinitializes():
    server = FakeMcpServer()
    transport = _transport(server)
    await transport.list_operations()
    server.expire_next_call = True
    with pytest.raises(TransportError) as exc:
        await transport.invoke("x", {})
    assert exc.value.status_code == 404

    await transport.invoke("x", {"ok": True})
    assert server.methods().count("initialize") == 2


@pytest.mark.asyncio
async def test_network_failure_raises_transport_error():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(refuse))
    transport = McpHttpTransport(URL, client=client)
    with pytest.raises(TransportError):
        await transport.list_operations()
