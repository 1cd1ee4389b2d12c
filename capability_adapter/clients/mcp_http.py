# capability_adapter/clients/mcp_http.py
"""
MCP client over streamable HTTP (JSON-RPC 2.0, POST only).

The server may answer a POST with plain JSON or with a short text/event-stream
body; both are accepted. Auth is HTTP Basic with credentials handed in by the
caller (e.g. WordPress application passwords).
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Dict, Iterator, List, Optional

import httpx
import orjson

from capability_adapter.errors import TransportError
from capability_adapter.middleware.correlation import corr_headers

log = logging.getLogger(__name__)

PROTOCOL_VERSION = "2025-03-26"
CLIENT_NAME = "capability-adapter"
CLIENT_VERSION = "0.1.0"
MAX_LIST_PAGES = 50


def _sse_data(text: str) -> Iterator[str]:
    buf: List[str] = []
    for line in text.splitlines():
        if line.startswith("data:"):
            data = line[5:]
            buf.append(data[1:] if data.startswith(" ") else data)
        elif not line.strip() and buf:
            yield "\n".join(buf)
            buf = []
    if buf:
        yield "\n".join(buf)


class McpHttpTransport:
    def __init__(
        self,
        url: str,
        *,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = 60,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self._auth = httpx.BasicAuth(username, password) if username and password else None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self._ids = itertools.count(1)
        self._session_id: Optional[str] = None
        self._initialized = False
        self._init_lock = asyncio.Lock()
        self.server_info: Dict[str, Any] = {}

    # ---- public ---------------------------------------------------------
    async def list_operations(self) -> List[Dict[str, Any]]:
        await self._ensure_initialized()
        tools: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        for _ in range(MAX_LIST_PAGES):
            result = await self._rpc("tools/list", {"cursor": cursor} if cursor else {})
            page = result.get("tools")
            if not isinstance(page, list):
                raise TransportError("tools/list: response carries no 'tools' array")
            tools.extend(page)
            cursor = result.get("nextCursor")
            if not cursor:
                log.info("[MCP] listed %d tools from %s", len(tools), self.url)
                return tools
        raise TransportError(f"tools/list: more than {MAX_LIST_PAGES} pages")

    async def invoke(self, name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        await self._ensure_initialized()
        log.info("[MCP] calling tool %s", name)
        return await self._rpc("tools/call", {"name": name, "arguments": args})

    async def aclose(self) -> None:
        self._initialized = False
        self._session_id = None
        if self._owns_client:
            await self._client.aclose()

    # ---- protocol -------------------------------------------------------
    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            result = await self._rpc(
                "initialize",
                {
                    "protocolVersion": PROTOCOL_VERSION,
                    "capabilities": {},
                    "clientInfo": {"name": CLIENT_NAME, "version": CLIENT_VERSION},
                },
            )
            self.server_info = result.get("serverInfo") or {}
            await self._post({"jsonrpc": "2.0", "method": "notifications/initialized"})
            self._initialized = True
            log.info("[MCP] connected to %s (%s)", self.url, self.server_info.get("name", "unknown server"))

    async def _rpc(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        req_id = next(self._ids)
        r = await self._post({"jsonrpc": "2.0", "id": req_id, "method": method, "params": params})
        message = self._read_message(r, req_id, method)
        if "error" in message:
            err = message.get("error") or {}
            raise TransportError(
                f"{method}: JSON-RPC error {err.get('code')}: {err.get('message')}",
                details={"rpc_error": err},
            )
        result = message.get("result")
        if not isinstance(result, dict):
            raise TransportError(f"{method}: response has no result object")
        return result

    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        method = payload.get("method")
        headers = corr_headers({
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
        })
        if self._session_id:
            headers["Mcp-Session-Id"] = self._session_id
        kwargs: Dict[str, Any] = {"headers": headers, "content": orjson.dumps(payload)}
        if self._auth is not None:
            kwargs["auth"] = self._auth
        try:
            r = await self._client.post(self.url, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(f"{method}: request failed: {e}") from e

        sid = r.headers.get("mcp-session-id")
        if sid:
            self._session_id = sid
        if r.is_error:
            if r.status_code == 404 and self._session_id:
                # session expired server-side; next call re-initializes
                self._initialized = False
                self._session_id = None
            raise TransportError(f"{method}: HTTP {r.status_code}: {r.text[:500]}", status_code=r.status_code)
        return r

    @staticmethod
    def _read_message(r: httpx.Response, req_id: int, method: str) -> Dict[str, Any]:
        ctype = r.headers.get("content-type", "")
        if "text/event-stream" in ctype:
            for data in _sse_data(r.text):
                try:
                    msg = orjson.loads(data)
                except orjson.JSONDecodeError:
                    continue
                if isinstance(msg, dict) and msg.get("id") == req_id:
                    return msg
            raise TransportError(f"{method}: no response for request {req_id} in event stream")

        try:
            msg = orjson.loads(r.content)
        except orjson.JSONDecodeError as e:
            raise TransportError(f"{method}: malformed JSON response") from e
        if isinstance(msg, list):
            msg = next((m for m in msg if isinstance(m, dict) and m.get("id") == req_id), None)
        if not isinstance(msg, dict):
            raise TransportError(f"{method}: unexpected response shape")
        return msg
