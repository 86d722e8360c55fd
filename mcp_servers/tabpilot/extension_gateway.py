from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections import deque
from typing import Any

import websockets
from websockets.datastructures import Headers as WsHeaders
from websockets.http11 import Response as WsResponse

from .config import BridgeConfig
from .correlation import PendingCalls
from .errors import AgentUnavailable
from .timeutil import now_ms

logger = logging.getLogger("mcp.tabpilot.gateway")

FEATURES = [
    "Direct text insertion for composer editors on x.com/twitter.com, linkedin.com, facebook.com",
    "Two-phase page analysis with compact element ids",
    "Content extraction with summaries",
    "Element state and interaction readiness",
    "Batch tab creation",
]


class AgentGateway:
    """Bridge-side socket endpoint for the browser agent.

    - One active agent; a newer connection replaces the previous one.
    - ``register`` frames replace the tool list, ``ping`` gets a ``pong``.
    - ``{id, result|error}`` frames are routed to ``PendingCalls``.
    - Plain HTTP on the same port serves ``/health`` and ``/ports``.
    """

    def __init__(self, config: BridgeConfig | None = None, *, pending: PendingCalls | None = None) -> None:
        self.config = config or BridgeConfig()
        self.host = self.config.ws_host
        self.port = int(self.config.ws_port)
        self.pending = pending or PendingCalls(timeout=self.config.call_timeout)
        self.tools: list[dict[str, Any]] = []
        self._server: Any | None = None
        self._ws: Any | None = None
        self._client_last_seen_ms = 0
        self._connected_at_ms = 0
        self._started_at_ms = now_ms()
        self._connected = asyncio.Event()
        self._logs: deque[dict[str, Any]] = deque(maxlen=200)

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    async def start(self) -> None:
        if self._server is not None:
            return
        self._server = await websockets.serve(
            self._handler,
            self.host,
            self.port,
            process_request=self._process_request,
            max_size=2_000_000,
            ping_interval=None,
        )
        if self.port == 0:
            with contextlib.suppress(Exception):
                self.port = int(next(iter(self._server.sockets)).getsockname()[1])
        self._log("info", f"gateway listening on {self.host}:{self.port}")
        logger.info("agent gateway listening on ws://%s:%s", self.host, self.port)

    async def stop(self) -> None:
        srv = self._server
        self._server = None
        ws = self._ws
        if ws is not None:
            with contextlib.suppress(Exception):
                await ws.close()
        if srv is not None:
            srv.close()
            with contextlib.suppress(Exception):
                await srv.wait_closed()
        self._disconnect(ws)

    def is_connected(self) -> bool:
        return self._ws is not None

    async def wait_for_connection(self, *, timeout: float = 5.0) -> bool:
        try:
            await asyncio.wait_for(self._connected.wait(), timeout=max(0.0, float(timeout)))
        except asyncio.TimeoutError:
            return False
        return True

    def status(self) -> dict[str, Any]:
        return {
            "listening": self._server is not None,
            "host": self.host,
            "port": self.port,
            "connected": self.is_connected(),
            "tools": len(self.tools),
            "pendingCalls": len(self.pending),
            **({"connectedAtMs": self._connected_at_ms} if self._connected_at_ms else {}),
            **({"lastSeenMs": self._client_last_seen_ms} if self._client_last_seen_ms else {}),
            "logs": list(self._logs)[-20:],
        }

    def health(self) -> dict[str, Any]:
        return {
            "status": "ok",
            "agentConnected": self.is_connected(),
            "availableTools": len(self.tools),
            "pendingCalls": len(self.pending),
            "features": list(FEATURES),
        }

    def ports(self) -> dict[str, Any]:
        return {
            "websocket": self.port,
            "http": int(self.config.http_port),
            "websocketUrl": f"ws://localhost:{self.port}",
        }

    # ─────────────────────────────────────────────────────────────────────────
    # Calls
    # ─────────────────────────────────────────────────────────────────────────

    async def call_tool(self, name: str, arguments: dict[str, Any], *, timeout: float | None = None) -> Any:
        ws = self._ws
        if ws is None:
            raise AgentUnavailable()

        async def _send(payload: dict[str, Any]) -> None:
            await self._ws_send_json(ws, payload)

        return await self.pending.call(_send, name, arguments, timeout=timeout)

    # ─────────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────────

    def _log(self, level: str, message: str) -> None:
        self._logs.append({"ts": now_ms(), "level": level, "message": message[:2000]})

    def _json_response(self, payload: dict[str, Any]) -> WsResponse:
        body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        headers = WsHeaders()
        headers["Content-Type"] = "application/json"
        headers["Cache-Control"] = "no-store"
        headers["Access-Control-Allow-Origin"] = "*"
        headers["Content-Length"] = str(len(body))
        return WsResponse(200, "OK", headers, body)

    def _http_not_found(self) -> WsResponse:
        headers = WsHeaders()
        headers["Content-Type"] = "text/plain"
        headers["Cache-Control"] = "no-store"
        headers["Content-Length"] = "9"
        return WsResponse(404, "Not Found", headers, b"not found")

    async def _process_request(self, _conn, request):  # type: ignore[no-untyped-def]
        try:
            upgrade = str(request.headers.get("Upgrade") or "").lower()
        except Exception:  # noqa: BLE001
            upgrade = ""
        if upgrade == "websocket":
            return None
        path = str(getattr(request, "path", "") or "").split("?", 1)[0]
        if path == "/health":
            return self._json_response(self.health())
        if path == "/ports":
            return self._json_response(self.ports())
        return self._http_not_found()

    async def _handler(self, ws) -> None:  # type: ignore[no-untyped-def]
        previous = self._ws
        self._ws = ws
        self._connected_at_ms = now_ms()
        self._client_last_seen_ms = self._connected_at_ms
        self._connected.set()
        self._log("info", "agent connected")
        logger.info("agent connected")
        if previous is not None:
            with contextlib.suppress(Exception):
                await previous.close(code=1000, reason="replaced by newer agent")

        try:
            async for raw_msg in ws:
                self._client_last_seen_ms = now_ms()
                try:
                    msg = json.loads(raw_msg)
                except ValueError:
                    self._log("warn", "dropped malformed agent frame")
                    continue
                await self._on_message(ws, msg)
        except websockets.ConnectionClosed:
            pass
        finally:
            self._disconnect(ws)

    def _disconnect(self, ws: Any | None) -> None:
        if ws is None or self._ws is not ws:
            return
        self._ws = None
        self._connected.clear()
        self._connected_at_ms = 0
        self.tools = []
        failed = self.pending.fail_all(AgentUnavailable("Agent disconnected"))
        self._log("info", f"agent disconnected (failed {failed} pending calls)")
        logger.info("agent disconnected pending_failed=%s", failed)

    async def _on_message(self, ws, msg: Any) -> None:  # type: ignore[no-untyped-def]
        if not isinstance(msg, dict):
            return
        mtype = msg.get("type")

        if mtype == "register":
            tools = msg.get("tools")
            self.tools = [t for t in tools if isinstance(t, dict) and t.get("name")] if isinstance(tools, list) else []
            self._log("info", f"registered {len(self.tools)} tools")
            logger.info("agent registered %s tools", len(self.tools))
            return

        if mtype == "ping":
            with contextlib.suppress(Exception):
                await self._ws_send_json(ws, {"type": "pong", "timestamp": now_ms()})
            return

        if "id" in msg:
            if not self.pending.handle_reply(msg):
                logger.debug("reply for unknown call id=%s", msg.get("id"))
            return

    async def _ws_send_json(self, ws, payload: dict[str, Any]) -> None:  # type: ignore[no-untyped-def]
        await ws.send(json.dumps(payload, ensure_ascii=False))
