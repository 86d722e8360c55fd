"""
HTTP binding for the bridge.

Always serves the side channel (``GET /health``, ``GET /ports``). When the
configured transport includes HTTP it also serves the control protocol:
``POST /mcp`` (request/response) and ``GET /sse`` + ``POST /messages``
(event-stream sessions).
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import secrets
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from aiohttp import web

from .config import BridgeConfig

if TYPE_CHECKING:
    from .main import McpServer

logger = logging.getLogger("mcp.tabpilot.http")

SSE_KEEPALIVE_S = 15.0


@dataclass(slots=True)
class SseSession:
    id: str
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)


class HttpTransport:
    def __init__(self, server: McpServer, config: BridgeConfig | None = None) -> None:
        self.server = server
        self.config = config or server.config
        self.host = self.config.http_host
        self.port = int(self.config.http_port)
        self.sessions: dict[str, SseSession] = {}
        self._runner: web.AppRunner | None = None
        self._tasks: set[asyncio.Task] = set()

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self.handle_health)
        app.router.add_get("/ports", self.handle_ports)
        if self.config.serves_mcp_http:
            app.router.add_post("/mcp", self.handle_mcp)
            app.router.add_get("/sse", self.handle_sse)
            app.router.add_post("/messages", self.handle_messages)
        return app

    async def start(self) -> None:
        if self._runner is not None:
            return
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        if self.port == 0:
            with contextlib.suppress(Exception):
                self.port = int(self._runner.addresses[0][1])
        logger.info("http transport listening on http://%s:%s", self.host, self.port)

    async def stop(self) -> None:
        runner = self._runner
        self._runner = None
        for task in list(self._tasks):
            task.cancel()
        if runner is not None:
            await runner.cleanup()

    # ── side channel ──────────────────────────────────────────────────────

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response(self.server.gateway.health())

    async def handle_ports(self, request: web.Request) -> web.Response:
        ports = self.server.gateway.ports()
        ports["http"] = self.port
        return web.json_response(ports)

    # ── control protocol ──────────────────────────────────────────────────

    async def _read_json(self, request: web.Request) -> dict[str, Any] | None:
        try:
            body = await request.json()
        except (ValueError, UnicodeDecodeError):
            return None
        return body if isinstance(body, dict) else None

    @staticmethod
    def _parse_error() -> web.Response:
        return web.json_response(
            {"jsonrpc": "2.0", "id": None, "error": {"code": -32700, "message": "Parse error"}},
            status=400,
        )

    async def handle_mcp(self, request: web.Request) -> web.Response:
        message = await self._read_json(request)
        if message is None:
            return self._parse_error()
        reply = await self.server.dispatch(message)
        if reply is None:
            return web.Response(status=204)
        return web.json_response(reply)

    async def handle_sse(self, request: web.Request) -> web.StreamResponse:
        session = SseSession(id=secrets.token_hex(8))
        self.sessions[session.id] = session
        resp = web.StreamResponse(
            headers={
                "Content-Type": "text/event-stream",
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
            }
        )
        await resp.prepare(request)
        logger.info("sse session opened id=%s", session.id)
        try:
            await resp.write(f"event: endpoint\ndata: /messages?session_id={session.id}\n\n".encode())
            while True:
                try:
                    payload = await asyncio.wait_for(session.queue.get(), timeout=SSE_KEEPALIVE_S)
                except asyncio.TimeoutError:
                    await resp.write(b": keepalive\n\n")
                    continue
                data = json.dumps(payload, ensure_ascii=False)
                await resp.write(f"event: message\ndata: {data}\n\n".encode())
        except ConnectionResetError:
            pass
        finally:
            self.sessions.pop(session.id, None)
            logger.info("sse session closed id=%s", session.id)
        return resp

    async def handle_messages(self, request: web.Request) -> web.Response:
        session = self.sessions.get(request.query.get("session_id", ""))
        if session is None:
            return web.Response(status=404, text="unknown session")
        message = await self._read_json(request)
        if message is None:
            return self._parse_error()

        async def _run() -> None:
            reply = await self.server.dispatch(message)
            if reply is not None:
                await session.queue.put(reply)

        task = asyncio.create_task(_run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return web.Response(status=202, text="Accepted")
