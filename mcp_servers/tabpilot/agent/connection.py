"""
Agent-side link to the bridge.

Owns the single outbound socket: registers the agent's tools on open, answers
forwarded calls through the dispatcher, keeps a heartbeat on persistent hosts,
and reconnects with capped exponential backoff after abnormal closes.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import websockets

from ..config import DEFAULT_SERVER_URL, AgentConfig
from ..http_client import HttpClientError, http_get_json
from ..timeutil import now_ms
from .definitions import AGENT_TOOL_DEFINITIONS

logger = logging.getLogger("mcp.tabpilot.agent.connection")

NORMAL_CLOSE_CODES = frozenset({1000, 1001})
DISCOVERY_AFTER_ATTEMPTS = 2
DISCOVERY_TIMEOUT_S = 1.0
OPEN_TIMEOUT_S = 5.0


class ConnectionPhase(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class ConnectionState:
    socket: Any | None = None
    reconnect_attempts: int = 0
    heartbeat_task: asyncio.Task | None = None
    registered_tools: list[dict[str, Any]] = field(default_factory=list)
    phase: ConnectionPhase = ConnectionPhase.DISCONNECTED


class ConnectionManager:
    def __init__(
        self,
        handler: Callable[[dict[str, Any]], Awaitable[dict[str, Any]]],
        config: AgentConfig | None = None,
        *,
        tools: list[dict[str, Any]] | None = None,
        connect: Callable[..., Awaitable[Any]] | None = None,
        fetch_json: Callable[..., Awaitable[Any]] = http_get_json,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.handler = handler
        self.config = config or AgentConfig()
        self.tools = list(tools if tools is not None else AGENT_TOOL_DEFINITIONS)
        self.server_url = self.config.server_url
        self.last_known_ports: dict[str, Any] = {}
        self.state = ConnectionState()
        self._connect = connect or websockets.connect
        self._fetch_json = fetch_json
        self._sleep = sleep
        self._reader_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._call_tasks: set[asyncio.Task] = set()
        self._lock = asyncio.Lock()

    # ─────────────────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def persistent(self) -> bool:
        return bool(self.config.persistent)

    def is_open(self) -> bool:
        return self.state.phase is ConnectionPhase.OPEN and self.state.socket is not None

    def status(self) -> dict[str, Any]:
        return {
            "connected": self.is_open(),
            "connectionType": "persistent" if self.persistent else "temporary",
            "reconnectAttempts": self.state.reconnect_attempts,
            "phase": self.state.phase.value,
            "serverUrl": self.server_url,
        }

    async def connect(self) -> bool:
        """Open the link unless it is already open. Returns True when open."""
        async with self._lock:
            if self.is_open():
                return True
            return await self._create_connection()

    async def ensure_connection(self) -> bool:
        if self.is_open():
            return True
        return await self.connect()

    async def send(self, message: dict[str, Any]) -> bool:
        """Send one frame. A closed socket is a connection-loss signal."""
        if not self.is_open():
            logger.error("socket not connected; %s frame", message.get("type") or "reply")
            if not self.persistent:
                await self.ensure_connection()
            elif self._reconnect_task is None and self.state.phase is not ConnectionPhase.CONNECTING:
                self.schedule_reconnect()
        ws = self.state.socket
        if ws is None or not self.is_open():
            return False
        try:
            await ws.send(json.dumps(message, ensure_ascii=False, default=str))
        except websockets.ConnectionClosed:
            return False
        return True

    async def close(self) -> None:
        self._cancel_reconnect()
        self._cancel_heartbeat()
        ws = self.state.socket
        if ws is not None:
            self.state.phase = ConnectionPhase.CLOSING
            with contextlib.suppress(Exception):
                await ws.close(code=1000)
        reader = self._reader_task
        if reader is not None and reader is not asyncio.current_task():
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await reader
        for task in list(self._call_tasks):
            task.cancel()
        self.state.socket = None
        self.state.phase = ConnectionPhase.CLOSED

    async def discover_server_ports(self) -> dict[str, Any] | None:
        """Ask well-known bridge HTTP ports for the socket URL."""
        for port in self.config.discovery_ports:
            try:
                info = await self._fetch_json(f"http://localhost:{port}/ports", timeout=DISCOVERY_TIMEOUT_S)
            except HttpClientError:
                continue
            if isinstance(info, dict) and info.get("websocketUrl"):
                logger.info("discovered bridge ports %s", info)
                self.last_known_ports = {"websocket": info.get("websocket"), "http": info.get("http")}
                self.server_url = str(info["websocketUrl"])
                return info
        logger.info("port discovery failed, using %s", self.server_url)
        return None

    # ─────────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────────

    async def _create_connection(self) -> bool:
        if self.server_url == DEFAULT_SERVER_URL or self.state.reconnect_attempts > DISCOVERY_AFTER_ATTEMPTS:
            await self.discover_server_ports()

        self.state.phase = ConnectionPhase.CONNECTING
        logger.info("connecting to bridge at %s", self.server_url)
        try:
            ws = await self._connect(self.server_url, ping_interval=None, open_timeout=OPEN_TIMEOUT_S)
        except (OSError, asyncio.TimeoutError, websockets.InvalidURI, websockets.InvalidHandshake) as exc:
            logger.warning("connect failed: %s", exc)
            self.state.phase = ConnectionPhase.DISCONNECTED
            self.state.reconnect_attempts += 1
            if self.persistent:
                self.schedule_reconnect()
            return False

        self.state.socket = ws
        self.state.phase = ConnectionPhase.OPEN
        self.state.reconnect_attempts = 0
        self._cancel_reconnect()
        self.state.registered_tools = list(self.tools)
        await self.send({"type": "register", "tools": self.state.registered_tools})
        logger.info("connected; registered %s tools", len(self.state.registered_tools))
        if self.persistent:
            self._start_heartbeat()
        self._reader_task = asyncio.create_task(self._read_loop(ws))
        return True

    async def _read_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                try:
                    msg = json.loads(raw)
                except ValueError:
                    logger.warning("dropped malformed bridge frame")
                    continue
                if isinstance(msg, dict):
                    self._on_message(msg)
        except websockets.ConnectionClosed:
            pass
        finally:
            if self.state.socket is ws:
                self._on_close(getattr(ws, "close_code", None))

    def _on_message(self, msg: dict[str, Any]) -> None:
        if msg.get("type") == "pong":
            return
        if "id" in msg and msg.get("method"):
            task = asyncio.create_task(self._answer(msg))
            self._call_tasks.add(task)
            task.add_done_callback(self._call_tasks.discard)

    async def _answer(self, msg: dict[str, Any]) -> None:
        reply = await self.handler(msg)
        await self.send(reply)

    def _on_close(self, code: int | None) -> None:
        code = 1006 if code is None else int(code)
        closing = self.state.phase is ConnectionPhase.CLOSING
        logger.info("disconnected from bridge (code: %s)", code)
        self._cancel_heartbeat()
        self.state.socket = None
        self.state.registered_tools = []
        self.state.phase = ConnectionPhase.CLOSED
        if closing:
            return
        self.state.reconnect_attempts += 1
        if code in NORMAL_CLOSE_CODES:
            return
        if self.persistent:
            self.schedule_reconnect()

    def schedule_reconnect(self) -> bool:
        """Schedule the next attempt; False once the attempt limit is reached."""
        self._cancel_reconnect()
        attempts = self.state.reconnect_attempts
        if attempts >= self.config.reconnect_max_attempts:
            logger.error("maximum reconnection attempts reached (%s)", attempts)
            return False
        delay_ms = self.config.backoff_delay_ms(attempts)
        logger.info("reconnecting in %sms (attempt %s)", delay_ms, attempts)
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay_ms / 1000))
        return True

    async def _reconnect_after(self, delay_s: float) -> None:
        await self._sleep(delay_s)
        self._reconnect_task = None
        await self.connect()

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def _start_heartbeat(self) -> None:
        self._cancel_heartbeat()
        self.state.heartbeat_task = asyncio.create_task(self._heartbeat())

    def _cancel_heartbeat(self) -> None:
        task = self.state.heartbeat_task
        self.state.heartbeat_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _heartbeat(self) -> None:
        while True:
            await self._sleep(self.config.heartbeat_interval_s)
            if self.is_open():
                await self.send({"type": "ping", "timestamp": now_ms()})
            elif self.state.phase is not ConnectionPhase.CONNECTING:
                logger.info("socket closed, reconnecting from heartbeat")
                await self.connect()
                return
