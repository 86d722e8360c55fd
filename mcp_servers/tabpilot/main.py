"""
Bridge between a control-protocol client and the browser agent.

This module provides the main entry point and protocol handling. Tool calls are
forwarded to the connected agent through the gateway in extension_gateway.py.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import sys
from typing import Any

from .config import BridgeConfig
from .errors import APPLICATION_ERROR_CODE, AgentUnavailable, TabpilotError
from .extension_gateway import AgentGateway
from .server.contract import (
    DEFAULT_PROTOCOL_VERSION,
    LATEST_PROTOCOL_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    initialize_result,
    select_protocol,
    tools_list,
)
from .server.formatting import format_tool_result
from .server.redaction import redact_jsonrpc_for_log, redact_tool_arguments
from .server.types import ToolResult

logger = logging.getLogger("mcp.tabpilot")

__all__ = [
    "SUPPORTED_PROTOCOL_VERSIONS",
    "LATEST_PROTOCOL_VERSION",
    "DEFAULT_PROTOCOL_VERSION",
    "McpServer",
    "main",
]


def _write_message(payload: dict[str, Any]) -> None:
    """Write JSON-RPC message to stdout."""
    data = json.dumps(payload, ensure_ascii=False)
    sys.stdout.buffer.write((data + "\n").encode())
    sys.stdout.buffer.flush()


def _parse_line(line: bytes) -> dict[str, Any] | None:
    """Decode one stdin line; None for blank or malformed input."""
    line = line.strip()
    if not line:
        return None
    try:
        msg = json.loads(line.decode())
    except ValueError:
        logger.warning("dropped malformed frame len=%s", len(line))
        return None
    if not isinstance(msg, dict):
        return None
    if os.environ.get("MCP_TRACE"):
        logger.info("recv %s", redact_jsonrpc_for_log(msg))
    return msg


def _expects_reply(message: dict[str, Any]) -> bool:
    method = message.get("method")
    if isinstance(method, str) and method.startswith("notifications/"):
        return False
    return message.get("id") is not None


class McpServer:
    """Control-protocol server that relays tool calls to the browser agent."""

    def __init__(self, config: BridgeConfig | None = None, *, gateway: AgentGateway | None = None) -> None:
        self.config = config or BridgeConfig.from_env()
        self.gateway = gateway or AgentGateway(self.config)

    def handle_initialize(self, request_id: Any, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Handle initialize request. Never waits for the agent."""
        requested = (params or {}).get("protocolVersion") if isinstance(params, dict) else None
        client = ((params or {}).get("clientInfo") or {}).get("name") if isinstance(params, dict) else None
        logger.info("client initializing: %s", client or "unknown")
        return {"jsonrpc": "2.0", "id": request_id, "result": initialize_result(select_protocol(requested))}

    def handle_list_tools(self, request_id: Any) -> dict[str, Any]:
        """Handle tools/list request."""
        agent_tools = self.gateway.tools if self.gateway.is_connected() else []
        tools = [
            {"name": t.get("name"), "description": t.get("description", ""), "inputSchema": t.get("inputSchema", {})}
            for t in tools_list(agent_tools)
        ]
        logger.info("tools/list connected=%s tools=%s", self.gateway.is_connected(), len(tools))
        return {"jsonrpc": "2.0", "id": request_id, "result": {"tools": tools}}

    def _log_call(self, name: str, arguments: dict[str, Any]) -> None:
        """Log tool call with sanitized arguments."""
        safe_args = redact_tool_arguments(name, arguments)
        logger.info("tool=%s args=%s", name, safe_args)

    async def handle_call_tool(self, request_id: Any, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Forward a tool call to the agent and format its result."""
        self._log_call(name, arguments)

        if not self.gateway.is_connected():
            result = ToolResult.error(AgentUnavailable().message)
        elif not name:
            result = ToolResult.error("Missing tool name")
        else:
            try:
                raw = await self.gateway.call_tool(name, arguments)
                result = ToolResult.text(format_tool_result(name, raw))
            except TabpilotError as e:
                logger.info("tool_error tool=%s kind=%s reason=%s", name, e.kind, e.message)
                result = ToolResult.error(f"Tool execution failed: {e.message}")
            except Exception as exc:  # noqa: BLE001
                logger.exception("tool_call_failed")
                result = ToolResult.error(f"Tool execution failed: {exc}")

        return {"jsonrpc": "2.0", "id": request_id, "result": result.to_call_result()}

    async def dispatch(self, message: dict[str, Any]) -> dict[str, Any] | None:
        """Dispatch incoming JSON-RPC message; None when no reply is expected."""
        if not message or not _expects_reply(message):
            if message and message.get("method"):
                logger.info("notification %s", message.get("method"))
            return None

        method = message.get("method")
        request_id = message.get("id")
        params = message.get("params") or {}

        if method == "initialize":
            return self.handle_initialize(request_id, params)
        if method == "tools/list":
            return self.handle_list_tools(request_id)
        if method == "tools/call":
            name = params.get("name") if isinstance(params, dict) else None
            arguments = (params.get("arguments") if isinstance(params, dict) else None) or {}
            return await self.handle_call_tool(request_id, name or "", arguments)
        if method == "resources/list":
            return {"jsonrpc": "2.0", "id": request_id, "result": {"resources": []}}
        if method == "prompts/list":
            return {"jsonrpc": "2.0", "id": request_id, "result": {"prompts": []}}
        if method == "ping":
            return {"jsonrpc": "2.0", "id": request_id, "result": {}}
        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "error": {"code": APPLICATION_ERROR_CODE, "message": f"Unknown method: {method}"},
        }


async def serve_stdio(server: McpServer, *, stdin: Any = None, write: Any = _write_message) -> None:
    """Read line-delimited requests until EOF; each request runs in its own task."""
    stream = stdin or sys.stdin.buffer
    tasks: set[asyncio.Task] = set()

    async def _handle(message: dict[str, Any]) -> None:
        try:
            reply = await server.dispatch(message)
        except Exception:  # noqa: BLE001
            logger.exception("request_failed method=%s", message.get("method"))
            return
        if reply is not None:
            write(reply)

    while True:
        line = await asyncio.to_thread(stream.readline)
        if not line:
            break
        message = _parse_line(line)
        if message is None:
            continue
        task = asyncio.create_task(_handle(message))
        tasks.add(task)
        task.add_done_callback(tasks.discard)

    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)


async def run_bridge(config: BridgeConfig | None = None) -> None:
    from .http_transport import HttpTransport

    cfg = config or BridgeConfig.from_env()
    server = McpServer(cfg)
    await server.gateway.start()
    http = HttpTransport(server, cfg)
    await http.start()
    logger.info("bridge ready transport=%s ws=%s http=%s", cfg.transport, server.gateway.port, http.port)
    try:
        if cfg.serves_stdio:
            await serve_stdio(server)
        else:
            await asyncio.Event().wait()
    finally:
        with contextlib.suppress(Exception):
            await http.stop()
        await server.gateway.stop()


def main() -> None:
    """Main entry point for the bridge."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(run_bridge())


if __name__ == "__main__":
    main()
