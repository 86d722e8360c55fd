from __future__ import annotations

import asyncio
import io
import json
from typing import Any


class _FakeGateway:
    def __init__(self, *, result: Any = None, error: BaseException | None = None) -> None:
        self.tools = [{"name": "tab_list", "description": "List tabs", "inputSchema": {"type": "object"}, "extra": 1}]
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._result = result
        self._error = error

    def is_connected(self) -> bool:
        return True

    async def call_tool(self, name: str, arguments: dict[str, Any], *, timeout: float | None = None) -> Any:
        self.calls.append((name, arguments))
        if self._error is not None:
            raise self._error
        return self._result


def _server(gateway: Any = None):  # type: ignore[no-untyped-def]
    from mcp_servers.tabpilot.config import BridgeConfig
    from mcp_servers.tabpilot.main import McpServer

    return McpServer(BridgeConfig(), gateway=gateway)


def _dispatch(server, message: dict[str, Any]) -> Any:  # type: ignore[no-untyped-def]
    return asyncio.run(server.dispatch(message))


def test_initialize_negotiates_protocol() -> None:
    server = _server()

    reply = _dispatch(server, {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {"protocolVersion": "2024-11-05"}})
    assert reply["id"] == 1
    assert reply["result"]["protocolVersion"] == "2024-11-05"
    assert reply["result"]["serverInfo"]["name"] == "tabpilot"

    reply = _dispatch(server, {"jsonrpc": "2.0", "id": 2, "method": "initialize", "params": {"protocolVersion": "9.9"}})
    assert reply["result"]["protocolVersion"] == "2025-06-18"


def test_tools_list_without_agent_is_fallback() -> None:
    server = _server()
    reply = _dispatch(server, {"jsonrpc": "2.0", "id": 1, "method": "tools/list"})

    tools = reply["result"]["tools"]
    assert len(tools) == 6
    assert all(set(t) == {"name", "description", "inputSchema"} for t in tools)


def test_tools_list_with_agent_uses_registered_tools() -> None:
    server = _server(_FakeGateway())
    reply = _dispatch(server, {"jsonrpc": "2.0", "id": 1, "method": "tools/list"})

    assert reply["result"]["tools"] == [
        {"name": "tab_list", "description": "List tabs", "inputSchema": {"type": "object"}}
    ]


def test_tools_call_without_agent_returns_setup_instructions() -> None:
    server = _server()
    reply = _dispatch(
        server,
        {"jsonrpc": "2.0", "id": 7, "method": "tools/call", "params": {"name": "page_analyze", "arguments": {}}},
    )

    assert reply["id"] == 7
    assert reply["result"]["isError"] is True
    assert reply["result"]["content"][0]["text"].startswith("Browser agent not connected.")


def test_tools_call_formats_agent_result() -> None:
    gateway = _FakeGateway(result={"success": True, "url": "https://example.com/", "tabId": 1})
    server = _server(gateway)
    reply = _dispatch(
        server,
        {
            "jsonrpc": "2.0",
            "id": 3,
            "method": "tools/call",
            "params": {"name": "page_navigate", "arguments": {"url": "https://example.com/"}},
        },
    )

    assert gateway.calls == [("page_navigate", {"url": "https://example.com/"})]
    assert reply["result"]["isError"] is False
    assert reply["result"]["content"][0]["text"].startswith("Successfully navigated to: https://example.com/")
    assert set(reply["result"]) == {"content", "isError"}


def test_tool_result_carries_only_wire_fields() -> None:
    from dataclasses import fields

    from mcp_servers.tabpilot.server.types import ToolResult

    assert [f.name for f in fields(ToolResult)] == ["content", "is_error"]
    assert ToolResult.text("ok").to_call_result() == {"content": [{"type": "text", "text": "ok"}], "isError": False}
    assert ToolResult.error("bad").to_call_result()["isError"] is True


def test_tools_call_agent_error_becomes_error_result() -> None:
    from mcp_servers.tabpilot.errors import ContextNotFound, ToolCallTimeout

    server = _server(_FakeGateway(error=ContextNotFound("No active tab found")))
    reply = _dispatch(server, {"jsonrpc": "2.0", "id": 4, "method": "tools/call", "params": {"name": "tab_close"}})
    assert reply["result"] == {
        "content": [{"type": "text", "text": "Tool execution failed: No active tab found"}],
        "isError": True,
    }

    server = _server(_FakeGateway(error=ToolCallTimeout("Tool call timeout")))
    reply = _dispatch(server, {"jsonrpc": "2.0", "id": 5, "method": "tools/call", "params": {"name": "page_wait_for"}})
    assert reply["result"]["content"][0]["text"] == "Tool execution failed: Tool call timeout"

    server = _server(_FakeGateway(error=RuntimeError("kaboom")))
    reply = _dispatch(server, {"jsonrpc": "2.0", "id": 6, "method": "tools/call", "params": {"name": "tab_list"}})
    assert reply["result"]["content"][0]["text"] == "Tool execution failed: kaboom"


def test_misc_methods_and_notifications() -> None:
    server = _server()

    assert _dispatch(server, {"jsonrpc": "2.0", "method": "notifications/initialized"}) is None
    assert _dispatch(server, {"jsonrpc": "2.0", "id": 1, "method": "notifications/cancelled"}) is None
    assert _dispatch(server, {"jsonrpc": "2.0", "method": "tools/list"}) is None
    assert _dispatch(server, {"jsonrpc": "2.0", "id": 1, "method": "ping"})["result"] == {}
    assert _dispatch(server, {"jsonrpc": "2.0", "id": 2, "method": "resources/list"})["result"] == {"resources": []}
    assert _dispatch(server, {"jsonrpc": "2.0", "id": 3, "method": "prompts/list"})["result"] == {"prompts": []}

    reply = _dispatch(server, {"jsonrpc": "2.0", "id": 4, "method": "sampling/createMessage"})
    assert reply["error"] == {"code": -32603, "message": "Unknown method: sampling/createMessage"}


def test_serve_stdio_answers_requests_and_skips_garbage() -> None:
    from mcp_servers.tabpilot.main import serve_stdio

    server = _server()
    lines = [
        json.dumps({"jsonrpc": "2.0", "id": 1, "method": "ping"}),
        "not json at all",
        "",
        json.dumps([1, 2, 3]),
        json.dumps({"jsonrpc": "2.0", "method": "notifications/initialized"}),
        json.dumps({"jsonrpc": "2.0", "id": 2, "method": "tools/list"}),
    ]
    stdin = io.BytesIO(("\n".join(lines) + "\n").encode())
    written: list[dict[str, Any]] = []

    asyncio.run(serve_stdio(server, stdin=stdin, write=written.append))

    by_id = {msg["id"]: msg for msg in written}
    assert sorted(by_id) == [1, 2]
    assert by_id[1]["result"] == {}
    assert len(by_id[2]["result"]["tools"]) == 6
