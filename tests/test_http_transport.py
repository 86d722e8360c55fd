from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest


def _transport(transport: str = "http"):  # type: ignore[no-untyped-def]
    from mcp_servers.tabpilot.config import BridgeConfig
    from mcp_servers.tabpilot.http_transport import HttpTransport
    from mcp_servers.tabpilot.main import McpServer

    cfg = BridgeConfig(transport=transport, ws_port=0, http_port=0)
    return HttpTransport(McpServer(cfg), cfg)


def test_post_mcp_request_response() -> None:
    from aiohttp.test_utils import TestClient, TestServer

    async def _run() -> None:
        transport = _transport()
        async with TestClient(TestServer(transport.build_app())) as client:
            resp = await client.post(
                "/mcp",
                json={"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {"protocolVersion": "2024-11-05"}},
            )
            assert resp.status == 200
            body = await resp.json()
            assert body["result"]["protocolVersion"] == "2024-11-05"

            resp = await client.post("/mcp", json={"jsonrpc": "2.0", "method": "notifications/initialized"})
            assert resp.status == 204

            resp = await client.post("/mcp", data=b"{not json")
            assert resp.status == 400
            assert (await resp.json())["error"]["code"] == -32700

            resp = await client.post(
                "/mcp",
                json={"jsonrpc": "2.0", "id": 2, "method": "tools/call", "params": {"name": "tab_list"}},
            )
            reply = await resp.json()
            assert reply["result"]["isError"] is True

    asyncio.run(_run())


def test_side_channel_is_always_served() -> None:
    from aiohttp.test_utils import TestClient, TestServer

    async def _run() -> tuple[dict[str, Any], dict[str, Any], int]:
        transport = _transport("stdio")
        async with TestClient(TestServer(transport.build_app())) as client:
            health = await (await client.get("/health")).json()
            ports = await (await client.get("/ports")).json()
            mcp = await client.post("/mcp", json={"jsonrpc": "2.0", "id": 1, "method": "ping"})
            return health, ports, mcp.status

    health, ports, mcp_status = asyncio.run(_run())
    assert health["status"] == "ok"
    assert health["agentConnected"] is False
    assert "websocketUrl" in ports
    assert mcp_status == 404


def test_sse_session_roundtrip(monkeypatch: pytest.MonkeyPatch) -> None:
    from aiohttp.test_utils import TestClient, TestServer

    from mcp_servers.tabpilot import http_transport

    monkeypatch.setattr(http_transport, "SSE_KEEPALIVE_S", 0.05)

    async def _next_event(stream) -> tuple[str, str]:  # type: ignore[no-untyped-def]
        event = data = ""
        while True:
            line = (await stream.readline()).decode().rstrip("\n")
            if line.startswith(":"):
                continue
            if line.startswith("event: "):
                event = line[len("event: ") :]
            elif line.startswith("data: "):
                data = line[len("data: ") :]
            elif line == "" and event:
                return event, data

    async def _run() -> None:
        transport = _transport()
        async with TestClient(TestServer(transport.build_app())) as client:
            resp = await client.get("/sse")
            assert resp.headers["Content-Type"].startswith("text/event-stream")

            event, endpoint = await _next_event(resp.content)
            assert event == "endpoint"
            assert endpoint.startswith("/messages?session_id=")
            assert len(transport.sessions) == 1

            posted = await client.post(endpoint, json={"jsonrpc": "2.0", "id": 9, "method": "ping"})
            assert posted.status == 202

            event, data = await asyncio.wait_for(_next_event(resp.content), timeout=2.0)
            assert event == "message"
            assert json.loads(data) == {"jsonrpc": "2.0", "id": 9, "result": {}}

            missing = await client.post("/messages?session_id=nope", json={"jsonrpc": "2.0", "id": 1, "method": "ping"})
            assert missing.status == 404

            resp.close()
            for _ in range(100):
                if not transport.sessions:
                    break
                await asyncio.sleep(0.02)
            assert transport.sessions == {}

    asyncio.run(_run())


def test_start_and_stop_bind_real_port() -> None:
    from mcp_servers.tabpilot.http_client import http_get_json

    async def _run() -> dict[str, Any]:
        transport = _transport()
        await transport.start()
        try:
            assert transport.port > 0
            return await http_get_json(f"http://127.0.0.1:{transport.port}/ports", timeout=2.0)
        finally:
            await transport.stop()

    ports = asyncio.run(_run())
    assert ports["http"] > 0
