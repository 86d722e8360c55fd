from __future__ import annotations

import asyncio
from typing import Any

LOGIN_URL = "https://example.com/login"
HOME_URL = "https://example.com/home"

LOGIN_PAGE = """
<html><head><title>Sign in</title></head>
<body>
<form>
  <input type="email" aria-label="Email">
  <input type="password" aria-label="Password">
  <button type="submit">Log in</button>
</form>
<p id="intro">Welcome back to the example site</p>
</body></html>
"""

HOME_PAGE = "<html><head><title>Home</title></head><body><h1>Home</h1></body></html>"


async def _no_sleep(_seconds: float) -> None:
    return None


def _setup(**host_kwargs: Any):  # type: ignore[no-untyped-def]
    from mcp_servers.tabpilot.agent.dispatcher import CommandDispatcher
    from mcp_servers.tabpilot.agent.snapshot_host import SnapshotHost

    host = SnapshotHost(pages={LOGIN_URL: LOGIN_PAGE, HOME_URL: HOME_PAGE}, sleep=_no_sleep, **host_kwargs)
    return host, CommandDispatcher(host, sleep=_no_sleep)


def _call(dispatcher, method: str, params: dict[str, Any] | None = None, call_id: str = "c1") -> dict[str, Any]:  # type: ignore[no-untyped-def]
    return asyncio.run(dispatcher.handle({"id": call_id, "method": method, "params": params or {}}))


def _open(host, url: str = LOGIN_URL, active: bool = True):  # type: ignore[no-untyped-def]
    return asyncio.run(host.create_tab(url=url, active=active))


def test_page_tool_on_active_tab() -> None:
    host, dispatcher = _setup()
    _open(host)

    reply = _call(dispatcher, "page_analyze", {"intent_hint": "login"})

    assert reply["id"] == "c1"
    assert reply["result"]["method"] == "enhanced_patterns"
    assert len(reply["result"]["elements"]) == 3


def test_explicit_tab_id_targets_background_tab() -> None:
    host, dispatcher = _setup()
    background = _open(host, LOGIN_URL, active=False)
    _open(host, HOME_URL, active=True)

    reply = _call(dispatcher, "page_extract_content", {"content_type": "article", "tab_id": background.id})

    assert reply["result"]["summary"]["title"] == "Untitled"
    assert "Welcome back" in reply["result"]["summary"]["preview"]


def test_missing_tabs_are_context_errors() -> None:
    host, dispatcher = _setup()

    reply = _call(dispatcher, "page_analyze", {"intent_hint": "x"})
    assert reply["error"]["kind"] == "ContextNotFound"
    assert reply["error"]["message"] == "No active tab found"

    _open(host)
    reply = _call(dispatcher, "page_analyze", {"intent_hint": "x", "tab_id": 999})
    assert reply["error"]["message"] == "Tab 999 not found or inaccessible"
    assert reply["error"]["code"] == -32603


def test_agent_is_injected_after_failed_pings() -> None:
    host, dispatcher = _setup(auto_inject=False)
    tab = _open(host)
    assert host.page_agent(tab.id) is None

    reply = _call(dispatcher, "page_analyze", {"intent_hint": "login"})

    assert "result" in reply
    assert host.inject_calls == [tab.id]

    # Once injected the ping answers and no second injection happens.
    _call(dispatcher, "page_analyze", {"intent_hint": "login"}, call_id="c2")
    assert host.inject_calls == [tab.id]


def test_restricted_tab_refuses_injection() -> None:
    host, dispatcher = _setup()
    asyncio.run(host.create_tab(url=None, active=True))

    reply = _call(dispatcher, "page_analyze", {"intent_hint": "login"})

    assert reply["error"]["kind"] == "InjectionRestricted"
    assert "about:blank" in reply["error"]["message"]
    assert host.inject_calls == []


def test_unreachable_agent_after_injection(monkeypatch) -> None:  # type: ignore[no-untyped-def]
    host, dispatcher = _setup(auto_inject=False)
    _open(host)

    async def broken_inject(_tab_id: int) -> None:
        return None

    monkeypatch.setattr(host, "inject_agent", broken_inject)
    reply = _call(dispatcher, "page_analyze", {"intent_hint": "login"})

    assert reply["error"]["kind"] == "AgentUnreachable"
    assert reply["error"]["message"] == "Page agent not available in tab 1 after 3 attempts"


def test_page_failure_is_prefixed_with_tab() -> None:
    host, dispatcher = _setup()
    tab = _open(host)

    reply = _call(dispatcher, "element_click", {"element_id": "q9-000000"})

    assert reply["error"]["kind"] == "ToolExecutionFailed"
    assert reply["error"]["message"] == f"Tab {tab.id}: Element not found: q9-000000"


def test_fill_then_navigation_expires_ids() -> None:
    host, dispatcher = _setup()
    tab = _open(host)

    elements = _call(dispatcher, "page_analyze", {"intent_hint": "login"})["result"]["elements"]
    filled = _call(dispatcher, "element_fill", {"element_id": elements[0]["id"], "value": "me@example.com"})
    assert filled["result"]["success"] is True
    assert host.document(tab.id).query_selector("[type='email']").value == "me@example.com"

    navigated = _call(dispatcher, "page_navigate", {"url": HOME_URL})
    assert navigated["result"] == {"success": True, "tabId": tab.id, "url": HOME_URL}

    stale = _call(dispatcher, "element_click", {"element_id": elements[2]["id"]})
    assert "Element not found" in stale["error"]["message"]


def test_safety_mode_blocks_write_tools_only() -> None:
    host, dispatcher = _setup()
    _open(host)
    asyncio.run(dispatcher.set_safety_mode(True))
    assert host.storage["safetyMode"] is True

    blocked = _call(dispatcher, "element_fill", {"element_id": "q1-x", "value": "v"})
    assert blocked["error"]["kind"] == "ToolExecutionFailed"
    assert blocked["error"]["message"].startswith("Safety Mode is enabled. This tool (element_fill) is blocked")
    assert "the current page" in blocked["error"]["message"]

    allowed = _call(dispatcher, "page_analyze", {"intent_hint": "login"})
    assert "result" in allowed

    asyncio.run(dispatcher.set_safety_mode(False))
    clicked = _call(dispatcher, "element_click", {"element_id": allowed["result"]["elements"][2]["id"]})
    assert clicked["result"]["success"] is True


def test_safety_mode_default_comes_from_config() -> None:
    from mcp_servers.tabpilot.agent.dispatcher import CommandDispatcher
    from mcp_servers.tabpilot.agent.snapshot_host import SnapshotHost
    from mcp_servers.tabpilot.config import AgentConfig

    dispatcher = CommandDispatcher(SnapshotHost(), AgentConfig(safety_mode=True), sleep=_no_sleep)
    assert asyncio.run(dispatcher.safety_mode()) is True


def test_selected_text() -> None:
    host, dispatcher = _setup()
    tab = _open(host)

    empty = _call(dispatcher, "get_selected_text")
    assert empty["result"]["has_selection"] is False
    assert empty["result"]["message"] == "No text is currently selected on the page"

    doc = host.document(tab.id)
    doc.select_text(doc.get_element_by_id("intro"))

    full = _call(dispatcher, "get_selected_text")["result"]
    assert full["selected_text"] == "Welcome back to the example site"
    assert full["character_count"] == 32
    assert full["truncated"] is False
    assert full["selection_metadata"]["word_count"] == 6
    assert full["metadata"]["tab_info"] == {"id": tab.id, "url": LOGIN_URL, "title": "Sign in"}

    short = _call(dispatcher, "get_selected_text", {"max_length": 7, "include_metadata": False})["result"]
    assert short["selected_text"] == "Welcome"
    assert short["truncated"] is True
    assert "selection_metadata" not in short


def test_selected_text_without_tab() -> None:
    _host, dispatcher = _setup()
    reply = _call(dispatcher, "get_selected_text")

    assert reply["result"]["success"] is False
    assert reply["result"]["error"] == "No active tab found"


def test_unknown_method() -> None:
    _host, dispatcher = _setup()
    reply = _call(dispatcher, "page_style", {})

    assert reply["error"]["message"] == "Unknown method: page_style"
