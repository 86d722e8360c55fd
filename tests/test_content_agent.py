from __future__ import annotations

import asyncio

LOGIN_PAGE = """
<html><head><title>Sign in</title></head>
<body>
<form>
  <input type="email" aria-label="Email">
  <input type="password" aria-label="Password">
  <button type="submit">Log in</button>
</form>
</body></html>
"""


async def _no_sleep(_seconds: float) -> None:
    return None


def _agent(html: str = LOGIN_PAGE, url: str = "https://example.com/login"):  # type: ignore[no-untyped-def]
    from mcp_servers.tabpilot.page.content_agent import PageAgent
    from mcp_servers.tabpilot.page.snapshot import SnapshotDocument

    doc = SnapshotDocument(html, url=url)
    return doc, PageAgent(doc, sleep=_no_sleep)


def test_ping_envelope() -> None:
    _doc, agent = _agent()
    resp = asyncio.run(agent.handle({"action": "ping"}))

    assert resp["success"] is True
    assert resp["data"]["status"] == "ready"
    assert resp["data"]["url"] == "https://example.com/login"
    assert set(resp) == {"success", "data", "execution_time", "data_size", "timestamp"}
    assert resp["data_size"] > 0


def test_unknown_action_is_an_error_envelope() -> None:
    _doc, agent = _agent()
    resp = asyncio.run(agent.handle({"action": "teleport", "data": {}}))

    assert resp["success"] is False
    assert resp["error"] == "Unknown action: teleport"
    assert "execution_time" in resp


def test_analyze_then_fill_and_click() -> None:
    doc, agent = _agent()

    async def _run() -> tuple[dict, dict, dict]:
        analyzed = await agent.handle({"action": "analyze", "data": {"intent_hint": "login"}})
        ids = [el["id"] for el in analyzed["data"]["elements"]]
        filled = await agent.handle({"action": "element_fill", "data": {"element_id": ids[0], "value": "me@example.com"}})
        clicked = await agent.handle({"action": "element_click", "data": {"element_id": ids[2], "wait_after": 0}})
        return analyzed, filled, clicked

    analyzed, filled, clicked = asyncio.run(_run())

    assert analyzed["data"]["method"] == "enhanced_patterns"
    assert filled["success"] is True
    assert filled["data"]["method"] == "standard_fill"
    assert doc.query_selector("[type='email']").value == "me@example.com"
    assert clicked["data"]["element_name"] == "Log in"


def test_detailed_phase_through_agent() -> None:
    _doc, agent = _agent()

    async def _run() -> dict:
        quick = await agent.handle({"action": "analyze", "data": {"intent_hint": "login"}})
        first = quick["data"]["elements"][0]["id"]
        return await agent.handle(
            {"action": "analyze", "data": {"intent_hint": "login", "phase": "detailed", "element_ids": [first]}}
        )

    resp = asyncio.run(_run())
    assert resp["data"]["method"] == "expanded_matches"
    assert resp["data"]["elements"][0]["id"].startswith("el")


def test_reset_expires_ids_from_previous_page() -> None:
    from mcp_servers.tabpilot.page.snapshot import SnapshotDocument

    _doc, agent = _agent()
    analyzed = asyncio.run(agent.handle({"action": "analyze", "data": {"intent_hint": "login"}}))
    stale = analyzed["data"]["elements"][0]["id"]

    agent.reset(SnapshotDocument(LOGIN_PAGE, url="https://example.com/login?next=1"))
    resp = asyncio.run(agent.handle({"action": "element_click", "data": {"element_id": stale}}))

    assert resp["success"] is False
    assert resp["error"] == f"Element not found: {stale}"
    assert agent.document.url.endswith("next=1")


def test_page_level_actions_route() -> None:
    doc, agent = _agent('<p id="t">pick me</p><a href="https://other.org/">Other</a>')
    doc.select_text(doc.get_element_by_id("t"))

    selection = asyncio.run(agent.handle({"action": "get_selection"}))
    links = asyncio.run(agent.handle({"action": "get_page_links", "data": {"include_internal": False}}))
    waited = asyncio.run(agent.handle({"action": "wait_for", "data": {"condition_type": "text_present", "text": "pick"}}))
    extracted = asyncio.run(agent.handle({"action": "extract_content", "data": {"content_type": "article"}}))

    assert selection["data"]["text"] == "pick me"
    assert [link["domain"] for link in links["data"]["links"]] == ["other.org"]
    assert waited["data"]["condition_met"] is True
    assert extracted["data"]["content_type"] == "article"
