from __future__ import annotations

import asyncio
from typing import Any

import pytest

PAGES = {
    "https://news.example.com/": "<html><head><title>News</title></head><body><div id='app'>News</div></body></html>",
    "https://docs.example.org/guide": "<html><head><title>Guide</title></head><body><p>Guide</p></body></html>",
    "https://shop.example.net/": "<html><head><title>Shop</title></head><body><p>Shop</p></body></html>",
}


async def _no_sleep(_seconds: float) -> None:
    return None


def _host(**kwargs: Any):  # type: ignore[no-untyped-def]
    from mcp_servers.tabpilot.agent.snapshot_host import SnapshotHost

    return SnapshotHost(pages=PAGES, sleep=_no_sleep, **kwargs)


def test_list_tabs_reports_agent_readiness() -> None:
    from mcp_servers.tabpilot.agent.tabs import TabTools

    host = _host()
    tools = TabTools(host, sleep=_no_sleep)

    async def _run() -> dict[str, Any]:
        await host.create_tab(url="https://news.example.com/", active=False)
        await host.create_tab(url=None, active=True)
        return await tools.list_tabs({"check_content_script": True})

    result = asyncio.run(_run())

    assert result["count"] == 2
    assert result["summary"]["active_tab"] == 2
    stats = result["summary"]["content_script_stats"]
    assert stats == {"ready_count": 1, "injectable_count": 1, "restricted_count": 1}
    first, second = result["tabs"]
    assert first["content_script"] == {"ready": True, "reason": "active", "injectable": True}
    assert second["content_script"]["reason"] == "restricted_url"
    assert first["windowId"] == 1


def test_list_tabs_without_details() -> None:
    from mcp_servers.tabpilot.agent.tabs import TabTools

    host = _host()
    tools = TabTools(host, sleep=_no_sleep)

    async def _run() -> dict[str, Any]:
        await host.create_tab(url="https://news.example.com/")
        return await tools.list_tabs({"include_details": False})

    tab = asyncio.run(_run())["tabs"][0]
    assert set(tab) == {"id", "url", "active", "title"}
    assert tab["title"] == "News"


def test_close_and_switch_tabs() -> None:
    from mcp_servers.tabpilot.agent.tabs import TabTools
    from mcp_servers.tabpilot.errors import ContextNotFound

    host = _host()
    tools = TabTools(host, sleep=_no_sleep)

    with pytest.raises(ContextNotFound, match="No tabs specified to close"):
        asyncio.run(tools.close_tabs({}))

    async def _run() -> tuple[dict[str, Any], dict[str, Any]]:
        first = await host.create_tab(url="https://news.example.com/")
        await host.create_tab(url="https://docs.example.org/guide")
        await host.create_tab(url="https://shop.example.net/")
        switched = await tools.switch_tab(first.id)
        closed = await tools.close_tabs({"tab_ids": [2, 3]})
        return switched, closed

    switched, closed = asyncio.run(_run())
    assert switched["tab_id"] == 1
    assert switched["title"] == "News"
    assert closed == {"success": True, "closed_tabs": [2, 3], "count": 2}
    remaining = asyncio.run(host.query_tabs())
    assert [t.id for t in remaining] == [1]
    assert remaining[0].active is True

    with pytest.raises(ContextNotFound, match="Tab with ID abc not found"):
        asyncio.run(tools.switch_tab("abc"))


def test_close_defaults_to_active_tab() -> None:
    from mcp_servers.tabpilot.agent.tabs import TabTools

    host = _host()
    tools = TabTools(host, sleep=_no_sleep)

    async def _run() -> dict[str, Any]:
        await host.create_tab(url="https://news.example.com/")
        await host.create_tab(url="https://shop.example.net/")
        return await tools.close_tabs({})

    assert asyncio.run(_run())["closed_tabs"] == [2]


def test_navigate_with_wait_condition() -> None:
    from mcp_servers.tabpilot.agent.tabs import TabTools

    host = _host()
    tools = TabTools(host, sleep=_no_sleep)

    async def _run() -> tuple[dict[str, Any], dict[str, Any]]:
        await host.create_tab(url="https://shop.example.net/")
        found = await tools.navigate({"url": "https://news.example.com/", "wait_for": "#app"})
        missed = await tools.navigate({"url": "https://docs.example.org/guide", "wait_for": "#nope", "timeout": 1})
        return found, missed

    found, missed = asyncio.run(_run())
    assert found == {"success": True, "tabId": 1, "url": "https://news.example.com/"}
    assert missed["success"] is True
    assert missed["warning"] == "Navigation completed but wait condition failed: Timeout waiting for element: #nope"


def _seed_history(host) -> None:  # type: ignore[no-untyped-def]
    async def _run() -> None:
        tab = await host.create_tab(url="https://news.example.com/")
        await host.update_tab(tab.id, url="https://docs.example.org/guide")
        await host.update_tab(tab.id, url="https://news.example.com/")
        await host.update_tab(tab.id, url="https://shop.example.net/")

    asyncio.run(_run())
    # 2024-01-01, 2024-02-01 and 2024-03-01 UTC
    host.history["https://news.example.com/"]["lastVisitTime"] = 1704067200000
    host.history["https://docs.example.org/guide"]["lastVisitTime"] = 1706745600000
    host.history["https://shop.example.net/"]["lastVisitTime"] = 1709251200000


def test_history_filters_and_sorting() -> None:
    from mcp_servers.tabpilot.agent.workspace import WorkspaceTools

    host = _host()
    _seed_history(host)
    tools = WorkspaceTools(host)

    everything = asyncio.run(tools.get_history({}))
    assert [i["domain"] for i in everything["history_items"]] == [
        "shop.example.net",
        "docs.example.org",
        "news.example.com",
    ]
    assert everything["history_items"][0]["last_visit_time"] == "2024-03-01T00:00:00.000Z"
    assert everything["metadata"]["filters_applied"]["keyword_filter"] is False

    frequent = asyncio.run(tools.get_history({"min_visit_count": 2}))
    assert [i["url"] for i in frequent["history_items"]] == ["https://news.example.com/"]
    assert frequent["history_items"][0]["visit_count"] == 2

    by_domain = asyncio.run(tools.get_history({"domains": ["example.org"]}))
    assert [i["title"] for i in by_domain["history_items"]] == ["Guide"]

    by_title = asyncio.run(tools.get_history({"sort_by": "title", "sort_order": "asc"}))
    assert [i["title"] for i in by_title["history_items"]] == ["Guide", "News", "Shop"]

    ranged = asyncio.run(tools.get_history({"start_date": "2024-01-15T00:00:00Z", "end_date": "2024-02-15T00:00:00Z"}))
    assert [i["title"] for i in ranged["history_items"]] == ["Guide"]
    assert ranged["metadata"]["search_params"]["date_range"] == "2024-01-15T00:00:00Z to 2024-02-15T00:00:00Z"

    limited = asyncio.run(tools.get_history({"max_results": 1}))
    assert limited["metadata"]["returned_count"] == 1
    assert limited["metadata"]["total_found"] == 3


def test_history_failure_is_reported() -> None:
    from mcp_servers.tabpilot.agent.workspace import WorkspaceTools

    class BrokenHost:
        async def search_history(self, **_kwargs: Any) -> list[dict[str, Any]]:
            raise RuntimeError("boom")

    result = asyncio.run(WorkspaceTools(BrokenHost()).get_history({"keywords": "x"}))  # type: ignore[arg-type]

    assert result["success"] is False
    assert result["error"] == "History search failed: boom"
    assert result["history_items"] == []
    assert result["metadata"]["search_params"] == {"keywords": "x"}


def test_bookmarks_add_and_search() -> None:
    from mcp_servers.tabpilot.agent.workspace import WorkspaceTools
    from mcp_servers.tabpilot.errors import ContextNotFound

    host = _host()
    tools = WorkspaceTools(host)

    added = asyncio.run(tools.add_bookmark({"title": "Docs guide", "url": "https://docs.example.org/guide"}))
    assert added["bookmark"]["parentId"] == "2"
    assert added["bookmark"]["title"] == "Docs guide"

    asyncio.run(tools.add_bookmark({"title": "Toolbar", "url": "https://news.example.com/", "parentId": "1"}))

    found = asyncio.run(tools.get_bookmarks({"query": "guide"}))
    assert found["count"] == 1
    assert found["bookmarks"][0]["url"] == "https://docs.example.org/guide"

    tree = asyncio.run(tools.get_bookmarks({}))
    assert tree["count"] == 1
    bar = tree["bookmarks"][0]["children"][0]
    assert [c["title"] for c in bar["children"]] == ["Toolbar"]

    with pytest.raises(ContextNotFound):
        asyncio.run(tools.add_bookmark({"title": "x", "url": "https://x.test/", "parentId": "42"}))
