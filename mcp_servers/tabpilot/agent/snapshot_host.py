"""
In-process browser host over HTML snapshots.

Tabs hold a ``SnapshotDocument`` and, once injected, a ``PageAgent``. Pages come
from a ``pages`` mapping, a custom async loader, or an HTTP fetch. Navigation
rebinds the tab's page agent to the new document, which discards every element
id issued for the previous page.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from ..errors import ContextNotFound, InjectionRestricted
from ..http_client import HttpClientError, http_get
from ..page.content_agent import PageAgent
from ..page.snapshot import SnapshotDocument
from ..timeutil import now_ms
from .host import TabInfo, is_injectable_url

logger = logging.getLogger("mcp.tabpilot.agent.host")

Loader = Callable[[str], Awaitable[str]]

NO_RECEIVER = "Could not establish connection. Receiving end does not exist."


@dataclass
class _Tab:
    info: TabInfo
    document: SnapshotDocument
    agent: PageAgent | None = None


class SnapshotHost:
    """``BrowserHost`` that renders pages with BeautifulSoup instead of a browser."""

    def __init__(
        self,
        *,
        pages: dict[str, str] | None = None,
        loader: Loader | None = None,
        auto_inject: bool = True,
        detailed_max: int = 7,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        persistent_background: bool = True,
    ) -> None:
        self.pages = dict(pages or {})
        self.loader = loader
        self.auto_inject = auto_inject
        self.detailed_max = detailed_max
        self.persistent_background = persistent_background
        self._sleep = sleep
        self._tabs: dict[int, _Tab] = {}
        self._tab_ids = itertools.count(1)
        self.focused_window = 1
        self.storage: dict[str, Any] = {}
        self.history: dict[str, dict[str, Any]] = {}
        self._history_ids = itertools.count(1)
        self.inject_calls: list[int] = []
        self._bookmark_ids = itertools.count(3)
        self.bookmarks: dict[str, Any] = {
            "id": "0",
            "title": "",
            "children": [
                {"id": "1", "parentId": "0", "title": "Bookmarks Bar", "children": []},
                {"id": "2", "parentId": "0", "title": "Other Bookmarks", "children": []},
            ],
        }

    # ── page loading ──────────────────────────────────────────────────────

    async def _fetch(self, url: str) -> str:
        if url in self.pages:
            return self.pages[url]
        if self.loader is not None:
            return await self.loader(url)
        if not url.startswith(("http://", "https://")):
            return ""
        resp = await http_get(url)
        return str(resp["body"])

    async def _load(self, tab: _Tab, url: str) -> None:
        tab.info.status = "loading"
        tab.info.pending_url = url
        try:
            html = await self._fetch(url)
        except HttpClientError as exc:
            logger.warning("page load failed url=%s err=%s", url, exc)
            html = ""
        document = SnapshotDocument(html, url=url)
        tab.document = document
        tab.info.url = url
        tab.info.title = document.title or url
        tab.info.status = "complete"
        tab.info.pending_url = None
        if tab.agent is not None:
            tab.agent.reset(document)
        elif self.auto_inject and is_injectable_url(url):
            tab.agent = PageAgent(document, sleep=self._sleep, detailed_max=self.detailed_max)
        if is_injectable_url(url):
            self._record_visit(url, tab.info.title)

    def _record_visit(self, url: str, title: str) -> None:
        item = self.history.get(url)
        if item is None:
            item = {"id": str(next(self._history_ids)), "url": url, "title": title, "visitCount": 0, "typedCount": 0}
            self.history[url] = item
        item["visitCount"] += 1
        item["lastVisitTime"] = now_ms()
        item["title"] = title or item["title"]

    def _require(self, tab_id: int) -> _Tab:
        tab = self._tabs.get(int(tab_id)) if isinstance(tab_id, (int, str)) and str(tab_id).isdigit() else None
        if tab is None:
            raise ContextNotFound(f"No tab with id: {tab_id}")
        return tab

    def _window_tabs(self, window_id: int) -> list[_Tab]:
        return [t for t in self._tabs.values() if t.info.window_id == window_id]

    def _activate(self, tab: _Tab) -> None:
        for other in self._window_tabs(tab.info.window_id):
            other.info.active = other is tab

    def document(self, tab_id: int) -> SnapshotDocument:
        return self._require(tab_id).document

    def page_agent(self, tab_id: int) -> PageAgent | None:
        return self._require(tab_id).agent

    # ── tabs ──────────────────────────────────────────────────────────────

    async def query_tabs(self, *, active: bool | None = None, current_window: bool = False) -> list[TabInfo]:
        tabs = [t.info for t in self._tabs.values()]
        if current_window:
            tabs = [t for t in tabs if t.window_id == self.focused_window]
        if active is not None:
            tabs = [t for t in tabs if t.active == active]
        return sorted(tabs, key=lambda t: (t.window_id, t.index))

    async def get_tab(self, tab_id: int) -> TabInfo:
        return self._require(tab_id).info

    async def create_tab(self, *, url: str | None = None, active: bool = True) -> TabInfo:
        tab_id = next(self._tab_ids)
        info = TabInfo(
            id=tab_id,
            window_id=self.focused_window,
            index=len(self._window_tabs(self.focused_window)),
        )
        tab = _Tab(info=info, document=SnapshotDocument("", url="about:blank"))
        self._tabs[tab_id] = tab
        if active:
            self._activate(tab)
        await self._load(tab, url or "about:blank")
        return info

    async def update_tab(self, tab_id: int, *, url: str | None = None, active: bool | None = None) -> TabInfo:
        tab = self._require(tab_id)
        if active:
            self._activate(tab)
        if url is not None:
            await self._load(tab, url)
        return tab.info

    async def remove_tabs(self, tab_ids: list[int]) -> None:
        for tab_id in tab_ids:
            self._require(tab_id)
        for tab_id in tab_ids:
            tab = self._tabs.pop(int(tab_id))
            siblings = sorted(self._window_tabs(tab.info.window_id), key=lambda t: t.info.index)
            for i, other in enumerate(siblings):
                other.info.index = i
            if tab.info.active and siblings:
                siblings[-1].info.active = True

    async def focus_window(self, window_id: int) -> None:
        self.focused_window = int(window_id)

    # ── page agent link ───────────────────────────────────────────────────

    async def send_to_page(self, tab_id: int, message: dict[str, Any], *, timeout: float) -> dict[str, Any]:
        tab = self._require(tab_id)
        if tab.agent is None:
            raise ConnectionError(NO_RECEIVER)
        return await asyncio.wait_for(tab.agent.handle(message), timeout=timeout)

    async def inject_agent(self, tab_id: int) -> None:
        tab = self._require(tab_id)
        if not is_injectable_url(tab.info.url):
            raise InjectionRestricted(f"Cannot inject page agent into {tab.info.url} - restricted URL")
        self.inject_calls.append(int(tab_id))
        if tab.agent is None:
            tab.agent = PageAgent(tab.document, sleep=self._sleep, detailed_max=self.detailed_max)

    # ── storage ───────────────────────────────────────────────────────────

    async def storage_get(self, key: str, default: Any = None) -> Any:
        return self.storage.get(key, default)

    async def storage_set(self, key: str, value: Any) -> None:
        self.storage[key] = value

    # ── bookmarks / history ───────────────────────────────────────────────

    def _walk_bookmarks(self, node: dict[str, Any]) -> list[dict[str, Any]]:
        found = [node]
        for child in node.get("children") or []:
            found.extend(self._walk_bookmarks(child))
        return found

    async def search_bookmarks(self, query: str) -> list[dict[str, Any]]:
        q = (query or "").lower()
        return [
            {k: v for k, v in node.items() if k != "children"}
            for node in self._walk_bookmarks(self.bookmarks)
            if node.get("url") and (q in node.get("title", "").lower() or q in node["url"].lower())
        ]

    async def bookmark_tree(self) -> list[dict[str, Any]]:
        return [self.bookmarks]

    async def create_bookmark(self, *, title: str, url: str, parent_id: str | None = None) -> dict[str, Any]:
        parent_id = parent_id or "2"
        parent = next((n for n in self._walk_bookmarks(self.bookmarks) if n.get("id") == parent_id), None)
        if parent is None or "children" not in parent:
            raise ContextNotFound(f"Can't find parent bookmark for id: {parent_id}")
        node = {
            "id": str(next(self._bookmark_ids)),
            "parentId": parent_id,
            "index": len(parent["children"]),
            "title": title,
            "url": url,
            "dateAdded": now_ms(),
        }
        parent["children"].append(node)
        return dict(node)

    async def search_history(
        self,
        *,
        text: str,
        max_results: int,
        start_time_ms: int | None = None,
        end_time_ms: int | None = None,
    ) -> list[dict[str, Any]]:
        q = (text or "").lower()
        items = [
            dict(item)
            for item in self.history.values()
            if (not q or q in item["url"].lower() or q in (item.get("title") or "").lower())
            and (start_time_ms is None or item["lastVisitTime"] >= start_time_ms)
            and (end_time_ms is None or item["lastVisitTime"] <= end_time_ms)
        ]
        items.sort(key=lambda i: i["lastVisitTime"], reverse=True)
        return items[: max(0, int(max_results))]
