"""Tab lifecycle tools: list, close, switch, navigate."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from ..errors import ContextNotFound, TabpilotError
from .host import BrowserHost, TabInfo, is_injectable_url

logger = logging.getLogger("mcp.tabpilot.agent.tabs")

STATUS_PING_TIMEOUT_S = 3.0
WAIT_POLL_S = 0.5
WAIT_STEP_MS = 1000


class TabTools:
    def __init__(self, host: BrowserHost, *, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep) -> None:
        self.host = host
        self._sleep = sleep

    async def active_tab(self) -> TabInfo:
        tabs = await self.host.query_tabs(active=True, current_window=True)
        if not tabs:
            raise ContextNotFound("No active tab found")
        return tabs[0]

    async def wait_for_element(self, tab_id: int, selector: str, timeout_ms: float = 5000) -> bool:
        """Poll the page agent until ``selector`` is visible; raises TimeoutError."""
        deadline = time.monotonic() + max(0.0, float(timeout_ms)) / 1000
        while time.monotonic() < deadline:
            step = min(WAIT_STEP_MS, max(1, round((deadline - time.monotonic()) * 1000)))
            try:
                resp = await self.host.send_to_page(
                    tab_id,
                    {"action": "wait_for", "data": {"condition_type": "element_visible", "selector": selector, "timeout": step}},
                    timeout=step / 1000 + 1,
                )
                if resp and resp.get("success"):
                    return True
            except (ConnectionError, asyncio.TimeoutError):
                pass
            await self._sleep(WAIT_POLL_S)
        raise TimeoutError(f"Timeout waiting for element: {selector}")

    async def content_script_status(self, tab_id: int) -> dict[str, Any]:
        try:
            tab = await self.host.get_tab(tab_id)
        except TabpilotError as exc:
            return {"ready": False, "reason": "tab_error", "error": exc.message}
        if not is_injectable_url(tab.url):
            return {"ready": False, "reason": "restricted_url", "url": tab.url}
        try:
            resp = await self.host.send_to_page(tab_id, {"action": "ping"}, timeout=STATUS_PING_TIMEOUT_S)
        except (ConnectionError, asyncio.TimeoutError):
            resp = None
        if resp and resp.get("success"):
            return {"ready": True, "reason": "active", "url": tab.url}
        return {"ready": False, "reason": "not_loaded", "url": tab.url}

    async def list_tabs(self, params: dict[str, Any]) -> dict[str, Any]:
        current_window_only = bool(params.get("current_window_only", True))
        include_details = bool(params.get("include_details", True))
        check = bool(params.get("check_content_script", False))

        tabs = await self.host.query_tabs(current_window=current_window_only)
        statuses: dict[int, dict[str, Any]] = {}
        if check:
            results = await asyncio.gather(*(self.content_script_status(t.id) for t in tabs))
            statuses = {t.id: s for t, s in zip(tabs, results)}

        out = []
        for tab in tabs:
            info: dict[str, Any] = {"id": tab.id, "url": tab.url, "active": tab.active, "title": tab.title}
            if check:
                status = statuses.get(tab.id) or {}
                info["content_script"] = {
                    "ready": bool(status.get("ready")),
                    "reason": status.get("reason") or "unknown",
                    "injectable": is_injectable_url(tab.url),
                }
            if include_details:
                info.update(
                    {
                        "index": tab.index,
                        "pinned": tab.pinned,
                        "status": tab.status,
                        "favIconUrl": tab.fav_icon_url,
                        "windowId": tab.window_id,
                        "incognito": tab.incognito,
                    }
                )
            out.append(info)

        summary: dict[str, Any] = {
            "total_tabs": len(out),
            "active_tab": next((t.id for t in tabs if t.active), None),
        }
        if check:
            ready = sum(1 for t in out if t["content_script"]["ready"])
            injectable = sum(1 for t in out if t["content_script"]["injectable"])
            summary["content_script_stats"] = {
                "ready_count": ready,
                "injectable_count": injectable,
                "restricted_count": len(out) - injectable,
            }
        return {"success": True, "tabs": out, "count": len(out), "summary": summary}

    async def close_tabs(self, params: dict[str, Any]) -> dict[str, Any]:
        tab_ids = params.get("tab_ids")
        tab_id = params.get("tab_id")
        if isinstance(tab_ids, list) and tab_ids:
            to_close = [int(t) for t in tab_ids]
        elif tab_id:
            to_close = [int(tab_id)]
        else:
            tabs = await self.host.query_tabs(active=True, current_window=True)
            to_close = [tabs[0].id] if tabs else []
        if not to_close:
            raise ContextNotFound("No tabs specified to close")
        await self.host.remove_tabs(to_close)
        logger.info("closed tabs %s", to_close)
        return {"success": True, "closed_tabs": to_close, "count": len(to_close)}

    async def switch_tab(self, tab_id: Any) -> dict[str, Any]:
        try:
            tab = await self.host.get_tab(int(tab_id))
        except (TypeError, ValueError):
            raise ContextNotFound(f"Tab with ID {tab_id} not found") from None
        await self.host.update_tab(tab.id, active=True)
        await self.host.focus_window(tab.window_id)
        return {"success": True, "tab_id": tab.id, "url": tab.url, "title": tab.title, "window_id": tab.window_id}

    async def navigate(self, params: dict[str, Any]) -> dict[str, Any]:
        url = str(params.get("url") or "")
        tab = await self.active_tab()
        await self.host.update_tab(tab.id, url=url)
        wait_for = params.get("wait_for")
        if wait_for:
            try:
                await self.wait_for_element(tab.id, str(wait_for), float(params.get("timeout") or 10000))
            except TimeoutError as exc:
                return {
                    "success": True,
                    "tabId": tab.id,
                    "url": url,
                    "warning": f"Navigation completed but wait condition failed: {exc}",
                }
        return {"success": True, "tabId": tab.id, "url": url}
