"""
Agent-side command dispatch.

``CommandDispatcher.handle`` takes a bridge frame ``{id, method, params}`` and
returns the reply frame ``{id, result}`` or ``{id, error}``. Page-scoped tools
resolve a target tab (explicit ``tab_id`` or the active tab), make sure a page
agent answers there (ping, inject once, ping again), then relay the action.

Every ``await`` here is a suspension point: another frame may be handled in
between, so nothing below assumes the tab list or page state is unchanged
across awaits.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from ..config import AgentConfig
from ..errors import (
    AgentUnreachable,
    ContextNotFound,
    InjectionRestricted,
    TabpilotError,
    ToolExecutionFailed,
)
from ..timeutil import iso_now
from .batch import BatchOrchestrator
from .host import BrowserHost, TabInfo, is_injectable_url
from .tabs import TabTools
from .workspace import WorkspaceTools

logger = logging.getLogger("mcp.tabpilot.agent.dispatcher")

PAGE_ACTIONS: dict[str, str] = {
    "page_analyze": "analyze",
    "page_extract_content": "extract_content",
    "element_click": "element_click",
    "element_fill": "element_fill",
    "page_wait_for": "wait_for",
    "element_get_state": "get_element_state",
    "page_scroll": "page_scroll",
    "get_page_links": "get_page_links",
}

WRITE_TOOLS = frozenset({"element_click", "element_fill"})
SAFETY_MODE_KEY = "safetyMode"
SELECTION_MAX_LENGTH = 10000


class CommandDispatcher:
    def __init__(
        self,
        host: BrowserHost,
        config: AgentConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        ping_timeout: float = 2.0,
        ping_attempts: int = 3,
        retry_delay: float = 1.0,
        settle_delay: float = 1.0,
        post_inject_timeout: float = 3.0,
        page_timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.config = config or AgentConfig()
        self._sleep = sleep
        self.ping_timeout = ping_timeout
        self.ping_attempts = max(1, int(ping_attempts))
        self.retry_delay = retry_delay
        self.settle_delay = settle_delay
        self.post_inject_timeout = post_inject_timeout
        self.page_timeout = page_timeout
        self.tabs = TabTools(host, sleep=sleep)
        self.batch = BatchOrchestrator(host, sleep=sleep, wait_for_element=self.tabs.wait_for_element)
        self.workspace = WorkspaceTools(host)

    # ── safety mode ───────────────────────────────────────────────────────

    async def safety_mode(self) -> bool:
        return bool(await self.host.storage_get(SAFETY_MODE_KEY, self.config.safety_mode))

    async def set_safety_mode(self, enabled: bool) -> None:
        await self.host.storage_set(SAFETY_MODE_KEY, bool(enabled))
        logger.info("safety mode %s", "enabled" if enabled else "disabled")

    # ── target resolution / agent readiness ───────────────────────────────

    async def resolve_tab(self, tab_id: Any = None) -> TabInfo:
        if tab_id:
            try:
                return await self.host.get_tab(int(tab_id))
            except (TabpilotError, TypeError, ValueError):
                raise ContextNotFound(f"Tab {tab_id} not found or inaccessible") from None
        tabs = await self.host.query_tabs(active=True, current_window=True)
        if not tabs:
            raise ContextNotFound("No active tab found")
        return tabs[0]

    async def _ping(self, tab_id: int, timeout: float) -> bool:
        try:
            resp = await self.host.send_to_page(tab_id, {"action": "ping"}, timeout=timeout)
        except (ConnectionError, asyncio.TimeoutError):
            return False
        return bool(resp and resp.get("success"))

    async def ensure_page_agent(self, tab_id: int) -> bool:
        """Ping the page agent; inject once on the last attempt."""
        for attempt in range(1, self.ping_attempts + 1):
            if await self._ping(tab_id, self.ping_timeout):
                return True
            logger.info("page agent not responsive tab=%s attempt=%s/%s", tab_id, attempt, self.ping_attempts)
            if attempt == self.ping_attempts:
                tab = await self.host.get_tab(tab_id)
                if not is_injectable_url(tab.url):
                    raise InjectionRestricted(f"Cannot inject page agent into {tab.url} - restricted URL")
                try:
                    await self.host.inject_agent(tab_id)
                except InjectionRestricted:
                    raise
                except Exception as exc:  # noqa: BLE001
                    raise AgentUnreachable(f"Failed to inject page agent into tab {tab_id}: {exc}") from exc
                await self._sleep(self.settle_delay)
                if await self._ping(tab_id, self.post_inject_timeout):
                    logger.info("page agent injected tab=%s", tab_id)
                    return True
            else:
                await self._sleep(self.retry_delay)
        raise AgentUnreachable(f"Page agent not available in tab {tab_id} after {self.ping_attempts} attempts")

    async def send_to_page(self, action: str, data: dict[str, Any], tab_id: Any = None) -> Any:
        tab = await self.resolve_tab(tab_id)
        await self.ensure_page_agent(tab.id)
        try:
            resp = await self.host.send_to_page(tab.id, {"action": action, "data": data}, timeout=self.page_timeout)
        except (ConnectionError, asyncio.TimeoutError) as exc:
            raise ToolExecutionFailed(f"Tab {tab.id}: {str(exc) or 'no response from page agent'}") from exc
        if resp and resp.get("success"):
            return resp.get("data")
        raise ToolExecutionFailed(f"Tab {tab.id}: {(resp or {}).get('error') or 'Unknown error'}")

    # ── selection ─────────────────────────────────────────────────────────

    async def get_selected_text(self, params: dict[str, Any]) -> dict[str, Any]:
        include_metadata = bool(params.get("include_metadata", True))
        max_length = int(params.get("max_length") or SELECTION_MAX_LENGTH)
        try:
            tab = await self.resolve_tab(params.get("tab_id"))
        except ContextNotFound as exc:
            return {
                "success": False,
                "error": exc.message,
                "selected_text": "",
                "metadata": {"execution_time": iso_now()},
            }

        try:
            selection = await self.send_to_page("get_selection", {}, tab.id)
        except TabpilotError as exc:
            return {
                "success": False,
                "error": f"Failed to get selected text: {exc.message}",
                "selected_text": "",
                "has_selection": False,
                "metadata": {"execution_time": iso_now()},
            }

        tab_info = {"id": tab.id, "url": tab.url, "title": tab.title}
        if not selection or not selection.get("hasSelection"):
            return {
                "success": True,
                "selected_text": "",
                "has_selection": False,
                "message": "No text is currently selected on the page",
                "metadata": {"execution_time": iso_now(), "tab_info": tab_info},
            }

        text = str(selection.get("text") or "")
        result: dict[str, Any] = {
            "success": True,
            "selected_text": text[:max_length],
            "has_selection": True,
            "character_count": len(text),
            "truncated": len(text) > max_length,
            "metadata": {"execution_time": iso_now(), "tab_info": tab_info},
        }
        if include_metadata and selection.get("metadata"):
            result["selection_metadata"] = selection["metadata"]
        return result

    # ── dispatch ──────────────────────────────────────────────────────────

    async def execute(self, method: str, params: dict[str, Any]) -> Any:
        if method in WRITE_TOOLS and await self.safety_mode():
            target = f"tab {params['tab_id']}" if params.get("tab_id") else "the current page"
            raise ToolExecutionFailed(
                f"Safety Mode is enabled. This tool ({method}) is blocked to prevent modifications to {target}. "
                "Disable Safety Mode to allow it."
            )

        action = PAGE_ACTIONS.get(method)
        if action is not None:
            return await self.send_to_page(action, params, params.get("tab_id"))
        if method == "page_navigate":
            return await self.tabs.navigate(params)
        if method == "tab_create":
            return await self.batch.create_tabs(params)
        if method == "tab_close":
            return await self.tabs.close_tabs(params)
        if method == "tab_list":
            return await self.tabs.list_tabs(params)
        if method == "tab_switch":
            return await self.tabs.switch_tab(params.get("tab_id"))
        if method == "get_bookmarks":
            return await self.workspace.get_bookmarks(params)
        if method == "add_bookmark":
            return await self.workspace.add_bookmark(params)
        if method == "get_history":
            return await self.workspace.get_history(params)
        if method == "get_selected_text":
            return await self.get_selected_text(params)
        raise ToolExecutionFailed(f"Unknown method: {method}")

    async def handle(self, message: dict[str, Any]) -> dict[str, Any]:
        call_id = message.get("id")
        method = str(message.get("method") or "")
        params = message.get("params") or {}
        started = time.perf_counter()
        try:
            result = await self.execute(method, params if isinstance(params, dict) else {})
        except TabpilotError as exc:
            logger.info("tool %s failed kind=%s: %s", method, exc.kind, exc.message)
            return {"id": call_id, "error": exc.to_dict()}
        except Exception as exc:  # noqa: BLE001
            logger.exception("tool %s crashed", method)
            return {"id": call_id, "error": ToolExecutionFailed(str(exc)).to_dict()}
        logger.info("tool %s ok in %sms", method, round((time.perf_counter() - started) * 1000))
        return {"id": call_id, "result": result}
