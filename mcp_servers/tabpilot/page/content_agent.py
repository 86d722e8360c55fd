"""
Page-resident agent: one instance per page load.

``PageAgent.handle`` accepts ``{"action": ..., "data": {...}}`` and answers with
the response envelope ``{success, data, execution_time, data_size,
timestamp}`` or ``{success: False, error, execution_time}``. Handler failures
never escape as exceptions; the dispatcher decides how to surface them.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any

from ..timeutil import now_ms
from .actions import PageActions, Sleep
from .discovery import DiscoveryEngine
from .dom import Document
from .extract import ContentExtractor
from .input_injection import InputInjector
from .registry import RegistryPair

logger = logging.getLogger("mcp.tabpilot.page.agent")


class PageAgent:
    def __init__(self, document: Document, *, sleep: Sleep = asyncio.sleep, detailed_max: int = 7) -> None:
        self._sleep = sleep
        self.detailed_max = detailed_max
        self.registries = RegistryPair()
        self._bind(document)

    def _bind(self, document: Document) -> None:
        self.document = document
        self.discovery = DiscoveryEngine(document, self.registries, detailed_max=self.detailed_max)
        self.injector = InputInjector(document, sleep=self._sleep)
        self.actions = PageActions(document, self.registries, sleep=self._sleep)
        self.extractor = ContentExtractor(document)

    def reset(self, document: Document | None = None) -> None:
        """Navigation/reload: drop every element id and optionally bind a new page."""
        self.registries.reset()
        if document is not None:
            self._bind(document)

    # ── handlers ──────────────────────────────────────────────────────────

    async def _analyze(self, data: dict[str, Any]) -> dict[str, Any]:
        hint = str(data.get("intent_hint") or "")
        phase = data.get("phase") or "discover"
        if phase == "detailed":
            return self.discovery.detailed(
                hint,
                focus_areas=data.get("focus_areas"),
                element_ids=data.get("element_ids"),
                max_results=data.get("max_results"),
            )
        return self.discovery.discover(hint, int(data.get("max_results") or 5))

    async def _fill(self, data: dict[str, Any]) -> dict[str, Any]:
        element_id = str(data.get("element_id") or "")
        element = self.registries.require(element_id)
        return await self.injector.fill(
            element,
            element_id,
            data.get("value", ""),
            clear_first=bool(data.get("clear_first", True)),
            force_focus=bool(data.get("force_focus", True)),
        )

    async def _dispatch(self, action: str, data: dict[str, Any]) -> Any:
        if action == "analyze":
            return await self._analyze(data)
        if action == "extract_content":
            return self.extractor.extract(
                str(data.get("content_type") or ""),
                int(data.get("max_items") or 20),
                bool(data.get("summarize", True)),
            )
        if action == "element_click":
            return await self.actions.click(
                str(data.get("element_id") or ""),
                str(data.get("click_type") or "left"),
                float(data.get("wait_after", 500)),
            )
        if action == "element_fill":
            return await self._fill(data)
        if action == "wait_for":
            return await self.actions.wait_for(
                str(data.get("condition_type") or ""),
                selector=data.get("selector"),
                text=data.get("text"),
                timeout=float(data.get("timeout", 5000)),
            )
        if action == "get_element_state":
            return self.actions.element_state(str(data.get("element_id") or ""))
        if action == "get_page_links":
            return self.actions.links(
                include_internal=bool(data.get("include_internal", True)),
                include_external=bool(data.get("include_external", True)),
                domain_filter=data.get("domain_filter"),
                max_results=int(data.get("max_results") or 100),
            )
        if action == "page_scroll":
            return await self.actions.scroll(
                direction=str(data.get("direction") or "down"),
                amount=str(data.get("amount") or "medium"),
                pixels=data.get("pixels"),
                smooth=bool(data.get("smooth", True)),
                element_id=data.get("element_id"),
                wait_after=float(data.get("wait_after", 500)),
            )
        if action == "get_selection":
            return self.actions.selection()
        if action == "ping":
            return {"status": "ready", "timestamp": now_ms(), "url": self.document.url}
        raise ValueError(f"Unknown action: {action}")

    async def handle(self, message: dict[str, Any]) -> dict[str, Any]:
        started = time.perf_counter()
        action = str(message.get("action") or "")
        data = message.get("data") or {}
        try:
            result = await self._dispatch(action, data)
        except Exception as exc:  # noqa: BLE001
            logger.info("page action %s failed: %s", action, exc)
            return {
                "success": False,
                "error": str(exc),
                "execution_time": round((time.perf_counter() - started) * 1000),
            }
        return {
            "success": True,
            "data": result,
            "execution_time": round((time.perf_counter() - started) * 1000),
            "data_size": len(json.dumps(result, ensure_ascii=False, default=str).encode("utf-8")),
            "timestamp": now_ms(),
        }
