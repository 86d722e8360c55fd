from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import urlsplit

from . import element_state as es
from .dom import Document, DomEvent
from .registry import RegistryPair

Sleep = Callable[[float], Awaitable[Any]]

WAIT_POLL_MS = 100
CLICK_SETTLE_MS = 200
CONDITION_TYPES = ("element_visible", "text_present")
SCROLL_DIRECTIONS = ("up", "down", "left", "right", "top", "bottom")


def extract_domain(url: str) -> str:
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def is_same_domain(a: str, b: str) -> bool:
    if not a or not b:
        return False
    return a.removeprefix("www.") == b.removeprefix("www.")


def scroll_amount(amount: str, viewport_height: float, pixels: float | None = None) -> float:
    if amount == "custom" and pixels:
        return float(pixels)
    if amount == "small":
        return min(200.0, viewport_height * 0.25)
    if amount == "large":
        return min(800.0, viewport_height * 0.8)
    if amount == "page":
        return viewport_height * 0.9
    return min(2000.0, viewport_height * 2.0)


class PageActions:
    """Element-targeted and page-level actions other than discovery and fill."""

    def __init__(self, doc: Document, registries: RegistryPair, *, sleep: Sleep = asyncio.sleep) -> None:
        self.doc = doc
        self.registries = registries
        self._sleep = sleep

    async def _wait(self, ms: float) -> None:
        if ms > 0:
            await self._sleep(ms / 1000.0)

    def _position(self) -> dict[str, float]:
        return {"x": self.doc.scroll_x, "y": self.doc.scroll_y}

    # ── click ─────────────────────────────────────────────────────────────

    async def click(self, element_id: str, click_type: str = "left", wait_after: float = 500) -> dict[str, Any]:
        el = self.registries.require(element_id)
        el.scroll_into_view(smooth=True)
        await self._wait(CLICK_SETTLE_MS)
        if click_type == "right":
            el.dispatch_event(DomEvent("contextmenu", bubbles=True))
        elif click_type == "double":
            el.click()
            el.click()
            el.dispatch_event(DomEvent("dblclick", bubbles=True))
        else:
            el.click()
        await self._wait(wait_after)
        return {
            "success": True,
            "element_id": element_id,
            "click_type": click_type,
            "element_name": es.get_element_name(el),
        }

    # ── element state ─────────────────────────────────────────────────────

    def element_state(self, element_id: str) -> dict[str, Any]:
        el = self.registries.require(element_id)
        return {
            "element_id": element_id,
            "element_name": es.get_element_name(el),
            "state": es.element_state(el, self.doc),
            "current_value": es.get_element_value(el),
        }

    # ── wait ──────────────────────────────────────────────────────────────

    def _condition(self, condition_type: str, selector: str | None, text: str | None) -> Callable[[], bool]:
        if condition_type == "element_visible":

            def check() -> bool:
                el = self.doc.query_selector(selector or "")
                return el is not None and el.is_rendered()

            return check
        if condition_type == "text_present":
            return lambda: (text or "") in self.doc.body_text()
        raise ValueError(f"Unknown condition type: {condition_type}")

    async def wait_for(
        self,
        condition_type: str,
        *,
        selector: str | None = None,
        text: str | None = None,
        timeout: float = 5000,
    ) -> dict[str, Any]:
        check = self._condition(condition_type, selector, text)
        started = time.monotonic()
        while (time.monotonic() - started) * 1000 < timeout:
            if check():
                return {
                    "condition_met": True,
                    "condition_type": condition_type,
                    "wait_time": round((time.monotonic() - started) * 1000),
                }
            await self._wait(WAIT_POLL_MS)
        raise TimeoutError(f"Timeout waiting for condition: {condition_type}")

    # ── scroll ────────────────────────────────────────────────────────────

    async def scroll(
        self,
        *,
        direction: str = "down",
        amount: str = "medium",
        pixels: float | None = None,
        smooth: bool = True,
        element_id: str | None = None,
        wait_after: float = 500,
    ) -> dict[str, Any]:
        start = self._position()
        if element_id:
            el = self.registries.require(element_id)
            el.scroll_into_view(smooth=smooth)
            await self._wait(wait_after)
            return {
                "success": True,
                "previous_position": start,
                "new_position": self._position(),
                "method": "scroll_to_element",
                "element_id": element_id,
                "element_name": es.get_element_name(el),
            }

        if direction not in SCROLL_DIRECTIONS:
            return {
                "success": False,
                "error": f"Unknown scroll direction: {direction}",
                "previous_position": start,
                "new_position": self._position(),
                "direction": direction,
                "amount": amount,
            }

        if direction in {"top", "bottom"}:
            target_y = 0.0 if direction == "top" else self.doc.scroll_height - self.doc.inner_height
            self.doc.scroll_to(self.doc.scroll_x, target_y)
            await self._wait(wait_after)
            return {
                "success": True,
                "previous_position": start,
                "new_position": self._position(),
                "direction": direction,
                "method": f"scroll_to_{direction}",
            }

        step = scroll_amount(amount, self.doc.inner_height, pixels)
        dx = {"left": -step, "right": step}.get(direction, 0.0)
        dy = {"up": -step, "down": step}.get(direction, 0.0)
        self.doc.scroll_by(dx, dy)
        await self._wait(wait_after)
        end = self._position()
        moved = {"x": end["x"] - start["x"], "y": end["y"] - start["y"]}
        return {
            "success": True,
            "previous_position": start,
            "new_position": end,
            "direction": direction,
            "amount": amount,
            "requested_pixels": step,
            "actual_scrolled": moved,
            "total_distance": math.hypot(moved["x"], moved["y"]),
            "smooth": smooth,
            "wait_after": wait_after,
        }

    # ── links ─────────────────────────────────────────────────────────────

    def links(
        self,
        *,
        include_internal: bool = True,
        include_external: bool = True,
        domain_filter: str | None = None,
        max_results: int = 100,
    ) -> dict[str, Any]:
        anchors = self.doc.query_selector_all("a[href]")
        current = extract_domain(self.doc.url)
        results: list[dict[str, Any]] = []
        for a in anchors:
            if len(results) >= max_results:
                break
            href = a.href
            domain = extract_domain(href)
            internal = is_same_domain(current, domain)
            if internal and not include_internal:
                continue
            if not internal and not include_external:
                continue
            if domain_filter and domain_filter not in domain:
                continue
            results.append(
                {
                    "url": href,
                    "text": (a.text_content or "").strip(),
                    "title": a.get_attribute("title") or "",
                    "type": "internal" if internal else "external",
                    "domain": domain,
                }
            )
        return {
            "links": results,
            "total_found": len(anchors),
            "returned": len(results),
            "current_domain": current,
        }

    # ── selection ─────────────────────────────────────────────────────────

    def selection(self) -> dict[str, Any]:
        sel = self.doc.get_selection()
        if sel is None or not sel.text:
            return {"text": "", "hasSelection": False, "metadata": None}
        text = sel.text
        anchor = sel.anchor
        parent_info: dict[str, Any] = {"tag_name": None, "class_name": "", "id": "", "text_content_length": 0}
        position = {"x": 0.0, "y": 0.0, "width": 0.0, "height": 0.0}
        if anchor is not None:
            rect = anchor.bounding_rect()
            position = {"x": rect.x, "y": rect.y, "width": rect.width, "height": rect.height}
            parent_info = {
                "tag_name": anchor.tag_name,
                "class_name": " ".join(anchor.class_list),
                "id": anchor.get_attribute("id") or "",
                "text_content_length": len(anchor.text_content or ""),
            }
        return {
            "text": text,
            "hasSelection": True,
            "metadata": {
                "length": len(text),
                "word_count": len(text.split()),
                "line_count": len(text.split("\n")),
                "position": position,
                "parent_element": parent_info,
                "page_info": {"url": self.doc.url, "title": self.doc.title, "domain": self.doc.hostname},
                "selection_info": {
                    "anchor_offset": sel.anchor_offset,
                    "focus_offset": sel.focus_offset,
                    "range_count": sel.range_count,
                    "is_collapsed": sel.is_collapsed,
                },
            },
        }
