"""
Text entry into page elements.

``InputInjector.fill`` walks ``IDLE -> PLATFORM_CHECK -> {STANDARD_FILL |
BYPASS_SEQUENCE} -> VERIFY -> DONE``. Origins listed in
``patterns.BYPASS_PLATFORMS`` get a direct editing-command sequence when the
target is the platform's composer; everything else gets the scripted focus
sequence plus the event set the element type needs. A bypass that raises falls
back to the standard fill exactly once.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import soupsieve

from . import element_state as es
from .dom import Document, DomEvent, Element
from .patterns import PlatformBypassConfig, match_bypass_platform

logger = logging.getLogger("mcp.tabpilot.page.input")

Sleep = Callable[[float], Awaitable[Any]]

SCROLL_SETTLE_MS = 200
FOCUS_SETTLE_MS = 100
CLEAR_SETTLE_MS = 50
FILL_SETTLE_MS = 100


class FillState(str, enum.Enum):
    IDLE = "idle"
    PLATFORM_CHECK = "platform_check"
    STANDARD_FILL = "standard_fill"
    BYPASS_SEQUENCE = "bypass_sequence"
    VERIFY = "verify"
    DONE = "done"


@dataclass(frozen=True, slots=True)
class BypassStep:
    op: str
    arg: Any = None


def _common_prefix() -> tuple[BypassStep, ...]:
    return (
        BypassStep("scroll"),
        BypassStep("wait", SCROLL_SETTLE_MS),
        BypassStep("focus"),
        BypassStep("click"),
    )


# Per-platform ordering/timing; all variants end in VERIFY.
BYPASS_SEQUENCES: dict[str, tuple[BypassStep, ...]] = {
    "twitter_direct": _common_prefix() + (BypassStep("insert"), BypassStep("wait", 500)),
    "linkedin_direct": _common_prefix()
    + (BypassStep("clear_if_text"), BypassStep("insert"), BypassStep("wait", 800)),
    "facebook_direct": _common_prefix()
    + (
        BypassStep("clear_if_text"),
        BypassStep("insert"),
        BypassStep("dispatch", "input"),
        BypassStep("dispatch", "change"),
        BypassStep("wait", 600),
    ),
    "generic_direct": _common_prefix() + (BypassStep("insert"), BypassStep("wait", 500)),
}


@dataclass(slots=True)
class FillRun:
    element: Element
    element_id: str
    value: str
    clear_first: bool = True
    force_focus: bool = True
    state: FillState = FillState.IDLE
    visited: list[str] = field(default_factory=list)
    exec_result: bool | None = None

    def enter(self, state: FillState) -> None:
        self.state = state
        self.visited.append(state.value)


def should_use_bypass(doc: Document, element: Element, platform: PlatformBypassConfig) -> bool:
    selector = platform.textarea_selector
    if not selector:
        return False
    try:
        if doc.query_selector(selector) is element:
            return True
    except (soupsieve.SelectorSyntaxError, ValueError):
        logger.debug("bypass selector %r does not parse as a whole; trying its parts", selector)
    for part in selector.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            if element.matches(part):
                return True
        except (soupsieve.SelectorSyntaxError, ValueError):
            continue
    return False


def current_text(element: Element) -> str:
    return element.text_content or element.value or ""


class InputInjector:
    def __init__(self, doc: Document, *, sleep: Sleep = asyncio.sleep) -> None:
        self.doc = doc
        self._sleep = sleep

    async def _wait(self, ms: float) -> None:
        await self._sleep(ms / 1000.0)

    async def fill(
        self,
        element: Element,
        element_id: str,
        value: str,
        *,
        clear_first: bool = True,
        force_focus: bool = True,
    ) -> dict[str, Any]:
        run = FillRun(element, element_id, value if isinstance(value, str) else str(value), clear_first, force_focus)
        run.enter(FillState.IDLE)
        run.enter(FillState.PLATFORM_CHECK)
        platform = match_bypass_platform(self.doc.hostname)

        if platform is not None and should_use_bypass(self.doc, element, platform):
            run.enter(FillState.BYPASS_SEQUENCE)
            try:
                await self._run_bypass(run, platform.bypass_method)
                return self._verify(run, f"{platform.bypass_method}_bypass")
            except Exception as exc:  # noqa: BLE001
                logger.warning("bypass %s failed, using standard fill: %s", platform.bypass_method, exc)
                run.clear_first = True
                run.force_focus = True

        run.enter(FillState.STANDARD_FILL)
        await self._standard_fill(run)
        return self._verify(run, "standard_fill")

    # ── bypass ────────────────────────────────────────────────────────────

    async def _run_bypass(self, run: FillRun, method: str) -> None:
        steps = BYPASS_SEQUENCES.get(method) or BYPASS_SEQUENCES["generic_direct"]
        el = run.element
        for step in steps:
            if step.op == "scroll":
                el.scroll_into_view(smooth=True)
            elif step.op == "wait":
                await self._wait(step.arg)
            elif step.op == "focus":
                el.focus()
            elif step.op == "click":
                el.click()
            elif step.op == "clear_if_text":
                if el.text_content:
                    self.doc.exec_command("selectAll")
                    self.doc.exec_command("delete")
            elif step.op == "insert":
                run.exec_result = bool(self.doc.exec_command("insertText", run.value))
            elif step.op == "dispatch":
                el.dispatch_event(DomEvent(step.arg, bubbles=True))
            else:
                raise ValueError(f"Unknown bypass step: {step.op}")

    # ── standard ──────────────────────────────────────────────────────────

    async def ensure_focus(self, el: Element) -> None:
        el.scroll_into_view(smooth=True)
        await self._wait(SCROLL_SETTLE_MS)
        rect = el.bounding_rect()
        point = {"clientX": rect.left + rect.width / 2, "clientY": rect.top + rect.height / 2}
        for kind in ("mousedown", "mouseup", "click"):
            el.dispatch_event(DomEvent(kind, bubbles=True, detail=dict(point)))
        el.focus()
        el.dispatch_event(DomEvent("focusin", bubbles=True))
        el.dispatch_event(DomEvent("focus", bubbles=True))
        await self._wait(FOCUS_SETTLE_MS)

    async def clear_content(self, el: Element) -> None:
        if es.is_text_control(el):
            el.value = ""
            el.dispatch_event(DomEvent("input", bubbles=True))
        elif el.is_content_editable:
            el.focus()
            self.doc.exec_command("selectAll")
            self.doc.exec_command("delete")
            el.dispatch_event(DomEvent("input", bubbles=True))
        await self._wait(CLEAR_SETTLE_MS)

    async def fill_with_events(self, el: Element, value: str) -> None:
        if es.is_text_control(el):
            el.value = value
            for kind in ("beforeinput", "input", "change"):
                el.dispatch_event(DomEvent(kind, bubbles=True))
            el.dispatch_event(DomEvent("keydown", bubbles=True, detail={"key": "End"}))
            el.dispatch_event(DomEvent("keyup", bubbles=True, detail={"key": "End"}))
        elif el.is_content_editable:
            el.text_content = value
            el.dispatch_event(DomEvent("beforeinput", bubbles=True))
            el.dispatch_event(DomEvent("input", bubbles=True))
            el.dispatch_event(DomEvent("compositionend", bubbles=True, detail={"data": value}))
            self.doc.dispatch_event(DomEvent("selectionchange", bubbles=False))
        await self._wait(FILL_SETTLE_MS)

    async def _standard_fill(self, run: FillRun) -> None:
        if run.force_focus:
            await self.ensure_focus(run.element)
        else:
            run.element.focus()
        if run.clear_first:
            await self.clear_content(run.element)
        await self.fill_with_events(run.element, run.value)

    # ── verify ────────────────────────────────────────────────────────────

    def _verify(self, run: FillRun, method: str) -> dict[str, Any]:
        run.enter(FillState.VERIFY)
        bypass = method != "standard_fill"
        actual = current_text(run.element) if bypass else es.get_element_value(run.element)
        success = run.value in actual
        run.enter(FillState.DONE)
        result: dict[str, Any] = {
            "success": success,
            "element_id": run.element_id,
            "value": run.value,
            "actual_value": actual,
            "element_name": es.get_element_name(run.element),
            "method": method,
            "states": list(run.visited),
        }
        if bypass:
            result["execCommand_result"] = run.exec_result
        else:
            result["focus_applied"] = run.force_focus
        logger.info("fill element=%s method=%s success=%s", run.element_id, method, success)
        return result
