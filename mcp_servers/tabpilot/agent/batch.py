"""
Batch tab creation.

``tab_create`` either opens one tab (optionally waiting for a selector) or runs
a ``BatchJob``: tabs are created in fixed-size chunks with a short delay
between tabs and a longer delay between chunks. Only the very last requested
tab may be activated. Per-tab failures are collected; the batch always runs to
the end of the requested list.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from ..errors import ValidationError
from .host import BrowserHost

logger = logging.getLogger("mcp.tabpilot.agent.batch")

MAX_BATCH_URLS = 100
MAX_REPEAT_COUNT = 50
FULL_DETAIL_LIMIT = 10

CHUNK_SIZE_BOUNDS = (1, 10, 5)
CHUNK_DELAY_BOUNDS_MS = (100, 5000, 1000)
TAB_DELAY_BOUNDS_MS = (50, 1000, 200)

TAB_LOAD_SETTLE_S = 0.3
SINGLE_TAB_SETTLE_S = 0.5

Sleep = Callable[[float], Awaitable[Any]]
ElementWaiter = Callable[[int, str, float], Awaitable[bool]]


def _bounded(value: Any, bounds: tuple[int, int, int]) -> int:
    lo, hi, default = bounds
    if value is None or isinstance(value, bool):
        return default
    try:
        n = int(value)
    except (TypeError, ValueError):
        return default
    return max(lo, min(hi, n))


@dataclass
class BatchJob:
    requested_urls: list[str]
    chunk_size: int = CHUNK_SIZE_BOUNDS[2]
    inter_chunk_delay: int = CHUNK_DELAY_BOUNDS_MS[2]
    inter_item_delay: int = TAB_DELAY_BOUNDS_MS[2]
    results: list[dict[str, Any]] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_settings(cls, urls: list[str], settings: dict[str, Any] | None) -> BatchJob:
        settings = settings if isinstance(settings, dict) else {}
        return cls(
            requested_urls=list(urls),
            chunk_size=_bounded(settings.get("chunk_size"), CHUNK_SIZE_BOUNDS),
            inter_chunk_delay=_bounded(settings.get("delay_between_chunks"), CHUNK_DELAY_BOUNDS_MS),
            inter_item_delay=_bounded(settings.get("delay_between_tabs"), TAB_DELAY_BOUNDS_MS),
        )

    @property
    def total(self) -> int:
        return len(self.requested_urls)

    def chunks(self) -> list[list[tuple[int, str]]]:
        indexed = list(enumerate(self.requested_urls))
        return [indexed[i : i + self.chunk_size] for i in range(0, len(indexed), self.chunk_size)]

    def is_accounted(self) -> bool:
        return len(self.results) + len(self.errors) == self.total

    def warnings(self) -> list[str]:
        out = []
        if self.total > 20:
            out.append(f"Creating {self.total} tabs may impact browser performance")
        if self.total > 45:
            out.append(f"Large batch ({self.total} tabs) may hit browser tab limits or cause memory issues")
        return out


def validate_tab_create_params(params: dict[str, Any]) -> None:
    url = params.get("url")
    urls = params.get("urls")
    count = params.get("count", 1)
    if count is None:
        count = 1
    if not isinstance(count, (int, float)) or isinstance(count, bool):
        raise ValidationError(f"Count must be between 1 and {MAX_REPEAT_COUNT}")

    if url and urls is not None:
        raise ValidationError("Cannot specify both 'url' and 'urls' parameters")
    if urls is not None and count > 1:
        raise ValidationError("Cannot use 'count' with 'urls' array")
    if not url and urls is None and count > 1:
        raise ValidationError("Must specify 'url' when using 'count' parameter")

    if urls is not None:
        if not isinstance(urls, list) or not urls:
            raise ValidationError("'urls' must be a non-empty array")
        if len(urls) > MAX_BATCH_URLS:
            raise ValidationError(f"Maximum {MAX_BATCH_URLS} URLs allowed in batch operation")
        for i, item in enumerate(urls):
            if not isinstance(item, str) or not item.strip():
                raise ValidationError(f"Invalid URL at index {i}: must be a non-empty string")

    if count < 1 or count > MAX_REPEAT_COUNT:
        raise ValidationError(f"Count must be between 1 and {MAX_REPEAT_COUNT}")


class BatchOrchestrator:
    def __init__(
        self,
        host: BrowserHost,
        *,
        sleep: Sleep = asyncio.sleep,
        wait_for_element: ElementWaiter | None = None,
    ) -> None:
        self.host = host
        self._sleep = sleep
        self._wait_for_element = wait_for_element

    async def create_tabs(self, params: dict[str, Any]) -> dict[str, Any]:
        validate_tab_create_params(params)
        url = params.get("url")
        urls = params.get("urls")
        count = int(params.get("count") or 1)
        active = bool(params.get("active", True))
        timeout = float(params.get("timeout") or 10000)

        if urls:
            logger.info("tab_create batch urls=%s", len(urls))
            job = BatchJob.from_settings(urls, params.get("batch_settings"))
        elif url and count > 1:
            logger.info("tab_create repeat count=%s", count)
            job = BatchJob.from_settings([url] * count, params.get("batch_settings"))
        else:
            return await self.create_single_tab(url, active, params.get("wait_for"), timeout)
        return await self.run(job, active=active)

    async def create_single_tab(
        self, url: str | None, active: bool, wait_for: str | None, timeout: float
    ) -> dict[str, Any]:
        tab = await self.host.create_tab(url=url or None, active=active)
        if not url:
            return {
                "success": True,
                "tab_id": tab.id,
                "url": tab.url or "about:blank",
                "active": tab.active,
                "title": tab.title or "New Tab",
            }

        await self._sleep(SINGLE_TAB_SETTLE_S)
        try:
            updated = await self.host.get_tab(tab.id)
        except Exception as exc:  # noqa: BLE001
            return {
                "success": True,
                "tab_id": tab.id,
                "url": tab.url or "about:blank",
                "actual_url": tab.url,
                "requested_url": url,
                "active": tab.active,
                "title": tab.title or "New Tab",
                "warning": f"Tab created but status check failed: {exc}",
            }

        if wait_for and self._wait_for_element is not None:
            try:
                await self._wait_for_element(tab.id, wait_for, timeout)
            except TimeoutError as exc:
                return {
                    "success": True,
                    "tab_id": tab.id,
                    "url": updated.url,
                    "actual_url": updated.url,
                    "requested_url": url,
                    "warning": f"Tab created but wait condition failed: {exc}",
                }

        result = {
            "success": True,
            "tab_id": tab.id,
            "url": updated.url or updated.pending_url or url,
            "actual_url": updated.url or updated.pending_url,
            "requested_url": url,
            "active": updated.active,
            "status": updated.status,
            "title": updated.title or "New Tab",
        }
        if updated.url == "about:blank" and updated.pending_url:
            result["note"] = "Tab is still loading"
        return result

    async def run(self, job: BatchJob, *, active: bool = True) -> dict[str, Any]:
        started = time.monotonic()
        chunks = job.chunks()
        last_index = job.total - 1

        for chunk_no, chunk in enumerate(chunks, start=1):
            if job.total > FULL_DETAIL_LIMIT:
                logger.info("batch chunk %s/%s", chunk_no, len(chunks))
            for pos, (index, url) in enumerate(chunk):
                try:
                    tab = await self.host.create_tab(url=url, active=active and index == last_index)
                    await self._sleep(TAB_LOAD_SETTLE_S)
                    updated = await self.host.get_tab(tab.id)
                    job.results.append(
                        {
                            "tab_id": tab.id,
                            "url": updated.url or url,
                            "requested_url": url,
                            "index": index,
                            "active": updated.active,
                            "title": updated.title or f"Tab {index + 1}",
                        }
                    )
                except Exception as exc:  # noqa: BLE001
                    logger.warning("batch tab %s failed: %s", index + 1, exc)
                    job.errors.append({"index": index, "url": url, "error": str(exc)})
                if pos < len(chunk) - 1:
                    await self._sleep(job.inter_item_delay / 1000)
            if chunk_no < len(chunks):
                await self._sleep(job.inter_chunk_delay / 1000)

        elapsed_ms = round((time.monotonic() - started) * 1000)
        ok = len(job.results)
        failed = len(job.errors)
        logger.info("batch complete %s/%s in %sms", ok, job.total, elapsed_ms)

        result: dict[str, Any] = {
            "success": failed == 0,
            "batch_operation": True,
            "summary": {
                "total_requested": job.total,
                "successful": ok,
                "failed": failed,
                "execution_time_ms": elapsed_ms,
            },
            "created_tabs": (
                job.results
                if job.total <= FULL_DETAIL_LIMIT
                else [{"tab_id": t["tab_id"], "url": t["url"]} for t in job.results]
            ),
        }
        warnings = job.warnings()
        if warnings:
            result["warnings"] = warnings
        if job.errors:
            result["errors"] = job.errors
            result["partial_success"] = ok > 0
        active_tabs = [t for t in job.results if t.get("active")]
        if active_tabs:
            result["active_tab"] = active_tabs[0]
        return result
