"""
Host capability interface for the agent process.

The dispatcher, tab tools and batch orchestrator only talk to the browser
through ``BrowserHost``. A browser-extension host and the in-process
``SnapshotHost`` both satisfy it.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Protocol

RESTRICTED_SCHEMES = ("chrome:", "chrome-extension:", "chrome-devtools:", "edge:", "moz-extension:", "about:")
RESTRICTED_REGISTRIES = ("chrome.google.com", "addons.mozilla.org")


@dataclass(slots=True)
class TabInfo:
    id: int
    url: str = "about:blank"
    title: str = ""
    active: bool = False
    window_id: int = 1
    index: int = 0
    pinned: bool = False
    status: str = "complete"
    incognito: bool = False
    fav_icon_url: str | None = None
    pending_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def is_injectable_url(url: str | None) -> bool:
    """False for browser-internal pages and extension stores."""
    if not url:
        return False
    if url.startswith(RESTRICTED_SCHEMES):
        return False
    if url.startswith("https://chrome.google.com/webstore") or "chrome://" in url:
        return False
    return not any(domain in url for domain in RESTRICTED_REGISTRIES)


class BrowserHost(Protocol):
    """Async view of the browser the agent runs in."""

    persistent_background: bool

    async def query_tabs(self, *, active: bool | None = None, current_window: bool = False) -> list[TabInfo]: ...

    async def get_tab(self, tab_id: int) -> TabInfo: ...

    async def create_tab(self, *, url: str | None = None, active: bool = True) -> TabInfo: ...

    async def update_tab(self, tab_id: int, *, url: str | None = None, active: bool | None = None) -> TabInfo: ...

    async def remove_tabs(self, tab_ids: list[int]) -> None: ...

    async def focus_window(self, window_id: int) -> None: ...

    async def send_to_page(self, tab_id: int, message: dict[str, Any], *, timeout: float) -> dict[str, Any]: ...

    async def inject_agent(self, tab_id: int) -> None: ...

    async def storage_get(self, key: str, default: Any = None) -> Any: ...

    async def storage_set(self, key: str, value: Any) -> None: ...

    async def search_bookmarks(self, query: str) -> list[dict[str, Any]]: ...

    async def bookmark_tree(self) -> list[dict[str, Any]]: ...

    async def create_bookmark(self, *, title: str, url: str, parent_id: str | None = None) -> dict[str, Any]: ...

    async def search_history(
        self,
        *,
        text: str,
        max_results: int,
        start_time_ms: int | None = None,
        end_time_ms: int | None = None,
    ) -> list[dict[str, Any]]: ...
