from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlsplit

from ..timeutil import iso_now
from .host import BrowserHost

HISTORY_OVERFETCH_CAP = 1000


def _parse_date_ms(value: Any) -> int | None:
    if not value:
        return None
    dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def _hostname(url: str) -> str | None:
    try:
        return urlsplit(url).hostname
    except ValueError:
        return None


_SORT_KEYS = {
    "visit_time": lambda i: float(i.get("lastVisitTime") or 0),
    "visit_count": lambda i: int(i.get("visitCount") or 0),
    "title": lambda i: (i.get("title") or "").lower(),
}


def _date_range(start: Any, end: Any) -> str | None:
    if start and end:
        return f"{start} to {end}"
    if start:
        return f"from {start}"
    if end:
        return f"until {end}"
    return None


class WorkspaceTools:
    """Bookmarks and history over the host's stores."""

    def __init__(self, host: BrowserHost) -> None:
        self.host = host

    async def get_bookmarks(self, params: dict[str, Any]) -> dict[str, Any]:
        query = params.get("query")
        if query:
            bookmarks = await self.host.search_bookmarks(str(query))
        else:
            bookmarks = await self.host.bookmark_tree()
        return {"success": True, "bookmarks": bookmarks, "count": len(bookmarks)}

    async def add_bookmark(self, params: dict[str, Any]) -> dict[str, Any]:
        bookmark = await self.host.create_bookmark(
            title=str(params.get("title") or ""),
            url=str(params.get("url") or ""),
            parent_id=params.get("parentId"),
        )
        return {"success": True, "bookmark": bookmark}

    async def get_history(self, params: dict[str, Any]) -> dict[str, Any]:
        keywords = params.get("keywords") or ""
        start_date = params.get("start_date")
        end_date = params.get("end_date")
        domains = [str(d) for d in params.get("domains") or []]
        min_visit_count = int(params.get("min_visit_count") or 1)
        max_results = int(params.get("max_results") or 50)
        sort_by = params.get("sort_by") or "visit_time"
        sort_order = params.get("sort_order") or "desc"

        try:
            items = await self.host.search_history(
                text=keywords,
                max_results=min(max_results * 3, HISTORY_OVERFETCH_CAP),
                start_time_ms=_parse_date_ms(start_date),
                end_time_ms=_parse_date_ms(end_date),
            )
        except Exception as exc:  # noqa: BLE001
            return {
                "success": False,
                "error": f"History search failed: {exc}",
                "history_items": [],
                "metadata": {
                    "total_found": 0,
                    "returned_count": 0,
                    "search_params": params,
                    "execution_time": iso_now(),
                },
            }

        def keep(item: dict[str, Any]) -> bool:
            if domains:
                host = _hostname(item.get("url") or "")
                if not host or not any(d in host for d in domains):
                    return False
            return int(item.get("visitCount") or 0) >= min_visit_count

        filtered = [i for i in items if keep(i)]
        filtered.sort(key=_SORT_KEYS.get(sort_by, _SORT_KEYS["visit_time"]), reverse=sort_order != "asc")
        results = filtered[:max_results]

        return {
            "success": True,
            "history_items": [
                {
                    "id": item.get("id"),
                    "url": item.get("url"),
                    "title": item.get("title") or "Untitled",
                    "last_visit_time": datetime.fromtimestamp(
                        float(item.get("lastVisitTime") or 0) / 1000, tz=timezone.utc
                    )
                    .isoformat(timespec="milliseconds")
                    .replace("+00:00", "Z"),
                    "visit_count": item.get("visitCount"),
                    "domain": _hostname(item.get("url") or "") or "invalid-url",
                    "typed_count": item.get("typedCount") or 0,
                }
                for item in results
            ],
            "metadata": {
                "total_found": len(filtered),
                "returned_count": len(results),
                "search_params": {
                    "keywords": keywords or None,
                    "date_range": _date_range(start_date, end_date),
                    "domains": domains or None,
                    "min_visit_count": min_visit_count,
                    "sort_by": sort_by,
                    "sort_order": sort_order,
                },
                "execution_time": iso_now(),
                "over_fetched": len(items),
                "filters_applied": {
                    "domain_filter": bool(domains),
                    "visit_count_filter": min_visit_count > 1,
                    "date_filter": bool(start_date or end_date),
                    "keyword_filter": bool(keywords),
                },
            },
        }
