from __future__ import annotations

import json
import math
import re
import time
from collections import Counter
from typing import Any
from urllib.parse import urlsplit

from ..timeutil import iso_now
from .dom import Document, Element

CONTENT_TYPES = ("article", "search_results", "posts")

_SEARCH_RESULT_SELECTORS = (
    '.search-result, .result-item, [data-testid*="result"]',
    ".g, .result, .search-item",
    'li[data-testid="search-result"], .SearchResult',
    ".Box-row, .issue-list-item",
    "article, .post, .entry",
)
_POST_SELECTORS = (
    '[data-testid="tweet"], .tweet, .post',
    'article[role="article"]',
    ".timeline-item, .feed-item",
    ".status, .update, .entry",
)
_POST_TEXT_SELECTORS = (
    '[data-testid="tweetText"], .tweet-text',
    ".post-content, .entry-content",
    ".status-content, .message-content",
)
_POST_AUTHOR_SELECTORS = ('[data-testid="User-Name"], .username', ".author, .user-name, .handle")
_METRIC_SELECTORS = {
    "likes": '[data-testid*="like"], .like-count, .heart-count',
    "replies": '[data-testid*="reply"], .reply-count, .comment-count',
    "shares": '[data-testid*="retweet"], .share-count, .repost-count',
}
_DIGITS = re.compile(r"\d+")


def _text(el: Element | None) -> str:
    if el is None:
        return ""
    return " ".join((el.text_content or "").split())


def estimate_tokens(content: Any) -> int:
    if isinstance(content, list):
        return sum(math.ceil(len(json.dumps(item, ensure_ascii=False)) / 4) for item in content)
    return math.ceil(len(json.dumps(content, ensure_ascii=False)) / 4)


class ContentExtractor:
    def __init__(self, doc: Document) -> None:
        self.doc = doc

    # ── article ───────────────────────────────────────────────────────────

    def main_content(self) -> str:
        best = ""
        for candidate in self.doc.query_selector_all("main, .content, .post-content, .article-body"):
            text = _text(candidate)
            if len(text) > len(best):
                best = text
        return best or " ".join(self.doc.body_text().split())

    def article(self) -> dict[str, Any]:
        container = self.doc.query_selector('article, [role="article"], .article-content, main')
        title = _text(self.doc.query_selector("h1, .article-title, .post-title")) or None
        content = _text(container) or self.main_content()
        return {"title": title, "content": content, "word_count": len(content.split())}

    def summarize_article(self, content: dict[str, Any]) -> dict[str, Any]:
        body = content.get("content") or ""
        return {
            "title": content.get("title") or "Untitled",
            "word_count": content.get("word_count") or 0,
            "reading_time": math.ceil((content.get("word_count") or 0) / 200),
            "has_images": bool(self.doc.query_selector_all("img")),
            "has_videos": bool(self.doc.query_selector_all('video, iframe[src*="youtube"], iframe[src*="vimeo"]')),
            "preview": body[:200] + ("..." if len(body) > 200 else ""),
            "estimated_tokens": math.ceil(len(body) / 4),
        }

    # ── search results ────────────────────────────────────────────────────

    @staticmethod
    def _result_title(el: Element, summarize: bool) -> str:
        title = _text(el.query_selector('h1, h2, h3, .title, .headline, [data-testid*="title"]'))
        if title:
            return title[:100] if summarize else title
        fallback = _text(el) or "No title"
        return fallback[:50] if summarize else fallback

    @staticmethod
    def _result_summary(el: Element, summarize: bool) -> str:
        summary = _text(el.query_selector(".summary, .description, .snippet, .excerpt"))
        if summary:
            return summary[:200] if summarize else summary
        fallback = _text(el)
        return fallback[:150] if summarize else fallback

    @staticmethod
    def _result_link(el: Element) -> str | None:
        anchor = el.query_selector("a[href]") or el.closest("a[href]")
        if anchor is not None:
            return anchor.href or None
        return el.get_attribute("href") or None

    @staticmethod
    def _result_type(el: Element) -> str:
        if "sponsored" in _text(el).lower() or el.query_selector(".ad, .sponsored") is not None:
            return "sponsored"
        if el.query_selector("img, video") is not None:
            return "media"
        if el.query_selector(".price, .cost") is not None:
            return "product"
        return "organic"

    @staticmethod
    def _result_score(el: Element) -> float:
        score = 0.5
        if el.query_selector("h1, h2, h3") is not None:
            score += 0.2
        if el.query_selector("img") is not None:
            score += 0.1
        if len(_text(el)) > 100:
            score += 0.1
        if el.query_selector("a[href]") is not None:
            score += 0.1
        return min(round(score, 2), 1.0)

    def search_results(self, max_items: int = 20, summarize: bool = True) -> list[dict[str, Any]]:
        for selector in _SEARCH_RESULT_SELECTORS:
            elements = self.doc.query_selector_all(selector)
            if elements:
                return [
                    {
                        "index": i,
                        "title": self._result_title(el, summarize),
                        "summary": self._result_summary(el, summarize),
                        "link": self._result_link(el),
                        "type": self._result_type(el),
                        "score": self._result_score(el),
                    }
                    for i, el in enumerate(elements[:max_items], start=1)
                ]
        return []

    @staticmethod
    def top_domains(domains: list[str], limit: int = 5) -> list[dict[str, Any]]:
        return [{"domain": d, "count": n} for d, n in Counter(domains).most_common(limit)]

    @staticmethod
    def quality_score(results: list[dict[str, Any]]) -> int:
        if not results:
            return 0
        n = len(results)
        avg = sum(r.get("score") or 0 for r in results) / n
        has_links = sum(1 for r in results if r.get("link")) / n
        has_content = sum(1 for r in results if len(r.get("summary") or "") > 50) / n
        return round((avg * 0.4 + has_links * 0.3 + has_content * 0.3) * 100)

    def summarize_search_results(self, results: list[dict[str, Any]]) -> dict[str, Any]:
        domains = [h for h in (urlsplit(r["link"]).hostname for r in results if r.get("link")) if h]
        n = len(results)
        return {
            "total_results": n,
            "result_types": list(dict.fromkeys(r["type"] for r in results)),
            "top_domains": self.top_domains(domains),
            "avg_score": (sum(r.get("score") or 0 for r in results) / n) if n else 0,
            "has_sponsored": any(r["type"] == "sponsored" for r in results),
            "quality_score": self.quality_score(results),
        }

    # ── posts ─────────────────────────────────────────────────────────────

    @staticmethod
    def _post_text(el: Element, summarize: bool) -> str:
        for selector in _POST_TEXT_SELECTORS:
            text = _text(el.query_selector(selector))
            if text:
                return text[:280] if summarize else text
        fallback = _text(el)
        return fallback[:280] if summarize else fallback

    @staticmethod
    def _post_author(el: Element) -> str:
        for selector in _POST_AUTHOR_SELECTORS:
            author = _text(el.query_selector(selector))
            if author:
                return author[:50]
        return "Unknown"

    @staticmethod
    def _post_timestamp(el: Element) -> str | None:
        node = el.query_selector('time, .timestamp, .date, [data-testid*="time"]')
        if node is None:
            return None
        return node.get_attribute("datetime") or _text(node) or None

    @staticmethod
    def _post_metrics(el: Element) -> dict[str, int]:
        metrics: dict[str, int] = {}
        for key, selector in _METRIC_SELECTORS.items():
            match = _DIGITS.search(_text(el.query_selector(selector)))
            if match:
                metrics[key] = int(match.group(0))
        return metrics

    @staticmethod
    def _post_type(el: Element) -> str:
        if el.query_selector('[data-testid*="retweet"]') is not None:
            return "repost"
        if el.query_selector('[data-testid*="reply"]') is not None:
            return "reply"
        if el.has_attribute("data-promoted"):
            return "promoted"
        return "original"

    def posts(self, max_items: int = 20, summarize: bool = True) -> list[dict[str, Any]]:
        for selector in _POST_SELECTORS:
            elements = self.doc.query_selector_all(selector)
            if elements:
                return [
                    {
                        "index": i,
                        "text": self._post_text(el, summarize),
                        "author": self._post_author(el),
                        "timestamp": self._post_timestamp(el),
                        "metrics": self._post_metrics(el),
                        "has_media": el.query_selector('img, video, [data-testid*="media"]') is not None,
                        "post_type": self._post_type(el),
                    }
                    for i, el in enumerate(elements[:max_items], start=1)
                ]
        return []

    @staticmethod
    def summarize_posts(posts: list[dict[str, Any]]) -> dict[str, Any]:
        n = len(posts)
        total_text = sum(len(p.get("text") or "") for p in posts)
        total_likes = sum((p.get("metrics") or {}).get("likes", 0) for p in posts)
        return {
            "post_count": n,
            "avg_length": round(total_text / n) if n else 0,
            "has_media_count": sum(1 for p in posts if p.get("has_media")),
            "engagement_total": total_likes,
            "avg_engagement": round(total_likes / n) if n else 0,
            "post_types": list(dict.fromkeys(p["post_type"] for p in posts)),
            "authors": len({p["author"] for p in posts if p.get("author")}),
            "estimated_tokens": math.ceil(total_text / 4),
        }

    # ── entry point ───────────────────────────────────────────────────────

    def extraction_method(self, content_type: str) -> str:
        host = self.doc.hostname
        if "twitter" in host or "x.com" in host:
            return "twitter_patterns"
        if "github" in host:
            return "github_patterns"
        if "google" in host:
            return "google_patterns"
        return f"semantic_{content_type}"

    def extract(self, content_type: str, max_items: int = 20, summarize: bool = True) -> dict[str, Any]:
        started = time.perf_counter()
        if content_type == "article":
            raw: Any = self.article()
        elif content_type == "search_results":
            raw = self.search_results(max_items, summarize)
        elif content_type == "posts":
            raw = self.posts(max_items, summarize)
        else:
            raise ValueError(f"Unknown content type: {content_type}")

        elapsed = round((time.perf_counter() - started) * 1000)
        if not summarize:
            return {
                "content": raw,
                "method": "semantic_extraction",
                "content_type": content_type,
                "execution_time": elapsed,
                "extracted_at": iso_now(),
            }

        if content_type == "article":
            summary = self.summarize_article(raw)
        elif content_type == "search_results":
            summary = self.summarize_search_results(raw)
        else:
            summary = self.summarize_posts(raw)
        method = self.extraction_method(content_type)
        return {
            "content_type": content_type,
            "summary": summary,
            "items_found": len(raw) if isinstance(raw, list) else 1,
            "sample_items": raw[:3] if isinstance(raw, list) else [raw],
            "extraction_method": method,
            "method": method,
            "token_estimate": estimate_tokens(raw),
            "execution_time": elapsed,
            "extracted_at": iso_now(),
        }
