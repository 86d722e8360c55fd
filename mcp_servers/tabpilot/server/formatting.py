"""Human-readable rendering of agent tool results.

Each known tool gets a short text summary followed by a metadata JSON block
``{tool, execution_time, timestamp}``. Anything else is rendered as JSON.
"""

from __future__ import annotations

import json
from typing import Any

from ..timeutil import iso_now

FILL_METHOD_NAMES = {
    "twitter_direct_bypass": "Twitter Direct Bypass",
    "linkedin_direct_bypass": "LinkedIn Direct Bypass",
    "facebook_direct_bypass": "Facebook Direct Bypass",
    "generic_direct_bypass": "Generic Direct Bypass",
    "standard_fill": "Standard Fill",
}

BYPASS_RETRY_HINT = "Direct bypass failed - page may have enhanced detection. Try refreshing the page."

PREVIEW_CHARS = 500


def _dumps(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


def _metadata(tool: str, result: dict[str, Any]) -> dict[str, Any]:
    return {
        "tool": tool,
        "execution_time": result.get("execution_time") or 0,
        "timestamp": iso_now(),
    }


def _element_ready(el: dict[str, Any]) -> tuple[bool, bool]:
    """(ready, disabled) for quick records and detailed records alike."""
    if "ready" in el or "state" in el:
        return bool(el.get("ready")), el.get("state") == "disabled"
    state = (el.get("meta") or {}).get("state") or {}
    return bool(state.get("interaction_ready")), bool(state.get("disabled"))


def format_page_analyze(result: dict[str, Any], metadata: dict[str, Any]) -> str:
    platform = (result.get("summary") or {}).get("anti_detection_platform")
    elements = result.get("elements") or []
    if not elements:
        intent = result.get("intent_hint") or "unknown"
        platform_line = f"\nPlatform: {platform}" if platform else ""
        return f'No relevant elements found for intent: "{intent}"{platform_line}\n\n{_dumps(metadata)}'

    lines = []
    for el in elements:
        ready, disabled = _element_ready(el)
        status = "Ready" if ready else "Not ready"
        suffix = " (disabled)" if disabled else ""
        lines.append(
            f"• {el.get('name')} ({el.get('type')}) - Confidence: {el.get('conf')}% {status}{suffix}\n"
            f"  Element ID: {el.get('id')}"
        )
    platform_line = f"\nAnti-detection platform detected: {platform}" if platform else ""
    header = f"Found {len(elements)} relevant elements using {result.get('method')}:{platform_line}"
    return f"{header}\n\n" + "\n\n".join(lines) + f"\n\n{_dumps(metadata)}"


def format_content_summary(summary: dict[str, Any], content_type: str) -> str:
    if content_type == "article":
        return (
            f'Article: "{summary.get("title")}"\n'
            f"Word count: {summary.get('word_count')}\n"
            f"Reading time: {summary.get('reading_time')} minutes\n"
            f"Has media: {bool(summary.get('has_images') or summary.get('has_videos'))}\n"
            f"Preview: {summary.get('preview')}"
        )
    if content_type == "search_results":
        domains = ", ".join(str(d.get("domain")) for d in summary.get("top_domains") or [])
        return (
            "Search Results Summary:\n"
            f"Total results: {summary.get('total_results')}\n"
            f"Quality score: {summary.get('quality_score')}/100\n"
            f"Average relevance: {round((summary.get('avg_score') or 0) * 100)}%\n"
            f"Top domains: {domains}\n"
            f"Result types: {', '.join(summary.get('result_types') or [])}"
        )
    if content_type == "posts":
        return (
            "Social Posts Summary:\n"
            f"Post count: {summary.get('post_count')}\n"
            f"Average length: {summary.get('avg_length')} characters\n"
            f"Total engagement: {summary.get('engagement_total')}\n"
            f"Posts with media: {summary.get('has_media_count')}\n"
            f"Unique authors: {summary.get('authors')}\n"
            f"Post types: {', '.join(summary.get('post_types') or [])}"
        )
    return _dumps(summary)


def format_extract_content(result: dict[str, Any], metadata: dict[str, Any]) -> str:
    content_type = result.get("content_type")
    head = f"Extracted {content_type} content using {result.get('method')}:\n\n"
    content = result.get("content")
    if content:
        if isinstance(content, str):
            body = content[:PREVIEW_CHARS] + ("..." if len(content) > PREVIEW_CHARS else "")
        else:
            body = _dumps(content)[:PREVIEW_CHARS]
    elif result.get("summary"):
        body = format_content_summary(result["summary"], str(content_type))
    else:
        body = "No content found"
    return f"{head}{body}\n\n{_dumps(metadata)}"


def format_element_click(result: dict[str, Any], metadata: dict[str, Any]) -> str:
    name = result.get("element_name") or result.get("element_id")
    return (
        f"Successfully clicked element: {name}\n"
        f"Click type: {result.get('click_type') or 'left'}\n\n{_dumps(metadata)}"
    )


def format_element_fill(result: dict[str, Any], metadata: dict[str, Any]) -> str:
    method = str(result.get("method") or "")
    display = FILL_METHOD_NAMES.get(method, method)
    ok = bool(result.get("success"))
    text = f"Element fill {'completed' if ok else 'failed'} using {display}\n"
    text += f"Target: {result.get('element_name') or result.get('element_id')}\n"
    text += f'Input: "{result.get("value")}"\n'
    if result.get("actual_value"):
        text += f'Result: "{result.get("actual_value")}"\n'
    is_bypass = "bypass" in method
    if is_bypass and result.get("execCommand_result") is not None:
        text += f"execCommand success: {str(bool(result['execCommand_result'])).lower()}\n"
    if not ok and is_bypass:
        text += f"\n{BYPASS_RETRY_HINT}\n"
    return f"{text}\n{_dumps(metadata)}"


def format_tool_result(tool: str, result: Any) -> str:
    """Render an agent result for the control-protocol text content."""
    if not isinstance(result, dict):
        return _dumps(result)
    metadata = _metadata(tool, result)
    if tool == "page_analyze":
        return format_page_analyze(result, metadata)
    if tool == "page_extract_content":
        return format_extract_content(result, metadata)
    if tool == "element_click":
        return format_element_click(result, metadata)
    if tool == "element_fill":
        return format_element_fill(result, metadata)
    if tool == "page_navigate":
        return f"Successfully navigated to: {result.get('url') or 'unknown URL'}\n\n{_dumps(metadata)}"
    if tool == "page_wait_for":
        return (
            f"Condition met: {result.get('condition_type') or 'unknown'}\n"
            f"Wait time: {result.get('wait_time') or 0}ms\n\n{_dumps(metadata)}"
        )
    return _dumps(result)
