from __future__ import annotations

import json


def _metadata_block(text: str) -> dict:
    return json.loads(text[text.index("\n{") + 1 :])


def test_page_analyze_quick_records() -> None:
    from mcp_servers.tabpilot.server.formatting import format_tool_result

    result = {
        "method": "enhanced_patterns",
        "execution_time": 4,
        "summary": {"anti_detection_platform": None},
        "elements": [
            {"id": "q1-abc", "type": "input", "name": "Email", "conf": 92, "state": "enabled", "ready": True},
            {"id": "q2-abc", "type": "submit", "name": "Log in", "conf": 92, "state": "disabled", "ready": False},
        ],
    }
    text = format_tool_result("page_analyze", result)

    assert text.startswith("Found 2 relevant elements using enhanced_patterns:")
    assert "• Email (input) - Confidence: 92% Ready\n  Element ID: q1-abc" in text
    assert "• Log in (submit) - Confidence: 92% Not ready (disabled)" in text
    meta = _metadata_block(text)
    assert meta["tool"] == "page_analyze"
    assert meta["execution_time"] == 4
    assert meta["timestamp"].endswith("Z")


def test_page_analyze_detailed_records_and_platform() -> None:
    from mcp_servers.tabpilot.server.formatting import format_tool_result

    result = {
        "method": "expanded_matches",
        "summary": {"anti_detection_platform": "x.com"},
        "elements": [
            {
                "id": "el1-abc",
                "type": "textarea",
                "name": "Post text",
                "conf": 80,
                "meta": {"state": {"interaction_ready": True, "disabled": False}},
            }
        ],
    }
    text = format_tool_result("page_analyze", result)

    assert "Anti-detection platform detected: x.com" in text
    assert "Confidence: 80% Ready\n  Element ID: el1-abc" in text


def test_page_analyze_empty() -> None:
    from mcp_servers.tabpilot.server.formatting import format_tool_result

    text = format_tool_result("page_analyze", {"elements": [], "intent_hint": "login", "summary": {}})
    assert text.startswith('No relevant elements found for intent: "login"\n\n')


def test_extract_content_variants() -> None:
    from mcp_servers.tabpilot.server.formatting import format_tool_result

    long_text = "x" * 600
    text = format_tool_result(
        "page_extract_content", {"content_type": "article", "method": "semantic_extraction", "content": long_text}
    )
    assert text.startswith("Extracted article content using semantic_extraction:\n\n")
    assert "x" * 500 + "..." in text
    assert "x" * 501 not in text

    summary = {"title": "Big Story", "word_count": 7, "reading_time": 1, "has_images": True, "preview": "Big"}
    text = format_tool_result(
        "page_extract_content", {"content_type": "article", "method": "semantic_article", "summary": summary}
    )
    assert 'Article: "Big Story"' in text
    assert "Has media: True" in text

    text = format_tool_result("page_extract_content", {"content_type": "posts", "method": "m"})
    assert "No content found" in text


def test_element_fill_bypass_failure_hint() -> None:
    from mcp_servers.tabpilot.server.formatting import BYPASS_RETRY_HINT, format_tool_result

    text = format_tool_result(
        "element_fill",
        {
            "success": False,
            "method": "twitter_direct_bypass",
            "element_name": "Post text",
            "value": "hi",
            "actual_value": "",
            "execCommand_result": False,
        },
    )
    assert text.startswith("Element fill failed using Twitter Direct Bypass\n")
    assert 'Input: "hi"' in text
    assert "Result:" not in text
    assert "execCommand success: false" in text
    assert BYPASS_RETRY_HINT in text


def test_element_fill_standard_success() -> None:
    from mcp_servers.tabpilot.server.formatting import BYPASS_RETRY_HINT, format_tool_result

    text = format_tool_result(
        "element_fill",
        {"success": True, "method": "standard_fill", "element_id": "q1-a", "value": "hi", "actual_value": "hi"},
    )
    assert text.startswith("Element fill completed using Standard Fill\nTarget: q1-a\n")
    assert 'Result: "hi"' in text
    assert "execCommand" not in text
    assert BYPASS_RETRY_HINT not in text


def test_simple_tools_and_fallback_json() -> None:
    from mcp_servers.tabpilot.server.formatting import format_tool_result

    assert format_tool_result("element_click", {"element_name": "Go", "click_type": "double"}).startswith(
        "Successfully clicked element: Go\nClick type: double"
    )
    assert format_tool_result("page_navigate", {"url": "https://example.com/"}).startswith(
        "Successfully navigated to: https://example.com/"
    )
    assert format_tool_result("page_wait_for", {"condition_type": "text_present", "wait_time": 12}).startswith(
        "Condition met: text_present\nWait time: 12ms"
    )
    assert json.loads(format_tool_result("tab_list", {"success": True, "count": 0})) == {"success": True, "count": 0}
    assert json.loads(format_tool_result("page_analyze", [1, 2])) == [1, 2]
