"""Tool definitions registered by the agent when it connects to the bridge."""

from __future__ import annotations

from typing import Any

_TAB_ID = {
    "type": "number",
    "description": "Target tab id from tab_list. If omitted, the active tab of the current window is used.",
}

AGENT_TOOL_DEFINITIONS: list[dict[str, Any]] = [
    {
        "name": "page_analyze",
        "description": (
            "Two-phase page analysis. 'discover' returns a compact list of likely targets with ids; "
            "'detailed' expands ids or focus areas. Works on background tabs via tab_id."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "intent_hint": {
                    "type": "string",
                    "description": "User intent: login, signup, search, post_create, comment, menu, submit, etc.",
                },
                "phase": {
                    "type": "string",
                    "enum": ["discover", "detailed"],
                    "default": "discover",
                    "description": "'discover' for a quick scan, 'detailed' for full analysis",
                },
                "focus_areas": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Areas to analyze in detail: buttons, forms, navigation, search_elements",
                },
                "max_results": {
                    "type": "number",
                    "default": 5,
                    "maximum": 15,
                    "description": "Maximum number of elements to return",
                },
                "element_ids": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Quick match ids from the discover phase to expand",
                },
                "tab_id": _TAB_ID,
            },
            "required": ["intent_hint"],
        },
    },
    {
        "name": "page_extract_content",
        "description": "Extract article, search result or post content from a tab, summarized by default.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "content_type": {
                    "type": "string",
                    "enum": ["article", "search_results", "posts"],
                    "description": "Type of content to extract",
                },
                "max_items": {
                    "type": "number",
                    "default": 20,
                    "description": "Maximum number of items to extract (for lists/collections)",
                },
                "summarize": {
                    "type": "boolean",
                    "default": True,
                    "description": "Return summary instead of full content to save tokens",
                },
                "tab_id": _TAB_ID,
            },
            "required": ["content_type"],
        },
    },
    {
        "name": "element_click",
        "description": "Click an element by id from page_analyze.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "element_id": {"type": "string", "description": "Element id from page_analyze"},
                "click_type": {"type": "string", "enum": ["left", "right", "double"], "default": "left"},
                "wait_after": {"type": "number", "default": 500, "description": "Milliseconds to wait after click"},
                "tab_id": _TAB_ID,
            },
            "required": ["element_id"],
        },
    },
    {
        "name": "element_fill",
        "description": (
            "Fill an input, textarea or rich editor by id. Composer editors on x.com, LinkedIn and Facebook "
            "use direct text insertion."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "element_id": {"type": "string", "description": "Element id from page_analyze"},
                "value": {"type": "string", "description": "Text value to input"},
                "clear_first": {
                    "type": "boolean",
                    "default": True,
                    "description": "Clear existing content before filling",
                },
                "force_focus": {
                    "type": "boolean",
                    "default": True,
                    "description": "Focus with a click sequence before typing",
                },
                "tab_id": _TAB_ID,
            },
            "required": ["element_id", "value"],
        },
    },
    {
        "name": "page_navigate",
        "description": "Navigate the current tab to a URL. Use tab_create to open a new tab instead.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "url": {"type": "string", "description": "URL to navigate to"},
                "wait_for": {"type": "string", "description": "CSS selector to wait for after navigation"},
                "timeout": {"type": "number", "default": 10000, "description": "Maximum wait time in milliseconds"},
            },
            "required": ["url"],
        },
    },
    {
        "name": "page_wait_for",
        "description": "Wait for an element to become visible or for text to appear.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "condition_type": {
                    "type": "string",
                    "enum": ["element_visible", "text_present"],
                    "description": "Type of condition to wait for",
                },
                "selector": {"type": "string", "description": "CSS selector for element_visible"},
                "text": {"type": "string", "description": "Text to wait for (text_present)"},
                "timeout": {"type": "number", "default": 5000, "description": "Maximum wait time in milliseconds"},
                "tab_id": _TAB_ID,
            },
            "required": ["condition_type"],
        },
    },
    {
        "name": "tab_create",
        "description": (
            "Create tabs. For N identical tabs use {url, count: N}; for different URLs pass them all in 'urls'. "
            "Batches are created in throttled chunks."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "url": {"type": "string", "description": "Single URL to open; combine with count for copies"},
                "urls": {
                    "type": "array",
                    "items": {"type": "string"},
                    "maxItems": 100,
                    "description": "URLs to open in one batch operation",
                },
                "count": {"type": "number", "default": 1, "minimum": 1, "maximum": 50},
                "active": {
                    "type": "boolean",
                    "default": True,
                    "description": "Activate the last created tab",
                },
                "wait_for": {
                    "type": "string",
                    "description": "CSS selector to wait for after tab creation (single tab only)",
                },
                "timeout": {"type": "number", "default": 10000, "description": "Maximum wait time per tab in ms"},
                "batch_settings": {
                    "type": "object",
                    "properties": {
                        "chunk_size": {"type": "number", "default": 5, "minimum": 1, "maximum": 10},
                        "delay_between_chunks": {"type": "number", "default": 1000, "minimum": 100, "maximum": 5000},
                        "delay_between_tabs": {"type": "number", "default": 200, "minimum": 50, "maximum": 1000},
                    },
                },
            },
        },
    },
    {
        "name": "tab_close",
        "description": "Close tabs by id, or the current tab when no id is given.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "tab_id": {"type": "number", "description": "Tab id to close"},
                "tab_ids": {"type": "array", "items": {"type": "number"}, "description": "Tab ids to close"},
            },
        },
    },
    {
        "name": "tab_list",
        "description": "List open tabs with ids, optionally with page agent readiness.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "current_window_only": {"type": "boolean", "default": True},
                "include_details": {"type": "boolean", "default": True},
                "check_content_script": {
                    "type": "boolean",
                    "default": False,
                    "description": "Ping each tab's page agent (slower)",
                },
            },
        },
    },
    {
        "name": "tab_switch",
        "description": "Activate a tab by id and focus its window.",
        "inputSchema": {
            "type": "object",
            "properties": {"tab_id": {"type": "number", "description": "Tab id to switch to"}},
            "required": ["tab_id"],
        },
    },
    {
        "name": "element_get_state",
        "description": "Report disabled, visible, clickable, focusable and readiness flags for an element id.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "element_id": {"type": "string", "description": "Element id from page_analyze"},
                "tab_id": _TAB_ID,
            },
            "required": ["element_id"],
        },
    },
    {
        "name": "get_bookmarks",
        "description": "Get the bookmark tree or search bookmarks.",
        "inputSchema": {
            "type": "object",
            "properties": {"query": {"type": "string", "description": "Search query (optional)"}},
        },
    },
    {
        "name": "add_bookmark",
        "description": "Add a bookmark.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "title": {"type": "string"},
                "url": {"type": "string"},
                "parentId": {"type": "string", "description": "Parent folder id (optional)"},
            },
            "required": ["title", "url"],
        },
    },
    {
        "name": "get_history",
        "description": "Search browsing history by keywords, date range, domains and visit count.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "keywords": {"type": "string"},
                "start_date": {"type": "string", "format": "date-time"},
                "end_date": {"type": "string", "format": "date-time"},
                "domains": {"type": "array", "items": {"type": "string"}},
                "min_visit_count": {"type": "number", "default": 1},
                "max_results": {"type": "number", "default": 50, "maximum": 500},
                "sort_by": {"type": "string", "enum": ["visit_time", "visit_count", "title"], "default": "visit_time"},
                "sort_order": {"type": "string", "enum": ["desc", "asc"], "default": "desc"},
            },
        },
    },
    {
        "name": "get_selected_text",
        "description": "Return the text currently selected in a tab, with optional selection metadata.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "include_metadata": {"type": "boolean", "default": True},
                "max_length": {"type": "number", "default": 10000},
                "tab_id": _TAB_ID,
            },
        },
    },
    {
        "name": "page_scroll",
        "description": "Scroll a tab by direction and amount, or scroll an element id into view.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "direction": {
                    "type": "string",
                    "enum": ["up", "down", "left", "right", "top", "bottom"],
                    "default": "down",
                },
                "amount": {
                    "type": "string",
                    "enum": ["small", "medium", "large", "page", "custom"],
                    "default": "medium",
                },
                "pixels": {"type": "number", "description": "Pixel amount when amount is 'custom'"},
                "smooth": {"type": "boolean", "default": True},
                "element_id": {"type": "string", "description": "Scroll this element into view instead"},
                "wait_after": {"type": "number", "default": 500},
                "tab_id": _TAB_ID,
            },
        },
    },
    {
        "name": "get_page_links",
        "description": "List hyperlinks on a page, filtered by internal/external and domain.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "include_internal": {"type": "boolean", "default": True},
                "include_external": {"type": "boolean", "default": True},
                "domain_filter": {"type": "string", "description": "Keep links whose domain contains this"},
                "max_results": {"type": "number", "default": 100, "maximum": 500},
                "tab_id": _TAB_ID,
            },
        },
    },
]


def agent_tool_names() -> list[str]:
    return [t["name"] for t in AGENT_TOOL_DEFINITIONS]
