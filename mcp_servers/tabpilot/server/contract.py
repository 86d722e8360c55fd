"""Protocol and tool contract definitions.

This is the single source of truth for:
- supported control-protocol versions
- server identity
- capabilities advertised by initialize
- the fallback tool list shown while no agent is connected
"""

from __future__ import annotations

from typing import Any

SERVER_INFO: dict[str, str] = {"name": "tabpilot", "version": "0.1.0"}

SUPPORTED_PROTOCOL_VERSIONS = ["0.1.0", "2025-06-18", "2024-11-05"]
LATEST_PROTOCOL_VERSION = SUPPORTED_PROTOCOL_VERSIONS[1]
DEFAULT_PROTOCOL_VERSION = LATEST_PROTOCOL_VERSION

CAPABILITIES: dict[str, Any] = {
    "logging": {},
    "prompts": {"listChanged": False},
    "resources": {"subscribe": False, "listChanged": False},
    "tools": {"listChanged": False},
}

INSTRUCTIONS = (
    "Drive the user's browser through the connected agent. "
    "Call page_analyze first and pass the returned element ids to element_click / element_fill; "
    "ids expire when the page navigates."
)

FALLBACK_TOOLS: list[dict[str, Any]] = [
    {
        "name": "page_analyze",
        "description": "Analyze page structure and return compact element ids (agent required)",
        "inputSchema": {
            "type": "object",
            "properties": {
                "intent_hint": {
                    "type": "string",
                    "description": "What the user wants to do: post_tweet, search, login, etc.",
                },
                "phase": {
                    "type": "string",
                    "enum": ["discover", "detailed"],
                    "default": "discover",
                    "description": "'discover' for a quick scan, 'detailed' for full analysis",
                },
            },
            "required": ["intent_hint"],
        },
    },
    {
        "name": "page_extract_content",
        "description": "Extract structured content with summarization (agent required)",
        "inputSchema": {
            "type": "object",
            "properties": {
                "content_type": {
                    "type": "string",
                    "enum": ["article", "search_results", "posts"],
                    "description": "Type of content to extract",
                },
                "summarize": {
                    "type": "boolean",
                    "default": True,
                    "description": "Return a summary instead of full content",
                },
            },
            "required": ["content_type"],
        },
    },
    {
        "name": "element_click",
        "description": "Click a page element by id (agent required)",
        "inputSchema": {
            "type": "object",
            "properties": {
                "element_id": {"type": "string", "description": "Element ID from page_analyze"},
                "click_type": {"type": "string", "enum": ["left", "right", "double"], "default": "left"},
            },
            "required": ["element_id"],
        },
    },
    {
        "name": "element_fill",
        "description": "Fill an input or editor, with direct insertion on x.com, LinkedIn and Facebook (agent required)",
        "inputSchema": {
            "type": "object",
            "properties": {
                "element_id": {"type": "string", "description": "Element ID from page_analyze"},
                "value": {"type": "string", "description": "Text to input"},
                "clear_first": {
                    "type": "boolean",
                    "default": True,
                    "description": "Clear existing content before filling",
                },
            },
            "required": ["element_id", "value"],
        },
    },
    {
        "name": "page_navigate",
        "description": "Navigate to a URL and optionally wait for a selector (agent required)",
        "inputSchema": {
            "type": "object",
            "properties": {
                "url": {"type": "string", "description": "URL to navigate to"},
                "wait_for": {"type": "string", "description": "CSS selector to wait for after navigation"},
            },
            "required": ["url"],
        },
    },
    {
        "name": "page_wait_for",
        "description": "Wait for an element or text to appear (agent required)",
        "inputSchema": {
            "type": "object",
            "properties": {
                "condition_type": {
                    "type": "string",
                    "enum": ["element_visible", "text_present"],
                    "description": "Type of condition to wait for",
                },
                "selector": {"type": "string", "description": "CSS selector (for element_visible)"},
                "text": {"type": "string", "description": "Text to wait for (for text_present)"},
            },
            "required": ["condition_type"],
        },
    },
]


def select_protocol(requested: Any) -> str:
    if isinstance(requested, str) and requested in SUPPORTED_PROTOCOL_VERSIONS:
        return requested
    return DEFAULT_PROTOCOL_VERSION


def initialize_result(protocol: str) -> dict[str, Any]:
    return {
        "protocolVersion": protocol,
        "serverInfo": SERVER_INFO,
        "capabilities": CAPABILITIES,
        "instructions": INSTRUCTIONS,
    }


def tools_list(agent_tools: list[dict[str, Any]] | None = None) -> list[dict[str, Any]]:
    """Agent-registered tools when there are any, otherwise the fallback list."""
    if agent_tools:
        return list(agent_tools)
    return FALLBACK_TOOLS
