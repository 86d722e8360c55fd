"""
Error taxonomy shared by the bridge and the agent.

Every error maps onto JSON-RPC code -32603 on the wire; the class name is kept
as ``kind`` so callers can branch without parsing messages.
"""

from __future__ import annotations

from typing import Any

APPLICATION_ERROR_CODE = -32603

AGENT_SETUP_INSTRUCTIONS = (
    "Browser agent not connected. Start the agent and let it reach the bridge, then try again.\n\n"
    "Setup instructions:\n"
    "1. Start the bridge (tabpilot-bridge) so the agent socket is listening\n"
    "2. Start the agent (tabpilot-agent) or load the browser extension\n"
    "3. Check GET /health on the bridge HTTP port: agentConnected must be true\n"
    "4. Retry the tool call"
)


class TabpilotError(Exception):
    """Base class for structured bridge/agent errors."""

    code = APPLICATION_ERROR_CODE

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "kind": self.kind,
            **({"details": self.details} if self.details else {}),
        }


class AgentUnavailable(TabpilotError):
    """No live bridge-to-agent link."""

    def __init__(self, message: str | None = None, **kwargs: Any) -> None:
        super().__init__(message or AGENT_SETUP_INSTRUCTIONS, **kwargs)


class ContextNotFound(TabpilotError):
    """Named tab/context is missing."""


class AgentUnreachable(TabpilotError):
    """Page agent did not answer a ping even after injection."""


class ToolCallTimeout(TabpilotError):
    """No reply arrived before the call deadline."""


class ToolExecutionFailed(TabpilotError):
    """Agent-side handler raised."""


class ValidationError(TabpilotError):
    """Malformed tool arguments."""


class InjectionRestricted(TabpilotError):
    """Target address is on a disallowed scheme/registry list."""


class ElementNotFound(TabpilotError):
    """Element id is unknown or belongs to an earlier page generation."""

    def __init__(self, element_id: str) -> None:
        super().__init__(f"Element not found: {element_id}", details={"element_id": element_id})
        self.element_id = element_id


def error_from_wire(error: Any) -> TabpilotError:
    """Rebuild a typed error from an ``{code, message, kind?}`` reply payload."""
    if not isinstance(error, dict):
        return ToolExecutionFailed(str(error or "Unknown error"))
    message = str(error.get("message") or "Unknown error")
    kind = error.get("kind")
    cls = _KINDS.get(kind) if isinstance(kind, str) else None
    if cls is None or cls is ElementNotFound or cls is AgentUnavailable:
        return ToolExecutionFailed(message)
    return cls(message)


_KINDS: dict[str, type[TabpilotError]] = {
    cls.__name__: cls
    for cls in (
        AgentUnavailable,
        ContextNotFound,
        AgentUnreachable,
        ToolCallTimeout,
        ToolExecutionFailed,
        ValidationError,
        InjectionRestricted,
        ElementNotFound,
    )
}
