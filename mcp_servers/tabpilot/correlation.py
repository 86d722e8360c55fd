"""
Request/reply correlation for tool calls forwarded to the agent.

Each outbound call gets an id unique for the life of the process (session
prefix + counter), a future, and a deadline timer. A reply resolves the future
at most once; replies for unknown, settled or timed-out ids are ignored.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import secrets
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from .errors import AgentUnavailable, ToolCallTimeout, error_from_wire

logger = logging.getLogger("mcp.tabpilot.correlation")

DEFAULT_CALL_TIMEOUT = 30.0


@dataclass(slots=True)
class PendingCall:
    id: str
    tool: str
    future: asyncio.Future
    deadline: float
    timer: asyncio.TimerHandle | None = None


class PendingCalls:
    def __init__(self, *, timeout: float = DEFAULT_CALL_TIMEOUT, prefix: str | None = None) -> None:
        self.timeout = float(timeout)
        self.prefix = prefix or secrets.token_hex(4)
        self._counter = itertools.count(1)
        self._calls: dict[str, PendingCall] = {}

    def __len__(self) -> int:
        return len(self._calls)

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._calls

    def next_id(self) -> str:
        return f"{self.prefix}-{next(self._counter)}"

    def register(self, tool: str, *, timeout: float | None = None) -> PendingCall:
        loop = asyncio.get_running_loop()
        limit = self.timeout if timeout is None else float(timeout)
        call = PendingCall(
            id=self.next_id(),
            tool=tool,
            future=loop.create_future(),
            deadline=time.monotonic() + limit,
        )
        call.timer = loop.call_later(limit, self._expire, call.id)
        self._calls[call.id] = call
        return call

    def _expire(self, call_id: str) -> None:
        call = self._calls.pop(call_id, None)
        if call is None or call.future.done():
            return
        logger.warning("tool_call_timeout id=%s tool=%s", call_id, call.tool)
        call.future.set_exception(ToolCallTimeout("Tool call timeout", details={"tool": call.tool}))

    def _settle(self, call_id: Any) -> PendingCall | None:
        if not isinstance(call_id, (str, int)):
            return None
        call = self._calls.pop(str(call_id), None)
        if call is None:
            return None
        if call.timer is not None:
            call.timer.cancel()
        if call.future.done():
            return None
        return call

    def resolve(self, call_id: Any, result: Any) -> bool:
        call = self._settle(call_id)
        if call is None:
            return False
        call.future.set_result(result)
        return True

    def reject(self, call_id: Any, exc: BaseException) -> bool:
        call = self._settle(call_id)
        if call is None:
            return False
        call.future.set_exception(exc)
        return True

    def handle_reply(self, message: dict[str, Any]) -> bool:
        """Route an ``{id, result}`` / ``{id, error}`` frame; False if nobody was waiting."""
        call_id = message.get("id")
        if "error" in message and message.get("error") is not None:
            return self.reject(call_id, error_from_wire(message.get("error")))
        return self.resolve(call_id, message.get("result"))

    def fail_all(self, exc: BaseException | None = None) -> int:
        failed = 0
        for call_id in list(self._calls):
            if self.reject(call_id, exc or AgentUnavailable("Agent disconnected")):
                failed += 1
        return failed

    async def call(
        self,
        send: Callable[[dict[str, Any]], Awaitable[None]],
        tool: str,
        arguments: dict[str, Any],
        *,
        timeout: float | None = None,
    ) -> Any:
        """Send ``{id, method, params}`` and wait for the matching reply."""
        pending = self.register(tool, timeout=timeout)
        try:
            await send({"id": pending.id, "method": tool, "params": arguments})
        except Exception as exc:
            self._settle(pending.id)
            raise AgentUnavailable(f"Failed to send tool call: {exc}") from exc
        return await pending.future
