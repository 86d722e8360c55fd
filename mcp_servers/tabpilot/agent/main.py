"""
Standalone agent process.

Connects to the bridge and serves tool calls from an in-process snapshot
browser. ``TABPILOT_START_URL`` opens an initial tab.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os

from ..config import AgentConfig
from .connection import ConnectionManager
from .dispatcher import CommandDispatcher
from .host import BrowserHost
from .snapshot_host import SnapshotHost

logger = logging.getLogger("mcp.tabpilot.agent")


async def run_agent(config: AgentConfig | None = None, host: BrowserHost | None = None) -> None:
    cfg = config or AgentConfig.from_env()
    if host is None:
        host = SnapshotHost(detailed_max=cfg.detailed_max, persistent_background=cfg.persistent)
    start_url = (os.environ.get("TABPILOT_START_URL") or "").strip()
    if start_url:
        await host.create_tab(url=start_url, active=True)

    dispatcher = CommandDispatcher(host, cfg)
    manager = ConnectionManager(dispatcher.handle, cfg)
    await manager.connect()
    logger.info("agent running status=%s", manager.status())
    try:
        await asyncio.Event().wait()
    finally:
        await manager.close()


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(run_agent())


if __name__ == "__main__":
    main()
