#!/usr/bin/env python3
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

print(
    f"[mcp] transport={os.environ.get('TABPILOT_TRANSPORT', 'stdio')} | "
    f"ws_port={os.environ.get('TABPILOT_WS_PORT', '5555')} | "
    f"http_port={os.environ.get('TABPILOT_HTTP_PORT', '5556')} | "
    f"call_timeout={os.environ.get('TABPILOT_CALL_TIMEOUT', '30')}",
    file=sys.stderr,
)

if len(sys.argv) > 1 and sys.argv[1] == "agent":
    from mcp_servers.tabpilot.agent.main import main  # noqa: E402
else:
    from mcp_servers.tabpilot.main import main  # noqa: E402

if __name__ == "__main__":
    main()
