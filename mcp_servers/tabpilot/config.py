from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_WS_PORT = 5555
DEFAULT_HTTP_PORT = 5556
DEFAULT_SERVER_URL = f"ws://localhost:{DEFAULT_WS_PORT}"
DEFAULT_DISCOVERY_PORTS: list[int] = [5556, 5557, 5558, 3001, 6001, 6002, 6003]


def _env_int(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_flag(name: str, default: bool) -> bool:
    raw = (os.environ.get(name) or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


@dataclass
class BridgeConfig:
    ws_host: str = "127.0.0.1"
    ws_port: int = DEFAULT_WS_PORT
    http_host: str = "127.0.0.1"
    http_port: int = DEFAULT_HTTP_PORT
    transport: str = "stdio"
    call_timeout: float = 30.0

    @staticmethod
    def normalize_transport(raw: str | None) -> str:
        value = (raw or "").strip().lower()
        if value in {"http", "sse"}:
            return "http"
        if value in {"both", "all"}:
            return "both"
        return "stdio"

    @property
    def serves_stdio(self) -> bool:
        return self.transport in {"stdio", "both"}

    @property
    def serves_mcp_http(self) -> bool:
        return self.transport in {"http", "both"}

    @classmethod
    def from_env(cls) -> BridgeConfig:
        return cls(
            ws_host=(os.environ.get("TABPILOT_WS_HOST") or "127.0.0.1").strip() or "127.0.0.1",
            ws_port=_env_int("TABPILOT_WS_PORT", DEFAULT_WS_PORT),
            http_host=(os.environ.get("TABPILOT_HTTP_HOST") or "127.0.0.1").strip() or "127.0.0.1",
            http_port=_env_int("TABPILOT_HTTP_PORT", DEFAULT_HTTP_PORT),
            transport=cls.normalize_transport(os.environ.get("TABPILOT_TRANSPORT")),
            call_timeout=max(0.1, _env_float("TABPILOT_CALL_TIMEOUT", 30.0)),
        )


@dataclass
class AgentConfig:
    server_url: str = DEFAULT_SERVER_URL
    discovery_ports: list[int] = field(default_factory=lambda: list(DEFAULT_DISCOVERY_PORTS))
    reconnect_base_ms: int = 5000
    reconnect_cap_ms: int = 30000
    reconnect_max_attempts: int = 10
    heartbeat_interval_s: float = 15.0
    persistent: bool = True
    detailed_max: int = 7
    safety_mode: bool = False

    def backoff_delay_ms(self, attempt: int) -> int:
        """Reconnect delay before ``attempt`` (1-based)."""
        n = max(1, int(attempt))
        return min(self.reconnect_base_ms * 2 ** (n - 1), self.reconnect_cap_ms)

    @classmethod
    def from_env(cls) -> AgentConfig:
        ports_raw = os.environ.get("TABPILOT_DISCOVERY_PORTS", "")
        ports = [int(p) for p in ports_raw.split(",") if p.strip().isdigit()]
        return cls(
            server_url=(os.environ.get("TABPILOT_SERVER_URL") or DEFAULT_SERVER_URL).strip() or DEFAULT_SERVER_URL,
            discovery_ports=ports or list(DEFAULT_DISCOVERY_PORTS),
            reconnect_base_ms=_env_int("TABPILOT_RECONNECT_BASE_MS", 5000),
            reconnect_cap_ms=_env_int("TABPILOT_RECONNECT_CAP_MS", 30000),
            reconnect_max_attempts=_env_int("TABPILOT_RECONNECT_MAX", 10),
            heartbeat_interval_s=max(0.05, _env_float("TABPILOT_HEARTBEAT_S", 15.0)),
            persistent=_env_flag("TABPILOT_PERSISTENT", True),
            detailed_max=max(1, _env_int("TABPILOT_DETAILED_MAX", 7)),
            safety_mode=_env_flag("TABPILOT_SAFETY_MODE", False),
        )
