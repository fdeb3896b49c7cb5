"""
Configuration for the cc-mob server.

This module manages:
- Config directory (shared by the server and the MCP adapter)
- Runtime settings (port, bind mode, TTLs, rate limits)
- LAN address detection
"""

import os
import socket
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional


# =============================================================================
# Config Directory (server and MCP adapter share the same token file)
# =============================================================================

DEFAULT_CONFIG_DIR = Path.home() / ".cc-mob"
ENV_FILE_NAME = ".env"

DEFAULT_PORT = 3456
DAY_SECONDS = 24 * 60 * 60


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        print(f"[Config] Ignoring invalid {key}={raw!r}, using {default}")
        return default


def _env_flag(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = (env.get(key) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def get_lan_ip() -> str:
    """Best-effort first non-loopback IPv4 address of this machine."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            # No packet is sent for UDP connect; it only selects a route
            s.connect(("10.255.255.255", 1))
            address = s.getsockname()[0]
            if address and not address.startswith("127."):
                return address
    except OSError:
        pass
    return "127.0.0.1"


# =============================================================================
# Settings
# =============================================================================

@dataclass
class Settings:
    """Runtime settings, constructed once at startup and passed to components."""
    port: int = DEFAULT_PORT
    lan_mode: bool = False
    session_ttl: int = DAY_SECONDS  # seconds
    expiry: float = DAY_SECONDS  # seconds a request may stay pending
    sweep_interval: float = 60
    keepalive_interval: float = 30
    api_rate_limit: int = 30
    create_rate_limit: int = 10
    ws_rate_limit: int = 10
    rate_window: float = 60
    config_dir: Path = field(default_factory=lambda: DEFAULT_CONFIG_DIR)
    trust_proxy: bool = True
    max_body_bytes: int = 16 * 1024
    max_ws_message_bytes: int = 64 * 1024

    @property
    def env_path(self) -> Path:
        return Path(self.config_dir) / ENV_FILE_NAME

    @property
    def bind_host(self) -> str:
        return "0.0.0.0" if self.lan_mode else "127.0.0.1"

    @property
    def local_url(self) -> str:
        return f"http://localhost:{self.port}"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, **overrides) -> "Settings":
        """Build settings from environment variables; keyword overrides win (CLI flags)."""
        if env is None:
            env = os.environ

        config_dir = (env.get("CC_MOB_HOME") or "").strip()
        values = dict(
            port=_env_int(env, "PORT", DEFAULT_PORT),
            lan_mode=_env_flag(env, "LAN", False),
            session_ttl=_env_int(env, "SESSION_TTL", DAY_SECONDS),
            expiry=_env_int(env, "CC_MOB_EXPIRY", DAY_SECONDS),
            sweep_interval=_env_int(env, "CC_MOB_SWEEP_INTERVAL", 60),
            keepalive_interval=_env_int(env, "CC_MOB_KEEPALIVE_INTERVAL", 30),
            api_rate_limit=_env_int(env, "CC_MOB_API_RATE_LIMIT", 30),
            create_rate_limit=_env_int(env, "CC_MOB_CREATE_RATE_LIMIT", 10),
            ws_rate_limit=_env_int(env, "CC_MOB_WS_RATE_LIMIT", 10),
            config_dir=Path(config_dir).expanduser() if config_dir else DEFAULT_CONFIG_DIR,
            trust_proxy=_env_flag(env, "CC_MOB_TRUST_PROXY", True),
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
