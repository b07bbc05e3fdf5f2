"""
Configuration helpers for the Swarm MCP server.

This module centralizes the Bee endpoint, the feed signing key, upload defaults,
timeouts and logging settings. No secrets are stored in the repository; the
feed private key is read from environment or a local file if present.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

# Default connection settings
DEFAULT_BEE_API_URL = os.getenv("BEE_API_URL", "https://api.gateway.ethswarm.org")


def _load_float(env_var: str, default: float) -> float:
    raw_value = os.getenv(env_var)
    if raw_value:
        try:
            return float(raw_value)
        except ValueError:
            return default
    return default


def _load_bool(env_var: str, default: bool) -> bool:
    raw_value = os.getenv(env_var)
    if raw_value is None or not raw_value.strip():
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _load_timeout() -> float:
    return _load_float("BEE_HTTP_TIMEOUT", 60.0)


DEFAULT_TIMEOUT = _load_timeout()

# Feed key handling
FEED_KEY_ENV_VAR = "BEE_FEED_PK"
FEED_KEY_FILE_ENV_VAR = "BEE_FEED_PK_FILE"
DEFAULT_FEED_KEY_FILE = "feed.key"

# Upload behaviour
DEFAULT_AUTO_ASSIGN_STAMP = _load_bool("BEE_AUTO_ASSIGN_STAMP", True)
DEFAULT_DEFERRED_UPLOAD_SIZE_THRESHOLD_MB = _load_float("BEE_DEFERRED_UPLOAD_SIZE_THRESHOLD_MB", 5.0)
DEFAULT_GATEWAY_BATCH_ID = "0" * 64

# Call bounds (seconds)
DEFAULT_CALL_TIMEOUT = _load_float("SWARM_MCP_CALL_TIMEOUT", 30.0)
DEFAULT_NODE_CHECK_TIMEOUT = _load_float("SWARM_MCP_NODE_CHECK_TIMEOUT", 5.0)

# Serving
DEFAULT_HOST = os.getenv("HOST", "0.0.0.0")
DEFAULT_PORT = int(_load_float("PORT", 3000))
DEFAULT_RATE_LIMIT_QPS = _load_float("SWARM_MCP_RATE_LIMIT_QPS", 5.0)
PER_TOOL_RATE_LIMITS_ENV_VAR = "SWARM_MCP_PER_TOOL_RATE_LIMITS"
LOG_LEVEL = os.getenv("SWARM_MCP_LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("SWARM_MCP_LOG_FORMAT", "json")  # json or plain


def load_feed_private_key() -> Optional[str]:
    """
    Load the hex feed signing key from environment or a local file.

    Returns:
        The key string (with any ``0x`` prefix removed) if available, otherwise
        None. The key is never logged or returned to callers.
    """
    env_key = os.getenv(FEED_KEY_ENV_VAR)
    if env_key and env_key.strip():
        return _strip_hex_prefix(env_key.strip())

    key_path = os.getenv(FEED_KEY_FILE_ENV_VAR, DEFAULT_FEED_KEY_FILE)
    if key_path:
        path = Path(key_path)
        if path.is_file():
            return _strip_hex_prefix(path.read_text(encoding="utf-8").strip()) or None

    return None


def load_per_tool_rate_limits() -> Dict[str, float]:
    """
    Parse per-tool overrides such as ``"create_postage_stamp=0.1,list_tools=2"``.

    Malformed pairs are skipped; a rate of 0 disables limiting for that key.
    """
    limits: Dict[str, float] = {}
    for pair in os.getenv(PER_TOOL_RATE_LIMITS_ENV_VAR, "").split(","):
        name, sep, raw_rate = pair.partition("=")
        name = name.strip()
        if not sep or not name:
            continue
        try:
            limits[name] = float(raw_rate)
        except ValueError:
            continue
    return limits


def _strip_hex_prefix(value: str) -> str:
    return value[2:] if value.lower().startswith("0x") else value


@dataclass(slots=True)
class SwarmConfig:
    """Runtime configuration for Bee access and the MCP surface."""

    bee_api_url: str = DEFAULT_BEE_API_URL
    timeout: float = DEFAULT_TIMEOUT
    feed_private_key: Optional[str] = load_feed_private_key()
    auto_assign_stamp: bool = DEFAULT_AUTO_ASSIGN_STAMP
    deferred_upload_size_threshold_mb: float = DEFAULT_DEFERRED_UPLOAD_SIZE_THRESHOLD_MB
    gateway_batch_id: str = DEFAULT_GATEWAY_BATCH_ID
    call_timeout: float = DEFAULT_CALL_TIMEOUT
    node_check_timeout: float = DEFAULT_NODE_CHECK_TIMEOUT
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    rate_limit_qps: float = DEFAULT_RATE_LIMIT_QPS
    log_level: str = LOG_LEVEL
    log_format: str = LOG_FORMAT
    per_tool_rate_limits: Dict[str, float] = field(default_factory=load_per_tool_rate_limits)

    @property
    def endpoint(self) -> str:
        return self.bee_api_url.rstrip("/")


default_config = SwarmConfig()
