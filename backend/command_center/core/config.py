"""
Application configuration from environment variables.
"""
import os
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _parse_origins(value: str | None) -> List[str]:
    """Parse CORS_ORIGINS (comma-separated) into a list of trimmed strings."""
    if not value or not value.strip():
        return []
    return [origin.strip() for origin in value.split(",") if origin.strip()]


def _parse_agent_map(value: str | None) -> dict[str, str]:
    """
    Parse GATEWAY_AGENT_MAP (e.g. "titus:main,looty:looty") into
    { "titus": "main", "looty": "looty" }.
    """
    if not value or not value.strip():
        return {}
    out: dict[str, str] = {}
    for part in value.split(","):
        part = part.strip()
        if ":" in part:
            agent_id, gateway_agent = part.split(":", 1)
            out[agent_id.strip().lower()] = gateway_agent.strip()
    return out


LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS: List[str] = _parse_origins(os.getenv("CORS_ORIGINS", "http://localhost:3000"))

# OpenClaw gateway (OpenAI-compatible /v1/chat/completions)
GATEWAY_URL: str = os.getenv("GATEWAY_URL", "http://127.0.0.1:18789")
GATEWAY_TOKEN: str = os.getenv("GATEWAY_TOKEN", "")
GATEWAY_MODEL: str = os.getenv("GATEWAY_MODEL", "anthropic/claude-opus-4-6")
GATEWAY_CONNECT_TIMEOUT_SECONDS: float = float(os.getenv("GATEWAY_CONNECT_TIMEOUT_SECONDS", "10"))
GATEWAY_TIMEOUT_SECONDS: float = float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "120"))
GATEWAY_PING_TIMEOUT_SECONDS: float = float(os.getenv("GATEWAY_PING_TIMEOUT_SECONDS", "3"))

# Dashboard agent id -> gateway agent id; unknown ids pass through unchanged.
GATEWAY_AGENT_MAP: dict[str, str] = {
    "titus": "main",
    "looty": "looty",
    "bolt": "minibolt",
    "minibolt": "minibolt",
    **_parse_agent_map(os.getenv("GATEWAY_AGENT_MAP", "")),
}

# Sender labels written to chat_messages.agent_name
HUMAN_SENDER: str = os.getenv("HUMAN_SENDER", "Cody")
ASSISTANT_SENDER: str = os.getenv("ASSISTANT_SENDER", "Titus")
HUMAN_SENDERS: frozenset[str] = frozenset({"user", HUMAN_SENDER.lower()})

# Supabase (client side: REST, Realtime, Storage)
SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
SUPABASE_KEY: str = os.getenv("SUPABASE_KEY", "")
STORAGE_BUCKET: str = os.getenv("STORAGE_BUCKET", "uploads")

# Chat session sync
RELAY_URL: str = os.getenv("RELAY_URL", "http://127.0.0.1:8000")
POLL_INTERVAL_SECONDS: float = float(os.getenv("POLL_INTERVAL_SECONDS", "5"))
RECONNECT_BASE_SECONDS: float = float(os.getenv("RECONNECT_BASE_SECONDS", "1"))
RECONNECT_MAX_SECONDS: float = float(os.getenv("RECONNECT_MAX_SECONDS", "30"))
