import json
import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

load_dotenv()

# Secrets - stay in .env
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")

# User config - loaded from ~/.datachat-agent/config.json (primary)
# or project-root config.json (fallback).
CONFIG_PATH = Path.home() / ".datachat-agent" / "config.json"
_LOCAL_CONFIG_PATH = Path(__file__).resolve().parent / "config.json"
_user_config: dict = {}


def _load_config() -> dict:
    # Project-local config.json as base, user home config overlaid on top
    merged: dict = {}
    for path in (_LOCAL_CONFIG_PATH, CONFIG_PATH):
        if path is not None and path.exists():
            try:
                with open(path, "r", encoding="utf-8") as f:
                    merged.update(json.load(f))
            except (json.JSONDecodeError, OSError):
                pass
    return merged


def get(key: str, default=None):
    """Get a config value by dot-separated key. E.g. get('server.port', 8080)"""
    keys = key.split(".")
    val = _user_config
    for k in keys:
        if isinstance(val, dict):
            val = val.get(k)
        else:
            return default
    return val if val is not None else default


_user_config = _load_config()


# ---- Data directory -----------------------------------------------------------
# Base directory for logs and saved charts.
# Priority: DATACHAT_AGENT_DIR env var > "data_dir" config key > ~/.datachat-agent

_data_dir: Optional[Path] = None


def get_data_dir() -> Path:
    """Return the resolved base data directory.

    Resolution order:
    1. ``DATACHAT_AGENT_DIR`` environment variable (highest - useful for CI/Docker)
    2. ``"data_dir"`` key in config.json
    3. ``~/.datachat-agent`` (default)
    """
    global _data_dir
    if _data_dir is not None:
        return _data_dir
    env_val = os.environ.get("DATACHAT_AGENT_DIR")
    if env_val:
        _data_dir = Path(env_val).expanduser().resolve()
    else:
        configured = get("data_dir")
        if configured:
            _data_dir = Path(configured).expanduser().resolve()
        else:
            _data_dir = Path.home() / ".datachat-agent"
    return _data_dir


def _reset_data_dir() -> None:
    """Reset the cached data directory (for testing only)."""
    global _data_dir
    _data_dir = None


# ---- LLM provider config ------------------------------------------------------
LLM_PROVIDER = get("llm_provider", "openai")  # "openai" or "anthropic"
LLM_API_KEY = get("llm_api_key") or os.getenv("DATACHAT_LLM_API_KEY")
LLM_BASE_URL = get("llm_base_url")            # for OpenAI-compatible endpoints
LLM_MODEL = get("model", "gpt-4o-mini")
LLM_TIMEOUT_MS = get("llm_timeout_ms", 300_000)


def get_api_key(provider: str | None = None) -> str | None:
    """Return the API key for the given (or configured) LLM provider.

    Resolution order: LLM_API_KEY (config or env) > provider-specific env var.
    """
    if LLM_API_KEY:
        return LLM_API_KEY
    prov = (provider or LLM_PROVIDER).lower()
    if prov == "anthropic":
        return ANTHROPIC_API_KEY
    return OPENAI_API_KEY


# ---- Remote tool server -------------------------------------------------------
MCP_SERVER_URL = get(
    "mcp_server_url",
    os.getenv("MCP_SERVER_URL", "http://localhost:8000/mcp"),
)
MCP_TRANSPORT = get("mcp_transport", "streamable-http")  # "streamable-http" or "sse"
TOOL_TIMEOUT_SECONDS = get("tool_timeout_seconds", 120)

# ---- Agent loop ---------------------------------------------------------------
MAX_ITERATIONS = get("max_iterations", 10)
DEFAULT_DATASOURCE = get("default_datasource", "eBikes Inventory and Sales")

# ---- Charts -------------------------------------------------------------------
# Tool whose results already carry Vega-Lite visualizations
PULSE_INSIGHT_TOOL = get("pulse_insight_tool", "generate-pulse-metric-value-insight-bundle")
MARKDOWN_CHART_TITLE_PREFIX = get("charts.markdown_title_prefix", "Sales Data: ")

# ---- HTTP service -------------------------------------------------------------
SERVER_HOST = get("server.host", "127.0.0.1")
SERVER_PORT = get("server.port", 8080)
CORS_ORIGINS = get("server.cors_origins", [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
])
