"""Configuration loading and defaults.

Reads from config.toml at the project root, with environment variable overrides.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path

from dotenv import load_dotenv

# Look for .env in the package's parent directory (project root)
_project_root = Path(__file__).resolve().parent.parent
load_dotenv(_project_root / ".env")
load_dotenv()  # also check cwd

# ---------------------------------------------------------------------------
# Load config.toml
# ---------------------------------------------------------------------------

_toml_path = Path(os.getenv("AGENTHEAP_CONFIG", str(_project_root / "config.toml")))
_cfg: dict = {}
if _toml_path.exists():
    with open(_toml_path, "rb") as f:
        _cfg = tomllib.load(f)

_server = _cfg.get("server", {})
_agent = _cfg.get("agent", {})
_heap = _cfg.get("heap", {})
_rate_limit = _cfg.get("rate_limit", {})

# ---------------------------------------------------------------------------
# Provider API keys (env-only, never in toml)
# ---------------------------------------------------------------------------

ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")

# ---------------------------------------------------------------------------
# Turn defaults
# ---------------------------------------------------------------------------

DEFAULT_MODEL = os.getenv("AGENTHEAP_DEFAULT_MODEL", _agent.get("default_model", "anthropic/claude-sonnet-4-5"))
DEFAULT_TEMPERATURE = float(os.getenv("AGENTHEAP_TEMPERATURE", _agent.get("temperature", 0.4)))
NUDGE_TEMPERATURE = float(os.getenv("AGENTHEAP_NUDGE_TEMPERATURE", _agent.get("nudge_temperature", 0.2)))
DEFAULT_MAX_TOKENS = int(os.getenv("AGENTHEAP_MAX_TOKENS", _agent.get("max_tokens", 4096)))
MAX_FOLLOW_UP_ROUNDS = int(os.getenv("AGENTHEAP_MAX_FOLLOW_UP_ROUNDS", _agent.get("max_follow_up_rounds", 2)))
TOOL_LOOP_MAX_ROUNDS = int(os.getenv("AGENTHEAP_TOOL_LOOP_MAX_ROUNDS", _agent.get("tool_loop_max_rounds", 20)))

# ---------------------------------------------------------------------------
# Heap
# ---------------------------------------------------------------------------

# Depth 0 is the top-level heap, so a limit of 5 allows 6 nested levels in total.
HEAP_DEPTH_LIMIT = int(os.getenv("AGENTHEAP_HEAP_DEPTH_LIMIT", _heap.get("depth_limit", 5)))
HEAP_CONTEXT_MAX_STEPS = int(os.getenv("AGENTHEAP_HEAP_CONTEXT_MAX_STEPS", _heap.get("context_max_steps", 10)))

# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------

RATE_LIMIT_WINDOW_SECONDS = float(os.getenv("AGENTHEAP_RATE_WINDOW", _rate_limit.get("window_seconds", 60)))
RATE_LIMIT_MAX_SLEEP_SECONDS = float(os.getenv("AGENTHEAP_RATE_MAX_SLEEP", _rate_limit.get("max_sleep_seconds", 5)))

# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------

SERVER_HOST = os.getenv("AGENTHEAP_HOST", _server.get("host", "0.0.0.0"))
SERVER_PORT = int(os.getenv("AGENTHEAP_PORT", _server.get("port", 8000)))
