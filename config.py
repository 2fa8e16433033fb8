"""
CONFIGURATION MODULE
====================

PURPOSE:
  Central place for all LLM Server settings: listening port, base path, the
  LibreTranslate URL, Claude CLI options, session timing, and Tailscale options.
  Designed for single-user use: one person runs one server next to their
  dictation app (MacWhisper, iOS shortcuts, ...).

WHAT THIS FILE DOES:
  - Loads environment variables from .env (so local overrides stay out of code).
  - Exposes PORT, HOST and BASE_PATH for the HTTP server.
  - Exposes LIBRETRANSLATE_URL and the round-trip language pair.
  - Exposes the Claude model allow-list, default model, timeout and output limit.
  - Defines the session timeout and the maximum number of stored exchanges.
  - Defines the Tailscale binary path and the auto-setup toggle.

USAGE:
  Import what you need: `from config import PORT, LIBRETRANSLATE_URL, VALID_CLAUDE_MODELS`
  All services import from here so behaviour is consistent.
"""

import os
import sys
import logging
from dotenv import load_dotenv


# -----------------------------------------------------------------------------
# LOGGING
# -----------------------------------------------------------------------------
# Used when an environment value cannot be parsed and we fall back to a default.
logger = logging.getLogger("LLM-Server")


# -----------------------------------------------------------------------------
# ENVIRONMENT
# -----------------------------------------------------------------------------
# Load environment variables from .env file (if it exists).
load_dotenv()


def _env_int(name: str, default: int) -> int:
    """Read an integer from the environment; fall back to default if unset or invalid."""
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid integer for %s=%r, using %s", name, raw, default)
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    """Read a boolean flag from the environment (1/true/yes/on)."""
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _normalize_base_path(raw: str) -> str:
    """'' stays ''; 'api/' becomes '/api'. Routes are mounted under this prefix."""
    raw = raw.strip().strip("/")
    return f"/{raw}" if raw else ""


# ============================================================================
# HTTP SERVER
# ============================================================================
# PORT is also the port Tailscale serve exposes over HTTPS (port-based routing).
# BASE_PATH prefixes every backend route, e.g. "/llm" gives /llm/claude/v1/...

PORT = _env_int("PORT", 51732)
HOST = os.getenv("HOST", "0.0.0.0")
BASE_PATH = _normalize_base_path(os.getenv("BASE_PATH", ""))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# ============================================================================
# LIBRETRANSLATE CONFIGURATION
# ============================================================================
# The translation backend runs every dictation through a fixed round trip:
# source -> pivot, then pivot -> source. The round trip cleans up dictation
# artifacts without changing the language of the text.

LIBRETRANSLATE_URL = os.getenv("LIBRETRANSLATE_URL", "http://localhost:5001/translate")
TRANSLATION_SOURCE_LANG = os.getenv("TRANSLATION_SOURCE_LANG", "hu")
TRANSLATION_PIVOT_LANG = os.getenv("TRANSLATION_PIVOT_LANG", "en")
LIBRETRANSLATE_MODEL = "libretranslate"

# ============================================================================
# CLAUDE CLI CONFIGURATION
# ============================================================================
# Requests may pick any model from VALID_CLAUDE_MODELS; anything else is
# replaced with DEFAULT_CLAUDE_MODEL before the CLI is invoked.

VALID_CLAUDE_MODELS = ["haiku", "sonnet", "opus"]
DEFAULT_CLAUDE_MODEL = os.getenv("CLAUDE_MODEL", "haiku").strip()
if DEFAULT_CLAUDE_MODEL not in VALID_CLAUDE_MODELS:
    logger.warning("CLAUDE_MODEL=%r is not one of %s, using haiku", DEFAULT_CLAUDE_MODEL, VALID_CLAUDE_MODELS)
    DEFAULT_CLAUDE_MODEL = "haiku"

CLAUDE_COMMAND = os.getenv("CLAUDE_COMMAND", "claude")
CLAUDE_TIMEOUT_SECONDS = 60
CLAUDE_MAX_OUTPUT_BYTES = 10 * 1024 * 1024

# ============================================================================
# SESSION CONFIGURATION
# ============================================================================
# A dictation session stays alive for 5 minutes after the last exchange.
# SESSION_MAX_EXCHANGES bounds the carried-over history (0 = no bound).

SESSION_TIMEOUT_SECONDS = 5 * 60
SESSION_MAX_EXCHANGES = _env_int("SESSION_MAX_EXCHANGES", 40)

# ============================================================================
# TAILSCALE CONFIGURATION
# ============================================================================
# Tailscale serve makes https://<hostname>:PORT reach http://127.0.0.1:PORT.
# TAILSCALE_CHECK is set to "0" by run.py --no-tailscale-check.

if sys.platform == "darwin":
    TAILSCALE_PATH = os.getenv("TAILSCALE_PATH", "/Applications/Tailscale.app/Contents/MacOS/Tailscale")
else:
    TAILSCALE_PATH = os.getenv("TAILSCALE_PATH", "tailscale")

TAILSCALE_AUTO_SETUP = _env_bool("TAILSCALE_AUTO_SETUP", False)
TAILSCALE_CHECK = _env_bool("TAILSCALE_CHECK", True)
