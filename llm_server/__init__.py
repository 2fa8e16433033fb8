"""
LLM SERVER APPLICATION PACKAGE
==============================

OpenAI-compatible HTTP front for a dictation workflow. Each backend gets its
own /v1 surface:

  from llm_server.main import app, create_app
  from llm_server.services.claude_service import ClaudeBackend

FILE STRUCTURE:
  llm_server/
    __init__.py   - This file; marks 'llm_server' as a package.
    main.py       - FastAPI app factory, lifespan, /health, banner.
    gateway.py    - Per-backend router: /v1/chat/completions and /v1/models.
    models.py     - Pydantic request/response models (OpenAI-compatible subset).
    services/     - Backends (Claude CLI, LibreTranslate), session store, Tailscale.
    utils/        - Message normalization, response formatting, elapsed-time text.
"""

__version__ = "1.0.0"
