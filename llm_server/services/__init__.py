"""
SERVICES PACKAGE
================

Everything that does I/O or holds state lives here. The routes (gateway.py)
call these services; the services never see HTTP requests.

MODULES:
    backend             - Backend contract (generate), BackendResult, BackendError
    claude_service      - Claude CLI backend (subprocess, model allow-list)
    translation_service - LibreTranslate round-trip backend (httpx)
    session_service     - Single in-memory dictation session for carry-over
    tailscale_service   - Tailscale serve status and reconciliation
"""
