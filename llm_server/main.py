"""
LLM SERVER MAIN API
===================

This module defines the FastAPI application and mounts one OpenAI-compatible
router per backend. It is designed for single-user use: one person runs one
server next to their dictation app and points the app at one of the base URLs
printed in the startup banner (API key: anything, e.g. "dummy").

ENDPOINTS (all backend routes live under BASE_PATH):
  GET  /                                   - API name and endpoint list.
  GET  /health                             - {"status": "ok"} while serving.
  POST {BASE_PATH}/claude/v1/chat/completions
                                           - Claude CLI, with session carry-over.
  GET  {BASE_PATH}/claude/v1/models        - haiku, sonnet, opus.
  POST {BASE_PATH}/libretranslate/v1/chat/completions
                                           - LibreTranslate round trip (stateless).
  GET  {BASE_PATH}/libretranslate/v1/models
                                           - libretranslate.

SESSION:
  One in-memory session shared by all Claude requests (see session_service).
  Lost on restart.

STARTUP:
  The lifespan prints the banner and, unless disabled, checks Tailscale serve in
  a worker thread (optionally reconciling it). None of that can stop the server.
  On shutdown it closes the backends' network clients.
"""

import asyncio
import logging
import socket
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from llm_server import gateway
from llm_server.services.backend import Backend
from llm_server.services.claude_service import ClaudeBackend
from llm_server.services.session_service import SessionStore
from llm_server.services.tailscale_service import (
    ReconcileError,
    TailscaleInfo,
    TailscaleService,
)
from llm_server.services.translation_service import LibreTranslateBackend
from config import BASE_PATH, LOG_LEVEL, PORT, TAILSCALE_AUTO_SETUP, TAILSCALE_CHECK


# -----------------------------------------------------------------------------
# LOGGING
# -----------------------------------------------------------------------------
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format='%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("LLM-Server")


# -----------------------------------------------------------------------------
# BANNER
# -----------------------------------------------------------------------------

def get_local_ip() -> str:
    """LAN address of this machine (no packet is sent; UDP connect only picks a route)."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("10.255.255.255", 1))
            return sock.getsockname()[0]
    except OSError:
        return "127.0.0.1"


def print_banner(port: int, backends: List[Backend], tailscale_info: Optional[TailscaleInfo] = None):
    """Print client configuration (API key, model, base URLs) for every backend."""
    WHITE = "\033[97m"
    CYAN = "\033[96m"
    GREEN = "\033[92m"
    DIM = "\033[2m"
    BOLD = "\033[1m"
    RESET = "\033[0m"

    urls = {
        "Local:": f"http://localhost:{port}{BASE_PATH}",
        "Network:": f"http://{get_local_ip()}:{port}{BASE_PATH}",
    }
    if tailscale_info and tailscale_info.ip:
        urls["Tailscale:"] = f"http://{tailscale_info.ip}:{port}{BASE_PATH}"
    if tailscale_info and tailscale_info.hostname:
        urls["HTTPS/iOS:"] = f"https://{tailscale_info.hostname}:{port}{BASE_PATH}"

    lines = [
        f"{BOLD}{WHITE}{'═' * 65}",
        "MacWhisper / iOS Configuration",
        f"{'═' * 65}{RESET}",
    ]
    for backend in backends:
        others = [m for m in backend.models if m != backend.default_model]
        models_hint = f"{DIM} (or: {', '.join(others)}){RESET}" if others else ""
        lines.append("")
        lines.append(
            f"{BOLD}{WHITE}[{backend.name}]{RESET}{DIM} API Key: {RESET}dummy"
            f"{DIM} | Model: {RESET}{GREEN}{backend.default_model}{RESET}{models_hint}"
        )
        lines.append(f"{DIM}{'─' * 65}{RESET}")
        for label, base in urls.items():
            lines.append(f"{DIM}  {label:<12}{RESET}{CYAN}{base}/{backend.name}/v1{RESET}")
    lines.append("")
    lines.append(f"{BOLD}{WHITE}{'═' * 65}{RESET}")
    print("\n".join(lines))


# -------------------------------------------------------------------------
# TAILSCALE (BACKGROUND)
# -------------------------------------------------------------------------

def check_exposure(tailscale: TailscaleService, port: int, auto_setup: bool) -> Optional[TailscaleInfo]:
    """
    Runs in a worker thread at startup. Logs the Tailscale serve situation and,
    if auto_setup is on, reconciles it. Returns tailnet info for the banner.
    """
    if not tailscale.is_available():
        logger.warning("Tailscale is not installed or not running (https://tailscale.com/download)")
        return None

    diagnostics = tailscale.diagnostics()
    serve = diagnostics["serve"]
    logger.info(
        "Tailscale: ip=%s hostname=%s serve=%s",
        diagnostics["ip"] or "-",
        diagnostics["hostname"] or "-",
        f"{serve.configured_path} -> {serve.proxy}" if serve and serve.is_configured else "off",
    )
    info = None
    if diagnostics["ip"] or diagnostics["hostname"]:
        info = TailscaleInfo(ip=diagnostics["ip"], hostname=diagnostics["hostname"])

    if auto_setup:
        try:
            status = tailscale.reconcile(port)
            logger.info("Tailscale serve: %s", status.value)
        except ReconcileError as e:
            logger.error("Tailscale serve setup failed: %s", e)
    elif not tailscale.is_configured(port):
        logger.warning("Tailscale serve needs configuration. Run: python run.py --setup-tailscale")
    return info


# -------------------------------------------------------------------------
# APPLICATION FACTORY
# -------------------------------------------------------------------------

def create_app(
    backends: Optional[List[Backend]] = None,
    session_store: Optional[SessionStore] = None,
    tailscale: Optional[TailscaleService] = None,
    port: int = PORT,
    show_banner: bool = True,
) -> FastAPI:
    """
    Build the app. Tests pass stub backends and tailscale=None; production uses
    the defaults (Claude CLI, LibreTranslate, the real tailscale binary).
    """
    if backends is None:
        backends = [ClaudeBackend(), LibreTranslateBackend()]
    if session_store is None:
        session_store = SessionStore()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("=" * 60)
        logger.info("LLM Server - Starting Up...")
        logger.info("=" * 60)
        for backend in backends:
            logger.info(
                "    - %s: %s%s/v1 (session: %s)",
                backend.name,
                BASE_PATH,
                f"/{backend.name}",
                "yes" if backend.uses_session else "no",
            )

        exposure_task = None
        if tailscale is not None:
            loop = asyncio.get_running_loop()

            async def exposure_startup():
                info = None
                try:
                    info = await loop.run_in_executor(None, check_exposure, tailscale, port, TAILSCALE_AUTO_SETUP)
                except Exception as e:
                    logger.error(f"Tailscale startup check failed: {e}", exc_info=True)
                if show_banner:
                    print_banner(port, backends, info)

            exposure_task = asyncio.create_task(exposure_startup())
        elif show_banner:
            print_banner(port, backends)

        yield

        logger.info("Shutting down LLM Server...")
        if exposure_task is not None and not exposure_task.done():
            exposure_task.cancel()
        for backend in backends:
            await backend.aclose()

    app = FastAPI(
        title="LLM Server",
        description="OpenAI-compatible API for the Claude CLI and LibreTranslate",
        lifespan=lifespan,
    )
    app.state.session_store = session_store
    app.state.backends = backends

    # Dictation apps and browser tools call from anywhere on the tailnet.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for backend in backends:
        app.include_router(
            gateway.router(backend, session_store if backend.uses_session else None),
            prefix=f"{BASE_PATH}/{backend.name}",
        )

    @app.get("/")
    async def root():
        """Return the API name and the endpoints of every backend (for discovery)."""
        endpoints = {"/health": "Health check"}
        for backend in backends:
            prefix = f"{BASE_PATH}/{backend.name}/v1"
            endpoints[f"{prefix}/chat/completions"] = f"Chat completions via {backend.name}"
            endpoints[f"{prefix}/models"] = f"Models offered by {backend.name}"
        return {"message": "LLM Server", "endpoints": endpoints}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    if BASE_PATH:
        app.add_api_route(f"{BASE_PATH}/health", health, methods=["GET"])

    return app


# Tailscale checks are skipped with --no-tailscale-check (TAILSCALE_CHECK=0).
app = create_app(tailscale=TailscaleService() if TAILSCALE_CHECK else None)
