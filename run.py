"""
RUN SCRIPT - Start the LLM Server
=================================

PURPOSE:
  Single entry point to start the backend. Run this once per user/machine;
  the server then handles dictation requests from MacWhisper, iOS, etc.

WHAT IT DOES:
  - Parses a few flags (port, host, Tailscale options, reload).
  - Exports them as environment variables, so config.py sees them when
    uvicorn imports llm_server.main.
  - Runs uvicorn, or with --setup-tailscale only configures Tailscale serve and exits.

USAGE:
  python run.py
  python run.py --port 8080 --no-tailscale-check
  python run.py --setup-tailscale

NOTE:
  Settings can also come from .env (see config.py). Flags win over .env.
"""

import argparse
import os
import sys

import uvicorn


def parse_args(argv=None) -> argparse.Namespace:
    from config import HOST, PORT

    parser = argparse.ArgumentParser(
        prog="llm-server",
        description="OpenAI-compatible API proxy for the Claude CLI and LibreTranslate",
    )
    parser.add_argument("-p", "--port", type=int, default=PORT, help="Port to listen on")
    parser.add_argument("--host", default=HOST, help="Interface to bind")
    parser.add_argument("--setup-tailscale", action="store_true", help="Configure Tailscale serve for the port and exit")
    parser.add_argument("--no-tailscale-check", action="store_true", help="Skip the Tailscale serve check on startup")
    parser.add_argument("--reload", action="store_true", help="Auto-restart when .py files change")
    return parser.parse_args(argv)


def setup_tailscale(port: int) -> int:
    """Reconcile Tailscale serve for port; returns the process exit code."""
    from llm_server.services.tailscale_service import ReconcileError, ReconcileStatus, TailscaleService

    print("\nTailscale Serve Setup\n")
    tailscale = TailscaleService()
    try:
        status = tailscale.reconcile(port)
    except ReconcileError as e:
        print(f"✗ {e}")
        return 1

    if status == ReconcileStatus.UNAVAILABLE:
        print("⚠ Tailscale is not installed or not running")
        print("  Install from: https://tailscale.com/download")
        return 1

    info = tailscale.get_info()
    print(f"✓ Tailscale serve is configured for port {port}")
    if info and info.hostname:
        print(f"  HTTPS: https://{info.hostname}:{port}")
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    if args.setup_tailscale:
        return setup_tailscale(args.port)

    # The environment covers reload workers; the module attributes cover this
    # process, where config was already imported by parse_args.
    import config

    os.environ["PORT"] = str(args.port)
    config.PORT = args.port
    if args.no_tailscale_check:
        os.environ["TAILSCALE_CHECK"] = "0"
        config.TAILSCALE_CHECK = False

    uvicorn.run(
        "llm_server.main:app",  # String path to the FastAPI app instance (module:variable).
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
    )
    return 0


# ------------------------------------------------------------------------------
# ENTRY POINT
# ------------------------------------------------------------------------------
if __name__ == "__main__":
    sys.exit(main())
