"""
TAILSCALE SERVICE MODULE
========================

Keeps `tailscale serve` pointed at this server, so phones and other machines on
the tailnet reach it as https://<machine>.<tailnet>.ts.net:<PORT>.

  current_state()  - what tailscale serve proxies right now (re-read on every call).
  reconcile(port)  - no-op if "/" already proxies to port; otherwise reset and
                     install `serve --bg --https=<port> http://127.0.0.1:<port>`.
  disable()        - `serve reset`.
  diagnostics()    - installed / ip / hostname / serve state, logged by the startup
                     check and feeding the banner URLs.

This is advisory. Nothing here is on the request path and a failure here never
stops the server. If the tailscale binary is missing (or the daemon is not
running) the service reports UNAVAILABLE and stays that way until restart.

All commands are run as argument vectors; no shell is involved.
"""

import json
import logging
import re
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from config import TAILSCALE_PATH

logger = logging.getLogger("LLM-Server")

Runner = Callable[..., subprocess.CompletedProcess]

# Port at the end of "host:PORT" keys and "http://127.0.0.1:PORT" proxy targets.
_TRAILING_PORT = re.compile(r":(\d+)$")

DEFAULT_SERVE_PATH = "/"
COMMAND_TIMEOUT_SECONDS = 15


class ReconcileError(Exception):
    """tailscale reported an error while (re)configuring serve."""


class ReconcileStatus(str, Enum):
    UNAVAILABLE = "unavailable"
    ALREADY_CONFIGURED = "already_configured"
    CONFIGURED = "configured"


@dataclass(frozen=True)
class ExposureState:
    """What tailscale serve currently proxies. All fields None when nothing is served."""
    configured_path: Optional[str] = None
    configured_port: Optional[int] = None
    is_https: bool = False
    https_port: Optional[int] = None
    proxy: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return self.configured_port is not None


@dataclass(frozen=True)
class TailscaleInfo:
    ip: Optional[str]
    hostname: Optional[str]


def parse_serve_status(status: Dict[str, Any]) -> ExposureState:
    """
    Extract the first local proxy handler from `tailscale serve status --json`.

    Shape: {"Web": {"host:PORT": {"Handlers": {"/": {"Proxy": "http://127.0.0.1:PORT"}}}}}
    A Web key without a port means the default HTTPS port 443.
    """
    web = status.get("Web") if isinstance(status, dict) else None
    if not isinstance(web, dict):
        return ExposureState()

    for key, web_config in web.items():
        key_match = _TRAILING_PORT.search(key)
        serve_port = int(key_match.group(1)) if key_match else 443
        handlers = web_config.get("Handlers") if isinstance(web_config, dict) else None
        if not isinstance(handlers, dict):
            continue
        for path, handler in handlers.items():
            proxy = handler.get("Proxy") if isinstance(handler, dict) else None
            if not isinstance(proxy, str):
                continue
            proxy_match = _TRAILING_PORT.search(proxy)
            if proxy_match:
                return ExposureState(
                    configured_path=path,
                    configured_port=int(proxy_match.group(1)),
                    is_https=True,
                    https_port=serve_port,
                    proxy=proxy,
                )
    return ExposureState()


# ==============================================================================
# TAILSCALE SERVICE CLASS
# ==============================================================================

class TailscaleService:
    """Thin wrapper around the tailscale CLI."""

    def __init__(self, executable: str = TAILSCALE_PATH, runner: Optional[Runner] = None):
        self.executable = executable
        self._runner = runner or subprocess.run
        self._available: Optional[bool] = None

    def _run(self, *args: str) -> subprocess.CompletedProcess:
        """Run `tailscale <args>`; OSError/TimeoutExpired propagate to the caller."""
        return self._runner(
            [self.executable, *args],
            capture_output=True,
            text=True,
            timeout=COMMAND_TIMEOUT_SECONDS,
        )

    def _output(self, *args: str) -> Optional[str]:
        """Trimmed stdout of a successful command, or None on any failure."""
        try:
            completed = self._run(*args)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug("tailscale %s failed: %s", " ".join(args), e)
            return None
        if completed.returncode != 0:
            return None
        return (completed.stdout or "").strip()

    # -------------------------------------------------------------------------
    # QUERIES
    # -------------------------------------------------------------------------

    def is_available(self) -> bool:
        """True if tailscale is installed and running. Checked once per process."""
        if self._available is None:
            self._available = self._output("status") is not None
            if not self._available:
                logger.info("Tailscale is not available; exposure checks are disabled")
        return self._available

    def get_info(self) -> Optional[TailscaleInfo]:
        """Tailnet IPv4 address and MagicDNS hostname (trailing dot removed)."""
        ip = self._output("ip", "-4")
        raw_status = self._output("status", "--json")
        if ip is None or raw_status is None:
            return None
        try:
            status = json.loads(raw_status)
        except ValueError:
            return None
        node = status.get("Self") if isinstance(status, dict) else None
        dns_name = node.get("DNSName") if isinstance(node, dict) else None
        hostname = dns_name.rstrip(".") if isinstance(dns_name, str) and dns_name else None
        return TailscaleInfo(ip=ip.splitlines()[0] if ip else None, hostname=hostname)

    def current_state(self) -> ExposureState:
        raw = self._output("serve", "status", "--json")
        if not raw:
            return ExposureState()
        try:
            status = json.loads(raw)
        except ValueError:
            logger.warning("Could not parse tailscale serve status")
            return ExposureState()
        return parse_serve_status(status)

    def is_configured(self, port: int, path: str = DEFAULT_SERVE_PATH) -> bool:
        state = self.current_state()
        return state.configured_path == path and state.configured_port == port

    def diagnostics(self) -> Dict[str, Any]:
        available = self.is_available()
        info = self.get_info() if available else None
        serve = self.current_state() if available else None
        return {
            "installed": available,
            "running": available,
            "ip": info.ip if info else None,
            "hostname": info.hostname if info else None,
            "serve": serve,
        }

    # -------------------------------------------------------------------------
    # CHANGES
    # -------------------------------------------------------------------------

    def disable(self) -> bool:
        """Remove every serve mapping. Returns False if tailscale refused or is missing."""
        return self._output("serve", "reset") is not None

    def serve_command(self, port: int) -> List[str]:
        return ["serve", "--bg", f"--https={port}", f"http://127.0.0.1:{port}"]

    def reconcile(self, port: int) -> ReconcileStatus:
        """
        Make https://<hostname>:<port> proxy to http://127.0.0.1:<port>.

        Idempotent: an existing correct mapping is left alone. Raises
        ReconcileError if tailscale fails to install the new mapping.
        """
        if not self.is_available():
            return ReconcileStatus.UNAVAILABLE

        state = self.current_state()
        if state.configured_path == DEFAULT_SERVE_PATH and state.configured_port == port:
            logger.info("Tailscale serve already proxies to port %s", port)
            return ReconcileStatus.ALREADY_CONFIGURED

        if state.is_configured:
            logger.info(
                "Tailscale serve proxies %s to port %s; replacing with port %s",
                state.configured_path,
                state.configured_port,
                port,
            )
        # Nothing to reset is fine.
        self.disable()

        try:
            completed = self._run(*self.serve_command(port))
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ReconcileError(f"Failed to setup Tailscale serve: {e}") from e
        if completed.returncode != 0:
            detail = (completed.stderr or completed.stdout or "").strip()
            raise ReconcileError(f"Failed to setup Tailscale serve: {detail or completed.returncode}")

        logger.info("Tailscale serve configured: https port %s -> http://127.0.0.1:%s", port, port)
        return ReconcileStatus.CONFIGURED
