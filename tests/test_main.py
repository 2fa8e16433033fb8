"""
Tests for application startup: banner, Tailscale startup check, entry point flags.

The Tailscale check must never stop the server, so these tests drive it with
a missing binary and a failing serve command.
"""

import logging
import time

from fastapi.testclient import TestClient

import run
from llm_server.main import app as default_app
from llm_server.main import check_exposure, create_app, print_banner
from llm_server.services.translation_service import LibreTranslateBackend
from llm_server.services.tailscale_service import ReconcileStatus, TailscaleInfo, TailscaleService
from tests.test_tailscale_service import FakeTailscale, failed, serve_status

SERVE_8080 = ("serve", "--bg", "--https=8080", "http://127.0.0.1:8080")


class TestCheckExposure:
    def test_unavailable_returns_none(self, caplog):
        service = TailscaleService(runner=FakeTailscale(missing=True))

        with caplog.at_level(logging.WARNING, logger="LLM-Server"):
            assert check_exposure(service, 8080, auto_setup=True) is None

        assert "not installed" in caplog.text

    def test_auto_setup_reconciles(self):
        runner = FakeTailscale({("ip", "-4"): "100.64.0.1", ("status", "--json"): "{}"})

        info = check_exposure(TailscaleService(runner=runner), 8080, auto_setup=True)

        assert SERVE_8080 in runner.calls
        assert info.ip == "100.64.0.1"

    def test_reconcile_error_is_logged_not_raised(self, caplog):
        runner = FakeTailscale({SERVE_8080: failed("access denied")})

        with caplog.at_level(logging.ERROR, logger="LLM-Server"):
            check_exposure(TailscaleService(runner=runner), 8080, auto_setup=True)

        assert "access denied" in caplog.text

    def test_without_auto_setup_only_hints(self, caplog):
        runner = FakeTailscale()

        with caplog.at_level(logging.WARNING, logger="LLM-Server"):
            check_exposure(TailscaleService(runner=runner), 8080, auto_setup=False)

        assert SERVE_8080 not in runner.calls
        assert "--setup-tailscale" in caplog.text

    def test_configured_port_gives_no_hint(self, caplog):
        runner = FakeTailscale({("serve", "status", "--json"): serve_status(8080)})

        with caplog.at_level(logging.WARNING, logger="LLM-Server"):
            check_exposure(TailscaleService(runner=runner), 8080, auto_setup=False)

        assert "needs configuration" not in caplog.text

    def test_diagnostics_are_logged(self, caplog):
        runner = FakeTailscale(
            {
                ("ip", "-4"): "100.64.0.1",
                ("status", "--json"): '{"Self": {"DNSName": "laptop.ts.net."}}',
                ("serve", "status", "--json"): serve_status(8080),
            }
        )

        with caplog.at_level(logging.INFO, logger="LLM-Server"):
            info = check_exposure(TailscaleService(runner=runner), 8080, auto_setup=False)

        assert "ip=100.64.0.1 hostname=laptop.ts.net serve=/ -> http://127.0.0.1:8080" in caplog.text
        assert info == TailscaleInfo(ip="100.64.0.1", hostname="laptop.ts.net")


def test_server_starts_without_tailscale(claude_backend, session_store):
    app = create_app(
        backends=[claude_backend],
        session_store=session_store,
        tailscale=TailscaleService(runner=FakeTailscale(missing=True)),
        show_banner=False,
    )

    with TestClient(app) as client:
        assert client.get("/health").json() == {"status": "ok"}


def test_banner_lists_backend_urls(claude_backend, translate_backend, capsys):
    print_banner(51732, [claude_backend, translate_backend], TailscaleInfo(ip="100.64.0.1", hostname="laptop.ts.net"))

    out = capsys.readouterr().out
    assert "http://localhost:51732/claude/v1" in out
    assert "http://100.64.0.1:51732/libretranslate/v1" in out
    assert "https://laptop.ts.net:51732/claude/v1" in out
    assert "sonnet, opus" in out


class TestRunScript:
    def test_parse_args(self):
        args = run.parse_args(["--port", "9000", "--no-tailscale-check"])
        assert args.port == 9000
        assert args.no_tailscale_check is True
        assert args.setup_tailscale is False

    def test_setup_tailscale_exit_codes(self, monkeypatch):
        class StubService:
            status = ReconcileStatus.CONFIGURED

            def reconcile(self, port):
                return self.status

            def get_info(self):
                return TailscaleInfo(ip="100.64.0.1", hostname="laptop.ts.net")

        monkeypatch.setattr("llm_server.services.tailscale_service.TailscaleService", StubService)
        assert run.setup_tailscale(8080) == 0

        StubService.status = ReconcileStatus.UNAVAILABLE
        assert run.setup_tailscale(8080) == 1


class ExplodingTailscale(TailscaleService):
    def is_available(self) -> bool:
        raise RuntimeError("status output changed shape")


def test_unexpected_startup_check_error_is_logged(claude_backend, session_store, caplog):
    app = create_app(
        backends=[claude_backend],
        session_store=session_store,
        tailscale=ExplodingTailscale(runner=FakeTailscale()),
        show_banner=False,
    )

    with caplog.at_level(logging.ERROR, logger="LLM-Server"):
        with TestClient(app) as client:
            deadline = time.monotonic() + 5
            while "startup check failed" not in caplog.text and time.monotonic() < deadline:
                time.sleep(0.01)
            assert client.get("/health").status_code == 200

    assert "Tailscale startup check failed: status output changed shape" in caplog.text


def test_importing_default_app_opens_no_http_client():
    translators = [b for b in default_app.state.backends if isinstance(b, LibreTranslateBackend)]
    assert translators
    assert all(backend._client is None for backend in translators)
