"""Tests for environment-driven settings and startup checks."""

import logging
import sys

import pytest

from fieldops.main import _PeerFilter
from fieldops.mcp.schema import PeerId
from fieldops.settings import PeerServerConfig, Settings, get_settings, reset_settings
from fieldops.startup_checks import run_startup_checks


class TestPeerServerConfig:
    def test_builtin(self):
        config = PeerServerConfig.parse(PeerId.EMAIL, " Builtin ")
        assert config.kind == "builtin"
        assert config.command == ()

    def test_stdio_runs_bundled_endpoint(self):
        config = PeerServerConfig.parse(PeerId.MESSAGING, "stdio")
        assert config.kind == "stdio"
        assert config.command == (sys.executable, "-m", "fieldops.mcp.stdio_server", "messaging")

    def test_custom_command_is_shell_split(self):
        config = PeerServerConfig.parse(PeerId.ACCOUNTING, "node 'servers/qb server.js' --verbose")
        assert config.kind == "command"
        assert config.command == ("node", "servers/qb server.js", "--verbose")


class TestSettingsFromEnv:
    def test_defaults(self):
        settings = Settings.from_env()
        assert dict(settings.integrations.servers) == {}
        assert settings.integrations.request_timeout_seconds == 10.0
        assert settings.integrations.context_timeout_seconds == 15.0
        assert settings.integrations.force_mock_data is False
        assert settings.assistant.enabled is False
        assert settings.upstream.housecall_pro_base_url == "https://api.housecallpro.com/v1"

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("MCP_SCHEDULING_SERVER", "builtin")
        monkeypatch.setenv("MCP_EMAIL_SERVER", "stdio")
        monkeypatch.setenv("MCP_REQUEST_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("CONTEXT_TIMEOUT_SECONDS", "4")
        monkeypatch.setenv("FORCE_MOCK_DATA", "yes")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setenv("QUICKBOOKS_SANDBOX", "true")
        settings = Settings.from_env()
        assert set(settings.integrations.servers) == {PeerId.SCHEDULING, PeerId.EMAIL}
        assert settings.integrations.request_timeout_seconds == 2.5
        assert settings.integrations.context_timeout_seconds == 4.0
        assert settings.integrations.force_mock_data is True
        assert settings.assistant.enabled is True
        assert settings.upstream.quickbooks_base_url == "https://sandbox-quickbooks.api.intuit.com"

    def test_malformed_numbers_use_defaults(self, monkeypatch):
        monkeypatch.setenv("MCP_REQUEST_TIMEOUT_SECONDS", "soon")
        assert Settings.from_env().integrations.request_timeout_seconds == 10.0

    def test_get_settings_is_cached_until_reset(self, monkeypatch):
        first = get_settings()
        assert get_settings() is first
        reset_settings()
        assert get_settings() is not first


class TestStartupChecks:
    def test_skipped_by_flag(self, monkeypatch):
        monkeypatch.setenv("MCP_REQUEST_TIMEOUT_SECONDS", "-1")
        run_startup_checks()

    def test_rejects_negative_timeout(self, monkeypatch):
        monkeypatch.delenv("SKIP_STARTUP_CHECKS")
        monkeypatch.setenv("MCP_REQUEST_TIMEOUT_SECONDS", "-1")
        with pytest.raises(RuntimeError, match="non-negative"):
            run_startup_checks()

    def test_rejects_non_numeric(self, monkeypatch):
        monkeypatch.delenv("SKIP_STARTUP_CHECKS")
        monkeypatch.setenv("CONTEXT_TIMEOUT_SECONDS", "fast")
        with pytest.raises(RuntimeError, match="must be numeric"):
            run_startup_checks()

    def test_rejects_missing_command(self, monkeypatch):
        monkeypatch.delenv("SKIP_STARTUP_CHECKS")
        monkeypatch.setenv("MCP_ACCOUNTING_SERVER", "definitely-not-a-real-binary-xyz --stdio")
        with pytest.raises(RuntimeError, match="command not found"):
            run_startup_checks(Settings.from_env())

    def test_passes_with_builtin_peers(self, monkeypatch, caplog):
        monkeypatch.delenv("SKIP_STARTUP_CHECKS")
        monkeypatch.setenv("MCP_SCHEDULING_SERVER", "builtin")
        with caplog.at_level(logging.INFO, logger="fieldops.startup_checks"):
            run_startup_checks(Settings.from_env())
        assert "Startup checks passed." in caplog.text
        assert "OPENAI_API_KEY missing" in caplog.text


class TestLogging:
    def test_peer_filter_defaults_missing_peer(self):
        record = logging.LogRecord("fieldops", logging.INFO, __file__, 1, "hello", None, None)
        assert _PeerFilter().filter(record) is True
        assert record.peer == "-"

    def test_peer_filter_keeps_existing_peer(self):
        record = logging.LogRecord("fieldops", logging.INFO, __file__, 1, "hello", None, None)
        record.peer = "email"
        _PeerFilter().filter(record)
        assert record.peer == "email"
