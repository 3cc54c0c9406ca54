"""Pytest configuration and fixtures for the fieldops tests."""

import pytest

from fieldops.settings import (
    AssistantSettings,
    IntegrationSettings,
    Settings,
    UpstreamSettings,
    reset_settings,
)
from tests.fakes import SCRIPTED_RESPONSES, ScriptedClient, builtin_servers

ISOLATED_ENV_VARS = (
    "MCP_SCHEDULING_SERVER",
    "MCP_ACCOUNTING_SERVER",
    "MCP_EMAIL_SERVER",
    "MCP_MESSAGING_SERVER",
    "MCP_REQUEST_TIMEOUT_SECONDS",
    "CONTEXT_TIMEOUT_SECONDS",
    "UPSTREAM_TIMEOUT_SECONDS",
    "HOUSECALL_PRO_BASE_URL",
    "QUICKBOOKS_SANDBOX",
    "HOUSECALL_PRO_API_KEY",
    "QUICKBOOKS_ACCESS_TOKEN",
    "QUICKBOOKS_COMPANY_ID",
    "GMAIL_ACCESS_TOKEN",
    "TWILIO_ACCOUNT_SID",
    "TWILIO_AUTH_TOKEN",
    "TWILIO_PHONE_NUMBER",
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "ASSISTANT_MODEL",
    "ASSISTANT_MAX_TOKENS",
    "ASSISTANT_TEMPERATURE",
    "FORCE_MOCK_DATA",
)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Keep real credentials out of tests and drop cached settings afterwards."""
    for name in ISOLATED_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SKIP_STARTUP_CHECKS", "1")
    yield
    reset_settings()


@pytest.fixture
def offline_settings() -> Settings:
    """Every peer builtin, no credentials: all live calls fall back to mock data."""
    return Settings(
        integrations=IntegrationSettings(servers=builtin_servers()),
        upstream=UpstreamSettings(),
        assistant=AssistantSettings(),
    )


@pytest.fixture
def scripted_client() -> ScriptedClient:
    return ScriptedClient(SCRIPTED_RESPONSES)
