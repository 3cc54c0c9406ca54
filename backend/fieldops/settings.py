"""Application-wide settings for integrations, upstream credentials and the assistant."""

from __future__ import annotations

import os
import shlex
import sys
from dataclasses import dataclass, field
from typing import Literal, Mapping

from .mcp.schema import PeerId


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    return normalized in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_str(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip()
    return normalized or default


TransportKind = Literal["builtin", "stdio", "command"]

SERVER_ENV_VARS: dict[PeerId, str] = {
    PeerId.SCHEDULING: "MCP_SCHEDULING_SERVER",
    PeerId.ACCOUNTING: "MCP_ACCOUNTING_SERVER",
    PeerId.EMAIL: "MCP_EMAIL_SERVER",
    PeerId.MESSAGING: "MCP_MESSAGING_SERVER",
}


@dataclass(frozen=True)
class PeerServerConfig:
    """How to reach one peer's tool endpoint."""

    peer: PeerId
    kind: TransportKind
    command: tuple[str, ...] = ()

    @classmethod
    def parse(cls, peer: PeerId, raw: str) -> "PeerServerConfig":
        value = raw.strip()
        if value.lower() == "builtin":
            return cls(peer=peer, kind="builtin")
        if value.lower() == "stdio":
            return cls(
                peer=peer,
                kind="stdio",
                command=(sys.executable, "-m", "fieldops.mcp.stdio_server", peer.value),
            )
        return cls(peer=peer, kind="command", command=tuple(shlex.split(value)))


@dataclass(frozen=True)
class IntegrationSettings:
    """Which peers are enabled and how the client talks to them."""

    servers: Mapping[PeerId, PeerServerConfig] = field(default_factory=dict)
    request_timeout_seconds: float = 10.0
    context_timeout_seconds: float = 15.0
    force_mock_data: bool = False

    @classmethod
    def from_env(cls) -> "IntegrationSettings":
        servers: dict[PeerId, PeerServerConfig] = {}
        for peer, env_var in SERVER_ENV_VARS.items():
            raw = _env_str(env_var)
            if raw:
                servers[peer] = PeerServerConfig.parse(peer, raw)
        return cls(
            servers=servers,
            request_timeout_seconds=max(0.1, _env_float("MCP_REQUEST_TIMEOUT_SECONDS", 10.0)),
            context_timeout_seconds=max(0.1, _env_float("CONTEXT_TIMEOUT_SECONDS", 15.0)),
            force_mock_data=_env_bool("FORCE_MOCK_DATA", False),
        )


@dataclass(frozen=True)
class UpstreamSettings:
    """Credentials and endpoints for the external systems behind each peer."""

    housecall_pro_api_key: str | None = None
    housecall_pro_base_url: str = "https://api.housecallpro.com/v1"
    quickbooks_access_token: str | None = None
    quickbooks_company_id: str | None = None
    quickbooks_sandbox: bool = False
    gmail_access_token: str | None = None
    gmail_user_id: str = "me"
    twilio_account_sid: str | None = None
    twilio_auth_token: str | None = None
    twilio_phone_number: str | None = None
    timeout_seconds: float = 10.0

    @classmethod
    def from_env(cls) -> "UpstreamSettings":
        return cls(
            housecall_pro_api_key=_env_str("HOUSECALL_PRO_API_KEY"),
            housecall_pro_base_url=_env_str(
                "HOUSECALL_PRO_BASE_URL", "https://api.housecallpro.com/v1"
            )
            or "https://api.housecallpro.com/v1",
            quickbooks_access_token=_env_str("QUICKBOOKS_ACCESS_TOKEN"),
            quickbooks_company_id=_env_str("QUICKBOOKS_COMPANY_ID"),
            quickbooks_sandbox=_env_bool("QUICKBOOKS_SANDBOX", False),
            gmail_access_token=_env_str("GMAIL_ACCESS_TOKEN"),
            gmail_user_id=_env_str("GMAIL_USER_ID", "me") or "me",
            twilio_account_sid=_env_str("TWILIO_ACCOUNT_SID"),
            twilio_auth_token=_env_str("TWILIO_AUTH_TOKEN"),
            twilio_phone_number=_env_str("TWILIO_PHONE_NUMBER"),
            timeout_seconds=max(0.1, _env_float("UPSTREAM_TIMEOUT_SECONDS", 10.0)),
        )

    @property
    def quickbooks_base_url(self) -> str:
        if self.quickbooks_sandbox:
            return "https://sandbox-quickbooks.api.intuit.com"
        return "https://quickbooks.api.intuit.com"


@dataclass(frozen=True)
class AssistantSettings:
    """Model configuration for the conversational assistant."""

    api_key: str | None = None
    base_url: str | None = None
    model: str = "gpt-4o-mini"
    max_tokens: int = 1000
    temperature: float = 0.7

    @classmethod
    def from_env(cls) -> "AssistantSettings":
        return cls(
            api_key=_env_str("OPENAI_API_KEY"),
            base_url=_env_str("OPENAI_BASE_URL"),
            model=_env_str("ASSISTANT_MODEL", "gpt-4o-mini") or "gpt-4o-mini",
            max_tokens=max(1, _env_int("ASSISTANT_MAX_TOKENS", 1000)),
            temperature=_env_float("ASSISTANT_TEMPERATURE", 0.7),
        )

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


class Settings:
    """Container for application settings."""

    def __init__(
        self,
        *,
        integrations: IntegrationSettings,
        upstream: UpstreamSettings,
        assistant: AssistantSettings,
    ) -> None:
        self.integrations = integrations
        self.upstream = upstream
        self.assistant = assistant

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            integrations=IntegrationSettings.from_env(),
            upstream=UpstreamSettings.from_env(),
            assistant=AssistantSettings.from_env(),
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    """Return a cached Settings instance built from the current environment."""

    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS


def reset_settings() -> None:
    """Drop the cached Settings so the next call re-reads the environment."""

    global _SETTINGS
    _SETTINGS = None
