"""Shared tool-protocol models and payload helpers."""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field

from ..errors import ParseFailure

MOCK_SOURCE = "mock"
LIVE_SOURCE = "live"


class PeerId(str, Enum):
    """Known integration peers, one tool endpoint each."""

    SCHEDULING = "scheduling"
    ACCOUNTING = "accounting"
    EMAIL = "email"
    MESSAGING = "messaging"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def integration_id(self) -> str:
        """Identifier the dashboard uses for this integration."""
        return _INTEGRATION_IDS[self]

    @classmethod
    def resolve(cls, value: "PeerId | str") -> "PeerId":
        """Accept a PeerId, its value, or its dashboard integration id."""
        if isinstance(value, cls):
            return value
        for peer in cls:
            if value in (peer.value, peer.integration_id):
                return peer
        raise ValueError(f"unknown peer {value!r}")


_INTEGRATION_IDS = {
    PeerId.SCHEDULING: "housecall-pro",
    PeerId.ACCOUNTING: "quickbooks",
    PeerId.EMAIL: "gmail",
    PeerId.MESSAGING: "sms",
}

_DISPLAY_NAMES = {
    PeerId.SCHEDULING: "HouseCall Pro",
    PeerId.ACCOUNTING: "QuickBooks",
    PeerId.EMAIL: "Gmail",
    PeerId.MESSAGING: "SMS Service",
}


class ToolDescriptor(BaseModel):
    """Structured metadata describing a tool exposed by an endpoint."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    name: str
    description: str
    input_schema: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        alias="inputSchema",
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class ContentBlock(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["text"] = "text"
    text: str


class ToolResult(BaseModel):
    """Uniform envelope returned by every tool call regardless of peer."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    content: list[ContentBlock] = Field(default_factory=list)
    is_error: bool = Field(default=False, alias="isError")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)

    @property
    def text(self) -> str:
        return "".join(block.text for block in self.content)


RequestMethod = Literal["tools/list", "tools/call", "ping"]


class ToolRequest(BaseModel):
    """Request envelope constructed by the client and consumed by endpoints."""

    model_config = ConfigDict(extra="forbid")

    method: RequestMethod
    params: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def call(cls, name: str, arguments: Mapping[str, Any] | None = None) -> "ToolRequest":
        return cls(
            method="tools/call",
            params={"name": name, "arguments": dict(arguments or {})},
        )

    @classmethod
    def list_tools(cls) -> "ToolRequest":
        return cls(method="tools/list")

    @classmethod
    def ping(cls) -> "ToolRequest":
        return cls(method="ping")

    @property
    def tool_name(self) -> str | None:
        name = self.params.get("name")
        return name if isinstance(name, str) else None

    @property
    def arguments(self) -> dict[str, Any]:
        arguments = self.params.get("arguments")
        return dict(arguments) if isinstance(arguments, Mapping) else {}


class IntegrationStatus(BaseModel):
    """Transient per-peer health derived by pinging live sessions."""

    status: Literal["connected", "disconnected", "error"]
    last_sync: str | None = None
    error: str | None = None

    @classmethod
    def disconnected(cls) -> "IntegrationStatus":
        return cls(status="disconnected")


def text_result(payload: Any) -> ToolResult:
    """Wrap a JSON-serialisable payload in a single text content block."""
    return ToolResult(content=[ContentBlock(text=json.dumps(payload, default=str))])


def error_result(message: str) -> ToolResult:
    return ToolResult(content=[ContentBlock(text=message)], is_error=True)


def parse_payload(result: ToolResult) -> dict[str, Any]:
    """Return the JSON object carried by a result.

    Raises ParseFailure for isError results, empty content and anything that
    is not a JSON object, so callers can handle all three the same way.
    """

    if result.is_error:
        raise ParseFailure(result.text or "tool returned an error")
    if not result.content:
        raise ParseFailure("tool returned no content")
    try:
        payload = json.loads(result.content[0].text)
    except (TypeError, ValueError) as exc:
        raise ParseFailure(f"tool content is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ParseFailure("tool content is not a JSON object")
    return payload


REJECTION_CODES = frozenset({"unknown_tool", "invalid_arguments"})


def tool_rejection(result: ToolResult) -> str | None:
    """Message of an unknown_tool/invalid_arguments result; None for anything else."""
    if not result.is_error:
        return None
    try:
        payload = json.loads(result.text)
    except ValueError:
        return None
    if isinstance(payload, dict) and payload.get("error") in REJECTION_CODES:
        return str(payload.get("message") or payload["error"])
    return None


def payload_provenance(payload: Mapping[str, Any]) -> str:
    """Return "mock" when the payload carries a fallback marker, else "live"."""
    if payload.get("source") == MOCK_SOURCE or "note" in payload:
        return MOCK_SOURCE
    return LIVE_SOURCE


__all__ = [
    "ContentBlock",
    "IntegrationStatus",
    "LIVE_SOURCE",
    "MOCK_SOURCE",
    "PeerId",
    "ToolDescriptor",
    "ToolRequest",
    "ToolResult",
    "error_result",
    "parse_payload",
    "payload_provenance",
    "text_result",
    "tool_rejection",
]
