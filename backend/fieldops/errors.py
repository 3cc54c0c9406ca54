"""Integration error taxonomy shared by the client, transports and endpoints."""

from __future__ import annotations

from typing import Any, Mapping, Sequence


class IntegrationError(Exception):
    """Base class for integration-layer failures."""

    def __init__(
        self,
        message: str,
        *,
        peer: str | None = None,
        details: Mapping[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.peer = peer
        self.details = dict(details or {})


class PeerUnavailable(IntegrationError):
    """Raised when a peer was never registered or its transport is down."""


class TransportError(IntegrationError):
    """Raised on connect/send/close failures at the channel level."""


class TransportTimeout(TransportError):
    """Raised when a peer does not answer within the per-call timeout."""


class UpstreamFailure(IntegrationError):
    """Raised inside an endpoint when the external system rejects or errors a call.

    Endpoints convert this into a fallback payload; it never crosses the
    endpoint boundary.
    """


class ToolCallError(IntegrationError):
    """Caller errors against a known endpoint, reported as isError results."""


class UnknownTool(ToolCallError):
    def __init__(self, tool_name: str, *, peer: str | None = None):
        super().__init__(f"Unknown tool: {tool_name}", peer=peer)
        self.tool_name = tool_name


class InvalidArguments(ToolCallError):
    """Raised when arguments violate the tool's input schema."""

    def __init__(
        self,
        tool_name: str,
        problems: Sequence[str],
        *,
        peer: str | None = None,
    ):
        self.tool_name = tool_name
        self.problems = list(problems)
        summary = "; ".join(self.problems) or "invalid arguments"
        super().__init__(
            f"Invalid arguments for {tool_name}: {summary}",
            peer=peer,
            details={"problems": self.problems},
        )


class ParseFailure(IntegrationError):
    """Raised when a tool result cannot be read as a JSON payload."""


__all__ = [
    "IntegrationError",
    "InvalidArguments",
    "ParseFailure",
    "PeerUnavailable",
    "ToolCallError",
    "TransportError",
    "TransportTimeout",
    "UnknownTool",
    "UpstreamFailure",
]
