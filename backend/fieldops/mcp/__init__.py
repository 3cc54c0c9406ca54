"""Tool protocol layer: wire models, endpoints, transports and the integration client."""

from .schema import (
    IntegrationStatus,
    PeerId,
    ToolDescriptor,
    ToolRequest,
    ToolResult,
    parse_payload,
    payload_provenance,
)

__all__ = [
    "IntegrationStatus",
    "PeerId",
    "ToolDescriptor",
    "ToolRequest",
    "ToolResult",
    "parse_payload",
    "payload_provenance",
]
