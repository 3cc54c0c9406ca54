"""Tool endpoint contract shared by every peer.

An endpoint declares its catalog as EndpointTool entries (descriptor, live
handler, fallback builder). Dispatch, argument validation and the
upstream-failure fallback policy live here so that all four peers behave the
same way at the protocol boundary.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Sequence

import httpx

from ..errors import InvalidArguments, UnknownTool, UpstreamFailure
from ..settings import UpstreamSettings
from .schema import (
    MOCK_SOURCE,
    PeerId,
    ToolDescriptor,
    ToolRequest,
    ToolResult,
    error_result,
    text_result,
)
from .validation import validate_arguments

logger = logging.getLogger(__name__)

LiveHandler = Callable[[Mapping[str, Any]], Awaitable[Mapping[str, Any]]]
FallbackBuilder = Callable[[Mapping[str, Any]], Mapping[str, Any]]


@dataclass(frozen=True)
class EndpointTool:
    """Declarative definition of one tool exposed by an endpoint."""

    descriptor: ToolDescriptor
    handler: LiveHandler
    fallback: FallbackBuilder

    @property
    def name(self) -> str:
        return self.descriptor.name


class MethodNotFound(Exception):
    """Raised by ToolEndpoint.handle for methods outside the wire contract."""


class ToolEndpoint(ABC):
    """Capability provider bound to one external system."""

    peer: PeerId
    server_name: str
    mock_note: str = "Mock data - upstream API unavailable"

    def __init__(
        self,
        *,
        settings: UpstreamSettings | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or UpstreamSettings.from_env()
        self.http_transport = http_transport
        self._tools: dict[str, EndpointTool] = {}
        for tool in self.build_tools():
            if tool.name in self._tools:
                raise ValueError(f"duplicate tool name {tool.name}")
            self._tools[tool.name] = tool

    @abstractmethod
    def build_tools(self) -> Sequence[EndpointTool]:
        """Return the static tool catalog for this endpoint."""

    def list_tools(self) -> list[ToolDescriptor]:
        return [tool.descriptor for tool in self._tools.values()]

    def _reject(self, name: str, arguments: Mapping[str, Any]) -> ToolResult | None:
        """Return an isError result for unknown tools or invalid arguments."""
        tool = self._tools.get(name)
        if tool is None:
            exc = UnknownTool(name, peer=self.peer.value)
            return error_result(json.dumps({"error": "unknown_tool", "message": exc.message}))
        try:
            validate_arguments(
                name, arguments, tool.descriptor.input_schema, peer=self.peer.value
            )
        except InvalidArguments as exc:
            return error_result(
                json.dumps(
                    {
                        "error": "invalid_arguments",
                        "message": exc.message,
                        "problems": exc.problems,
                    }
                )
            )
        return None

    async def call_tool(self, name: str, arguments: Mapping[str, Any] | None = None) -> ToolResult:
        """Execute a tool and always return a well-formed envelope."""
        arguments = dict(arguments or {})
        rejected = self._reject(name, arguments)
        if rejected is not None:
            return rejected
        tool = self._tools[name]
        try:
            payload = await tool.handler(arguments)
        except UpstreamFailure as exc:
            logger.warning(
                "upstream failure; serving fallback tool=%s reason=%s",
                name,
                exc.message,
                extra={"peer": self.peer.value},
            )
            return self.fallback_result(name, arguments)
        except (TypeError, AttributeError, KeyError, ValueError) as exc:
            # A 200 whose body does not have the documented shape.
            logger.warning(
                "unexpected upstream response; serving fallback tool=%s reason=%s",
                name,
                type(exc).__name__,
                extra={"peer": self.peer.value},
            )
            return self.fallback_result(name, arguments)
        except Exception:
            logger.exception(
                "tool execution failed tool=%s", name, extra={"peer": self.peer.value}
            )
            return error_result(f"Error executing {name}")
        return text_result(dict(payload))

    def fallback_result(self, name: str, arguments: Mapping[str, Any] | None = None) -> ToolResult:
        """Build the canned substitute for a tool, tagged with mock provenance."""
        arguments = dict(arguments or {})
        rejected = self._reject(name, arguments)
        if rejected is not None:
            return rejected
        payload = dict(self._tools[name].fallback(arguments))
        payload.setdefault("note", self.mock_note)
        payload["source"] = MOCK_SOURCE
        return text_result(payload)

    async def ping(self) -> dict[str, str]:
        return {"status": "ok"}

    async def handle(self, request: ToolRequest) -> dict[str, Any]:
        """Answer one wire request; the return value is the JSON-RPC result."""
        if request.method == "tools/list":
            return {"tools": [descriptor.to_wire() for descriptor in self.list_tools()]}
        if request.method == "ping":
            return await self.ping()
        if request.method == "tools/call":
            name = request.tool_name
            if not name:
                return error_result("tools/call requires params.name").to_wire()
            result = await self.call_tool(name, request.arguments)
            return result.to_wire()
        raise MethodNotFound(request.method)
