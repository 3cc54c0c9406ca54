"""Serve one bundled endpoint over stdin/stdout with the MCP SDK.

Usage: ``python -m fieldops.mcp.stdio_server <scheduling|accounting|email|messaging>``

stdout carries only protocol frames; every log line goes to stderr.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any, Sequence

import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server

from ..env import load_dotenv_if_present
from ..settings import UpstreamSettings
from .bootstrap import create_endpoint
from .schema import PeerId
from .server import ToolEndpoint

logger = logging.getLogger(__name__)


class ToolResultError(Exception):
    """Carries an isError envelope's text; the SDK turns it into isError=true."""


def build_server(endpoint: ToolEndpoint) -> Server:
    """Expose an endpoint's catalog and dispatch through an MCP server."""
    server = Server(endpoint.server_name)

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        return [
            types.Tool(
                name=descriptor.name,
                description=descriptor.description,
                inputSchema=descriptor.input_schema,
            )
            for descriptor in endpoint.list_tools()
        ]

    # Arguments are validated by the endpoint so rejections keep their JSON shape.
    @server.call_tool(validate_input=False)
    async def call_tool(name: str, arguments: dict[str, Any] | None) -> list[types.TextContent]:
        result = await endpoint.call_tool(name, arguments or {})
        if result.is_error:
            raise ToolResultError(result.text)
        return [types.TextContent(type="text", text=block.text) for block in result.content]

    return server


async def serve(endpoint: ToolEndpoint) -> None:
    server = build_server(endpoint)
    logger.info("%s running on stdio", endpoint.server_name, extra={"peer": endpoint.peer.value})
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main(argv: Sequence[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=logging.INFO,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    choices = ", ".join(peer.value for peer in PeerId)
    if len(args) != 1:
        print(f"usage: python -m fieldops.mcp.stdio_server <{choices}>", file=sys.stderr)
        return 2
    try:
        peer = PeerId(args[0])
    except ValueError:
        print(f"unknown peer {args[0]!r}; expected one of {choices}", file=sys.stderr)
        return 2
    load_dotenv_if_present()
    endpoint = create_endpoint(peer, settings=UpstreamSettings.from_env())
    asyncio.run(serve(endpoint))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
