"""Channels that carry tool requests to a single peer.

Two implementations share one contract: ``connect()`` then ``request()``
any number of times, then ``close()``. Calling ``request()`` on a transport
that is not connected raises TransportError("not connected").

Concurrency: both transports accept concurrent in-flight requests. The
in-process transport has no shared channel, and the stdio transport relies on
the MCP client session to match responses to request ids.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Mapping, Sequence

import anyio
import httpx
import mcp.types as types
from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp.shared.exceptions import McpError

from ..errors import TransportError, TransportTimeout
from .schema import PeerId, ToolRequest
from .server import MethodNotFound, ToolEndpoint

logger = logging.getLogger(__name__)

CLOSE_GRACE_SECONDS = 5.0


def _round_trip(value: Any) -> Any:
    return json.loads(json.dumps(value, default=str))


class Transport(ABC):
    """Point-to-point request/response channel for one peer."""

    def __init__(self, peer: PeerId, *, timeout: float = 10.0):
        self.peer = peer
        self.timeout = timeout

    @property
    @abstractmethod
    def connected(self) -> bool:
        """True once connect() has completed and until close()."""

    @abstractmethod
    async def connect(self) -> None:
        """Establish the channel."""

    @abstractmethod
    async def request(
        self, request: ToolRequest, *, timeout: float | None = None
    ) -> dict[str, Any]:
        """Send one request and return the wire result object."""

    @abstractmethod
    async def close(self) -> None:
        """Release the channel."""

    def _ensure_connected(self) -> None:
        if not self.connected:
            raise TransportError("not connected", peer=self.peer.value)

    def _timeout_error(self, request: ToolRequest, timeout: float) -> TransportTimeout:
        return TransportTimeout(
            f"{self.peer.value} did not answer {request.method} within {timeout:g}s",
            peer=self.peer.value,
            details={"method": request.method, "timeout": timeout},
        )


class InProcessTransport(Transport):
    """Dispatch straight into an endpoint living in this process.

    Requests and results are still round-tripped through JSON so the
    endpoint sees exactly what it would receive over a pipe.
    """

    def __init__(self, endpoint: ToolEndpoint, *, timeout: float = 10.0):
        super().__init__(endpoint.peer, timeout=timeout)
        self.endpoint = endpoint
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True

    async def request(
        self, request: ToolRequest, *, timeout: float | None = None
    ) -> dict[str, Any]:
        self._ensure_connected()
        limit = timeout or self.timeout
        wire = _round_trip(request.model_dump())
        try:
            result = await asyncio.wait_for(
                self.endpoint.handle(ToolRequest.model_validate(wire)), limit
            )
        except asyncio.TimeoutError as exc:
            raise self._timeout_error(request, limit) from exc
        except MethodNotFound as exc:
            raise TransportError(
                f"method not found: {exc}", peer=self.peer.value
            ) from exc
        return _round_trip(result)

    async def close(self) -> None:
        self._connected = False


class StdioTransport(Transport):
    """MCP client session over a child process's stdin/stdout.

    ``stdio_client`` and ``ClientSession`` are anyio context managers that
    must be exited by the task that entered them, so a single owner task
    holds both open from ``connect()`` until ``close()``.
    """

    def __init__(
        self,
        peer: PeerId,
        command: Sequence[str],
        *,
        timeout: float = 10.0,
        env: Mapping[str, str] | None = None,
    ):
        super().__init__(peer, timeout=timeout)
        if not command:
            raise ValueError("stdio transport requires a command")
        self.command = list(command)
        # The SDK only forwards a minimal environment unless told otherwise.
        self.env = dict(env) if env is not None else dict(os.environ)
        self._session: ClientSession | None = None
        self._owner: asyncio.Task | None = None
        self._closing: asyncio.Event | None = None

    @property
    def connected(self) -> bool:
        return self._session is not None and self._owner is not None and not self._owner.done()

    def server_parameters(self) -> StdioServerParameters:
        return StdioServerParameters(
            command=self.command[0], args=self.command[1:], env=self.env
        )

    async def connect(self) -> None:
        ready: asyncio.Future = asyncio.get_running_loop().create_future()
        self._closing = asyncio.Event()
        self._owner = asyncio.create_task(self._hold_session(ready))
        try:
            await asyncio.wait_for(asyncio.shield(ready), self.timeout)
        except asyncio.TimeoutError as exc:
            await self.close()
            raise TransportError(
                f"failed to start {self.command[0]}: no initialize response within {self.timeout:g}s",
                peer=self.peer.value,
                details={"command": self.command},
            ) from exc
        except Exception as exc:
            await self.close()
            raise TransportError(
                f"failed to start {self.command[0]}: {exc}",
                peer=self.peer.value,
                details={"command": self.command},
            ) from exc
        logger.info(
            "stdio transport connected command=%s", self.command[0], extra={"peer": self.peer.value}
        )

    async def _hold_session(self, ready: asyncio.Future) -> None:
        assert self._closing is not None
        try:
            async with stdio_client(self.server_parameters()) as (read_stream, write_stream):
                async with ClientSession(
                    read_stream,
                    write_stream,
                    read_timeout_seconds=timedelta(seconds=self.timeout),
                ) as session:
                    await session.initialize()
                    self._session = session
                    ready.set_result(None)
                    await self._closing.wait()
        except Exception as exc:
            if not ready.done():
                ready.set_exception(exc)
            else:
                logger.warning("stdio session ended: %s", exc, extra={"peer": self.peer.value})
        finally:
            self._session = None
            if not ready.done():
                ready.cancel()

    async def request(
        self, request: ToolRequest, *, timeout: float | None = None
    ) -> dict[str, Any]:
        self._ensure_connected()
        assert self._session is not None
        limit = timeout or self.timeout
        try:
            return await asyncio.wait_for(self._send(self._session, request, limit), limit)
        except asyncio.TimeoutError as exc:
            raise self._timeout_error(request, limit) from exc
        except McpError as exc:
            if exc.error.code == httpx.codes.REQUEST_TIMEOUT:
                raise self._timeout_error(request, limit) from exc
            raise TransportError(
                f"{self.peer.value} rejected {request.method}: {exc.error.message}",
                peer=self.peer.value,
                details={"code": exc.error.code},
            ) from exc
        except (anyio.ClosedResourceError, anyio.BrokenResourceError, anyio.EndOfStream) as exc:
            raise TransportError(
                f"channel to {self.peer.value} is broken", peer=self.peer.value
            ) from exc

    async def _send(
        self, session: ClientSession, request: ToolRequest, limit: float
    ) -> dict[str, Any]:
        if request.method == "ping":
            await session.send_ping()
            return {"status": "ok"}
        if request.method == "tools/list":
            listing = await session.list_tools()
            return {
                "tools": [
                    {
                        "name": tool.name,
                        "description": tool.description or "",
                        "inputSchema": tool.inputSchema,
                    }
                    for tool in listing.tools
                ]
            }
        result = await session.call_tool(
            request.tool_name or "",
            request.arguments,
            read_timeout_seconds=timedelta(seconds=limit),
        )
        return {
            "content": [
                {"type": "text", "text": block.text}
                for block in result.content
                if isinstance(block, types.TextContent)
            ],
            "isError": bool(result.isError),
        }

    async def close(self) -> None:
        owner, self._owner = self._owner, None
        self._session = None
        if owner is None:
            return
        if self._closing is not None:
            self._closing.set()
        try:
            await asyncio.wait_for(owner, CLOSE_GRACE_SECONDS)
        except asyncio.TimeoutError:
            logger.warning(
                "stdio peer did not exit within %ss; cancelled",
                CLOSE_GRACE_SECONDS,
                extra={"peer": self.peer.value},
            )
