"""Integration client: the single call surface for every peer."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Mapping

from pydantic import ValidationError

from ..errors import PeerUnavailable, TransportError
from ..settings import IntegrationSettings, PeerServerConfig, UpstreamSettings
from .bootstrap import build_transport, create_endpoint
from .registry import PeerRegistry, PeerSession
from .schema import IntegrationStatus, PeerId, ToolDescriptor, ToolRequest, ToolResult
from .server import ToolEndpoint
from .transport import Transport

logger = logging.getLogger(__name__)

TransportFactory = Callable[..., Transport]


def _resolve(peer: PeerId | str) -> PeerId:
    try:
        return PeerId.resolve(peer)
    except ValueError as exc:
        raise PeerUnavailable(f"unknown peer {peer!r}", peer=str(peer)) from exc


class IntegrationClient:
    """Owns peer sessions and routes tool calls to them.

    ``initialize()`` and ``disconnect()`` must not run concurrently with each
    other; concurrent ``invoke()`` calls against an initialized client are
    safe.
    """

    def __init__(
        self,
        settings: IntegrationSettings,
        *,
        upstream: UpstreamSettings | None = None,
        registry: PeerRegistry | None = None,
        transport_factory: TransportFactory = build_transport,
    ):
        self.settings = settings
        self.upstream = upstream or UpstreamSettings()
        self.registry = registry or PeerRegistry()
        self._transport_factory = transport_factory
        self._initialized = False
        self._connect_errors: dict[PeerId, str] = {}
        self._fallback_endpoints: dict[PeerId, ToolEndpoint] = {}

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Connect every configured peer once; later calls are no-ops."""
        if self._initialized:
            return
        for peer in PeerId:
            config = self.settings.servers.get(peer)
            if config is None:
                logger.info("peer not configured; skipping", extra={"peer": peer.value})
                continue
            if peer in self.registry:
                continue
            await self._connect(peer, config)
        self._initialized = True

    async def _connect(self, peer: PeerId, config: PeerServerConfig) -> bool:
        transport = self._transport_factory(
            config, upstream=self.upstream, timeout=self.settings.request_timeout_seconds
        )
        try:
            await transport.connect()
        except TransportError as exc:
            self._connect_errors[peer] = exc.message
            logger.warning(
                "peer connect failed kind=%s error=%s",
                config.kind,
                exc.message,
                extra={"peer": peer.value},
            )
            return False
        self._connect_errors.pop(peer, None)
        self.registry.register(PeerSession(peer=peer, transport=transport, kind=config.kind))
        logger.info("peer registered kind=%s", config.kind, extra={"peer": peer.value})
        return True

    def is_registered(self, peer: PeerId | str) -> bool:
        return _resolve(peer) in self.registry

    def registered_peers(self) -> list[PeerId]:
        return self.registry.peers()

    def _session(self, peer: PeerId) -> PeerSession:
        session = self.registry.get(peer)
        if session is None:
            raise PeerUnavailable(f"{peer.display_name} is not configured", peer=peer.value)
        if not session.transport.connected:
            raise PeerUnavailable(f"{peer.display_name} is disconnected", peer=peer.value)
        return session

    async def _request(
        self, peer: PeerId, request: ToolRequest, timeout: float | None
    ) -> dict[str, Any]:
        session = self._session(peer)
        try:
            result = await session.transport.request(request, timeout=timeout)
        except TransportError as exc:
            logger.warning(
                "transport failure method=%s error=%s",
                request.method,
                exc.message,
                extra={"peer": peer.value},
            )
            raise
        session.touch()
        return result

    async def invoke(
        self,
        peer: PeerId | str,
        tool_name: str,
        arguments: Mapping[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> ToolResult:
        """Call a tool on a peer.

        Raises PeerUnavailable when the peer is not registered or is down and
        TransportError (including TransportTimeout) for channel failures.
        Tool-level failures come back inside the ToolResult.
        """
        peer = _resolve(peer)
        raw = await self._request(peer, ToolRequest.call(tool_name, arguments), timeout)
        try:
            return ToolResult.model_validate(raw)
        except ValidationError as exc:
            raise TransportError(
                f"{peer.value} returned a malformed tool result", peer=peer.value
            ) from exc

    async def invoke_with_fallback(
        self,
        peer: PeerId | str,
        tool_name: str,
        arguments: Mapping[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> ToolResult:
        """Like invoke(), but substitute the tool's canned payload when the peer is unreachable."""
        peer = _resolve(peer)
        try:
            return await self.invoke(peer, tool_name, arguments, timeout=timeout)
        except (PeerUnavailable, TransportError) as exc:
            logger.info(
                "serving fallback tool=%s reason=%s",
                tool_name,
                exc.message,
                extra={"peer": peer.value},
            )
            return self.fallback_result(peer, tool_name, arguments)

    def fallback_result(
        self, peer: PeerId | str, tool_name: str, arguments: Mapping[str, Any] | None = None
    ) -> ToolResult:
        peer = _resolve(peer)
        endpoint = self._fallback_endpoints.get(peer)
        if endpoint is None:
            endpoint = create_endpoint(peer, settings=self.upstream)
            self._fallback_endpoints[peer] = endpoint
        return endpoint.fallback_result(tool_name, arguments)

    async def list_tools(self, peer: PeerId | str) -> list[ToolDescriptor]:
        peer = _resolve(peer)
        raw = await self._request(peer, ToolRequest.list_tools(), None)
        return [ToolDescriptor.model_validate(tool) for tool in raw.get("tools") or []]

    async def _ping(self, peer: PeerId) -> IntegrationStatus:
        session = self.registry.get(peer)
        if session is None:
            error = self._connect_errors.get(peer)
            if error is not None:
                return IntegrationStatus(status="error", error=error)
            return IntegrationStatus.disconnected()
        try:
            await self._request(peer, ToolRequest.ping(), None)
        except (PeerUnavailable, TransportError) as exc:
            return IntegrationStatus(status="error", last_sync=session.last_sync, error=exc.message)
        return IntegrationStatus(status="connected", last_sync=session.last_sync)

    async def get_status(self) -> dict[PeerId, IntegrationStatus]:
        """Ping every registered peer concurrently; unregistered peers are disconnected."""
        peers = list(PeerId)
        statuses = await asyncio.gather(*(self._ping(peer) for peer in peers))
        return dict(zip(peers, statuses))

    async def refresh(self, peer: PeerId | str) -> IntegrationStatus:
        """Reconnect a configured peer that is missing or down, then ping it."""
        peer = _resolve(peer)
        config = self.settings.servers.get(peer)
        session = self.registry.get(peer)
        if config is not None and (session is None or not session.transport.connected):
            if session is not None:
                self.registry.remove(peer)
                await self._close(session)
            await self._connect(peer, config)
        return await self._ping(peer)

    async def _close(self, session: PeerSession) -> bool:
        try:
            await session.transport.close()
        except Exception:
            logger.exception("failed to close transport", extra={"peer": session.peer.value})
            return False
        return True

    async def disconnect(self) -> None:
        """Close every session best-effort, then reset to uninitialized."""
        for session in self.registry.sessions():
            if await self._close(session):
                logger.info("peer disconnected", extra={"peer": session.peer.value})
        self.registry.clear()
        self._connect_errors.clear()
        self._initialized = False
