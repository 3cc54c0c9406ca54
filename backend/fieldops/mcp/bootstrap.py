"""Endpoint and transport construction shared by the app and the stdio process."""

from __future__ import annotations

from typing import Mapping

import httpx

from ..settings import PeerServerConfig, UpstreamSettings
from .schema import PeerId
from .server import ToolEndpoint
from .servers.accounting import AccountingEndpoint
from .servers.mail import EmailEndpoint
from .servers.messaging import MessagingEndpoint
from .servers.scheduling import SchedulingEndpoint
from .transport import InProcessTransport, StdioTransport, Transport

ENDPOINT_TYPES: Mapping[PeerId, type[ToolEndpoint]] = {
    PeerId.SCHEDULING: SchedulingEndpoint,
    PeerId.ACCOUNTING: AccountingEndpoint,
    PeerId.EMAIL: EmailEndpoint,
    PeerId.MESSAGING: MessagingEndpoint,
}


def create_endpoint(
    peer: PeerId,
    *,
    settings: UpstreamSettings | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> ToolEndpoint:
    """Instantiate the bundled endpoint for a peer."""
    return ENDPOINT_TYPES[peer](settings=settings, http_transport=http_transport)


def build_transport(
    config: PeerServerConfig,
    *,
    upstream: UpstreamSettings | None = None,
    timeout: float = 10.0,
) -> Transport:
    """Return an unconnected transport for a configured peer."""
    if config.kind == "builtin":
        return InProcessTransport(create_endpoint(config.peer, settings=upstream), timeout=timeout)
    return StdioTransport(config.peer, config.command, timeout=timeout)
