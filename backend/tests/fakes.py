"""Test doubles shared across the fieldops test suite."""

from __future__ import annotations

import asyncio
from typing import Any, Mapping

from fieldops.errors import PeerUnavailable
from fieldops.mcp.schema import PeerId, ToolResult, text_result
from fieldops.settings import PeerServerConfig


def builtin_servers(*peers: PeerId) -> dict[PeerId, PeerServerConfig]:
    selected = peers or tuple(PeerId)
    return {peer: PeerServerConfig(peer=peer, kind="builtin") for peer in selected}


class ScriptedClient:
    """Stands in for IntegrationClient with canned payloads per tool."""

    def __init__(
        self,
        responses: Mapping[str, Any] | None = None,
        *,
        delay: float = 0.0,
        unavailable: tuple[PeerId, ...] = (),
    ):
        self.responses = dict(responses or {})
        self.delay = delay
        self.unavailable = set(unavailable)
        self.calls: list[tuple[PeerId, str, dict[str, Any]]] = []
        self.cancelled = 0

    async def invoke(
        self,
        peer: PeerId,
        tool_name: str,
        arguments: Mapping[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> ToolResult:
        self.calls.append((peer, tool_name, dict(arguments or {})))
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        if peer in self.unavailable:
            raise PeerUnavailable(f"{peer.display_name} is not configured", peer=peer.value)
        return text_result(self.responses.get(tool_name, {}))

    async def invoke_with_fallback(self, peer, tool_name, arguments=None, *, timeout=None):
        return await self.invoke(peer, tool_name, arguments, timeout=timeout)

    def tools_called(self) -> list[str]:
        return [tool_name for _, tool_name, _ in self.calls]


SCRIPTED_RESPONSES: dict[str, Any] = {
    "get_jobs": {"jobs": [{"id": "j1", "scheduled_start": "2024-01-15T09:00:00Z"}]},
    "get_customers": {"customers": [{"id": "c1", "name": "Pat Doe"}]},
    "get_revenue_summary": {"period": "current_month", "total_revenue": 1000},
    "get_outstanding_invoices": {"invoices": [], "total_outstanding": 0},
    "get_expenses_summary": {"period": "current_month", "total_expenses": 400},
    "get_recent_emails": {
        "emails": [
            {
                "id": "m1",
                "subject": "Hello",
                "from": "pat@example.com",
                "snippet": "hi",
                "unread": True,
            }
        ]
    },
    "get_recent_messages": {"messages": [{"sid": "SM1", "body": "CONFIRM"}]},
}
