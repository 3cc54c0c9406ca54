"""Explicit dependency container for backend runtime wiring.

This module is side-effect free on import. build_container() constructs
the object graph; startup()/shutdown() own the integration lifecycle.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from openai import AsyncOpenAI

    from .actions import ActionRunner
    from .assistant import Assistant
    from .context.aggregator import ContextAggregator
    from .mcp.client import IntegrationClient, TransportFactory
    from .settings import Settings


@dataclass
class FieldOpsContainer:
    """Holds the constructed runtime dependencies for the backend."""

    settings: Settings
    client: IntegrationClient
    aggregator: ContextAggregator
    assistant: Assistant
    action_runner: ActionRunner


def build_container(
    *,
    settings: "Settings" | None = None,
    transport_factory: "TransportFactory" | None = None,
    openai_client: "AsyncOpenAI" | None = None,
) -> FieldOpsContainer:
    """Construct the dependency graph without connecting to any peer."""

    from .actions import ActionRunner
    from .assistant import Assistant
    from .context.aggregator import ContextAggregator
    from .mcp.client import IntegrationClient
    from .settings import get_settings

    settings = settings or get_settings()
    client_kwargs: dict[str, Any] = {"upstream": settings.upstream}
    if transport_factory is not None:
        client_kwargs["transport_factory"] = transport_factory
    client = IntegrationClient(settings.integrations, **client_kwargs)
    return FieldOpsContainer(
        settings=settings,
        client=client,
        aggregator=ContextAggregator(client, settings.integrations),
        assistant=Assistant(settings.assistant, client=openai_client),
        action_runner=ActionRunner(client),
    )


async def startup(container: FieldOpsContainer) -> None:
    """Connect every configured peer."""

    await container.client.initialize()


async def shutdown(container: FieldOpsContainer) -> None:
    """Close every peer session."""

    await container.client.disconnect()
