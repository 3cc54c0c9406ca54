"""FastAPI application bootstrap for the field-service dashboard backend."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import get_router
from .container import (
    FieldOpsContainer,
    build_container,
    shutdown as shutdown_container,
    startup as startup_container,
)
from .env import load_dotenv_if_present
from .startup_checks import run_startup_checks


class _PeerFilter(logging.Filter):
    """Ensure every log record has a peer attribute."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "peer"):
            record.peer = "-"
        return True


def _configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [peer=%(peer)s] %(name)s: %(message)s",
    )
    root_logger = logging.getLogger()
    peer_filter = _PeerFilter()
    for handler in root_logger.handlers:
        handler.addFilter(peer_filter)


def create_app(container: FieldOpsContainer | None = None) -> FastAPI:
    """Construct the FastAPI application."""
    _configure_logging()
    load_dotenv_if_present()

    if container is None:
        from .settings import get_settings

        container = build_container(settings=get_settings())

    app = FastAPI(title="FieldOps Dashboard API")
    app.state.container = container
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(get_router(container))

    @app.on_event("startup")
    async def _startup() -> None:
        run_startup_checks(container.settings)
        await startup_container(container)
        logger = logging.getLogger(__name__)
        logger.info(
            "integrations ready registered=%s",
            ",".join(peer.value for peer in container.client.registered_peers()) or "none",
        )

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await shutdown_container(container)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


_APP: FastAPI | None = None


def get_app() -> FastAPI:
    """Accessor for ASGI servers expecting an app factory."""

    global _APP
    if _APP is None:
        _APP = create_app()
    return _APP
