"""Startup validation to keep deployments predictable."""

from __future__ import annotations

import logging
import os
import shutil
import sys

from .mcp.schema import PeerId
from .settings import SERVER_ENV_VARS, Settings, get_settings

logger = logging.getLogger(__name__)

NUMERIC_ENV_VARS = (
    "MCP_REQUEST_TIMEOUT_SECONDS",
    "CONTEXT_TIMEOUT_SECONDS",
    "UPSTREAM_TIMEOUT_SECONDS",
    "ASSISTANT_MAX_TOKENS",
    "ASSISTANT_TEMPERATURE",
)


def _ensure_numeric(name: str) -> None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return
    try:
        parsed = float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be numeric, got {raw!r}") from exc
    if parsed < 0:
        raise RuntimeError(f"{name} must be non-negative, got {parsed}")


def run_startup_checks(settings: Settings | None = None) -> None:
    """Fail fast on malformed numeric settings or unlaunchable peer commands."""
    if os.getenv("SKIP_STARTUP_CHECKS") == "1":
        logger.warning("Startup checks skipped via SKIP_STARTUP_CHECKS=1")
        return

    for var in NUMERIC_ENV_VARS:
        _ensure_numeric(var)

    settings = settings or get_settings()
    for peer in PeerId:
        config = settings.integrations.servers.get(peer)
        if config is None:
            logger.info(
                "peer disabled; set %s to enable", SERVER_ENV_VARS[peer], extra={"peer": peer.value}
            )
            continue
        if config.kind == "command":
            if not config.command:
                raise RuntimeError(f"{SERVER_ENV_VARS[peer]} is set but holds no command")
            if shutil.which(config.command[0]) is None:
                raise RuntimeError(
                    f"{SERVER_ENV_VARS[peer]} command not found: {config.command[0]!r}"
                )
        logger.info("peer enabled kind=%s", config.kind, extra={"peer": peer.value})

    if settings.integrations.force_mock_data:
        logger.warning("FORCE_MOCK_DATA is set; email context will use demo data")
    if not settings.assistant.enabled:
        logger.warning("OPENAI_API_KEY missing; the assistant will answer with data summaries")

    logger.info("Startup checks passed.")


def main() -> int:
    logging.basicConfig(level=logging.INFO)
    from .env import load_dotenv_if_present

    load_dotenv_if_present()
    try:
        run_startup_checks()
    except Exception as exc:  # pragma: no cover - CLI guard
        logger.error("Startup check failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
