"""HTTP routes for the dashboard and the conversation panel.

Safe to import: routes are bound to a container only inside get_router().
Integration failures are answered as ``{"success": false, "error": ...}``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .actions import ActionError
from .context.aggregator import today
from .context.intents import suggest_actions
from .errors import IntegrationError, PeerUnavailable, TransportTimeout
from .mcp.registry import utc_now
from .mcp.schema import PeerId, parse_payload, tool_rejection
from .mcp.servers.accounting import PERIODS

if TYPE_CHECKING:
    from .container import FieldOpsContainer

logger = logging.getLogger(__name__)

# Status page order.
STATUS_ORDER = (PeerId.ACCOUNTING, PeerId.SCHEDULING, PeerId.EMAIL, PeerId.MESSAGING)


class IntegrationActionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    integration_id: str = Field(..., alias="integrationId")
    action: str


class CommunicationRequest(BaseModel):
    type: str
    to: str = Field(..., min_length=1)
    subject: str | None = None
    message: str


class ActionRequest(BaseModel):
    action: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class ConversationRequest(BaseModel):
    message: str = Field(..., min_length=1)
    context: dict[str, Any] | None = None


def _failure(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


def _integration_failure(exc: IntegrationError, what: str) -> JSONResponse:
    if isinstance(exc, PeerUnavailable):
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif isinstance(exc, TransportTimeout):
        status_code = status.HTTP_504_GATEWAY_TIMEOUT
    else:
        status_code = status.HTTP_502_BAD_GATEWAY
    logger.warning("%s failed error=%s", what, exc.message, extra={"peer": exc.peer or "-"})
    return _failure(f"Failed to {what}: {exc.message}", status_code)


def _integration_entry(peer: PeerId, integration: Any) -> dict[str, Any]:
    return {
        "id": peer.integration_id,
        "name": peer.display_name,
        "type": peer.integration_id,
        "status": integration.status,
        "lastSync": integration.last_sync,
        "errorMessage": integration.error,
    }


def get_router(container: "FieldOpsContainer") -> APIRouter:
    """Build API routes using the provided dependency container."""

    router = APIRouter(prefix="/api")
    client = container.client
    aggregator = container.aggregator

    @router.get("/integrations/status")
    async def integration_status() -> JSONResponse:
        statuses = await client.get_status()
        return JSONResponse(
            {
                "success": True,
                "integrations": [_integration_entry(peer, statuses[peer]) for peer in STATUS_ORDER],
            }
        )

    @router.post("/integrations/status")
    async def integration_action(payload: IntegrationActionRequest) -> JSONResponse:
        if payload.action != "refresh":
            return _failure("Invalid action", status.HTTP_400_BAD_REQUEST)
        try:
            peer = PeerId.resolve(payload.integration_id)
        except ValueError:
            return _failure("Unknown integration", status.HTTP_400_BAD_REQUEST)
        integration = await client.refresh(peer)
        return JSONResponse({"success": True, "integration": _integration_entry(peer, integration)})

    @router.get("/data/schedule")
    async def schedule(date: str | None = None) -> JSONResponse:
        try:
            payload = await aggregator.get_schedule(date, fallback=True)
        except IntegrationError as exc:
            return _integration_failure(exc, "fetch schedule")
        return JSONResponse({"success": True, "schedule": payload, "date": date or today()})

    @router.get("/data/customers")
    async def customers(id: str | None = None) -> JSONResponse:
        try:
            if not id:
                payload = await aggregator.get_recent_customers(fallback=True)
                return JSONResponse({"success": True, "customers": payload})
            customer = parse_payload(
                await client.invoke_with_fallback(PeerId.SCHEDULING, "get_customer", {"id": id})
            )
            history = parse_payload(
                await client.invoke_with_fallback(
                    PeerId.SCHEDULING, "get_customer_jobs", {"customer_id": id}
                )
            )
        except IntegrationError as exc:
            return _integration_failure(exc, "fetch customers")
        return JSONResponse({"success": True, "customer": {**customer, "jobHistory": history}})

    @router.get("/data/financials")
    async def financials(period: str = "current_month") -> JSONResponse:
        if period not in PERIODS:
            return _failure(f"Unknown period: {period}", status.HTTP_400_BAD_REQUEST)
        try:
            summary = await aggregator.get_financial_summary(period, fallback=True)
        except IntegrationError as exc:
            return _integration_failure(exc, "fetch financial data")
        return JSONResponse({"success": True, "financials": summary, "period": period})

    @router.post("/communications/send")
    async def send_communication(payload: CommunicationRequest) -> JSONResponse:
        if payload.type == "email":
            peer, tool_name = PeerId.EMAIL, "send_email"
            arguments = {"to": payload.to, "subject": payload.subject or "", "body": payload.message}
        elif payload.type == "sms":
            peer, tool_name = PeerId.MESSAGING, "send_sms"
            arguments = {"to": payload.to, "message": payload.message}
        else:
            return _failure("Invalid communication type", status.HTTP_400_BAD_REQUEST)
        try:
            result = await client.invoke(peer, tool_name, arguments)
            rejection = tool_rejection(result)
            if rejection is not None:
                return _failure(rejection, status.HTTP_400_BAD_REQUEST)
            sent = parse_payload(result)
        except IntegrationError as exc:
            return _integration_failure(exc, "send communication")
        return JSONResponse(
            {"success": True, "result": sent, "type": payload.type, "timestamp": utc_now()}
        )

    @router.post("/actions")
    async def run_action(payload: ActionRequest) -> JSONResponse:
        try:
            result = await container.action_runner.run(payload.action, payload.parameters)
        except ActionError as exc:
            return _failure(str(exc), status.HTTP_400_BAD_REQUEST)
        except IntegrationError as exc:
            return _integration_failure(exc, "execute action")
        return JSONResponse(
            {"success": True, "action": payload.action, "result": result, "timestamp": utc_now()}
        )

    @router.post("/conversation")
    async def conversation(payload: ConversationRequest) -> JSONResponse:
        context = await aggregator.build_context(
            payload.context,
            payload.message,
            timeout=container.settings.integrations.context_timeout_seconds,
        )
        reply = await container.assistant.reply(payload.message, context)
        snapshot = context.model_dump()
        return JSONResponse(
            {
                "success": True,
                "response": reply,
                "actions": suggest_actions(payload.message, reply, snapshot),
                "context": snapshot,
            }
        )

    return router
