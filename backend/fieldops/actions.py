"""Dashboard quick actions executed as tool calls through the integration client."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping

from .mcp.schema import PeerId, parse_payload, tool_rejection

logger = logging.getLogger(__name__)


class ActionError(Exception):
    """Raised for unknown actions or parameters the action cannot work with."""


def _compact(arguments: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in arguments.items() if value is not None}


def payment_reminder_email(name: str, invoice_id: Any, amount: Any) -> tuple[str, str]:
    subject = f"Payment Reminder - Invoice {invoice_id}"
    body = (
        f"Dear {name},\n\n"
        f"This is a friendly reminder that your invoice {invoice_id} for ${amount} is now due.\n\n"
        "Please contact us if you have any questions.\n\n"
        "Thank you!"
    )
    return subject, body


def payment_reminder_sms(invoice_id: Any, amount: Any) -> str:
    return (
        f"Payment reminder: Invoice {invoice_id} for ${amount} is now due. "
        "Please contact us to arrange payment."
    )


class ActionRunner:
    """Maps action names posted by the dashboard onto peer tool calls.

    Parameters use the dashboard's camelCase keys (``customerId``,
    ``dueDate``...). Integration failures propagate as IntegrationError.
    """

    def __init__(self, client: Any):
        self.client = client
        self._handlers: dict[str, Callable[[Mapping[str, Any]], Awaitable[Any]]] = {
            "optimize-route": self.optimize_route,
            "send-payment-reminder": self.send_payment_reminder,
            "schedule-follow-up": self.schedule_follow_up,
            "update-customer-notes": self.update_customer_notes,
            "generate-invoice": self.generate_invoice,
        }

    @property
    def actions(self) -> list[str]:
        return list(self._handlers)

    async def run(self, action: str, parameters: Mapping[str, Any] | None = None) -> Any:
        handler = self._handlers.get(action)
        if handler is None:
            raise ActionError("Unknown action")
        logger.info("running action=%s", action)
        return await handler(dict(parameters or {}))

    async def _call(self, peer: PeerId, tool_name: str, arguments: Mapping[str, Any]) -> dict[str, Any]:
        result = await self.client.invoke(peer, tool_name, _compact(arguments))
        rejection = tool_rejection(result)
        if rejection is not None:
            raise ActionError(rejection)
        return parse_payload(result)

    async def optimize_route(self, parameters: Mapping[str, Any]) -> dict[str, Any]:
        day = parameters.get("date") or datetime.now(timezone.utc).date().isoformat()
        return await self._call(
            PeerId.SCHEDULING,
            "optimize_route",
            {"date": day, "technician_id": parameters.get("technicianId")},
        )

    async def send_payment_reminder(self, parameters: Mapping[str, Any]) -> dict[str, Any]:
        customer_id = parameters.get("customerId")
        if not customer_id:
            raise ActionError("customerId is required")
        customer = await self._call(PeerId.SCHEDULING, "get_customer", {"id": customer_id})
        email = customer.get("email")
        if not email:
            raise ActionError(f"customer {customer_id} has no email address")
        invoice_id = parameters.get("invoiceId")
        amount = parameters.get("amount")
        subject, body = payment_reminder_email(
            customer.get("name") or "Customer", invoice_id, amount
        )
        email_result = await self._call(
            PeerId.EMAIL, "send_email", {"to": email, "subject": subject, "body": body}
        )
        sms_result = None
        phone = customer.get("phone")
        if phone and parameters.get("urgent"):
            sms_result = await self._call(
                PeerId.MESSAGING,
                "send_sms",
                {"to": phone, "message": payment_reminder_sms(invoice_id, amount)},
            )
        return {"emailResult": email_result, "smsResult": sms_result}

    async def schedule_follow_up(self, parameters: Mapping[str, Any]) -> dict[str, Any]:
        return await self._call(
            PeerId.SCHEDULING,
            "create_follow_up_task",
            {
                "customer_id": parameters.get("customerId"),
                "description": parameters.get("description"),
                "due_date": parameters.get("dueDate"),
                "priority": parameters.get("priority") or "medium",
            },
        )

    async def update_customer_notes(self, parameters: Mapping[str, Any]) -> dict[str, Any]:
        append = parameters.get("append")
        return await self._call(
            PeerId.SCHEDULING,
            "update_customer_notes",
            {
                "customer_id": parameters.get("customerId"),
                "notes": parameters.get("notes"),
                "append": True if append is None else bool(append),
            },
        )

    async def generate_invoice(self, parameters: Mapping[str, Any]) -> dict[str, Any]:
        return await self._call(
            PeerId.ACCOUNTING,
            "create_invoice",
            {
                "customer_id": parameters.get("customerId"),
                "line_items": parameters.get("lineItems"),
                "due_date": parameters.get("dueDate"),
            },
        )
