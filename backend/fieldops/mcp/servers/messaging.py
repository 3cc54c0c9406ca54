"""Twilio backed SMS endpoint."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from ..schema import PeerId, ToolDescriptor
from ..server import EndpointTool, ToolEndpoint
from ..upstream import UpstreamClient, require
from ...errors import UpstreamFailure

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"
SMS_MAX_LENGTH = 1600
DEFAULT_SENDER = "+15551234567"

SEND_SMS_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "to": {
            "type": "string",
            "description": "Recipient phone number (E.164 format: +1234567890)",
        },
        "message": {
            "type": "string",
            "description": "SMS message content (max 1600 characters)",
            "maxLength": SMS_MAX_LENGTH,
        },
        "from": {
            "type": "string",
            "description": "Sender phone number (optional, uses default if not provided)",
        },
    },
    "required": ["to", "message"],
}

GET_RECENT_MESSAGES_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "limit": {
            "type": "integer",
            "minimum": 1,
            "maximum": 50,
            "description": "Number of messages to return (max 50)",
        },
        "direction": {
            "type": "string",
            "enum": ["inbound", "outbound"],
            "description": "Filter by message direction",
        },
        "date_sent_after": {
            "type": "string",
            "description": "Filter messages sent after this date (YYYY-MM-DD)",
        },
    },
}

GET_MESSAGE_STATUS_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {"message_sid": {"type": "string", "description": "Twilio message SID"}},
    "required": ["message_sid"],
}

SEND_BULK_SMS_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "recipients": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "phone": {"type": "string"},
                    "name": {"type": "string"},
                    "custom_message": {"type": "string", "maxLength": SMS_MAX_LENGTH},
                },
                "required": ["phone"],
            },
            "description": "Array of recipients with phone numbers",
        },
        "message_template": {
            "type": "string",
            "description": "SMS template with {name} placeholder for personalization",
        },
    },
    "required": ["recipients", "message_template"],
}

SCHEDULE_REMINDER_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "to": {"type": "string", "description": "Recipient phone number"},
        "message": {
            "type": "string",
            "description": "Reminder message",
            "maxLength": SMS_MAX_LENGTH,
        },
        "send_at": {
            "type": "string",
            "description": "When to send the reminder (ISO 8601 format)",
        },
        "customer_id": {"type": "string", "description": "Associated customer ID for tracking"},
    },
    "required": ["to", "message", "send_at"],
}


def personalize(template: str, name: str | None) -> str:
    return template.replace("{name}", name or "Customer")


def parse_send_at(raw: str) -> datetime:
    """Parse an ISO 8601 timestamp; naive values are taken as UTC."""
    parsed = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _is_due(send_at: str) -> bool:
    return parse_send_at(send_at) <= datetime.now(timezone.utc)


def _scheduled_reminder(arguments: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "success": True,
        "scheduled": True,
        "reminder_id": f"reminder_{int(time.time() * 1000)}",
        "send_at": arguments["send_at"],
        "to": arguments["to"],
        "customer_id": arguments.get("customer_id"),
        "message": arguments["message"],
        "note": "Reminder recorded locally; no upstream scheduler is available",
    }


def _format_message(message: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "sid": message.get("sid"),
        "from": message.get("from"),
        "to": message.get("to"),
        "body": message.get("body"),
        "status": message.get("status"),
        "direction": message.get("direction"),
        "date_sent": message.get("date_sent"),
        "date_created": message.get("date_created"),
        "price": message.get("price"),
        "error_code": message.get("error_code"),
        "error_message": message.get("error_message"),
    }


def _fallback_send(arguments: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "success": False,
        "error": "Twilio not configured",
        "to": arguments["to"],
        "message": arguments["message"],
        "note": "SMS would be sent in real implementation",
    }


def _fallback_recent(arguments: Mapping[str, Any]) -> dict[str, Any]:
    now = datetime.now(timezone.utc)
    millis = int(now.timestamp() * 1000)
    return {
        "messages": [
            {
                "sid": f"SM{millis}",
                "from": DEFAULT_SENDER,
                "to": "+15559876543",
                "body": "Your appointment is confirmed for tomorrow at 2:00 PM. Please reply CONFIRM.",
                "status": "delivered",
                "direction": "outbound",
                "date_sent": now.isoformat(),
                "price": "-0.0075",
            },
            {
                "sid": f"SM{millis - 1000}",
                "from": "+15559876543",
                "to": DEFAULT_SENDER,
                "body": "CONFIRM",
                "status": "received",
                "direction": "inbound",
                "date_sent": (now - timedelta(minutes=5)).isoformat(),
                "price": None,
            },
        ],
        "note": "Mock data - Twilio API unavailable",
    }


def _fallback_status(arguments: Mapping[str, Any]) -> dict[str, Any]:
    return {"message_sid": arguments["message_sid"], "status": "unknown", "note": "Status check failed"}


def _fallback_bulk(arguments: Mapping[str, Any]) -> dict[str, Any]:
    recipients = arguments["recipients"]
    return {
        "total_sent": len(recipients),
        "successful": 0,
        "failed": len(recipients),
        "results": [],
        "note": "Bulk SMS sending failed",
    }


def _fallback_reminder(arguments: Mapping[str, Any]) -> dict[str, Any]:
    try:
        due = _is_due(arguments["send_at"])
    except ValueError:
        due = False
    if due:
        return _fallback_send(arguments)
    return _scheduled_reminder(arguments)


class MessagingEndpoint(ToolEndpoint):
    """SMS send and history through the Twilio REST API."""

    peer = PeerId.MESSAGING
    server_name = "sms-server"
    mock_note = "Mock data - Twilio API unavailable"

    # Pause between recipients of a bulk send.
    bulk_send_delay_seconds = 0.1

    def build_tools(self):
        return [
            EndpointTool(
                ToolDescriptor(
                    name="send_sms",
                    description="Send SMS message via Twilio",
                    input_schema=SEND_SMS_INPUT_SCHEMA,
                ),
                self._handle_send,
                _fallback_send,
            ),
            EndpointTool(
                ToolDescriptor(
                    name="get_recent_messages",
                    description="Get recent SMS messages",
                    input_schema=GET_RECENT_MESSAGES_INPUT_SCHEMA,
                ),
                self._handle_recent,
                _fallback_recent,
            ),
            EndpointTool(
                ToolDescriptor(
                    name="get_message_status",
                    description="Get delivery status of a sent message",
                    input_schema=GET_MESSAGE_STATUS_INPUT_SCHEMA,
                ),
                self._handle_status,
                _fallback_status,
            ),
            EndpointTool(
                ToolDescriptor(
                    name="send_bulk_sms",
                    description="Send SMS to multiple recipients",
                    input_schema=SEND_BULK_SMS_INPUT_SCHEMA,
                ),
                self._handle_bulk,
                _fallback_bulk,
            ),
            EndpointTool(
                ToolDescriptor(
                    name="schedule_reminder",
                    description="Schedule an SMS reminder",
                    input_schema=SCHEDULE_REMINDER_INPUT_SCHEMA,
                ),
                self._handle_reminder,
                _fallback_reminder,
            ),
        ]

    def _client(self) -> UpstreamClient:
        account_sid = require(
            self.settings.twilio_account_sid, "Twilio not configured", peer=self.peer.value
        )
        auth_token = require(
            self.settings.twilio_auth_token, "Twilio not configured", peer=self.peer.value
        )
        return UpstreamClient(
            "Twilio",
            f"{TWILIO_API_BASE}/Accounts/{account_sid}",
            peer=self.peer.value,
            auth=(account_sid, auth_token),
            timeout=self.settings.timeout_seconds,
            transport=self.http_transport,
        )

    def _sender(self, override: str | None = None) -> str:
        return require(
            override or self.settings.twilio_phone_number,
            "No sender phone number configured",
            peer=self.peer.value,
        )

    async def _create_message(self, client: UpstreamClient, *, to: str, body: str, sender: str):
        return await client.request(
            "POST", "Messages.json", data={"To": to, "From": sender, "Body": body}
        )

    async def _handle_send(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        client = self._client()
        message = await self._create_message(
            client,
            to=arguments["to"],
            body=arguments["message"],
            sender=self._sender(arguments.get("from")),
        )
        return {
            "success": True,
            "message_sid": message.get("sid"),
            "status": message.get("status"),
            "to": message.get("to"),
            "from": message.get("from"),
            "date_sent": message.get("date_created"),
            "price": message.get("price"),
            "direction": message.get("direction"),
        }

    async def _handle_recent(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        params: dict[str, Any] = {"PageSize": min(arguments.get("limit") or 20, 50)}
        if arguments.get("date_sent_after"):
            params["DateSent>"] = arguments["date_sent_after"]
        payload = await self._client().get("Messages.json", **params)
        messages = [_format_message(message) for message in payload.get("messages") or []]
        direction = arguments.get("direction")
        if direction:
            # Twilio reports outbound as outbound-api / outbound-reply.
            messages = [m for m in messages if str(m.get("direction") or "").startswith(direction)]
        return {"messages": messages, "total_count": len(messages)}

    async def _handle_status(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        message = await self._client().get(f"Messages/{arguments['message_sid']}.json")
        return {
            "sid": message.get("sid"),
            "status": message.get("status"),
            "to": message.get("to"),
            "from": message.get("from"),
            "date_sent": message.get("date_sent"),
            "date_updated": message.get("date_updated"),
            "price": message.get("price"),
            "error_code": message.get("error_code"),
            "error_message": message.get("error_message"),
        }

    async def _handle_bulk(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        client = self._client()
        sender = self._sender()
        recipients = arguments["recipients"]
        results = []
        for recipient in recipients:
            body = recipient.get("custom_message") or personalize(
                arguments["message_template"], recipient.get("name")
            )
            entry: dict[str, Any] = {"phone": recipient["phone"], "name": recipient.get("name")}
            if len(body) > SMS_MAX_LENGTH:
                entry.update(success=False, error=f"message exceeds {SMS_MAX_LENGTH} characters")
                results.append(entry)
                continue
            try:
                message = await self._create_message(
                    client, to=recipient["phone"], body=body, sender=sender
                )
            except UpstreamFailure as exc:
                logger.warning(
                    "bulk sms recipient failed phone=%s reason=%s",
                    recipient["phone"],
                    exc.message,
                    extra={"peer": self.peer.value},
                )
                entry.update(success=False, error=exc.message)
            else:
                entry.update(
                    success=True, message_sid=message.get("sid"), status=message.get("status")
                )
            results.append(entry)
            await asyncio.sleep(self.bulk_send_delay_seconds)
        successful = sum(1 for result in results if result["success"])
        return {
            "total_sent": len(recipients),
            "successful": successful,
            "failed": len(results) - successful,
            "results": results,
        }

    async def _handle_reminder(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        if _is_due(arguments["send_at"]):
            return await self._handle_send({"to": arguments["to"], "message": arguments["message"]})
        return _scheduled_reminder(arguments)
