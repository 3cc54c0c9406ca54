"""Gmail backed endpoint for reading, searching and sending email.

Talks to the Gmail REST v1 API with a pre-issued OAuth access token;
acquiring or refreshing that token is left to whoever provisions the
environment.
"""

from __future__ import annotations

import base64
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from ..schema import PeerId, ToolDescriptor
from ..server import EndpointTool, ToolEndpoint
from ..upstream import UpstreamClient, require

GMAIL_API_BASE = "https://gmail.googleapis.com/gmail/v1"

GET_RECENT_EMAILS_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "limit": {
            "type": "integer",
            "minimum": 1,
            "maximum": 50,
            "description": "Number of emails to return (max 50)",
        },
        "query": {
            "type": "string",
            "description": "Gmail search query (e.g., 'is:unread', 'from:customer@email.com')",
        },
        "include_body": {"type": "boolean", "description": "Whether to include email body content"},
    },
}

SEND_EMAIL_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "to": {"type": "string", "description": "Recipient email address"},
        "subject": {"type": "string", "description": "Email subject"},
        "body": {"type": "string", "description": "Email body content"},
        "cc": {"type": "string", "description": "CC email addresses (comma-separated)"},
        "reply_to": {"type": "string", "description": "Reply-to email address"},
    },
    "required": ["to", "subject", "body"],
}

SEARCH_EMAILS_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "query": {"type": "string", "description": "Gmail search query"},
        "max_results": {
            "type": "integer",
            "minimum": 1,
            "description": "Maximum number of results",
        },
    },
    "required": ["query"],
}

GET_EMAIL_THREAD_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {"thread_id": {"type": "string", "description": "Gmail thread ID"}},
    "required": ["thread_id"],
}

MARK_AS_READ_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "message_ids": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Array of Gmail message IDs to mark as read",
        }
    },
    "required": ["message_ids"],
}


def build_raw_message(arguments: Mapping[str, Any]) -> str:
    """Render an RFC 822 plain-text message, base64url encoded without padding."""
    lines = [f"To: {arguments['to']}", f"Subject: {arguments['subject']}"]
    if arguments.get("cc"):
        lines.append(f"Cc: {arguments['cc']}")
    if arguments.get("reply_to"):
        lines.append(f"Reply-To: {arguments['reply_to']}")
    lines.extend(['Content-Type: text/plain; charset="UTF-8"', "MIME-Version: 1.0", ""])
    lines.append(arguments["body"])
    raw = "\r\n".join(lines).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _decode(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")


def extract_body(payload: Mapping[str, Any]) -> str:
    """Return the first text/plain body found in a Gmail message payload."""
    body = payload.get("body") or {}
    if body.get("data"):
        return _decode(body["data"])
    for part in payload.get("parts") or []:
        part_body = part.get("body") or {}
        if part.get("mimeType") == "text/plain" and part_body.get("data"):
            return _decode(part_body["data"])
        if part.get("parts"):
            nested = extract_body(part)
            if nested:
                return nested
    return ""


def _header(message: Mapping[str, Any], name: str) -> str:
    headers = (message.get("payload") or {}).get("headers") or []
    for header in headers:
        if str(header.get("name", "")).lower() == name.lower():
            return str(header.get("value") or "")
    return ""


def _fallback_recent(arguments: Mapping[str, Any]) -> dict[str, Any]:
    now = datetime.now(timezone.utc)
    return {
        "emails": [
            {
                "id": "msg_001",
                "threadId": "thread_001",
                "subject": "Service Reminder - HVAC Maintenance Due",
                "from": "sarah.johnson@email.com",
                "to": "me@business.com",
                "date": now.isoformat(),
                "snippet": "Hi, I wanted to schedule my annual HVAC maintenance...",
                "unread": True,
            },
            {
                "id": "msg_002",
                "threadId": "thread_002",
                "subject": "Payment Confirmation - Invoice #1234",
                "from": "robert.smith@email.com",
                "to": "me@business.com",
                "date": (now - timedelta(hours=1)).isoformat(),
                "snippet": "Thank you for the excellent service. Payment has been processed...",
                "unread": False,
            },
        ]
    }


def _fallback_send(arguments: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "success": False,
        "error": "Gmail not available",
        "note": "Email would be sent in real implementation",
    }


def _fallback_search(arguments: Mapping[str, Any]) -> dict[str, Any]:
    return {"messages": [], "note": "Search unavailable - Gmail API not accessible"}


def _fallback_thread(arguments: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "thread_id": arguments["thread_id"],
        "messages": [],
        "message_count": 0,
        "note": "Thread retrieval failed",
    }


def _fallback_mark_read(arguments: Mapping[str, Any]) -> dict[str, Any]:
    return {"success": False, "marked_read": 0}


class EmailEndpoint(ToolEndpoint):
    """Inbox access through the Gmail API."""

    peer = PeerId.EMAIL
    server_name = "gmail-server"
    mock_note = "Mock data - Gmail API unavailable"

    def build_tools(self):
        return [
            EndpointTool(
                ToolDescriptor(
                    name="get_recent_emails",
                    description="Get recent emails from Gmail",
                    input_schema=GET_RECENT_EMAILS_INPUT_SCHEMA,
                ),
                self._handle_recent,
                _fallback_recent,
            ),
            EndpointTool(
                ToolDescriptor(
                    name="send_email",
                    description="Send an email via Gmail",
                    input_schema=SEND_EMAIL_INPUT_SCHEMA,
                ),
                self._handle_send,
                _fallback_send,
            ),
            EndpointTool(
                ToolDescriptor(
                    name="search_emails",
                    description="Search emails with specific criteria",
                    input_schema=SEARCH_EMAILS_INPUT_SCHEMA,
                ),
                self._handle_search,
                _fallback_search,
            ),
            EndpointTool(
                ToolDescriptor(
                    name="get_email_thread",
                    description="Get full email thread/conversation",
                    input_schema=GET_EMAIL_THREAD_INPUT_SCHEMA,
                ),
                self._handle_thread,
                _fallback_thread,
            ),
            EndpointTool(
                ToolDescriptor(
                    name="mark_as_read",
                    description="Mark emails as read",
                    input_schema=MARK_AS_READ_INPUT_SCHEMA,
                ),
                self._handle_mark_read,
                _fallback_mark_read,
            ),
        ]

    def _client(self) -> UpstreamClient:
        token = require(
            self.settings.gmail_access_token, "Gmail not authenticated", peer=self.peer.value
        )
        return UpstreamClient(
            "Gmail",
            f"{GMAIL_API_BASE}/users/{self.settings.gmail_user_id}",
            peer=self.peer.value,
            headers={"Authorization": f"Bearer {token}"},
            timeout=self.settings.timeout_seconds,
            transport=self.http_transport,
        )

    async def _handle_recent(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        client = self._client()
        max_results = min(arguments.get("limit") or 10, 50)
        include_body = bool(arguments.get("include_body"))
        listing = await client.get(
            "messages", q=arguments.get("query") or "in:inbox", maxResults=max_results
        )
        emails = []
        for ref in (listing.get("messages") or [])[:max_results]:
            message = await client.get(
                f"messages/{ref['id']}", format="full" if include_body else "metadata"
            )
            email = {
                "id": ref["id"],
                "threadId": message.get("threadId"),
                "subject": _header(message, "Subject"),
                "from": _header(message, "From"),
                "to": _header(message, "To"),
                "date": _header(message, "Date"),
                "snippet": message.get("snippet", ""),
                "unread": "UNREAD" in (message.get("labelIds") or []),
            }
            if include_body:
                email["body"] = extract_body(message.get("payload") or {})
            emails.append(email)
        return {"emails": emails, "total_found": listing.get("resultSizeEstimate", len(emails))}

    async def _handle_send(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        response = await self._client().request(
            "POST", "messages/send", json={"raw": build_raw_message(arguments)}
        )
        return {
            "success": True,
            "message_id": response.get("id"),
            "thread_id": response.get("threadId"),
        }

    async def _handle_search(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        listing = await self._client().get(
            "messages", q=arguments["query"], maxResults=arguments.get("max_results") or 25
        )
        return {
            "messages": listing.get("messages") or [],
            "result_size_estimate": listing.get("resultSizeEstimate", 0),
        }

    async def _handle_thread(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        thread_id = arguments["thread_id"]
        thread = await self._client().get(f"threads/{thread_id}")
        messages = [
            {
                "id": message.get("id"),
                "subject": _header(message, "Subject"),
                "from": _header(message, "From"),
                "date": _header(message, "Date"),
                "snippet": message.get("snippet", ""),
                "body": extract_body(message.get("payload") or {}),
            }
            for message in thread.get("messages") or []
        ]
        return {"thread_id": thread_id, "messages": messages, "message_count": len(messages)}

    async def _handle_mark_read(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        client = self._client()
        message_ids = list(arguments["message_ids"])
        for message_id in message_ids:
            await client.request(
                "POST",
                f"messages/{message_id}/modify",
                json={"removeLabelIds": ["UNREAD"]},
            )
        return {"success": True, "marked_read": len(message_ids)}
