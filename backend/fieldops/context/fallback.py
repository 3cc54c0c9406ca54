"""Demo inbox served when live email data is unavailable or disabled."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

_DEMO_INBOX: tuple[tuple[str, str, str, str, int, bool], ...] = (
    (
        "mock_001",
        "Service Reminder - HVAC Maintenance Due",
        "Sarah Johnson <sarah.johnson@email.com>",
        "Hi, I wanted to schedule my annual HVAC maintenance for next week. "
        "Could we set up an appointment?",
        0,
        True,
    ),
    (
        "mock_002",
        "Payment Confirmation - Invoice #1234",
        "Robert Smith <robert.smith@email.com>",
        "Thank you for the excellent plumbing service yesterday. "
        "Payment has been processed successfully.",
        3600,
        False,
    ),
    (
        "mock_003",
        "Equipment Issue - Urgent",
        "Emily Davis <emily.davis@email.com>",
        "The electrical outlet installation seems to have an issue. "
        "The GFCI keeps tripping. Can someone come take a look?",
        7200,
        True,
    ),
    (
        "mock_004",
        "Warranty Renewal Question",
        "Michael Wilson <michael.wilson@email.com>",
        "I received a notice that my HVAC warranty is expiring soon. "
        "What are my options for renewal?",
        86400,
        True,
    ),
    (
        "mock_005",
        "Schedule Change Request",
        "Lisa Brown <lisa.brown@email.com>",
        "I need to reschedule our appointment for tomorrow to next week "
        "due to a family emergency.",
        172800,
        False,
    ),
    (
        "mock_006",
        "New Customer Inquiry",
        "James Martinez <james.martinez@email.com>",
        "Hi, I was referred by Sarah Johnson. I need HVAC installation for my new home. "
        "Can you provide a quote?",
        259200,
        True,
    ),
)

DEMO_RECIPIENT = "business@company.com"


def mock_emails(limit: int = 5, *, now: datetime | None = None) -> list[dict[str, Any]]:
    """Return up to ``limit`` demo messages, newest first."""
    now = now or datetime.now(timezone.utc)
    emails: list[dict[str, Any]] = []
    for index, (message_id, subject, sender, snippet, age, unread) in enumerate(_DEMO_INBOX):
        if index >= limit:
            break
        emails.append(
            {
                "id": message_id,
                "subject": subject,
                "from": sender,
                "to": DEMO_RECIPIENT,
                "date": (now - timedelta(seconds=age)).isoformat(),
                "snippet": snippet,
                "unread": unread,
                "threadId": message_id.replace("mock", "thread"),
            }
        )
    return emails
