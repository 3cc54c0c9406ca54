"""Keyword heuristics that shape context fetching and suggested follow-ups.

Matching is case-insensitive substring matching, so "emails" counts as an
email request and "customers" as a customer mention. The message being
classified is the current one; only when it is blank does the last entry
of ``previous_messages`` in the caller context stand in for it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

EMAIL_KEYWORDS = frozenset({"email", "gmail"})
CUSTOMER_KEYWORDS = frozenset({"customer"})
SCHEDULE_KEYWORDS = frozenset({"schedule"})
PAYMENT_KEYWORDS = frozenset({"payment"})

TOPIC_KEYWORDS: tuple[tuple[str, frozenset[str]], ...] = (
    ("email", EMAIL_KEYWORDS),
    ("customer", CUSTOMER_KEYWORDS),
    ("schedule", SCHEDULE_KEYWORDS),
    ("payment", PAYMENT_KEYWORDS),
)

DEFAULT_EMAIL_LIMIT = 5
MAX_EMAIL_LIMIT = 50

_NUMBER_PATTERN = re.compile(r"(\d+)")


@dataclass(frozen=True)
class MessageIntent:
    is_email_request: bool
    email_limit: int
    topics: tuple[str, ...] = ()


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(keyword in text for keyword in keywords)


def _previous_message_text(caller_context: Mapping[str, Any] | None) -> str:
    if not caller_context:
        return ""
    history = caller_context.get("previous_messages") or caller_context.get("previousMessages")
    if not isinstance(history, Sequence) or isinstance(history, str) or not history:
        return ""
    last = history[-1]
    if isinstance(last, Mapping):
        return str(last.get("content") or "")
    return str(last or "")


def resolve_message_text(text: str | None, caller_context: Mapping[str, Any] | None = None) -> str:
    if text and text.strip():
        return text
    return _previous_message_text(caller_context)


def extract_email_limit(text: str) -> int:
    match = _NUMBER_PATTERN.search(text)
    if not match:
        return DEFAULT_EMAIL_LIMIT
    return max(1, min(MAX_EMAIL_LIMIT, int(match.group(1))))


def classify_message(
    text: str | None, caller_context: Mapping[str, Any] | None = None
) -> MessageIntent:
    lowered = resolve_message_text(text, caller_context).lower()
    topics = tuple(name for name, keywords in TOPIC_KEYWORDS if _contains_any(lowered, keywords))
    is_email = "email" in topics
    return MessageIntent(
        is_email_request=is_email,
        email_limit=extract_email_limit(lowered) if is_email else DEFAULT_EMAIL_LIMIT,
        topics=topics,
    )


def is_urgent_email(email: Mapping[str, Any]) -> bool:
    """Unread mail that says "urgent" anywhere or flags an "issue" in the subject."""
    if not email.get("unread"):
        return False
    subject = str(email.get("subject") or "").lower()
    snippet = str(email.get("snippet") or "").lower()
    return "urgent" in subject or "urgent" in snippet or "issue" in subject


def _button(action_id: str, label: str, action: str) -> dict[str, str]:
    return {"id": action_id, "label": label, "type": "button", "action": action}


def _context_emails(context: Mapping[str, Any] | None) -> list[Mapping[str, Any]]:
    communications = (context or {}).get("communications") or {}
    emails = communications.get("emails") if isinstance(communications, Mapping) else None
    return [email for email in emails or [] if isinstance(email, Mapping)]


def suggest_actions(
    message: str, reply: str, context: Mapping[str, Any] | None = None
) -> list[dict[str, str]]:
    """Follow-up buttons for the chat UI based on what was asked and answered."""
    lowered_message = (message or "").lower()
    lowered_reply = (reply or "").lower()
    actions: list[dict[str, str]] = []

    if _contains_any(lowered_message, EMAIL_KEYWORDS):
        actions.append(_button("mark-emails-read", "Mark Unread as Read", "mark-read"))
        actions.append(_button("compose-email", "Compose Reply", "compose-email"))
        urgent = sum(1 for email in _context_emails(context) if is_urgent_email(email))
        if urgent:
            plural = "s" if urgent > 1 else ""
            actions.append(
                _button("respond-urgent", f"Respond to {urgent} Urgent Email{plural}", "respond-urgent")
            )

    if _contains_any(lowered_message, CUSTOMER_KEYWORDS) or "customer" in lowered_reply:
        actions.append(_button("view-customer-details", "View Customer Details", "view-customer"))

    if _contains_any(lowered_message, SCHEDULE_KEYWORDS) or "appointment" in lowered_reply:
        actions.append(_button("optimize-route", "Optimize Route", "optimize-route"))

    if _contains_any(lowered_message, PAYMENT_KEYWORDS) or "invoice" in lowered_reply:
        actions.append(
            _button("send-invoice-reminder", "Send Payment Reminder", "payment-reminder")
        )

    return actions
