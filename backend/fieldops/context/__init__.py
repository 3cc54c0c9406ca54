"""Business context assembly: intent heuristics, demo inbox and the aggregator."""

from .aggregator import BusinessContext, ContextAggregator, EmailBatch
from .fallback import mock_emails
from .intents import MessageIntent, classify_message, is_urgent_email, suggest_actions

__all__ = [
    "BusinessContext",
    "ContextAggregator",
    "EmailBatch",
    "MessageIntent",
    "classify_message",
    "is_urgent_email",
    "mock_emails",
    "suggest_actions",
]
