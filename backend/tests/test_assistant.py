"""Tests for the assistant prompt, completion call and summary fallback."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from fieldops.assistant import Assistant, fallback_reply, render_system_prompt
from fieldops.context import BusinessContext, mock_emails
from fieldops.settings import AssistantSettings


def completion(text):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


def fake_openai(*, returns=None, raises=None):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=returns, side_effect=raises)
    return client


@pytest.fixture
def context():
    return BusinessContext(
        schedule={
            "jobs": [
                {
                    "scheduled_start": "2024-01-15T09:00:00Z",
                    "description": "HVAC Maintenance",
                    "customer": {"name": "Sarah Johnson"},
                }
            ],
            "source": "mock",
        },
        customers={"customers": [{"id": "101"}, {"id": "102"}]},
        financials={
            "revenue": {"total_revenue": 47800},
            "invoices": {"invoices": [{"Id": "1"}, {"Id": "2"}], "total_outstanding": 625},
            "expenses": {"total_expenses": 12500},
        },
        communications={"emails": mock_emails(3), "sms": [], "source": "mock"},
        source_flags={
            "schedule": "mock",
            "customers": "live",
            "financials": "live",
            "communications": "mock",
        },
    )


class TestSystemPrompt:
    def test_includes_context_and_mock_note(self, context):
        prompt = render_system_prompt(context)
        assert "Current Business Context:" in prompt
        assert '"total_revenue": 47800' in prompt
        assert "Currently showing mock/demo data" in prompt
        assert "Recent Emails" not in prompt

    def test_email_request_lists_emails(self, context):
        context.is_email_request = True
        prompt = render_system_prompt(context)
        assert "Recent Emails (mock data):" in prompt
        assert "Subject: Equipment Issue - Urgent" in prompt
        assert "Email ID: mock_001" in prompt

    def test_live_note_and_unavailable_fields(self, context):
        context.communications["source"] = "live"
        context.errors = {"financials": "QuickBooks is not configured"}
        prompt = render_system_prompt(context)
        assert "This is live data from your Gmail account." in prompt
        assert "Unavailable data: financials." in prompt


class TestFallbackReply:
    def test_summary_lines(self, context):
        reply = fallback_reply(context)
        assert "- Today's schedule: 1 job" in reply
        assert "2024-01-15T09:00:00Z: HVAC Maintenance for Sarah Johnson" in reply
        assert "- Recent customers: 2" in reply
        assert "- Revenue this period: $47,800.00" in reply
        assert "- Outstanding invoices: 2 totalling $625.00" in reply
        assert "- Expenses this period: $12,500.00" in reply
        assert "- Inbox: 3 recent emails, 2 unread" in reply
        assert "mock/demo data" in reply

    def test_email_request_lists_messages(self, context):
        context.is_email_request = True
        reply = fallback_reply(context)
        assert "[Unread] Equipment Issue - Urgent from Emily Davis" in reply

    def test_reports_unavailable_fields(self):
        reply = fallback_reply(BusinessContext(errors={"schedule": "timed out after 15s"}))
        assert "- Today's schedule: 0 jobs" in reply
        assert "Unavailable right now: schedule." in reply


class TestAssistant:
    @pytest.mark.asyncio
    async def test_without_api_key_uses_summary(self, context):
        assistant = Assistant(AssistantSettings())
        reply = await assistant.reply("How are we doing?", context)
        assert reply.startswith("Here's a quick snapshot")

    @pytest.mark.asyncio
    async def test_completion_request(self, context):
        client = fake_openai(returns=completion("Three jobs today."))
        settings = AssistantSettings(api_key="sk-test", model="gpt-4o-mini", max_tokens=300)
        reply = await Assistant(settings, client=client).reply("How are we doing?", context)
        assert reply == "Three jobs today."
        kwargs = client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["max_tokens"] == 300
        assert kwargs["messages"][0]["role"] == "system"
        assert kwargs["messages"][1] == {"role": "user", "content": "How are we doing?"}

    @pytest.mark.asyncio
    async def test_api_error_falls_back(self, context):
        error = openai.APIConnectionError(
            request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        )
        client = fake_openai(raises=error)
        reply = await Assistant(AssistantSettings(api_key="sk-test"), client=client).reply(
            "hi", context
        )
        assert "- Revenue this period: $47,800.00" in reply

    @pytest.mark.asyncio
    async def test_empty_completion_falls_back(self, context):
        client = fake_openai(returns=completion(""))
        reply = await Assistant(AssistantSettings(api_key="sk-test"), client=client).reply(
            "hi", context
        )
        assert reply.startswith("Here's a quick snapshot")
