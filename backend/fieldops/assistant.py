"""Conversational assistant backed by an OpenAI chat completion."""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from openai import AsyncOpenAI, OpenAIError

from .context.aggregator import BusinessContext
from .mcp.schema import MOCK_SOURCE
from .settings import AssistantSettings

logger = logging.getLogger(__name__)

_GUIDELINES = (
    "Be conversational and helpful",
    "Provide specific, actionable recommendations",
    "Reference real data from the business context",
    "When showing emails, format them clearly with sender, subject, date, and status",
    "For email requests, show the actual email data in a readable format",
    "Suggest follow-up actions when appropriate",
    "Prioritize urgent matters (overdue payments, warranty expirations, etc.)",
    "Keep responses concise but informative",
    "If showing mock data, mention this clearly to the user",
)


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


def _email_section(context: BusinessContext) -> str:
    emails = context.communications.get("emails") or []
    if not context.is_email_request or not emails:
        return ""
    source = context.communications.get("source") or "unknown"
    lines = [f"Recent Emails ({source} data):"]
    for index, email in enumerate(emails, start=1):
        lines.extend(
            [
                f"{index}. From: {email.get('from')}",
                f"   Subject: {email.get('subject')}",
                f"   Date: {email.get('date')}",
                f"   Status: {'Unread' if email.get('unread') else 'Read'}",
                f"   Preview: {email.get('snippet')}",
                f"   Email ID: {email.get('id')}",
            ]
        )
    return "\n".join(lines)


def render_system_prompt(context: BusinessContext) -> str:
    source = context.communications.get("source") or "unknown"
    sections = [
        "You are an intelligent business partner for a service-based business. "
        "You have access to real-time business data and should provide helpful, "
        "actionable insights.",
        "Current Business Context:\n"
        f"- Today's Schedule: {_dump(context.schedule)}\n"
        f"- Recent Customers: {_dump(context.customers)}\n"
        f"- Financial Summary: {_dump(context.financials)}\n"
        f"- Recent Communications: {_dump(context.communications)}",
    ]
    email_section = _email_section(context)
    if email_section:
        sections.append(email_section)
    if context.errors:
        unavailable = ", ".join(sorted(context.errors))
        sections.append(f"Unavailable data: {unavailable}. Say so if the user asks about it.")
    guidelines = "\n".join(f"{index}. {line}" for index, line in enumerate(_GUIDELINES, start=1))
    sections.append(f"Guidelines:\n{guidelines}")
    if source == MOCK_SOURCE:
        sections.append(
            "Note: Currently showing mock/demo data. In production, this would be your actual Gmail data."
        )
    else:
        sections.append("Note: This is live data from your Gmail account.")
    sections.append(
        "Always maintain a professional yet friendly tone as a trusted business advisor."
    )
    return "\n\n".join(sections)


def _jobs(context: BusinessContext) -> list[Mapping[str, Any]]:
    jobs = context.schedule.get("jobs")
    return [job for job in jobs if isinstance(job, Mapping)] if isinstance(jobs, list) else []


def _money(value: Any) -> str:
    try:
        return f"${float(value):,.2f}"
    except (TypeError, ValueError):
        return "n/a"


def fallback_reply(context: BusinessContext) -> str:
    """Plain summary used when no model is configured or the model call fails."""
    lines = ["Here's a quick snapshot of the business right now:"]
    jobs = _jobs(context)
    lines.append(f"- Today's schedule: {len(jobs)} job{'s' if len(jobs) != 1 else ''}")
    for job in jobs[:5]:
        customer = job.get("customer") or {}
        name = customer.get("name") if isinstance(customer, Mapping) else None
        lines.append(
            f"  - {job.get('scheduled_start', 'unscheduled')}: "
            f"{job.get('description', 'job')} for {name or 'a customer'}"
        )
    customers = context.customers.get("customers")
    if isinstance(customers, list):
        lines.append(f"- Recent customers: {len(customers)}")
    revenue = context.financials.get("revenue") or {}
    if "total_revenue" in revenue:
        lines.append(f"- Revenue this period: {_money(revenue['total_revenue'])}")
    invoices = context.financials.get("invoices") or {}
    if "total_outstanding" in invoices:
        count = len(invoices.get("invoices") or [])
        lines.append(
            f"- Outstanding invoices: {count} totalling {_money(invoices['total_outstanding'])}"
        )
    expenses = context.financials.get("expenses") or {}
    if "total_expenses" in expenses:
        lines.append(f"- Expenses this period: {_money(expenses['total_expenses'])}")
    emails = context.communications.get("emails") or []
    unread = [email for email in emails if email.get("unread")]
    lines.append(f"- Inbox: {len(emails)} recent emails, {len(unread)} unread")
    if context.is_email_request:
        for email in emails:
            status = "Unread" if email.get("unread") else "Read"
            lines.append(f"  - [{status}] {email.get('subject')} from {email.get('from')}")
    if context.errors:
        lines.append("Unavailable right now: " + ", ".join(sorted(context.errors)) + ".")
    if MOCK_SOURCE in context.source_flags.values():
        lines.append("Some of this is mock/demo data because a live integration is not connected.")
    return "\n".join(lines)


class Assistant:
    """Turns a message plus a BusinessContext into a reply."""

    def __init__(self, settings: AssistantSettings, client: AsyncOpenAI | None = None):
        self.settings = settings
        self._client = client

    def _get_client(self) -> AsyncOpenAI | None:
        if self._client is None and self.settings.enabled:
            client_kwargs: dict[str, Any] = {"api_key": self.settings.api_key}
            if self.settings.base_url:
                client_kwargs["base_url"] = self.settings.base_url
            self._client = AsyncOpenAI(**client_kwargs)
        return self._client

    async def reply(self, message: str, context: BusinessContext) -> str:
        client = self._get_client()
        if client is None:
            logger.info("assistant model not configured; using summary reply")
            return fallback_reply(context)
        try:
            response = await client.chat.completions.create(
                model=self.settings.model,
                max_tokens=self.settings.max_tokens,
                temperature=self.settings.temperature,
                messages=[
                    {"role": "system", "content": render_system_prompt(context)},
                    {"role": "user", "content": message},
                ],
            )
        except OpenAIError as exc:
            logger.warning("assistant completion failed error=%s", exc)
            return fallback_reply(context)
        text = response.choices[0].message.content if response.choices else None
        if not text:
            logger.warning("assistant completion returned no text")
            return fallback_reply(context)
        return text
