"""Per-request business snapshot assembled from every peer concurrently.

``build_context`` starts the schedule, customers, financials and
communications fetches together and waits for all of them. A field whose
peer is unreachable, times out, or returns an unreadable payload is
replaced by a neutral value and reported in ``errors``; the rest of the
snapshot is still returned. Cancelling ``build_context`` cancels every
in-flight fetch.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Mapping

from pydantic import BaseModel, Field

from ..errors import IntegrationError, ParseFailure
from ..mcp.registry import utc_now
from ..mcp.schema import LIVE_SOURCE, MOCK_SOURCE, PeerId, parse_payload, payload_provenance
from ..settings import IntegrationSettings
from .fallback import mock_emails
from .intents import DEFAULT_EMAIL_LIMIT, MAX_EMAIL_LIMIT, MessageIntent, classify_message

logger = logging.getLogger(__name__)

UNAVAILABLE = "unavailable"
DEFAULT_EMAIL_QUERY = "is:unread OR newer_than:1d"
RECENT_SMS_LIMIT = 10

SCHEDULE_FIELD = "schedule"
CUSTOMERS_FIELD = "customers"
FINANCIALS_FIELD = "financials"
COMMUNICATIONS_FIELD = "communications"


def _empty_communications() -> dict[str, Any]:
    return {"emails": [], "sms": [], "source": UNAVAILABLE}


class BusinessContext(BaseModel):
    """Snapshot handed to the assistant and returned to the dashboard."""

    schedule: dict[str, Any] = Field(default_factory=dict)
    customers: dict[str, Any] = Field(default_factory=dict)
    financials: dict[str, Any] = Field(default_factory=dict)
    communications: dict[str, Any] = Field(default_factory=_empty_communications)
    timestamp: str = Field(default_factory=utc_now)
    source_flags: dict[str, str] = Field(default_factory=dict)
    errors: dict[str, str] = Field(default_factory=dict)
    error: str | None = None
    is_email_request: bool = False
    request_context: dict[str, Any] | None = None


@dataclass
class EmailBatch:
    emails: list[dict[str, Any]]
    source: str
    error: str | None = None


@dataclass
class FieldOutcome:
    value: Any
    source: str
    error: str | None = None


def today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


async def _gather_strict(*awaitables: Awaitable[Any]) -> list[Any]:
    """Await everything, then re-raise the first failure."""
    results = await asyncio.gather(*awaitables, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return list(results)


class ContextAggregator:
    """Builds BusinessContext snapshots through the integration client."""

    def __init__(self, client: Any, settings: IntegrationSettings | None = None):
        self.client = client
        self.settings = settings or IntegrationSettings()

    async def _fetch(
        self,
        peer: PeerId,
        tool_name: str,
        arguments: Mapping[str, Any],
        *,
        fallback: bool = False,
    ) -> dict[str, Any]:
        if fallback:
            result = await self.client.invoke_with_fallback(peer, tool_name, arguments)
        else:
            result = await self.client.invoke(peer, tool_name, arguments)
        return parse_payload(result)

    async def get_schedule(self, day: str | None = None, *, fallback: bool = False) -> dict[str, Any]:
        return await self._fetch(
            PeerId.SCHEDULING,
            "get_jobs",
            {"date": day or today(), "status": "scheduled"},
            fallback=fallback,
        )

    async def get_recent_customers(
        self, limit: int = 10, *, fallback: bool = False
    ) -> dict[str, Any]:
        return await self._fetch(
            PeerId.SCHEDULING,
            "get_customers",
            {"limit": limit, "sort": "updated_at", "order": "desc"},
            fallback=fallback,
        )

    async def get_financial_summary(
        self, period: str = "current_month", *, fallback: bool = False
    ) -> dict[str, Any]:
        revenue, invoices, expenses = await _gather_strict(
            self._fetch(PeerId.ACCOUNTING, "get_revenue_summary", {"period": period}, fallback=fallback),
            self._fetch(PeerId.ACCOUNTING, "get_outstanding_invoices", {}, fallback=fallback),
            self._fetch(PeerId.ACCOUNTING, "get_expenses_summary", {"period": period}, fallback=fallback),
        )
        return {"revenue": revenue, "invoices": invoices, "expenses": expenses}

    async def get_emails(
        self, limit: int = DEFAULT_EMAIL_LIMIT, query: str = DEFAULT_EMAIL_QUERY
    ) -> EmailBatch:
        """Fetch recent mail, falling back to the demo inbox.

        The demo inbox is served when FORCE_MOCK_DATA is set, when the email
        peer cannot be reached and when its payload cannot be read.
        """
        limit = max(1, min(MAX_EMAIL_LIMIT, int(limit)))
        if self.settings.force_mock_data:
            return EmailBatch(mock_emails(limit), MOCK_SOURCE)
        try:
            payload = await self._fetch(
                PeerId.EMAIL, "get_recent_emails", {"limit": limit, "query": query}
            )
            emails = payload.get("emails")
            if not isinstance(emails, list):
                raise ParseFailure("email payload has no emails list", peer=PeerId.EMAIL.value)
        except IntegrationError as exc:
            logger.warning(
                "email fetch failed; serving demo inbox error=%s",
                exc.message,
                extra={"peer": PeerId.EMAIL.value},
            )
            return EmailBatch(mock_emails(limit), MOCK_SOURCE, exc.message)
        return EmailBatch(emails, payload_provenance(payload))

    async def get_recent_messages(self, limit: int = RECENT_SMS_LIMIT) -> list[dict[str, Any]]:
        """Best effort: an unreachable messaging peer yields an empty list."""
        try:
            payload = await self._fetch(PeerId.MESSAGING, "get_recent_messages", {"limit": limit})
        except IntegrationError as exc:
            logger.info(
                "sms history unavailable error=%s", exc.message, extra={"peer": PeerId.MESSAGING.value}
            )
            return []
        messages = payload.get("messages")
        return messages if isinstance(messages, list) else []

    async def _communications(self, intent: MessageIntent | None) -> FieldOutcome:
        if intent is not None and intent.is_email_request:
            batch = await self.get_emails(intent.email_limit)
            sms: list[dict[str, Any]] = []
        else:
            batch, sms = await _gather_strict(
                self.get_emails(DEFAULT_EMAIL_LIMIT), self.get_recent_messages()
            )
        value = {"emails": batch.emails, "sms": sms, "source": batch.source}
        return FieldOutcome(value, batch.source, batch.error)

    async def get_recent_communications(self) -> dict[str, Any]:
        outcome = await self._communications(None)
        return outcome.value

    async def _schedule(self) -> FieldOutcome:
        payload = await self.get_schedule()
        return FieldOutcome(payload, payload_provenance(payload))

    async def _customers(self) -> FieldOutcome:
        payload = await self.get_recent_customers()
        return FieldOutcome(payload, payload_provenance(payload))

    async def _financials(self) -> FieldOutcome:
        summary = await self.get_financial_summary()
        sources = {payload_provenance(part) for part in summary.values()}
        return FieldOutcome(summary, MOCK_SOURCE if MOCK_SOURCE in sources else LIVE_SOURCE)

    async def _field(
        self,
        name: str,
        fetch: Awaitable[FieldOutcome],
        neutral: Any,
        timeout: float | None,
    ) -> FieldOutcome:
        try:
            if timeout is None:
                return await fetch
            return await asyncio.wait_for(fetch, timeout)
        except asyncio.TimeoutError:
            error = f"timed out after {timeout:g}s"
        except IntegrationError as exc:
            error = exc.message
        logger.warning("context field substituted field=%s error=%s", name, error)
        return FieldOutcome(neutral, UNAVAILABLE, error)

    async def build_context(
        self,
        caller_context: Mapping[str, Any] | None = None,
        message: str | None = None,
        *,
        timeout: float | None = None,
    ) -> BusinessContext:
        """Gather all four fields concurrently.

        ``timeout`` bounds each field; since they run side by side it also
        bounds the whole call.
        """
        intent = classify_message(message, caller_context)
        names = (SCHEDULE_FIELD, CUSTOMERS_FIELD, FINANCIALS_FIELD, COMMUNICATIONS_FIELD)
        outcomes = await asyncio.gather(
            self._field(SCHEDULE_FIELD, self._schedule(), {}, timeout),
            self._field(CUSTOMERS_FIELD, self._customers(), {}, timeout),
            self._field(FINANCIALS_FIELD, self._financials(), {}, timeout),
            self._field(COMMUNICATIONS_FIELD, self._communications(intent), _empty_communications(), timeout),
        )
        by_name = dict(zip(names, outcomes))
        errors = {name: outcome.error for name, outcome in by_name.items() if outcome.error}
        error = None
        if errors:
            error = "Unable to fetch complete business context: " + ", ".join(sorted(errors))
        return BusinessContext(
            schedule=by_name[SCHEDULE_FIELD].value,
            customers=by_name[CUSTOMERS_FIELD].value,
            financials=by_name[FINANCIALS_FIELD].value,
            communications=by_name[COMMUNICATIONS_FIELD].value,
            source_flags={name: outcome.source for name, outcome in by_name.items()},
            errors=errors,
            error=error,
            is_email_request=intent.is_email_request,
            request_context=dict(caller_context) if caller_context else None,
        )
