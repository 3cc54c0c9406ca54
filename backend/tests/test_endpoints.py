"""Tests for the four bundled tool endpoints.

Live paths run against httpx.MockTransport; offline paths rely on missing
credentials, which every endpoint treats as an upstream failure.
"""

import json
from dataclasses import replace
from urllib.parse import parse_qs

import httpx
import pytest

from fieldops.mcp.schema import ToolRequest, parse_payload, payload_provenance
from fieldops.mcp.servers.accounting import AccountingEndpoint, period_date_range
from fieldops.mcp.servers.mail import EmailEndpoint
from fieldops.mcp.servers.messaging import MessagingEndpoint
from fieldops.mcp.servers.scheduling import SchedulingEndpoint, route_summary
from fieldops.settings import UpstreamSettings

HOUSECALL = UpstreamSettings(housecall_pro_api_key="hcp-key")
QUICKBOOKS = UpstreamSettings(quickbooks_access_token="qb-token", quickbooks_company_id="123")
GMAIL = UpstreamSettings(gmail_access_token="gm-token")
TWILIO = UpstreamSettings(
    twilio_account_sid="AC1", twilio_auth_token="secret", twilio_phone_number="+15550000000"
)


class ExplodingEndpoint(SchedulingEndpoint):
    def build_tools(self):
        async def explode(arguments):
            raise RuntimeError("token=hcp-secret")

        return [replace(tool, handler=explode) for tool in super().build_tools()]


def recording_transport(handler):
    """Wrap a handler so every request is kept for assertions after the call."""
    seen: list[httpx.Request] = []

    def _handle(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    return httpx.MockTransport(_handle), seen


class TestEndpointContract:
    def test_catalogs(self):
        settings = UpstreamSettings()
        assert [tool.name for tool in SchedulingEndpoint(settings=settings).list_tools()] == [
            "get_jobs",
            "get_customers",
            "get_customer",
            "get_customer_jobs",
            "optimize_route",
            "create_follow_up_task",
            "update_customer_notes",
        ]
        assert len(AccountingEndpoint(settings=settings).list_tools()) == 16
        assert len(EmailEndpoint(settings=settings).list_tools()) == 5
        assert len(MessagingEndpoint(settings=settings).list_tools()) == 5

    @pytest.mark.asyncio
    async def test_unknown_tool_is_error_result(self):
        endpoint = SchedulingEndpoint(settings=UpstreamSettings())
        result = await endpoint.call_tool("delete_everything", {})
        assert result.is_error
        assert json.loads(result.text) == {
            "error": "unknown_tool",
            "message": "Unknown tool: delete_everything",
        }

    @pytest.mark.asyncio
    async def test_missing_required_argument_is_rejected(self):
        endpoint = SchedulingEndpoint(settings=UpstreamSettings())
        result = await endpoint.call_tool("get_jobs", {})
        body = json.loads(result.text)
        assert result.is_error
        assert body["error"] == "invalid_arguments"
        assert body["problems"] == ["missing required field date"]

    def test_invalid_arguments_do_not_reach_fallback(self):
        """A rejected call never turns into mock data."""
        endpoint = SchedulingEndpoint(settings=UpstreamSettings())
        result = endpoint.fallback_result("get_jobs", {"date": 5})
        assert result.is_error
        assert json.loads(result.text)["error"] == "invalid_arguments"

    @pytest.mark.asyncio
    async def test_unexpected_failure_hides_exception_text(self):
        result = await ExplodingEndpoint(settings=HOUSECALL).call_tool("get_customer", {"id": "1"})
        assert result.is_error
        assert result.text == "Error executing get_customer"

    @pytest.mark.asyncio
    async def test_handle_lists_tools_on_the_wire(self):
        endpoint = MessagingEndpoint(settings=UpstreamSettings())
        listing = await endpoint.handle(ToolRequest.list_tools())
        send_sms = next(tool for tool in listing["tools"] if tool["name"] == "send_sms")
        assert send_sms["inputSchema"]["required"] == ["to", "message"]
        assert await endpoint.handle(ToolRequest.ping()) == {"status": "ok"}


MINIMAL_ARGUMENTS = {
    SchedulingEndpoint: {
        "get_jobs": {"date": "2024-01-15"},
        "get_customers": {},
        "get_customer": {"id": "101"},
        "get_customer_jobs": {"customer_id": "101"},
        "optimize_route": {"date": "2024-01-15"},
        "create_follow_up_task": {"customer_id": "101", "description": "Check filter"},
        "update_customer_notes": {"customer_id": "101", "notes": "Gate code 4411"},
    },
    AccountingEndpoint: {
        "get_customers": {},
        "get_customer_details": {"customer_id": "1"},
        "get_vendors": {},
        "get_invoices": {},
        "get_outstanding_invoices": {},
        "create_invoice": {
            "customer_id": "1",
            "line_items": [{"description": "Service call", "quantity": 1, "rate": 95}],
        },
        "get_payments": {},
        "get_estimates": {},
        "get_expenses": {},
        "get_expenses_summary": {"period": "current_month"},
        "get_revenue_summary": {"period": "current_month"},
        "get_profit_loss": {"date_from": "2024-01-01", "date_to": "2024-01-31"},
        "get_accounts": {},
        "get_account_balance": {"account_id": "35"},
        "get_transactions": {},
        "get_items": {},
    },
    EmailEndpoint: {
        "get_recent_emails": {},
        "send_email": {"to": "pat@example.com", "subject": "Hi", "body": "Hello"},
        "search_emails": {"query": "invoice"},
        "get_email_thread": {"thread_id": "t1"},
        "mark_as_read": {"message_ids": ["m1", "m2"]},
    },
    MessagingEndpoint: {
        "send_sms": {"to": "+15551112222", "message": "On our way"},
        "get_recent_messages": {},
        "get_message_status": {"message_sid": "SM1"},
        "send_bulk_sms": {
            "recipients": [{"phone": "+15551112222", "name": "Pat"}],
            "message_template": "Hi {name}",
        },
        "schedule_reminder": {
            "to": "+15551112222",
            "message": "Visit tomorrow",
            "send_at": "2020-01-01T09:00:00Z",
        },
    },
}

OFFLINE_CALLS = [
    pytest.param(endpoint_type, name, arguments, id=f"{endpoint_type.__name__}.{name}")
    for endpoint_type, tools in MINIMAL_ARGUMENTS.items()
    for name, arguments in tools.items()
]


class TestOfflineFallbacks:
    @pytest.mark.parametrize("endpoint_type", list(MINIMAL_ARGUMENTS))
    def test_every_tool_has_offline_arguments(self, endpoint_type):
        endpoint = endpoint_type(settings=UpstreamSettings())
        assert {tool.name for tool in endpoint.list_tools()} == set(
            MINIMAL_ARGUMENTS[endpoint_type]
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("endpoint_type, name, arguments", OFFLINE_CALLS)
    async def test_unconfigured_upstream_serves_mock_payload(self, endpoint_type, name, arguments):
        endpoint = endpoint_type(settings=UpstreamSettings())
        result = await endpoint.call_tool(name, arguments)
        assert not result.is_error, result.text
        assert payload_provenance(parse_payload(result)) == "mock"


class TestSchedulingEndpoint:
    @pytest.mark.asyncio
    async def test_missing_credentials_serve_mock_jobs(self):
        endpoint = SchedulingEndpoint(settings=UpstreamSettings())
        payload = parse_payload(await endpoint.call_tool("get_jobs", {"date": "2024-01-15"}))
        assert len(payload["jobs"]) == 3
        assert payload["jobs"][0]["scheduled_start"] == "2024-01-15T09:00:00Z"
        assert payload["note"] == "Mock data - HouseCall Pro API unavailable"
        assert payload["source"] == "mock"
        assert payload_provenance(payload) == "mock"

    @pytest.mark.asyncio
    async def test_live_jobs_request(self):
        transport, seen = recording_transport(
            lambda request: httpx.Response(200, json={"jobs": [{"id": "j9"}]})
        )
        endpoint = SchedulingEndpoint(settings=HOUSECALL, http_transport=transport)
        payload = parse_payload(
            await endpoint.call_tool("get_jobs", {"date": "2024-01-15", "status": "scheduled"})
        )
        assert payload == {"jobs": [{"id": "j9"}]}
        assert payload_provenance(payload) == "live"
        request = seen[0]
        assert request.url.path == "/v1/jobs"
        assert request.url.params["scheduled_start"] == "2024-01-15"
        assert request.url.params["work_status"] == "scheduled"
        assert "employee_id" not in request.url.params
        assert request.headers["Authorization"] == "Bearer hcp-key"

    @pytest.mark.asyncio
    async def test_upstream_error_serves_fallback(self):
        transport, _ = recording_transport(lambda request: httpx.Response(500, text="down"))
        endpoint = SchedulingEndpoint(settings=HOUSECALL, http_transport=transport)
        payload = parse_payload(await endpoint.call_tool("get_customers", {"limit": 5}))
        assert [customer["name"] for customer in payload["customers"]] == [
            "Sarah Johnson",
            "Robert Smith",
        ]
        assert payload["source"] == "mock"

    @pytest.mark.asyncio
    async def test_append_notes_reads_then_patches(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(200, json={"id": "101", "notes": "Gate code 1234"})
            return httpx.Response(200, json={"id": "101"})

        transport, seen = recording_transport(handler)
        endpoint = SchedulingEndpoint(settings=HOUSECALL, http_transport=transport)
        payload = parse_payload(
            await endpoint.call_tool(
                "update_customer_notes",
                {"customer_id": "101", "notes": "Prefers mornings", "append": True},
            )
        )
        assert payload["success"] is True
        assert [request.method for request in seen] == ["GET", "PATCH"]
        assert json.loads(seen[1].content) == {"notes": "Gate code 1234\nPrefers mornings"}

    def test_route_summary_orders_by_start(self):
        jobs = [
            {"id": "b", "scheduled_start": "2024-01-15T14:00:00Z"},
            {"id": "none"},
            {"id": "a", "scheduled_start": "2024-01-15T09:00:00Z"},
        ]
        summary = route_summary(jobs)
        assert [job["id"] for job in summary["optimized_route"]] == ["a", "b", "none"]
        assert summary["recommended"] is True


class TestAccountingEndpoint:
    def test_period_date_range(self):
        from datetime import date

        today = date(2024, 5, 17)
        assert period_date_range("current_month", today) == {
            "start": "2024-05-01",
            "end": "2024-05-17",
        }
        assert period_date_range("last_month", today) == {"start": "2024-04-01", "end": "2024-04-30"}
        assert period_date_range("last_quarter", today) == {
            "start": "2024-01-01",
            "end": "2024-03-31",
        }
        assert period_date_range("current_year", today)["start"] == "2024-01-01"

    @pytest.mark.asyncio
    async def test_revenue_summary_fallback(self):
        endpoint = AccountingEndpoint(settings=UpstreamSettings())
        payload = parse_payload(
            await endpoint.call_tool("get_revenue_summary", {"period": "current_month"})
        )
        assert payload["total_revenue"] == 47800
        assert payload["note"] == "Mock data - QuickBooks API unavailable"

    @pytest.mark.asyncio
    async def test_unknown_period_is_rejected(self):
        endpoint = AccountingEndpoint(settings=UpstreamSettings())
        result = await endpoint.call_tool("get_revenue_summary", {"period": "fortnight"})
        assert json.loads(result.text)["error"] == "invalid_arguments"

    @pytest.mark.asyncio
    async def test_outstanding_fallback_honours_overdue_only(self):
        endpoint = AccountingEndpoint(settings=UpstreamSettings())
        everything = parse_payload(await endpoint.call_tool("get_outstanding_invoices", {}))
        overdue = parse_payload(
            await endpoint.call_tool("get_outstanding_invoices", {"overdue_only": True})
        )
        assert everything["total_outstanding"] == 625
        assert overdue["total_outstanding"] == 350

    @pytest.mark.asyncio
    async def test_live_revenue_reads_profit_and_loss(self):
        report = {
            "Header": {"ReportName": "ProfitAndLoss"},
            "Rows": {
                "Row": [
                    {
                        "group": "Income",
                        "Rows": {
                            "Row": [
                                {"ColData": [{"value": "Service Revenue"}, {"value": "900.00"}]},
                                {"ColData": [{"value": "Materials"}, {"value": "100.50"}]},
                            ]
                        },
                        "Summary": {"ColData": [{"value": "Total Income"}, {"value": "1000.50"}]},
                    }
                ]
            },
        }
        transport, seen = recording_transport(lambda request: httpx.Response(200, json=report))
        endpoint = AccountingEndpoint(settings=QUICKBOOKS, http_transport=transport)
        payload = parse_payload(
            await endpoint.call_tool("get_revenue_summary", {"period": "current_month"})
        )
        assert payload["total_revenue"] == 1000.5
        assert payload["breakdown"] == {"service_revenue": 900.0, "materials": 100.5}
        assert payload_provenance(payload) == "live"
        assert seen[0].url.host == "quickbooks.api.intuit.com"
        assert seen[0].url.path == "/v3/company/123/reports/ProfitAndLoss"
        assert seen[0].url.params["start_date"] == payload["date_range"]["start"]

    @pytest.mark.asyncio
    async def test_report_without_income_section_falls_back(self):
        transport, _ = recording_transport(lambda request: httpx.Response(200, json={"Rows": []}))
        endpoint = AccountingEndpoint(settings=QUICKBOOKS, http_transport=transport)
        payload = parse_payload(
            await endpoint.call_tool("get_revenue_summary", {"period": "current_month"})
        )
        assert payload["total_revenue"] == 47800
        assert payload["source"] == "mock"

    @pytest.mark.asyncio
    async def test_create_invoice_fallback_reports_failure(self):
        endpoint = AccountingEndpoint(settings=UpstreamSettings())
        payload = parse_payload(
            await endpoint.call_tool(
                "create_invoice",
                {"customer_id": "1", "line_items": [{"description": "Repair", "quantity": 1, "rate": 100}]},
            )
        )
        assert payload["success"] is False
        assert payload_provenance(payload) == "mock"


class TestEmailEndpoint:
    @pytest.mark.asyncio
    async def test_live_recent_emails(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/messages"):
                return httpx.Response(
                    200, json={"messages": [{"id": "a1"}], "resultSizeEstimate": 1}
                )
            return httpx.Response(
                200,
                json={
                    "id": "a1",
                    "threadId": "t1",
                    "snippet": "The unit is leaking",
                    "labelIds": ["INBOX", "UNREAD"],
                    "payload": {
                        "headers": [
                            {"name": "Subject", "value": "Leak"},
                            {"name": "From", "value": "pat@example.com"},
                        ]
                    },
                },
            )

        transport, seen = recording_transport(handler)
        endpoint = EmailEndpoint(settings=GMAIL, http_transport=transport)
        payload = parse_payload(
            await endpoint.call_tool("get_recent_emails", {"limit": 5, "query": "is:unread"})
        )
        assert payload["total_found"] == 1
        email = payload["emails"][0]
        assert email["subject"] == "Leak"
        assert email["from"] == "pat@example.com"
        assert email["unread"] is True
        assert seen[0].url.path == "/gmail/v1/users/me/messages"
        assert seen[0].url.params["q"] == "is:unread"
        assert seen[1].url.params["format"] == "metadata"

    @pytest.mark.asyncio
    async def test_unexpected_response_shape_serves_fallback(self):
        transport, _ = recording_transport(lambda request: httpx.Response(200, json=["unexpected"]))
        endpoint = EmailEndpoint(settings=GMAIL, http_transport=transport)
        result = await endpoint.call_tool("get_recent_emails", {"limit": 5})
        assert result.is_error is False
        assert "unexpected" not in result.text
        payload = parse_payload(result)
        assert payload["source"] == "mock"
        assert [email["id"] for email in payload["emails"]] == ["msg_001", "msg_002"]

    @pytest.mark.asyncio
    async def test_recent_emails_fallback(self):
        endpoint = EmailEndpoint(settings=UpstreamSettings())
        payload = parse_payload(await endpoint.call_tool("get_recent_emails", {"limit": 5}))
        assert [email["id"] for email in payload["emails"]] == ["msg_001", "msg_002"]
        assert payload["source"] == "mock"

    @pytest.mark.asyncio
    async def test_send_fallback_reports_failure(self):
        endpoint = EmailEndpoint(settings=UpstreamSettings())
        payload = parse_payload(
            await endpoint.call_tool(
                "send_email", {"to": "pat@example.com", "subject": "Hi", "body": "Hello"}
            )
        )
        assert payload["success"] is False
        assert payload["error"] == "Gmail not available"
        assert payload["note"] == "Email would be sent in real implementation"


class TestMessagingEndpoint:
    @pytest.mark.asyncio
    async def test_message_over_limit_is_rejected(self):
        endpoint = MessagingEndpoint(settings=TWILIO)
        result = await endpoint.call_tool("send_sms", {"to": "+15551112222", "message": "x" * 1601})
        body = json.loads(result.text)
        assert result.is_error
        assert body["error"] == "invalid_arguments"
        assert body["problems"] == ["message must be at most 1600 characters, got 1601"]

    @pytest.mark.asyncio
    async def test_live_send_posts_form(self):
        transport, seen = recording_transport(
            lambda request: httpx.Response(
                201, json={"sid": "SM1", "status": "queued", "to": "+15551112222"}
            )
        )
        endpoint = MessagingEndpoint(settings=TWILIO, http_transport=transport)
        payload = parse_payload(
            await endpoint.call_tool("send_sms", {"to": "+15551112222", "message": "On my way"})
        )
        assert payload["success"] is True
        assert payload["message_sid"] == "SM1"
        request = seen[0]
        assert request.url.path == "/2010-04-01/Accounts/AC1/Messages.json"
        assert parse_qs(request.content.decode()) == {
            "To": ["+15551112222"],
            "From": ["+15550000000"],
            "Body": ["On my way"],
        }
        assert request.headers["Authorization"].startswith("Basic ")

    @pytest.mark.asyncio
    async def test_send_fallback_when_unconfigured(self):
        endpoint = MessagingEndpoint(settings=UpstreamSettings())
        payload = parse_payload(
            await endpoint.call_tool("send_sms", {"to": "+15551112222", "message": "Hi"})
        )
        assert payload["success"] is False
        assert payload["error"] == "Twilio not configured"

    @pytest.mark.asyncio
    async def test_bulk_send_reports_per_recipient(self):
        def handler(request: httpx.Request) -> httpx.Response:
            form = parse_qs(request.content.decode())
            if form["To"] == ["+15550000002"]:
                return httpx.Response(400, json={"message": "invalid number"})
            return httpx.Response(201, json={"sid": "SM-ok", "status": "queued"})

        transport, seen = recording_transport(handler)
        endpoint = MessagingEndpoint(settings=TWILIO, http_transport=transport)
        endpoint.bulk_send_delay_seconds = 0
        payload = parse_payload(
            await endpoint.call_tool(
                "send_bulk_sms",
                {
                    "recipients": [
                        {"phone": "+15550000001", "name": "Pat"},
                        {"phone": "+15550000002"},
                    ],
                    "message_template": "Hi {name}, see you tomorrow",
                },
            )
        )
        assert payload["total_sent"] == 2
        assert payload["successful"] == 1
        assert payload["failed"] == 1
        assert parse_qs(seen[0].content.decode())["Body"] == ["Hi Pat, see you tomorrow"]
        assert parse_qs(seen[1].content.decode())["Body"] == ["Hi Customer, see you tomorrow"]

    @pytest.mark.asyncio
    async def test_future_reminder_is_recorded_locally(self):
        endpoint = MessagingEndpoint(settings=UpstreamSettings())
        payload = parse_payload(
            await endpoint.call_tool(
                "schedule_reminder",
                {"to": "+15551112222", "message": "Tomorrow 9am", "send_at": "2999-01-01T09:00:00Z"},
            )
        )
        assert payload["scheduled"] is True
        assert payload_provenance(payload) == "mock"
