"""HTTP route tests against the app with bundled offline peers."""

import pytest
from fastapi.testclient import TestClient

from fieldops.container import build_container
from fieldops.main import create_app
from fieldops.mcp.schema import PeerId
from fieldops.settings import AssistantSettings, IntegrationSettings, Settings, UpstreamSettings

from tests.fakes import builtin_servers


@pytest.fixture
def api(offline_settings):
    app = create_app(build_container(settings=offline_settings))
    with TestClient(app) as client:
        yield client


@pytest.fixture
def scheduling_only_api():
    settings = Settings(
        integrations=IntegrationSettings(servers=builtin_servers(PeerId.SCHEDULING)),
        upstream=UpstreamSettings(),
        assistant=AssistantSettings(),
    )
    app = create_app(build_container(settings=settings))
    with TestClient(app) as client:
        yield client


class TestHealthAndStatus:
    def test_health(self, api):
        assert api.get("/health").json() == {"status": "ok"}

    def test_status_lists_every_integration(self, api):
        body = api.get("/api/integrations/status").json()
        assert body["success"] is True
        assert [entry["id"] for entry in body["integrations"]] == [
            "quickbooks",
            "housecall-pro",
            "gmail",
            "sms",
        ]
        assert {entry["status"] for entry in body["integrations"]} == {"connected"}
        assert body["integrations"][0]["name"] == "QuickBooks"

    def test_unconfigured_peers_are_disconnected(self, scheduling_only_api):
        body = scheduling_only_api.get("/api/integrations/status").json()
        statuses = {entry["id"]: entry["status"] for entry in body["integrations"]}
        assert statuses == {
            "quickbooks": "disconnected",
            "housecall-pro": "connected",
            "gmail": "disconnected",
            "sms": "disconnected",
        }

    def test_refresh(self, api):
        response = api.post(
            "/api/integrations/status", json={"integrationId": "gmail", "action": "refresh"}
        )
        assert response.status_code == 200
        assert response.json()["integration"]["status"] == "connected"

    def test_invalid_action(self, api):
        response = api.post(
            "/api/integrations/status", json={"integrationId": "gmail", "action": "sync"}
        )
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Invalid action"}

    def test_unknown_integration(self, api):
        response = api.post(
            "/api/integrations/status", json={"integrationId": "salesforce", "action": "refresh"}
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Unknown integration"


class TestDataRoutes:
    def test_schedule(self, api):
        body = api.get("/api/data/schedule", params={"date": "2024-01-15"}).json()
        assert body["success"] is True
        assert body["date"] == "2024-01-15"
        assert len(body["schedule"]["jobs"]) == 3

    def test_customers(self, api):
        body = api.get("/api/data/customers").json()
        assert len(body["customers"]["customers"]) == 2

    def test_single_customer_with_history(self, api):
        body = api.get("/api/data/customers", params={"id": "101"}).json()
        assert body["customer"]["name"] == "Sarah Johnson"
        assert body["customer"]["jobHistory"]["total_jobs"] == 3

    def test_financials(self, api):
        body = api.get("/api/data/financials", params={"period": "last_month"}).json()
        assert body["period"] == "last_month"
        assert body["financials"]["revenue"]["total_revenue"] == 47800
        assert body["financials"]["invoices"]["total_outstanding"] == 625
        assert body["financials"]["expenses"]["total_expenses"] == 12500

    def test_unknown_period(self, api):
        response = api.get("/api/data/financials", params={"period": "fortnight"})
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_unconfigured_peer_serves_mock_data(self, scheduling_only_api):
        body = scheduling_only_api.get("/api/data/financials").json()
        assert body["success"] is True
        assert body["financials"]["revenue"]["source"] == "mock"


class TestCommunications:
    def test_send_email(self, api):
        response = api.post(
            "/api/communications/send",
            json={"type": "email", "to": "pat@example.com", "subject": "Hi", "message": "Hello"},
        )
        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["type"] == "email"
        assert body["result"]["error"] == "Gmail not available"
        assert body["timestamp"]

    def test_sms_over_limit_is_rejected(self, api):
        response = api.post(
            "/api/communications/send",
            json={"type": "sms", "to": "+15551112222", "message": "x" * 1601},
        )
        assert response.status_code == 400
        assert "at most 1600 characters" in response.json()["error"]

    def test_invalid_type(self, api):
        response = api.post(
            "/api/communications/send", json={"type": "fax", "to": "x", "message": "hi"}
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid communication type"

    def test_unconfigured_peer_is_503(self, scheduling_only_api):
        response = scheduling_only_api.post(
            "/api/communications/send",
            json={"type": "email", "to": "pat@example.com", "message": "Hello"},
        )
        assert response.status_code == 503
        assert response.json() == {
            "success": False,
            "error": "Failed to send communication: Gmail is not configured",
        }


class TestActions:
    def test_optimize_route(self, api):
        response = api.post(
            "/api/actions", json={"action": "optimize-route", "parameters": {"date": "2024-01-15"}}
        )
        body = response.json()
        assert response.status_code == 200
        assert body["action"] == "optimize-route"
        assert len(body["result"]["optimized_route"]) == 3

    def test_unknown_action(self, api):
        response = api.post("/api/actions", json={"action": "launch-rocket"})
        assert response.status_code == 400
        assert response.json()["error"] == "Unknown action"


class TestConversation:
    def test_email_question(self, api):
        response = api.post("/api/conversation", json={"message": "Show me my emails"})
        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert "Inbox:" in body["response"]
        assert body["context"]["is_email_request"] is True
        assert body["context"]["errors"] == {}
        action_ids = [action["id"] for action in body["actions"]]
        assert action_ids[:2] == ["mark-emails-read", "compose-email"]

    def test_degraded_context_is_still_answered(self, scheduling_only_api):
        body = scheduling_only_api.post(
            "/api/conversation", json={"message": "How is business?"}
        ).json()
        assert body["success"] is True
        assert set(body["context"]["errors"]) == {"financials", "communications"}
        assert body["context"]["communications"]["source"] == "mock"
        assert "Unavailable right now: communications, financials." in body["response"]

    def test_empty_message_is_rejected(self, api):
        assert api.post("/api/conversation", json={"message": ""}).status_code == 422
