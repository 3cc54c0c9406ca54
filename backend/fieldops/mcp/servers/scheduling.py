"""HouseCall Pro backed endpoint for jobs, customers and follow-up tasks."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Mapping

from ..schema import PeerId, ToolDescriptor
from ..server import EndpointTool, ToolEndpoint
from ..upstream import UpstreamClient, require

GET_JOBS_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "date": {"type": "string", "description": "Date in YYYY-MM-DD format"},
        "status": {
            "type": "string",
            "enum": ["scheduled", "in_progress", "completed", "cancelled"],
            "description": "Filter by job status",
        },
        "technician_id": {"type": "string", "description": "Filter by specific technician"},
    },
    "required": ["date"],
}

GET_CUSTOMERS_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "limit": {
            "type": "integer",
            "minimum": 1,
            "maximum": 100,
            "description": "Number of customers to return (max 100)",
        },
        "sort": {
            "type": "string",
            "enum": ["created_at", "updated_at", "name"],
            "description": "Sort field",
        },
        "order": {"type": "string", "enum": ["asc", "desc"], "description": "Sort order"},
    },
}

GET_CUSTOMER_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {"id": {"type": "string", "description": "Customer ID"}},
    "required": ["id"],
}

GET_CUSTOMER_JOBS_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "customer_id": {"type": "string", "description": "Customer ID"},
        "limit": {"type": "integer", "minimum": 1, "description": "Number of jobs to return"},
    },
    "required": ["customer_id"],
}

OPTIMIZE_ROUTE_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "date": {"type": "string", "description": "Date in YYYY-MM-DD format"},
        "technician_id": {"type": "string", "description": "Technician ID"},
    },
    "required": ["date"],
}

CREATE_FOLLOW_UP_TASK_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "customer_id": {"type": "string", "description": "Customer ID"},
        "description": {"type": "string", "description": "Task description"},
        "due_date": {"type": "string", "description": "Due date in YYYY-MM-DD format"},
        "priority": {
            "type": "string",
            "enum": ["low", "medium", "high"],
            "description": "Task priority",
        },
    },
    "required": ["customer_id", "description"],
}

UPDATE_CUSTOMER_NOTES_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "customer_id": {"type": "string", "description": "Customer ID"},
        "notes": {"type": "string", "description": "Notes to add or update"},
        "append": {
            "type": "boolean",
            "description": "Whether to append to existing notes or replace",
        },
    },
    "required": ["customer_id", "notes"],
}

# Route "optimization" is a sort by start time; the savings are fixed estimates.
ROUTE_TIME_SAVED = "45 minutes"
ROUTE_FUEL_SAVED = "$12.50"

_TECHNICIAN = {"id": "tech1", "name": "Mike Rodriguez"}

_SARAH = {
    "id": "101",
    "name": "Sarah Johnson",
    "email": "sarah.johnson@email.com",
    "phone": "(555) 123-4567",
    "address": {"street": "123 Oak Street", "city": "Springfield", "state": "IL", "zip": "62701"},
    "created_at": "2021-03-15T10:30:00Z",
    "customer_rating": 5.0,
    "notes": "Preferred customer - always pays on time. HVAC system warranty expires March 2024.",
}


def mock_jobs(date: str) -> list[dict[str, Any]]:
    """Three demo jobs for one technician on the given day."""
    rows = [
        ("1", "101", "Sarah Johnson", "123 Oak Street, Springfield, IL 62701",
         "09:00", "10:30", "completed", 350,
         "HVAC Maintenance - Annual inspection and cleaning"),
        ("2", "102", "Robert Smith", "456 Pine Avenue, Springfield, IL 62704",
         "11:30", "13:00", "in_progress", 275, "Plumbing Repair - Kitchen sink leak"),
        ("3", "103", "Emily Davis", "789 Elm Drive, Springfield, IL 62702",
         "14:00", "15:30", "scheduled", 180,
         "Electrical Installation - New outlet installation"),
    ]
    return [
        {
            "id": job_id,
            "customer": {"id": customer_id, "name": name, "address": address},
            "scheduled_start": f"{date}T{start}:00Z",
            "scheduled_end": f"{date}T{end}:00Z",
            "work_status": status,
            "total_amount": amount,
            "description": description,
            "technician": dict(_TECHNICIAN),
        }
        for job_id, customer_id, name, address, start, end, status, amount, description in rows
    ]


def mock_customers() -> list[dict[str, Any]]:
    return [
        {**_SARAH, "last_job_date": "2024-01-15T09:00:00Z", "total_jobs": 12},
        {
            "id": "102",
            "name": "Robert Smith",
            "email": "robert.smith@email.com",
            "phone": "(555) 987-6543",
            "address": {
                "street": "456 Pine Avenue",
                "city": "Springfield",
                "state": "IL",
                "zip": "62704",
            },
            "created_at": "2023-08-22T14:15:00Z",
            "last_job_date": "2024-01-15T11:30:00Z",
            "total_jobs": 3,
            "customer_rating": 4.2,
            "notes": "Tends to call multiple times for updates. Good payment history.",
        },
    ]


def _fallback_jobs(arguments: Mapping[str, Any]) -> dict[str, Any]:
    return {"jobs": mock_jobs(arguments["date"])}


def _fallback_customers(arguments: Mapping[str, Any]) -> dict[str, Any]:
    return {"customers": mock_customers()}


def _fallback_customer(arguments: Mapping[str, Any]) -> dict[str, Any]:
    return {
        **_SARAH,
        "id": arguments["id"],
        "total_jobs": 12,
        "total_spent": 4200,
        "payment_terms": "Net 30",
        "preferred_technician": "Mike Rodriguez",
        "tags": ["VIP", "HVAC Customer"],
        "emergency_contact": {
            "name": "John Johnson",
            "phone": "(555) 123-4568",
            "relationship": "Spouse",
        },
    }


def _fallback_customer_jobs(arguments: Mapping[str, Any]) -> dict[str, Any]:
    history = [
        {
            "id": "1",
            "date": "2024-01-15T09:00:00Z",
            "service_type": "HVAC Maintenance",
            "amount": 350,
            "status": "completed",
            "technician": "Mike Rodriguez",
            "notes": "Annual inspection completed. System running efficiently.",
        },
        {
            "id": "2",
            "date": "2023-10-20T13:30:00Z",
            "service_type": "HVAC Repair",
            "amount": 275,
            "status": "completed",
            "technician": "Mike Rodriguez",
            "notes": "Replaced faulty thermostat. Customer very satisfied.",
        },
        {
            "id": "3",
            "date": "2023-06-15T11:00:00Z",
            "service_type": "HVAC Installation",
            "amount": 2850,
            "status": "completed",
            "technician": "Mike Rodriguez",
            "notes": "New HVAC system installed. 3-year warranty provided.",
        },
    ]
    return {"jobs": history, "total_jobs": len(history)}


def _fallback_route(arguments: Mapping[str, Any]) -> dict[str, Any]:
    return route_summary(mock_jobs(arguments["date"]))


def _fallback_task(arguments: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "success": True,
        "task_id": f"task_{int(time.time() * 1000)}",
        "message": "Follow-up task created successfully",
        "note": "Mock response - HouseCall Pro API unavailable",
    }


def _fallback_notes(arguments: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "success": True,
        "message": "Customer notes updated successfully",
        "note": "Mock response - HouseCall Pro API unavailable",
    }


def _start_key(job: Mapping[str, Any]) -> datetime:
    raw = job.get("scheduled_start")
    if isinstance(raw, str):
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return datetime.max.replace(tzinfo=timezone.utc)


def route_summary(jobs: list[dict[str, Any]]) -> dict[str, Any]:
    """Order jobs by scheduled start; sorted() is stable for equal starts."""
    return {
        "optimized_route": sorted(jobs, key=_start_key),
        "time_saved": ROUTE_TIME_SAVED,
        "fuel_saved": ROUTE_FUEL_SAVED,
        "recommended": True,
    }


def _unwrap(payload: Any, key: str) -> Any:
    if isinstance(payload, Mapping) and key in payload:
        return payload[key]
    return payload


class SchedulingEndpoint(ToolEndpoint):
    """Jobs, customers and tasks from HouseCall Pro."""

    peer = PeerId.SCHEDULING
    server_name = "housecall-pro-server"
    mock_note = "Mock data - HouseCall Pro API unavailable"

    def build_tools(self):
        def tool(name, description, schema, handler, fallback):
            return EndpointTool(
                ToolDescriptor(name=name, description=description, input_schema=schema),
                handler,
                fallback,
            )

        return [
            tool("get_jobs", "Get jobs/appointments for a specific date",
                 GET_JOBS_INPUT_SCHEMA, self._handle_get_jobs, _fallback_jobs),
            tool("get_customers", "Get list of customers",
                 GET_CUSTOMERS_INPUT_SCHEMA, self._handle_get_customers, _fallback_customers),
            tool("get_customer", "Get detailed information about a specific customer",
                 GET_CUSTOMER_INPUT_SCHEMA, self._handle_get_customer, _fallback_customer),
            tool("get_customer_jobs", "Get job history for a specific customer",
                 GET_CUSTOMER_JOBS_INPUT_SCHEMA, self._handle_get_customer_jobs,
                 _fallback_customer_jobs),
            tool("optimize_route", "Optimize route for technician jobs",
                 OPTIMIZE_ROUTE_INPUT_SCHEMA, self._handle_optimize_route, _fallback_route),
            tool("create_follow_up_task", "Create a follow-up task for a customer",
                 CREATE_FOLLOW_UP_TASK_INPUT_SCHEMA, self._handle_create_task, _fallback_task),
            tool("update_customer_notes", "Update customer notes",
                 UPDATE_CUSTOMER_NOTES_INPUT_SCHEMA, self._handle_update_notes,
                 _fallback_notes),
        ]

    def _client(self) -> UpstreamClient:
        api_key = require(
            self.settings.housecall_pro_api_key,
            "HouseCall Pro API key not configured",
            peer=self.peer.value,
        )
        return UpstreamClient(
            "HouseCall Pro",
            self.settings.housecall_pro_base_url,
            peer=self.peer.value,
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            timeout=self.settings.timeout_seconds,
            transport=self.http_transport,
        )

    async def _fetch_jobs(self, arguments: Mapping[str, Any]) -> list[Any]:
        payload = await self._client().get(
            "jobs",
            scheduled_start=arguments.get("date"),
            work_status=arguments.get("status"),
            employee_id=arguments.get("technician_id"),
        )
        jobs = _unwrap(payload, "jobs")
        return jobs if isinstance(jobs, list) else []

    async def _handle_get_jobs(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        return {"jobs": await self._fetch_jobs(arguments)}

    async def _handle_get_customers(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        payload = await self._client().get(
            "customers",
            page_size=arguments.get("limit"),
            sort_by=arguments.get("sort"),
            sort_direction=arguments.get("order"),
        )
        customers = _unwrap(payload, "customers")
        return {"customers": customers if isinstance(customers, list) else []}

    async def _handle_get_customer(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        payload = await self._client().get(f"customers/{arguments['id']}")
        return dict(payload) if isinstance(payload, Mapping) else {"customer": payload}

    async def _handle_get_customer_jobs(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        payload = await self._client().get(
            "jobs",
            customer_id=arguments["customer_id"],
            page_size=arguments.get("limit", 10),
        )
        jobs = _unwrap(payload, "jobs")
        jobs = jobs if isinstance(jobs, list) else []
        return {"jobs": jobs, "total_jobs": len(jobs)}

    async def _handle_optimize_route(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        jobs = await self._fetch_jobs(
            {"date": arguments["date"], "technician_id": arguments.get("technician_id")}
        )
        return route_summary([job for job in jobs if isinstance(job, dict)])

    async def _handle_create_task(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        task = {
            "customer_id": arguments["customer_id"],
            "title": arguments["description"],
            "due_date": arguments.get("due_date"),
            "priority": arguments.get("priority") or "medium",
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        payload = await self._client().request("POST", "tasks", json=task)
        return {"success": True, "task": payload}

    async def _handle_update_notes(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        client = self._client()
        customer_id = arguments["customer_id"]
        notes = arguments["notes"]
        if arguments.get("append"):
            existing = await client.get(f"customers/{customer_id}")
            current = existing.get("notes") if isinstance(existing, Mapping) else None
            if isinstance(current, str) and current:
                notes = f"{current}\n{notes}"
        payload = await client.request("PATCH", f"customers/{customer_id}", json={"notes": notes})
        return {"success": True, "customer": payload}
