"""QuickBooks Online backed endpoint for customers, invoices, expenses and reports."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Iterable, Mapping

from ..schema import PeerId, ToolDescriptor
from ..server import EndpointTool, ToolEndpoint
from ..upstream import UpstreamClient, require
from ...errors import UpstreamFailure

PERIODS = ["current_month", "last_month", "current_quarter", "last_quarter", "current_year"]

_DATE_FROM = {"type": "string", "description": "Start date filter (YYYY-MM-DD)"}
_DATE_TO = {"type": "string", "description": "End date filter (YYYY-MM-DD)"}
_CUSTOMER_FILTER = {"type": "string", "description": "Filter by specific customer"}

GET_CUSTOMERS_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "active_only": {"type": "boolean", "description": "Only return active customers"},
        "include_balance": {
            "type": "boolean",
            "description": "Include customer balance information",
        },
        "include_outstanding_invoices": {
            "type": "boolean",
            "description": "Include outstanding invoices for each customer",
        },
    },
}

GET_CUSTOMER_DETAILS_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {"customer_id": {"type": "string", "description": "QuickBooks customer ID"}},
    "required": ["customer_id"],
}

GET_VENDORS_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "active_only": {"type": "boolean", "description": "Only return active vendors"},
        "include_bills": {
            "type": "boolean",
            "description": "Include outstanding bills for each vendor",
        },
    },
}

GET_INVOICES_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "status": {
            "type": "string",
            "enum": ["all", "open", "paid", "overdue"],
            "description": "Filter by invoice status",
        },
        "date_from": _DATE_FROM,
        "date_to": _DATE_TO,
        "customer_id": _CUSTOMER_FILTER,
    },
}

GET_OUTSTANDING_INVOICES_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "overdue_only": {"type": "boolean", "description": "Only return overdue invoices"},
        "include_customer_details": {
            "type": "boolean",
            "description": "Include customer contact information",
        },
    },
}

CREATE_INVOICE_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "customer_id": {"type": "string", "description": "QuickBooks customer ID"},
        "line_items": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "description": {"type": "string"},
                    "quantity": {"type": "number"},
                    "rate": {"type": "number"},
                    "item_id": {"type": "string", "description": "QuickBooks item ID"},
                },
            },
        },
        "due_date": {"type": "string", "description": "Invoice due date (YYYY-MM-DD)"},
        "memo": {"type": "string", "description": "Invoice memo/notes"},
    },
    "required": ["customer_id", "line_items"],
}

GET_PAYMENTS_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "date_from": _DATE_FROM,
        "date_to": _DATE_TO,
        "payment_method": {
            "type": "string",
            "enum": ["all", "check", "credit_card", "cash", "bank_transfer"],
            "description": "Filter by payment method",
        },
        "customer_id": _CUSTOMER_FILTER,
    },
}

GET_ESTIMATES_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "status": {
            "type": "string",
            "enum": ["all", "draft", "sent", "accepted", "declined"],
            "description": "Filter by estimate status",
        },
        "customer_id": _CUSTOMER_FILTER,
    },
}

GET_EXPENSES_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "date_from": _DATE_FROM,
        "date_to": _DATE_TO,
        "category": {"type": "string", "description": "Filter by expense category"},
        "payment_method": {
            "type": "string",
            "enum": ["all", "credit_card", "cash", "check", "bank_transfer"],
            "description": "Filter by payment method",
        },
    },
}


def _period_schema(subject: str) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "period": {
                "type": "string",
                "enum": list(PERIODS),
                "description": f"Time period for {subject}",
            }
        },
        "required": ["period"],
    }


GET_PROFIT_LOSS_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "date_from": {"type": "string", "description": "Start date (YYYY-MM-DD)"},
        "date_to": {"type": "string", "description": "End date (YYYY-MM-DD)"},
    },
    "required": ["date_from", "date_to"],
}

GET_ACCOUNTS_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "account_type": {
            "type": "string",
            "enum": ["all", "Bank", "Income", "Expense", "Asset", "Liability", "Equity"],
            "description": "Filter by account type",
        },
        "active_only": {"type": "boolean", "description": "Only return active accounts"},
    },
}

GET_ACCOUNT_BALANCE_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {"account_id": {"type": "string", "description": "QuickBooks account ID"}},
    "required": ["account_id"],
}

GET_TRANSACTIONS_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "transaction_type": {
            "type": "string",
            "enum": ["all", "JournalEntry", "Deposit", "Transfer", "Bill", "Payment"],
            "description": "Filter by transaction type",
        },
        "date_from": _DATE_FROM,
        "date_to": _DATE_TO,
        "account_id": {"type": "string", "description": "Filter by specific account"},
    },
}

GET_ITEMS_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "item_type": {
            "type": "string",
            "enum": ["all", "Service", "NonInventory", "Inventory"],
            "description": "Filter by item type",
        },
        "active_only": {"type": "boolean", "description": "Only return active items"},
    },
}


def period_date_range(period: str, today: date | None = None) -> dict[str, str]:
    """Return the inclusive ISO start/end dates covered by a reporting period.

    Current periods end today; closed periods (last month, last quarter) end
    on their final calendar day. Unknown periods fall back to the current
    month.
    """

    today = today or date.today()
    if period == "last_month":
        end = today.replace(day=1) - timedelta(days=1)
        start = end.replace(day=1)
    elif period == "current_quarter":
        start = date(today.year, (today.month - 1) // 3 * 3 + 1, 1)
        end = today
    elif period == "last_quarter":
        quarter_start = date(today.year, (today.month - 1) // 3 * 3 + 1, 1)
        end = quarter_start - timedelta(days=1)
        start = date(end.year, end.month - 2, 1)
    elif period == "current_year":
        start = date(today.year, 1, 1)
        end = today
    else:
        start = today.replace(day=1)
        end = today
    return {"start": start.isoformat(), "end": end.isoformat()}


def _query(entity: str, conditions: Iterable[str] = (), *, order_by: str | None = None) -> str:
    query = f"SELECT * FROM {entity}"
    conditions = [condition for condition in conditions if condition]
    if conditions:
        query += " WHERE " + " AND ".join(conditions)
    if order_by:
        query += f" ORDER BY {order_by}"
    return query


def _date_conditions(arguments: Mapping[str, Any]) -> list[str]:
    conditions = []
    if arguments.get("date_from"):
        conditions.append(f"TxnDate >= '{arguments['date_from']}'")
    if arguments.get("date_to"):
        conditions.append(f"TxnDate <= '{arguments['date_to']}'")
    return conditions


def _amount(rows: Iterable[Mapping[str, Any]], key: str) -> float:
    return sum(row.get(key) or 0 for row in rows)


def _matches_method(row: Mapping[str, Any], method: str) -> bool:
    ref = row.get("PaymentMethodRef") or {}
    name = str(ref.get("name") or "").lower().replace(" ", "_")
    return name == method.lower()


def _report_section(report: Mapping[str, Any], group: str) -> dict[str, Any]:
    """Read one top-level section (Income, Expenses) of a ProfitAndLoss report."""
    rows = report.get("Rows") or []
    if isinstance(rows, Mapping):
        rows = rows.get("Row") or []
    for row in rows:
        if row.get("group") != group:
            continue
        summary = (row.get("Summary") or {}).get("ColData") or []
        total = float(summary[-1].get("value") or 0) if summary else 0.0
        breakdown: dict[str, float] = {}
        for child in (row.get("Rows") or {}).get("Row") or []:
            cols = child.get("ColData") or []
            if len(cols) >= 2:
                label = str(cols[0].get("value") or "").strip().lower().replace(" ", "_")
                try:
                    breakdown[label] = float(cols[-1].get("value") or 0)
                except ValueError:
                    continue
        return {"total": total, "breakdown": breakdown}
    raise UpstreamFailure(f"ProfitAndLoss report has no {group} section", peer="accounting")


_MOCK_INVOICE_1 = {
    "Id": "1",
    "DocNumber": "INV-001",
    "CustomerRef": {"name": "John Smith"},
    "TotalAmt": 350,
    "Balance": 350,
    "DueDate": "2024-01-20",
}
_JOHN_SMITH = {"Id": "1", "Name": "John Smith", "EmailAddr": "john@smith.com", "Phone": "555-123-4567"}


def _fallback_customers(arguments: Mapping[str, Any]) -> dict[str, Any]:
    customers = [
        {"Id": "1", "Name": "John Smith", "CompanyName": "Smith Residence"},
        {"Id": "2", "Name": "Sarah Johnson", "CompanyName": "Johnson Home"},
    ]
    if arguments.get("include_balance"):
        customers[0]["Balance"] = 350
        customers[1]["Balance"] = 275
    if arguments.get("include_outstanding_invoices"):
        customers[0]["OutstandingInvoices"] = [
            {"Id": "INV-001", "DocNumber": "INV-001", "TotalAmt": 350, "Balance": 350,
             "DueDate": "2024-01-20"}
        ]
        customers[1]["OutstandingInvoices"] = [
            {"Id": "INV-002", "DocNumber": "INV-002", "TotalAmt": 275, "Balance": 275,
             "DueDate": "2024-01-25"}
        ]
    return {"customers": customers, "total_count": len(customers)}


def _fallback_customer_details(arguments: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "customer": {
            **_JOHN_SMITH,
            "Id": arguments["customer_id"],
            "CompanyName": "Smith Residence",
            "Balance": 350,
        },
        "invoices": {
            "total": 3,
            "outstanding": 1,
            "total_outstanding_amount": 350,
            "recent": [
                {"Id": "INV-001", "DocNumber": "INV-001", "TotalAmt": 350, "Balance": 350,
                 "DueDate": "2024-01-20"}
            ],
        },
        "payments": {
            "total": 2,
            "total_amount": 1200,
            "recent": [{"Id": "PAY-001", "TotalAmt": 800, "TxnDate": "2024-01-15"}],
        },
    }


def _fallback_vendors(arguments: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "vendors": [
            {"Id": "1", "Name": "ABC Supplies", "CompanyName": "ABC Supplies Inc."},
            {"Id": "2", "Name": "XYZ Equipment", "CompanyName": "XYZ Equipment Co."},
        ],
        "total_count": 2,
    }


def _fallback_invoices(arguments: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "invoices": [
            dict(_MOCK_INVOICE_1),
            {"Id": "2", "DocNumber": "INV-002", "CustomerRef": {"name": "Sarah Johnson"},
             "TotalAmt": 275, "Balance": 0, "DueDate": "2024-01-15"},
        ],
        "total_count": 2,
        "total_amount": 625,
        "outstanding_amount": 350,
    }


def _fallback_outstanding(arguments: Mapping[str, Any]) -> dict[str, Any]:
    invoices = [
        {**_MOCK_INVOICE_1, "overdue": True},
        {"Id": "2", "DocNumber": "INV-002", "CustomerRef": {"name": "Sarah Johnson"},
         "TotalAmt": 275, "Balance": 275, "DueDate": "2024-01-25", "overdue": False},
    ]
    if arguments.get("overdue_only"):
        invoices = [invoice for invoice in invoices if invoice["overdue"]]
    if arguments.get("include_customer_details"):
        invoices[0]["CustomerDetails"] = dict(_JOHN_SMITH)
    return {"invoices": invoices, "total_outstanding": _amount(invoices, "Balance")}


def _fallback_create_invoice(arguments: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "success": False,
        "error": "Invoice creation failed",
        "note": "Invoice creation failed - using mock response",
    }


def _fallback_payments(arguments: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "payments": [
            {"Id": "1", "TotalAmt": 800, "TxnDate": "2024-01-15",
             "PaymentMethodRef": {"name": "Check"}},
            {"Id": "2", "TotalAmt": 400, "TxnDate": "2024-01-10",
             "PaymentMethodRef": {"name": "Credit Card"}},
        ],
        "total_count": 2,
        "total_amount": 1200,
    }


def _fallback_estimates(arguments: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "estimates": [
            {"Id": "1", "DocNumber": "EST-001", "CustomerRef": {"name": "John Smith"},
             "TotalAmt": 500, "Status": "Sent"},
            {"Id": "2", "DocNumber": "EST-002", "CustomerRef": {"name": "Sarah Johnson"},
             "TotalAmt": 300, "Status": "Accepted"},
        ],
        "total_count": 2,
        "total_value": 800,
    }


def _fallback_expenses(arguments: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "expenses": [
            {"Id": "1", "TotalAmt": 150, "TxnDate": "2024-01-15",
             "AccountRef": {"name": "Office Supplies"}},
            {"Id": "2", "TotalAmt": 200, "TxnDate": "2024-01-10",
             "AccountRef": {"name": "Equipment"}},
        ],
        "total_count": 2,
        "total_amount": 350,
    }


def _fallback_expenses_summary(arguments: Mapping[str, Any]) -> dict[str, Any]:
    period = arguments["period"]
    return {
        "period": period,
        "total_expenses": 12500,
        "breakdown": {"materials": 8000, "labor": 3500, "overhead": 1000},
        "date_range": period_date_range(period),
    }


def _fallback_revenue_summary(arguments: Mapping[str, Any]) -> dict[str, Any]:
    period = arguments["period"]
    return {
        "period": period,
        "total_revenue": 47800,
        "breakdown": {"services": 42000, "materials": 5800},
        "date_range": period_date_range(period),
    }


def _fallback_profit_loss(arguments: Mapping[str, Any]) -> dict[str, Any]:
    date_from, date_to = arguments["date_from"], arguments["date_to"]
    return {
        "profit_loss": {
            "Header": {"ReportName": "Profit and Loss", "StartPeriod": date_from,
                       "EndPeriod": date_to},
            "Rows": [
                {"type": "Section", "group": "Income",
                 "Summary": {"ColData": [{"value": "47800"}]}},
                {"type": "Section", "group": "Expenses",
                 "Summary": {"ColData": [{"value": "12500"}]}},
            ],
        },
        "date_range": {"from": date_from, "to": date_to},
    }


def _fallback_accounts(arguments: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "accounts": [
            {"Id": "1", "Name": "Checking Account", "AccountType": "Bank",
             "CurrentBalance": 15000},
            {"Id": "2", "Name": "Sales Revenue", "AccountType": "Income",
             "CurrentBalance": 47800},
        ],
        "total_count": 2,
    }


def _fallback_account_balance(arguments: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "account": {"Id": arguments["account_id"], "Name": "Checking Account",
                    "AccountType": "Bank", "CurrentBalance": 15000},
        "balance": 15000,
        "account_type": "Bank",
        "currency": "USD",
    }


def _fallback_transactions(arguments: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "transactions": [
            {"Id": "1", "TxnType": "JournalEntry", "TxnDate": "2024-01-15", "TotalAmt": 500},
            {"Id": "2", "TxnType": "Deposit", "TxnDate": "2024-01-10", "TotalAmt": 1000},
        ],
        "total_count": 2,
    }


def _fallback_items(arguments: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "items": [
            {"Id": "1", "Name": "HVAC Service", "Type": "Service", "UnitPrice": 150},
            {"Id": "2", "Name": "Plumbing Repair", "Type": "Service", "UnitPrice": 200},
        ],
        "total_count": 2,
    }


class AccountingEndpoint(ToolEndpoint):
    """Accounting data from QuickBooks Online."""

    peer = PeerId.ACCOUNTING
    server_name = "quickbooks-server"
    mock_note = "Mock data - QuickBooks API unavailable"

    def build_tools(self):
        specs = [
            ("get_customers",
             "Get comprehensive customer list with contact details, balances, and outstanding invoices",
             GET_CUSTOMERS_INPUT_SCHEMA, self._handle_get_customers, _fallback_customers),
            ("get_customer_details",
             "Get detailed information for a specific customer including contact info, payment history, and outstanding balances",
             GET_CUSTOMER_DETAILS_INPUT_SCHEMA, self._handle_get_customer_details,
             _fallback_customer_details),
            ("get_vendors", "Get list of vendors/suppliers with bills and payment history",
             GET_VENDORS_INPUT_SCHEMA, self._handle_get_vendors, _fallback_vendors),
            ("get_invoices",
             "Get comprehensive invoice list including open, paid, and overdue invoices with line items and due dates",
             GET_INVOICES_INPUT_SCHEMA, self._handle_get_invoices, _fallback_invoices),
            ("get_outstanding_invoices",
             "Get list of outstanding/unpaid invoices with detailed information",
             GET_OUTSTANDING_INVOICES_INPUT_SCHEMA, self._handle_get_outstanding,
             _fallback_outstanding),
            ("create_invoice", "Create a new invoice with line items and customer details",
             CREATE_INVOICE_INPUT_SCHEMA, self._handle_create_invoice,
             _fallback_create_invoice),
            ("get_payments",
             "Get payment information including applied/unapplied payments, amounts, dates, and payment methods",
             GET_PAYMENTS_INPUT_SCHEMA, self._handle_get_payments, _fallback_payments),
            ("get_estimates",
             "Get estimates and quotes including draft estimates and accepted/declined status",
             GET_ESTIMATES_INPUT_SCHEMA, self._handle_get_estimates, _fallback_estimates),
            ("get_expenses",
             "Get expenses including credit card charges, cash expenses, and categories",
             GET_EXPENSES_INPUT_SCHEMA, self._handle_get_expenses, _fallback_expenses),
            ("get_expenses_summary",
             "Get expenses summary for a specific period with category breakdown",
             _period_schema("expenses summary"), self._handle_expenses_summary,
             _fallback_expenses_summary),
            ("get_revenue_summary",
             "Get comprehensive revenue summary for a specific period with detailed breakdown",
             _period_schema("revenue summary"), self._handle_revenue_summary,
             _fallback_revenue_summary),
            ("get_profit_loss", "Get detailed Profit & Loss report for a specific period",
             GET_PROFIT_LOSS_INPUT_SCHEMA, self._handle_profit_loss, _fallback_profit_loss),
            ("get_accounts",
             "Get chart of accounts including bank accounts, income/expense accounts, and balances",
             GET_ACCOUNTS_INPUT_SCHEMA, self._handle_get_accounts, _fallback_accounts),
            ("get_account_balance", "Get current balance for a specific account",
             GET_ACCOUNT_BALANCE_INPUT_SCHEMA, self._handle_account_balance,
             _fallback_account_balance),
            ("get_transactions",
             "Get journal entries, deposits, transfers, and other transactions",
             GET_TRANSACTIONS_INPUT_SCHEMA, self._handle_get_transactions,
             _fallback_transactions),
            ("get_items", "Get items and services available for invoicing",
             GET_ITEMS_INPUT_SCHEMA, self._handle_get_items, _fallback_items),
        ]
        return [
            EndpointTool(
                ToolDescriptor(name=name, description=description, input_schema=schema),
                handler,
                fallback,
            )
            for name, description, schema, handler, fallback in specs
        ]

    def _client(self) -> UpstreamClient:
        token = require(
            self.settings.quickbooks_access_token,
            "QuickBooks not authenticated: QUICKBOOKS_ACCESS_TOKEN is not set",
            peer=self.peer.value,
        )
        company_id = require(
            self.settings.quickbooks_company_id,
            "QuickBooks company id not configured",
            peer=self.peer.value,
        )
        return UpstreamClient(
            "QuickBooks",
            f"{self.settings.quickbooks_base_url}/v3/company/{company_id}",
            peer=self.peer.value,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
            timeout=self.settings.timeout_seconds,
            transport=self.http_transport,
        )

    async def _select(self, client: UpstreamClient, entity: str, query: str) -> list[dict[str, Any]]:
        payload = await client.get("query", query=query)
        rows = (payload.get("QueryResponse") or {}).get(entity) if isinstance(payload, Mapping) else None
        return [row for row in rows or [] if isinstance(row, dict)]

    async def _profit_and_loss(self, start: str, end: str) -> Mapping[str, Any]:
        payload = await self._client().get(
            "reports/ProfitAndLoss", start_date=start, end_date=end
        )
        if not isinstance(payload, Mapping):
            raise UpstreamFailure("ProfitAndLoss report is not an object", peer=self.peer.value)
        return payload

    async def _handle_get_customers(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        client = self._client()
        active_only = arguments.get("active_only", True)
        include_balance = bool(arguments.get("include_balance"))
        include_invoices = bool(arguments.get("include_outstanding_invoices"))
        customers = await self._select(
            client, "Customer", _query("Customer", ["Active=true"] if active_only else [])
        )
        if include_invoices:
            for customer in customers:
                customer["OutstandingInvoices"] = await self._select(
                    client,
                    "Invoice",
                    _query("Invoice", [f"CustomerRef='{customer.get('Id')}'", "Balance > '0'"]),
                )
        if include_balance:
            for customer in customers:
                customer.setdefault("Balance", 0)
        return {
            "customers": customers,
            "total_count": len(customers),
            "include_balance": include_balance,
            "include_outstanding_invoices": include_invoices,
        }

    async def _handle_get_customer_details(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        client = self._client()
        customer_id = arguments["customer_id"]
        matches = await self._select(
            client, "Customer", _query("Customer", [f"Id='{customer_id}'"])
        )
        if not matches:
            raise UpstreamFailure(f"Customer {customer_id} not found", peer=self.peer.value)
        invoices = await self._select(
            client,
            "Invoice",
            _query("Invoice", [f"CustomerRef='{customer_id}'"], order_by="TxnDate DESC"),
        )
        payments = await self._select(
            client,
            "Payment",
            _query("Payment", [f"CustomerRef='{customer_id}'"], order_by="TxnDate DESC"),
        )
        outstanding = [invoice for invoice in invoices if (invoice.get("Balance") or 0) > 0]
        return {
            "customer": matches[0],
            "invoices": {
                "total": len(invoices),
                "outstanding": len(outstanding),
                "total_outstanding_amount": _amount(outstanding, "Balance"),
                "recent": invoices[:5],
            },
            "payments": {
                "total": len(payments),
                "total_amount": _amount(payments, "TotalAmt"),
                "recent": payments[:5],
            },
        }

    async def _handle_get_vendors(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        client = self._client()
        include_bills = bool(arguments.get("include_bills"))
        active_only = arguments.get("active_only", True)
        vendors = await self._select(
            client, "Vendor", _query("Vendor", ["Active=true"] if active_only else [])
        )
        if include_bills:
            for vendor in vendors:
                vendor["OutstandingBills"] = await self._select(
                    client,
                    "Bill",
                    _query("Bill", [f"VendorRef='{vendor.get('Id')}'", "Balance > '0'"]),
                )
        return {"vendors": vendors, "total_count": len(vendors), "include_bills": include_bills}

    async def _handle_get_invoices(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        status = arguments.get("status") or "all"
        conditions: list[str] = []
        if status == "open":
            conditions.append("Balance > '0'")
        elif status == "paid":
            conditions.append("Balance = '0'")
        elif status == "overdue":
            conditions.extend(["Balance > '0'", f"DueDate < '{date.today().isoformat()}'"])
        conditions.extend(_date_conditions(arguments))
        if arguments.get("customer_id"):
            conditions.append(f"CustomerRef = '{arguments['customer_id']}'")
        invoices = await self._select(
            self._client(), "Invoice", _query("Invoice", conditions, order_by="TxnDate DESC")
        )
        outstanding = [invoice for invoice in invoices if (invoice.get("Balance") or 0) > 0]
        return {
            "invoices": invoices,
            "total_count": len(invoices),
            "total_amount": _amount(invoices, "TotalAmt"),
            "outstanding_amount": _amount(outstanding, "Balance"),
            "filters": {
                "status": status,
                "date_from": arguments.get("date_from"),
                "date_to": arguments.get("date_to"),
                "customer_id": arguments.get("customer_id"),
            },
        }

    async def _handle_get_outstanding(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        client = self._client()
        overdue_only = bool(arguments.get("overdue_only"))
        include_details = bool(arguments.get("include_customer_details"))
        conditions = ["Balance > '0'"]
        if overdue_only:
            conditions.append(f"DueDate < '{date.today().isoformat()}'")
        invoices = await self._select(client, "Invoice", _query("Invoice", conditions))
        if include_details:
            for invoice in invoices:
                ref = (invoice.get("CustomerRef") or {}).get("value")
                matches = await self._select(
                    client, "Customer", _query("Customer", [f"Id='{ref}'"])
                ) if ref else []
                invoice["CustomerDetails"] = matches[0] if matches else None
        return {
            "invoices": invoices,
            "total_outstanding": _amount(invoices, "Balance"),
            "overdue_only": overdue_only,
            "include_customer_details": include_details,
        }

    async def _handle_create_invoice(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        lines = []
        for index, item in enumerate(arguments["line_items"], start=1):
            quantity = item.get("quantity", 1)
            rate = item.get("rate", 0)
            lines.append(
                {
                    "Id": index,
                    "LineNum": index,
                    "Amount": quantity * rate,
                    "Description": item.get("description"),
                    "DetailType": "SalesItemLineDetail",
                    "SalesItemLineDetail": {
                        "ItemRef": {"value": item.get("item_id") or "1", "name": "Services"},
                        "Qty": quantity,
                        "UnitPrice": rate,
                    },
                }
            )
        due_date = arguments.get("due_date") or (date.today() + timedelta(days=30)).isoformat()
        invoice = {
            "Line": lines,
            "CustomerRef": {"value": arguments["customer_id"]},
            "DueDate": due_date,
        }
        if arguments.get("memo"):
            invoice["CustomerMemo"] = {"value": arguments["memo"]}
        payload = await self._client().request("POST", "invoice", json=invoice)
        created = payload.get("Invoice", payload) if isinstance(payload, Mapping) else payload
        return {"success": True, "invoice": created}

    async def _handle_get_payments(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        conditions = _date_conditions(arguments)
        if arguments.get("customer_id"):
            conditions.append(f"CustomerRef = '{arguments['customer_id']}'")
        payments = await self._select(
            self._client(), "Payment", _query("Payment", conditions, order_by="TxnDate DESC")
        )
        method = arguments.get("payment_method") or "all"
        if method != "all":
            payments = [payment for payment in payments if _matches_method(payment, method)]
        return {
            "payments": payments,
            "total_count": len(payments),
            "total_amount": _amount(payments, "TotalAmt"),
            "filters": {
                "date_from": arguments.get("date_from"),
                "date_to": arguments.get("date_to"),
                "payment_method": method,
                "customer_id": arguments.get("customer_id"),
            },
        }

    async def _handle_get_estimates(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        status = arguments.get("status") or "all"
        conditions = []
        if status != "all":
            conditions.append(f"Status = '{status}'")
        if arguments.get("customer_id"):
            conditions.append(f"CustomerRef = '{arguments['customer_id']}'")
        estimates = await self._select(
            self._client(), "Estimate", _query("Estimate", conditions, order_by="TxnDate DESC")
        )
        return {
            "estimates": estimates,
            "total_count": len(estimates),
            "total_value": _amount(estimates, "TotalAmt"),
            "filters": {"status": status, "customer_id": arguments.get("customer_id")},
        }

    async def _handle_get_expenses(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        conditions = _date_conditions(arguments)
        if arguments.get("category"):
            conditions.append(f"AccountRef = '{arguments['category']}'")
        expenses = await self._select(
            self._client(), "Purchase", _query("Purchase", conditions, order_by="TxnDate DESC")
        )
        method = arguments.get("payment_method") or "all"
        if method != "all":
            expenses = [expense for expense in expenses if _matches_method(expense, method)]
        return {
            "expenses": expenses,
            "total_count": len(expenses),
            "total_amount": _amount(expenses, "TotalAmt"),
            "filters": {
                "date_from": arguments.get("date_from"),
                "date_to": arguments.get("date_to"),
                "category": arguments.get("category"),
                "payment_method": method,
            },
        }

    async def _handle_expenses_summary(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        period = arguments["period"]
        date_range = period_date_range(period)
        report = await self._profit_and_loss(date_range["start"], date_range["end"])
        section = _report_section(report, "Expenses")
        return {
            "period": period,
            "total_expenses": section["total"],
            "breakdown": section["breakdown"],
            "date_range": date_range,
        }

    async def _handle_revenue_summary(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        period = arguments["period"]
        date_range = period_date_range(period)
        report = await self._profit_and_loss(date_range["start"], date_range["end"])
        section = _report_section(report, "Income")
        return {
            "period": period,
            "total_revenue": section["total"],
            "breakdown": section["breakdown"],
            "date_range": date_range,
        }

    async def _handle_profit_loss(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        date_from, date_to = arguments["date_from"], arguments["date_to"]
        report = await self._profit_and_loss(date_from, date_to)
        return {"profit_loss": dict(report), "date_range": {"from": date_from, "to": date_to}}

    async def _handle_get_accounts(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        account_type = arguments.get("account_type") or "all"
        active_only = arguments.get("active_only", True)
        conditions = []
        if account_type != "all":
            conditions.append(f"AccountType = '{account_type}'")
        if active_only:
            conditions.append("Active=true")
        accounts = await self._select(self._client(), "Account", _query("Account", conditions))
        return {
            "accounts": accounts,
            "total_count": len(accounts),
            "filters": {"account_type": account_type, "active_only": active_only},
        }

    async def _handle_account_balance(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        account_id = arguments["account_id"]
        matches = await self._select(
            self._client(), "Account", _query("Account", [f"Id='{account_id}'"])
        )
        if not matches:
            raise UpstreamFailure(f"Account {account_id} not found", peer=self.peer.value)
        account = matches[0]
        return {
            "account": account,
            "balance": account.get("CurrentBalance") or 0,
            "account_type": account.get("AccountType"),
            "currency": (account.get("CurrencyRef") or {}).get("value") or "USD",
        }

    async def _handle_get_transactions(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        transaction_type = arguments.get("transaction_type") or "all"
        conditions = []
        if transaction_type != "all":
            conditions.append(f"TxnType = '{transaction_type}'")
        conditions.extend(_date_conditions(arguments))
        if arguments.get("account_id"):
            conditions.append(f"AccountRef = '{arguments['account_id']}'")
        transactions = await self._select(
            self._client(),
            "Transaction",
            _query("Transaction", conditions, order_by="TxnDate DESC"),
        )
        return {
            "transactions": transactions,
            "total_count": len(transactions),
            "filters": {
                "transaction_type": transaction_type,
                "date_from": arguments.get("date_from"),
                "date_to": arguments.get("date_to"),
                "account_id": arguments.get("account_id"),
            },
        }

    async def _handle_get_items(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        item_type = arguments.get("item_type") or "all"
        active_only = arguments.get("active_only", True)
        conditions = []
        if item_type != "all":
            conditions.append(f"Type = '{item_type}'")
        if active_only:
            conditions.append("Active=true")
        items = await self._select(self._client(), "Item", _query("Item", conditions))
        return {
            "items": items,
            "total_count": len(items),
            "filters": {"item_type": item_type, "active_only": active_only},
        }
