"""Invoice functions: listing, statistics, overdue tracking, creation and payments."""

from __future__ import annotations

import json
from datetime import date, timedelta
from typing import Any, Callable

from ledger_assistant.ai.functions.base import FunctionOutput, FunctionRegistry, function
from ledger_assistant.ai.functions.schema import (
    ArraySchema,
    IntegerSchema,
    NumberSchema,
    ObjectSchema,
    StringSchema,
)
from ledger_assistant.errors import PaymentRejected
from ledger_assistant.storage.ledger_repo import (
    INVOICE_STATUSES,
    CustomerRepository,
    InvoiceRepository,
)
from ledger_assistant.storage.models import Invoice, InvoiceLine, Payment

DEFAULT_TAX_RATE = 17.0
PAYMENT_METHODS = ("Cash", "BankTransfer", "CreditCard", "Check")

_INVOICE_ID = IntegerSchema(description="Invoice id", minimum=1)
_STATUS = StringSchema(description="Invoice status", enum=INVOICE_STATUSES)
_FROM = StringSchema(description="Start date (YYYY-MM-DD)", format="date")
_TO = StringSchema(description="End date (YYYY-MM-DD)", format="date")

_LINE = ObjectSchema(
    properties={
        "description": StringSchema(description="Line description", min_length=1),
        "quantity": NumberSchema(description="Quantity", minimum=0, exclusive_minimum=True),
        "unitPrice": NumberSchema(description="Unit price before tax", minimum=0),
        "discountPercent": NumberSchema(description="Discount percent (default 0)", minimum=0),
        "taxRate": NumberSchema(description="Tax rate percent (default 17)", minimum=0),
    },
    required=("description", "quantity", "unitPrice"),
)


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2, default=str)


def _summary(invoice: Invoice) -> dict[str, Any]:
    return {
        "id": invoice.id,
        "invoiceNumber": invoice.invoice_number,
        "customerId": invoice.customer_id,
        "customerName": invoice.customer_name,
        "invoiceDate": invoice.invoice_date.isoformat(),
        "dueDate": invoice.due_date.isoformat() if invoice.due_date else None,
        "status": invoice.status,
        "currency": invoice.currency,
        "total": invoice.total,
        "paidAmount": invoice.paid_amount,
        "balance": invoice.balance,
    }


def payment_dict(payment: Payment) -> dict[str, Any]:
    return {
        "id": payment.id,
        "amount": payment.amount,
        "method": payment.method,
        "reference": payment.reference,
        "paidAt": payment.paid_at.isoformat(),
    }


def invoice_details(invoice: Invoice, payments: list[Payment]) -> dict[str, Any]:
    """Summary fields plus notes, amounts, lines and payments."""
    details = _summary(invoice)
    details.update(
        notes=invoice.notes,
        subtotal=invoice.subtotal,
        taxAmount=invoice.tax_amount,
        lines=[
            {
                "lineNumber": line.line_number,
                "description": line.description,
                "quantity": line.quantity,
                "unitPrice": line.unit_price,
                "discountPercent": line.discount_percent,
                "taxRate": line.tax_rate,
                "lineTotal": line.line_total,
            }
            for line in invoice.lines
        ],
        payments=[payment_dict(p) for p in payments],
    )
    return details


def price_line(raw: dict[str, Any], line_number: int) -> InvoiceLine:
    """Apply discount then tax to one requested line."""
    quantity = raw["quantity"]
    unit_price = raw["unitPrice"]
    discount_percent = raw.get("discountPercent", 0.0)
    tax_rate = raw.get("taxRate", DEFAULT_TAX_RATE)

    gross = quantity * unit_price
    net = gross - gross * discount_percent / 100
    tax = net * tax_rate / 100
    return InvoiceLine(
        line_number=line_number,
        description=raw["description"],
        quantity=quantity,
        unit_price=unit_price,
        discount_percent=discount_percent,
        tax_rate=tax_rate,
        tax_amount=round(tax, 2),
        line_total=round(net + tax, 2),
    )


def invoice_totals(lines: list[InvoiceLine]) -> tuple[float, float, float]:
    """Return (subtotal, tax, total) for priced lines. Subtotal is total less tax."""
    tax = round(sum(line.tax_amount for line in lines), 2)
    total = round(sum(line.line_total for line in lines), 2)
    return round(total - tax, 2), tax, total


class InvoiceFunctions(FunctionRegistry):
    group = "invoices"

    def __init__(
        self,
        invoices: InvoiceRepository,
        customers: CustomerRepository,
        max_result_rows: int = 200,
        today: Callable[[], date] = date.today,
    ):
        super().__init__(max_result_rows=max_result_rows)
        self._invoices = invoices
        self._customers = customers
        self._today = today

    @function(
        name="getInvoicesList",
        description="List invoices, newest first, optionally filtered by status, customer and date range.",
        parameters=ObjectSchema(
            properties={
                "status": _STATUS,
                "customerId": IntegerSchema(description="Only invoices of this customer", minimum=1),
                "fromDate": _FROM,
                "toDate": _TO,
                "limit": IntegerSchema(description="Maximum rows (default: 50, max: 200)", minimum=1),
            }
        ),
    )
    async def get_invoices_list(self, args: dict[str, Any], tenant_id: int) -> FunctionOutput:
        invoices = await self._invoices.list_invoices(
            tenant_id,
            status=args.get("status"),
            customer_id=args.get("customerId"),
            from_date=args.get("fromDate"),
            to_date=args.get("toDate"),
            limit=self.cap(args.get("limit"), 50),
        )
        rows = [_summary(inv) for inv in invoices]
        return FunctionOutput.ok(f"Found {len(rows)} invoices:\n{_dumps(rows)}", rows)

    @function(
        name="getInvoiceDetails",
        description="Full details of one invoice including its lines and payments.",
        parameters=ObjectSchema(properties={"invoiceId": _INVOICE_ID}, required=("invoiceId",)),
    )
    async def get_invoice_details(self, args: dict[str, Any], tenant_id: int) -> FunctionOutput:
        invoice = await self._invoices.get_invoice(tenant_id, args["invoiceId"])
        if invoice is None:
            return FunctionOutput.fail(f"Invoice {args['invoiceId']} not found")
        payments = await self._invoices.payments(tenant_id, invoice.id) or []
        details = invoice_details(invoice, payments)
        return FunctionOutput.ok(
            f"Details of invoice {invoice.invoice_number}:\n{_dumps(details)}", details
        )

    @function(
        name="searchInvoices",
        description="Search invoices by invoice number, customer name or notes.",
        parameters=ObjectSchema(
            properties={"searchTerm": StringSchema(description="Text to search for", min_length=1)},
            required=("searchTerm",),
        ),
    )
    async def search_invoices(self, args: dict[str, Any], tenant_id: int) -> FunctionOutput:
        term = args["searchTerm"]
        invoices = await self._invoices.search_invoices(tenant_id, term, limit=self.max_result_rows)
        rows = [_summary(inv) for inv in invoices]
        return FunctionOutput.ok(
            f"Found {len(rows)} invoices matching '{term}':\n{_dumps(rows)}", rows
        )

    @function(
        name="getInvoicesStatistics",
        description="Revenue, collected amount, outstanding amount and invoice counts for a period.",
        parameters=ObjectSchema(properties={"fromDate": _FROM, "toDate": _TO}),
    )
    async def get_invoices_statistics(self, args: dict[str, Any], tenant_id: int) -> FunctionOutput:
        stats = await self._invoices.statistics(
            tenant_id, from_date=args.get("fromDate"), to_date=args.get("toDate")
        )
        return FunctionOutput.ok(f"Invoice statistics:\n{_dumps(stats)}", stats)

    @function(
        name="getOverdueInvoices",
        description="Unpaid invoices past their due date, most overdue first.",
        parameters=ObjectSchema(
            properties={
                "minDaysOverdue": IntegerSchema(description="Minimum days overdue (default: 1)", minimum=0),
                "minAmount": NumberSchema(description="Minimum open balance", minimum=0),
            }
        ),
    )
    async def get_overdue_invoices(self, args: dict[str, Any], tenant_id: int) -> FunctionOutput:
        today = self._today()
        min_days = args.get("minDaysOverdue", 1)
        min_amount = args.get("minAmount", 0.0)
        rows = []
        for inv in await self._invoices.open_invoices(tenant_id, limit=self.max_result_rows):
            if inv.due_date is None:
                continue
            days = (today - inv.due_date).days
            if days >= max(min_days, 1) and inv.balance >= min_amount:
                row = _summary(inv)
                row["daysOverdue"] = days
                rows.append(row)
        rows.sort(key=lambda r: r["daysOverdue"], reverse=True)
        total = round(sum(r["balance"] for r in rows), 2)
        return FunctionOutput.ok(
            f"{len(rows)} overdue invoices, {total} outstanding:\n{_dumps(rows)}",
            {"count": len(rows), "totalOverdue": total, "invoices": rows},
        )

    @function(
        name="getInvoicePayments",
        description="All payments recorded against an invoice.",
        parameters=ObjectSchema(properties={"invoiceId": _INVOICE_ID}, required=("invoiceId",)),
    )
    async def get_invoice_payments(self, args: dict[str, Any], tenant_id: int) -> FunctionOutput:
        payments = await self._invoices.payments(tenant_id, args["invoiceId"])
        if payments is None:
            return FunctionOutput.fail(f"Invoice {args['invoiceId']} not found")
        rows = [payment_dict(p) for p in payments]
        return FunctionOutput.ok(
            f"Invoice {args['invoiceId']} has {len(rows)} payments:\n{_dumps(rows)}", rows
        )

    @function(
        name="createInvoice",
        description="Create a draft invoice for a customer from one or more lines.",
        parameters=ObjectSchema(
            properties={
                "customerId": IntegerSchema(description="Customer id", minimum=1),
                "invoiceDate": StringSchema(description="Invoice date (default: today)", format="date"),
                "dueDate": StringSchema(
                    description="Due date (default: invoice date + customer payment terms)",
                    format="date",
                ),
                "currency": StringSchema(description="Currency code (default: ILS)"),
                "notes": StringSchema(description="Notes printed on the invoice"),
                "lines": ArraySchema(description="Invoice lines", items=_LINE, min_items=1),
            },
            required=("customerId", "lines"),
        ),
    )
    async def create_invoice(self, args: dict[str, Any], tenant_id: int) -> FunctionOutput:
        customer = await self._customers.get_customer(tenant_id, args["customerId"])
        if customer is None:
            return FunctionOutput.fail(f"Customer {args['customerId']} not found")
        if not customer.is_active:
            return FunctionOutput.fail(f"Customer {customer.name} is inactive")

        lines = [price_line(raw, i) for i, raw in enumerate(args["lines"], start=1)]
        invoice_date = args.get("invoiceDate") or self._today()
        due_date = args.get("dueDate") or invoice_date + timedelta(days=customer.payment_terms_days)
        if due_date < invoice_date:
            return FunctionOutput.fail("Due date is before the invoice date")

        subtotal, tax, total = invoice_totals(lines)
        invoice = await self._invoices.create_invoice(
            Invoice(
                tenant_id=tenant_id,
                customer_id=customer.id,
                customer_name=customer.name,
                invoice_number="",
                invoice_date=invoice_date,
                due_date=due_date,
                currency=args.get("currency") or "ILS",
                notes=args.get("notes"),
                subtotal=subtotal,
                tax_amount=tax,
                total=total,
                lines=lines,
            )
        )
        delta = {
            "entity": "invoice",
            "action": "created",
            "id": invoice.id,
            "after": {**_summary(invoice), "subtotal": invoice.subtotal, "taxAmount": invoice.tax_amount},
        }
        return FunctionOutput.ok(
            f"Invoice {invoice.invoice_number} was created for {customer.name}, "
            f"total {invoice.total:.2f} {invoice.currency}.",
            delta,
        )

    @function(
        name="updateInvoiceStatus",
        description="Change the status of an invoice.",
        parameters=ObjectSchema(
            properties={"invoiceId": _INVOICE_ID, "status": _STATUS},
            required=("invoiceId", "status"),
        ),
    )
    async def update_invoice_status(self, args: dict[str, Any], tenant_id: int) -> FunctionOutput:
        updated = await self._invoices.update_status(tenant_id, args["invoiceId"], args["status"])
        if updated is None:
            return FunctionOutput.fail(f"Invoice {args['invoiceId']} not found")
        old_status, invoice = updated
        delta = {
            "entity": "invoice",
            "action": "updated",
            "id": invoice.id,
            "changes": {"status": {"old": old_status, "new": invoice.status}},
        }
        return FunctionOutput.ok(
            f"Invoice {invoice.invoice_number} status changed from {old_status} to {invoice.status}.",
            delta,
        )

    @function(
        name="processInvoicePayment",
        description="Record a payment against an invoice; a payment covering the balance marks it Paid.",
        parameters=ObjectSchema(
            properties={
                "invoiceId": _INVOICE_ID,
                "amount": NumberSchema(description="Amount paid", minimum=0, exclusive_minimum=True),
                "paymentMethod": StringSchema(
                    description="Payment method (default: BankTransfer)", enum=PAYMENT_METHODS
                ),
                "paymentDate": StringSchema(description="Payment date (default: today)", format="date"),
                "reference": StringSchema(description="Cheque number, transfer reference, etc."),
            },
            required=("invoiceId", "amount"),
        ),
    )
    async def process_invoice_payment(self, args: dict[str, Any], tenant_id: int) -> FunctionOutput:
        amount = round(args["amount"], 2)
        try:
            recorded = await self._invoices.add_payment(
                tenant_id,
                args["invoiceId"],
                amount=amount,
                method=args.get("paymentMethod", "BankTransfer"),
                paid_at=args.get("paymentDate") or self._today(),
                reference=args.get("reference"),
            )
        except PaymentRejected as e:
            return FunctionOutput.fail(str(e))
        if recorded is None:
            return FunctionOutput.fail(f"Invoice {args['invoiceId']} not found")
        before, updated, payment = recorded
        delta = {
            "entity": "invoice",
            "action": "payment_recorded",
            "id": updated.id,
            "payment": payment_dict(payment),
            "changes": {
                "paidAmount": {"old": before.paid_amount, "new": updated.paid_amount},
                "status": {"old": before.status, "new": updated.status},
            },
        }
        return FunctionOutput.ok(
            f"Payment of {amount:.2f} recorded on invoice {updated.invoice_number}; "
            f"balance {updated.balance:.2f}, status {updated.status}.",
            delta,
        )
