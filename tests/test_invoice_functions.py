"""Tests for the invoice functions."""

import json
from datetime import date

import pytest

from conftest import OTHER_TENANT, TENANT
from ledger_assistant.ai.functions.base import FunctionCall
from ledger_assistant.ai.functions.invoices import InvoiceFunctions, invoice_totals, price_line
from ledger_assistant.errors import ErrorKind

TODAY = date(2026, 3, 15)


@pytest.fixture
def functions(invoices, customers) -> InvoiceFunctions:
    return InvoiceFunctions(invoices, customers, today=lambda: TODAY)


def _call(name: str, **arguments) -> FunctionCall:
    return FunctionCall(id=f"call_{name}", name=name, arguments=json.dumps(arguments))


async def _create(functions, customer_id, tenant_id=TENANT, **extra):
    arguments = {
        "customerId": customer_id,
        "lines": [{"description": "Consulting", "quantity": 2, "unitPrice": 100, "discountPercent": 10}],
        **extra,
    }
    return await functions.execute(_call("createInvoice", **arguments), tenant_id)


def test_line_pricing_applies_discount_before_tax():
    line = price_line({"description": "Widget", "quantity": 2, "unitPrice": 100, "discountPercent": 10}, 1)
    assert line.tax_rate == 17.0
    assert line.tax_amount == pytest.approx(30.6)
    assert line.line_total == pytest.approx(210.6)


def test_invoice_totals_sum_priced_lines():
    lines = [
        price_line({"description": "Widget", "quantity": 2, "unitPrice": 100, "discountPercent": 10}, 1),
        price_line({"description": "Exempt service", "quantity": 1, "unitPrice": 50, "taxRate": 0}, 2),
    ]
    subtotal, tax, total = invoice_totals(lines)
    assert (subtotal, tax, total) == (pytest.approx(230.0), pytest.approx(30.6), pytest.approx(260.6))


async def test_create_invoice_numbers_and_totals(functions, seeded_customers):
    acme = seeded_customers[0]

    first = await _create(functions, acme.id)
    second = await _create(functions, acme.id, invoiceDate="2026-03-01")

    assert first.success, first.error
    after = first.data["after"]
    assert first.data["action"] == "created"
    assert after["invoiceNumber"] == "2026-000001"
    assert after["total"] == pytest.approx(210.6)
    assert after["subtotal"] == pytest.approx(180.0)
    assert after["status"] == "Draft"
    # Default due date: invoice date + the customer's payment terms.
    assert after["dueDate"] == "2026-04-14"
    assert second.data["after"]["invoiceNumber"] == "2026-000002"


async def test_invoice_numbers_are_per_tenant(functions, seeded_customers):
    await _create(functions, seeded_customers[0].id)
    foreign = await _create(functions, seeded_customers[2].id, tenant_id=OTHER_TENANT)
    assert foreign.data["after"]["invoiceNumber"] == "2026-000001"


async def test_cannot_invoice_another_tenants_customer(functions, seeded_customers):
    result = await _create(functions, seeded_customers[2].id)
    assert not result.success
    assert result.error_kind is ErrorKind.EXECUTION


async def test_create_invoice_requires_lines(functions, seeded_customers):
    result = await functions.execute(
        _call("createInvoice", customerId=seeded_customers[0].id, lines=[]), TENANT
    )
    assert result.error_kind is ErrorKind.VALIDATION


async def test_due_date_before_invoice_date_is_refused(functions, seeded_customers):
    result = await _create(functions, seeded_customers[0].id, invoiceDate="2026-03-10", dueDate="2026-03-01")
    assert not result.success


async def test_full_payment_marks_invoice_paid(functions, seeded_customers):
    created = await _create(functions, seeded_customers[0].id)
    invoice_id = created.data["id"]
    await functions.execute(_call("updateInvoiceStatus", invoiceId=invoice_id, status="Sent"), TENANT)

    partial = await functions.execute(
        _call("processInvoicePayment", invoiceId=invoice_id, amount=100, paymentMethod="Cash"), TENANT
    )
    rest = await functions.execute(
        _call("processInvoicePayment", invoiceId=invoice_id, amount=110.6), TENANT
    )
    payments = await functions.execute(_call("getInvoicePayments", invoiceId=invoice_id), TENANT)

    assert partial.success
    assert partial.data["changes"]["status"] == {"old": "Sent", "new": "Sent"}
    assert rest.success
    assert rest.data["changes"]["status"] == {"old": "Sent", "new": "Paid"}
    assert [p["method"] for p in payments.data] == ["Cash", "BankTransfer"]
    assert payments.data[0]["paidAt"] == TODAY.isoformat()


async def test_overpayment_is_refused(functions, seeded_customers):
    created = await _create(functions, seeded_customers[0].id)

    result = await functions.execute(
        _call("processInvoicePayment", invoiceId=created.data["id"], amount=5000), TENANT
    )

    assert not result.success
    assert "exceeds" in result.error


async def test_concurrent_full_payments_settle_the_invoice_once(functions, dispatcher, invoices, seeded_customers):
    created = await _create(functions, seeded_customers[0].id)
    invoice_id = created.data["id"]
    await functions.execute(_call("updateInvoiceStatus", invoiceId=invoice_id, status="Sent"), TENANT)
    total = created.data["after"]["total"]

    results = await dispatcher.dispatch(
        [
            FunctionCall("call_a", "processInvoicePayment", json.dumps({"invoiceId": invoice_id, "amount": total})),
            FunctionCall("call_b", "processInvoicePayment", json.dumps({"invoiceId": invoice_id, "amount": total})),
        ],
        TENANT,
    )

    assert sorted(r.success for r in results) == [False, True]
    refused = next(r for r in results if not r.success)
    assert "Paid and cannot take payments" in refused.error
    invoice = await invoices.get_invoice(TENANT, invoice_id)
    assert invoice.paid_amount == pytest.approx(total)
    assert invoice.status == "Paid"
    assert len(await invoices.payments(TENANT, invoice_id)) == 1


async def test_concurrent_partial_payments_cannot_exceed_the_balance(functions, dispatcher, invoices, seeded_customers):
    created = await _create(functions, seeded_customers[0].id)
    invoice_id = created.data["id"]

    results = await dispatcher.dispatch(
        [
            FunctionCall(f"call_{i}", "processInvoicePayment", json.dumps({"invoiceId": invoice_id, "amount": 150}))
            for i in range(2)
        ],
        TENANT,
    )

    assert [r.success for r in results].count(True) == 1
    assert "exceeds the open balance 60.60" in next(r.error for r in results if not r.success)
    invoice = await invoices.get_invoice(TENANT, invoice_id)
    assert invoice.paid_amount == pytest.approx(150)
    assert invoice.status == "Draft"


async def test_cancelled_invoice_takes_no_payment(functions, invoices, seeded_customers):
    created = await _create(functions, seeded_customers[0].id)
    invoice_id = created.data["id"]
    await functions.execute(_call("updateInvoiceStatus", invoiceId=invoice_id, status="Cancelled"), TENANT)

    result = await functions.execute(_call("processInvoicePayment", invoiceId=invoice_id, amount=10), TENANT)

    assert not result.success
    assert "Cancelled and cannot take payments" in result.error
    assert await invoices.payments(TENANT, invoice_id) == []


async def test_payment_on_foreign_invoice_is_not_found(functions, seeded_customers):
    foreign = await _create(functions, seeded_customers[2].id, tenant_id=OTHER_TENANT)

    result = await functions.execute(
        _call("processInvoicePayment", invoiceId=foreign.data["id"], amount=10), TENANT
    )
    details = await functions.execute(_call("getInvoiceDetails", invoiceId=foreign.data["id"]), TENANT)

    assert not result.success
    assert not details.success


async def test_status_update_rejects_unknown_status(functions, seeded_customers):
    created = await _create(functions, seeded_customers[0].id)
    result = await functions.execute(
        _call("updateInvoiceStatus", invoiceId=created.data["id"], status="Lost"), TENANT
    )
    assert result.error_kind is ErrorKind.VALIDATION


async def test_overdue_invoices_sorted_by_age(functions, seeded_customers):
    acme, beta = seeded_customers[0], seeded_customers[1]
    old = await _create(functions, acme.id, invoiceDate="2026-01-01", dueDate="2026-01-31")
    recent = await _create(functions, beta.id, invoiceDate="2026-02-20", dueDate="2026-03-10")
    future = await _create(functions, acme.id, invoiceDate="2026-03-10", dueDate="2026-04-10")
    for created in (old, recent, future):
        await functions.execute(
            _call("updateInvoiceStatus", invoiceId=created.data["id"], status="Sent"), TENANT
        )

    result = await functions.execute(_call("getOverdueInvoices"), TENANT)

    rows = result.data["invoices"]
    assert [r["id"] for r in rows] == [old.data["id"], recent.data["id"]]
    assert rows[0]["daysOverdue"] == 43
    assert result.data["totalOverdue"] == pytest.approx(421.2)


async def test_statistics_and_listing(functions, seeded_customers):
    await _create(functions, seeded_customers[0].id, invoiceDate="2026-02-01")
    await _create(functions, seeded_customers[1].id, invoiceDate="2026-03-01")

    stats = await functions.execute(_call("getInvoicesStatistics", fromDate="2026-02-15"), TENANT)
    listed = await functions.execute(_call("getInvoicesList", status="Draft"), TENANT)
    found = await functions.execute(_call("searchInvoices", searchTerm="Beta"), TENANT)

    assert stats.data["invoiceCount"] == 1
    assert stats.data["totalRevenue"] == pytest.approx(210.6)
    assert [row["invoiceDate"] for row in listed.data] == ["2026-03-01", "2026-02-01"]
    assert [row["customerName"] for row in found.data] == ["Beta Foods"]
