"""Customer functions: lookups, balances, document history and customer maintenance."""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any

from ledger_assistant.ai.functions.base import FunctionOutput, FunctionRegistry, function
from ledger_assistant.ai.functions.invoices import invoice_details, payment_dict
from ledger_assistant.ai.functions.schema import (
    BooleanSchema,
    IntegerSchema,
    NumberSchema,
    ObjectSchema,
    StringSchema,
)
from ledger_assistant.storage.ledger_repo import (
    DOCUMENT_TYPES,
    CustomerRepository,
    InvoiceRepository,
    receipt_number,
)
from ledger_assistant.storage.models import Customer, CustomerDocument

_CUSTOMER_ID = IntegerSchema(description="Customer id", minimum=1)
_DOCUMENT_TYPE = StringSchema(
    description="Document type: Invoice, or Receipt for a payment received", enum=DOCUMENT_TYPES
)

# Model-facing parameter names mapped to customer columns.
_EDITABLE = {
    "name": "name",
    "email": "email",
    "phone": "phone",
    "address": "address",
    "city": "city",
    "contact": "contact",
    "taxId": "tax_id",
    "creditLimit": "credit_limit",
    "paymentTermsDays": "payment_terms_days",
    "notes": "notes",
}

_CUSTOMER_PROPERTIES = {
    "name": StringSchema(description="Customer name", min_length=2),
    "email": StringSchema(description="Email address"),
    "phone": StringSchema(description="Phone number"),
    "address": StringSchema(description="Street address"),
    "city": StringSchema(description="City"),
    "contact": StringSchema(description="Contact person"),
    "taxId": StringSchema(description="Tax / company registration number"),
    "creditLimit": NumberSchema(description="Credit limit", minimum=0),
    "paymentTermsDays": IntegerSchema(description="Payment terms in days", minimum=0),
    "notes": StringSchema(description="Free-text notes"),
}


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2, default=str)


def _summary(customer: Customer) -> dict[str, Any]:
    return {
        "id": customer.id,
        "name": customer.name,
        "contact": customer.contact,
        "phone": customer.phone,
        "email": customer.email,
        "taxId": customer.tax_id,
        "isActive": customer.is_active,
        "creditLimit": customer.credit_limit,
        "paymentTermsDays": customer.payment_terms_days,
    }


def _details(customer: Customer) -> dict[str, Any]:
    details = _summary(customer)
    details.update(
        address=customer.address,
        city=customer.city,
        notes=customer.notes,
        createdAt=customer.created_at.isoformat(),
        updatedAt=customer.updated_at.isoformat(),
    )
    return details


def _document(document: CustomerDocument) -> dict[str, Any]:
    row = {
        "id": document.id,
        "documentType": document.document_type,
        "documentNumber": document.document_number,
        "documentDate": document.document_date.isoformat(),
        "amount": document.amount,
        "status": document.status,
        "invoiceId": document.invoice_id,
    }
    if document.document_type == "Receipt":
        row.update(
            invoiceNumber=document.invoice_number,
            method=document.method,
            reference=document.reference,
        )
    return row


class CustomerFunctions(FunctionRegistry):
    group = "customers"

    def __init__(
        self,
        customers: CustomerRepository,
        invoices: InvoiceRepository,
        max_result_rows: int = 200,
    ):
        super().__init__(max_result_rows=max_result_rows)
        self._customers = customers
        self._invoices = invoices

    @function(
        name="getCustomersList",
        description="List the company's customers with basic details, ordered by name.",
        parameters=ObjectSchema(
            properties={
                "isActiveOnly": BooleanSchema(
                    description="Return only active customers (default: true)"
                ),
                "limit": IntegerSchema(description="Maximum rows (default: 50, max: 200)", minimum=1),
            }
        ),
    )
    async def get_customers_list(self, args: dict[str, Any], tenant_id: int) -> FunctionOutput:
        customers = await self._customers.list_customers(
            tenant_id,
            active_only=args.get("isActiveOnly", True),
            limit=self.cap(args.get("limit"), 50),
        )
        rows = [_summary(c) for c in customers]
        return FunctionOutput.ok(f"Found {len(rows)} customers:\n{_dumps(rows)}", rows)

    @function(
        name="getCustomerDetails",
        description="Full details of one customer by id.",
        parameters=ObjectSchema(properties={"customerId": _CUSTOMER_ID}, required=("customerId",)),
    )
    async def get_customer_details(self, args: dict[str, Any], tenant_id: int) -> FunctionOutput:
        customer = await self._customers.get_customer(tenant_id, args["customerId"])
        if customer is None:
            return FunctionOutput.fail(f"Customer {args['customerId']} not found")
        details = _details(customer)
        return FunctionOutput.ok(f"Details of customer {customer.name}:\n{_dumps(details)}", details)

    @function(
        name="searchCustomers",
        description="Search customers by name, tax id, email, phone or contact person.",
        parameters=ObjectSchema(
            properties={
                "searchTerm": StringSchema(description="Text to search for", min_length=1),
            },
            required=("searchTerm",),
        ),
    )
    async def search_customers(self, args: dict[str, Any], tenant_id: int) -> FunctionOutput:
        term = args["searchTerm"]
        customers = await self._customers.search_customers(
            tenant_id, term, limit=self.max_result_rows
        )
        rows = [_summary(c) for c in customers]
        return FunctionOutput.ok(
            f"Found {len(rows)} customers matching '{term}':\n{_dumps(rows)}", rows
        )

    @function(
        name="getCustomerFinancialSummary",
        description="Invoice totals by status, outstanding balance and available credit for a customer.",
        parameters=ObjectSchema(properties={"customerId": _CUSTOMER_ID}, required=("customerId",)),
    )
    async def get_customer_financial_summary(
        self, args: dict[str, Any], tenant_id: int
    ) -> FunctionOutput:
        summary = await self._customers.financial_summary(tenant_id, args["customerId"])
        if summary is None:
            return FunctionOutput.fail(f"Customer {args['customerId']} not found")
        name = summary["customer"]["name"]
        return FunctionOutput.ok(f"Financial summary for {name}:\n{_dumps(summary)}", summary)

    @function(
        name="getOutstandingDocuments",
        description="Unpaid invoices (sent or overdue) of a customer with their open balances.",
        parameters=ObjectSchema(properties={"customerId": _CUSTOMER_ID}, required=("customerId",)),
    )
    async def get_outstanding_documents(self, args: dict[str, Any], tenant_id: int) -> FunctionOutput:
        customer = await self._customers.get_customer(tenant_id, args["customerId"])
        if customer is None:
            return FunctionOutput.fail(f"Customer {args['customerId']} not found")
        invoices = await self._invoices.open_invoices(
            tenant_id, customer_id=customer.id, limit=self.max_result_rows
        )
        rows = [
            {
                "id": inv.id,
                "invoiceNumber": inv.invoice_number,
                "invoiceDate": inv.invoice_date.isoformat(),
                "dueDate": inv.due_date.isoformat() if inv.due_date else None,
                "status": inv.status,
                "total": inv.total,
                "balance": inv.balance,
            }
            for inv in invoices
        ]
        total = round(sum(r["balance"] for r in rows), 2)
        return FunctionOutput.ok(
            f"{customer.name} has {len(rows)} open invoices, {total} outstanding:\n{_dumps(rows)}",
            {"customerId": customer.id, "openBalance": total, "invoices": rows},
        )

    @function(
        name="getCustomerDocuments",
        description=(
            "A customer's documents (invoices and payment receipts), newest first, "
            "optionally filtered by date range and document type."
        ),
        parameters=ObjectSchema(
            properties={
                "customerId": _CUSTOMER_ID,
                "fromDate": StringSchema(description="Start date (YYYY-MM-DD)", format="date"),
                "toDate": StringSchema(description="End date (YYYY-MM-DD)", format="date"),
                "documentType": _DOCUMENT_TYPE,
            },
            required=("customerId",),
        ),
    )
    async def get_customer_documents(self, args: dict[str, Any], tenant_id: int) -> FunctionOutput:
        customer = await self._customers.get_customer(tenant_id, args["customerId"])
        if customer is None:
            return FunctionOutput.fail(f"Customer {args['customerId']} not found")
        from_date, to_date = args.get("fromDate"), args.get("toDate")
        if from_date and to_date and from_date > to_date:
            return FunctionOutput.fail("fromDate is after toDate")
        documents = await self._invoices.customer_documents(
            tenant_id,
            customer.id,
            from_date=from_date,
            to_date=to_date,
            document_type=args.get("documentType"),
            limit=self.max_result_rows,
        )
        rows = [_document(d) for d in documents]
        payload = {
            "customerId": customer.id,
            "customerName": customer.name,
            "totalDocuments": len(rows),
            "documents": rows,
        }
        return FunctionOutput.ok(
            f"{customer.name} has {len(rows)} documents:\n{_dumps(rows)}", payload
        )

    @function(
        name="getCustomerDocumentStats",
        description=(
            "Document statistics for a customer: invoice and receipt counts, amounts invoiced "
            "and received, outstanding amount and first/last document dates."
        ),
        parameters=ObjectSchema(properties={"customerId": _CUSTOMER_ID}, required=("customerId",)),
    )
    async def get_customer_document_stats(self, args: dict[str, Any], tenant_id: int) -> FunctionOutput:
        customer = await self._customers.get_customer(tenant_id, args["customerId"])
        if customer is None:
            return FunctionOutput.fail(f"Customer {args['customerId']} not found")
        stats = await self._invoices.customer_document_stats(tenant_id, customer.id)
        payload = {"customerId": customer.id, "customerName": customer.name, **stats}
        return FunctionOutput.ok(f"Document statistics for {customer.name}:\n{_dumps(payload)}", payload)

    @function(
        name="searchCustomerDocuments",
        description=(
            "Search one customer's documents by document number, amount, notes, "
            "payment method or payment reference."
        ),
        parameters=ObjectSchema(
            properties={
                "customerId": _CUSTOMER_ID,
                "searchTerm": StringSchema(description="Document number, amount or text", min_length=1),
            },
            required=("customerId", "searchTerm"),
        ),
    )
    async def search_customer_documents(self, args: dict[str, Any], tenant_id: int) -> FunctionOutput:
        customer = await self._customers.get_customer(tenant_id, args["customerId"])
        if customer is None:
            return FunctionOutput.fail(f"Customer {args['customerId']} not found")
        term = args["searchTerm"]
        documents = await self._invoices.search_customer_documents(
            tenant_id, customer.id, term, limit=self.max_result_rows
        )
        rows = [_document(d) for d in documents]
        payload = {
            "customerId": customer.id,
            "searchTerm": term,
            "totalMatches": len(rows),
            "documents": rows,
        }
        return FunctionOutput.ok(
            f"Found {len(rows)} documents of {customer.name} matching '{term}':\n{_dumps(rows)}",
            payload,
        )

    @function(
        name="getDocumentDetails",
        description="Full details of one document by id and type (Invoice or Receipt).",
        parameters=ObjectSchema(
            properties={
                "documentId": IntegerSchema(description="Document id", minimum=1),
                "documentType": _DOCUMENT_TYPE,
            },
            required=("documentId", "documentType"),
        ),
    )
    async def get_document_details(self, args: dict[str, Any], tenant_id: int) -> FunctionOutput:
        document_id, document_type = args["documentId"], args["documentType"]
        if document_type == "Invoice":
            invoice = await self._invoices.get_invoice(tenant_id, document_id)
            if invoice is None:
                return FunctionOutput.fail(f"Invoice {document_id} not found")
            payments = await self._invoices.payments(tenant_id, invoice.id) or []
            details = {"documentType": "Invoice", **invoice_details(invoice, payments)}
            return FunctionOutput.ok(
                f"Details of invoice {invoice.invoice_number}:\n{_dumps(details)}", details
            )

        found = await self._invoices.get_payment(tenant_id, document_id)
        if found is None:
            return FunctionOutput.fail(f"Receipt {document_id} not found")
        payment, invoice = found
        details = {
            "documentType": "Receipt",
            "receiptNumber": receipt_number(payment.id),
            **payment_dict(payment),
            "invoice": {
                "id": invoice.id,
                "invoiceNumber": invoice.invoice_number,
                "customerId": invoice.customer_id,
                "customerName": invoice.customer_name,
                "balance": invoice.balance,
            },
        }
        return FunctionOutput.ok(
            f"Details of receipt {details['receiptNumber']}:\n{_dumps(details)}", details
        )

    @function(
        name="createCustomer",
        description="Create a new customer. Requires at least a name.",
        parameters=ObjectSchema(properties=dict(_CUSTOMER_PROPERTIES), required=("name",)),
    )
    async def create_customer(self, args: dict[str, Any], tenant_id: int) -> FunctionOutput:
        fields = {_EDITABLE[key]: value for key, value in args.items() if key in _EDITABLE}
        customer = await self._customers.create_customer(Customer(tenant_id=tenant_id, **fields))
        delta = {
            "entity": "customer",
            "action": "created",
            "id": customer.id,
            "after": _details(customer),
        }
        return FunctionOutput.ok(
            f"Customer {customer.name} was created with id {customer.id}.", delta
        )

    @function(
        name="updateCustomer",
        description="Update fields of an existing customer. Only the given fields change.",
        parameters=ObjectSchema(
            properties={
                "customerId": _CUSTOMER_ID,
                **_CUSTOMER_PROPERTIES,
                "isActive": BooleanSchema(description="Whether the customer is active"),
            },
            required=("customerId",),
        ),
    )
    async def update_customer(self, args: dict[str, Any], tenant_id: int) -> FunctionOutput:
        customer_id = args["customerId"]
        before = await self._customers.get_customer(tenant_id, customer_id)
        if before is None:
            return FunctionOutput.fail(f"Customer {customer_id} not found")

        changes = {_EDITABLE[key]: value for key, value in args.items() if key in _EDITABLE}
        if "isActive" in args:
            changes["is_active"] = args["isActive"]
        if not changes:
            return FunctionOutput.fail("No fields to update were given")

        after = await self._customers.update_customer(tenant_id, customer_id, changes)
        if after is None:
            return FunctionOutput.fail(f"Customer {customer_id} not found")

        old, new = asdict(before), asdict(after)
        diff = {
            column: {"old": old[column], "new": new[column]}
            for column in changes
            if old[column] != new[column]
        }
        delta = {"entity": "customer", "action": "updated", "id": customer_id, "changes": diff}
        changed = ", ".join(diff) or "nothing"
        return FunctionOutput.ok(f"Customer {after.name} was updated ({changed}).", delta)
