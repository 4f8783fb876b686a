"""Tenant-scoped customer and invoice data used by the assistant's domain functions.

Every query filters on ``tenant_id``; no method accepts a row id without it.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
from typing import Any, Optional

from ledger_assistant.errors import PaymentRejected
from ledger_assistant.log import get_logger
from ledger_assistant.storage.database import Database
from ledger_assistant.storage.models import (
    Customer,
    CustomerDocument,
    Invoice,
    InvoiceLine,
    Payment,
    utcnow,
)

logger = get_logger(__name__)

INVOICE_STATUSES = ("Draft", "Sent", "Paid", "Cancelled", "Overdue")
OPEN_STATUSES = ("Sent", "Overdue")
CLOSED_STATUSES = ("Paid", "Cancelled")
DOCUMENT_TYPES = ("Invoice", "Receipt")

# Receipts have no stored number; they are numbered from the payment id.
_RECEIPT_NUMBER = "printf('RCP-%06d', p.id)"


def receipt_number(payment_id: int) -> str:
    return f"RCP-{payment_id:06d}"


_INVOICE_DOCUMENTS = """SELECT i.id AS id, 'Invoice' AS document_type, i.invoice_number AS document_number,
       i.invoice_date AS document_date, i.total AS amount, i.status AS status,
       i.id AS invoice_id, i.invoice_number AS invoice_number, NULL AS method, NULL AS reference
FROM invoices i WHERE i.tenant_id = ? AND i.customer_id = ?"""

_RECEIPT_DOCUMENTS = f"""SELECT p.id AS id, 'Receipt' AS document_type, {_RECEIPT_NUMBER} AS document_number,
       p.paid_at AS document_date, p.amount AS amount, 'Paid' AS status,
       p.invoice_id AS invoice_id, i.invoice_number AS invoice_number, p.method AS method,
       p.reference AS reference
FROM invoice_payments p JOIN invoices i ON i.id = p.invoice_id
WHERE i.tenant_id = ? AND i.customer_id = ?"""

_CUSTOMER_FIELDS = frozenset(
    {
        "name", "email", "phone", "address", "city", "contact", "tax_id",
        "credit_limit", "payment_terms_days", "is_active", "notes",
    }
)


def _like(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class CustomerRepository:
    def __init__(self, db: Database):
        self._db = db

    async def list_customers(
        self, tenant_id: int, active_only: bool = True, limit: int = 200
    ) -> list[Customer]:
        sql = "SELECT * FROM customers WHERE tenant_id = ?"
        params: list[Any] = [tenant_id]
        if active_only:
            sql += " AND is_active = 1"
        sql += " ORDER BY name, id LIMIT ?"
        params.append(limit)
        cursor = await self._db.conn.execute(sql, params)
        return [self._row_to_customer(row) for row in await cursor.fetchall()]

    async def get_customer(self, tenant_id: int, customer_id: int) -> Optional[Customer]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM customers WHERE tenant_id = ? AND id = ?",
            (tenant_id, customer_id),
        )
        row = await cursor.fetchone()
        return self._row_to_customer(row) if row else None

    async def search_customers(self, tenant_id: int, term: str, limit: int = 200) -> list[Customer]:
        pattern = _like(term)
        cursor = await self._db.conn.execute(
            """SELECT * FROM customers
               WHERE tenant_id = ? AND (
                   name LIKE ? ESCAPE '\\' OR tax_id LIKE ? ESCAPE '\\'
                   OR email LIKE ? ESCAPE '\\' OR phone LIKE ? ESCAPE '\\'
                   OR contact LIKE ? ESCAPE '\\'
               )
               ORDER BY name, id LIMIT ?""",
            (tenant_id, pattern, pattern, pattern, pattern, pattern, limit),
        )
        return [self._row_to_customer(row) for row in await cursor.fetchall()]

    async def create_customer(self, customer: Customer) -> Customer:
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                """INSERT INTO customers
                   (tenant_id, name, email, phone, address, city, contact, tax_id,
                    credit_limit, payment_terms_days, is_active, notes, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    customer.tenant_id,
                    customer.name,
                    customer.email,
                    customer.phone,
                    customer.address,
                    customer.city,
                    customer.contact,
                    customer.tax_id,
                    customer.credit_limit,
                    customer.payment_terms_days,
                    int(customer.is_active),
                    customer.notes,
                    customer.created_at.isoformat(),
                    customer.updated_at.isoformat(),
                ),
            )
        created = replace(customer, id=cursor.lastrowid)
        logger.info("customer_created", tenant_id=customer.tenant_id, customer_id=created.id)
        return created

    async def update_customer(
        self, tenant_id: int, customer_id: int, changes: dict[str, Any]
    ) -> Optional[Customer]:
        unknown = set(changes) - _CUSTOMER_FIELDS
        if unknown:
            raise ValueError(f"Unknown customer fields: {', '.join(sorted(unknown))}")
        if not changes:
            return await self.get_customer(tenant_id, customer_id)
        assignments = ", ".join(f"{key} = ?" for key in changes)
        values = [int(v) if isinstance(v, bool) else v for v in changes.values()]
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                f"UPDATE customers SET {assignments}, updated_at = ? WHERE tenant_id = ? AND id = ?",
                (*values, utcnow().isoformat(), tenant_id, customer_id),
            )
        if cursor.rowcount == 0:
            return None
        return await self.get_customer(tenant_id, customer_id)

    async def financial_summary(self, tenant_id: int, customer_id: int) -> Optional[dict[str, Any]]:
        customer = await self.get_customer(tenant_id, customer_id)
        if customer is None:
            return None
        cursor = await self._db.conn.execute(
            """SELECT status, COUNT(*) AS count, COALESCE(SUM(total), 0) AS total
               FROM invoices WHERE tenant_id = ? AND customer_id = ?
               GROUP BY status ORDER BY status""",
            (tenant_id, customer_id),
        )
        by_status = [
            {"status": row["status"], "count": row["count"], "total": round(row["total"], 2)}
            for row in await cursor.fetchall()
        ]
        placeholders = ", ".join("?" for _ in OPEN_STATUSES)
        cursor = await self._db.conn.execute(
            f"""SELECT COALESCE(SUM(total - paid_amount), 0)
                FROM invoices WHERE tenant_id = ? AND customer_id = ?
                AND status IN ({placeholders})""",
            (tenant_id, customer_id, *OPEN_STATUSES),
        )
        (outstanding,) = await cursor.fetchone()
        outstanding = round(outstanding, 2)
        return {
            "customer": {
                "id": customer.id,
                "name": customer.name,
                "creditLimit": customer.credit_limit,
                "paymentTermsDays": customer.payment_terms_days,
            },
            "invoices": by_status,
            "outstandingBalance": outstanding,
            "creditAvailable": round(customer.credit_limit - outstanding, 2),
        }

    @staticmethod
    def _row_to_customer(row) -> Customer:
        return Customer(
            id=row["id"],
            tenant_id=row["tenant_id"],
            name=row["name"],
            email=row["email"],
            phone=row["phone"],
            address=row["address"],
            city=row["city"],
            contact=row["contact"],
            tax_id=row["tax_id"],
            credit_limit=row["credit_limit"],
            payment_terms_days=row["payment_terms_days"],
            is_active=bool(row["is_active"]),
            notes=row["notes"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )


class InvoiceRepository:
    def __init__(self, db: Database):
        self._db = db

    async def list_invoices(
        self,
        tenant_id: int,
        status: Optional[str] = None,
        customer_id: Optional[int] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        limit: int = 50,
    ) -> list[Invoice]:
        sql = "SELECT * FROM invoices WHERE tenant_id = ?"
        params: list[Any] = [tenant_id]
        if status:
            sql += " AND status = ?"
            params.append(status)
        if customer_id is not None:
            sql += " AND customer_id = ?"
            params.append(customer_id)
        if from_date:
            sql += " AND invoice_date >= ?"
            params.append(from_date.isoformat())
        if to_date:
            sql += " AND invoice_date <= ?"
            params.append(to_date.isoformat())
        sql += " ORDER BY invoice_date DESC, id DESC LIMIT ?"
        params.append(limit)
        cursor = await self._db.conn.execute(sql, params)
        return [self._row_to_invoice(row) for row in await cursor.fetchall()]

    async def get_invoice(self, tenant_id: int, invoice_id: int) -> Optional[Invoice]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM invoices WHERE tenant_id = ? AND id = ?", (tenant_id, invoice_id)
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        invoice = self._row_to_invoice(row)
        cursor = await self._db.conn.execute(
            "SELECT * FROM invoice_lines WHERE invoice_id = ? ORDER BY line_number",
            (invoice_id,),
        )
        invoice.lines = [self._row_to_line(r) for r in await cursor.fetchall()]
        return invoice

    async def search_invoices(self, tenant_id: int, term: str, limit: int = 50) -> list[Invoice]:
        pattern = _like(term)
        cursor = await self._db.conn.execute(
            """SELECT * FROM invoices
               WHERE tenant_id = ? AND (
                   invoice_number LIKE ? ESCAPE '\\' OR customer_name LIKE ? ESCAPE '\\'
                   OR notes LIKE ? ESCAPE '\\'
               )
               ORDER BY invoice_date DESC, id DESC LIMIT ?""",
            (tenant_id, pattern, pattern, pattern, limit),
        )
        return [self._row_to_invoice(row) for row in await cursor.fetchall()]

    async def statistics(
        self, tenant_id: int, from_date: Optional[date] = None, to_date: Optional[date] = None
    ) -> dict[str, Any]:
        where = "tenant_id = ? AND status != 'Cancelled'"
        params: list[Any] = [tenant_id]
        if from_date:
            where += " AND invoice_date >= ?"
            params.append(from_date.isoformat())
        if to_date:
            where += " AND invoice_date <= ?"
            params.append(to_date.isoformat())
        cursor = await self._db.conn.execute(
            f"""SELECT COUNT(*) AS count,
                       COALESCE(SUM(total), 0) AS revenue,
                       COALESCE(SUM(paid_amount), 0) AS collected,
                       COALESCE(AVG(total), 0) AS average
                FROM invoices WHERE {where}""",
            params,
        )
        totals = await cursor.fetchone()
        cursor = await self._db.conn.execute(
            f"SELECT status, COUNT(*) AS count FROM invoices WHERE {where} GROUP BY status",
            params,
        )
        by_status = {row["status"]: row["count"] for row in await cursor.fetchall()}
        return {
            "invoiceCount": totals["count"],
            "totalRevenue": round(totals["revenue"], 2),
            "totalCollected": round(totals["collected"], 2),
            "outstanding": round(totals["revenue"] - totals["collected"], 2),
            "averageInvoice": round(totals["average"], 2),
            "byStatus": by_status,
            "fromDate": from_date.isoformat() if from_date else None,
            "toDate": to_date.isoformat() if to_date else None,
        }

    async def open_invoices(
        self, tenant_id: int, customer_id: Optional[int] = None, limit: int = 200
    ) -> list[Invoice]:
        placeholders = ", ".join("?" for _ in OPEN_STATUSES)
        sql = f"""SELECT * FROM invoices
                  WHERE tenant_id = ? AND status IN ({placeholders}) AND total > paid_amount"""
        params: list[Any] = [tenant_id, *OPEN_STATUSES]
        if customer_id is not None:
            sql += " AND customer_id = ?"
            params.append(customer_id)
        sql += " ORDER BY due_date IS NULL, due_date, id LIMIT ?"
        params.append(limit)
        cursor = await self._db.conn.execute(sql, params)
        return [self._row_to_invoice(row) for row in await cursor.fetchall()]

    async def payments(self, tenant_id: int, invoice_id: int) -> Optional[list[Payment]]:
        """Payments of an invoice, or None when the invoice is not the tenant's."""
        if await self._owned_invoice_row(tenant_id, invoice_id) is None:
            return None
        cursor = await self._db.conn.execute(
            "SELECT * FROM invoice_payments WHERE invoice_id = ? ORDER BY paid_at, id",
            (invoice_id,),
        )
        return [self._row_to_payment(row) for row in await cursor.fetchall()]

    async def customer_documents(
        self,
        tenant_id: int,
        customer_id: int,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        document_type: Optional[str] = None,
        limit: int = 200,
    ) -> list[CustomerDocument]:
        """A customer's invoices and payment receipts, newest first."""
        filters = {}
        for kind, column in (("Invoice", "i.invoice_date"), ("Receipt", "p.paid_at")):
            where, params = "", []
            if from_date:
                where += f" AND {column} >= ?"
                params.append(from_date.isoformat())
            if to_date:
                where += f" AND {column} <= ?"
                params.append(to_date.isoformat())
            filters[kind] = (where, params)
        return await self._documents(tenant_id, customer_id, filters, document_type, limit)

    async def search_customer_documents(
        self, tenant_id: int, customer_id: int, term: str, limit: int = 200
    ) -> list[CustomerDocument]:
        """Match invoices on number, total or notes and receipts on number, amount, method or reference."""
        pattern = _like(term)
        filters = {
            "Invoice": (
                """ AND (i.invoice_number LIKE ? ESCAPE '\\' OR CAST(i.total AS TEXT) LIKE ? ESCAPE '\\'
                         OR i.notes LIKE ? ESCAPE '\\')""",
                [pattern] * 3,
            ),
            "Receipt": (
                f""" AND ({_RECEIPT_NUMBER} LIKE ? ESCAPE '\\' OR CAST(p.amount AS TEXT) LIKE ? ESCAPE '\\'
                          OR p.method LIKE ? ESCAPE '\\' OR p.reference LIKE ? ESCAPE '\\')""",
                [pattern] * 4,
            ),
        }
        return await self._documents(tenant_id, customer_id, filters, None, limit)

    async def _documents(
        self,
        tenant_id: int,
        customer_id: int,
        filters: dict[str, tuple[str, list[Any]]],
        document_type: Optional[str],
        limit: int,
    ) -> list[CustomerDocument]:
        if document_type is not None and document_type not in DOCUMENT_TYPES:
            raise ValueError(f"Unknown document type: {document_type}")
        parts: list[str] = []
        params: list[Any] = []
        for kind, base in (("Invoice", _INVOICE_DOCUMENTS), ("Receipt", _RECEIPT_DOCUMENTS)):
            if document_type not in (None, kind):
                continue
            where, extra = filters[kind]
            parts.append(base + where)
            params.extend([tenant_id, customer_id, *extra])
        sql = " UNION ALL ".join(parts) + " ORDER BY document_date DESC, document_type, id DESC LIMIT ?"
        params.append(limit)
        cursor = await self._db.conn.execute(sql, params)
        return [
            CustomerDocument(
                id=row["id"],
                document_type=row["document_type"],
                document_number=row["document_number"],
                document_date=date.fromisoformat(row["document_date"]),
                amount=row["amount"],
                status=row["status"],
                invoice_id=row["invoice_id"],
                invoice_number=row["invoice_number"],
                method=row["method"],
                reference=row["reference"],
            )
            for row in await cursor.fetchall()
        ]

    async def customer_document_stats(self, tenant_id: int, customer_id: int) -> dict[str, Any]:
        """Counts and sums over a customer's invoices and receipts. Cancelled invoices are left out."""
        placeholders = ", ".join("?" for _ in OPEN_STATUSES)
        cursor = await self._db.conn.execute(
            f"""SELECT COUNT(*) AS count,
                       COALESCE(SUM(total), 0) AS invoiced,
                       COALESCE(SUM(paid_amount), 0) AS paid,
                       COALESCE(SUM(CASE WHEN status IN ({placeholders})
                                         THEN total - paid_amount ELSE 0 END), 0) AS outstanding,
                       MIN(invoice_date) AS first_date,
                       MAX(invoice_date) AS last_date
                FROM invoices
                WHERE tenant_id = ? AND customer_id = ? AND status != 'Cancelled'""",
            (*OPEN_STATUSES, tenant_id, customer_id),
        )
        invoices = await cursor.fetchone()
        cursor = await self._db.conn.execute(
            """SELECT COUNT(*) AS count,
                      COALESCE(SUM(p.amount), 0) AS received,
                      MIN(p.paid_at) AS first_date,
                      MAX(p.paid_at) AS last_date
               FROM invoice_payments p JOIN invoices i ON i.id = p.invoice_id
               WHERE i.tenant_id = ? AND i.customer_id = ?""",
            (tenant_id, customer_id),
        )
        receipts = await cursor.fetchone()
        first = [d for d in (invoices["first_date"], receipts["first_date"]) if d]
        last = [d for d in (invoices["last_date"], receipts["last_date"]) if d]
        return {
            "invoiceCount": invoices["count"],
            "receiptCount": receipts["count"],
            "totalInvoiced": round(invoices["invoiced"], 2),
            "totalPaid": round(invoices["paid"], 2),
            "totalReceived": round(receipts["received"], 2),
            "outstandingAmount": round(invoices["outstanding"], 2),
            "firstDocumentDate": min(first) if first else None,
            "lastDocumentDate": max(last) if last else None,
        }

    async def get_payment(self, tenant_id: int, payment_id: int) -> Optional[tuple[Payment, Invoice]]:
        """A payment with the invoice it settles, or None when it is not the tenant's."""
        cursor = await self._db.conn.execute(
            """SELECT p.* FROM invoice_payments p JOIN invoices i ON i.id = p.invoice_id
               WHERE p.id = ? AND i.tenant_id = ?""",
            (payment_id, tenant_id),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        payment = self._row_to_payment(row)
        invoice = await self.get_invoice(tenant_id, payment.invoice_id)
        return payment, invoice


    async def create_invoice(self, invoice: Invoice) -> Invoice:
        """Insert an invoice and its lines, assigning the next ``YYYY-NNNNNN`` number."""
        async with self._db.transaction() as conn:
            year = invoice.invoice_date.year
            cursor = await conn.execute(
                """SELECT invoice_number FROM invoices
                   WHERE tenant_id = ? AND invoice_number LIKE ?
                   ORDER BY invoice_number DESC LIMIT 1""",
                (invoice.tenant_id, f"{year}-%"),
            )
            row = await cursor.fetchone()
            next_number = 1
            if row is not None:
                tail = row["invoice_number"].rsplit("-", 1)[-1]
                if tail.isdigit():
                    next_number = int(tail) + 1
            number = f"{year}-{next_number:06d}"

            cursor = await conn.execute(
                """INSERT INTO invoices
                   (tenant_id, customer_id, customer_name, invoice_number, invoice_date,
                    due_date, status, currency, notes, subtotal, tax_amount, total,
                    paid_amount, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    invoice.tenant_id,
                    invoice.customer_id,
                    invoice.customer_name,
                    number,
                    invoice.invoice_date.isoformat(),
                    invoice.due_date.isoformat() if invoice.due_date else None,
                    invoice.status,
                    invoice.currency,
                    invoice.notes,
                    invoice.subtotal,
                    invoice.tax_amount,
                    invoice.total,
                    invoice.paid_amount,
                    invoice.created_at.isoformat(),
                    invoice.updated_at.isoformat(),
                ),
            )
            invoice_id = cursor.lastrowid
            for line in invoice.lines:
                await conn.execute(
                    """INSERT INTO invoice_lines
                       (invoice_id, line_number, description, quantity, unit_price,
                        discount_percent, tax_rate, tax_amount, line_total)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        invoice_id,
                        line.line_number,
                        line.description,
                        line.quantity,
                        line.unit_price,
                        line.discount_percent,
                        line.tax_rate,
                        line.tax_amount,
                        line.line_total,
                    ),
                )
        logger.info(
            "invoice_created",
            tenant_id=invoice.tenant_id,
            invoice_id=invoice_id,
            invoice_number=number,
        )
        return replace(invoice, id=invoice_id, invoice_number=number)

    async def update_status(
        self, tenant_id: int, invoice_id: int, status: str
    ) -> Optional[tuple[str, Invoice]]:
        """Change an invoice's status. Returns ``(old_status, invoice)`` or None if missing."""
        if status not in INVOICE_STATUSES:
            raise ValueError(f"Unknown invoice status: {status}")
        async with self._db.transaction() as conn:
            row = await self._owned_invoice_row(tenant_id, invoice_id, conn)
            if row is None:
                return None
            await conn.execute(
                "UPDATE invoices SET status = ?, updated_at = ? WHERE tenant_id = ? AND id = ?",
                (status, utcnow().isoformat(), tenant_id, invoice_id),
            )
        invoice = await self.get_invoice(tenant_id, invoice_id)
        return row["status"], invoice

    async def add_payment(
        self,
        tenant_id: int,
        invoice_id: int,
        amount: float,
        method: str,
        paid_at: date,
        reference: Optional[str] = None,
    ) -> Optional[tuple[Invoice, Invoice, Payment]]:
        """Record a payment and settle the invoice when the balance reaches zero.

        Returns ``(before, after, payment)``, or None if the invoice is missing.
        The status and balance checks run on the row read inside the write
        transaction, so concurrent payments cannot together exceed the total.

        Raises:
            PaymentRejected: the invoice is Paid or Cancelled, or ``amount``
                is more than the open balance.
        """
        async with self._db.transaction() as conn:
            row = await self._owned_invoice_row(tenant_id, invoice_id, conn)
            if row is None:
                return None
            before = self._row_to_invoice(row)
            if before.status in CLOSED_STATUSES:
                raise PaymentRejected(
                    f"Invoice {before.invoice_number} is {before.status} and cannot take payments"
                )
            if amount > before.balance:
                raise PaymentRejected(
                    f"Payment {amount:.2f} exceeds the open balance {before.balance:.2f}"
                )
            cursor = await conn.execute(
                """INSERT INTO invoice_payments (invoice_id, amount, method, reference, paid_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (invoice_id, amount, method, reference, paid_at.isoformat()),
            )
            payment_id = cursor.lastrowid
            paid_amount = round(before.paid_amount + amount, 2)
            status = "Paid" if paid_amount >= round(before.total, 2) else before.status
            await conn.execute(
                """UPDATE invoices SET paid_amount = ?, status = ?, updated_at = ?
                   WHERE tenant_id = ? AND id = ?""",
                (paid_amount, status, utcnow().isoformat(), tenant_id, invoice_id),
            )
        after = await self.get_invoice(tenant_id, invoice_id)
        payment = Payment(
            id=payment_id,
            invoice_id=invoice_id,
            amount=amount,
            method=method,
            reference=reference,
            paid_at=paid_at,
        )
        return before, after, payment

    async def _owned_invoice_row(self, tenant_id: int, invoice_id: int, conn=None):
        conn = conn or self._db.conn
        cursor = await conn.execute(
            "SELECT * FROM invoices WHERE tenant_id = ? AND id = ?", (tenant_id, invoice_id)
        )
        return await cursor.fetchone()

    @staticmethod
    def _row_to_invoice(row) -> Invoice:
        return Invoice(
            id=row["id"],
            tenant_id=row["tenant_id"],
            customer_id=row["customer_id"],
            customer_name=row["customer_name"],
            invoice_number=row["invoice_number"],
            invoice_date=date.fromisoformat(row["invoice_date"]),
            due_date=date.fromisoformat(row["due_date"]) if row["due_date"] else None,
            status=row["status"],
            currency=row["currency"],
            notes=row["notes"],
            subtotal=row["subtotal"],
            tax_amount=row["tax_amount"],
            total=row["total"],
            paid_amount=row["paid_amount"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    @staticmethod
    def _row_to_line(row) -> InvoiceLine:
        return InvoiceLine(
            id=row["id"],
            line_number=row["line_number"],
            description=row["description"],
            quantity=row["quantity"],
            unit_price=row["unit_price"],
            discount_percent=row["discount_percent"],
            tax_rate=row["tax_rate"],
            tax_amount=row["tax_amount"],
            line_total=row["line_total"],
        )

    @staticmethod
    def _row_to_payment(row) -> Payment:
        return Payment(
            id=row["id"],
            invoice_id=row["invoice_id"],
            amount=row["amount"],
            method=row["method"],
            reference=row["reference"],
            paid_at=date.fromisoformat(row["paid_at"]),
        )
