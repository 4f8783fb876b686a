"""Application wiring - builds all components and manages their lifecycle."""

from __future__ import annotations

from dataclasses import replace
from datetime import date, timedelta

from ledger_assistant.ai.client import AnthropicChatClient, ChatCompletionClient
from ledger_assistant.ai.functions.customers import CustomerFunctions
from ledger_assistant.ai.functions.invoices import InvoiceFunctions, invoice_totals, price_line
from ledger_assistant.assistant.dispatch import FunctionDispatcher
from ledger_assistant.assistant.orchestrator import AssistantOrchestrator
from ledger_assistant.config import AppConfig
from ledger_assistant.errors import ConfigError
from ledger_assistant.log import get_logger
from ledger_assistant.storage.assistant_repo import AssistantRepository
from ledger_assistant.storage.database import Database
from ledger_assistant.storage.ledger_repo import CustomerRepository, InvoiceRepository
from ledger_assistant.storage.models import Customer, Invoice, utcnow

logger = get_logger(__name__)

_DEMO_CUSTOMERS = (
    Customer(tenant_id=0, name="Dan Cohen Ltd", email="office@cohen.example", phone="03-5551234",
             city="Tel Aviv", credit_limit=20000, payment_terms_days=30),
    Customer(tenant_id=0, name="Green Leaf Cafe", email="hello@greenleaf.example", phone="04-5559876",
             city="Haifa", credit_limit=5000, payment_terms_days=14),
    Customer(tenant_id=0, name="Negev Solar", email="billing@negevsolar.example", city="Beersheba",
             credit_limit=50000, payment_terms_days=60),
)


class LedgerAssistantApp:
    """Top-level application object."""

    def __init__(self, config: AppConfig, client: ChatCompletionClient | None = None):
        self.config = config
        self.db = Database(config.storage.db_path)
        self.customers = CustomerRepository(self.db)
        self.invoices = InvoiceRepository(self.db)
        self.store = AssistantRepository(self.db, config.assistant.defaults)

        rows = config.assistant.max_result_rows
        self.dispatcher = FunctionDispatcher(
            [
                CustomerFunctions(self.customers, self.invoices, max_result_rows=rows),
                InvoiceFunctions(self.invoices, self.customers, max_result_rows=rows),
            ],
            function_timeout=config.assistant.function_timeout,
        )
        self._client = client

    @property
    def client(self) -> ChatCompletionClient:
        if self._client is None:
            if not self.config.anthropic:
                raise ConfigError("No 'anthropic' section in config")
            self._client = AnthropicChatClient(self.config.anthropic)
        return self._client

    def orchestrator(self) -> AssistantOrchestrator:
        return AssistantOrchestrator(
            client=self.client,
            dispatcher=self.dispatcher,
            store=self.store,
            history_window=self.config.assistant.history_window,
        )

    async def start(self) -> None:
        await self.db.initialize()
        logger.info("ledger_assistant_started", db_path=self.config.storage.db_path)

    async def stop(self) -> None:
        await self.db.close()
        logger.info("ledger_assistant_stopped")

    async def seed_demo(self, tenant_id: int) -> tuple[int, int]:
        """Insert a few customers and invoices for ``tenant_id``. Returns the counts."""
        today = date.today()
        now = utcnow()
        created: list[Customer] = []
        for template in _DEMO_CUSTOMERS:
            created.append(
                await self.customers.create_customer(
                    replace(template, tenant_id=tenant_id, created_at=now, updated_at=now)
                )
            )

        invoices = 0
        for i, customer in enumerate(created):
            issued = today - timedelta(days=45 - i * 15)
            lines = [
                price_line({"description": "Consulting hours", "quantity": 10 + i, "unitPrice": 350}, 1),
                price_line(
                    {"description": "Setup fee", "quantity": 1, "unitPrice": 1200, "discountPercent": 10}, 2
                ),
            ]
            subtotal, tax, total = invoice_totals(lines)
            invoice = await self.invoices.create_invoice(
                Invoice(
                    tenant_id=tenant_id,
                    customer_id=customer.id,
                    customer_name=customer.name,
                    invoice_number="",
                    invoice_date=issued,
                    due_date=issued + timedelta(days=customer.payment_terms_days),
                    status="Sent",
                    subtotal=subtotal,
                    tax_amount=tax,
                    total=total,
                    lines=lines,
                )
            )
            invoices += 1
            if i == 0:
                await self.invoices.add_payment(
                    tenant_id, invoice.id, round(total / 2, 2), "BankTransfer", issued + timedelta(days=10)
                )

        logger.info("demo_seeded", tenant_id=tenant_id, customers=len(created), invoices=invoices)
        return len(created), invoices
