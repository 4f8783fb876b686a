"""Shared fixtures: a temporary SQLite database, scripted chat clients, and fake SDK responses.

No test talks to the network.
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any

import pytest

from ledger_assistant.ai.client import ChatCompletionClient, CompletionOptions, ProviderReply
from ledger_assistant.ai.functions.base import FunctionCall
from ledger_assistant.ai.functions.customers import CustomerFunctions
from ledger_assistant.ai.functions.invoices import InvoiceFunctions
from ledger_assistant.ai.retry import RetryPolicy
from ledger_assistant.assistant.dispatch import FunctionDispatcher
from ledger_assistant.config import QuotaDefaults
from ledger_assistant.storage.assistant_repo import AssistantRepository
from ledger_assistant.storage.database import Database
from ledger_assistant.storage.ledger_repo import CustomerRepository, InvoiceRepository
from ledger_assistant.storage.models import Customer

TENANT = 1
OTHER_TENANT = 2


class SleepRecorder:
    """Stands in for asyncio.sleep; remembers the requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)

    @property
    def total(self) -> float:
        return sum(self.delays)


class ScriptedClient(ChatCompletionClient):
    """Chat client replaying a fixed script of provider outcomes.

    Each step is a :class:`ProviderReply`, an exception to raise, or a
    coroutine function to await (for hanging / slow providers).
    """

    def __init__(self, *steps: Any, policy: RetryPolicy | None = None, timeout: float = 5.0):
        self.sleeper = SleepRecorder()
        super().__init__(retry_policy=policy or RetryPolicy(), timeout=timeout, sleep=self.sleeper)
        self.steps = list(steps)
        self.requests: list[dict[str, Any]] = []

    async def _create(
        self,
        system: str,
        turns: list[dict[str, Any]],
        options: CompletionOptions,
        tools: list[dict[str, Any]] | None,
    ) -> ProviderReply:
        self.requests.append({"system": system, "turns": turns, "options": options, "tools": tools})
        if not self.steps:
            raise AssertionError("provider called more often than scripted")
        step = self.steps.pop(0)
        if isinstance(step, BaseException):
            raise step
        if callable(step):
            return await step()
        return step


def text_reply(text: str, stop_reason: str = "end_turn") -> ProviderReply:
    return ProviderReply(text=text, stop_reason=stop_reason, input_tokens=10, output_tokens=20)


def tool_reply(*calls: FunctionCall) -> ProviderReply:
    return ProviderReply(text="", calls=list(calls), stop_reason="tool_use", input_tokens=15, output_tokens=5)


async def hang_forever() -> ProviderReply:
    await asyncio.Event().wait()
    raise AssertionError("unreachable")


# -- fake Anthropic SDK objects ------------------------------------------------


def sdk_text(text: str) -> SimpleNamespace:
    return SimpleNamespace(type="text", text=text)


def sdk_tool_use(call_id: str, name: str, arguments: dict[str, Any]) -> SimpleNamespace:
    return SimpleNamespace(type="tool_use", id=call_id, name=name, input=arguments)


def sdk_message(*blocks: SimpleNamespace, stop_reason: str = "end_turn") -> SimpleNamespace:
    return SimpleNamespace(
        content=list(blocks),
        stop_reason=stop_reason,
        usage=SimpleNamespace(input_tokens=12, output_tokens=34),
    )


class FakeMessages:
    def __init__(self, *outcomes: Any):
        self.outcomes = list(outcomes)
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> SimpleNamespace:
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def fake_sdk(*outcomes: Any) -> SimpleNamespace:
    return SimpleNamespace(messages=FakeMessages(*outcomes))


# -- database fixtures ---------------------------------------------------------


@pytest.fixture
async def db(tmp_path):
    database = Database(str(tmp_path / "ledger.db"))
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def quota_defaults() -> QuotaDefaults:
    return QuotaDefaults(daily_limit=5, model="test-model", system_prompt="You are a test assistant.")


@pytest.fixture
def store(db, quota_defaults) -> AssistantRepository:
    return AssistantRepository(db, quota_defaults)


@pytest.fixture
def customers(db) -> CustomerRepository:
    return CustomerRepository(db)


@pytest.fixture
def invoices(db) -> InvoiceRepository:
    return InvoiceRepository(db)


@pytest.fixture
async def seeded_customers(customers) -> list[Customer]:
    """Two customers for TENANT, one for OTHER_TENANT."""
    return [
        await customers.create_customer(
            Customer(tenant_id=TENANT, name="Acme Ltd", email="acme@example.com", credit_limit=10000)
        ),
        await customers.create_customer(
            Customer(tenant_id=TENANT, name="Beta Foods", phone="050-1234567", payment_terms_days=14)
        ),
        await customers.create_customer(
            Customer(tenant_id=OTHER_TENANT, name="Other Tenant Co", email="secret@example.com")
        ),
    ]


@pytest.fixture
def dispatcher(customers, invoices) -> FunctionDispatcher:
    return FunctionDispatcher(
        [CustomerFunctions(customers, invoices), InvoiceFunctions(invoices, customers)],
        function_timeout=5.0,
    )
