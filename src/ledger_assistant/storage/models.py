"""Data models for storage layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ChatMessageRecord:
    tenant_id: int
    session_id: str
    role: str  # "user" | "assistant" | "system"
    content: str
    timestamp: datetime = field(default_factory=utcnow)
    user_id: Optional[int] = None
    confidence: Optional[float] = None
    response_time_ms: Optional[int] = None
    entity_type: Optional[str] = None
    entity_id: Optional[int] = None
    context_json: Optional[str] = None
    id: Optional[int] = None


@dataclass
class QuotaState:
    tenant_id: int
    enabled: bool
    daily_limit: int
    current_usage: int
    last_reset_date: date
    model: str
    max_tokens: int
    temperature: float
    system_prompt: str
    updated_at: Optional[datetime] = None

    @property
    def remaining(self) -> int:
        return max(0, self.daily_limit - self.current_usage)

    @property
    def available(self) -> bool:
        return self.enabled and self.current_usage < self.daily_limit


@dataclass
class SessionSummary:
    session_id: str
    title: str
    created_at: datetime
    updated_at: datetime
    message_count: int
    last_message: Optional[str] = None


@dataclass
class Customer:
    tenant_id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    contact: Optional[str] = None
    tax_id: Optional[str] = None
    credit_limit: float = 0.0
    payment_terms_days: int = 30
    is_active: bool = True
    notes: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    id: Optional[int] = None


@dataclass
class InvoiceLine:
    description: str
    quantity: float
    unit_price: float
    discount_percent: float = 0.0
    tax_rate: float = 17.0
    line_number: int = 1
    tax_amount: float = 0.0
    line_total: float = 0.0
    id: Optional[int] = None


@dataclass
class Payment:
    invoice_id: int
    amount: float
    method: str
    paid_at: date
    reference: Optional[str] = None
    id: Optional[int] = None


@dataclass
class Invoice:
    tenant_id: int
    customer_id: int
    customer_name: str
    invoice_number: str
    invoice_date: date
    status: str = "Draft"
    due_date: Optional[date] = None
    currency: str = "ILS"
    notes: Optional[str] = None
    subtotal: float = 0.0
    tax_amount: float = 0.0
    total: float = 0.0
    paid_amount: float = 0.0
    lines: list[InvoiceLine] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    id: Optional[int] = None

    @property
    def balance(self) -> float:
        return round(self.total - self.paid_amount, 2)


@dataclass(frozen=True)
class CustomerDocument:
    """One row of a customer's document history: an invoice or a payment receipt."""

    id: int
    document_type: str  # "Invoice" | "Receipt"
    document_number: str
    document_date: date
    amount: float
    status: str
    invoice_id: int
    invoice_number: str
    method: Optional[str] = None
    reference: Optional[str] = None
