"""Navigation suggestions derived from the assistant's answer and the UI context."""

from __future__ import annotations

from typing import Optional

from ledger_assistant.assistant.models import ChatContext, SuggestedAction
from ledger_assistant.log import get_logger

logger = get_logger(__name__)

_INVOICE_WORDS = ("invoice", "חשבונית")
_CUSTOMER_WORDS = ("customer", "לקוח")
_REPORT_WORDS = ("report", "analysis", "דוח", "ניתוח")

CREATE_INVOICE = SuggestedAction(
    title="Create a new invoice",
    description="Go to the new invoice page",
    action_type="navigate",
    url="/invoices/create",
)
ADD_CUSTOMER = SuggestedAction(
    title="Add a new customer",
    description="Go to the new customer page",
    action_type="navigate",
    url="/customers/create",
)
VIEW_REPORTS = SuggestedAction(
    title="View reports",
    description="Go to the financial reports",
    action_type="navigate",
    url="/reports",
)


def _mentions(text: str, words: tuple[str, ...]) -> bool:
    return any(word in text for word in words)


def generate_suggested_actions(context: Optional[ChatContext], text: str) -> list[SuggestedAction]:
    """Zero or more suggestions; never raises."""
    try:
        lowered = (text or "").lower()
        module = (context.current_module or "").lower() if context else ""
        actions: list[SuggestedAction] = []
        if module == "invoices" and _mentions(lowered, _INVOICE_WORDS):
            actions.append(CREATE_INVOICE)
        if module == "customers" and _mentions(lowered, _CUSTOMER_WORDS):
            actions.append(ADD_CUSTOMER)
        if _mentions(lowered, _REPORT_WORDS):
            actions.append(VIEW_REPORTS)
        return actions
    except Exception as e:
        logger.warning("suggestions_failed", error=str(e))
        return []
