"""Keyword shortcut for "create X" requests.

A request that names a supported entity together with a creation verb is
answered with a form describing the fields to fill in, without a model call.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from ledger_assistant.assistant.models import FieldValidation, FormField, InteractiveData

CREATION_VERBS = frozenset({
    "create", "add", "register",
    "צור", "ליצור", "יצירת", "תיצור", "הוסף", "להוסיף", "הוספת", "תוסיף",
})
# Adding one of these to an existing record is not a creation request.
SUB_RECORDS = frozenset({"payment", "payments", "line", "lines", "note", "notes", "תשלום", "שורה", "הערה"})

_WORD = re.compile(r"\w+")
# Hebrew attaches prepositions and the article as one-letter prefixes.
_HEBREW_PREFIXES = ("ו", "ה", "ל", "ב", "מ", "ש", "כ")


@dataclass(frozen=True)
class CreationIntent:
    entity: str
    keywords: frozenset[str]
    form: InteractiveData


CUSTOMER_FORM = InteractiveData(
    component_type="form",
    title="New customer",
    description="Fill in the customer details. Name and email are required.",
    fields=[
        FormField(
            id="name",
            label="Customer name",
            required=True,
            validation=FieldValidation(min=2, message="Name must be at least 2 characters"),
        ),
        FormField(id="email", label="Email", type="email", required=True),
        FormField(id="phone", label="Phone"),
        FormField(id="address", label="Address", type="textarea"),
    ],
    data={"entity": "customer", "submit_function": "createCustomer"},
)

INVOICE_FORM = InteractiveData(
    component_type="form",
    title="New invoice",
    description="Choose the customer and the invoice dates. Lines are added on the next step.",
    fields=[
        FormField(id="customerId", label="Customer", type="select", required=True),
        FormField(id="invoiceDate", label="Invoice date", type="date", required=True),
        FormField(id="dueDate", label="Due date", type="date"),
        FormField(id="notes", label="Notes", type="textarea"),
    ],
    data={"entity": "invoice", "submit_function": "createInvoice"},
)

INTENTS: tuple[CreationIntent, ...] = (
    CreationIntent(
        entity="customer",
        keywords=frozenset({"customer", "customers", "client", "clients", "לקוח", "לקוחה", "לקוחות"}),
        form=CUSTOMER_FORM,
    ),
    CreationIntent(
        entity="invoice",
        keywords=frozenset({"invoice", "invoices", "bill", "חשבונית", "חשבוניות"}),
        form=INVOICE_FORM,
    ),
)


def _tokens(text: str) -> set[str]:
    tokens: set[str] = set()
    for word in _WORD.findall(text.lower()):
        tokens.add(word)
        if len(word) > 2 and word.startswith(_HEBREW_PREFIXES):
            tokens.add(word[1:])
    return tokens


def detect_creation_intent(text: str) -> Optional[CreationIntent]:
    """Return the creation intent in ``text``, if exactly one entity matches.

    Both a creation verb and an entity keyword are required; an utterance
    naming several entities is left to the model.
    """
    tokens = _tokens(text)
    if not tokens & CREATION_VERBS or tokens & SUB_RECORDS:
        return None
    matches = [intent for intent in INTENTS if tokens & intent.keywords]
    if len(matches) != 1:
        return None
    return matches[0]


def form_reply(intent: CreationIntent) -> str:
    required = [f.label for f in intent.form.fields if f.required]
    return (
        f"Sure, let's create a new {intent.entity}. "
        f"Please fill in the form below (required: {', '.join(required)})."
    )
