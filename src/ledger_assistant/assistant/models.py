"""Request/response models of the assistant."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from ledger_assistant.errors import ErrorKind
from ledger_assistant.storage.models import ChatMessageRecord, SessionSummary


@dataclass(frozen=True)
class ChatContext:
    """Where the user is in the UI when they ask."""

    current_module: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[int] = None
    user_role: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ChatRequest:
    message: str
    session_id: Optional[str] = None
    context: Optional[ChatContext] = None


@dataclass(frozen=True)
class SuggestedAction:
    title: str
    description: str
    action_type: str  # "navigate" | "create" | "view"
    url: Optional[str] = None
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FieldValidation:
    min: Optional[int] = None
    max: Optional[int] = None
    pattern: Optional[str] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class FormField:
    id: str
    label: str
    type: str = "text"  # "text" | "number" | "email" | "date" | "textarea" | "select"
    required: bool = False
    validation: Optional[FieldValidation] = None


@dataclass(frozen=True)
class InteractiveData:
    component_type: str  # "form" | "confirmation" | "selection" | "action"
    title: str
    description: Optional[str] = None
    fields: list[FormField] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class ChatResponse:
    success: bool
    session_id: str
    message: str = ""
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    confidence: float = 0.0
    response_time_ms: int = 0
    suggested_actions: list[SuggestedAction] = field(default_factory=list)
    executed_functions: list[str] = field(default_factory=list)
    type: str = "text"  # "text" | "interactive"
    interactive: Optional[InteractiveData] = None

    @property
    def has_function_calls(self) -> bool:
        return bool(self.executed_functions)


@dataclass
class HistoryPage:
    messages: list[ChatMessageRecord]
    total_count: int
    has_more: bool


@dataclass
class SessionList:
    sessions: list[SessionSummary]

    @property
    def total_count(self) -> int:
        return len(self.sessions)


@dataclass
class Availability:
    available: bool
    enabled: bool
    daily_limit: int
    current_usage: int
    remaining: int


@dataclass
class ReportResult:
    success: bool
    report_type: str
    content: str = ""
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
