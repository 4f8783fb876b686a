"""Convert stored chat history and caller context into provider messages."""

from __future__ import annotations

from typing import Optional

from ledger_assistant.ai.client import ChatMessage
from ledger_assistant.ai.functions.base import FunctionCall, FunctionResult
from ledger_assistant.assistant.models import ChatContext
from ledger_assistant.storage.models import ChatMessageRecord

_HISTORY_ROLES = ("user", "assistant")


def build_context_note(context: Optional[ChatContext]) -> str:
    """Describe the caller's UI position in one line, or return "" if there is nothing to say."""
    if context is None:
        return ""
    parts: list[str] = []
    if context.current_module:
        parts.append(f"The user is in the {context.current_module} module")
    if context.entity_type and context.entity_id is not None:
        parts.append(f"They are looking at {context.entity_type} #{context.entity_id}")
    if context.user_role:
        parts.append(f"User role: {context.user_role}")
    return ". ".join(parts)


def build_messages(
    system_prompt: str,
    history: list[ChatMessageRecord],
    user_message: str,
    context: Optional[ChatContext] = None,
) -> list[ChatMessage]:
    """Assemble ``[system] + history + [context note] + [user message]``.

    ``history`` is expected oldest-first and already cut to the recency window.
    """
    messages = [ChatMessage(role="system", content=system_prompt)]
    for record in history:
        if record.role in _HISTORY_ROLES:
            messages.append(ChatMessage(role=record.role, content=record.content))

    note = build_context_note(context)
    if note:
        messages.append(ChatMessage(role="system", content=f"Current context: {note}"))

    messages.append(ChatMessage(role="user", content=user_message))
    return messages


def build_followup_messages(
    messages: list[ChatMessage],
    calls: list[FunctionCall],
    results: list[FunctionResult],
) -> list[ChatMessage]:
    """Extend the first-round context with the invocations and their outcomes."""
    names = ", ".join(call.name for call in calls)
    followup = list(messages)
    followup.append(ChatMessage(role="assistant", content=f"Calling functions: {names}"))
    for result in results:
        status = "succeeded" if result.success else "failed"
        followup.append(
            ChatMessage(
                role="user",
                content=f"Result of {result.name} ({status}):\n{result.content_for_model()}",
            )
        )
    return followup
