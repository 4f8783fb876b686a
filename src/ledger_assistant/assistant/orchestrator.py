"""Assistant orchestrator: one user message in, one assistant message out."""

from __future__ import annotations

import asyncio
import json
import time
import uuid
from dataclasses import asdict
from typing import Any, Optional

from ledger_assistant.ai.client import ChatCompletionClient, ChatMessage, CompletionOptions
from ledger_assistant.assistant.context import build_followup_messages, build_messages
from ledger_assistant.assistant.dispatch import FunctionDispatcher
from ledger_assistant.assistant.intents import detect_creation_intent, form_reply
from ledger_assistant.assistant.models import (
    Availability,
    ChatRequest,
    ChatResponse,
    HistoryPage,
    ReportResult,
    SessionList,
)
from ledger_assistant.assistant.suggestions import generate_suggested_actions
from ledger_assistant.errors import ErrorKind, user_message
from ledger_assistant.log import bind_exchange, clear_exchange, get_logger
from ledger_assistant.storage.assistant_repo import AssistantStore
from ledger_assistant.storage.models import ChatMessageRecord, QuotaState

logger = get_logger(__name__)

REPORT_SYSTEM_PROMPT = "You are an accounting assistant specialised in writing financial reports."
INTENT_CONFIDENCE = 1.0


class AssistantOrchestrator:
    """Runs the per-message pipeline.

    QuotaCheck -> ContextBuild -> ModelCall1 -> [Dispatch -> ModelCall2] -> Persist.
    Every failure is returned as a :class:`ChatResponse` carrying an
    :class:`ErrorKind`; only task cancellation propagates.
    """

    def __init__(
        self,
        client: ChatCompletionClient,
        dispatcher: FunctionDispatcher,
        store: AssistantStore,
        history_window: int = 10,
    ):
        self._client = client
        self._dispatcher = dispatcher
        self._store = store
        self._history_window = history_window

    async def send_message(
        self,
        request: ChatRequest,
        tenant_id: int,
        user_id: Optional[int] = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ChatResponse:
        started = time.monotonic()
        session_id = request.session_id or str(uuid.uuid4())
        bind_exchange(tenant_id, session_id)
        try:
            return await self._exchange(request, tenant_id, session_id, user_id, cancel_event, started)
        except asyncio.CancelledError:
            logger.info("exchange_cancelled")
            raise
        except Exception as e:
            logger.error("exchange_failed", error=str(e), exc_info=True)
            return self._failure(session_id, ErrorKind.INTERNAL, started)
        finally:
            clear_exchange()

    async def _exchange(
        self,
        request: ChatRequest,
        tenant_id: int,
        session_id: str,
        user_id: Optional[int],
        cancel_event: asyncio.Event | None,
        started: float,
    ) -> ChatResponse:
        quota = await self._store.load_quota(tenant_id)
        if not quota.available:
            logger.info(
                "quota_exceeded",
                enabled=quota.enabled,
                usage=quota.current_usage,
                limit=quota.daily_limit,
            )
            return self._failure(session_id, ErrorKind.QUOTA_EXCEEDED, started)

        intent = detect_creation_intent(request.message)
        if intent is not None:
            logger.info("creation_intent", entity=intent.entity)
            reply = form_reply(intent)
            elapsed = _elapsed_ms(started)
            await self._persist(request, tenant_id, session_id, user_id, reply, INTENT_CONFIDENCE, elapsed)
            return ChatResponse(
                success=True,
                session_id=session_id,
                message=reply,
                confidence=INTENT_CONFIDENCE,
                response_time_ms=elapsed,
                type="interactive",
                interactive=intent.form,
            )

        history = await self._store.recent_messages(tenant_id, session_id, self._history_window)
        messages = build_messages(quota.system_prompt, history, request.message, request.context)
        options = _options(quota)

        first = await self._client.complete_chat_with_tools(
            messages, self._dispatcher.definitions(), options, cancel_event
        )
        if not first.success:
            return self._failure(session_id, first.error_kind or ErrorKind.FATAL, started)

        content = first.content
        confidence = first.confidence
        input_tokens, output_tokens = first.input_tokens, first.output_tokens
        executed: list[str] = []
        if first.requires_function_execution:
            results = await self._dispatcher.dispatch(first.calls, tenant_id, cancel_event)
            executed = [result.name for result in results]
            logger.info(
                "functions_dispatched",
                count=len(results),
                failed=[r.name for r in results if not r.success],
            )
            followup = build_followup_messages(messages, first.calls, results)
            second = await self._client.complete_chat(followup, options, cancel_event)
            if not second.success:
                response = self._failure(session_id, second.error_kind or ErrorKind.FATAL, started)
                response.executed_functions = executed
                return response
            content = second.content
            confidence = second.confidence
            input_tokens += second.input_tokens
            output_tokens += second.output_tokens

        if cancel_event is not None and cancel_event.is_set():
            logger.info("exchange_abandoned_before_persist")
            return self._failure(session_id, ErrorKind.TIMEOUT, started)

        elapsed = _elapsed_ms(started)
        await self._persist(request, tenant_id, session_id, user_id, content, confidence, elapsed)
        logger.info(
            "exchange_completed",
            functions=executed,
            response_time_ms=elapsed,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )
        return ChatResponse(
            success=True,
            session_id=session_id,
            message=content,
            confidence=confidence,
            response_time_ms=elapsed,
            suggested_actions=generate_suggested_actions(request.context, content),
            executed_functions=executed,
        )

    async def _persist(
        self,
        request: ChatRequest,
        tenant_id: int,
        session_id: str,
        user_id: Optional[int],
        reply: str,
        confidence: float,
        response_time_ms: int,
    ) -> None:
        context = request.context
        entity_type = context.entity_type if context else None
        entity_id = context.entity_id if context else None
        context_json = json.dumps(asdict(context), ensure_ascii=False, default=str) if context else None
        await self._store.record_exchange(
            ChatMessageRecord(
                tenant_id=tenant_id,
                session_id=session_id,
                role="user",
                content=request.message,
                user_id=user_id,
                entity_type=entity_type,
                entity_id=entity_id,
                context_json=context_json,
            ),
            ChatMessageRecord(
                tenant_id=tenant_id,
                session_id=session_id,
                role="assistant",
                content=reply,
                confidence=confidence,
                response_time_ms=response_time_ms,
                entity_type=entity_type,
                entity_id=entity_id,
            ),
        )

    @staticmethod
    def _failure(session_id: str, kind: ErrorKind, started: float) -> ChatResponse:
        return ChatResponse(
            success=False,
            session_id=session_id,
            error_kind=kind,
            error_message=user_message(kind),
            response_time_ms=_elapsed_ms(started),
        )

    # -- history and settings ----------------------------------------------

    async def get_history(
        self,
        tenant_id: int,
        session_id: Optional[str] = None,
        skip: int = 0,
        take: int = 50,
        user_id: Optional[int] = None,
    ) -> HistoryPage:
        """One page of history, newest page first, messages oldest-first within it."""
        records, total = await self._store.history(tenant_id, session_id, skip, take, user_id)
        return HistoryPage(messages=records, total_count=total, has_more=skip + len(records) < total)

    async def list_sessions(self, tenant_id: int) -> SessionList:
        return SessionList(sessions=await self._store.list_sessions(tenant_id))

    async def clear_history(self, tenant_id: int, session_id: str) -> int:
        return await self._store.clear_session(tenant_id, session_id)

    async def check_availability(self, tenant_id: int) -> Availability:
        quota = await self._store.load_quota(tenant_id)
        return Availability(
            available=quota.available,
            enabled=quota.enabled,
            daily_limit=quota.daily_limit,
            current_usage=quota.current_usage,
            remaining=quota.remaining,
        )

    async def get_config(self, tenant_id: int) -> QuotaState:
        return await self._store.load_quota(tenant_id)

    async def update_config(self, tenant_id: int, **changes: Any) -> QuotaState:
        return await self._store.update_quota_settings(tenant_id, **changes)

    # -- reports -----------------------------------------------------------

    async def generate_report(
        self,
        tenant_id: int,
        report_type: str,
        parameters: Optional[dict[str, Any]] = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ReportResult:
        """Single free-text completion; counts as one exchange but is not kept in any session."""
        quota = await self._store.load_quota(tenant_id)
        if not quota.available:
            return ReportResult(
                success=False,
                report_type=report_type,
                error_kind=ErrorKind.QUOTA_EXCEEDED,
                error_message=user_message(ErrorKind.QUOTA_EXCEEDED),
            )

        prompt = (
            f"Write a {report_type} report for the company. "
            f"Parameters: {json.dumps(parameters or {}, ensure_ascii=False, default=str)}"
        )
        messages = [
            ChatMessage(role="system", content=REPORT_SYSTEM_PROMPT),
            ChatMessage(role="user", content=prompt),
        ]
        result = await self._client.complete_chat(messages, _options(quota), cancel_event)
        if not result.success:
            kind = result.error_kind or ErrorKind.FATAL
            return ReportResult(
                success=False,
                report_type=report_type,
                error_kind=kind,
                error_message=user_message(kind),
            )

        await self._store.record_usage(tenant_id)
        logger.info(
            "report_generated",
            tenant_id=tenant_id,
            report_type=report_type,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
        )
        return ReportResult(success=True, report_type=report_type, content=result.content)


def _options(quota: QuotaState) -> CompletionOptions:
    return CompletionOptions(
        model=quota.model, max_tokens=quota.max_tokens, temperature=quota.temperature
    )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
