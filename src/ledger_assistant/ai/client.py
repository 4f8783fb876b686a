"""Chat completion client: provider-neutral contract plus the Anthropic API backend."""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Optional

from ledger_assistant.ai.functions.base import FunctionCall, FunctionDefinition
from ledger_assistant.ai.retry import RetryPolicy, Sleep, call_with_retry
from ledger_assistant.config import AnthropicConfig
from ledger_assistant.errors import DeadlineExceeded, ErrorKind, UpstreamError
from ledger_assistant.log import get_logger

logger = get_logger(__name__)

ROLES = ("system", "user", "assistant")
NATURAL_STOPS = frozenset({"end_turn", "stop_sequence"})
STOP_CONFIDENCE = 0.95
OTHER_CONFIDENCE = 0.7
TRANSIENT_STATUS_CODES = frozenset({502, 503, 504, 529})


@dataclass(frozen=True)
class ChatMessage:
    role: str  # "system" | "user" | "assistant"
    content: str


@dataclass(frozen=True)
class CompletionOptions:
    model: str
    max_tokens: int = 1000
    temperature: float = 0.7


@dataclass
class ProviderReply:
    """One raw provider answer, before confidence scoring."""

    text: str
    calls: list[FunctionCall] = field(default_factory=list)
    stop_reason: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class CompletionResult:
    success: bool
    content: str = ""
    confidence: float = 0.0
    error_kind: Optional[ErrorKind] = None
    error_detail: str = ""
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class ToolCompletionResult(CompletionResult):
    calls: list[FunctionCall] = field(default_factory=list)

    @property
    def requires_function_execution(self) -> bool:
        return bool(self.calls)


def confidence_for(stop_reason: Optional[str]) -> float:
    return STOP_CONFIDENCE if stop_reason in NATURAL_STOPS else OTHER_CONFIDENCE


def split_system(messages: list[ChatMessage]) -> tuple[str, list[dict[str, Any]]]:
    """Separate system text from conversation turns.

    Raises ValueError for any role other than system/user/assistant.
    """
    system_parts: list[str] = []
    turns: list[dict[str, Any]] = []
    for message in messages:
        role = message.role.lower()
        if role not in ROLES:
            raise ValueError(f"Unknown message role: {message.role}")
        if role == "system":
            system_parts.append(message.content.strip())
        else:
            turns.append({"role": role, "content": message.content})
    return "\n\n".join(p for p in system_parts if p), turns


class ChatCompletionClient(ABC):
    """Retrying, deadline-bound access to a chat completion provider.

    Subclasses only translate one request into a :class:`ProviderReply` and
    classify provider failures as :class:`UpstreamError`; retries, deadlines
    and cancellation live here. Nothing is kept between calls.
    """

    def __init__(
        self,
        retry_policy: RetryPolicy | None = None,
        timeout: float = 30.0,
        sleep: Sleep = asyncio.sleep,
    ):
        self._policy = retry_policy or RetryPolicy()
        self._timeout = timeout
        self._sleep = sleep

    @abstractmethod
    async def _create(
        self,
        system: str,
        turns: list[dict[str, Any]],
        options: CompletionOptions,
        tools: list[dict[str, Any]] | None,
    ) -> ProviderReply:
        """Send one request to the provider; raise UpstreamError on failure."""
        ...

    async def complete_chat(
        self,
        messages: list[ChatMessage],
        options: CompletionOptions,
        cancel_event: asyncio.Event | None = None,
    ) -> CompletionResult:
        system, turns = split_system(messages)
        try:
            reply = await self._request(system, turns, options, None, cancel_event)
        except (UpstreamError, DeadlineExceeded) as e:
            return CompletionResult(success=False, **self._failure(e))

        if not reply.text.strip():
            logger.warning("empty_completion", model=options.model, stop_reason=reply.stop_reason)
            return CompletionResult(
                success=False, error_kind=ErrorKind.FATAL, error_detail="empty completion"
            )
        return CompletionResult(
            success=True,
            content=reply.text,
            confidence=confidence_for(reply.stop_reason),
            input_tokens=reply.input_tokens,
            output_tokens=reply.output_tokens,
        )

    async def complete_chat_with_tools(
        self,
        messages: list[ChatMessage],
        tools: list[FunctionDefinition],
        options: CompletionOptions,
        cancel_event: asyncio.Event | None = None,
    ) -> ToolCompletionResult:
        system, turns = split_system(messages)
        tool_defs = [t.to_api_dict() for t in tools] or None
        try:
            reply = await self._request(system, turns, options, tool_defs, cancel_event)
        except (UpstreamError, DeadlineExceeded) as e:
            return ToolCompletionResult(success=False, **self._failure(e))

        if not reply.calls and not reply.text.strip():
            logger.warning("empty_completion", model=options.model, stop_reason=reply.stop_reason)
            return ToolCompletionResult(
                success=False, error_kind=ErrorKind.FATAL, error_detail="empty completion"
            )
        return ToolCompletionResult(
            success=True,
            content=reply.text,
            calls=reply.calls,
            confidence=confidence_for(reply.stop_reason),
            input_tokens=reply.input_tokens,
            output_tokens=reply.output_tokens,
        )

    async def _request(
        self,
        system: str,
        turns: list[dict[str, Any]],
        options: CompletionOptions,
        tools: list[dict[str, Any]] | None,
        cancel_event: asyncio.Event | None,
    ) -> ProviderReply:
        async def attempt() -> ProviderReply:
            return await self._bounded(
                self._create(system, turns, options, tools), cancel_event, self._timeout
            )

        async def sleep(delay: float) -> None:
            await self._bounded(self._sleep(delay), cancel_event, None)

        return await call_with_retry(attempt, self._policy, sleep=sleep)

    @staticmethod
    async def _bounded(
        awaitable: Awaitable[Any],
        cancel_event: asyncio.Event | None,
        timeout: float | None,
    ) -> Any:
        """Await ``awaitable`` unless the deadline passes or ``cancel_event`` fires first."""
        task = asyncio.ensure_future(awaitable)
        waiters: set[asyncio.Future[Any]] = {task}
        stopper: asyncio.Future[Any] | None = None
        if cancel_event is not None:
            stopper = asyncio.ensure_future(cancel_event.wait())
            waiters.add(stopper)
        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if stopper is not None:
                stopper.cancel()

        if task in done:
            return task.result()

        task.cancel()
        await asyncio.wait({task})
        reason = "cancelled" if cancel_event is not None and cancel_event.is_set() else "deadline"
        raise DeadlineExceeded(reason)

    @staticmethod
    def _failure(error: Exception) -> dict[str, Any]:
        if isinstance(error, DeadlineExceeded):
            logger.warning("completion_timeout", reason=str(error))
            return {"error_kind": ErrorKind.TIMEOUT, "error_detail": str(error)}
        assert isinstance(error, UpstreamError)
        logger.error(
            "completion_failed",
            error_kind=error.kind.value,
            status_code=error.status_code,
            detail=error.detail,
        )
        return {"error_kind": error.kind, "error_detail": error.detail}


class AnthropicChatClient(ChatCompletionClient):
    """Anthropic Messages API backend using the official SDK.

    The SDK's own retry loop is disabled; :class:`ChatCompletionClient` is the
    only place a request is repeated.
    """

    def __init__(
        self,
        config: AnthropicConfig,
        client: Any = None,
        sleep: Sleep = asyncio.sleep,
    ):
        super().__init__(
            retry_policy=RetryPolicy(
                max_attempts=config.max_retries, base_delay=config.retry_base_delay
            ),
            timeout=config.timeout,
            sleep=sleep,
        )
        if client is None:
            import anthropic

            client = anthropic.AsyncAnthropic(
                api_key=config.api_key,
                base_url=config.base_url,
                max_retries=0,
            )
        self._client = client

    async def _create(
        self,
        system: str,
        turns: list[dict[str, Any]],
        options: CompletionOptions,
        tools: list[dict[str, Any]] | None,
    ) -> ProviderReply:
        import anthropic

        kwargs: dict[str, Any] = {
            "model": options.model,
            "max_tokens": options.max_tokens,
            "messages": turns,
            "temperature": options.temperature,
        }
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = tools

        logger.debug("api_request", model=options.model, message_count=len(turns), tools=len(tools or ()))
        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.RateLimitError as e:
            raise UpstreamError(ErrorKind.RATE_LIMITED, str(e), e.status_code) from e
        except anthropic.APITimeoutError as e:
            raise UpstreamError(ErrorKind.TRANSIENT, "provider timeout") from e
        except anthropic.APIConnectionError as e:
            raise UpstreamError(ErrorKind.TRANSIENT, f"connection error: {e}") from e
        except anthropic.APIStatusError as e:
            kind = ErrorKind.TRANSIENT if e.status_code in TRANSIENT_STATUS_CODES else ErrorKind.FATAL
            raise UpstreamError(kind, str(e), e.status_code) from e

        logger.debug(
            "api_response",
            model=options.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            stop_reason=response.stop_reason,
        )

        texts: list[str] = []
        calls: list[FunctionCall] = []
        for block in response.content:
            if block.type == "text":
                texts.append(block.text)
            elif block.type == "tool_use":
                calls.append(
                    FunctionCall(id=block.id, name=block.name, arguments=json.dumps(block.input))
                )
        return ProviderReply(
            text="\n".join(texts),
            calls=calls,
            stop_reason=response.stop_reason,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
