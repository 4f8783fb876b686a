"""Function-calling primitives and the registry base class."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from functools import cached_property
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, ValidationError

from ledger_assistant.ai.functions.schema import ObjectSchema
from ledger_assistant.errors import DuplicateFunctionError, ErrorKind
from ledger_assistant.log import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class FunctionDefinition:
    name: str
    description: str
    parameters: ObjectSchema

    @cached_property
    def arguments_model(self) -> type[BaseModel]:
        return self.parameters.model(f"{self.name[:1].upper()}{self.name[1:]}Arguments")

    def parse_arguments(self, raw: Any) -> dict[str, Any]:
        """Validate decoded JSON arguments. Unset optional parameters are left out."""
        return self.arguments_model.model_validate(raw).model_dump(exclude_none=True)

    def to_api_dict(self) -> dict[str, Any]:
        """Serialize to the Anthropic API tool definition format."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.arguments_model.model_json_schema(),
        }


@dataclass(frozen=True)
class FunctionCall:
    """A model-requested invocation. ``arguments`` is the raw JSON text."""

    id: str
    name: str
    arguments: str = "{}"


@dataclass(frozen=True)
class FunctionOutput:
    """What a handler returns: text for the model plus an optional structured payload."""

    success: bool
    message: str
    data: Any = None

    @classmethod
    def ok(cls, message: str, data: Any = None) -> FunctionOutput:
        return cls(True, message, data)

    @classmethod
    def fail(cls, message: str) -> FunctionOutput:
        return cls(False, message)


@dataclass(frozen=True)
class FunctionResult:
    name: str
    call_id: str
    success: bool
    result: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    data: Any = None

    @classmethod
    def failure(cls, call: FunctionCall, kind: ErrorKind, message: str) -> FunctionResult:
        return cls(name=call.name, call_id=call.id, success=False, error=message, error_kind=kind)

    def content_for_model(self) -> str:
        if self.success:
            return self.result or ""
        return f"Error: {self.error}"


Handler = Callable[[dict[str, Any], int], Awaitable[FunctionOutput]]


def function(
    name: str,
    description: str,
    parameters: Optional[ObjectSchema] = None,
) -> Callable[[Callable[..., Awaitable[FunctionOutput]]], Callable[..., Awaitable[FunctionOutput]]]:
    """Mark a registry coroutine method as a model-callable function."""

    def decorate(method):
        method.__function_definition__ = FunctionDefinition(
            name=name,
            description=description,
            parameters=parameters or ObjectSchema(),
        )
        return method

    return decorate


class FunctionRegistry:
    """A group of domain functions callable by the model.

    Subclasses declare handlers with :func:`function`; the name -> handler map
    is built once here, in declaration order, and a repeated name is a
    configuration error raised at construction.
    """

    group = "functions"

    def __init__(self, max_result_rows: int = 200) -> None:
        self.max_result_rows = max_result_rows
        self._definitions: dict[str, FunctionDefinition] = {}
        self._handlers: dict[str, Handler] = {}

        methods: dict[str, Any] = {}
        for klass in reversed(type(self).__mro__):
            for attr, value in vars(klass).items():
                if hasattr(value, "__function_definition__"):
                    methods[attr] = value

        for attr, method in methods.items():
            definition: FunctionDefinition = method.__function_definition__
            if definition.name in self._definitions:
                raise DuplicateFunctionError(
                    f"Function '{definition.name}' is declared twice in {type(self).__name__}"
                )
            definition.arguments_model  # compiled eagerly
            self._definitions[definition.name] = definition
            self._handlers[definition.name] = getattr(self, attr)

    def list_definitions(self) -> list[FunctionDefinition]:
        return list(self._definitions.values())

    def names(self) -> list[str]:
        return list(self._definitions)

    def __contains__(self, name: str) -> bool:
        return name in self._handlers

    def cap(self, requested: Optional[int], default: int) -> int:
        """Clamp a requested row limit to ``[1, max_result_rows]``."""
        limit = requested if requested is not None else default
        return max(1, min(limit, self.max_result_rows))

    async def execute(
        self,
        call: FunctionCall,
        tenant_id: int,
        cancel_event: asyncio.Event | None = None,
    ) -> FunctionResult:
        """Validate and run one call. Never raises except on task cancellation."""
        handler = self._handlers.get(call.name)
        if handler is None:
            logger.warning("unknown_function", function=call.name, group=self.group)
            return FunctionResult.failure(
                call, ErrorKind.UNKNOWN_FUNCTION, f"Unknown function: {call.name}"
            )

        try:
            raw_args = json.loads(call.arguments) if call.arguments and call.arguments.strip() else {}
        except json.JSONDecodeError as e:
            logger.info("function_arguments_malformed", function=call.name, error=str(e))
            return FunctionResult.failure(
                call, ErrorKind.VALIDATION, "Arguments are not valid JSON"
            )

        try:
            args = self._definitions[call.name].parse_arguments(raw_args)
        except ValidationError as e:
            problems = _describe(e)
            logger.info("function_arguments_invalid", function=call.name, error=problems)
            return FunctionResult.failure(call, ErrorKind.VALIDATION, f"Invalid arguments: {problems}")

        if cancel_event and cancel_event.is_set():
            return FunctionResult.failure(call, ErrorKind.EXECUTION, "Cancelled")

        try:
            output = await handler(args, tenant_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "function_execution_error",
                function=call.name,
                tenant_id=tenant_id,
                error=str(e),
                exc_info=True,
            )
            return FunctionResult.failure(
                call, ErrorKind.EXECUTION, f"Error executing function {call.name}"
            )

        logger.info(
            "function_executed",
            function=call.name,
            tenant_id=tenant_id,
            success=output.success,
        )
        if not output.success:
            return FunctionResult.failure(call, ErrorKind.EXECUTION, output.message)
        return FunctionResult(
            name=call.name,
            call_id=call.id,
            success=True,
            result=output.message,
            data=output.data,
        )


def _describe(error: ValidationError) -> str:
    """One line per failed field, e.g. ``lines.0.quantity: Input should be greater than 0``."""
    parts = []
    for item in error.errors():
        where = ".".join(str(p) for p in item["loc"])
        parts.append(f"{where}: {item['msg']}" if where else item["msg"])
    return "; ".join(parts)
