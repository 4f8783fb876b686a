"""Routing of model function calls to the registries that own them."""

from __future__ import annotations

import asyncio

from ledger_assistant.ai.functions.base import FunctionCall, FunctionDefinition, FunctionRegistry, FunctionResult
from ledger_assistant.errors import DuplicateFunctionError, ErrorKind
from ledger_assistant.log import get_logger

logger = get_logger(__name__)


class FunctionDispatcher:
    """Merged view over several registries.

    Function names must be unique across all registries; a clash raises
    :class:`DuplicateFunctionError` here, at construction.
    """

    def __init__(self, registries: list[FunctionRegistry], function_timeout: float | None = None):
        self._registries = list(registries)
        self._owners: dict[str, FunctionRegistry] = {}
        self._function_timeout = function_timeout
        for registry in self._registries:
            for name in registry.names():
                owner = self._owners.get(name)
                if owner is not None:
                    raise DuplicateFunctionError(
                        f"Function '{name}' is declared by both '{owner.group}' and '{registry.group}'"
                    )
                self._owners[name] = registry
        logger.info(
            "functions_registered",
            groups=[r.group for r in self._registries],
            count=len(self._owners),
        )

    def definitions(self) -> list[FunctionDefinition]:
        """All definitions, registry by registry, each in declaration order."""
        return [d for registry in self._registries for d in registry.list_definitions()]

    def owner_of(self, name: str) -> FunctionRegistry | None:
        return self._owners.get(name)

    async def dispatch(
        self,
        calls: list[FunctionCall],
        tenant_id: int,
        cancel_event: asyncio.Event | None = None,
    ) -> list[FunctionResult]:
        """Execute calls concurrently; results come back in call order.

        A failing call becomes an error result in its slot and never aborts
        its siblings.
        """
        return list(
            await asyncio.gather(*(self._execute_one(c, tenant_id, cancel_event) for c in calls))
        )

    async def _execute_one(
        self,
        call: FunctionCall,
        tenant_id: int,
        cancel_event: asyncio.Event | None,
    ) -> FunctionResult:
        registry = self._owners.get(call.name)
        if registry is None:
            logger.warning("unknown_function", function=call.name)
            return FunctionResult.failure(
                call, ErrorKind.UNKNOWN_FUNCTION, f"Unknown function: {call.name}"
            )
        try:
            return await asyncio.wait_for(
                registry.execute(call, tenant_id, cancel_event),
                timeout=self._function_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("function_timeout", function=call.name, timeout=self._function_timeout)
            return FunctionResult.failure(call, ErrorKind.EXECUTION, f"{call.name} timed out")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("function_dispatch_error", function=call.name, error=str(e), exc_info=True)
            return FunctionResult.failure(
                call, ErrorKind.EXECUTION, f"Error executing function {call.name}"
            )
