"""Tests for FunctionDispatcher: routing, ordering and failure isolation."""

import asyncio
import json

import pytest

from ledger_assistant.ai.functions.base import FunctionCall, FunctionOutput, FunctionRegistry, function
from ledger_assistant.ai.functions.schema import NumberSchema, ObjectSchema, StringSchema
from ledger_assistant.assistant.dispatch import FunctionDispatcher
from ledger_assistant.errors import DuplicateFunctionError, ErrorKind

_SLOW_ARGS = ObjectSchema(
    properties={"delay": NumberSchema(minimum=0), "tag": StringSchema()},
    required=("delay", "tag"),
)


class SlowFunctions(FunctionRegistry):
    group = "slow"

    def __init__(self):
        super().__init__()
        self.finished: list[str] = []

    @function(name="wait", description="Sleep, then return the tag", parameters=_SLOW_ARGS)
    async def wait(self, args, tenant_id):
        await asyncio.sleep(args["delay"])
        self.finished.append(args["tag"])
        return FunctionOutput.ok(args["tag"])

    @function(name="crash", description="Raises")
    async def crash(self, args, tenant_id):
        raise RuntimeError("crash")


class OtherFunctions(FunctionRegistry):
    group = "other"

    @function(name="ping", description="Pong")
    async def ping(self, args, tenant_id):
        return FunctionOutput.ok("pong")


class ClashingFunctions(FunctionRegistry):
    group = "clash"

    @function(name="ping", description="Also pong")
    async def ping(self, args, tenant_id):
        return FunctionOutput.ok("pong too")


def _wait(call_id: str, delay: float, tag: str) -> FunctionCall:
    return FunctionCall(call_id, "wait", json.dumps({"delay": delay, "tag": tag}))


def test_duplicate_names_across_registries_are_rejected():
    with pytest.raises(DuplicateFunctionError):
        FunctionDispatcher([OtherFunctions(), ClashingFunctions()])


def test_definitions_are_merged_in_registry_order():
    dispatcher = FunctionDispatcher([SlowFunctions(), OtherFunctions()])
    assert [d.name for d in dispatcher.definitions()] == ["wait", "crash", "ping"]
    assert dispatcher.owner_of("ping").group == "other"
    assert dispatcher.owner_of("nope") is None


async def test_results_keep_call_order_when_completion_order_differs():
    slow = SlowFunctions()
    dispatcher = FunctionDispatcher([slow, OtherFunctions()])
    calls = [_wait("a", 0.06, "first"), _wait("b", 0.0, "second"), _wait("c", 0.03, "third")]

    results = await dispatcher.dispatch(calls, tenant_id=1)

    assert slow.finished == ["second", "third", "first"]
    assert [r.call_id for r in results] == ["a", "b", "c"]
    assert [r.result for r in results] == ["first", "second", "third"]


async def test_one_failure_does_not_abort_siblings():
    dispatcher = FunctionDispatcher([SlowFunctions(), OtherFunctions()])
    calls = [
        FunctionCall("a", "ping"),
        FunctionCall("b", "crash"),
        FunctionCall("c", "unknownThing"),
        FunctionCall("d", "wait", '{"tag": "no delay"}'),
        _wait("e", 0.0, "ok"),
    ]

    results = await dispatcher.dispatch(calls, tenant_id=1)

    assert [r.success for r in results] == [True, False, False, False, True]
    assert results[1].error_kind is ErrorKind.EXECUTION
    assert results[2].error_kind is ErrorKind.UNKNOWN_FUNCTION
    assert results[3].error_kind is ErrorKind.VALIDATION


async def test_slow_function_times_out_inline():
    dispatcher = FunctionDispatcher([SlowFunctions()], function_timeout=0.05)

    results = await dispatcher.dispatch([_wait("a", 5, "late"), _wait("b", 0, "fast")], tenant_id=1)

    assert not results[0].success
    assert results[0].error_kind is ErrorKind.EXECUTION
    assert results[1].success


async def test_empty_batch():
    dispatcher = FunctionDispatcher([OtherFunctions()])
    assert await dispatcher.dispatch([], tenant_id=1) == []
