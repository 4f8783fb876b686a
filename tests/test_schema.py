"""Tests for tagged parameter schemas and the pydantic models compiled from them."""

from datetime import date

import pytest
from pydantic import ValidationError

from ledger_assistant.ai.functions.base import FunctionDefinition
from ledger_assistant.ai.functions.schema import (
    ArraySchema,
    BooleanSchema,
    IntegerSchema,
    NumberSchema,
    ObjectSchema,
    StringSchema,
)

LINE = ObjectSchema(
    properties={
        "description": StringSchema(min_length=1),
        "quantity": NumberSchema(minimum=0, exclusive_minimum=True),
    },
    required=("description", "quantity"),
)
PAYLOAD = ObjectSchema(
    description="Create an invoice",
    properties={
        "customerId": IntegerSchema(description="Customer id", minimum=1),
        "invoiceDate": StringSchema(format="date"),
        "status": StringSchema(enum=("Draft", "Sent")),
        "urgent": BooleanSchema(),
        "lines": ArraySchema(items=LINE, min_items=1),
    },
    required=("customerId", "lines"),
)
DEFINITION = FunctionDefinition(name="createInvoice", description="Create an invoice", parameters=PAYLOAD)


def test_json_schema_comes_from_the_compiled_model():
    rendered = DEFINITION.to_api_dict()["input_schema"]

    assert rendered == DEFINITION.arguments_model.model_json_schema()
    assert rendered["type"] == "object"
    assert rendered["title"] == "CreateInvoiceArguments"
    assert rendered["description"] == "Create an invoice"
    assert sorted(rendered["required"]) == ["customerId", "lines"]
    customer_id = rendered["properties"]["customerId"]
    assert (customer_id["type"], customer_id["minimum"]) == ("integer", 1)
    assert customer_id["description"] == "Customer id"
    assert {"type": "string", "format": "date"} in rendered["properties"]["invoiceDate"]["anyOf"]
    assert rendered["properties"]["lines"]["minItems"] == 1
    line = next(iter(rendered["$defs"].values()))
    assert sorted(line["required"]) == ["description", "quantity"]


def test_valid_arguments_are_coerced():
    args = DEFINITION.parse_arguments(
        {
            "customerId": "12",
            "invoiceDate": "2026-03-01",
            "urgent": "true",
            "lines": [{"description": " Widget ", "quantity": 2}],
            "unexpected": "dropped",
            "status": None,
        }
    )
    assert args == {
        "customerId": 12,
        "invoiceDate": date(2026, 3, 1),
        "urgent": True,
        "lines": [{"description": "Widget", "quantity": 2.0}],
    }


@pytest.mark.parametrize(
    "payload, loc",
    [
        ({"lines": [{"description": "x", "quantity": 1}]}, ("customerId",)),
        ({"customerId": None, "lines": [{"description": "x", "quantity": 1}]}, ("customerId",)),
        ({"customerId": 0, "lines": [{"description": "x", "quantity": 1}]}, ("customerId",)),
        ({"customerId": 1, "lines": []}, ("lines",)),
        ({"customerId": 1, "lines": [{"description": "x", "quantity": 0}]}, ("lines", 0, "quantity")),
        ({"customerId": 1, "lines": [{"quantity": 1}]}, ("lines", 0, "description")),
        ({"customerId": 1, "lines": [{"description": "  ", "quantity": 1}]}, ("lines", 0, "description")),
        ({"customerId": 1, "lines": [{"description": "x", "quantity": 1}], "invoiceDate": "01/03/2026"}, ("invoiceDate",)),
        ({"customerId": 1, "lines": [{"description": "x", "quantity": 1}], "status": "Paid"}, ("status",)),
    ],
)
def test_invalid_arguments_report_their_location(payload, loc):
    with pytest.raises(ValidationError) as excinfo:
        DEFINITION.parse_arguments(payload)
    assert [error["loc"] for error in excinfo.value.errors()] == [loc]


def test_non_object_arguments_are_rejected():
    with pytest.raises(ValidationError):
        DEFINITION.parse_arguments(["customerId", 1])


def test_required_names_must_be_declared():
    with pytest.raises(ValueError):
        ObjectSchema(properties={"a": StringSchema()}, required=("b",))
