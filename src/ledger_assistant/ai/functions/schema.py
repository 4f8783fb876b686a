"""Tagged parameter schemas for function definitions.

Handlers declare their parameters as a tree of schema values. The tree is
compiled once into a pydantic model, which renders the JSON Schema sent to the
provider and validates the arguments the model sends back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, create_model

# Unknown keys are dropped: handlers only ever see declared parameters.
_ARGUMENTS_CONFIG = ConfigDict(extra="ignore")


@dataclass(frozen=True)
class Schema:
    description: str = ""

    def annotation(self, name: str) -> Any:
        """The type pydantic validates this value against. ``name`` names nested models."""
        raise NotImplementedError

    def constraints(self) -> dict[str, Any]:
        return {}

    def field(self, name: str, required: bool) -> tuple[Any, Any]:
        kwargs = self.constraints()
        if self.description:
            kwargs["description"] = self.description
        annotation = self.annotation(name)
        if required:
            return annotation, Field(..., **kwargs)
        return Optional[annotation], Field(None, **kwargs)


@dataclass(frozen=True)
class StringSchema(Schema):
    enum: Optional[tuple[str, ...]] = None
    format: Optional[str] = None  # "date" parses to datetime.date
    min_length: int = 0

    def annotation(self, name: str) -> Any:
        if self.enum:
            return Literal[self.enum]
        if self.format == "date":
            return date
        return Annotated[str, StringConstraints(strip_whitespace=True, min_length=self.min_length or None)]


@dataclass(frozen=True)
class IntegerSchema(Schema):
    minimum: Optional[int] = None

    def annotation(self, name: str) -> Any:
        return int

    def constraints(self) -> dict[str, Any]:
        return {} if self.minimum is None else {"ge": self.minimum}


@dataclass(frozen=True)
class NumberSchema(Schema):
    minimum: Optional[float] = None
    exclusive_minimum: bool = False

    def annotation(self, name: str) -> Any:
        return float

    def constraints(self) -> dict[str, Any]:
        if self.minimum is None:
            return {}
        return {"gt" if self.exclusive_minimum else "ge": self.minimum}


@dataclass(frozen=True)
class BooleanSchema(Schema):
    def annotation(self, name: str) -> Any:
        return bool


@dataclass(frozen=True)
class ArraySchema(Schema):
    items: Schema = field(default_factory=StringSchema)
    min_items: int = 0

    def annotation(self, name: str) -> Any:
        return list[self.items.annotation(f"{name}Item")]

    def constraints(self) -> dict[str, Any]:
        return {"min_length": self.min_items} if self.min_items else {}


@dataclass(frozen=True)
class ObjectSchema(Schema):
    properties: dict[str, Schema] = field(default_factory=dict)
    required: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        missing = [name for name in self.required if name not in self.properties]
        if missing:
            raise ValueError(f"required names not declared as properties: {missing}")

    def annotation(self, name: str) -> Any:
        return self.model(name)

    def model(self, name: str) -> type[BaseModel]:
        """Compile this schema into a pydantic model class called ``name``."""
        fields = {
            prop: schema.field(f"{name}{prop[:1].upper()}{prop[1:]}", prop in self.required)
            for prop, schema in self.properties.items()
        }
        return create_model(
            name,
            __config__=_ARGUMENTS_CONFIG,
            __doc__=self.description or None,
            **fields,
        )
