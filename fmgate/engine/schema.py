# SPDX-License-Identifier: Apache-2.0
"""
Constrained-generation schema types understood by engines.

A GenerationSchema is the engine-side mirror of a JSON-Schema-like tree:
the same shape, plus guides (minimum/maximum/any_of) that restrict what the
engine may generate. Object schemas carry a name; engines require those
names to be unique within one schema tree.
"""

from dataclasses import dataclass, field
from typing import Any

# Primitive kinds an engine can be constrained to
STRING = "string"
INTEGER = "integer"
NUMBER = "number"
BOOLEAN = "boolean"
ARRAY = "array"
OBJECT = "object"

PRIMITIVE_KINDS = (STRING, INTEGER, NUMBER, BOOLEAN)


@dataclass(frozen=True)
class GenerationGuide:
    """A single constraint attached to a primitive schema."""

    kind: str  # "minimum", "maximum", "any_of"
    value: Any

    @classmethod
    def minimum(cls, value: int | float) -> "GenerationGuide":
        return cls("minimum", value)

    @classmethod
    def maximum(cls, value: int | float) -> "GenerationGuide":
        return cls("maximum", value)

    @classmethod
    def any_of(cls, values: list[str]) -> "GenerationGuide":
        return cls("any_of", tuple(values))


@dataclass(frozen=True)
class SchemaProperty:
    """A named property of an object schema."""

    name: str
    schema: "GenerationSchema"
    description: str | None = None
    optional: bool = False


@dataclass(frozen=True)
class GenerationSchema:
    """Engine constrained-generation schema node."""

    kind: str
    name: str | None = None
    guides: tuple[GenerationGuide, ...] = ()
    items: "GenerationSchema | None" = None
    properties: tuple[SchemaProperty, ...] = field(default_factory=tuple)

    @classmethod
    def of_type(
        cls, kind: str, guides: list[GenerationGuide] | None = None
    ) -> "GenerationSchema":
        if kind not in PRIMITIVE_KINDS:
            raise ValueError(f"Not a primitive schema kind: {kind!r}")
        return cls(kind=kind, guides=tuple(guides or ()))

    @classmethod
    def array_of(cls, items: "GenerationSchema") -> "GenerationSchema":
        return cls(kind=ARRAY, items=items)

    @classmethod
    def of_object(
        cls, name: str, properties: list[SchemaProperty]
    ) -> "GenerationSchema":
        return cls(kind=OBJECT, name=name, properties=tuple(properties))

    def guide(self, kind: str) -> Any:
        """Return the value of the first guide of ``kind``, or None."""
        for guide in self.guides:
            if guide.kind == kind:
                return guide.value
        return None

    def get_property(self, name: str) -> SchemaProperty | None:
        for prop in self.properties:
            if prop.name == name:
                return prop
        return None

    def to_dict(self) -> dict[str, Any]:
        """Render the schema as a plain dict (for logging and tests)."""
        data: dict[str, Any] = {"type": self.kind}
        if self.name is not None:
            data["name"] = self.name
        for guide in self.guides:
            value = guide.value
            data[guide.kind] = list(value) if isinstance(value, tuple) else value
        if self.items is not None:
            data["items"] = self.items.to_dict()
        if self.kind == OBJECT:
            data["properties"] = {}
            for prop in self.properties:
                rendered = prop.schema.to_dict()
                if prop.description is not None:
                    rendered["description"] = prop.description
                rendered["optional"] = prop.optional
                data["properties"][prop.name] = rendered
        return data
