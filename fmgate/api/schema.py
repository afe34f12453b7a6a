# SPDX-License-Identifier: Apache-2.0
"""
JSON schema handling for structured output and tool parameters.

Three steps, used in both directions:

1. ``parse_schema_node`` turns a request's JSON-Schema-like dict into an
   immutable SchemaNode tree (string, integer, number, boolean, array,
   object), rejecting anything malformed with SchemaError.
2. ``to_engine_schema`` maps a SchemaNode tree onto the engine's
   GenerationSchema, attaching min/max/enum guides and giving every nested
   object a reproducible name derived from its parent scope, numbered
   when that name is already taken.
3. ``materialize`` walks GeneratedContent back into plain JSON values,
   guided by the same SchemaNode tree. It never fails: properties that
   cannot be read are omitted and unreadable leaves fall back to a zero
   value, so partial output (e.g. a streaming snapshot) still serializes.
"""

import logging
from dataclasses import dataclass
from typing import Any

from ..engine.content import ContentDecodingError, GeneratedContent
from ..engine.schema import (
    BOOLEAN,
    INTEGER,
    NUMBER,
    STRING,
    GenerationGuide,
    GenerationSchema,
    SchemaProperty,
)
from ..errors import SchemaError

logger = logging.getLogger(__name__)

# =============================================================================
# Schema nodes
# =============================================================================


@dataclass(frozen=True)
class StringNode:
    description: str | None = None
    enum_values: tuple[str, ...] | None = None


@dataclass(frozen=True)
class IntegerNode:
    description: str | None = None
    minimum: int | None = None
    maximum: int | None = None


@dataclass(frozen=True)
class NumberNode:
    description: str | None = None
    minimum: float | None = None
    maximum: float | None = None


@dataclass(frozen=True)
class BooleanNode:
    description: str | None = None


@dataclass(frozen=True)
class ArrayNode:
    items: "SchemaNode"
    description: str | None = None


@dataclass(frozen=True)
class ObjectNode:
    # Ordered (name, node) pairs; order follows the request
    properties: tuple[tuple[str, "SchemaNode"], ...]
    description: str | None = None
    # None when the request omitted `required`
    required: frozenset[str] | None = None

    def is_optional(self, name: str) -> bool:
        # A missing `required` list means nothing is required
        return self.required is None or name not in self.required


SchemaNode = StringNode | IntegerNode | NumberNode | BooleanNode | ArrayNode | ObjectNode


# =============================================================================
# Parsing
# =============================================================================


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _optional_integer(data: dict, key: str, path: str) -> int | None:
    value = data.get(key)
    if value is None:
        return None
    if _is_number(value) and float(value).is_integer():
        return int(value)
    raise SchemaError(f"Schema at {path}: `{key}` must be an integer.")


def _optional_number(data: dict, key: str, path: str) -> float | None:
    value = data.get(key)
    if value is None:
        return None
    if _is_number(value):
        return float(value)
    raise SchemaError(f"Schema at {path}: `{key}` must be a number.")


def parse_schema_node(data: Any, path: str = "$", _active: frozenset[int] = frozenset()) -> SchemaNode:
    """
    Parse a JSON-Schema-like dict into a SchemaNode tree.

    Raises:
        SchemaError: On unsupported types, missing `items`/`properties`,
            mistyped constraints, or a cyclic structure.
    """
    if not isinstance(data, dict):
        raise SchemaError(f"Schema at {path} must be an object.")
    if id(data) in _active:
        raise SchemaError(f"Schema at {path} is cyclic.")
    active = _active | {id(data)}

    kind = data.get("type")
    description = data.get("description")
    if description is not None and not isinstance(description, str):
        raise SchemaError(f"Schema at {path}: `description` must be a string.")

    if kind == "string":
        enum_values = data.get("enum")
        if enum_values is not None:
            if not isinstance(enum_values, list) or not all(
                isinstance(v, str) for v in enum_values
            ):
                raise SchemaError(f"Schema at {path}: `enum` must be a list of strings.")
            enum_values = tuple(enum_values)
        return StringNode(description=description, enum_values=enum_values)

    if kind == "integer":
        return IntegerNode(
            description=description,
            minimum=_optional_integer(data, "minimum", path),
            maximum=_optional_integer(data, "maximum", path),
        )

    if kind == "number":
        return NumberNode(
            description=description,
            minimum=_optional_number(data, "minimum", path),
            maximum=_optional_number(data, "maximum", path),
        )

    if kind == "boolean":
        return BooleanNode(description=description)

    if kind == "array":
        if "items" not in data:
            raise SchemaError(f"Schema at {path}: array type requires `items`.")
        items = parse_schema_node(data["items"], f"{path}.items", active)
        return ArrayNode(items=items, description=description)

    if kind == "object":
        properties = data.get("properties")
        if not isinstance(properties, dict):
            raise SchemaError(f"Schema at {path}: object type requires `properties`.")
        required = data.get("required")
        if required is not None:
            if not isinstance(required, list) or not all(
                isinstance(name, str) for name in required
            ):
                raise SchemaError(f"Schema at {path}: `required` must be a list of strings.")
            required = frozenset(required)
        parsed = tuple(
            (name, parse_schema_node(prop, f"{path}.properties.{name}", active))
            for name, prop in properties.items()
        )
        return ObjectNode(properties=parsed, description=description, required=required)

    raise SchemaError(f"Schema at {path}: unsupported type {kind!r}.")


# =============================================================================
# SchemaNode -> GenerationSchema
# =============================================================================


def _child_scope(scope_name: str, marker: str) -> str:
    """Derive a nested scope name, keeping a trailing ``_schema`` suffix last."""
    if scope_name.endswith("_schema"):
        return f"{scope_name[: -len('_schema')]}_{marker}_schema"
    return f"{scope_name}_{marker}"


def _unique_scope(scope_name: str, used: set[str]) -> str:
    """Claim ``scope_name`` in ``used``, numbering it if already taken."""
    candidate = scope_name
    counter = 2
    while candidate in used:
        candidate = _child_scope(scope_name, str(counter))
        counter += 1
    used.add(candidate)
    return candidate


def to_engine_schema(node: SchemaNode, scope_name: str) -> GenerationSchema:
    """
    Convert a SchemaNode tree into the engine's constrained-generation schema.

    Object names are derived from ``scope_name`` and are unique within the
    returned tree: a derived name already taken earlier in the walk (e.g.
    root property ``a_property_b`` vs. nested ``a`` -> ``b``) gets a
    numeric suffix.
    """
    return _to_engine_schema(node, scope_name, set())


def _to_engine_schema(node: SchemaNode, scope_name: str, used: set[str]) -> GenerationSchema:
    if isinstance(node, StringNode):
        guides = []
        if node.enum_values is not None:
            guides.append(GenerationGuide.any_of(list(node.enum_values)))
        return GenerationSchema.of_type(STRING, guides)

    if isinstance(node, (IntegerNode, NumberNode)):
        guides = []
        if node.minimum is not None:
            guides.append(GenerationGuide.minimum(node.minimum))
        if node.maximum is not None:
            guides.append(GenerationGuide.maximum(node.maximum))
        kind = INTEGER if isinstance(node, IntegerNode) else NUMBER
        return GenerationSchema.of_type(kind, guides)

    if isinstance(node, BooleanNode):
        return GenerationSchema.of_type(BOOLEAN)

    if isinstance(node, ArrayNode):
        return GenerationSchema.array_of(
            _to_engine_schema(node.items, _child_scope(scope_name, "items"), used)
        )

    if isinstance(node, ObjectNode):
        scope_name = _unique_scope(scope_name, used)
        properties = [
            SchemaProperty(
                name=name,
                description=prop.description,
                schema=_to_engine_schema(
                    prop, _child_scope(scope_name, f"property_{name}"), used
                ),
                optional=node.is_optional(name),
            )
            for name, prop in node.properties
        ]
        return GenerationSchema.of_object(scope_name, properties)

    raise SchemaError(f"Unsupported schema node: {node!r}")


def convert_json_schema(data: Any, scope_name: str) -> tuple[SchemaNode, GenerationSchema]:
    """Parse a request JSON schema and convert it in one step."""
    node = parse_schema_node(data)
    return node, to_engine_schema(node, scope_name)


def response_format_scope(name: str) -> str:
    return f"{name}_schema"


def tool_parameters_schema(function_name: str, parameters: Any) -> GenerationSchema:
    """
    Build the engine schema for a tool's parameters.

    Raises:
        SchemaError: If ``parameters`` is not a well-formed object schema.
    """
    node = parse_schema_node(parameters)
    if not isinstance(node, ObjectNode):
        raise SchemaError(f"Parameters of tool {function_name!r} must be an object schema.")
    return to_engine_schema(node, f"{function_name}_parameters_schema")


# =============================================================================
# GeneratedContent -> JSON
# =============================================================================

_MISSING = object()

# Extraction precedence for properties and arrays
_SCALAR_TYPES = (str, int, float, bool)
_SCALAR_ARRAY_TYPES = (list[str], list[int], list[float], list[bool])


def _extract(content: GeneratedContent, type_: Any, for_property: str | None = None) -> Any:
    try:
        return content.value(type_, for_property=for_property)
    except ContentDecodingError:
        return _MISSING


def _extract_elements(content: GeneratedContent, for_property: str | None = None) -> Any:
    try:
        return content.elements(for_property=for_property)
    except ContentDecodingError:
        return _MISSING


def _materialize_property(content: GeneratedContent, name: str, node: SchemaNode) -> Any:
    for type_ in _SCALAR_TYPES:
        value = _extract(content, type_, name)
        if value is not _MISSING:
            return value

    if isinstance(node, ObjectNode):
        nested = _extract(content, GeneratedContent, name)
        if nested is not _MISSING:
            return materialize(nested, node)

    if isinstance(node, ArrayNode):
        objects = _extract(content, list[GeneratedContent], name)
        if objects is not _MISSING:
            return [materialize(item, node.items) for item in objects]

    for type_ in _SCALAR_ARRAY_TYPES:
        value = _extract(content, type_, name)
        if value is not _MISSING:
            return value

    if isinstance(node, ArrayNode):
        elements = _extract_elements(content, name)
        if elements is not _MISSING:
            return [materialize(item, node.items) for item in elements]

    return _MISSING


def materialize(content: GeneratedContent, node: SchemaNode) -> Any:
    """Convert engine content into JSON-compatible values following ``node``."""
    if isinstance(node, ObjectNode):
        result: dict[str, Any] = {}
        for name, prop in node.properties:
            value = _materialize_property(content, name, prop)
            if value is _MISSING:
                logger.debug(f"Omitting unreadable property {name!r} from structured output")
                continue
            result[name] = value
        return result

    if isinstance(node, ArrayNode):
        for type_ in _SCALAR_ARRAY_TYPES:
            value = _extract(content, type_)
            if value is not _MISSING:
                return value
        elements = _extract_elements(content)
        if elements is _MISSING:
            return []
        return [materialize(item, node.items) for item in elements]

    if isinstance(node, StringNode):
        value = _extract(content, str)
        return "" if value is _MISSING else value
    if isinstance(node, IntegerNode):
        value = _extract(content, int)
        return 0 if value is _MISSING else value
    if isinstance(node, NumberNode):
        value = _extract(content, float)
        return 0.0 if value is _MISSING else value
    if isinstance(node, BooleanNode):
        value = _extract(content, bool)
        return False if value is _MISSING else value

    raise SchemaError(f"Unsupported schema node: {node!r}")
