"""Structural schema helpers: derive a schema from input fields, and an example value from a schema."""

from typing import Any, Dict, Iterable, Union

from ..models.nodes import InputField
from ..models.rules import ValueKind

EXAMPLE_DATE = "2025-01-01"

JSONSchema = Dict[str, Any]


def _field_schema(kind: ValueKind) -> JSONSchema:
    if kind == ValueKind.NUMBER:
        return {"type": "number"}
    if kind == ValueKind.DATE:
        return {"type": "string", "format": "date"}
    return {"type": "string"}


def derive_schema(fields: Iterable[Union[InputField, Dict[str, Any]]]) -> JSONSchema:
    """
    Build an object schema from named fields.

    Every field is listed in ``required``. Accepts ``InputField`` models or
    plain ``{"key", "kind"}`` mappings.
    """
    properties: Dict[str, JSONSchema] = {}
    for field in fields:
        if isinstance(field, dict):
            key = field["key"]
            kind = ValueKind(field.get("kind", ValueKind.TEXT))
        else:
            key, kind = field.key, field.kind
        properties[key] = _field_schema(kind)
    return {"type": "object", "properties": properties, "required": list(properties.keys())}


def example_value(schema: Any) -> Any:
    """Produce a value matching the shape of ``schema``."""
    if not isinstance(schema, dict):
        return {}
    schema_type = schema.get("type")
    properties = schema.get("properties")
    if schema_type == "object" and isinstance(properties, dict):
        return {key: example_value(prop) for key, prop in properties.items()}
    if schema_type == "number":
        return 0
    if schema_type == "string" and schema.get("format") == "date":
        return EXAMPLE_DATE
    if schema_type == "string":
        return ""
    return {}
