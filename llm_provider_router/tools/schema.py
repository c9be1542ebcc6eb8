"""JSON Schema checks for tool input and output."""

import copy
from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError

__all__ = ["SchemaError", "check_schema", "closed_schema", "validation_errors"]

COMBINATORS = ("allOf", "anyOf", "oneOf")


def check_schema(schema: dict[str, Any]) -> None:
    """Raise SchemaError if `schema` is not a valid Draft 2020-12 schema."""
    Draft202012Validator.check_schema(schema)


def closed_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Copy of `schema` where object schemas with declared properties reject unknown keys.

    Nested property schemas and array item schemas are closed the same way.
    An explicit ``additionalProperties`` is left untouched. A node that uses
    ``allOf``, ``anyOf`` or ``oneOf`` is left open, and its subschemas are not
    closed either.
    """
    closed = copy.deepcopy(schema)
    _close(closed)
    return closed


def _close(node: Any) -> None:
    if not isinstance(node, dict):
        return
    properties = node.get("properties")
    if isinstance(properties, dict):
        if not any(key in node for key in COMBINATORS):
            node.setdefault("additionalProperties", False)
        for child in properties.values():
            _close(child)
    items = node.get("items")
    if isinstance(items, dict):
        _close(items)


def validation_errors(schema: dict[str, Any], instance: Any) -> list[str]:
    """Validate `instance` and return one ``"<path> <message>"`` string per error."""
    validator = Draft202012Validator(schema)
    errors = sorted(
        validator.iter_errors(instance),
        key=lambda err: ".".join(map(str, err.absolute_path)),
    )
    return [
        f"{'.'.join(map(str, err.absolute_path))} {err.message}".strip()
        for err in errors
    ]
