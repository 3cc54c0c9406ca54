"""Structural argument validation against JSON-schema-like tool inputs.

This is intentionally narrower than full JSON Schema: it checks types,
required fields, enums, string length and numeric bounds, and recurses into
nested objects and array items. Unknown properties are accepted.
"""

from __future__ import annotations

from typing import Any, Mapping

from ..errors import InvalidArguments

_TYPE_CHECKS = {
    "string": lambda value: isinstance(value, str),
    "integer": lambda value: isinstance(value, int) and not isinstance(value, bool),
    "number": lambda value: isinstance(value, (int, float)) and not isinstance(value, bool),
    "boolean": lambda value: isinstance(value, bool),
    "array": lambda value: isinstance(value, list),
    "object": lambda value: isinstance(value, Mapping),
}


def _check(value: Any, schema: Mapping[str, Any], path: str, problems: list[str]) -> None:
    expected = schema.get("type")
    if isinstance(expected, str):
        check = _TYPE_CHECKS.get(expected)
        if check is not None and not check(value):
            problems.append(f"{path} must be of type {expected}")
            return

    enum = schema.get("enum")
    if enum is not None and value not in enum:
        allowed = ", ".join(str(option) for option in enum)
        problems.append(f"{path} must be one of [{allowed}], got {value!r}")

    if isinstance(value, str):
        max_length = schema.get("maxLength")
        if isinstance(max_length, int) and len(value) > max_length:
            problems.append(
                f"{path} must be at most {max_length} characters, got {len(value)}"
            )
        min_length = schema.get("minLength")
        if isinstance(min_length, int) and len(value) < min_length:
            problems.append(f"{path} must be at least {min_length} characters")

    if _TYPE_CHECKS["number"](value):
        maximum = schema.get("maximum")
        if maximum is not None and value > maximum:
            problems.append(f"{path} must be <= {maximum}, got {value}")
        minimum = schema.get("minimum")
        if minimum is not None and value < minimum:
            problems.append(f"{path} must be >= {minimum}, got {value}")

    if isinstance(value, Mapping):
        _check_object(value, schema, path, problems)

    if isinstance(value, list):
        items = schema.get("items")
        if isinstance(items, Mapping):
            for index, item in enumerate(value):
                _check(item, items, f"{path}[{index}]", problems)


def _check_object(
    value: Mapping[str, Any], schema: Mapping[str, Any], path: str, problems: list[str]
) -> None:
    for field in schema.get("required") or ():
        if value.get(field) is None:
            problems.append(f"missing required field {_join(path, field)}")
    properties = schema.get("properties") or {}
    for name, child_schema in properties.items():
        if name not in value or value[name] is None:
            continue
        _check(value[name], child_schema, _join(path, name), problems)


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


def collect_problems(arguments: Mapping[str, Any], schema: Mapping[str, Any]) -> list[str]:
    """Return every schema violation found in the arguments."""
    problems: list[str] = []
    if not isinstance(arguments, Mapping):
        return ["arguments must be an object"]
    _check_object(arguments, schema, "", problems)
    return problems


def validate_arguments(
    tool_name: str,
    arguments: Mapping[str, Any],
    schema: Mapping[str, Any],
    *,
    peer: str | None = None,
) -> None:
    """Raise InvalidArguments when the arguments do not satisfy the schema."""
    problems = collect_problems(arguments, schema)
    if problems:
        raise InvalidArguments(tool_name, problems, peer=peer)


__all__ = ["collect_problems", "validate_arguments"]
