"""Typed access to JSON request bodies.

A body that is not a JSON object, or a field of the wrong type, is a 422
``validation_error`` with ``invalid_type`` for the offending field.
"""
from __future__ import annotations

from typing import Any

from flask import request

from .errors import ValidationError


def _invalid(name: str) -> ValidationError:
    return ValidationError([{"field": name, "error": "invalid_type"}])


def json_object() -> dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise _invalid("body")
    return data


def text_field(data: dict[str, Any], name: str, default: str = "", *, strip: bool = True, numbers: bool = False) -> str:
    """String field, stripped unless ``strip=False``.

    ``numbers=True`` also accepts ints and floats (rendered with ``str``).
    Missing or null gives ``default``.
    """
    value = data.get(name)
    if value is None:
        return default
    if numbers and isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        raise _invalid(name)
    return value.strip() if strip else value


def bool_field(data: dict[str, Any], name: str) -> bool | None:
    value = data.get(name)
    if value is None or isinstance(value, bool):
        return value
    raise _invalid(name)


def int_field(data: dict[str, Any], name: str) -> int | None:
    value = data.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise _invalid(name)
    return value


__all__ = ["json_object", "text_field", "bool_field", "int_field"]
