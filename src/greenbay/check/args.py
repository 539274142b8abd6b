"""Coercion helpers for hydrating checks from raw ``args`` mappings.

Each helper takes the raw value and a dotted path used in error messages, and
raises :class:`ArgumentError` on a type mismatch. Missing keys are handled by
the caller, which keeps unknown keys ignorable for forward compatibility.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import NoReturn


class ArgumentError(ValueError):
    """Raised when a check argument has the wrong shape."""


def as_str(value: object, path: str, *, allow_empty: bool = True) -> str:
    if value is None:
        value = ""
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    if not allow_empty and not value.strip():
        _fail(path, "must not be empty")
    return value


def as_bool(value: object, path: str) -> bool:
    if isinstance(value, bool):
        return value
    _fail(path, f"expected boolean, got {type(value).__name__}")


def as_int(value: object, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(path, f"expected integer, got {type(value).__name__}")
    return value


def as_str_list(value: object, path: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        _fail(path, f"expected list of strings, got {type(value).__name__}")
    out: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, str):
            _fail(f"{path}[{index}]", f"expected string, got {type(item).__name__}")
        out.append(item)
    return out


def as_str_mapping(value: object, path: str) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        _fail(path, f"expected mapping, got {type(value).__name__}")
    out: dict[str, str] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            _fail(path, f"keys must be strings, got {type(key).__name__}")
        if isinstance(item, bool) or not isinstance(item, (str, int, float)):
            _fail(f"{path}.{key}", f"expected scalar, got {type(item).__name__}")
        out[key] = str(item)
    return out


def as_mapping(value: object, path: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        _fail(path, f"expected mapping, got {type(value).__name__}")
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            _fail(path, f"keys must be strings, got {type(key).__name__}")
        out[key] = item
    return out


def as_mapping_list(value: object, path: str) -> list[dict[str, object]]:
    if value is None:
        return []
    if isinstance(value, (str, Mapping)) or not isinstance(value, (list, tuple)):
        _fail(path, f"expected list of mappings, got {type(value).__name__}")
    return [as_mapping(item, f"{path}[{index}]") for index, item in enumerate(value)]


def _fail(path: str, message: str) -> NoReturn:
    raise ArgumentError(f"{path}: {message}")


__all__ = [
    "ArgumentError",
    "as_bool",
    "as_int",
    "as_mapping",
    "as_mapping_list",
    "as_str",
    "as_str_list",
    "as_str_mapping",
]
