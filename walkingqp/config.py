"""Typed access to values held in nested configuration mappings."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, MutableMapping, Sequence
from typing import Any

import numpy as np

__all__ = [
    "ConfigError",
    "get_string",
    "get_number",
    "get_integer",
    "list_to_vector",
    "get_vector",
    "list_to_strings",
    "list_to_bools",
    "add_string_list",
    "get_bool_vector",
    "merge_vectors",
]


class ConfigError(ValueError):
    """Raised when a configuration value is missing or has the wrong shape or type."""


def _is_list(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_float(value: Any) -> bool:
    return isinstance(value, float)


def _lookup(config: Mapping[str, Any], key: str) -> Any:
    try:
        return config[key]
    except KeyError:
        raise ConfigError(f"missing field {key!r}") from None


def get_string(config: Mapping[str, Any], key: str) -> str:
    """Return the string stored under ``key``."""
    value = _lookup(config, key)
    if not isinstance(value, str):
        raise ConfigError(f"the value of {key!r} is not a string")
    return value


def get_number(config: Mapping[str, Any], key: str) -> float:
    """Return the floating point number stored under ``key``."""
    value = _lookup(config, key)
    if not _is_float(value):
        raise ConfigError(f"the value of {key!r} is not a double")
    return value


def get_integer(config: Mapping[str, Any], key: str) -> int:
    """Return the integer stored under ``key``."""
    value = _lookup(config, key)
    if not _is_int(value):
        raise ConfigError(f"the value of {key!r} is not an integer")
    return value


def list_to_vector(value: Any, size: int) -> np.ndarray:
    """Convert a list of numbers of the expected length into a float array."""
    if value is None:
        raise ConfigError("empty input value")
    if not _is_list(value):
        raise ConfigError("unable to read the input list")
    if len(value) != size:
        raise ConfigError(f"the dimension set in the configuration is not {size}")
    for item in value:
        if not (_is_float(item) or _is_int(item)):
            raise ConfigError("the input is expected to be a double or an int")
    return np.array(value, dtype=float)


def get_vector(config: Mapping[str, Any], key: str, size: int) -> np.ndarray:
    """Return the numeric list stored under ``key`` as a float array of ``size``."""
    return list_to_vector(_lookup(config, key), size)


def list_to_strings(value: Any) -> list[str]:
    """Convert a list whose items are all strings into a list of strings."""
    if not _is_list(value):
        raise ConfigError("the input is not a list")
    if not all(isinstance(item, str) for item in value):
        raise ConfigError("there is a field that is not a string")
    return list(value)


def list_to_bools(value: Any) -> list[bool]:
    """Convert a list of booleans or integers into a list of booleans."""
    if not _is_list(value):
        raise ConfigError("the input is not a list")
    if not all(isinstance(item, bool) or _is_int(item) for item in value):
        raise ConfigError("there is a field that is not a bool")
    return [bool(item) for item in value]


def add_string_list(prop: MutableMapping[str, Any], key: str, values: Iterable[str]) -> None:
    """Store ``values`` as a list of strings under a key not yet present."""
    if key in prop:
        raise ConfigError(f"the property {key!r} already exists")
    prop[key] = [str(item) for item in values]


def get_bool_vector(config: Mapping[str, Any], key: str, size: int) -> list[bool]:
    """Return the list of exactly ``size`` booleans stored under ``key``."""
    value = _lookup(config, key)
    if not _is_list(value):
        raise ConfigError(f"the value of {key!r} is not a list")
    if len(value) != size:
        raise ConfigError(f"the dimension set in the configuration is not {size}")
    if not all(isinstance(item, bool) for item in value):
        raise ConfigError("the input is expected to be boolean")
    return list(value)


def merge_vectors(*args: Sequence[float] | np.ndarray | float) -> np.ndarray:
    """Concatenate vectors (and scalars) into one flat float array."""
    if not args:
        return np.zeros(0)
    return np.concatenate([np.atleast_1d(np.asarray(arg, dtype=float)).ravel() for arg in args])