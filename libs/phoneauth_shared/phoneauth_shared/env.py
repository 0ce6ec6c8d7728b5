from __future__ import annotations

import os
from typing import Iterable, List

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def env_bool(name: str, *, default: bool = False) -> bool:
    """Read a boolean flag; unknown spellings raise instead of guessing."""
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean for {name!r}: {value!r}")


def env_int(name: str, *, default: int, minimum: int | None = None) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        raise ValueError(f"Invalid integer for {name!r}: {value!r}") from None
    if minimum is not None and parsed < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {parsed}")
    return parsed


def env_list(name: str, *, default: Iterable[str] | None = None, separator: str = ",") -> List[str]:
    """Comma separated list; a missing variable resolves to ``default``."""
    value = os.getenv(name)
    if value is None:
        return list(default or [])
    return [item.strip() for item in value.split(separator) if item.strip()]


__all__ = ["env_bool", "env_int", "env_list"]
