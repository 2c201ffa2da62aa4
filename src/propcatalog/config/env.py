"""Environment variable readers. Blank values count as unset."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Final

from .errors import InvalidConfigurationError, MissingConfigurationError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

_TRUTHY: Final = frozenset({"1", "true", "yes", "on"})


def optional_env_var(name: str) -> str | None:
    value = os.getenv(name)
    if value is None:
        return None
    return value.strip() or None


def require_env_vars(names: Sequence[str]) -> dict[str, str]:
    """Return the given environment variables or raise naming every missing one."""

    values: dict[str, str] = {}
    missing: list[str] = []
    for name in names:
        value = optional_env_var(name)
        if value is None:
            missing.append(name)
        else:
            values[name] = value
    if missing:
        raise MissingConfigurationError(missing)
    return values


def parsed_env_var[T](name: str, parse: Callable[[str], T], *, default: T) -> T:
    """Parse ``name`` with ``parse``; unset falls back to ``default``."""

    raw = optional_env_var(name)
    if raw is None:
        return default
    try:
        return parse(raw)
    except ValueError as exc:
        raise InvalidConfigurationError(name, raw) from exc


def env_flag(name: str, *, default: bool = False) -> bool:
    raw = optional_env_var(name)
    if raw is None:
        return default
    return raw.lower() in _TRUTHY
