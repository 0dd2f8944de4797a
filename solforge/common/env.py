"""Environment variable parsing shared by the ``from_env`` constructors."""

from __future__ import annotations

import decimal
import os

_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"0", "false", "no", "off"})


def read_str(env_var: str, default: str | None = None) -> str | None:
    """Return a stripped env var, or *default* when unset or blank."""
    raw = os.environ.get(env_var, "")
    if not raw.strip():
        return default
    return raw.strip()


def parse_positive_int(env_var: str, default: int) -> int:
    """Read a positive integer env var, falling back to a default."""
    raw = os.environ.get(env_var, "")
    if not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        msg = f"{env_var} must be an integer, got: {raw!r}"
        raise ValueError(msg) from exc
    if value < 1:
        msg = f"{env_var} must be positive, got: {value}"
        raise ValueError(msg)
    return value


def parse_positive_float(env_var: str, default: float) -> float:
    """Read a positive float env var, falling back to a default."""
    raw = os.environ.get(env_var, "")
    if not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        msg = f"{env_var} must be a number, got: {raw!r}"
        raise ValueError(msg) from exc
    if value <= 0:
        msg = f"{env_var} must be positive, got: {value}"
        raise ValueError(msg)
    return value


def parse_decimal(env_var: str, default: str) -> decimal.Decimal:
    """Read a non-negative decimal env var, falling back to a default."""
    raw = os.environ.get(env_var, "").strip() or default
    try:
        value = decimal.Decimal(raw)
    except decimal.InvalidOperation as exc:
        msg = f"{env_var} must be a decimal number, got: {raw!r}"
        raise ValueError(msg) from exc
    if not value.is_finite() or value < 0:
        msg = f"{env_var} must be a non-negative number, got: {raw!r}"
        raise ValueError(msg)
    return value


def parse_bool(env_var: str, *, default: bool) -> bool:
    """Read a boolean env var such as ``1``/``true``/``no``."""
    raw = os.environ.get(env_var, "").strip().lower()
    if not raw:
        return default
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    msg = f"{env_var} must be a boolean flag, got: {raw!r}"
    raise ValueError(msg)
