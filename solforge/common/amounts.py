"""Conversion between human decimal amounts and integer base units.

Reward amounts are stored and transferred as integer base units (lamports
for SOL, the mint's smallest unit for SPL tokens). The decimal entered by
a bounty creator is converted exactly once, here, and never re-derived from
floating point.
"""

from __future__ import annotations

import decimal

from solforge.errors import ErrorKind, SolForgeError

SOL_DECIMALS = 9
MAX_TOKEN_DECIMALS = 18


class InvalidAmountError(SolForgeError, ValueError):
    """Raised when an amount cannot be represented in base units."""

    kind = ErrorKind.INVALID_INPUT

    @classmethod
    def not_a_number(cls, raw: object) -> InvalidAmountError:
        """Return an error for values that are not decimal numbers."""
        return cls(f"amount is not a decimal number: {raw!r}")

    @classmethod
    def not_positive(cls) -> InvalidAmountError:
        """Return an error for zero or negative amounts."""
        return cls("amount must be greater than zero")

    @classmethod
    def too_precise(cls, decimals: int) -> InvalidAmountError:
        """Return an error for amounts with more places than the currency has."""
        return cls(f"amount has more than {decimals} decimal places")

    @classmethod
    def bad_decimals(cls, decimals: int) -> InvalidAmountError:
        """Return an error for unsupported decimal counts."""
        return cls(f"decimals must be between 0 and {MAX_TOKEN_DECIMALS}, got {decimals}")


def _as_decimal(value: decimal.Decimal | str | int) -> decimal.Decimal:
    if isinstance(value, (bool, float)):
        raise InvalidAmountError.not_a_number(value)
    try:
        parsed = decimal.Decimal(str(value).strip())
    except decimal.InvalidOperation as exc:
        raise InvalidAmountError.not_a_number(value) from exc
    if not parsed.is_finite():
        raise InvalidAmountError.not_a_number(value)
    return parsed


def to_base_units(value: decimal.Decimal | str | int, decimals: int) -> int:
    """Convert a decimal amount into integer base units.

    Parameters
    ----------
    value
        Decimal amount as entered by a user, e.g. ``"0.1"``. Floats are
        rejected because they cannot carry the entered value exactly.
    decimals
        Number of fractional digits of the currency (9 for SOL).

    Returns
    -------
    int
        Strictly positive integer count of base units.

    Raises
    ------
    InvalidAmountError
        If the value is not a finite decimal, is not positive, or has more
        fractional digits than the currency supports.

    """
    if not 0 <= decimals <= MAX_TOKEN_DECIMALS:
        raise InvalidAmountError.bad_decimals(decimals)
    amount = _as_decimal(value)
    if amount <= 0:
        raise InvalidAmountError.not_positive()
    scaled = amount.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise InvalidAmountError.too_precise(decimals)
    return int(scaled)


def format_base_units(units: int, decimals: int) -> str:
    """Render integer base units as a plain decimal string."""
    quantized = decimal.Decimal(units).scaleb(-decimals)
    text = format(quantized, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text
