"""Decimal helpers for monetary amounts.

All ledger arithmetic runs on ``Decimal``. Rounding to centavos happens only
where a rule asks for it (service charge at loan creation, year-end shares)
and always rounds half away from zero.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from coop_ledger.exceptions import InvalidAmountError

CENTS = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """Convert an int, str, float or Decimal to ``Decimal``.

    Floats go through ``str`` so ``0.1`` becomes ``Decimal("0.1")`` rather
    than its binary expansion.

    Raises
    ------
    InvalidAmountError
        If the value is missing, boolean or not a number.
    """
    if value is None or isinstance(value, bool):
        raise InvalidAmountError(f"Amount is required, got {value!r}")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmountError(f"Amount must be a number, got {value!r}") from None


def require_positive(value: Any, what: str = "Amount") -> Decimal:
    """Return ``value`` as a finite, strictly positive ``Decimal``.

    Parameters
    ----------
    value : Any
        Caller-supplied amount.
    what : str
        Label used in the error message.

    Raises
    ------
    InvalidAmountError
        If the amount is missing, non-finite, zero, negative or too large
        to carry centavos.
    """
    amount = to_decimal(value)
    if not amount.is_finite():
        raise InvalidAmountError(f"{what} must be finite, got {value!r}")
    if amount <= ZERO:
        raise InvalidAmountError(f"{what} must be greater than zero, got {value!r}")
    round_money(amount, what)
    return amount


def round_money(value: Decimal, what: str = "Amount") -> Decimal:
    """Round to two decimal places, half away from zero.

    Raises
    ------
    InvalidAmountError
        If the value has more digits than the decimal context can hold
        once expressed in centavos.
    """
    try:
        return value.quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise InvalidAmountError(f"{what} is too large to record, got {value}") from None
