"""
Money conversion between display currency (SAR) and the gateway minor unit.

Moyasar expects integral amounts in halalas (1 SAR = 100 halalas). All
conversions go through ``Decimal`` so no binary floating point drift leaks
into the stored or transmitted value.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from domain.payment.exceptions import InvalidAmountException


MINOR_UNITS_PER_MAJOR = 100
CENT = Decimal("0.01")

AmountLike = Union[Decimal, int, float, str]


def to_decimal(value: AmountLike) -> Decimal:
    """Coerce a caller supplied amount to ``Decimal`` or raise InvalidAmount."""
    if value is None or isinstance(value, bool):
        raise InvalidAmountException(value, "must be numeric")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float, str)):
        try:
            # str() keeps 99.99 as 99.99 instead of its binary approximation
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            raise InvalidAmountException(value, "must be numeric")
    else:
        raise InvalidAmountException(value, "must be numeric")
    if not amount.is_finite():
        raise InvalidAmountException(value, "must be finite")
    return amount


def to_minor_unit(amount_major: AmountLike) -> int:
    """Convert a major-unit amount to minor units, rounding half up."""
    amount = to_decimal(amount_major)
    if amount < 0:
        raise InvalidAmountException(amount_major)
    minor = (amount * MINOR_UNITS_PER_MAJOR).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(minor)


def to_major_unit(amount_minor: int) -> Decimal:
    """Convert minor units back to a two-decimal major-unit amount."""
    if isinstance(amount_minor, bool) or not isinstance(amount_minor, int):
        raise InvalidAmountException(amount_minor, "must be an integer number of minor units")
    if amount_minor < 0:
        raise InvalidAmountException(amount_minor)
    return (Decimal(amount_minor) / MINOR_UNITS_PER_MAJOR).quantize(CENT)


def quantize_major(amount: AmountLike) -> Decimal:
    """Normalize a major-unit amount to two decimal places."""
    return to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)
