from decimal import ROUND_HALF_UP, Decimal
from typing import Union

CENT = Decimal("0.01")

Amount = Union[Decimal, int, float, str]


def to_money(value: Amount) -> Decimal:
    """Coerce to a Decimal with two places; floats go through str to avoid binary noise."""
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(value: Amount) -> int:
    return int((to_money(value) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_minor_units(value: int) -> Decimal:
    return to_money(Decimal(value) / 100)


def percentage_of(value: Amount, percent: int) -> Decimal:
    return to_money(to_money(value) * percent / 100)
