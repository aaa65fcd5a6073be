"""
Currency Precision Module

ISO 4217 currencies with their minor-unit precision and the single rounding
rule used by every schedule computation: round half-up to the minor unit.
NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from enum import Enum
from typing import Union

from .errors import ValidationError

# High precision for intermediate results such as (1 + r) ** n
getcontext().prec = 28

Number = Union[Decimal, int, float, str]


class Currency(Enum):
    """ISO 4217 Currency Codes with precision info"""
    USD = ("USD", 2)
    EUR = ("EUR", 2)
    GBP = ("GBP", 2)
    INR = ("INR", 2)
    JPY = ("JPY", 0)

    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision

    @property
    def minor_unit(self) -> Decimal:
        return Decimal('0.1') ** self.precision


def quantize(value: Decimal, currency: Currency) -> Decimal:
    """
    Round a Decimal to the currency's smallest unit, half-up

    Raises:
        ValidationError: If the rounded value needs more digits than the
            28-digit context holds
    """
    try:
        return value.quantize(currency.minor_unit, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError("Amount is too large")


def to_decimal(value: Number, field_name: str = "value") -> Decimal:
    """
    Convert user input to a finite Decimal.

    Floats go through ``str`` so that 0.1 becomes Decimal('0.1') rather than
    its binary expansion.

    Raises:
        ValidationError: If the value is not a number or is NaN/Infinity
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str) and value.strip():
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ValidationError(f"{field_name} must be a number")
    else:
        raise ValidationError(f"{field_name} must be a number")

    if not result.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")
    return result


@dataclass(frozen=True)
class Money:
    """
    Immutable money representation with currency and proper precision.
    """
    amount: Decimal
    currency: Currency

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))
        object.__setattr__(self, 'amount', quantize(self.amount, self.currency))

    def to_string(self) -> str:
        """Format for display"""
        if self.currency.precision == 0:
            return f"{self.currency.code} {self.amount:,.0f}"
        return f"{self.currency.code} {self.amount:,.{self.currency.precision}f}"
