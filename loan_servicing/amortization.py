"""
Amortization Module

Equal-installment (French method) schedule generation. This module is pure:
no storage, no logging, no clock. The server and the client fallback call the
same functions, so identical inputs always produce identical schedules.

Installment formula: P * [r(1+r)^n] / [(1+r)^n - 1]
Where P = principal, r = monthly rate (annual percent / 12 / 100), n = months.
"""

from decimal import Decimal
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .currency import Currency, Number, quantize, to_decimal
from .errors import ValidationError

ZERO = Decimal('0')
MONTHS_PER_YEAR = Decimal('12')
HUNDRED = Decimal('100')


@dataclass(frozen=True)
class ScheduleEntry:
    """One month of the schedule; balance is what remains after the payment"""
    month: int
    principal: Decimal
    interest: Decimal
    balance: Decimal

    @property
    def payment(self) -> Decimal:
        return self.principal + self.interest

    def to_dict(self) -> Dict[str, Any]:
        return {
            "month": self.month,
            "principal": str(self.principal),
            "interest": str(self.interest),
            "balance": str(self.balance),
        }


@dataclass
class AmortizationResult:
    """Installment, total interest and the full month-by-month schedule"""
    monthly_installment: Decimal
    total_interest: Decimal
    schedule: List[ScheduleEntry] = field(default_factory=list)

    @property
    def total_principal(self) -> Decimal:
        return sum((entry.principal for entry in self.schedule), ZERO)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "monthlyInstallment": str(self.monthly_installment),
            "totalInterest": str(self.total_interest),
            "schedule": [entry.to_dict() for entry in self.schedule],
        }


def _validate_inputs(principal: Number, annual_rate_percent: Number,
                     tenure_months: Number):
    p = to_decimal(principal, "principal")
    if p <= ZERO:
        raise ValidationError("Invalid principal: must be greater than zero")

    n = to_decimal(tenure_months, "tenure_months")
    if n <= ZERO:
        raise ValidationError("Invalid tenure months: must be greater than zero")
    if n != n.to_integral_value():
        raise ValidationError("Invalid tenure months: must be a whole number of months")

    annual = to_decimal(annual_rate_percent, "annual_rate_percent")
    if annual < ZERO:
        raise ValidationError("Invalid annual interest rate: must not be negative")

    return p, int(n), annual


def monthly_rate(annual_rate_percent: Decimal) -> Decimal:
    """Convert an annual percentage (e.g. 12 for 12%) to a monthly fraction"""
    return annual_rate_percent / MONTHS_PER_YEAR / HUNDRED


def _installment(principal: Decimal, rate: Decimal, months: int,
                 currency: Currency) -> Decimal:
    if rate == ZERO:
        return quantize(principal / Decimal(months), currency)

    factor = (Decimal('1') + rate) ** months
    if factor == Decimal('1'):
        # Rate too small to register at working precision
        return quantize(principal / Decimal(months), currency)
    return quantize(principal * rate * factor / (factor - Decimal('1')), currency)


def calculate_monthly_installment(principal: Number, annual_rate_percent: Number,
                                  tenure_months: Number,
                                  currency: Currency = Currency.USD) -> Decimal:
    """
    Calculate the fixed monthly installment.

    Args:
        principal: Amount borrowed, must be > 0
        annual_rate_percent: Annual rate in percent, must be >= 0
        tenure_months: Number of monthly payments, whole number > 0
        currency: Currency defining the rounding unit

    Returns:
        Installment rounded half-up to the currency's smallest unit

    Raises:
        ValidationError: If any input is non-finite or out of range
    """
    p, n, annual = _validate_inputs(principal, annual_rate_percent, tenure_months)
    return _installment(quantize(p, currency), monthly_rate(annual), n, currency)


def generate_schedule(principal: Number, annual_rate_percent: Number,
                      tenure_months: Number,
                      currency: Currency = Currency.USD) -> AmortizationResult:
    """
    Generate the complete amortization schedule.

    Interest for each month is the rounded product of the opening balance and
    the monthly rate; the principal component is the installment minus that
    interest. The last month pays off whatever balance remains, absorbing the
    accumulated rounding drift so the schedule always ends at exactly zero and
    the principal components sum to the principal.

    Raises:
        ValidationError: If any input is non-finite or out of range
    """
    p, n, annual = _validate_inputs(principal, annual_rate_percent, tenure_months)
    rate = monthly_rate(annual)
    balance = quantize(p, currency)
    installment = _installment(balance, rate, n, currency)

    schedule: List[ScheduleEntry] = []
    total_interest = ZERO

    for month in range(1, n + 1):
        interest = quantize(balance * rate, currency)
        if month == n:
            principal_paid = balance
        else:
            # Tiny loans over long tenures can round the installment above the
            # remaining balance; never amortize past zero.
            principal_paid = min(quantize(installment - interest, currency), balance)

        balance = quantize(balance - principal_paid, currency)
        total_interest += interest
        schedule.append(ScheduleEntry(
            month=month,
            principal=principal_paid,
            interest=interest,
            balance=balance,
        ))

    return AmortizationResult(
        monthly_installment=installment,
        total_interest=quantize(total_interest, currency),
        schedule=schedule,
    )
