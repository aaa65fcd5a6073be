"""
Client Fallback Module

When the server cannot be reached, a client still shows an installment
breakdown by running the same amortization calculator locally on the loan
attributes it already has cached. Such a schedule is flagged as an estimate:
the cached rate may be stale, or missing and replaced by the default.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from .amortization import AmortizationResult, generate_schedule
from .client import LoanServicingClient
from .currency import Currency, Number, to_decimal
from .errors import ServerUnreachableError

logger = logging.getLogger("loan_servicing.fallback")

ESTIMATE_NOTICE = "Server unreachable. Showing locally calculated schedule."


@dataclass(frozen=True)
class CachedLoan:
    """Loan attributes a client already holds from an earlier fetch"""
    loan_id: str
    principal: Decimal
    tenure_months: int
    interest_rate: Optional[Decimal] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'CachedLoan':
        """Build from a loan record as returned by the API"""
        rate = record.get("interestRate")
        return cls(
            loan_id=record["id"],
            principal=to_decimal(record["principal"], "principal"),
            tenure_months=int(record["tenureMonths"]),
            interest_rate=to_decimal(rate, "interestRate") if rate is not None else None,
        )


@dataclass
class ScheduleView:
    """A schedule plus whether it came from the server or a local estimate"""
    loan_id: str
    result: AmortizationResult
    estimated: bool = False
    notice: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        body = {"loanId": self.loan_id, **self.result.to_dict()}
        if self.estimated:
            body["estimated"] = True
            body["notice"] = self.notice
        return body


class ScheduleFetcher:
    """Fetches the authoritative schedule, falling back to a local estimate offline"""

    def __init__(self, client: LoanServicingClient, default_rate: Number,
                 currency: Currency = Currency.USD):
        self.client = client
        self.default_rate = to_decimal(default_rate, "default_rate")
        self.currency = currency

    def fetch(self, loan_id: str, cached: Optional[CachedLoan] = None) -> ScheduleView:
        """
        Get a loan's schedule from the server, or estimate it if unreachable.

        Only a network failure triggers the fallback. Error responses from the
        server (not found, forbidden, validation) are raised to the caller.

        Raises:
            ServerUnreachableError: If the server is unreachable and nothing is cached
        """
        try:
            return ScheduleView(loan_id=loan_id, result=self.client.get_schedule(loan_id))
        except ServerUnreachableError:
            if cached is None:
                raise
            logger.warning(f"Falling back to local schedule estimate for loan {loan_id}")
            return self.estimate(cached)

    def estimate(self, cached: CachedLoan) -> ScheduleView:
        """Compute the schedule locally with the same rounding rules as the server"""
        rate = cached.interest_rate if cached.interest_rate is not None else self.default_rate
        result = generate_schedule(
            principal=cached.principal,
            annual_rate_percent=rate,
            tenure_months=cached.tenure_months,
            currency=self.currency,
        )
        return ScheduleView(loan_id=cached.loan_id, result=result,
                            estimated=True, notice=ESTIMATE_NOTICE)
