"""
API Client Module

REST client for the loan servicing API. The caller owns the client and its
session token; use it as a context manager so the underlying connection pool
is closed when the caller is done.
"""

import httpx
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .amortization import AmortizationResult, ScheduleEntry
from .config import get_config
from .errors import ServerUnreachableError, error_from_response

logger = logging.getLogger("loan_servicing.client")


def schedule_from_dict(data: Dict[str, Any]) -> AmortizationResult:
    """Rebuild an AmortizationResult from the schedule endpoint's response"""
    return AmortizationResult(
        monthly_installment=Decimal(data["monthlyInstallment"]),
        total_interest=Decimal(data["totalInterest"]),
        schedule=[
            ScheduleEntry(
                month=int(item["month"]),
                principal=Decimal(item["principal"]),
                interest=Decimal(item["interest"]),
                balance=Decimal(item["balance"]),
            )
            for item in data.get("schedule", [])
        ],
    )


class LoanServicingClient:
    """
    HTTP client bound to one session token.

    ``base_url`` and ``timeout`` default to the configured ``server_url`` and
    ``client_timeout``.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.Client] = None
    ):
        config = get_config()
        self.base_url = (base_url or config.server_url).rstrip("/")
        if timeout is None:
            timeout = config.client_timeout
        self.token = token
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(base_url=self.base_url, timeout=timeout)

    def _headers(self) -> Dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = self._client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.TransportError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise ServerUnreachableError(f"Server unreachable: {e}") from e

        if response.is_success:
            return response.json()

        try:
            body = response.json()
        except ValueError:
            body = {"message": response.text}
        if not isinstance(body, dict):
            body = {}
        raise error_from_response(body, response.status_code)

    def get_loan(self, loan_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/loans/{loan_id}")

    def list_my_loans(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/loans/my")

    def list_loans(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        """All loans (administrators only)"""
        params = {"status": status} if status else None
        return self._request("GET", "/admin/loans", params=params)

    def create_loan(self, principal: Any, tenure_months: int,
                    category: Optional[str] = None,
                    purpose: Optional[str] = None) -> Dict[str, Any]:
        body = {"principal": str(principal), "tenureMonths": tenure_months}
        if category is not None:
            body["category"] = category
        if purpose is not None:
            body["purpose"] = purpose
        return self._request("POST", "/loans", json=body)

    def get_schedule(self, loan_id: str) -> AmortizationResult:
        return schedule_from_dict(self._request("GET", f"/loans/{loan_id}/schedule"))

    def update_status(self, loan_id: str, status: str,
                      admin_note: Optional[str] = None,
                      category: Optional[str] = None,
                      interest_rate: Optional[Any] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {"status": status}
        if admin_note is not None:
            body["adminNote"] = admin_note
        if category is not None:
            body["category"] = category
        if interest_rate is not None:
            body["interestRate"] = str(interest_rate)
        return self._request("PUT", f"/admin/loans/{loan_id}/status", json=body)

    def list_interest_rates(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/admin/interest-rates")

    def set_interest_rate(self, category: str, annual_rate_percent: Any) -> Dict[str, Any]:
        return self._request("PUT", f"/admin/interest-rates/{category}",
                             json={"annualRatePercent": str(annual_rate_percent)})

    def delete_interest_rate(self, category: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/admin/interest-rates/{category}")

    def close(self) -> None:
        """Close the HTTP client if this instance created it"""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> 'LoanServicingClient':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
