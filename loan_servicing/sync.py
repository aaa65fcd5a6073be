"""
Client State Synchronization

Client-side cache of loan records kept fresh by ``loan:statusChanged`` events.
Events are advisory: anything the cache cannot apply is queued for a re-fetch,
and a reconnect always triggers a full re-fetch because missed events are
never replayed.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from .client import LoanServicingClient
from .errors import LoanServicingError

logger = logging.getLogger("loan_servicing.sync")


class LoanStatusView:
    """Loans visible to one client session, keyed by id"""

    def __init__(self, client: LoanServicingClient, admin: bool = False):
        self.client = client
        self.admin = admin
        self.loans: Dict[str, Dict[str, Any]] = {}
        self.needs_refetch: Set[str] = set()

    def get(self, loan_id: str) -> Optional[Dict[str, Any]]:
        return self.loans.get(loan_id)

    def resync(self) -> List[Dict[str, Any]]:
        """Replace the cache with the server's current state (on connect and reconnect)"""
        records = self.client.list_loans() if self.admin else self.client.list_my_loans()
        self.loans = {record["id"]: record for record in records}
        self.needs_refetch.clear()
        return records

    def apply_event(self, event: Dict[str, Any]) -> bool:
        """
        Apply a status change to the cached loan.

        Returns False when the loan is unknown, which queues it for a
        re-fetch. Events older than the cached record are ignored.
        """
        loan_id = event.get("loanId")
        record = self.loans.get(loan_id)
        if record is None:
            if loan_id:
                self.needs_refetch.add(loan_id)
            return False

        if _parse_time(event.get("updatedAt")) < _parse_time(record.get("updatedAt")):
            logger.debug(f"Ignoring stale status event for loan {loan_id}")
            return False

        record["status"] = event.get("status", record.get("status"))
        record["adminNote"] = event.get("adminNote")
        record["updatedAt"] = event.get("updatedAt", record.get("updatedAt"))
        return True

    def refetch_pending(self) -> int:
        """Fetch every loan an event referred to but the cache did not hold"""
        fetched = 0
        for loan_id in sorted(self.needs_refetch):
            try:
                self.loans[loan_id] = self.client.get_loan(loan_id)
            except LoanServicingError as e:
                logger.warning(f"Could not refetch loan {loan_id}: {e}")
                continue
            self.needs_refetch.discard(loan_id)
            fetched += 1
        return fetched


def _parse_time(value: Optional[str]) -> datetime:
    if not value:
        return datetime.min.replace(tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
