"""
Test suite for the client-side loan cache kept fresh by status events
"""

import pytest
from unittest.mock import Mock

from loan_servicing.errors import NotFoundError
from loan_servicing.sync import LoanStatusView


def loan_record(loan_id="loan-1", status="pending", updated_at="2024-01-01T10:00:00+00:00"):
    return {"id": loan_id, "userId": "alice", "status": status, "adminNote": None,
            "updatedAt": updated_at}


def status_event(loan_id="loan-1", status="approved", updated_at="2024-01-01T11:00:00+00:00"):
    return {"loanId": loan_id, "userId": "alice", "status": status,
            "adminNote": "Approved", "updatedAt": updated_at}


@pytest.fixture
def client():
    client = Mock()
    client.list_my_loans.return_value = [loan_record()]
    client.list_loans.return_value = [loan_record(), loan_record("loan-2")]
    return client


class TestLoanStatusView:

    def test_resync_owner(self, client):
        view = LoanStatusView(client)
        view.resync()

        assert list(view.loans) == ["loan-1"]
        client.list_my_loans.assert_called_once()

    def test_resync_admin(self, client):
        view = LoanStatusView(client, admin=True)
        view.resync()

        assert set(view.loans) == {"loan-1", "loan-2"}

    def test_apply_event(self, client):
        view = LoanStatusView(client)
        view.resync()

        assert view.apply_event(status_event()) is True
        assert view.get("loan-1")["status"] == "approved"
        assert view.get("loan-1")["adminNote"] == "Approved"

    def test_stale_event_ignored(self, client):
        view = LoanStatusView(client)
        view.resync()
        view.apply_event(status_event(status="approved", updated_at="2024-01-01T12:00:00+00:00"))

        assert view.apply_event(status_event(status="under_review")) is False
        assert view.get("loan-1")["status"] == "approved"

    def test_unknown_loan_queued_for_refetch(self, client):
        client.get_loan.return_value = loan_record("loan-9", status="approved")
        view = LoanStatusView(client)
        view.resync()

        assert view.apply_event(status_event(loan_id="loan-9")) is False
        assert view.needs_refetch == {"loan-9"}

        assert view.refetch_pending() == 1
        assert view.get("loan-9")["status"] == "approved"
        assert view.needs_refetch == set()

    def test_failed_refetch_stays_queued(self, client):
        client.get_loan.side_effect = NotFoundError("Loan not found")
        view = LoanStatusView(client)
        view.apply_event(status_event(loan_id="loan-9"))

        assert view.refetch_pending() == 0
        assert view.needs_refetch == {"loan-9"}

    def test_resync_clears_pending_refetches(self, client):
        view = LoanStatusView(client)
        view.apply_event(status_event(loan_id="loan-9"))
        view.resync()

        assert view.needs_refetch == set()
