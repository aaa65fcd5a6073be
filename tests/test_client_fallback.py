"""
Test suite for the API client and the offline schedule fallback

The fallback must produce exactly the schedule the server would, and must only
kick in when the server cannot be reached.
"""

import httpx
import pytest
from decimal import Decimal
from fastapi.testclient import TestClient

from loan_servicing.api import create_app
from loan_servicing.auth import create_access_token, ROLE_ADMIN
from loan_servicing.client import LoanServicingClient
from loan_servicing.config import LoanServicingConfig
from loan_servicing.errors import (
    ForbiddenError, InvalidTransitionError, LoanServicingError, NotFoundError,
    ServerUnreachableError, ValidationError, error_from_response
)
from loan_servicing.fallback import ESTIMATE_NOTICE, CachedLoan, ScheduleFetcher


def unreachable_client():
    def refuse(request):
        raise httpx.ConnectError("Connection refused", request=request)
    transport = httpx.MockTransport(refuse)
    return LoanServicingClient(http_client=httpx.Client(transport=transport,
                                                        base_url="http://loans.test"))


@pytest.fixture
def api_client(system):
    with TestClient(create_app(system)) as client:
        yield client


@pytest.fixture
def alice_client(api_client, config):
    return LoanServicingClient(token=create_access_token("alice", secret=config.jwt_secret),
                               http_client=api_client)


@pytest.fixture
def admin_client(api_client, config):
    token = create_access_token("admin-1", role=ROLE_ADMIN, secret=config.jwt_secret)
    return LoanServicingClient(token=token,
                               http_client=api_client)


class TestLoanServicingClient:

    def test_loan_lifecycle(self, alice_client, admin_client):
        admin_client.set_interest_rate("personal", "12")
        loan = alice_client.create_loan("100000", 12, category="personal")
        assert loan["status"] == "pending"

        approved = admin_client.update_status(loan["id"], "approved", admin_note="OK")
        assert approved["interestRate"] == "12"

        assert alice_client.get_loan(loan["id"])["status"] == "approved"
        assert [l["id"] for l in alice_client.list_my_loans()] == [loan["id"]]
        assert len(admin_client.list_loans(status="approved")) == 1

        schedule = alice_client.get_schedule(loan["id"])
        assert schedule.monthly_installment == Decimal('8884.88')
        assert schedule.total_interest == Decimal('6618.53')

    def test_interest_rate_admin(self, admin_client):
        admin_client.set_interest_rate("home", "6.5")
        assert [r["category"] for r in admin_client.list_interest_rates()] == ["home"]

        assert admin_client.delete_interest_rate("home") == {"success": True}
        with pytest.raises(NotFoundError):
            admin_client.delete_interest_rate("home")

    def test_error_responses_are_typed(self, alice_client, admin_client):
        with pytest.raises(NotFoundError):
            alice_client.get_loan("missing")
        with pytest.raises(ForbiddenError):
            alice_client.list_loans()
        with pytest.raises(ValidationError):
            alice_client.create_loan("-1", 12)

        loan = alice_client.create_loan("1000", 6)
        admin_client.update_status(loan["id"], "rejected")
        with pytest.raises(InvalidTransitionError):
            admin_client.update_status(loan["id"], "approved")

    def test_defaults_come_from_config(self, monkeypatch):
        monkeypatch.setenv("LOAN_SERVICING_SERVER_URL", "http://loans.internal:8080/")
        monkeypatch.setenv("LOAN_SERVICING_CLIENT_TIMEOUT", "12.5")
        monkeypatch.setattr("loan_servicing.client.get_config", LoanServicingConfig)

        with LoanServicingClient() as client:
            assert client.base_url == "http://loans.internal:8080"
            assert client._client.timeout.read == 12.5

        with LoanServicingClient(base_url="http://other.test", timeout=1.0) as client:
            assert client.base_url == "http://other.test"
            assert client._client.timeout.read == 1.0

    def test_transport_failure_is_unreachable(self):
        with unreachable_client() as client:
            with pytest.raises(ServerUnreachableError):
                client.get_loan("loan-1")

    def test_error_from_unknown_body(self):
        error = error_from_response({}, 502)
        assert type(error) is LoanServicingError
        assert error.status_code == 502
        assert "502" in error.message


class TestScheduleFallback:

    def test_offline_schedule_matches_server(self, alice_client, admin_client):
        loan = alice_client.create_loan("100000", 12)
        record = admin_client.update_status(loan["id"], "approved", interest_rate="12")
        online = ScheduleFetcher(alice_client, default_rate="8.5").fetch(loan["id"])

        offline = ScheduleFetcher(unreachable_client(), default_rate="8.5").fetch(
            loan["id"], cached=CachedLoan.from_record(record)
        )

        assert not online.estimated
        assert offline.estimated
        assert offline.notice == ESTIMATE_NOTICE
        assert offline.result == online.result
        server_body = {k: v for k, v in offline.to_dict().items() if k not in ("estimated", "notice")}
        assert server_body == online.to_dict()

    def test_estimate_without_rate_uses_default(self):
        fetcher = ScheduleFetcher(unreachable_client(), default_rate="12")
        cached = CachedLoan(loan_id="loan-1", principal=Decimal('100000'), tenure_months=12)

        view = fetcher.fetch("loan-1", cached=cached)

        assert view.estimated
        assert view.result.monthly_installment == Decimal('8884.88')

    def test_unreachable_without_cache_raises(self):
        fetcher = ScheduleFetcher(unreachable_client(), default_rate="8.5")
        with pytest.raises(ServerUnreachableError):
            fetcher.fetch("loan-1")

    def test_server_errors_do_not_fall_back(self, alice_client):
        fetcher = ScheduleFetcher(alice_client, default_rate="8.5")
        cached = CachedLoan(loan_id="missing", principal=Decimal('1000'), tenure_months=6)

        with pytest.raises(NotFoundError):
            fetcher.fetch("missing", cached=cached)

    def test_cached_loan_from_record(self):
        cached = CachedLoan.from_record({
            "id": "loan-1", "principal": "5000.00", "tenureMonths": 24, "interestRate": None
        })
        assert cached.principal == Decimal('5000.00')
        assert cached.interest_rate is None
