"""
Loan Module

Loan records, the administrator-driven status state machine and on-demand
schedule computation. A status update is a plain read-modify-write of the
stored loan: there is no version check, so of two concurrent updates the later
write wins.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Any
import uuid

from .amortization import AmortizationResult, generate_schedule
from .audit import AuditTrail, AuditEventType
from .auth import Session
from .currency import Currency, Money, Number, to_decimal
from .errors import ForbiddenError, InvalidTransitionError, NotFoundError, ValidationError
from .events import DomainEvent, EventDispatcher, EventPublisherMixin
from .interest_rates import InterestRateResolver, RateSource, normalize_category, validate_rate
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord


class LoanStatus(Enum):
    """Loan application lifecycle states"""
    PENDING = "pending"              # Submitted by the owner
    UNDER_REVIEW = "under_review"    # Picked up by an administrator
    APPROVED = "approved"            # Terminal; rate resolved
    REJECTED = "rejected"            # Terminal

    @classmethod
    def parse(cls, value: Any) -> 'LoanStatus':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(s.value for s in cls)
            raise ValidationError(f"Invalid status '{value}'. Expected one of: {allowed}")


# Re-applying the current status is always allowed (note/category/rate edits)
ALLOWED_TRANSITIONS = {
    LoanStatus.PENDING: {LoanStatus.UNDER_REVIEW, LoanStatus.APPROVED, LoanStatus.REJECTED},
    LoanStatus.UNDER_REVIEW: {LoanStatus.APPROVED, LoanStatus.REJECTED},
    LoanStatus.APPROVED: set(),
    LoanStatus.REJECTED: set(),
}


@dataclass
class Loan(StorageRecord):
    """Loan application and its servicing terms"""
    owner_id: str
    principal: Decimal
    tenure_months: int
    category: Optional[str] = None
    interest_rate: Optional[Decimal] = None  # Annual percent, e.g. Decimal('10') for 10%
    status: LoanStatus = LoanStatus.PENDING
    admin_note: Optional[str] = None
    purpose: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self.status]

    def can_transition_to(self, new_status: LoanStatus) -> bool:
        return new_status == self.status or new_status in ALLOWED_TRANSITIONS[self.status]

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['status'] = self.status.value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        rate = data.get('interest_rate')
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            owner_id=data['owner_id'],
            principal=Decimal(data['principal']),
            tenure_months=int(data['tenure_months']),
            category=data.get('category'),
            interest_rate=Decimal(rate) if rate is not None else None,
            status=LoanStatus(data['status']),
            admin_note=data.get('admin_note'),
            purpose=data.get('purpose'),
        )

    def to_api_dict(self) -> Dict[str, Any]:
        """Wire representation returned by the API"""
        return {
            "id": self.id,
            "userId": self.owner_id,
            "principal": str(self.principal),
            "tenureMonths": self.tenure_months,
            "category": self.category,
            "interestRate": str(self.interest_rate) if self.interest_rate is not None else None,
            "status": self.status.value,
            "adminNote": self.admin_note,
            "purpose": self.purpose,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


class LoanManager(EventPublisherMixin):
    """
    Manages loan records and their status transitions
    """

    def __init__(
        self,
        storage: StorageInterface,
        rate_resolver: InterestRateResolver,
        audit_trail: AuditTrail,
        event_dispatcher: Optional[EventDispatcher] = None,
        currency: Currency = Currency.USD
    ):
        self.storage = storage
        self.rate_resolver = rate_resolver
        self.audit_trail = audit_trail
        self.event_dispatcher = event_dispatcher
        self.currency = currency
        self.loans_table = "loans"
        self.logger = get_logger("loan_servicing.loans")

    def create_loan(
        self,
        session: Session,
        principal: Number,
        tenure_months: Number,
        category: Optional[str] = None,
        purpose: Optional[str] = None
    ) -> Loan:
        """
        Submit a new loan application in ``pending`` state

        Args:
            session: The applicant; becomes the loan owner
            principal: Amount requested, must be > 0
            tenure_months: Repayment period, whole number of months > 0
            category: Optional category used to resolve the rate on approval
            purpose: Optional free-text purpose

        Returns:
            Created Loan
        """
        amount = to_decimal(principal, "principal")
        if amount <= 0:
            raise ValidationError("principal must be greater than zero")
        tenure = to_decimal(tenure_months, "tenureMonths")
        if tenure <= 0 or tenure != tenure.to_integral_value():
            raise ValidationError("tenureMonths must be a positive whole number")

        now = datetime.now(timezone.utc)
        loan = Loan(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            owner_id=session.user_id,
            principal=Money(amount, self.currency).amount,
            tenure_months=int(tenure),
            category=normalize_category(category),
            purpose=purpose.strip() if purpose and purpose.strip() else None,
        )
        self._save_loan(loan)

        self.audit_trail.log_event(
            event_type=AuditEventType.LOAN_CREATED,
            entity_type="loan",
            entity_id=loan.id,
            metadata={
                "principal": Money(loan.principal, self.currency).to_string(),
                "tenure_months": loan.tenure_months,
                "category": loan.category
            },
            user_id=session.user_id
        )
        self.publish_event(DomainEvent.LOAN_CREATED, "loan", loan.id, loan.to_api_dict())
        log_action(self.logger, "info", "Loan application submitted",
                   user_id=session.user_id, action="create_loan", resource=loan.id)
        return loan

    def get_loan(self, loan_id: str, session: Session) -> Loan:
        """
        Get a loan visible to the session

        Raises:
            NotFoundError: If the loan does not exist
            ForbiddenError: If the session is neither the owner nor an administrator
        """
        loan = self._load_loan(loan_id)
        if not session.can_access(loan.owner_id):
            raise ForbiddenError("Not authorized")
        return loan

    def list_loans_for_owner(self, owner_id: str) -> List[Loan]:
        """An owner's loans, newest first"""
        loans = [Loan.from_dict(data)
                 for data in self.storage.find(self.loans_table, {'owner_id': owner_id})]
        return sorted(loans, key=lambda loan: loan.created_at, reverse=True)

    def list_loans(self, session: Session, status: Optional[Any] = None) -> List[Loan]:
        """Every loan, optionally filtered by status, newest first (administrators only)"""
        session.require_admin()
        filters = {'status': LoanStatus.parse(status).value} if status else {}
        loans = [Loan.from_dict(data) for data in self.storage.find(self.loans_table, filters)]
        return sorted(loans, key=lambda loan: loan.created_at, reverse=True)

    def update_status(
        self,
        loan_id: str,
        session: Session,
        status: Any,
        admin_note: Optional[str] = None,
        category: Optional[str] = None,
        interest_rate: Optional[Number] = None
    ) -> Loan:
        """
        Apply an administrator's status decision to a loan

        The rate is resolved only when the loan moves into ``approved`` from
        another status and has no rate yet; an explicit ``interest_rate``
        always overrides. The updated loan is persisted before the change is
        published, and publishing can never fail the update.

        Args:
            loan_id: Loan to update
            session: Acting administrator
            status: Target status (``LoanStatus`` or its string value)
            admin_note: Optional note shown to the owner
            category: Optional new category; accepted in any transition
            interest_rate: Optional explicit annual rate, 0-100

        Returns:
            The updated Loan

        Raises:
            ForbiddenError: If the session is not an administrator
            NotFoundError: If the loan does not exist
            ValidationError: If status or rate are malformed
            InvalidTransitionError: If the loan cannot move to the requested status
        """
        session.require_admin()
        new_status = LoanStatus.parse(status)
        explicit_rate = validate_rate(interest_rate, "interestRate") if interest_rate is not None else None

        loan = self._load_loan(loan_id)
        previous_status = loan.status
        if not loan.can_transition_to(new_status):
            raise InvalidTransitionError(
                f"Cannot change loan status from {previous_status.value} to {new_status.value}"
            )

        loan.status = new_status
        if admin_note is not None:
            loan.admin_note = admin_note
        if category is not None:
            loan.category = normalize_category(category)

        rate_source = None
        if explicit_rate is not None:
            loan.interest_rate = explicit_rate
            rate_source = RateSource.EXPLICIT
        elif (new_status == LoanStatus.APPROVED
              and previous_status != LoanStatus.APPROVED
              and loan.interest_rate is None):
            resolution = self.rate_resolver.resolve(category=loan.category)
            loan.interest_rate = resolution.annual_rate_percent
            rate_source = resolution.source

        loan.touch()
        self._save_loan(loan)

        self.audit_trail.log_event(
            event_type=AuditEventType.LOAN_STATUS_CHANGED,
            entity_type="loan",
            entity_id=loan.id,
            metadata={
                "previous_status": previous_status,
                "new_status": new_status,
                "interest_rate": loan.interest_rate,
                "rate_source": rate_source,
                "category": loan.category
            },
            user_id=session.user_id
        )
        log_action(self.logger, "info",
                   f"Loan status changed from {previous_status.value} to {new_status.value}",
                   user_id=session.user_id, action="update_status", resource=loan.id,
                   extra={"rate_source": rate_source.value if rate_source else None})

        self.publish_event(DomainEvent.LOAN_STATUS_CHANGED, "loan", loan.id, loan.to_api_dict())
        return loan

    def get_schedule(self, loan_id: str, session: Session) -> AmortizationResult:
        """
        Compute the installment schedule for a loan visible to the session.

        Loans without a resolved rate are scheduled at the system default.
        Calculator validation errors propagate unchanged.
        """
        loan = self.get_loan(loan_id, session)
        return generate_schedule(
            principal=loan.principal,
            annual_rate_percent=self.annual_rate_for(loan),
            tenure_months=loan.tenure_months,
            currency=self.currency
        )

    def annual_rate_for(self, loan: Loan) -> Decimal:
        if loan.interest_rate is not None:
            return loan.interest_rate
        return self.rate_resolver.default_rate

    def _load_loan(self, loan_id: str) -> Loan:
        data = self.storage.load(self.loans_table, loan_id)
        if not data:
            raise NotFoundError("Loan not found")
        return Loan.from_dict(data)

    def _save_loan(self, loan: Loan) -> None:
        self.storage.save(self.loans_table, loan.id, loan.to_dict())
