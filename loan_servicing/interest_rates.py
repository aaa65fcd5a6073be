"""
Interest Rate Module

Administrator-managed table of annual rates per loan category, and the
resolver that picks a loan's rate: explicit rate > category rate > system
default. The category table is read on every resolution, so rate edits take
effect immediately.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional
import logging

from .audit import AuditTrail, AuditEventType
from .currency import Number, to_decimal
from .errors import NotFoundError, ValidationError
from .events import DomainEvent, EventDispatcher, EventPublisherMixin
from .storage import StorageInterface, StorageRecord

logger = logging.getLogger("loan_servicing.interest_rates")

MIN_RATE = Decimal('0')
MAX_RATE = Decimal('100')


def normalize_category(value: Optional[str]) -> Optional[str]:
    """Trimmed, lowercase category key; None for missing or blank input"""
    if value is None:
        return None
    key = str(value).strip().lower()
    return key or None


def validate_rate(value: Number, field_name: str = "annualRatePercent") -> Decimal:
    """Parse an annual percentage and check it lies within 0-100"""
    rate = to_decimal(value, field_name)
    if rate < MIN_RATE or rate > MAX_RATE:
        raise ValidationError(f"{field_name} must be between 0 and 100")
    return rate


@dataclass
class InterestRateCategory(StorageRecord):
    """Annual rate applied to loans tagged with this category"""
    category: str
    annual_rate_percent: Decimal

    def to_api_dict(self) -> Dict[str, str]:
        return {
            "category": self.category,
            "annualRatePercent": str(self.annual_rate_percent),
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'InterestRateCategory':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            category=data['category'],
            annual_rate_percent=Decimal(data['annual_rate_percent']),
        )


class InterestRateCategoryManager(EventPublisherMixin):
    """
    CRUD for interest rate categories, keyed by normalized category name
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 event_dispatcher: Optional[EventDispatcher] = None):
        self.storage = storage
        self.audit_trail = audit_trail
        self.event_dispatcher = event_dispatcher
        self.table = "interest_rate_categories"

    @staticmethod
    def _require_key(category: Optional[str]) -> str:
        key = normalize_category(category)
        if not key:
            raise ValidationError("Category is required")
        return key

    def set_rate(self, category: str, annual_rate_percent: Number,
                 user_id: Optional[str] = None) -> InterestRateCategory:
        """
        Create or update the rate for a category

        Args:
            category: Category name; trimmed and lowercased before use
            annual_rate_percent: Annual rate in percent, 0-100
            user_id: Administrator performing the change

        Returns:
            The stored category

        Raises:
            ValidationError: If the category is blank or the rate is out of range
        """
        key = self._require_key(category)
        rate = validate_rate(annual_rate_percent)
        now = datetime.now(timezone.utc)

        existing = self.get_rate(key)
        if existing:
            previous_rate = existing.annual_rate_percent
            existing.annual_rate_percent = rate
            existing.updated_at = now
            record = existing
        else:
            previous_rate = None
            record = InterestRateCategory(id=key, created_at=now, updated_at=now,
                                          category=key, annual_rate_percent=rate)

        self.storage.save(self.table, key, record.to_dict())

        self.audit_trail.log_event(
            event_type=AuditEventType.INTEREST_RATE_SET,
            entity_type="interest_rate_category",
            entity_id=key,
            metadata={"annual_rate_percent": rate, "previous_rate_percent": previous_rate},
            user_id=user_id
        )
        self.publish_event(DomainEvent.INTEREST_RATE_SET, "interest_rate_category", key,
                           record.to_api_dict())
        logger.info(f"Interest rate for category '{key}' set to {rate}%")
        return record

    def delete_rate(self, category: str, user_id: Optional[str] = None) -> None:
        """
        Delete a category. Loans that already resolved a rate keep it.

        Raises:
            ValidationError: If the category is blank
            NotFoundError: If no such category exists
        """
        key = self._require_key(category)
        if not self.storage.delete(self.table, key):
            raise NotFoundError(f"Interest rate category '{key}' not found")

        self.audit_trail.log_event(
            event_type=AuditEventType.INTEREST_RATE_DELETED,
            entity_type="interest_rate_category",
            entity_id=key,
            user_id=user_id
        )
        self.publish_event(DomainEvent.INTEREST_RATE_DELETED, "interest_rate_category", key,
                           {"category": key})
        logger.info(f"Interest rate category '{key}' deleted")

    def get_rate(self, category: Optional[str]) -> Optional[InterestRateCategory]:
        """Look up a category by (unnormalized) name"""
        key = normalize_category(category)
        if not key:
            return None
        data = self.storage.load(self.table, key)
        return InterestRateCategory.from_dict(data) if data else None

    def list_rates(self) -> List[InterestRateCategory]:
        """All categories sorted by key"""
        categories = [InterestRateCategory.from_dict(data)
                      for data in self.storage.load_all(self.table)]
        return sorted(categories, key=lambda c: c.category)


class RateSource(Enum):
    """Where a resolved rate came from"""
    EXPLICIT = "explicit"
    CATEGORY = "category"
    DEFAULT = "default"


@dataclass(frozen=True)
class RateResolution:
    annual_rate_percent: Decimal
    source: RateSource
    category: Optional[str] = None


class InterestRateResolver:
    """Resolves a loan's annual rate through the explicit > category > default chain"""

    def __init__(self, categories: InterestRateCategoryManager, default_rate: Number):
        self.categories = categories
        self.default_rate = validate_rate(default_rate, "default_annual_interest_rate")

    def resolve(self, category: Optional[str] = None,
                explicit_rate: Optional[Number] = None) -> RateResolution:
        if explicit_rate is not None:
            return RateResolution(validate_rate(explicit_rate, "interestRate"),
                                  RateSource.EXPLICIT)

        key = normalize_category(category)
        if key:
            stored = self.categories.get_rate(key)
            if stored:
                return RateResolution(stored.annual_rate_percent, RateSource.CATEGORY, key)
            logger.debug(f"No interest rate category '{key}', using default rate")

        return RateResolution(self.default_rate, RateSource.DEFAULT)
