"""
System wiring and request dependencies
"""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..audit import AuditTrail
from ..auth import Session, decode_access_token
from ..config import LoanServicingConfig, get_config
from ..currency import Currency
from ..errors import AuthenticationError
from ..events import EventDispatcher
from ..interest_rates import InterestRateCategoryManager, InterestRateResolver
from ..loans import LoanManager
from ..realtime import ChannelHub, RealtimeNotifier
from ..storage import StorageInterface, create_storage


class LoanServicingSystem:
    """Loan servicing engine with all components initialized"""

    def __init__(self, config: Optional[LoanServicingConfig] = None,
                 storage: Optional[StorageInterface] = None):
        self.config = config or get_config()
        self.storage = storage or create_storage(self.config.storage_backend,
                                                 self.config.database_path)
        currency = Currency[self.config.currency]

        self.audit_trail = AuditTrail(self.storage)
        self.event_dispatcher = EventDispatcher()

        self.hub = ChannelHub(max_pending=self.config.realtime_queue_size)
        self.notifier = RealtimeNotifier(self.hub)
        self.notifier.attach(self.event_dispatcher)
        self._closed = False

        self.rate_manager = InterestRateCategoryManager(
            self.storage, self.audit_trail, self.event_dispatcher
        )
        self.rate_resolver = InterestRateResolver(
            self.rate_manager, self.config.default_annual_interest_rate
        )
        self.loan_manager = LoanManager(
            self.storage, self.rate_resolver, self.audit_trail,
            self.event_dispatcher, currency=currency
        )

    def decode_token(self, token: str) -> Session:
        return decode_access_token(token, secret=self.config.jwt_secret,
                                   algorithm=self.config.jwt_algorithm)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.notifier.detach(self.event_dispatcher)
        self.storage.close()


security = HTTPBearer(auto_error=False)


def get_system(request: Request) -> LoanServicingSystem:
    return request.app.state.system


def get_current_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    system: LoanServicingSystem = Depends(get_system)
) -> Session:
    """Dependency that validates the bearer token against the app's own JWT settings"""
    if not credentials:
        raise AuthenticationError("Missing Authorization header")
    return system.decode_token(credentials.credentials)


def require_admin(session: Session = Depends(get_current_session)) -> Session:
    """Dependency that only lets administrators through"""
    session.require_admin()
    return session
