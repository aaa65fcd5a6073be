"""
Shared fixtures: an in-memory loan servicing system and a few sessions
"""

import pytest

from loan_servicing.api.dependencies import LoanServicingSystem
from loan_servicing.auth import Session, ROLE_ADMIN
from loan_servicing.config import LoanServicingConfig
from loan_servicing.storage import InMemoryStorage


@pytest.fixture
def config():
    return LoanServicingConfig(storage_backend="memory", log_format="text",
                               jwt_secret="test-secret")


@pytest.fixture
def system(config):
    system = LoanServicingSystem(config, storage=InMemoryStorage())
    yield system
    system.close()


@pytest.fixture
def alice():
    return Session(user_id="alice")


@pytest.fixture
def bob():
    return Session(user_id="bob")


@pytest.fixture
def admin():
    return Session(user_id="admin-1", role=ROLE_ADMIN)
