"""
Pytest configuration and shared fixtures.

Adds the project root to the Python path so that tests can import the
domain, repositories and services packages, and provides a seeded
in-memory store with a fixed UTC clock.
"""

import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from uuid import UUID

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from domain.application import Application, ApplicationStatus  # noqa: E402
from domain.dealer import Dealer, DealerRole  # noqa: E402
from domain.pricing import LockoutPeriod, PricingPolicy  # noqa: E402
from repositories.memory_store import InMemoryMarketplaceStore  # noqa: E402

NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

APP_FRESH = UUID("00000000-0000-0000-0000-00000000a001")
APP_OLD = UUID("00000000-0000-0000-0000-00000000a002")
APP_DRAFT = UUID("00000000-0000-0000-0000-00000000a003")

DEALER_1 = UUID("00000000-0000-0000-0000-00000000d001")
DEALER_2 = UUID("00000000-0000-0000-0000-00000000d002")
DEALER_3 = UUID("00000000-0000-0000-0000-00000000d003")
ADMIN = UUID("00000000-0000-0000-0000-00000000d0ad")
COMPANY = UUID("00000000-0000-0000-0000-00000000c001")


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def applications() -> list:
    return [
        Application(
            application_id=APP_FRESH,
            submitted_at=NOW - timedelta(days=2),
            status=ApplicationStatus.APPROVED,
            applicant={"first_name": "Ada", "last_name": "Lovelace"},
        ),
        Application(
            application_id=APP_OLD,
            submitted_at=NOW - timedelta(days=45),
            status=ApplicationStatus.SUBMITTED,
        ),
        Application(
            application_id=APP_DRAFT,
            submitted_at=NOW - timedelta(days=1),
            status=ApplicationStatus.DRAFT,
        ),
    ]


@pytest.fixture
def policy() -> PricingPolicy:
    return PricingPolicy(standard_price=Decimal("10.99"), discounted_price=Decimal("5.99"))


@pytest.fixture
def lockout_periods() -> list:
    return [
        LockoutPeriod(period_id=1, name="24hours", hours=24, fee=Decimal("2.00")),
        LockoutPeriod(period_id=2, name="1week", hours=168, fee=Decimal("8.00")),
        LockoutPeriod(period_id=3, name="permanent", hours=87600, fee=Decimal("25.00")),
    ]


@pytest.fixture
def store(applications, policy, lockout_periods) -> InMemoryMarketplaceStore:
    return InMemoryMarketplaceStore(applications, policy=policy, lockout_periods=lockout_periods)


@pytest.fixture
def dealer_1() -> Dealer:
    return Dealer(dealer_id=DEALER_1)


@pytest.fixture
def dealer_2() -> Dealer:
    return Dealer(dealer_id=DEALER_2)


@pytest.fixture
def dealer_3() -> Dealer:
    return Dealer(dealer_id=DEALER_3)


@pytest.fixture
def company_dealer() -> Dealer:
    return Dealer(dealer_id=DEALER_3, company_id=COMPANY)


@pytest.fixture
def admin() -> Dealer:
    return Dealer(dealer_id=ADMIN, role=DealerRole.ADMIN)
