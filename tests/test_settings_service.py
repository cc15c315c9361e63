"""
Tests for `services/settings_service.py`.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from conftest import APP_FRESH, COMPANY
from domain.application import ApplicationStatus
from domain.errors import InvalidPricingConfig
from domain.lock import LockKind
from services.settings_service import (
    PricingPolicyUpdate,
    change_application_status,
    get_company_pricing,
    get_pricing_policy,
    update_company_pricing,
    update_pricing_policy,
)


def test_invalid_update_keeps_prior_policy(store) -> None:
    """standard 5.00 with discounted 6.00 is rejected; 10.99 / 5.99 remains."""

    with pytest.raises(InvalidPricingConfig):
        update_pricing_policy(
            PricingPolicyUpdate(standard_price=Decimal("5.00"), discounted_price=Decimal("6.00")),
            store=store,
        )

    policy = get_pricing_policy(store=store)
    assert policy.standard_price == Decimal("10.99")
    assert policy.discounted_price == Decimal("5.99")


@pytest.mark.parametrize(
    "changes",
    [
        PricingPolicyUpdate(standard_price=Decimal("0")),
        PricingPolicyUpdate(discounted_price=Decimal("-1")),
        PricingPolicyUpdate(discounted_price=Decimal("10.99")),
        PricingPolicyUpdate(age_discount_enabled=True, age_discount_threshold_days=30, age_discount_percentage=Decimal("0")),
        PricingPolicyUpdate(age_discount_enabled=True, age_discount_threshold_days=30, age_discount_percentage=Decimal("101")),
        PricingPolicyUpdate(temporary_lock_minutes=0),
        PricingPolicyUpdate(lock_fees={LockKind.HOURS_24: Decimal("-2.00")}),
    ],
)
def test_invalid_updates_are_rejected(store, changes) -> None:
    with pytest.raises(InvalidPricingConfig):
        update_pricing_policy(changes, store=store)


def test_partial_update_merges_with_current_policy(store) -> None:
    updated = update_pricing_policy(
        PricingPolicyUpdate(
            discounted_price=Decimal("4.495"),
            age_discount_enabled=True,
            age_discount_threshold_days=60,
            age_discount_percentage=Decimal("25"),
            lock_fees={LockKind.WEEK_1: Decimal("9.50")},
        ),
        store=store,
    )

    assert updated.standard_price == Decimal("10.99")
    assert updated.discounted_price == Decimal("4.50")
    assert updated.age_discount.enabled
    assert updated.age_discount.threshold_days == 60
    assert updated.lock_fees[LockKind.WEEK_1] == Decimal("9.50")
    assert updated.lock_fees[LockKind.HOURS_24] == Decimal("2.00")
    assert get_pricing_policy(store=store) == updated


def test_company_pricing_is_validated(store) -> None:
    with pytest.raises(InvalidPricingConfig):
        update_company_pricing(COMPANY, Decimal("4.00"), Decimal("4.00"), store=store)

    assert get_company_pricing(COMPANY, store=store) is None

    saved = update_company_pricing(COMPANY, Decimal("8.00"), Decimal("4.00"), store=store)
    assert get_company_pricing(COMPANY, store=store) == saved


def test_change_application_status(store) -> None:
    updated = change_application_status(APP_FRESH, ApplicationStatus.REJECTED, store=store)

    assert updated.status is ApplicationStatus.REJECTED
    assert not store.get_application(APP_FRESH).status.is_listed
