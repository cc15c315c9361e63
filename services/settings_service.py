"""
Pricing settings administration.

Updates are validated before anything is written; a rejected update raises
InvalidPricingConfig and the previously saved configuration stays in effect.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping, Optional
from uuid import UUID

from domain.application import Application, ApplicationStatus
from domain.errors import InvalidPricingConfig
from domain.lock import DEFAULT_TEMPORARY_LOCK_MINUTES, LockKind
from domain.pricing import DISABLED_AGE_DISCOUNT, AgeDiscount, CompanyPricing, PricingPolicy, round_money
from repositories.store import MarketplaceStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PricingPolicyUpdate:
    """Partial update; None leaves the current value unchanged."""

    standard_price: Optional[Decimal] = None
    discounted_price: Optional[Decimal] = None
    age_discount_enabled: Optional[bool] = None
    age_discount_threshold_days: Optional[int] = None
    age_discount_percentage: Optional[Decimal] = None
    temporary_lock_minutes: Optional[int] = None
    lock_fees: Mapping[LockKind, Decimal] = field(default_factory=dict)


def get_pricing_policy(*, store: MarketplaceStore) -> Optional[PricingPolicy]:
    return store.get_pricing_policy()


def update_pricing_policy(changes: PricingPolicyUpdate, *, store: MarketplaceStore) -> PricingPolicy:
    """
    Merge changes into the current policy, validate, then save.

    Raises:
        InvalidPricingConfig: the merged policy violates the pricing rules
    """

    current = store.get_pricing_policy()
    base_age = current.age_discount if current else DISABLED_AGE_DISCOUNT

    standard = changes.standard_price if changes.standard_price is not None else (current.standard_price if current else None)
    discounted = changes.discounted_price if changes.discounted_price is not None else (current.discounted_price if current else None)
    if standard is None or discounted is None:
        raise InvalidPricingConfig("Standard and discounted prices are both required")

    age_discount = AgeDiscount(
        enabled=changes.age_discount_enabled if changes.age_discount_enabled is not None else base_age.enabled,
        threshold_days=(
            changes.age_discount_threshold_days
            if changes.age_discount_threshold_days is not None
            else base_age.threshold_days
        ),
        percentage=(
            changes.age_discount_percentage if changes.age_discount_percentage is not None else base_age.percentage
        ),
    )

    lock_fees = dict(current.lock_fees) if current else {}
    lock_fees.update({kind: round_money(fee) for kind, fee in changes.lock_fees.items()})

    policy = PricingPolicy(
        standard_price=round_money(standard),
        discounted_price=round_money(discounted),
        age_discount=age_discount,
        temporary_lock_minutes=(
            changes.temporary_lock_minutes
            if changes.temporary_lock_minutes is not None
            else (current.temporary_lock_minutes if current else DEFAULT_TEMPORARY_LOCK_MINUTES)
        ),
        lock_fees=lock_fees,
    )

    try:
        policy.validate()
    except InvalidPricingConfig as e:
        logger.warning("Rejected pricing update: %s", e)
        raise

    saved = store.save_pricing_policy(policy)
    logger.info(
        "Pricing updated: standard=%s discounted=%s age_discount=%s",
        saved.standard_price,
        saved.discounted_price,
        saved.age_discount,
    )
    return saved


def get_company_pricing(company_id: UUID, *, store: MarketplaceStore) -> Optional[CompanyPricing]:
    return store.get_company_pricing(company_id)


def update_company_pricing(
    company_id: UUID,
    standard_price: Decimal,
    discounted_price: Decimal,
    *,
    store: MarketplaceStore,
) -> CompanyPricing:
    """
    Save a company's price override.

    Raises:
        InvalidPricingConfig: prices are not positive or discounted >= standard
    """

    pricing = CompanyPricing(
        company_id=company_id,
        standard_price=round_money(standard_price),
        discounted_price=round_money(discounted_price),
    )
    try:
        pricing.validate()
    except InvalidPricingConfig as e:
        logger.warning("Rejected pricing update for company %s: %s", company_id, e)
        raise

    saved = store.save_company_pricing(pricing)
    logger.info("Company %s pricing updated: standard=%s discounted=%s", company_id, saved.standard_price, saved.discounted_price)
    return saved


def change_application_status(
    application_id: UUID,
    status: ApplicationStatus,
    *,
    store: MarketplaceStore,
) -> Application:
    """Admin status change (approve/reject); locks and purchases are untouched."""

    updated = store.set_application_status(application_id, status)
    logger.info("Application %s status set to %s", application_id, status.value)
    return updated


__all__ = [
    "PricingPolicyUpdate",
    "get_pricing_policy",
    "update_pricing_policy",
    "get_company_pricing",
    "update_company_pricing",
    "change_application_status",
]
