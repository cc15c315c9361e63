"""
Domain: Pricing policy.

PricingPolicy is a singleton owned by the administrator; CompanyPricing is an
optional per-company override of the standard and discounted prices.

Validation rules (checked when configuration is saved, and again
whenever a price is resolved):
- standard_price > 0 and discounted_price > 0
- discounted_price < standard_price
- age discount percentage in (0, 100] and threshold_days >= 0 when enabled
- temporary_lock_minutes > 0
- lock fees >= 0

Money is Decimal with two fractional digits, rounded half-up.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Mapping, Optional
from uuid import UUID

from .errors import InvalidPricingConfig
from .lock import DEFAULT_TEMPORARY_LOCK_MINUTES, LockKind

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def round_money(value: Decimal) -> Decimal:
    """Round to cents using round-half-up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class PriceTier(str, Enum):
    FREE = "free"
    STANDARD = "standard"
    DISCOUNTED = "discounted"
    AGE_DISCOUNTED = "age_discounted"
    LOCK_FEE = "lock_fee"


@dataclass(frozen=True, slots=True)
class AgeDiscount:
    enabled: bool = False
    threshold_days: int = 0
    percentage: Decimal = ZERO

    def applies_to(self, age_days: int) -> bool:
        return self.enabled and age_days >= self.threshold_days

    def apply(self, price: Decimal) -> Decimal:
        return round_money(price * (Decimal("1") - self.percentage / Decimal("100")))


DISABLED_AGE_DISCOUNT = AgeDiscount()


@dataclass(frozen=True, slots=True)
class LockoutPeriod:
    """A purchasable lock duration; name is the lock kind it prices."""

    period_id: int
    name: str
    hours: int
    fee: Decimal
    is_active: bool = True

    @property
    def kind(self) -> Optional[LockKind]:
        try:
            return LockKind(self.name)
        except ValueError:
            return None


@dataclass(frozen=True, slots=True)
class PricingPolicy:
    standard_price: Decimal
    discounted_price: Decimal
    age_discount: AgeDiscount = field(default=DISABLED_AGE_DISCOUNT)
    temporary_lock_minutes: int = DEFAULT_TEMPORARY_LOCK_MINUTES
    lock_fees: Mapping[LockKind, Decimal] = field(default_factory=dict)

    def validate(self) -> "PricingPolicy":
        validate_prices(self.standard_price, self.discounted_price)
        if self.age_discount.enabled:
            if not (ZERO < self.age_discount.percentage <= Decimal("100")):
                raise InvalidPricingConfig("Age discount percentage must be greater than 0 and at most 100")
            if self.age_discount.threshold_days < 0:
                raise InvalidPricingConfig("Age discount threshold must be zero or more days")
        if self.temporary_lock_minutes <= 0:
            raise InvalidPricingConfig("Temporary lock duration must be a positive number of minutes")
        for kind, fee in self.lock_fees.items():
            if kind is LockKind.PURCHASE_LOCK:
                raise InvalidPricingConfig("purchase_lock cannot carry a fee")
            if fee < ZERO:
                raise InvalidPricingConfig(f"Lock fee for {kind.value} must not be negative")
        return self

    def with_company(self, company: Optional["CompanyPricing"]) -> "PricingPolicy":
        """Standard and discounted prices overridden by the company's pricing, if any."""

        if company is None:
            return self
        return PricingPolicy(
            standard_price=company.standard_price,
            discounted_price=company.discounted_price,
            age_discount=self.age_discount,
            temporary_lock_minutes=self.temporary_lock_minutes,
            lock_fees=self.lock_fees,
        )


@dataclass(frozen=True, slots=True)
class CompanyPricing:
    company_id: UUID
    standard_price: Decimal
    discounted_price: Decimal

    def validate(self) -> "CompanyPricing":
        validate_prices(self.standard_price, self.discounted_price)
        return self


def validate_prices(standard_price: Optional[Decimal], discounted_price: Optional[Decimal]) -> None:
    if standard_price is None or discounted_price is None:
        raise InvalidPricingConfig("Standard and discounted prices are both required")
    if standard_price <= ZERO:
        raise InvalidPricingConfig("Standard price must be a positive number")
    if discounted_price <= ZERO:
        raise InvalidPricingConfig("Discounted price must be a positive number")
    if discounted_price >= standard_price:
        raise InvalidPricingConfig("Discounted price must be less than the standard price")


def lock_fees_from_periods(periods: list[LockoutPeriod]) -> dict[LockKind, Decimal]:
    """Fee schedule keyed by lock kind, built from the active lockout periods."""

    fees: dict[LockKind, Decimal] = {}
    for period in periods:
        kind = period.kind
        if period.is_active and kind is not None and kind.is_requestable:
            fees[kind] = round_money(period.fee)
    return fees
