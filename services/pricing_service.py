"""
Pricing service: resolves what a dealer pays for an application.

Purchase resolution order:
1. Already purchased by the dealer -> free re-download (0.00)
2. Company override pricing for the dealer's company, if present
3. Otherwise the global standard price
4. A lapsed lock by another dealer (and no active lock) -> discounted price
5. Global age discount when enabled and age_days >= threshold
   -> standard * (1 - percentage / 100), rounded half-up to cents

Age and lock discounts are mutually exclusive: the lower candidate wins and
they are never compounded.

The pricing policy is read from the store on every call; there is no cache.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence
from uuid import UUID

from domain.application import Application
from domain.dealer import Dealer
from domain.errors import AlreadyLockedByOther, ApplicationNotFound, ConfigurationError
from domain.lock import Lock, LockKind, active_lock_by_other, has_lapsed_lock_by_other, own_lock
from domain.pricing import ZERO, PricingPolicy, PriceTier, round_money
from domain.time import utc_now
from repositories.store import MarketplaceStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PriceAction:
    """What the dealer wants to pay for: a purchase, or a lock of a given kind."""

    name: str
    lock_kind: Optional[LockKind] = None

    @staticmethod
    def purchase() -> "PriceAction":
        return PriceAction("purchase")

    @staticmethod
    def lock(kind: LockKind) -> "PriceAction":
        if not kind.is_requestable:
            raise ValueError(f"Lock kind {kind.value} cannot be priced")
        return PriceAction("lock", kind)

    @property
    def is_purchase(self) -> bool:
        return self.name == "purchase"


@dataclass(frozen=True, slots=True)
class PriceResolution:
    amount: Decimal
    tier: PriceTier
    reason: str

    @property
    def is_free(self) -> bool:
        return self.tier is PriceTier.FREE


def load_policy(store: MarketplaceStore) -> PricingPolicy:
    """
    Read and re-validate the current pricing policy.

    Raises:
        ConfigurationError: no policy / standard price configured
        InvalidPricingConfig: stored values violate the pricing rules
    """

    policy = store.get_pricing_policy()
    if policy is None or policy.standard_price is None:
        raise ConfigurationError("No standard price is configured")
    return policy.validate()


def resolve_price(
    application: Application,
    dealer: Dealer,
    action: PriceAction,
    *,
    store: MarketplaceStore,
    as_of: Optional[datetime] = None,
    policy: Optional[PricingPolicy] = None,
    locks: Optional[Iterable[Lock]] = None,
    purchased: Optional[bool] = None,
) -> PriceResolution:
    """
    Compute the price for a purchase or lock action.

    policy, locks and purchased may be supplied by callers that already read
    them for this request (the availability projector does so for a whole
    page of applications); otherwise they are read from the store.
    """

    now = as_of or utc_now()
    current_policy = policy.validate() if policy is not None else load_policy(store)
    lock_rows = list(locks) if locks is not None else store.list_locks(application.application_id)

    if action.is_purchase:
        if purchased is None:
            purchased = store.get_active_purchase(application.application_id, dealer.dealer_id) is not None
        return _resolve_purchase_price(application, dealer, current_policy, lock_rows, purchased, now, store)

    return _resolve_lock_fee(dealer, action, current_policy, lock_rows, now)


def _resolve_purchase_price(
    application: Application,
    dealer: Dealer,
    policy: PricingPolicy,
    locks: Sequence[Lock],
    purchased: bool,
    as_of: datetime,
    store: MarketplaceStore,
) -> PriceResolution:
    if purchased:
        return PriceResolution(ZERO, PriceTier.FREE, "already purchased: free re-download")

    company = store.get_company_pricing(dealer.company_id) if dealer.company_id else None
    effective = policy.with_company(company.validate() if company else None)
    source = "company" if company else "standard"

    best = PriceResolution(round_money(effective.standard_price), PriceTier.STANDARD, f"{source} price")

    if has_lapsed_lock_by_other(locks, dealer.dealer_id, as_of):
        candidate = round_money(effective.discounted_price)
        if candidate <= best.amount:
            best = PriceResolution(candidate, PriceTier.DISCOUNTED, f"{source} discounted price after lapsed lock")

    age_days = application.age_days(as_of)
    if effective.age_discount.applies_to(age_days):
        candidate = effective.age_discount.apply(effective.standard_price)
        # Ties keep the lock discount; the discounts never stack.
        if candidate < best.amount:
            best = PriceResolution(
                candidate,
                PriceTier.AGE_DISCOUNTED,
                f"{effective.age_discount.percentage}% age discount ({age_days} days old)",
            )

    return best


def _resolve_lock_fee(
    dealer: Dealer,
    action: PriceAction,
    policy: PricingPolicy,
    locks: Sequence[Lock],
    as_of: datetime,
) -> PriceResolution:
    if action.lock_kind is None:
        raise ValueError("A lock price needs a lock kind")

    mine = own_lock(locks, dealer.dealer_id)
    if mine is not None and mine.is_active(as_of) and mine.kind.is_permanent:
        return PriceResolution(ZERO, PriceTier.FREE, "already permanently locked")

    fee = policy.lock_fees.get(action.lock_kind)
    if fee is None:
        raise ConfigurationError(f"No fee is configured for {action.lock_kind.value} locks")
    return PriceResolution(round_money(fee), PriceTier.LOCK_FEE, f"{action.lock_kind.value} lock fee")


@dataclass(frozen=True, slots=True)
class QuoteLine:
    application_id: UUID
    price: PriceResolution


@dataclass(frozen=True, slots=True)
class CheckoutQuote:
    """
    Itemised checkout quote.

    Includes:
    - Individual application prices
    - Subtotal (sum of all items)
    - Quote expiration (prevents stale price abuse)
    """

    action: PriceAction
    items: List[QuoteLine]
    subtotal: Decimal
    currency: str
    created_at: datetime
    expires_at: datetime

    @property
    def total_items(self) -> int:
        return len(self.items)

    def is_expired(self, as_of: Optional[datetime] = None) -> bool:
        return (as_of or utc_now()) > self.expires_at


def calculate_checkout_quote(
    application_ids: Sequence[UUID],
    dealer: Dealer,
    action: Optional[PriceAction] = None,
    *,
    store: MarketplaceStore,
    as_of: Optional[datetime] = None,
    quote_validity_minutes: int = 15,
) -> CheckoutQuote:
    """
    Quote a checkout for the given applications.

    Raises:
        ApplicationNotFound: an application does not exist or is not listed
        AlreadyLockedByOther: an application is locked by another dealer
        ConfigurationError / InvalidPricingConfig: pricing is not usable

    Example:
        quote = calculate_checkout_quote(ids, dealer, store=store)
        print(f"Total: ${quote.subtotal} for {quote.total_items} applications")
    """

    if not application_ids:
        raise ValueError("At least one application is required for a quote")

    now = as_of or utc_now()
    price_action = action or PriceAction.purchase()
    policy = load_policy(store)
    purchased_ids = store.purchased_application_ids(dealer.dealer_id)
    locks_by_app = store.list_locks_for_applications(application_ids)

    items: List[QuoteLine] = []
    subtotal = ZERO
    for application_id in dict.fromkeys(application_ids):
        application = store.get_application(application_id)
        if application is None or not application.status.is_listed:
            raise ApplicationNotFound(application_id)

        locks = locks_by_app.get(application_id, [])
        blocking = active_lock_by_other(locks, dealer.dealer_id, now)
        if blocking is not None:
            raise AlreadyLockedByOther(application_id, blocking.expires_at)

        price = resolve_price(
            application,
            dealer,
            price_action,
            store=store,
            as_of=now,
            policy=policy,
            locks=locks,
            purchased=application_id in purchased_ids,
        )
        items.append(QuoteLine(application_id=application_id, price=price))
        subtotal += price.amount

    logger.info(
        "Quoted %s of %d applications for dealer %s: %s USD",
        price_action.name,
        len(items),
        dealer.dealer_id,
        subtotal,
    )

    return CheckoutQuote(
        action=price_action,
        items=items,
        subtotal=round_money(subtotal),
        currency="USD",
        created_at=now,
        expires_at=now + timedelta(minutes=quote_validity_minutes),
    )


__all__ = [
    "PriceAction",
    "PriceResolution",
    "QuoteLine",
    "CheckoutQuote",
    "load_policy",
    "resolve_price",
    "calculate_checkout_quote",
]
