"""
Purchase ledger.

Handles:
- Idempotent recording of confirmed purchases (duplicate webhook deliveries
  return created=False and never charge or write twice)
- Claiming the application on first purchase: every other dealer's active lock
  expires and the purchaser is given a 24-hour purchase_lock at no charge
- Purchase lookups and download tracking for free re-downloads
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID, uuid4

from domain.purchase import NO_DISCOUNT, DiscountInfo, Purchase
from domain.pricing import round_money
from domain.time import utc_now
from repositories.store import MarketplaceStore
from services.retry import run_with_retry

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PurchaseResult:
    """
    Result of recording a purchase.

    created: True if this call wrote the purchase; False if the dealer's
             access was already granted (duplicate delivery or re-purchase)
    """

    purchase: Purchase
    created: bool
    expired_lock_count: int = 0

    @property
    def message(self) -> str:
        if self.created:
            return "Purchase recorded successfully."
        return "Application already purchased; no additional charge."


def record_purchase(
    application_id: UUID,
    dealer_id: UUID,
    payment_ref: str,
    amount: Decimal,
    discount: Optional[DiscountInfo] = None,
    *,
    store: MarketplaceStore,
    checkout_session_id: Optional[str] = None,
    as_of: Optional[datetime] = None,
) -> PurchaseResult:
    """
    Record a confirmed purchase for (dealer_id, application_id).

    Safe under at-least-once delivery: the store checks for an existing active
    purchase (or the same payment reference) in the same atomic operation that
    writes the row and applies the lock side effects.

    Example:
        result = record_purchase(app_id, dealer_id, "pi_123", Decimal("10.99"), store=store)
        if not result.created:
            print(result.message)
    """

    if not payment_ref:
        raise ValueError("payment_ref is required to record a purchase")

    now = as_of or utc_now()
    draft = Purchase(
        purchase_id=uuid4(),
        application_id=application_id,
        dealer_id=dealer_id,
        payment_ref=payment_ref,
        amount=round_money(amount),
        purchased_at=now,
        discount=discount or NO_DISCOUNT,
        checkout_session_id=checkout_session_id,
    )

    outcome = run_with_retry(
        lambda: store.record_purchase(draft, as_of=now),
        description=f"record purchase of {application_id}",
    )

    if outcome.created:
        logger.info(
            "Recorded purchase of %s by dealer %s for %s (payment %s); expired %d competing locks",
            application_id,
            dealer_id,
            draft.amount,
            payment_ref,
            outcome.expired_lock_count,
        )
    else:
        logger.info(
            "Purchase of %s by dealer %s already recorded (payment %s); ignoring duplicate",
            application_id,
            dealer_id,
            payment_ref,
        )

    return PurchaseResult(
        purchase=outcome.purchase,
        created=outcome.created,
        expired_lock_count=outcome.expired_lock_count,
    )


def is_purchased(application_id: UUID, dealer_id: UUID, *, store: MarketplaceStore) -> bool:
    return store.get_active_purchase(application_id, dealer_id) is not None


def list_dealer_purchases(dealer_id: UUID, *, store: MarketplaceStore) -> List[Purchase]:
    """A dealer's purchase history, newest first."""

    return store.list_purchases(dealer_id)


def record_download(
    application_id: UUID,
    dealer_id: UUID,
    *,
    store: MarketplaceStore,
    as_of: Optional[datetime] = None,
) -> Purchase:
    """
    Count a (free) download of a purchased application.

    Raises:
        PurchaseNotFound: the dealer has not purchased the application
    """

    purchase = run_with_retry(
        lambda: store.record_download(application_id, dealer_id, at=as_of or utc_now()),
        description=f"record download of {application_id}",
    )
    logger.info("Dealer %s downloaded %s (download #%d)", dealer_id, application_id, purchase.download_count)
    return purchase


def purchase_count(application_id: UUID, *, store: MarketplaceStore) -> int:
    """Number of dealers holding an active purchase. Informational only."""

    return store.count_purchases(application_id)


__all__ = [
    "PurchaseResult",
    "record_purchase",
    "is_purchased",
    "list_dealer_purchases",
    "record_download",
    "purchase_count",
]
