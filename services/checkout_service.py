"""
Checkout-completed event processing.

Consumes the payment provider's "checkout completed" event once the webhook
handler has authenticated it. Delivery is at-least-once and may be
reordered, so everything here is keyed on the payment reference:

- purchase checkouts record one purchase per application (idempotent)
- lock-extension checkouts apply the paid lock kind per application; a
  second delivery finds the payment already applied and does nothing
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, List, Mapping, Optional, Tuple
from uuid import UUID

from domain.errors import MarketplaceError, PaymentNotConfirmed, StoreConflict
from domain.lock import LockKind
from domain.pricing import ZERO, round_money
from domain.purchase import NO_DISCOUNT, DiscountInfo
from repositories.store import MarketplaceStore
from services import lock_service, purchase_service

logger = logging.getLogger(__name__)


class PaymentKind(str, Enum):
    PURCHASE = "purchase"
    LOCK_EXTENSION = "lock_extension"


@dataclass(frozen=True, slots=True)
class CheckoutCompleted:
    """
    A confirmed checkout as delivered by the payment provider.

    payment_ref is the idempotency key (payment intent ID, falling back to
    the checkout session ID).
    """

    payment_ref: str
    dealer_id: UUID
    application_ids: Tuple[UUID, ...]
    amount_total: Decimal
    kind: PaymentKind = PaymentKind.PURCHASE
    lock_kind: Optional[LockKind] = None
    payment_status: str = "paid"
    session_id: Optional[str] = None
    discount: DiscountInfo = field(default=NO_DISCOUNT)

    @staticmethod
    def from_stripe_session(session: Mapping[str, Any]) -> "CheckoutCompleted":
        """
        Parse a Stripe checkout session object.

        Metadata keys: dealer_id, application_ids (comma-separated),
        payment_type (purchase | lock_extension), lock_type, has_discount,
        discount_type. amount_total is in cents.

        Raises:
            ValueError: required metadata is missing or malformed
        """

        metadata = session.get("metadata") or {}

        dealer_id = metadata.get("dealer_id")
        if not dealer_id:
            raise ValueError("Dealer ID not found in session metadata")

        raw_ids = metadata.get("application_ids") or ""
        application_ids = tuple(UUID(part.strip()) for part in raw_ids.split(",") if part.strip())
        if not application_ids:
            raise ValueError("No application IDs found in session metadata")

        kind = PaymentKind(metadata.get("payment_type") or PaymentKind.PURCHASE.value)
        lock_kind = LockKind(metadata["lock_type"]) if metadata.get("lock_type") else None
        if kind is PaymentKind.LOCK_EXTENSION and lock_kind is None:
            raise ValueError("Lock extension checkout is missing lock_type")

        payment_ref = session.get("payment_intent") or session.get("id")
        if not payment_ref:
            raise ValueError("Checkout session has no payment reference")

        amount_cents = session.get("amount_total") or 0
        has_discount = str(metadata.get("has_discount", "")).lower() == "true"

        return CheckoutCompleted(
            payment_ref=str(payment_ref),
            dealer_id=UUID(str(dealer_id)),
            application_ids=application_ids,
            amount_total=round_money(Decimal(int(amount_cents)) / Decimal(100)),
            kind=kind,
            lock_kind=lock_kind,
            payment_status=str(session.get("payment_status") or ""),
            session_id=session.get("id"),
            discount=DiscountInfo(applied=has_discount, kind=metadata.get("discount_type") if has_discount else None),
        )

    @property
    def amount_per_application(self) -> Decimal:
        if not self.application_ids:
            return ZERO
        return round_money(self.amount_total / len(self.application_ids))


@dataclass(frozen=True, slots=True)
class CheckoutOutcome:
    """
    created: applications granted by this delivery
    already_satisfied: applications the dealer already had under this payment
    rejected: applications that could not be granted (locked by another dealer, ...)
    """

    payment_ref: str
    created: List[UUID] = field(default_factory=list)
    already_satisfied: List[UUID] = field(default_factory=list)
    rejected: List[UUID] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        return len(self.created) + len(self.already_satisfied) + len(self.rejected)


def handle_checkout_completed(
    event: CheckoutCompleted,
    *,
    store: MarketplaceStore,
    as_of: Optional[datetime] = None,
) -> CheckoutOutcome:
    """
    Apply a confirmed checkout.

    A logical rejection for one application (unknown application, locked by
    another dealer) is recorded in outcome.rejected and the remaining
    applications are still granted. StoreConflict propagates so the provider
    delivers the event again.

    Raises:
        PaymentNotConfirmed: the session's payment_status is not "paid"
    """

    if event.payment_status != "paid":
        raise PaymentNotConfirmed(
            f"Payment {event.payment_ref} has not been processed yet (status: {event.payment_status or 'unknown'})"
        )

    if event.kind is PaymentKind.LOCK_EXTENSION:
        outcome = _apply_lock_payment(event, store=store, as_of=as_of)
    else:
        outcome = _apply_purchase_payment(event, store=store, as_of=as_of)

    logger.info(
        "Processed %s checkout %s for dealer %s: %d created, %d already satisfied, %d rejected",
        event.kind.value,
        event.payment_ref,
        event.dealer_id,
        len(outcome.created),
        len(outcome.already_satisfied),
        len(outcome.rejected),
    )
    return outcome


def _apply_purchase_payment(
    event: CheckoutCompleted,
    *,
    store: MarketplaceStore,
    as_of: Optional[datetime],
) -> CheckoutOutcome:
    outcome = CheckoutOutcome(payment_ref=event.payment_ref)
    unit_amount = event.amount_per_application

    for application_id in event.application_ids:
        try:
            result = purchase_service.record_purchase(
                application_id,
                event.dealer_id,
                event.payment_ref,
                unit_amount,
                event.discount,
                store=store,
                checkout_session_id=event.session_id,
                as_of=as_of,
            )
        except StoreConflict:
            raise
        except MarketplaceError as e:
            logger.error("Purchase of %s under payment %s not recorded: %s", application_id, event.payment_ref, e)
            outcome.rejected.append(application_id)
            continue
        (outcome.created if result.created else outcome.already_satisfied).append(application_id)

    return outcome


def _apply_lock_payment(
    event: CheckoutCompleted,
    *,
    store: MarketplaceStore,
    as_of: Optional[datetime],
) -> CheckoutOutcome:
    if event.lock_kind is None:
        raise ValueError(f"Lock payment {event.payment_ref} has no lock kind")

    batch = lock_service.process_locks_after_payment(
        event.application_ids,
        event.dealer_id,
        event.lock_kind,
        event.payment_ref,
        event.amount_total,
        store=store,
        extend=True,
        as_of=as_of,
    )
    return CheckoutOutcome(
        payment_ref=event.payment_ref,
        created=list(batch.created),
        already_satisfied=list(batch.already_satisfied),
        rejected=list(batch.rejected),
    )


__all__ = [
    "PaymentKind",
    "CheckoutCompleted",
    "CheckoutOutcome",
    "handle_checkout_completed",
]
