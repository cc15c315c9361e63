"""
Lock service: the dealer-facing side of the lock state machine.

Handles:
- Acquiring, upgrading and extending locks (atomic inside the store)
- Releasing a dealer's own lock
- Reading lock state for a requesting dealer
- Applying paid locks after payment confirmation

Lock rows are only ever written once payment for a paid lock has been
confirmed; pending checkout intents never reach this module.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence
from uuid import UUID

from domain.errors import (
    AlreadyLockedByOther,
    ApplicationNotFound,
    DuplicateTemporaryLock,
    MarketplaceError,
    StoreConflict,
)
from domain.lock import DEFAULT_TEMPORARY_LOCK_MINUTES, Lock, LockAction, LockInfo, LockKind, LockRequest, lock_info_for
from domain.pricing import ZERO, LockoutPeriod, round_money
from domain.time import utc_now
from repositories.store import MarketplaceStore
from services.retry import run_with_retry

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LockResult:
    """
    Result of a lock attempt.

    created is False for idempotent no-ops (already permanently locked, or the
    same payment applied twice); the dealer is never charged again for those.
    """

    lock: Lock
    action: LockAction

    @property
    def created(self) -> bool:
        return self.action is not LockAction.NOOP


def _temporary_lock_minutes(store: MarketplaceStore) -> int:
    policy = store.get_pricing_policy()
    if policy is None:
        return DEFAULT_TEMPORARY_LOCK_MINUTES
    return policy.temporary_lock_minutes


def lock(
    application_id: UUID,
    dealer_id: UUID,
    kind: LockKind,
    *,
    store: MarketplaceStore,
    payment_ref: Optional[str] = None,
    fee: Optional[Decimal] = None,
    extend: bool = False,
    as_of: Optional[datetime] = None,
) -> LockResult:
    """
    Lock an application for a dealer.

    Raises:
        AlreadyLockedByOther: another dealer holds an active lock (no state change)
        DuplicateTemporaryLock: temporary lock on top of a temporary lock without extend
        ApplicationNotFound: unknown application, or one that is not listed (draft, rejected)
        StoreConflict: the store kept losing races after bounded retries
    """

    if not kind.is_requestable:
        raise ValueError(f"Lock kind {kind.value} cannot be requested directly")

    application = store.get_application(application_id)
    if application is None or not application.status.is_listed:
        raise ApplicationNotFound(application_id)

    now = as_of or utc_now()
    expires_at = now + kind.duration(_temporary_lock_minutes(store))
    request = LockRequest(
        application_id=application_id,
        dealer_id=dealer_id,
        kind=kind,
        payment_ref=payment_ref,
        fee=round_money(fee) if fee is not None else ZERO,
        extend=extend,
    )

    try:
        outcome = run_with_retry(
            lambda: store.apply_lock_request(request, expires_at=expires_at, as_of=now),
            description=f"lock application {application_id}",
        )
    except AlreadyLockedByOther:
        logger.info("Application %s is locked by another dealer; %s rejected for %s", application_id, kind.value, dealer_id)
        raise
    except DuplicateTemporaryLock:
        logger.info("Dealer %s already holds a temporary lock on %s", dealer_id, application_id)
        raise

    if outcome.action is LockAction.NOOP:
        logger.info("Lock %s on %s for dealer %s is a no-op", kind.value, application_id, dealer_id)
    else:
        logger.info(
            "Dealer %s %s %s lock on %s until %s",
            dealer_id,
            "acquired" if outcome.action is LockAction.ACQUIRE else "replaced",
            kind.value,
            application_id,
            outcome.lock.expires_at.isoformat(),
        )

    if kind.is_permanent or outcome.lock.kind.is_permanent:
        # Idempotent marker: safe to set on every permanent lock (and on no-ops).
        run_with_retry(
            lambda: store.mark_permanently_locked(application_id),
            description=f"mark application {application_id} permanently locked",
        )

    return LockResult(lock=outcome.lock, action=outcome.action)


def unlock(
    application_id: UUID,
    dealer_id: UUID,
    *,
    store: MarketplaceStore,
    as_of: Optional[datetime] = None,
) -> Lock:
    """
    Release the dealer's own lock by expiring it now.

    Calling unlock twice is a no-op the second time.

    Raises:
        NotLockOwner: the dealer holds no lock on the application
    """

    now = as_of or utc_now()
    released = run_with_retry(
        lambda: store.release_lock(application_id, dealer_id, as_of=now),
        description=f"unlock application {application_id}",
    )
    logger.info("Dealer %s released lock on %s", dealer_id, application_id)
    return released


def check_lock(
    application_id: UUID,
    requesting_dealer_id: UUID,
    *,
    store: MarketplaceStore,
    as_of: Optional[datetime] = None,
) -> LockInfo:
    """Pure read of the lock state as seen by the requesting dealer."""

    return lock_info_for(store.list_locks(application_id), requesting_dealer_id, as_of or utc_now())


def list_lockout_periods(*, store: MarketplaceStore) -> List[LockoutPeriod]:
    """Active purchasable lock durations, shortest first."""

    return store.list_lockout_periods(active_only=True)


@dataclass(frozen=True, slots=True)
class PaidLockBatch:
    """
    Per-application result of applying one confirmed lock payment.

    created: locks written by this delivery
    already_satisfied: the payment had already been applied (duplicate or late delivery)
    rejected: logical rejections (unknown application, locked by another dealer, ...)
    """

    payment_ref: str
    created: List[UUID] = field(default_factory=list)
    already_satisfied: List[UUID] = field(default_factory=list)
    rejected: List[UUID] = field(default_factory=list)

    @property
    def applied_count(self) -> int:
        return len(self.created) + len(self.already_satisfied)


def process_locks_after_payment(
    application_ids: Sequence[UUID],
    dealer_id: UUID,
    kind: LockKind,
    payment_ref: str,
    total_amount: Decimal,
    *,
    store: MarketplaceStore,
    extend: bool = True,
    as_of: Optional[datetime] = None,
) -> PaidLockBatch:
    """
    Apply paid locks once the payment has been confirmed.

    The paid amount is split evenly across the applications. Logical
    rejections for one application are logged and do not stop the others;
    StoreConflict propagates so the payment event is delivered again.
    """

    batch = PaidLockBatch(payment_ref=payment_ref)
    if not application_ids:
        return batch

    per_application = round_money(total_amount / len(application_ids))
    for application_id in application_ids:
        try:
            result = lock(
                application_id,
                dealer_id,
                kind,
                store=store,
                payment_ref=payment_ref,
                fee=per_application,
                extend=extend,
                as_of=as_of,
            )
        except StoreConflict:
            raise
        except MarketplaceError as e:
            logger.warning("Paid lock for %s under payment %s not applied: %s", application_id, payment_ref, e)
            batch.rejected.append(application_id)
            continue
        (batch.created if result.created else batch.already_satisfied).append(application_id)

    logger.info(
        "Applied %d of %d paid %s locks for dealer %s",
        batch.applied_count,
        len(application_ids),
        kind.value,
        dealer_id,
    )
    return batch


__all__ = [
    "LockResult",
    "PaidLockBatch",
    "lock",
    "unlock",
    "check_lock",
    "list_lockout_periods",
    "process_locks_after_payment",
]
