"""
Domain: Application locks and the lock state machine.

Contract implemented here:
- A Lock is a time-bounded or permanent claim by one dealer on one application.
- A Lock is active iff expires_at > as_of. Expiry is evaluated lazily at read time.
- There is at most one lock row per (application_id, dealer_id); acquiring,
  upgrading or extending overwrites the dealer's row.
- Locks by different dealers do not stack: while dealer A holds an active
  lock, a lock attempt by dealer B is rejected.

State transitions:
    Unlocked -> Locked(dealer, kind, expiry) -> Expired -> Unlocked
    Locked -> Locked(dealer, kind', expiry')   (same dealer upgrade/extend)
    Locked -> Permanently-Unavailable          (permanent lock)

This module contains only pure decisions; stores apply them inside their own
atomic sections so that check-then-write is never split across requests.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Collection, Iterable, Optional
from uuid import UUID

from .errors import AlreadyLockedByOther, DuplicateTemporaryLock
from .time import require_utc_timestamp

PERMANENT_LOCK_DURATION = timedelta(days=3650)
PURCHASE_LOCK_DURATION = timedelta(hours=24)
DEFAULT_TEMPORARY_LOCK_MINUTES = 60


class LockKind(str, Enum):
    TEMPORARY = "temporary"
    HOURS_24 = "24hours"
    WEEK_1 = "1week"
    PERMANENT = "permanent"
    # Granted by the purchase ledger, never requested or charged directly.
    PURCHASE_LOCK = "purchase_lock"

    @property
    def is_permanent(self) -> bool:
        return self is LockKind.PERMANENT

    @property
    def is_requestable(self) -> bool:
        return self is not LockKind.PURCHASE_LOCK

    def duration(self, temporary_lock_minutes: int = DEFAULT_TEMPORARY_LOCK_MINUTES) -> timedelta:
        if self is LockKind.TEMPORARY:
            return timedelta(minutes=temporary_lock_minutes)
        if self is LockKind.HOURS_24:
            return timedelta(hours=24)
        if self is LockKind.WEEK_1:
            return timedelta(hours=168)
        if self is LockKind.PURCHASE_LOCK:
            return PURCHASE_LOCK_DURATION
        return PERMANENT_LOCK_DURATION


@dataclass(frozen=True, slots=True)
class Lock:
    """A dealer's lock row for one application."""

    lock_id: UUID
    application_id: UUID
    dealer_id: UUID
    kind: LockKind
    locked_at: datetime
    expires_at: datetime
    payment_ref: Optional[str] = None
    fee_paid: Decimal = Decimal("0.00")

    def __post_init__(self) -> None:
        require_utc_timestamp("locked_at", self.locked_at)
        require_utc_timestamp("expires_at", self.expires_at)

    def is_active(self, as_of: datetime) -> bool:
        return self.expires_at > as_of

    def expired(self, as_of: datetime) -> "Lock":
        """Return this lock expired at as_of. Expiring an expired lock changes nothing."""

        require_utc_timestamp("as_of", as_of)
        if not self.is_active(as_of):
            return self
        return replace(self, expires_at=as_of)


@dataclass(frozen=True, slots=True)
class LockInfo:
    """Read model returned by check_lock."""

    is_locked: bool
    is_own_lock: bool = False
    expires_at: Optional[datetime] = None
    lock_type: Optional[LockKind] = None
    locked_by: Optional[UUID] = None

    @property
    def is_locked_by_other(self) -> bool:
        return self.is_locked and not self.is_own_lock


UNLOCKED = LockInfo(is_locked=False)


@dataclass(frozen=True, slots=True)
class LockRequest:
    application_id: UUID
    dealer_id: UUID
    kind: LockKind
    payment_ref: Optional[str] = None
    fee: Decimal = Decimal("0.00")
    extend: bool = False


class LockAction(str, Enum):
    ACQUIRE = "acquire"
    REPLACE = "replace"
    NOOP = "noop"


@dataclass(frozen=True, slots=True)
class LockDecision:
    action: LockAction
    current: Optional[Lock] = None
    reason: str = ""

    @property
    def writes(self) -> bool:
        return self.action is not LockAction.NOOP


def active_lock_by_other(locks: Iterable[Lock], dealer_id: UUID, as_of: datetime) -> Optional[Lock]:
    """The active lock held by someone other than dealer_id, if any."""

    for lock in locks:
        if lock.dealer_id != dealer_id and lock.is_active(as_of):
            return lock
    return None


def own_lock(locks: Iterable[Lock], dealer_id: UUID) -> Optional[Lock]:
    """The dealer's lock row (active or not)."""

    for lock in locks:
        if lock.dealer_id == dealer_id:
            return lock
    return None


def evaluate_lock_request(
    locks: Iterable[Lock],
    request: LockRequest,
    as_of: datetime,
    applied_payment_refs: Collection[str] = (),
) -> LockDecision:
    """
    Decide how a lock request transitions the application's lock state.

    applied_payment_refs holds every payment reference already applied to
    this application. A request carrying one of them is a no-op whatever the
    current rows say, since a later payment may have overwritten the row the
    earlier one created.

    Raises:
        AlreadyLockedByOther: another dealer holds an active lock
        DuplicateTemporaryLock: a temporary lock would be stacked on a temporary lock
    """

    require_utc_timestamp("as_of", as_of)
    if not request.kind.is_requestable:
        raise ValueError(f"Lock kind {request.kind.value} cannot be requested directly")

    rows = list(locks)
    current = own_lock(rows, request.dealer_id)

    if request.payment_ref is not None and current is not None:
        if request.payment_ref in applied_payment_refs or current.payment_ref == request.payment_ref:
            return LockDecision(LockAction.NOOP, current, "payment already applied")

    blocking = active_lock_by_other(rows, request.dealer_id, as_of)
    if blocking is not None:
        raise AlreadyLockedByOther(request.application_id, blocking.expires_at)

    if current is None:
        return LockDecision(LockAction.ACQUIRE, None, "no existing lock")

    if not current.is_active(as_of):
        return LockDecision(LockAction.REPLACE, current, "previous lock expired")

    if current.kind.is_permanent:
        return LockDecision(LockAction.NOOP, current, "already permanently locked")

    if request.kind.is_permanent:
        return LockDecision(LockAction.REPLACE, current, "upgrade to permanent")

    if request.extend:
        return LockDecision(LockAction.REPLACE, current, "extension")

    raise DuplicateTemporaryLock(request.application_id)


def lock_info_for(locks: Iterable[Lock], requesting_dealer_id: UUID, as_of: datetime) -> LockInfo:
    """
    Summarize lock state for a requesting dealer.

    is_locked is true only if an unexpired lock exists; is_own_lock is true if
    that lock belongs to the requester. Another dealer's lock takes precedence
    in the summary since it is what restricts the requester.
    """

    rows = list(locks)
    active = active_lock_by_other(rows, requesting_dealer_id, as_of)
    if active is None:
        mine = own_lock(rows, requesting_dealer_id)
        if mine is not None and mine.is_active(as_of):
            active = mine
    if active is None:
        return UNLOCKED
    return LockInfo(
        is_locked=True,
        is_own_lock=active.dealer_id == requesting_dealer_id,
        expires_at=active.expires_at,
        lock_type=active.kind,
        locked_by=active.dealer_id,
    )


def has_lapsed_lock_by_other(locks: Iterable[Lock], dealer_id: UUID, as_of: datetime) -> bool:
    """
    True when another dealer's lock has lapsed and no lock is active now.

    This is the condition under which the lock-discounted price is offered.
    """

    rows = list(locks)
    if any(lock.is_active(as_of) for lock in rows):
        return False
    return any(lock.dealer_id != dealer_id for lock in rows)


__all__ = [
    "LockKind",
    "Lock",
    "LockInfo",
    "UNLOCKED",
    "LockRequest",
    "LockAction",
    "LockDecision",
    "PERMANENT_LOCK_DURATION",
    "PURCHASE_LOCK_DURATION",
    "DEFAULT_TEMPORARY_LOCK_MINUTES",
    "active_lock_by_other",
    "own_lock",
    "evaluate_lock_request",
    "lock_info_for",
    "has_lapsed_lock_by_other",
]
