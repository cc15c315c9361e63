"""
Marketplace store port.

The services talk to durable state only through this interface. Every method
that checks current lock or purchase state and then writes does so as ONE
atomic operation inside the store (a critical section in the in-memory
store, a single PostgreSQL function call in the Supabase store). Services
never read-then-write across two store calls.

Implementations:
- repositories.memory_store.InMemoryMarketplaceStore
- repositories.supabase_store.SupabaseMarketplaceStore
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Mapping, Optional, Set
from uuid import UUID

from domain.application import Application, ApplicationStatus
from domain.lock import Lock, LockAction, LockRequest
from domain.pricing import CompanyPricing, LockoutPeriod, PricingPolicy
from domain.purchase import Purchase


@dataclass(frozen=True, slots=True)
class LockOutcome:
    """Result of an atomic lock request: the dealer's lock row and what happened to it."""

    lock: Lock
    action: LockAction

    @property
    def created(self) -> bool:
        return self.action is not LockAction.NOOP


@dataclass(frozen=True, slots=True)
class PurchaseOutcome:
    """
    Result of an atomic purchase write.

    created is False when an active purchase already existed (duplicate
    payment delivery); in that case no side effects were applied.
    """

    purchase: Purchase
    created: bool
    expired_lock_count: int = 0
    purchase_lock: Optional[Lock] = None


class MarketplaceStore(ABC):
    # ------------------------------------------------------------------
    # Applications
    # ------------------------------------------------------------------

    @abstractmethod
    def get_application(self, application_id: UUID) -> Optional[Application]:
        ...

    @abstractmethod
    def list_applications(self) -> List[Application]:
        """All applications, newest submission first."""

    @abstractmethod
    def set_application_status(self, application_id: UUID, status: ApplicationStatus) -> Application:
        ...

    @abstractmethod
    def mark_permanently_locked(self, application_id: UUID) -> None:
        """Idempotent: marking twice is the same as marking once."""

    # ------------------------------------------------------------------
    # Locks
    # ------------------------------------------------------------------

    @abstractmethod
    def list_locks(self, application_id: UUID) -> List[Lock]:
        """All lock rows (active and expired) for an application."""

    def list_locks_for_applications(self, application_ids: Iterable[UUID]) -> Mapping[UUID, List[Lock]]:
        return {application_id: self.list_locks(application_id) for application_id in application_ids}

    @abstractmethod
    def apply_lock_request(self, request: LockRequest, *, expires_at: datetime, as_of: datetime) -> LockOutcome:
        """
        Atomically evaluate and apply a lock request.

        Paid requests are recorded per (application, payment reference); a
        payment that was already applied is a no-op even after a newer
        payment overwrote the dealer's lock row.

        Raises:
            AlreadyLockedByOther, DuplicateTemporaryLock: logical rejections (no state change)
            StoreConflict: the write lost a race and may be retried
        """

    @abstractmethod
    def release_lock(self, application_id: UUID, dealer_id: UUID, *, as_of: datetime) -> Lock:
        """
        Expire the dealer's lock at as_of (no hard delete).

        Releasing an already-expired own lock is a no-op.

        Raises:
            NotLockOwner: the dealer has no lock row on this application
        """

    # ------------------------------------------------------------------
    # Purchases
    # ------------------------------------------------------------------

    @abstractmethod
    def record_purchase(self, purchase: Purchase, *, as_of: datetime) -> PurchaseOutcome:
        """
        Atomically record a purchase unless one is already active for
        (dealer_id, application_id) or the payment reference was already
        applied to this application. On first creation, expire every active
        lock held by another dealer and ensure the purchaser holds
        an active lock (24-hour purchase_lock, no fee).
        """

    @abstractmethod
    def get_active_purchase(self, application_id: UUID, dealer_id: UUID) -> Optional[Purchase]:
        ...

    @abstractmethod
    def list_purchases(self, dealer_id: UUID) -> List[Purchase]:
        ...

    def purchased_application_ids(self, dealer_id: UUID) -> Set[UUID]:
        return {p.application_id for p in self.list_purchases(dealer_id) if p.is_active}

    @abstractmethod
    def record_download(self, application_id: UUID, dealer_id: UUID, *, at: datetime) -> Purchase:
        """Raises PurchaseNotFound when the dealer has no active purchase."""

    @abstractmethod
    def count_purchases(self, application_id: UUID) -> int:
        ...

    # ------------------------------------------------------------------
    # Pricing configuration
    # ------------------------------------------------------------------

    @abstractmethod
    def get_pricing_policy(self) -> Optional[PricingPolicy]:
        ...

    @abstractmethod
    def save_pricing_policy(self, policy: PricingPolicy) -> PricingPolicy:
        ...

    @abstractmethod
    def get_company_pricing(self, company_id: UUID) -> Optional[CompanyPricing]:
        ...

    @abstractmethod
    def save_company_pricing(self, pricing: CompanyPricing) -> CompanyPricing:
        ...

    @abstractmethod
    def list_lockout_periods(self, *, active_only: bool = True) -> List[LockoutPeriod]:
        ...

    # ------------------------------------------------------------------
    # Dealer preferences
    # ------------------------------------------------------------------

    @abstractmethod
    def hide_application(self, dealer_id: UUID, application_id: UUID) -> None:
        ...

    @abstractmethod
    def unhide_application(self, dealer_id: UUID, application_id: UUID) -> None:
        ...

    @abstractmethod
    def hidden_application_ids(self, dealer_id: UUID) -> Set[UUID]:
        ...


__all__ = [
    "LockOutcome",
    "PurchaseOutcome",
    "MarketplaceStore",
]
