"""
In-memory marketplace store.

Thread-safe implementation of MarketplaceStore used by the test suite and by
local development (MARKETPLACE_STORE=memory). A single re-entrant lock guards
every operation, so each check-then-write method is atomic with respect to
concurrent callers, the same guarantee the PostgreSQL functions provide for
the Supabase store.

State is scoped to the store instance; nothing is module-global.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple
from uuid import UUID, uuid4

from domain.application import Application, ApplicationStatus
from domain.errors import ApplicationNotFound, NotLockOwner, PurchaseNotFound
from domain.lock import (
    PURCHASE_LOCK_DURATION,
    Lock,
    LockAction,
    LockKind,
    LockRequest,
    evaluate_lock_request,
)
from domain.pricing import CompanyPricing, LockoutPeriod, PricingPolicy, lock_fees_from_periods
from domain.purchase import Purchase
from domain.time import require_utc_timestamp
from repositories.store import LockOutcome, MarketplaceStore, PurchaseOutcome

_LockKey = Tuple[UUID, UUID]  # (application_id, dealer_id)


class InMemoryMarketplaceStore(MarketplaceStore):
    def __init__(
        self,
        applications: Iterable[Application] = (),
        *,
        policy: Optional[PricingPolicy] = None,
        lockout_periods: Iterable[LockoutPeriod] = (),
    ) -> None:
        self._mutex = threading.RLock()
        self._applications: Dict[UUID, Application] = {a.application_id: a for a in applications}
        self._locks: Dict[_LockKey, Lock] = {}
        self._purchases: List[Purchase] = []
        self._policy: Optional[PricingPolicy] = None
        self._company_pricing: Dict[UUID, CompanyPricing] = {}
        self._lockout_periods: Dict[int, LockoutPeriod] = {p.period_id: p for p in lockout_periods}
        self._hidden: Set[_LockKey] = set()
        # (application_id, payment_ref) for every paid lock ever applied.
        self._lock_payments: Set[Tuple[UUID, str]] = set()
        if policy is not None:
            self.save_pricing_policy(policy)

    # ------------------------------------------------------------------
    # Applications
    # ------------------------------------------------------------------

    def add_application(self, application: Application) -> Application:
        with self._mutex:
            self._applications[application.application_id] = application
            return application

    def get_application(self, application_id: UUID) -> Optional[Application]:
        with self._mutex:
            return self._applications.get(application_id)

    def list_applications(self) -> List[Application]:
        with self._mutex:
            return sorted(self._applications.values(), key=lambda a: a.submitted_at, reverse=True)

    def set_application_status(self, application_id: UUID, status: ApplicationStatus) -> Application:
        with self._mutex:
            application = self._require_application(application_id)
            updated = replace(application, status=status)
            self._applications[application_id] = updated
            return updated

    def mark_permanently_locked(self, application_id: UUID) -> None:
        with self._mutex:
            application = self._require_application(application_id)
            if not application.permanently_locked:
                self._applications[application_id] = replace(application, permanently_locked=True)

    def _require_application(self, application_id: UUID) -> Application:
        application = self._applications.get(application_id)
        if application is None:
            raise ApplicationNotFound(application_id)
        return application

    # ------------------------------------------------------------------
    # Locks
    # ------------------------------------------------------------------

    def list_locks(self, application_id: UUID) -> List[Lock]:
        with self._mutex:
            return [lock for (app_id, _), lock in self._locks.items() if app_id == application_id]

    def apply_lock_request(self, request: LockRequest, *, expires_at: datetime, as_of: datetime) -> LockOutcome:
        require_utc_timestamp("expires_at", expires_at)
        with self._mutex:
            self._require_application(request.application_id)
            applied = {ref for app_id, ref in self._lock_payments if app_id == request.application_id}
            decision = evaluate_lock_request(self.list_locks(request.application_id), request, as_of, applied)
            if decision.action is LockAction.NOOP and decision.current is not None:
                return LockOutcome(lock=decision.current, action=decision.action)

            lock = Lock(
                lock_id=decision.current.lock_id if decision.current else uuid4(),
                application_id=request.application_id,
                dealer_id=request.dealer_id,
                kind=request.kind,
                locked_at=as_of,
                expires_at=expires_at,
                payment_ref=request.payment_ref,
                fee_paid=request.fee,
            )
            self._locks[(request.application_id, request.dealer_id)] = lock
            if request.payment_ref is not None:
                self._lock_payments.add((request.application_id, request.payment_ref))
            return LockOutcome(lock=lock, action=decision.action)

    def release_lock(self, application_id: UUID, dealer_id: UUID, *, as_of: datetime) -> Lock:
        with self._mutex:
            key = (application_id, dealer_id)
            lock = self._locks.get(key)
            if lock is None:
                raise NotLockOwner(application_id, dealer_id)
            released = lock.expired(as_of)
            self._locks[key] = released
            return released

    # ------------------------------------------------------------------
    # Purchases
    # ------------------------------------------------------------------

    def record_purchase(self, purchase: Purchase, *, as_of: datetime) -> PurchaseOutcome:
        require_utc_timestamp("as_of", as_of)
        with self._mutex:
            self._require_application(purchase.application_id)

            for existing in self._purchases:
                if existing.application_id != purchase.application_id:
                    continue
                same_dealer = existing.dealer_id == purchase.dealer_id and existing.is_active
                if same_dealer or existing.payment_ref == purchase.payment_ref:
                    return PurchaseOutcome(purchase=existing, created=False)

            self._purchases.append(purchase)

            expired = 0
            for key, lock in list(self._locks.items()):
                app_id, holder = key
                if app_id != purchase.application_id or holder == purchase.dealer_id:
                    continue
                if lock.is_active(as_of):
                    self._locks[key] = lock.expired(as_of)
                    expired += 1

            own_key = (purchase.application_id, purchase.dealer_id)
            own = self._locks.get(own_key)
            purchase_lock: Optional[Lock] = None
            if own is None or not own.is_active(as_of):
                purchase_lock = Lock(
                    lock_id=own.lock_id if own else uuid4(),
                    application_id=purchase.application_id,
                    dealer_id=purchase.dealer_id,
                    kind=LockKind.PURCHASE_LOCK,
                    locked_at=as_of,
                    expires_at=as_of + PURCHASE_LOCK_DURATION,
                    payment_ref=purchase.payment_ref,
                )
                self._locks[own_key] = purchase_lock

            return PurchaseOutcome(
                purchase=purchase,
                created=True,
                expired_lock_count=expired,
                purchase_lock=purchase_lock,
            )

    def get_active_purchase(self, application_id: UUID, dealer_id: UUID) -> Optional[Purchase]:
        with self._mutex:
            for purchase in self._purchases:
                if (
                    purchase.application_id == application_id
                    and purchase.dealer_id == dealer_id
                    and purchase.is_active
                ):
                    return purchase
            return None

    def list_purchases(self, dealer_id: UUID) -> List[Purchase]:
        with self._mutex:
            rows = [p for p in self._purchases if p.dealer_id == dealer_id]
            return sorted(rows, key=lambda p: p.purchased_at, reverse=True)

    def record_download(self, application_id: UUID, dealer_id: UUID, *, at: datetime) -> Purchase:
        with self._mutex:
            for index, purchase in enumerate(self._purchases):
                if (
                    purchase.application_id == application_id
                    and purchase.dealer_id == dealer_id
                    and purchase.is_active
                ):
                    updated = purchase.downloaded(at)
                    self._purchases[index] = updated
                    return updated
            raise PurchaseNotFound(application_id, dealer_id)

    def count_purchases(self, application_id: UUID) -> int:
        with self._mutex:
            return sum(1 for p in self._purchases if p.application_id == application_id and p.is_active)

    # ------------------------------------------------------------------
    # Pricing configuration
    # ------------------------------------------------------------------

    def get_pricing_policy(self) -> Optional[PricingPolicy]:
        with self._mutex:
            if self._policy is None:
                return None
            fees = lock_fees_from_periods(list(self._lockout_periods.values()))
            return replace(self._policy, lock_fees=fees)

    def save_pricing_policy(self, policy: PricingPolicy) -> PricingPolicy:
        with self._mutex:
            # Lock fees live on the lockout periods, as they do in the database.
            by_name = {p.name: p for p in self._lockout_periods.values()}
            next_id = max(self._lockout_periods, default=0) + 1
            for kind, fee in policy.lock_fees.items():
                period = by_name.get(kind.value)
                if period is None:
                    hours = int(kind.duration(policy.temporary_lock_minutes).total_seconds() // 3600)
                    period = LockoutPeriod(period_id=next_id, name=kind.value, hours=hours, fee=fee)
                    next_id += 1
                else:
                    period = replace(period, fee=fee, is_active=True)
                self._lockout_periods[period.period_id] = period
            self._policy = replace(policy, lock_fees={})
            return self.get_pricing_policy()  # type: ignore[return-value]

    def get_company_pricing(self, company_id: UUID) -> Optional[CompanyPricing]:
        with self._mutex:
            return self._company_pricing.get(company_id)

    def save_company_pricing(self, pricing: CompanyPricing) -> CompanyPricing:
        with self._mutex:
            self._company_pricing[pricing.company_id] = pricing
            return pricing

    def list_lockout_periods(self, *, active_only: bool = True) -> List[LockoutPeriod]:
        with self._mutex:
            periods = [p for p in self._lockout_periods.values() if p.is_active or not active_only]
            return sorted(periods, key=lambda p: p.hours)

    # ------------------------------------------------------------------
    # Dealer preferences
    # ------------------------------------------------------------------

    def hide_application(self, dealer_id: UUID, application_id: UUID) -> None:
        with self._mutex:
            self._require_application(application_id)
            self._hidden.add((application_id, dealer_id))

    def unhide_application(self, dealer_id: UUID, application_id: UUID) -> None:
        with self._mutex:
            self._hidden.discard((application_id, dealer_id))

    def hidden_application_ids(self, dealer_id: UUID) -> Set[UUID]:
        with self._mutex:
            return {app_id for app_id, holder in self._hidden if holder == dealer_id}


__all__ = ["InMemoryMarketplaceStore"]
