"""
Availability projector.

Builds the application list a dealer sees by folding together lock state,
the purchase ledger, pricing and the dealer's hide preferences. It performs
no writes.

Rules:
- Only listed applications (submitted, approved) are projected.
- Applications permanently locked by another dealer are never projected.
- Filters never reorder surviving rows; the input order (newest submission
  first, as returned by the store) is kept unless a sort is requested.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional, Set
from uuid import UUID

from domain.application import Application
from domain.dealer import Dealer
from domain.lock import LockInfo, active_lock_by_other, lock_info_for
from domain.pricing import PriceTier
from domain.time import utc_now
from repositories.store import MarketplaceStore
from services.pricing_service import PriceAction, PriceResolution, load_policy, resolve_price

logger = logging.getLogger(__name__)


class SortOrder(str, Enum):
    SUBMITTED_AT_DESC = "submitted_at_desc"
    SUBMITTED_AT_ASC = "submitted_at_asc"
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"


@dataclass(frozen=True, slots=True)
class HideFlags:
    """
    Client-requested filters.

    older_than_days: hide applications at least this many days old
    locked_by_other: hide applications another dealer currently locks
    purchased: hide applications the dealer already purchased
    respect_hidden: hide applications the dealer hid explicitly
    """

    older_than_days: Optional[int] = None
    locked_by_other: bool = False
    purchased: bool = False
    respect_hidden: bool = True


@dataclass(frozen=True, slots=True)
class ApplicationView:
    application: Application
    is_downloaded: bool
    lock_info: LockInfo
    price: PriceResolution
    is_hidden: bool = False

    @property
    def application_id(self) -> UUID:
        return self.application.application_id

    @property
    def is_age_discounted(self) -> bool:
        return self.price.tier is PriceTier.AGE_DISCOUNTED

    @property
    def is_lockable(self) -> bool:
        return not self.lock_info.is_locked_by_other

    @property
    def is_purchasable(self) -> bool:
        return not self.lock_info.is_locked_by_other and not self.is_downloaded


def project(
    applications: Iterable[Application],
    dealer: Dealer,
    hide_flags: HideFlags = HideFlags(),
    *,
    store: MarketplaceStore,
    as_of: Optional[datetime] = None,
    sort: Optional[SortOrder] = None,
) -> List[ApplicationView]:
    """
    Project applications into the dealer's view.

    Raises:
        ConfigurationError / InvalidPricingConfig: pricing is not usable
    """

    now = as_of or utc_now()
    candidates = [a for a in applications if a.status.is_listed]
    if not candidates:
        return []

    policy = load_policy(store)
    purchased_ids = store.purchased_application_ids(dealer.dealer_id)
    hidden_ids: Set[UUID] = store.hidden_application_ids(dealer.dealer_id) if hide_flags.respect_hidden else set()
    locks_by_app = store.list_locks_for_applications([a.application_id for a in candidates])

    views: List[ApplicationView] = []
    for application in candidates:
        locks = locks_by_app.get(application.application_id, [])
        is_downloaded = application.application_id in purchased_ids
        lock_info = lock_info_for(locks, dealer.dealer_id, now)

        if application.permanently_locked and not is_downloaded:
            blocking = active_lock_by_other(locks, dealer.dealer_id, now)
            if blocking is not None and blocking.kind.is_permanent:
                continue

        if application.application_id in hidden_ids:
            continue
        if hide_flags.older_than_days is not None and application.age_days(now) >= hide_flags.older_than_days:
            continue
        if hide_flags.locked_by_other and lock_info.is_locked_by_other:
            continue
        if hide_flags.purchased and is_downloaded:
            continue

        price = resolve_price(
            application,
            dealer,
            PriceAction.purchase(),
            store=store,
            as_of=now,
            policy=policy,
            locks=locks,
            purchased=is_downloaded,
        )
        views.append(
            ApplicationView(
                application=application,
                is_downloaded=is_downloaded,
                lock_info=lock_info,
                price=price,
            )
        )

    if sort is not None:
        views = _sorted(views, sort)
    return views


def _sorted(views: List[ApplicationView], order: SortOrder) -> List[ApplicationView]:
    # sorted() is stable, so ties keep their incoming order.
    if order is SortOrder.SUBMITTED_AT_DESC:
        return sorted(views, key=lambda v: v.application.submitted_at, reverse=True)
    if order is SortOrder.SUBMITTED_AT_ASC:
        return sorted(views, key=lambda v: v.application.submitted_at)
    if order is SortOrder.PRICE_ASC:
        return sorted(views, key=lambda v: v.price.amount)
    return sorted(views, key=lambda v: v.price.amount, reverse=True)


def list_available_applications(
    dealer: Dealer,
    hide_flags: HideFlags = HideFlags(),
    *,
    store: MarketplaceStore,
    as_of: Optional[datetime] = None,
    sort: Optional[SortOrder] = None,
) -> List[ApplicationView]:
    """Read every application from the store and project it for the dealer."""

    applications = store.list_applications()
    views = project(applications, dealer, hide_flags, store=store, as_of=as_of, sort=sort)
    logger.info("Projected %d of %d applications for dealer %s", len(views), len(applications), dealer.dealer_id)
    return views


def hide_application(application_id: UUID, dealer_id: UUID, *, store: MarketplaceStore) -> None:
    store.hide_application(dealer_id, application_id)
    logger.info("Dealer %s hid application %s", dealer_id, application_id)


def unhide_application(application_id: UUID, dealer_id: UUID, *, store: MarketplaceStore) -> None:
    store.unhide_application(dealer_id, application_id)
    logger.info("Dealer %s unhid application %s", dealer_id, application_id)


__all__ = [
    "SortOrder",
    "HideFlags",
    "ApplicationView",
    "project",
    "list_available_applications",
    "hide_application",
    "unhide_application",
]
