"""
Applications API Endpoints.

Endpoints for listing the applications a dealer can see and for hiding
applications from the dealer's own listing.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response

from api.dependencies import get_dealer, get_store
from api.models import ApplicationItemResponse, ApplicationListResponse
from domain.dealer import Dealer
from domain.time import utc_now
from repositories.store import MarketplaceStore
from services.availability_service import (
    HideFlags,
    SortOrder,
    hide_application,
    list_available_applications,
    unhide_application,
)

router = APIRouter()


@router.get(
    "/applications",
    response_model=ApplicationListResponse,
    summary="List Applications",
    description="List submitted and approved applications with lock state and the dealer's price."
)
def list_applications(
    hide_older_than_days: Optional[int] = Query(None, ge=0, description="Hide applications at least this many days old"),
    hide_locked: bool = Query(False, description="Hide applications locked by another dealer"),
    hide_purchased: bool = Query(False, description="Hide applications already purchased"),
    show_hidden: bool = Query(False, description="Include applications the dealer hid"),
    sort: Optional[SortOrder] = Query(None, description="Sort order; newest first when omitted"),
    dealer: Dealer = Depends(get_dealer),
    store: MarketplaceStore = Depends(get_store),
):
    """
    List applications for the requesting dealer.

    Each row carries the dealer's price (free for purchased applications,
    discounted after another dealer's lock lapsed, age discounted when
    configured) and the lock state as the dealer sees it.

    Applications permanently locked by another dealer are never listed.

    **Example usage:**
    ```
    GET /api/v1/applications?hide_locked=true&sort=price_asc
    ```
    """
    now = utc_now()
    flags = HideFlags(
        older_than_days=hide_older_than_days,
        locked_by_other=hide_locked,
        purchased=hide_purchased,
        respect_hidden=not show_hidden,
    )
    views = list_available_applications(dealer, flags, store=store, as_of=now, sort=sort)

    filters_applied = {}
    if hide_older_than_days is not None:
        filters_applied["hide_older_than_days"] = hide_older_than_days
    if hide_locked:
        filters_applied["hide_locked"] = True
    if hide_purchased:
        filters_applied["hide_purchased"] = True
    if show_hidden:
        filters_applied["show_hidden"] = True

    return ApplicationListResponse(
        items=[ApplicationItemResponse.from_view(view, now) for view in views],
        total_count=len(views),
        filters_applied=filters_applied,
        sort=sort,
    )


@router.post(
    "/applications/{application_id}/hide",
    status_code=204,
    summary="Hide Application",
)
def hide(
    application_id: UUID,
    dealer: Dealer = Depends(get_dealer),
    store: MarketplaceStore = Depends(get_store),
):
    """Hide an application from the dealer's listing (other dealers are unaffected)."""
    hide_application(application_id, dealer.dealer_id, store=store)
    return Response(status_code=204)


@router.delete(
    "/applications/{application_id}/hide",
    status_code=204,
    summary="Unhide Application",
)
def unhide(
    application_id: UUID,
    dealer: Dealer = Depends(get_dealer),
    store: MarketplaceStore = Depends(get_store),
):
    unhide_application(application_id, dealer.dealer_id, store=store)
    return Response(status_code=204)
