"""
Purchases API Endpoints.

Endpoints for the dealer's purchase history and for recording downloads of
purchased applications. Purchases themselves are created by the payment
webhook once the provider confirms the payment.
"""

from uuid import UUID

from fastapi import APIRouter, Depends

from api.dependencies import get_dealer, get_store
from api.models import PurchaseItemResponse, PurchaseListResponse
from domain.dealer import Dealer
from repositories.store import MarketplaceStore
from services.purchase_service import list_dealer_purchases, record_download

router = APIRouter()


@router.get(
    "/purchases",
    response_model=PurchaseListResponse,
    summary="List Purchases",
    description="The requesting dealer's purchases, newest first."
)
def list_purchases(
    dealer: Dealer = Depends(get_dealer),
    store: MarketplaceStore = Depends(get_store),
):
    purchases = list_dealer_purchases(dealer.dealer_id, store=store)
    return PurchaseListResponse(
        items=[PurchaseItemResponse.from_domain(p) for p in purchases],
        total_count=len(purchases),
    )


@router.post(
    "/purchases/{application_id}/download",
    response_model=PurchaseItemResponse,
    summary="Record Download",
    description="Record a free re-download of a purchased application."
)
def download_purchase(
    application_id: UUID,
    dealer: Dealer = Depends(get_dealer),
    store: MarketplaceStore = Depends(get_store),
):
    """
    Record a download of a purchased application.

    **Authorization:**
    Only a dealer holding an active purchase of the application can download
    it; anyone else gets 404.
    """
    purchase = record_download(application_id, dealer.dealer_id, store=store)
    return PurchaseItemResponse.from_domain(purchase)
