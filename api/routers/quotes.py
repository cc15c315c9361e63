"""
Quotes API Endpoints.

Endpoints for calculating checkout quotes for purchases and paid locks.
"""

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_dealer, get_store
from api.models import QuoteRequest, QuoteResponse
from domain.dealer import Dealer
from repositories.store import MarketplaceStore
from services.pricing_service import PriceAction, calculate_checkout_quote

router = APIRouter()


@router.post(
    "/quotes",
    response_model=QuoteResponse,
    summary="Calculate Checkout Quote",
    description="Calculate pricing for selected applications. Quote is valid for 15 minutes."
)
def calculate_quote(
    request: QuoteRequest,
    dealer: Dealer = Depends(get_dealer),
    store: MarketplaceStore = Depends(get_store),
):
    """
    Calculate a checkout quote for the specified applications.

    Returns itemized pricing, subtotal, and quote expiration time.

    **How it works:**
    1. Validates that all requested applications exist and are listed
    2. Rejects applications another dealer has locked (409)
    3. Prices each application for the requesting dealer (purchase price,
       or the lock fee when `lock_type` is given)

    **Example request:**
    ```json
    {
      "application_ids": [
        "123e4567-e89b-12d3-a456-426614174000",
        "123e4567-e89b-12d3-a456-426614174001"
      ],
      "lock_type": "24hours"
    }
    ```
    """
    try:
        action = PriceAction.lock(request.lock_type) if request.lock_type else PriceAction.purchase()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    quote = calculate_checkout_quote(request.application_ids, dealer, action, store=store)
    return QuoteResponse.from_domain(quote)
