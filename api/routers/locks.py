"""
Locks API Endpoints.

Endpoints for reading, taking and releasing application locks.

Only the free temporary lock can be taken directly. Paid lock kinds are
quoted through /quotes and applied by the payment webhook once the payment
is confirmed, so no paid lock exists before payment.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_dealer, get_store
from api.models import LockInfoResponse, LockRequestBody, LockResponse
from domain.dealer import Dealer
from domain.errors import ApplicationNotFound
from domain.lock import LockKind
from repositories.store import MarketplaceStore
from services.lock_service import check_lock, lock, unlock
from services.pricing_service import PriceAction, resolve_price

router = APIRouter()


@router.get(
    "/applications/{application_id}/lock",
    response_model=LockInfoResponse,
    summary="Check Lock",
)
def get_lock(
    application_id: UUID,
    dealer: Dealer = Depends(get_dealer),
    store: MarketplaceStore = Depends(get_store),
):
    """Lock state of the application as seen by the requesting dealer."""
    if store.get_application(application_id) is None:
        raise ApplicationNotFound(application_id)
    return LockInfoResponse.from_domain(check_lock(application_id, dealer.dealer_id, store=store))


@router.post(
    "/applications/{application_id}/lock",
    response_model=LockResponse,
    summary="Lock Application",
    description="Take a lock on an application. Fails with 409 if another dealer holds an active lock."
)
def lock_application(
    application_id: UUID,
    request: LockRequestBody,
    dealer: Dealer = Depends(get_dealer),
    store: MarketplaceStore = Depends(get_store),
):
    """
    Lock an application for the requesting dealer.

    **Rules:**
    - Another dealer's active lock rejects the request (409), whatever the kind
    - A second temporary lock is rejected (409) unless `extend` is set
    - Locking an application you already hold permanently changes nothing

    **Example request:**
    ```json
    {
      "lock_type": "temporary",
      "extend": false
    }
    ```
    """
    if request.lock_type is LockKind.PURCHASE_LOCK:
        raise HTTPException(status_code=400, detail="purchase_lock cannot be requested")

    application = store.get_application(application_id)
    if application is None or not application.status.is_listed:
        raise ApplicationNotFound(application_id)

    if request.lock_type is not LockKind.TEMPORARY:
        fee = resolve_price(application, dealer, PriceAction.lock(request.lock_type), store=store)
        if fee.amount > 0:
            raise HTTPException(
                status_code=402,
                detail=f"{request.lock_type.value} lock requires payment of {fee.amount}. Request a quote and check out."
            )

    result = lock(application_id, dealer.dealer_id, request.lock_type, store=store, extend=request.extend)

    message = "Lock acquired." if result.created else "Application is already locked by you."
    return LockResponse.from_domain(result.lock, created=result.created, message=message)


@router.delete(
    "/applications/{application_id}/lock",
    response_model=LockResponse,
    summary="Unlock Application",
)
def unlock_application(
    application_id: UUID,
    dealer: Dealer = Depends(get_dealer),
    store: MarketplaceStore = Depends(get_store),
):
    """Release the dealer's own lock. Releasing twice is a no-op."""
    released = unlock(application_id, dealer.dealer_id, store=store)
    return LockResponse.from_domain(released, created=False, message="Lock released.")
