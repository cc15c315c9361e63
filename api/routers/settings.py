"""
Settings API Endpoints.

Administrator endpoints for the global pricing policy, per-company pricing
overrides, application status and the purchasable lockout periods.
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_dealer, get_store, require_admin
from api.models import (
    ApplicationStatusBody,
    ApplicationStatusResponse,
    CompanyPricingBody,
    CompanyPricingResponse,
    LockoutPeriodResponse,
    PricingPolicyBody,
    PricingPolicyResponse,
)
from domain.dealer import Dealer
from domain.errors import ConfigurationError
from repositories.store import MarketplaceStore
from services import settings_service
from services.lock_service import list_lockout_periods

router = APIRouter()


@router.get(
    "/settings/pricing",
    response_model=PricingPolicyResponse,
    summary="Get Pricing Policy",
)
def get_pricing(
    _admin: Dealer = Depends(require_admin),
    store: MarketplaceStore = Depends(get_store),
):
    policy = settings_service.get_pricing_policy(store=store)
    if policy is None:
        raise ConfigurationError("No pricing policy is configured")
    return PricingPolicyResponse.from_domain(policy)


@router.put(
    "/settings/pricing",
    response_model=PricingPolicyResponse,
    summary="Update Pricing Policy",
    description="Partial update. Rejected with 422 if the resulting policy is invalid; the previous policy stays in effect."
)
def update_pricing(
    body: PricingPolicyBody,
    _admin: Dealer = Depends(require_admin),
    store: MarketplaceStore = Depends(get_store),
):
    """
    Update the global pricing policy.

    **Validation:**
    - Standard and discounted prices must be positive
    - Discounted price must be less than the standard price
    - Age discount percentage must be in (0, 100]

    **Example request:**
    ```json
    {
      "standard_price": "10.99",
      "discounted_price": "5.99"
    }
    ```
    """
    changes = settings_service.PricingPolicyUpdate(
        standard_price=body.standard_price,
        discounted_price=body.discounted_price,
        age_discount_enabled=body.age_discount_enabled,
        age_discount_threshold_days=body.age_discount_threshold_days,
        age_discount_percentage=body.age_discount_percentage,
        temporary_lock_minutes=body.temporary_lock_minutes,
        lock_fees=body.lock_fees,
    )
    return PricingPolicyResponse.from_domain(settings_service.update_pricing_policy(changes, store=store))


@router.get(
    "/settings/companies/{company_id}/pricing",
    response_model=CompanyPricingResponse,
    summary="Get Company Pricing",
)
def get_company_pricing(
    company_id: UUID,
    _admin: Dealer = Depends(require_admin),
    store: MarketplaceStore = Depends(get_store),
):
    pricing = settings_service.get_company_pricing(company_id, store=store)
    if pricing is None:
        raise HTTPException(status_code=404, detail=f"No pricing override for company {company_id}")
    return CompanyPricingResponse.from_domain(pricing)


@router.put(
    "/settings/companies/{company_id}/pricing",
    response_model=CompanyPricingResponse,
    summary="Set Company Pricing",
)
def update_company_pricing(
    company_id: UUID,
    body: CompanyPricingBody,
    _admin: Dealer = Depends(require_admin),
    store: MarketplaceStore = Depends(get_store),
):
    saved = settings_service.update_company_pricing(
        company_id,
        body.standard_price,
        body.discounted_price,
        store=store,
    )
    return CompanyPricingResponse.from_domain(saved)


@router.get(
    "/settings/lockout-periods",
    response_model=List[LockoutPeriodResponse],
    summary="List Lockout Periods",
    description="Active purchasable lock durations and their fees, shortest first."
)
def get_lockout_periods(
    _dealer: Dealer = Depends(get_dealer),
    store: MarketplaceStore = Depends(get_store),
):
    return [LockoutPeriodResponse.from_domain(p) for p in list_lockout_periods(store=store)]


@router.put(
    "/settings/applications/{application_id}/status",
    response_model=ApplicationStatusResponse,
    summary="Change Application Status",
    description="Approve or reject an application. Drafts and rejected applications are not listed to dealers."
)
def change_application_status(
    application_id: UUID,
    body: ApplicationStatusBody,
    _admin: Dealer = Depends(require_admin),
    store: MarketplaceStore = Depends(get_store),
):
    """
    Change an application's status. Existing locks and purchases are kept.

    **Example request:**
    ```json
    {
      "status": "approved"
    }
    ```
    """
    updated = settings_service.change_application_status(application_id, body.status, store=store)
    return ApplicationStatusResponse.from_domain(updated)
