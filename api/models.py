"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from domain.application import Application, ApplicationStatus
from domain.lock import Lock, LockInfo, LockKind
from domain.pricing import CompanyPricing, LockoutPeriod, PricingPolicy
from domain.purchase import Purchase
from services.availability_service import ApplicationView, SortOrder
from services.pricing_service import CheckoutQuote


# ============================================================================
# Application Models
# ============================================================================

class LockInfoResponse(BaseModel):
    """Lock state as seen by the requesting dealer."""
    is_locked: bool
    is_own_lock: bool
    expires_at: Optional[datetime] = None
    lock_type: Optional[LockKind] = None
    locked_by: Optional[UUID] = None

    @staticmethod
    def from_domain(info: LockInfo) -> "LockInfoResponse":
        return LockInfoResponse(
            is_locked=info.is_locked,
            is_own_lock=info.is_own_lock,
            expires_at=info.expires_at,
            lock_type=info.lock_type,
            # Other dealers' identities are not disclosed.
            locked_by=info.locked_by if info.is_own_lock else None,
        )


class ApplicationItemResponse(BaseModel):
    """Single application in the dealer's listing."""
    application_id: UUID
    status: str
    submitted_at: datetime
    age_days: int
    price: Decimal
    price_tier: str
    is_downloaded: bool
    is_age_discounted: bool
    is_lockable: bool
    is_purchasable: bool
    lock: LockInfoResponse

    class Config:
        json_schema_extra = {
            "example": {
                "application_id": "123e4567-e89b-12d3-a456-426614174000",
                "status": "approved",
                "submitted_at": "2025-01-01T12:00:00Z",
                "age_days": 12,
                "price": "10.99",
                "price_tier": "standard",
                "is_downloaded": False,
                "is_age_discounted": False,
                "is_lockable": True,
                "is_purchasable": True,
                "lock": {"is_locked": False, "is_own_lock": False}
            }
        }

    @staticmethod
    def from_view(view: ApplicationView, as_of: datetime) -> "ApplicationItemResponse":
        return ApplicationItemResponse(
            application_id=view.application_id,
            status=view.application.status.value,
            submitted_at=view.application.submitted_at,
            age_days=view.application.age_days(as_of),
            price=view.price.amount,
            price_tier=view.price.tier.value,
            is_downloaded=view.is_downloaded,
            is_age_discounted=view.is_age_discounted,
            is_lockable=view.is_lockable,
            is_purchasable=view.is_purchasable,
            lock=LockInfoResponse.from_domain(view.lock_info),
        )


class ApplicationListResponse(BaseModel):
    """Response for application listing."""
    items: List[ApplicationItemResponse]
    total_count: int
    filters_applied: dict
    sort: Optional[SortOrder] = None


# ============================================================================
# Lock Models
# ============================================================================

class LockRequestBody(BaseModel):
    """Request to lock an application."""
    lock_type: LockKind = Field(
        LockKind.TEMPORARY,
        description="temporary, 24hours, 1week or permanent"
    )
    extend: bool = Field(
        False,
        description="Replace the dealer's current non-permanent lock instead of rejecting"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "lock_type": "temporary",
                "extend": False
            }
        }


class LockResponse(BaseModel):
    """Lock row after a lock or unlock call."""
    lock_id: UUID
    application_id: UUID
    lock_type: LockKind
    locked_at: datetime
    expires_at: datetime
    fee_paid: Decimal
    created: bool
    message: str

    @staticmethod
    def from_domain(lock: Lock, *, created: bool, message: str) -> "LockResponse":
        return LockResponse(
            lock_id=lock.lock_id,
            application_id=lock.application_id,
            lock_type=lock.kind,
            locked_at=lock.locked_at,
            expires_at=lock.expires_at,
            fee_paid=lock.fee_paid,
            created=created,
            message=message,
        )


# ============================================================================
# Quote Models
# ============================================================================

class QuoteRequest(BaseModel):
    """Request to calculate a checkout quote."""
    application_ids: List[UUID] = Field(
        ...,
        min_length=1,
        description="List of application IDs to quote"
    )
    lock_type: Optional[LockKind] = Field(
        None,
        description="Quote a lock of this kind instead of a purchase"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "application_ids": [
                    "123e4567-e89b-12d3-a456-426614174000",
                    "123e4567-e89b-12d3-a456-426614174001"
                ]
            }
        }


class QuoteLineItem(BaseModel):
    """Single line item in a quote."""
    application_id: UUID
    unit_price: Decimal
    price_tier: str
    reason: str


class QuoteResponse(BaseModel):
    """Response with checkout quote details."""
    action: str
    lock_type: Optional[LockKind] = None
    items: List[QuoteLineItem]
    subtotal: Decimal
    currency: str
    total_items: int
    created_at: datetime
    expires_at: datetime

    class Config:
        json_schema_extra = {
            "example": {
                "action": "purchase",
                "items": [],
                "subtotal": "21.98",
                "currency": "USD",
                "total_items": 2,
                "created_at": "2025-01-01T12:00:00Z",
                "expires_at": "2025-01-01T12:15:00Z"
            }
        }

    @staticmethod
    def from_domain(quote: CheckoutQuote) -> "QuoteResponse":
        return QuoteResponse(
            action=quote.action.name,
            lock_type=quote.action.lock_kind,
            items=[
                QuoteLineItem(
                    application_id=line.application_id,
                    unit_price=line.price.amount,
                    price_tier=line.price.tier.value,
                    reason=line.price.reason,
                )
                for line in quote.items
            ],
            subtotal=quote.subtotal,
            currency=quote.currency,
            total_items=quote.total_items,
            created_at=quote.created_at,
            expires_at=quote.expires_at,
        )


# ============================================================================
# Purchase Models
# ============================================================================

class PurchaseItemResponse(BaseModel):
    """Single purchase in the dealer's history."""
    purchase_id: UUID
    application_id: UUID
    amount: Decimal
    purchased_at: datetime
    discount_applied: bool
    discount_type: Optional[str] = None
    download_count: int
    downloaded_at: Optional[datetime] = None

    @staticmethod
    def from_domain(purchase: Purchase) -> "PurchaseItemResponse":
        return PurchaseItemResponse(
            purchase_id=purchase.purchase_id,
            application_id=purchase.application_id,
            amount=purchase.amount,
            purchased_at=purchase.purchased_at,
            discount_applied=purchase.discount.applied,
            discount_type=purchase.discount.kind,
            download_count=purchase.download_count,
            downloaded_at=purchase.downloaded_at,
        )


class PurchaseListResponse(BaseModel):
    items: List[PurchaseItemResponse]
    total_count: int


# ============================================================================
# Settings Models
# ============================================================================

class PricingPolicyBody(BaseModel):
    """Partial pricing update; omitted fields keep their current value."""
    standard_price: Optional[Decimal] = None
    discounted_price: Optional[Decimal] = None
    age_discount_enabled: Optional[bool] = None
    age_discount_threshold_days: Optional[int] = None
    age_discount_percentage: Optional[Decimal] = None
    temporary_lock_minutes: Optional[int] = None
    lock_fees: dict[LockKind, Decimal] = Field(default_factory=dict)

    class Config:
        json_schema_extra = {
            "example": {
                "standard_price": "10.99",
                "discounted_price": "5.99",
                "age_discount_enabled": True,
                "age_discount_threshold_days": 30,
                "age_discount_percentage": "50",
                "lock_fees": {"24hours": "2.00", "1week": "8.00", "permanent": "25.00"}
            }
        }


class PricingPolicyResponse(BaseModel):
    standard_price: Decimal
    discounted_price: Decimal
    age_discount_enabled: bool
    age_discount_threshold_days: int
    age_discount_percentage: Decimal
    temporary_lock_minutes: int
    lock_fees: dict[LockKind, Decimal]

    @staticmethod
    def from_domain(policy: PricingPolicy) -> "PricingPolicyResponse":
        return PricingPolicyResponse(
            standard_price=policy.standard_price,
            discounted_price=policy.discounted_price,
            age_discount_enabled=policy.age_discount.enabled,
            age_discount_threshold_days=policy.age_discount.threshold_days,
            age_discount_percentage=policy.age_discount.percentage,
            temporary_lock_minutes=policy.temporary_lock_minutes,
            lock_fees=dict(policy.lock_fees),
        )


class CompanyPricingBody(BaseModel):
    standard_price: Decimal
    discounted_price: Decimal


class CompanyPricingResponse(BaseModel):
    company_id: UUID
    standard_price: Decimal
    discounted_price: Decimal

    @staticmethod
    def from_domain(pricing: CompanyPricing) -> "CompanyPricingResponse":
        return CompanyPricingResponse(
            company_id=pricing.company_id,
            standard_price=pricing.standard_price,
            discounted_price=pricing.discounted_price,
        )


class ApplicationStatusBody(BaseModel):
    status: ApplicationStatus = Field(..., description="New status: draft, submitted, approved or rejected")


class ApplicationStatusResponse(BaseModel):
    application_id: UUID
    status: ApplicationStatus
    is_listed: bool

    @staticmethod
    def from_domain(application: Application) -> "ApplicationStatusResponse":
        return ApplicationStatusResponse(
            application_id=application.application_id,
            status=application.status,
            is_listed=application.status.is_listed,
        )


class LockoutPeriodResponse(BaseModel):
    period_id: int
    name: str
    hours: int
    fee: Decimal

    @staticmethod
    def from_domain(period: LockoutPeriod) -> "LockoutPeriodResponse":
        return LockoutPeriodResponse(
            period_id=period.period_id,
            name=period.name,
            hours=period.hours,
            fee=period.fee,
        )


# ============================================================================
# Webhook Models
# ============================================================================

class WebhookResponse(BaseModel):
    received: bool
    payment_ref: Optional[str] = None
    created: int = 0
    already_satisfied: int = 0
    rejected: int = 0


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    status_code: int

    class Config:
        json_schema_extra = {
            "example": {
                "error": "AlreadyLockedByOther",
                "detail": "Application 123e4567-e89b-12d3-a456-426614174000 is locked by another dealer.",
                "status_code": 409
            }
        }
