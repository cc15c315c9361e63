"""
Domain: Purchase records.

Contract excerpts relevant here:
- A Purchase is a permanent grant of access for one dealer to one application.
- At most one active Purchase exists per (dealer_id, application_id).
- Purchases are never hard-deleted; is_active is a soft flag that keeps
  invoice and audit history intact.

Idempotency enforcement lives in the stores, which check for an existing
active purchase inside the same atomic section that writes the new one.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from .time import require_utc_timestamp


@dataclass(frozen=True, slots=True)
class DiscountInfo:
    """Discount metadata carried from checkout onto the purchase row."""

    applied: bool = False
    kind: Optional[str] = None  # age, lock, coupon
    amount: Optional[Decimal] = None


NO_DISCOUNT = DiscountInfo()


@dataclass(frozen=True, slots=True)
class Purchase:
    """
    Immutable record of a dealer purchase.

    Captures:
    - Who bought it (dealer_id)
    - What was purchased (application_id)
    - How much was paid and under which payment reference
    - Download tracking for free re-downloads
    """

    purchase_id: UUID
    application_id: UUID
    dealer_id: UUID
    payment_ref: str
    amount: Decimal
    purchased_at: datetime
    discount: DiscountInfo = field(default=NO_DISCOUNT)
    is_active: bool = True
    download_count: int = 0
    downloaded_at: Optional[datetime] = None
    checkout_session_id: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("purchased_at", self.purchased_at)
        if self.downloaded_at is not None:
            require_utc_timestamp("downloaded_at", self.downloaded_at)

    def downloaded(self, at: datetime) -> "Purchase":
        """Return this purchase with one more recorded download."""

        require_utc_timestamp("at", at)
        return replace(self, download_count=self.download_count + 1, downloaded_at=at)
