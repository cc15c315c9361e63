"""
Domain errors for the lock and pricing protocol.

Logical rejections (a lock held by someone else, a duplicate temporary lock,
an invalid pricing configuration) are terminal and surfaced to the caller.
StoreConflict is the only retryable kind: it signals a lost race inside the
store, not a business rule violation.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID


class MarketplaceError(Exception):
    """Base exception for the marketplace core."""


class AlreadyLockedByOther(MarketplaceError):
    """Another dealer holds an active lock on the application."""

    def __init__(self, application_id: UUID, expires_at: Optional[datetime] = None):
        self.application_id = application_id
        self.expires_at = expires_at
        if expires_at is not None:
            message = (
                f"Application {application_id} is locked by another dealer. "
                f"Try again after {expires_at.isoformat()}."
            )
        else:
            message = f"Application {application_id} is locked by another dealer."
        super().__init__(message)


class DuplicateTemporaryLock(MarketplaceError):
    """The dealer already holds a temporary lock; only an upgrade to permanent is allowed."""

    def __init__(self, application_id: UUID):
        self.application_id = application_id
        super().__init__(
            f"Application {application_id} already has a temporary lock. "
            "You can only upgrade to a permanent lock."
        )


class NotLockOwner(MarketplaceError):
    """Only the holder of a lock may release it."""

    def __init__(self, application_id: UUID, dealer_id: UUID):
        self.application_id = application_id
        self.dealer_id = dealer_id
        super().__init__(f"Dealer {dealer_id} does not hold a lock on application {application_id}")


class ConfigurationError(MarketplaceError):
    """Pricing has not been configured (no standard price, missing lock fee)."""


class InvalidPricingConfig(ConfigurationError):
    """Pricing values violate the configuration rules."""


class PaymentNotConfirmed(MarketplaceError):
    """A checkout event arrived without a confirmed ('paid') payment."""


class StoreConflict(MarketplaceError):
    """The store lost a race (serialization failure); the operation may be retried."""


class ApplicationNotFound(MarketplaceError):
    def __init__(self, application_id: UUID):
        self.application_id = application_id
        super().__init__(f"Application not found: {application_id}")


class PurchaseNotFound(MarketplaceError):
    def __init__(self, application_id: UUID, dealer_id: UUID):
        self.application_id = application_id
        self.dealer_id = dealer_id
        super().__init__(f"Dealer {dealer_id} has not purchased application {application_id}")


__all__ = [
    "MarketplaceError",
    "AlreadyLockedByOther",
    "DuplicateTemporaryLock",
    "NotLockOwner",
    "ConfigurationError",
    "InvalidPricingConfig",
    "PaymentNotConfirmed",
    "StoreConflict",
    "ApplicationNotFound",
    "PurchaseNotFound",
]
