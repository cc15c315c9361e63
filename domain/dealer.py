"""
Domain: Dealer identity.

Dealers are supplied by the identity provider; the core trusts the identifier
as given and performs no authentication itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional
from uuid import UUID


class DealerRole(str, Enum):
    DEALER = "dealer"
    ADMIN = "admin"


@dataclass(frozen=True, slots=True)
class Dealer:
    """
    Requesting identity.

    company_id links the dealer to a company whose pricing override (if any)
    takes precedence over the global standard price.
    """

    dealer_id: UUID
    company_id: Optional[UUID] = None
    role: DealerRole = DealerRole.DEALER

    def is_admin(self) -> bool:
        return self.role == DealerRole.ADMIN
