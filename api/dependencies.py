"""
Request dependencies shared by the routers.

Identity comes from headers set by the upstream gateway; the API trusts them
as given:
- X-Dealer-Id: requesting dealer (required)
- X-Company-Id: dealer's company, used for company pricing overrides
- X-Dealer-Role: "dealer" (default) or "admin"
"""

from functools import lru_cache
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException

from config import get_settings
from domain.dealer import Dealer, DealerRole
from repositories.store import MarketplaceStore


@lru_cache(maxsize=1)
def get_store() -> MarketplaceStore:
    """One store per process, chosen by MARKETPLACE_STORE."""

    settings = get_settings()
    if settings.store_backend == "memory":
        from repositories.memory_store import InMemoryMarketplaceStore

        return InMemoryMarketplaceStore()

    from repositories.supabase_store import SupabaseMarketplaceStore

    return SupabaseMarketplaceStore()


def get_dealer(
    x_dealer_id: UUID = Header(..., alias="X-Dealer-Id"),
    x_company_id: Optional[UUID] = Header(None, alias="X-Company-Id"),
    x_dealer_role: str = Header(DealerRole.DEALER.value, alias="X-Dealer-Role"),
) -> Dealer:
    try:
        role = DealerRole(x_dealer_role.strip().lower())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown dealer role: {x_dealer_role}")
    return Dealer(dealer_id=x_dealer_id, company_id=x_company_id, role=role)


def require_admin(dealer: Dealer = Depends(get_dealer)) -> Dealer:
    if not dealer.is_admin():
        raise HTTPException(status_code=403, detail="Administrator role required")
    return dealer
