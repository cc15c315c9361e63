"""
Seed the default pricing configuration.

Creates the purchasable lockout periods and the global pricing policy used
by the dealer portal demo:
- Standard price: 10.99
- Discounted price (after another dealer's lock lapses): 5.99
- Lock fees: 24hours 2.00, 1week 8.00, permanent 25.00

Safe to run repeatedly; existing rows are updated in place.
"""

import sys
from pathlib import Path

# Add parent directory to path so we can import from repositories
sys.path.insert(0, str(Path(__file__).parent.parent))

from decimal import Decimal

from domain.errors import InvalidPricingConfig
from domain.lock import LockKind
from repositories.client import get_supabase
from repositories.supabase_store import SupabaseMarketplaceStore
from services.settings_service import PricingPolicyUpdate, update_pricing_policy

DEFAULT_PERIODS = [
    (LockKind.HOURS_24, 24, Decimal("2.00")),
    (LockKind.WEEK_1, 168, Decimal("8.00")),
    (LockKind.PERMANENT, 87600, Decimal("25.00")),
]


def seed_lockout_periods():
    """Create or update one lockout period per paid lock kind."""

    supabase = get_supabase()
    for kind, hours, fee in DEFAULT_PERIODS:
        result = (
            supabase.table("lockout_periods")
            .upsert(
                {"name": kind.value, "hours": hours, "fee": str(fee), "is_active": True},
                on_conflict="name",
            )
            .execute()
        )
        if result.data:
            print(f"  Lockout period {kind.value}: {hours}h, fee {fee}")
        else:
            print(f"[ERROR] Failed to seed lockout period {kind.value}: {result}")


def seed_pricing_policy():
    store = SupabaseMarketplaceStore()
    try:
        policy = update_pricing_policy(
            PricingPolicyUpdate(
                standard_price=Decimal("10.99"),
                discounted_price=Decimal("5.99"),
                temporary_lock_minutes=60,
            ),
            store=store,
        )
    except InvalidPricingConfig as e:
        print(f"[ERROR] Pricing policy rejected: {e}")
        return

    print("[SUCCESS] Pricing policy saved")
    print(f"  Standard: {policy.standard_price}")
    print(f"  Discounted: {policy.discounted_price}")
    print(f"  Lock fees: {', '.join(f'{k.value}={v}' for k, v in policy.lock_fees.items())}")


if __name__ == "__main__":
    print("Seeding lockout periods...")
    seed_lockout_periods()
    print("Seeding pricing policy...")
    seed_pricing_policy()
