"""
Tests for `services/purchase_service.py`.

Covers:
- Idempotent recording under duplicate webhook delivery
- Lock side effects of a first purchase
- Download tracking
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import APP_FRESH, APP_OLD, DEALER_1, DEALER_2, DEALER_3
from domain.errors import PurchaseNotFound
from domain.lock import LockKind
from domain.purchase import DiscountInfo
from services.lock_service import check_lock, lock
from services.purchase_service import (
    is_purchased,
    list_dealer_purchases,
    purchase_count,
    record_download,
    record_purchase,
)


def test_duplicate_webhook_records_a_single_purchase(store, now) -> None:
    """D buys A; the same webhook arrives again 5 seconds later."""

    lock(APP_FRESH, DEALER_3, LockKind.TEMPORARY, store=store, as_of=now - timedelta(minutes=10))

    first = record_purchase(APP_FRESH, DEALER_1, "pi_123", Decimal("10.99"), store=store, as_of=now)
    second = record_purchase(
        APP_FRESH, DEALER_1, "pi_123", Decimal("10.99"), store=store, as_of=now + timedelta(seconds=5)
    )

    assert first.created
    assert first.expired_lock_count == 1
    assert not second.created
    assert second.purchase.purchase_id == first.purchase.purchase_id
    assert "already purchased" in second.message.lower()
    assert len(list_dealer_purchases(DEALER_1, store=store)) == 1

    locks = {row.dealer_id: row for row in store.list_locks(APP_FRESH)}
    purchase_lock = locks[DEALER_1]
    assert purchase_lock.kind is LockKind.PURCHASE_LOCK
    assert purchase_lock.expires_at == now + timedelta(hours=24)
    assert purchase_lock.fee_paid == Decimal("0.00")
    assert not locks[DEALER_3].is_active(now)


def test_is_purchased_after_record(store, now) -> None:
    assert not is_purchased(APP_FRESH, DEALER_1, store=store)

    record_purchase(APP_FRESH, DEALER_1, "pi_1", Decimal("10.99"), store=store, as_of=now)

    assert is_purchased(APP_FRESH, DEALER_1, store=store)
    assert not is_purchased(APP_FRESH, DEALER_2, store=store)


def test_second_payment_for_an_owned_application_is_not_recorded(store, now) -> None:
    record_purchase(APP_FRESH, DEALER_1, "pi_1", Decimal("10.99"), store=store, as_of=now)

    again = record_purchase(APP_FRESH, DEALER_1, "pi_2", Decimal("10.99"), store=store, as_of=now)

    assert not again.created
    assert again.purchase.payment_ref == "pi_1"


def test_purchase_expires_permanent_locks_held_by_other_dealers(store, now) -> None:
    lock(APP_OLD, DEALER_2, LockKind.PERMANENT, store=store, as_of=now - timedelta(days=1))

    result = record_purchase(APP_OLD, DEALER_1, "pi_9", Decimal("10.99"), store=store, as_of=now)

    assert result.expired_lock_count == 1
    active = [row for row in store.list_locks(APP_OLD) if row.is_active(now)]
    assert [row.dealer_id for row in active] == [DEALER_1]
    assert active[0].kind is LockKind.PURCHASE_LOCK
    info = check_lock(APP_OLD, DEALER_1, store=store, as_of=now)
    assert info.is_own_lock


def test_purchaser_keeps_an_active_paid_lock(store, now) -> None:
    lock(APP_FRESH, DEALER_1, LockKind.WEEK_1, store=store, as_of=now - timedelta(hours=1))

    record_purchase(APP_FRESH, DEALER_1, "pi_5", Decimal("10.99"), store=store, as_of=now)

    (row,) = store.list_locks(APP_FRESH)
    assert row.kind is LockKind.WEEK_1


def test_several_dealers_may_purchase_the_same_application(store, now) -> None:
    record_purchase(APP_FRESH, DEALER_1, "pi_a", Decimal("10.99"), store=store, as_of=now)
    record_purchase(APP_FRESH, DEALER_2, "pi_b", Decimal("5.99"), store=store, as_of=now + timedelta(hours=25))

    assert purchase_count(APP_FRESH, store=store) == 2


def test_discount_metadata_is_kept(store, now) -> None:
    discount = DiscountInfo(applied=True, kind="lock", amount=Decimal("5.00"))

    result = record_purchase(APP_FRESH, DEALER_1, "pi_d", Decimal("5.99"), discount, store=store, as_of=now)

    assert result.purchase.discount == discount


def test_payment_ref_is_required(store, now) -> None:
    with pytest.raises(ValueError):
        record_purchase(APP_FRESH, DEALER_1, "", Decimal("10.99"), store=store, as_of=now)


def test_record_download_counts_downloads(store, now) -> None:
    record_purchase(APP_FRESH, DEALER_1, "pi_1", Decimal("10.99"), store=store, as_of=now)

    record_download(APP_FRESH, DEALER_1, store=store, as_of=now + timedelta(hours=1))
    purchase = record_download(APP_FRESH, DEALER_1, store=store, as_of=now + timedelta(hours=2))

    assert purchase.download_count == 2
    assert purchase.downloaded_at == now + timedelta(hours=2)


def test_record_download_requires_purchase(store, now) -> None:
    with pytest.raises(PurchaseNotFound):
        record_download(APP_FRESH, DEALER_2, store=store, as_of=now)


def test_purchase_history_is_newest_first(store, now) -> None:
    record_purchase(APP_OLD, DEALER_1, "pi_old", Decimal("10.99"), store=store, as_of=now)
    record_purchase(APP_FRESH, DEALER_1, "pi_new", Decimal("10.99"), store=store, as_of=now + timedelta(days=1))

    history = list_dealer_purchases(DEALER_1, store=store)

    assert [p.payment_ref for p in history] == ["pi_new", "pi_old"]
