"""
Tests for `domain/lock.py`.

Covers contract rules:
- A lock is active iff expires_at > as_of.
- Another dealer's active lock rejects every lock kind.
- Temporary on temporary is rejected unless extending; upgrades to permanent
  replace the row; a permanent lock makes further requests no-ops.
- Repeating the payment that created a row is a no-op.
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from domain.errors import AlreadyLockedByOther, DuplicateTemporaryLock
from domain.lock import (
    Lock,
    LockAction,
    LockKind,
    LockRequest,
    evaluate_lock_request,
    has_lapsed_lock_by_other,
    lock_info_for,
)
from conftest import APP_FRESH, DEALER_1, DEALER_2, NOW


def _lock(dealer_id, kind=LockKind.TEMPORARY, *, expires_in=timedelta(hours=1), payment_ref=None) -> Lock:
    return Lock(
        lock_id=uuid4(),
        application_id=APP_FRESH,
        dealer_id=dealer_id,
        kind=kind,
        locked_at=NOW - timedelta(minutes=5),
        expires_at=NOW + expires_in,
        payment_ref=payment_ref,
    )


def _request(dealer_id, kind=LockKind.TEMPORARY, **kwargs) -> LockRequest:
    return LockRequest(application_id=APP_FRESH, dealer_id=dealer_id, kind=kind, **kwargs)


def test_lock_timestamps_must_be_utc() -> None:
    with pytest.raises(ValueError):
        Lock(
            lock_id=uuid4(),
            application_id=APP_FRESH,
            dealer_id=DEALER_1,
            kind=LockKind.TEMPORARY,
            locked_at=datetime(2025, 1, 1),
            expires_at=datetime(2025, 1, 1, 1, tzinfo=timezone.utc),
        )


def test_lock_is_immutable() -> None:
    lock = _lock(DEALER_1)
    with pytest.raises(FrozenInstanceError):
        lock.kind = LockKind.PERMANENT  # type: ignore[misc]


def test_lock_is_active_only_before_expiry() -> None:
    lock = _lock(DEALER_1, expires_in=timedelta(minutes=10))

    assert lock.is_active(NOW)
    assert not lock.is_active(NOW + timedelta(minutes=10))


def test_expiring_an_expired_lock_changes_nothing() -> None:
    lock = _lock(DEALER_1)
    released = lock.expired(NOW)

    assert released.expires_at == NOW
    assert released.expired(NOW + timedelta(hours=1)) == released


def test_lock_durations() -> None:
    assert LockKind.TEMPORARY.duration(30) == timedelta(minutes=30)
    assert LockKind.HOURS_24.duration() == timedelta(hours=24)
    assert LockKind.WEEK_1.duration() == timedelta(hours=168)
    assert LockKind.PERMANENT.duration() >= timedelta(days=3650)
    assert not LockKind.PURCHASE_LOCK.is_requestable


def test_first_lock_is_acquired() -> None:
    decision = evaluate_lock_request([], _request(DEALER_1), NOW)
    assert decision.action is LockAction.ACQUIRE


@pytest.mark.parametrize("kind", [LockKind.TEMPORARY, LockKind.HOURS_24, LockKind.WEEK_1, LockKind.PERMANENT])
def test_active_lock_by_other_dealer_rejects_every_kind(kind) -> None:
    held = _lock(DEALER_1, LockKind.TEMPORARY, expires_in=timedelta(minutes=30))

    with pytest.raises(AlreadyLockedByOther) as exc_info:
        evaluate_lock_request([held], _request(DEALER_2, kind), NOW)

    assert exc_info.value.expires_at == held.expires_at
    assert held.expires_at.isoformat() in str(exc_info.value)


def test_expired_lock_by_other_dealer_does_not_block() -> None:
    lapsed = _lock(DEALER_1, expires_in=timedelta(minutes=-1))

    decision = evaluate_lock_request([lapsed], _request(DEALER_2), NOW)

    assert decision.action is LockAction.ACQUIRE


def test_temporary_on_temporary_is_rejected_without_extend() -> None:
    mine = _lock(DEALER_1)

    with pytest.raises(DuplicateTemporaryLock):
        evaluate_lock_request([mine], _request(DEALER_1, LockKind.TEMPORARY), NOW)


def test_extend_replaces_own_lock() -> None:
    mine = _lock(DEALER_1)

    decision = evaluate_lock_request([mine], _request(DEALER_1, LockKind.HOURS_24, extend=True), NOW)

    assert decision.action is LockAction.REPLACE
    assert decision.current == mine


def test_upgrade_to_permanent_replaces_own_lock() -> None:
    mine = _lock(DEALER_1, LockKind.WEEK_1)

    decision = evaluate_lock_request([mine], _request(DEALER_1, LockKind.PERMANENT), NOW)

    assert decision.action is LockAction.REPLACE


def test_request_on_own_permanent_lock_is_noop() -> None:
    mine = _lock(DEALER_1, LockKind.PERMANENT, expires_in=timedelta(days=3650))

    decision = evaluate_lock_request([mine], _request(DEALER_1, LockKind.TEMPORARY), NOW)

    assert decision.action is LockAction.NOOP
    assert not decision.writes


def test_same_payment_applied_twice_is_noop() -> None:
    mine = _lock(DEALER_1, LockKind.HOURS_24, payment_ref="pi_1")

    decision = evaluate_lock_request(
        [mine],
        _request(DEALER_1, LockKind.HOURS_24, payment_ref="pi_1", extend=True),
        NOW,
    )

    assert decision.action is LockAction.NOOP


def test_own_expired_lock_is_replaced() -> None:
    mine = _lock(DEALER_1, expires_in=timedelta(seconds=-1))

    decision = evaluate_lock_request([mine], _request(DEALER_1), NOW)

    assert decision.action is LockAction.REPLACE


def test_purchase_lock_cannot_be_requested() -> None:
    with pytest.raises(ValueError):
        evaluate_lock_request([], _request(DEALER_1, LockKind.PURCHASE_LOCK), NOW)


def test_lock_info_for_owner_and_other_dealer() -> None:
    held = _lock(DEALER_1)

    own = lock_info_for([held], DEALER_1, NOW)
    other = lock_info_for([held], DEALER_2, NOW)

    assert own.is_locked and own.is_own_lock
    assert other.is_locked and not other.is_own_lock
    assert other.is_locked_by_other
    assert other.lock_type is LockKind.TEMPORARY


def test_lock_info_ignores_expired_rows() -> None:
    lapsed = _lock(DEALER_1, expires_in=timedelta(hours=-1))

    info = lock_info_for([lapsed], DEALER_2, NOW)

    assert not info.is_locked
    assert info.expires_at is None


def test_lapsed_lock_by_other_requires_no_active_lock() -> None:
    lapsed = _lock(DEALER_1, expires_in=timedelta(hours=-1))
    active = _lock(DEALER_2)

    assert has_lapsed_lock_by_other([lapsed], DEALER_2, NOW)
    assert not has_lapsed_lock_by_other([lapsed], DEALER_1, NOW)
    assert not has_lapsed_lock_by_other([lapsed, active], DEALER_2, NOW)


def test_payment_applied_earlier_is_noop_after_the_row_was_overwritten() -> None:
    mine = _lock(DEALER_1, LockKind.HOURS_24, expires_in=timedelta(hours=-1), payment_ref="pi_b")

    decision = evaluate_lock_request(
        [mine],
        _request(DEALER_1, LockKind.WEEK_1, payment_ref="pi_a", extend=True),
        NOW,
        applied_payment_refs={"pi_a", "pi_b"},
    )

    assert decision.action is LockAction.NOOP
    assert decision.current == mine


def test_new_payment_is_applied() -> None:
    mine = _lock(DEALER_1, LockKind.HOURS_24, payment_ref="pi_a")

    decision = evaluate_lock_request(
        [mine],
        _request(DEALER_1, LockKind.WEEK_1, payment_ref="pi_b", extend=True),
        NOW,
        applied_payment_refs={"pi_a"},
    )

    assert decision.action is LockAction.REPLACE
