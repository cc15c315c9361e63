"""
Tests for `services/retry.py`.
"""

from __future__ import annotations

import pytest

from domain.errors import AlreadyLockedByOther, StoreConflict
from services.retry import run_with_retry


class FlakyOperation:
    """Raises StoreConflict for the first `failures` calls."""

    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise StoreConflict("serialization failure")
        return "ok"


def test_retries_until_success_with_exponential_backoff() -> None:
    delays = []
    operation = FlakyOperation(failures=2)

    result = run_with_retry(operation, attempts=3, backoff_base=0.05, sleep=delays.append)

    assert result == "ok"
    assert operation.calls == 3
    assert delays == [0.05, 0.1]


def test_gives_up_after_the_last_attempt() -> None:
    delays = []
    operation = FlakyOperation(failures=5)

    with pytest.raises(StoreConflict):
        run_with_retry(operation, attempts=3, backoff_base=0.05, sleep=delays.append)

    assert operation.calls == 3
    assert len(delays) == 2


def test_logical_rejections_are_not_retried() -> None:
    calls = []

    def operation():
        calls.append(1)
        raise AlreadyLockedByOther("app")

    with pytest.raises(AlreadyLockedByOther):
        run_with_retry(operation, attempts=3, sleep=lambda _: None)

    assert len(calls) == 1


def test_attempts_must_be_positive() -> None:
    with pytest.raises(ValueError):
        run_with_retry(lambda: None, attempts=0)
