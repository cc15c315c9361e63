"""
HTTP surface tests using FastAPI's TestClient with the store dependency
overridden by the seeded in-memory store.
"""

from __future__ import annotations

import json
from decimal import Decimal

import pytest
import stripe
from fastapi.testclient import TestClient

from api.dependencies import get_store
from api.routers import webhooks
from api.main import app
from config import Settings, get_settings
from conftest import ADMIN, APP_DRAFT, APP_FRESH, APP_OLD, DEALER_1, DEALER_2
from repositories.memory_store import InMemoryMarketplaceStore

D1 = {"X-Dealer-Id": str(DEALER_1)}
D2 = {"X-Dealer-Id": str(DEALER_2)}
ADMIN_HEADERS = {"X-Dealer-Id": str(ADMIN), "X-Dealer-Role": "admin"}


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_settings] = lambda: Settings(store_backend="memory", stripe_webhook_secret="whsec_test")
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_health(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_dealer_header_is_required(client) -> None:
    assert client.get("/api/v1/applications").status_code == 422


def test_list_applications(client) -> None:
    response = client.get("/api/v1/applications", headers=D1)

    assert response.status_code == 200
    body = response.json()
    assert body["total_count"] == 2
    assert [item["application_id"] for item in body["items"]] == [str(APP_FRESH), str(APP_OLD)]
    assert Decimal(body["items"][0]["price"]) == Decimal("10.99")


def test_list_without_pricing_is_unavailable(applications) -> None:
    app.dependency_overrides[get_store] = lambda: InMemoryMarketplaceStore(applications)
    try:
        response = TestClient(app).get("/api/v1/applications", headers=D1)
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 503
    assert response.json()["error"] == "ConfigurationError"


def test_lock_conflict_and_release(client) -> None:
    url = f"/api/v1/applications/{APP_FRESH}/lock"

    acquired = client.post(url, json={"lock_type": "temporary"}, headers=D1)
    conflict = client.post(url, json={"lock_type": "temporary"}, headers=D2)
    seen_by_other = client.get(url, headers=D2)

    assert acquired.status_code == 200
    assert acquired.json()["created"] is True
    assert conflict.status_code == 409
    assert conflict.json()["error"] == "AlreadyLockedByOther"
    assert seen_by_other.json()["is_locked"] is True
    assert seen_by_other.json()["is_own_lock"] is False
    assert seen_by_other.json()["locked_by"] is None

    assert client.delete(url, headers=D2).status_code == 403
    assert client.delete(url, headers=D1).status_code == 200
    assert client.delete(url, headers=D1).status_code == 200
    assert client.get(url, headers=D2).json()["is_locked"] is False


def test_duplicate_temporary_lock_is_a_conflict(client) -> None:
    url = f"/api/v1/applications/{APP_FRESH}/lock"
    client.post(url, json={"lock_type": "temporary"}, headers=D1)

    response = client.post(url, json={"lock_type": "temporary"}, headers=D1)

    assert response.status_code == 409
    assert response.json()["error"] == "DuplicateTemporaryLock"


def test_paid_lock_requires_checkout(client) -> None:
    response = client.post(f"/api/v1/applications/{APP_FRESH}/lock", json={"lock_type": "24hours"}, headers=D1)

    assert response.status_code == 402


def test_quote(client) -> None:
    response = client.post("/api/v1/quotes", json={"application_ids": [str(APP_FRESH), str(APP_OLD)]}, headers=D1)

    assert response.status_code == 200
    body = response.json()
    assert Decimal(body["subtotal"]) == Decimal("21.98")
    assert body["total_items"] == 2


def test_pricing_settings_require_admin(client) -> None:
    assert client.get("/api/v1/settings/pricing", headers=D1).status_code == 403


def test_invalid_pricing_update_is_rejected(client) -> None:
    rejected = client.put(
        "/api/v1/settings/pricing",
        json={"standard_price": "5.00", "discounted_price": "6.00"},
        headers=ADMIN_HEADERS,
    )
    current = client.get("/api/v1/settings/pricing", headers=ADMIN_HEADERS)

    assert rejected.status_code == 422
    assert rejected.json()["error"] == "InvalidPricingConfig"
    assert Decimal(current.json()["standard_price"]) == Decimal("10.99")


def test_admin_changes_application_status(client) -> None:
    url = f"/api/v1/settings/applications/{APP_DRAFT}/status"

    assert client.put(url, json={"status": "approved"}, headers=D1).status_code == 403
    assert client.post(f"/api/v1/applications/{APP_DRAFT}/lock", json={"lock_type": "temporary"}, headers=D1).status_code == 404

    response = client.put(url, json={"status": "approved"}, headers=ADMIN_HEADERS)

    assert response.status_code == 200
    assert response.json()["status"] == "approved"
    assert response.json()["is_listed"] is True
    listed = client.get("/api/v1/applications", headers=D1).json()
    assert str(APP_DRAFT) in [item["application_id"] for item in listed["items"]]
    locked = client.post(f"/api/v1/applications/{APP_DRAFT}/lock", json={"lock_type": "temporary"}, headers=D1)
    assert locked.status_code == 200


def test_status_change_for_unknown_application(client) -> None:
    response = client.put(
        "/api/v1/settings/applications/00000000-0000-0000-0000-000000000999/status",
        json={"status": "rejected"},
        headers=ADMIN_HEADERS,
    )

    assert response.status_code == 404


def test_lockout_periods(client) -> None:
    response = client.get("/api/v1/settings/lockout-periods", headers=D1)

    assert [p["name"] for p in response.json()] == ["24hours", "1week", "permanent"]


def test_download_requires_purchase(client) -> None:
    response = client.post(f"/api/v1/purchases/{APP_FRESH}/download", headers=D1)

    assert response.status_code == 404


def _checkout_event(payment_status: str = "paid") -> bytes:
    return json.dumps(
        {
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": "cs_test_1",
                    "payment_intent": "pi_test_1",
                    "payment_status": payment_status,
                    "amount_total": 1099,
                    "metadata": {
                        "dealer_id": str(DEALER_1),
                        "application_ids": str(APP_FRESH),
                        "payment_type": "purchase",
                    },
                }
            },
        }
    ).encode()


def test_webhook_records_purchase_once(client, monkeypatch) -> None:
    monkeypatch.setattr(stripe.Webhook, "construct_event", lambda payload, sig, secret: None)
    headers = {"Stripe-Signature": "t=1,v1=test"}

    first = client.post("/api/v1/webhooks/stripe", content=_checkout_event(), headers=headers)
    second = client.post("/api/v1/webhooks/stripe", content=_checkout_event(), headers=headers)

    assert first.status_code == 200
    assert first.json()["created"] == 1
    assert second.json()["created"] == 0
    assert second.json()["already_satisfied"] == 1

    purchases = client.get("/api/v1/purchases", headers=D1).json()
    assert purchases["total_count"] == 1

    download = client.post(f"/api/v1/purchases/{APP_FRESH}/download", headers=D1)
    assert download.status_code == 200
    assert download.json()["download_count"] == 1


def test_webhook_unpaid_session(client, monkeypatch) -> None:
    monkeypatch.setattr(stripe.Webhook, "construct_event", lambda payload, sig, secret: None)

    response = client.post(
        "/api/v1/webhooks/stripe",
        content=_checkout_event("unpaid"),
        headers={"Stripe-Signature": "t=1,v1=test"},
    )

    assert response.status_code == 402


def test_webhook_rejects_bad_signature(client, monkeypatch) -> None:
    def reject(payload, sig, secret):
        raise stripe.SignatureVerificationError("No signatures found", sig)

    monkeypatch.setattr(stripe.Webhook, "construct_event", reject)

    response = client.post("/api/v1/webhooks/stripe", content=_checkout_event(), headers={"Stripe-Signature": "bad"})

    assert response.status_code == 400


def test_webhook_processing_runs_off_the_event_loop(client, monkeypatch) -> None:
    monkeypatch.setattr(stripe.Webhook, "construct_event", lambda payload, sig, secret: None)
    offloaded = []
    real_run_in_threadpool = webhooks.run_in_threadpool

    async def recording_run_in_threadpool(func, *args, **kwargs):
        offloaded.append(func.__name__)
        return await real_run_in_threadpool(func, *args, **kwargs)

    monkeypatch.setattr(webhooks, "run_in_threadpool", recording_run_in_threadpool)

    response = client.post(
        "/api/v1/webhooks/stripe",
        content=_checkout_event(),
        headers={"Stripe-Signature": "t=1,v1=test"},
    )

    assert response.status_code == 200
    assert offloaded == ["handle_checkout_completed"]
