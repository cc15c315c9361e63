"""
Payment Webhook Endpoint.

Receives Stripe events. The signature is verified with the endpoint secret
before anything is read from the payload; checkout.session.completed events
are handed to the checkout service, every other event type is acknowledged
and ignored.
"""

import json
import logging

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool

from api.dependencies import get_store
from api.models import WebhookResponse
from config import Settings, get_settings
from domain.errors import ConfigurationError
from repositories.store import MarketplaceStore
from services.checkout_service import CheckoutCompleted, handle_checkout_completed

logger = logging.getLogger(__name__)

router = APIRouter()

CHECKOUT_COMPLETED = "checkout.session.completed"


@router.post(
    "/webhooks/stripe",
    response_model=WebhookResponse,
    summary="Stripe Webhook",
)
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header("", alias="Stripe-Signature"),
    settings: Settings = Depends(get_settings),
    store: MarketplaceStore = Depends(get_store),
):
    """
    Handle a Stripe webhook delivery.

    Deliveries are at-least-once; processing is idempotent on the payment
    reference, so a redelivered event is acknowledged without side effects.
    """
    secret = (settings.stripe_webhook_secret or "").strip()
    if not secret:
        raise ConfigurationError("STRIPE_WEBHOOK_SECRET is not configured")

    payload = await request.body()
    try:
        stripe.Webhook.construct_event(payload, stripe_signature, secret)
    except ValueError as e:
        logger.warning("Rejected webhook with invalid payload: %s", e)
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError as e:
        logger.warning("Rejected webhook with invalid signature: %s", e)
        raise HTTPException(status_code=400, detail="Invalid signature")

    event = json.loads(payload)
    event_type = event.get("type")
    if event_type != CHECKOUT_COMPLETED:
        logger.info("Ignoring webhook event %s", event_type)
        return WebhookResponse(received=True)

    session = event["data"]["object"]
    try:
        checkout = CheckoutCompleted.from_stripe_session(session)
    except ValueError as e:
        logger.error("Checkout session %s has unusable metadata: %s", session.get("id"), e)
        raise HTTPException(status_code=400, detail=str(e))

    # The store and its retry backoff block; keep them off the event loop.
    outcome = await run_in_threadpool(handle_checkout_completed, checkout, store=store)
    return WebhookResponse(
        received=True,
        payment_ref=outcome.payment_ref,
        created=len(outcome.created),
        already_satisfied=len(outcome.already_satisfied),
        rejected=len(outcome.rejected),
    )
