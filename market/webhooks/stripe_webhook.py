import logging
from typing import Annotated

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool

from market.config import settings
from market.dependencies import get_payment_settlement
from market.exceptions import SagaError
from market.saga.settlement import PaymentSettlement
from market.saga.states import OrderStatus
from market.schemas.payments import PaymentOutcomeRequest

router = APIRouter()
logger = logging.getLogger(__name__)

STRIPE_OUTCOMES = {
    "checkout.session.completed": OrderStatus.PAYMENT_SUCCEEDED,
    "checkout.session.async_payment_succeeded": OrderStatus.PAYMENT_SUCCEEDED,
    "checkout.session.async_payment_failed": OrderStatus.PAYMENT_FAILED,
    "checkout.session.expired": OrderStatus.PAYMENT_FAILED,
}


@router.post(
    "/stripe",
    summary="Stripe webhook",
)
async def stripe_webhook(
    request: Request,
    settlement: Annotated[PaymentSettlement, Depends(get_payment_settlement)],
):
    """
    Stripe sends Checkout events here. Completed sessions settle the order as
    PaymentSucceeded, expired or failed ones as PaymentFailed.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.error("STRIPE_WEBHOOK_SECRET is not set, refusing unverifiable Stripe event")
        raise HTTPException(status_code=503, detail="Stripe webhook secret is not configured")

    try:
        event = stripe.Webhook.construct_event(payload, sig_header, settings.STRIPE_WEBHOOK_SECRET)
    except ValueError as e:
        logger.error(f"Invalid payload: {e}")
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError as e:
        logger.error(f"Invalid signature: {e}")
        raise HTTPException(status_code=400, detail="Invalid signature")

    outcome = STRIPE_OUTCOMES.get(event["type"])
    if outcome is None:
        return {"received": True}

    session = event["data"]["object"]
    order_id = (session.get("metadata") or {}).get("order_id")
    if not order_id:
        logger.warning("No order_id in session metadata")
        return {"received": True}

    # Paid asynchronously (e.g. bank debit): wait for async_payment_succeeded.
    if event["type"] == "checkout.session.completed" and session.get("payment_status") == "unpaid":
        logger.info("Stripe session %s completed unpaid, waiting for async payment", session.get("id"))
        return {"received": True}

    notification = PaymentOutcomeRequest(
        payment_id=session.get("id") or "",
        order_id=order_id,
        status=outcome.value,
        provider="Stripe",
        transaction_id=session.get("payment_intent"),
        customer_email=(session.get("customer_details") or {}).get("email"),
    )
    try:
        await run_in_threadpool(settlement.report_outcome, notification)
    except SagaError as e:
        logger.error("Stripe event %s for order %s failed: %s", event.get("id"), order_id, e.message)
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return {"received": True}
