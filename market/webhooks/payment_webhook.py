import hashlib
import hmac
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool

from market.config import settings
from market.dependencies import get_payment_settlement
from market.exceptions import SagaError
from market.saga.settlement import PaymentSettlement
from market.schemas.payments import PaymentOutcomeRequest, PaymentOutcomeResponse

router = APIRouter()
logger = logging.getLogger(__name__)


def _verify_payment_signature(raw_body: bytes, signature: str | None) -> None:
    """Validate HMAC SHA-256 signature when PAYMENT_WEBHOOK_SECRET is configured."""
    if not settings.PAYMENT_WEBHOOK_SECRET:
        logger.warning("PAYMENT_WEBHOOK_SECRET is not set, skipping webhook verification")
        return

    if not signature:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing webhook signature")

    expected = hmac.new(
        settings.PAYMENT_WEBHOOK_SECRET.encode("utf-8"),
        raw_body,
        hashlib.sha256,
    ).hexdigest()

    if not hmac.compare_digest(signature, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")


@router.post(
    "/payment",
    response_model=PaymentOutcomeResponse,
    summary="Payment outcome webhook",
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": PaymentOutcomeRequest.model_json_schema()}},
        }
    },
)
async def payment_webhook(
    request: Request,
    settlement: Annotated[PaymentSettlement, Depends(get_payment_settlement)],
):
    """
    Payment provider reports the outcome of a payment session.
    Moves Payment and Order to the reported status in one transaction and
    publishes an event named after that status.
    Idempotent: redelivering the same outcome leaves the same final state.
    """
    raw_body = await request.body()
    _verify_payment_signature(raw_body, request.headers.get("x-payment-signature"))

    try:
        result = await run_in_threadpool(settlement.report_outcome, raw_body)
    except SagaError as e:
        if e.status_code >= 500:
            logger.error("Payment webhook failed: %s", e.message)
        else:
            logger.warning("Payment webhook rejected: %s", e.message)
        raise HTTPException(status_code=e.status_code, detail=e.message)

    message = "Payment processed" if result.applied else "Payment outcome already superseded"
    return PaymentOutcomeResponse(message=message, order_id=result.order_id, status=result.status)
