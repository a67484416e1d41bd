import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool

from market.config import SagaConfig
from market.dependencies import get_order_intake, get_saga_config, get_store
from market.exceptions import SagaError
from market.saga.intake import OrderIntake
from market.schemas.orders import OrderCreateRequest, OrderCreateResponse, OrderStatusResponse
from market.store import EntityStore

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "",
    response_model=OrderCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create order and get payment session URL",
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": OrderCreateRequest.model_json_schema()}},
        }
    },
)
async def create_order(
    request: Request,
    intake: Annotated[OrderIntake, Depends(get_order_intake)],
):
    """
    Create an order in PendingPayment together with its payment record.
    Returns the order id, payment id and the session URL to pay at.
    """
    raw_body = await request.body()
    try:
        return await run_in_threadpool(intake.create_order, raw_body)
    except SagaError as e:
        if e.status_code >= 500:
            logger.error("Order intake failed: %s", e.message)
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/{order_id}",
    response_model=OrderStatusResponse,
    summary="Get order status",
)
def order_status(
    order_id: str,
    store: Annotated[EntityStore, Depends(get_store)],
    config: Annotated[SagaConfig, Depends(get_saga_config)],
):
    """Returns the order's saga status, its payment status and the license key once fulfilled."""
    try:
        order = store.get(config.orders_table, order_id)
        if not order:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
        payment = store.get(config.payments_table, order["payment_id"])
        fulfillment = store.get(config.fulfillments_table, order_id)
    except SagaError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return OrderStatusResponse(
        order_id=order["order_id"],
        status=order["status"],
        item_ids=order["item_ids"],
        currency=order["currency"],
        total_amount=order["total_amount"],
        payment_id=order["payment_id"],
        payment_status=payment["status"] if payment else None,
        license_key=fulfillment["license_key"] if fulfillment else None,
        created_at=order["created_at"],
    )
