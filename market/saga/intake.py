import logging
from uuid import uuid4

from market.bus import EventBus
from market.config import SagaConfig
from market.exceptions import BusUnavailable
from market.schemas.base import parse_payload
from market.schemas.events import ORDER_CREATED, OrderCreated
from market.schemas.orders import OrderCreateRequest, OrderCreateResponse
from market.saga.states import OrderStatus, PaymentStatus
from market.services.payment_gateway import PaymentGateway
from market.store import EntityStore, ItemNotExists, Put
from market.timeutils import utcnow

logger = logging.getLogger(__name__)


class OrderIntake:
    """Creates an order together with its payment session."""

    def __init__(self, store: EntityStore, bus: EventBus, payment_gateway: PaymentGateway, config: SagaConfig):
        self.store = store
        self.bus = bus
        self.payment_gateway = payment_gateway
        self.config = config

    def create_order(self, request: OrderCreateRequest | bytes | str | dict) -> OrderCreateResponse:
        """
        Validate the request, open a payment session and store Order and
        Payment in one transaction. Nothing is written if the gateway fails.
        """
        if not isinstance(request, OrderCreateRequest):
            request = parse_payload(OrderCreateRequest, request)

        order_id = str(uuid4())
        session = self.payment_gateway.create_session(
            order_id=order_id,
            payment_method=request.payment_method,
            total_amount=request.total_amount,
            currency=request.currency,
        )

        created_at = utcnow()
        order_item = {
            "order_id": order_id,
            "item_ids": list(request.item_ids),
            "currency": request.currency,
            "total_amount": request.total_amount,
            "customer_email": str(request.customer_email),
            "payment_method": request.payment_method,
            "payment_id": session.payment_id,
            "status": OrderStatus.PENDING_PAYMENT.value,
            "created_at": created_at,
        }
        payment_item = {
            "payment_id": session.payment_id,
            "order_id": order_id,
            "payment_method": request.payment_method,
            "status": PaymentStatus.PENDING.value,
            "created_at": created_at,
        }
        # Both ids are fresh; the predicates turn a collision into an error instead of an overwrite.
        self.store.transact_write(
            [
                Put(self.config.orders_table, order_item, ItemNotExists()),
                Put(self.config.payments_table, payment_item, ItemNotExists()),
            ]
        )
        logger.info("Order %s created with payment %s", order_id, session.payment_id)

        event = OrderCreated(**order_item, session_url=session.session_url)
        try:
            self.bus.publish(self.config.orders_source, ORDER_CREATED, event)
        except BusUnavailable:
            # The stored order is the source of truth; a retry here would mint a second order.
            logger.exception("OrderCreated for order %s was not published", order_id)

        return OrderCreateResponse(
            order_id=order_id,
            payment_id=session.payment_id,
            session_url=session.session_url,
            status=OrderStatus.PENDING_PAYMENT.value,
        )
