import logging

from market.bus import EventBus
from market.config import SagaConfig
from market.exceptions import BusUnavailable, ConditionFailed, InvalidTransition, NotFound, ValidationError
from market.schemas.events import ORDER_FULFILLED, OrderFulfilled, PaymentStatusChanged
from market.saga.states import OrderStatus, can_transition
from market.services.license_service import FulfillmentGateway
from market.store import All, AttributeEquals, AttributeNotEquals, EntityStore, ItemNotExists, Put, Update
from market.timeutils import utcnow

logger = logging.getLogger(__name__)


class FulfillmentTrigger:
    """
    Issues the purchased license for a paid order.

    Safe under duplicate and concurrent deliveries: the status check skips
    orders that are already fulfilled, and the write itself only commits if
    no Fulfillment exists yet and the order has not moved on, so at most one
    license is ever recorded per order.
    """

    def __init__(self, store: EntityStore, bus: EventBus, gateway: FulfillmentGateway, config: SagaConfig):
        self.store = store
        self.bus = bus
        self.gateway = gateway
        self.config = config

    def handle(self, payment: PaymentStatusChanged) -> OrderFulfilled | None:
        if not payment.order_id:
            raise ValidationError("Missing orderId")
        if payment.status != OrderStatus.PAYMENT_SUCCEEDED.value:
            raise ValidationError(f"Cannot fulfill order {payment.order_id} on status {payment.status}")

        order = self.store.get(self.config.orders_table, payment.order_id)
        if order is None:
            raise NotFound(f"Order {payment.order_id} not found")

        if order["status"] == OrderStatus.FULFILLED.value:
            logger.warning("Order %s already fulfilled. Skipping.", payment.order_id)
            return None
        if not can_transition(order["status"], OrderStatus.FULFILLED):
            raise InvalidTransition(f"Order {payment.order_id} is {order['status']}, not PaymentSucceeded")

        license_key = self.gateway.issue_asset(
            product_ref=",".join(order["item_ids"]),
            customer_ref=order["customer_email"],
        )

        fulfilled_at = utcnow()
        try:
            self.store.transact_write(
                [
                    Put(
                        self.config.fulfillments_table,
                        {
                            "order_id": payment.order_id,
                            "payment_id": payment.payment_id,
                            "license_key": license_key,
                            "provider": payment.provider or "",
                            "receipt_url": payment.receipt_url or "",
                            "transaction_id": payment.transaction_id or "",
                            "fulfilled_at": fulfilled_at,
                        },
                        ItemNotExists(),
                    ),
                    Update(
                        self.config.orders_table,
                        payment.order_id,
                        {"status": OrderStatus.FULFILLED.value},
                        All(
                            AttributeNotEquals("status", OrderStatus.FULFILLED.value),
                            AttributeEquals("status", OrderStatus.PAYMENT_SUCCEEDED.value),
                        ),
                    ),
                ]
            )
        except ConditionFailed:
            logger.info(
                "Order %s was fulfilled by a concurrent delivery; discarding license %s",
                payment.order_id,
                license_key,
            )
            return None

        logger.info("Order %s fulfilled with license %s", payment.order_id, license_key)

        fulfilled = OrderFulfilled(
            order_id=payment.order_id,
            license_key=license_key,
            customer_email=order["customer_email"],
            activation_url=f"{self.config.activation_url_base.rstrip('/')}/{license_key}",
            timestamp=fulfilled_at,
        )
        try:
            self.bus.publish(self.config.orders_source, ORDER_FULFILLED, fulfilled)
        except BusUnavailable:
            # Redelivery would stop at the Fulfilled check, so retrying cannot re-emit.
            logger.exception("OrderFulfilled for order %s was not published", payment.order_id)
        return fulfilled
