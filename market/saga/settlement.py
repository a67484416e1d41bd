import logging
from dataclasses import dataclass

from market.bus import EventBus
from market.config import SagaConfig
from market.exceptions import ConditionFailed, NotFound, ValidationError
from market.schemas.base import parse_payload
from market.schemas.events import PaymentStatusChanged
from market.schemas.payments import PaymentOutcomeRequest
from market.saga.states import PAYMENT_OUTCOMES, OrderStatus, predecessors
from market.store import AttributeEquals, AttributeIn, EntityStore, Update
from market.timeutils import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementResult:
    order_id: str
    status: str
    applied: bool


class PaymentSettlement:
    """Applies a payment outcome to the Payment and its Order in one write."""

    def __init__(self, store: EntityStore, bus: EventBus, config: SagaConfig):
        self.store = store
        self.bus = bus
        self.config = config

    def report_outcome(self, notification: PaymentOutcomeRequest | bytes | str | dict) -> SettlementResult:
        if not isinstance(notification, PaymentOutcomeRequest):
            notification = parse_payload(PaymentOutcomeRequest, notification)

        payment_id = notification.payment_id.strip()
        order_id = notification.order_id.strip()
        if not payment_id or not order_id:
            raise ValidationError("Missing paymentId or orderId")
        status = self._parse_status(notification.status)

        # Writing the same outcome twice is harmless, so the order may already hold it.
        allowed = tuple(sorted(s.value for s in predecessors(status) | {status}))
        try:
            self.store.transact_write(
                [
                    Update(
                        self.config.payments_table,
                        payment_id,
                        {
                            "status": status.value,
                            "provider": notification.provider,
                            "transaction_id": notification.transaction_id,
                            "receipt_url": notification.receipt_url,
                            "updated_at": utcnow(),
                        },
                        AttributeEquals("order_id", order_id),
                    ),
                    Update(
                        self.config.orders_table,
                        order_id,
                        {"status": status.value},
                        AttributeIn("status", allowed),
                    ),
                ]
            )
        except ConditionFailed:
            return self._resolve_rejected(payment_id, order_id, status)

        logger.info("Payment %s for order %s settled as %s", payment_id, order_id, status.value)

        customer_email = notification.customer_email or self._customer_email(order_id)
        event = PaymentStatusChanged(
            payment_id=payment_id,
            order_id=order_id,
            status=status.value,
            provider=notification.provider,
            transaction_id=notification.transaction_id,
            receipt_url=notification.receipt_url,
            customer_email=customer_email,
        )
        # Left to propagate: the provider redelivers, the rewrite is a no-op and the event goes out again.
        self.bus.publish(self.config.payments_source, status.value, event)
        return SettlementResult(order_id=order_id, status=status.value, applied=True)

    @staticmethod
    def _parse_status(value: str) -> OrderStatus:
        try:
            status = OrderStatus(value.strip())
        except ValueError:
            raise ValidationError(f"Unsupported payment status: {value!r}") from None
        if status not in PAYMENT_OUTCOMES:
            raise ValidationError(f"Unsupported payment status: {value!r}")
        return status

    def _resolve_rejected(self, payment_id: str, order_id: str, status: OrderStatus) -> SettlementResult:
        payment = self.store.get(self.config.payments_table, payment_id)
        order = self.store.get(self.config.orders_table, order_id)
        if payment is None or payment["order_id"] != order_id:
            raise NotFound(f"Payment {payment_id} for order {order_id} not found")
        if order is None:
            raise NotFound(f"Order {order_id} not found")

        logger.info(
            "Order %s is already %s; ignoring %s outcome for payment %s",
            order_id,
            order["status"],
            status.value,
            payment_id,
        )
        return SettlementResult(order_id=order_id, status=order["status"], applied=False)

    def _customer_email(self, order_id: str) -> str | None:
        order = self.store.get(self.config.orders_table, order_id)
        return order["customer_email"] if order else None
