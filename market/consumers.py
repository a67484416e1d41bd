"""Subscriptions wiring saga stages to the event bus."""

from sqlalchemy.orm import Session

from market.bus import EventBus, Subscription
from market.config import SagaConfig
from market.saga.fulfillment import FulfillmentTrigger
from market.schemas.events import ORDER_CREATED, ORDER_FULFILLED, PAYMENT_SUCCEEDED, EventEnvelope
from market.services import email_service
from market.services.license_service import FulfillmentGateway, get_fulfillment_gateway
from market.store import EntityStore

TRIGGER_FULFILLMENT = "trigger-fulfillment"
SEND_NOTIFICATIONS = "send-notifications"


def fulfillment_subscription(config: SagaConfig, gateway: FulfillmentGateway) -> Subscription:
    def handle(envelope: EventEnvelope, db: Session) -> None:
        trigger = FulfillmentTrigger(
            store=EntityStore(db),
            bus=EventBus(db, config.event_bus_name),
            gateway=gateway,
            config=config,
        )
        trigger.handle(envelope.decode())

    return Subscription(
        name=TRIGGER_FULFILLMENT,
        sources=(config.payments_source,),
        detail_types=(PAYMENT_SUCCEEDED,),
        handler=handle,
    )


def notification_subscription(config: SagaConfig) -> Subscription:
    def handle(envelope: EventEnvelope, db: Session) -> None:
        email_service.dispatch_notification(envelope)

    return Subscription(
        name=SEND_NOTIFICATIONS,
        sources=(config.orders_source, config.payments_source),
        detail_types=(ORDER_CREATED, PAYMENT_SUCCEEDED, ORDER_FULFILLED),
        handler=handle,
    )


def default_subscriptions(config: SagaConfig, gateway: FulfillmentGateway | None = None) -> list[Subscription]:
    return [
        fulfillment_subscription(config, gateway or get_fulfillment_gateway()),
        notification_subscription(config),
    ]
