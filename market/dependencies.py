from typing import Annotated

from fastapi import Depends
from sqlalchemy.orm import Session

from market.bus import EventBus
from market.config import SagaConfig
from market.models import get_db
from market.saga.intake import OrderIntake
from market.saga.settlement import PaymentSettlement
from market.services.payment_gateway import PaymentGateway, get_payment_gateway
from market.store import EntityStore


def get_saga_config() -> SagaConfig:
    return SagaConfig.from_settings()


def get_store(db: Annotated[Session, Depends(get_db)]) -> EntityStore:
    return EntityStore(db)


def get_bus(
    db: Annotated[Session, Depends(get_db)],
    config: Annotated[SagaConfig, Depends(get_saga_config)],
) -> EventBus:
    return EventBus(db, config.event_bus_name)


def get_order_intake(
    store: Annotated[EntityStore, Depends(get_store)],
    bus: Annotated[EventBus, Depends(get_bus)],
    payment_gateway: Annotated[PaymentGateway, Depends(get_payment_gateway)],
    config: Annotated[SagaConfig, Depends(get_saga_config)],
) -> OrderIntake:
    return OrderIntake(store=store, bus=bus, payment_gateway=payment_gateway, config=config)


def get_payment_settlement(
    store: Annotated[EntityStore, Depends(get_store)],
    bus: Annotated[EventBus, Depends(get_bus)],
    config: Annotated[SagaConfig, Depends(get_saga_config)],
) -> PaymentSettlement:
    return PaymentSettlement(store=store, bus=bus, config=config)
