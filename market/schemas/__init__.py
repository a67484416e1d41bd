from market.schemas.base import CamelModel, parse_payload
from market.schemas.events import EventEnvelope, OrderCreated, OrderFulfilled, PaymentStatusChanged, decode_event
from market.schemas.orders import OrderCreateRequest, OrderCreateResponse, OrderStatusResponse
from market.schemas.payments import PaymentOutcomeRequest, PaymentOutcomeResponse

__all__ = [
    "CamelModel",
    "parse_payload",
    "EventEnvelope",
    "OrderCreated",
    "OrderFulfilled",
    "PaymentStatusChanged",
    "decode_event",
    "OrderCreateRequest",
    "OrderCreateResponse",
    "OrderStatusResponse",
    "PaymentOutcomeRequest",
    "PaymentOutcomeResponse",
]
