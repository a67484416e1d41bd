"""Payload schemas for the domain events carried on the bus.

An event travels as an untyped ``detail`` dict next to its ``detail_type``
discriminator; ``decode_event`` checks the discriminator first and only then
validates the dict against that variant's schema.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from market.exceptions import ValidationError

ORDER_CREATED = "OrderCreated"
PAYMENT_SUCCEEDED = "PaymentSucceeded"
PAYMENT_FAILED = "PaymentFailed"
ORDER_FULFILLED = "OrderFulfilled"


class EventDetail(BaseModel):
    def to_detail(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class OrderCreated(EventDetail):
    order_id: str
    payment_id: str
    item_ids: list[str]
    currency: str
    total_amount: int
    customer_email: str
    payment_method: str
    status: str
    created_at: datetime
    session_url: str | None = None


class PaymentStatusChanged(EventDetail):
    payment_id: str
    order_id: str
    status: str
    provider: str | None = None
    transaction_id: str | None = None
    receipt_url: str | None = None
    customer_email: str | None = None


class OrderFulfilled(EventDetail):
    order_id: str
    license_key: str
    customer_email: str
    activation_url: str
    timestamp: datetime


EVENT_TYPES: dict[str, type[EventDetail]] = {
    ORDER_CREATED: OrderCreated,
    PAYMENT_SUCCEEDED: PaymentStatusChanged,
    PAYMENT_FAILED: PaymentStatusChanged,
    ORDER_FULFILLED: OrderFulfilled,
}


def decode_event(detail_type: str, detail: dict[str, Any]) -> EventDetail:
    schema = EVENT_TYPES.get(detail_type)
    if schema is None:
        raise ValidationError(f"Unknown event type: {detail_type}")
    try:
        return schema.model_validate(detail)
    except PydanticValidationError as exc:
        raise ValidationError(f"Malformed {detail_type} event: {exc.errors()[0]['msg']}") from exc


@dataclass(frozen=True)
class EventEnvelope:
    id: str
    source: str
    detail_type: str
    detail: dict[str, Any]
    attempt: int = 1

    def decode(self) -> EventDetail:
        return decode_event(self.detail_type, self.detail)
