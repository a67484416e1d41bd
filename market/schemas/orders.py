from datetime import datetime

from pydantic import AliasChoices, EmailStr, Field, field_validator

from market.schemas.base import CamelModel

# Upper bound of the Integer amount column, in minor units.
MAX_TOTAL_AMOUNT = 2**31 - 1


class OrderCreateRequest(CamelModel):
    item_ids: list[str] = Field(
        min_length=1,
        validation_alias=AliasChoices("item_ids", "itemIds", "items"),
    )
    currency: str = Field(default="EUR", min_length=3, max_length=3)
    total_amount: int = Field(
        gt=0,
        le=MAX_TOTAL_AMOUNT,
        strict=True,
        validation_alias=AliasChoices("total_amount", "totalAmount", "amount"),
    )
    customer_email: EmailStr = Field(
        validation_alias=AliasChoices("customer_email", "customerEmail", "email"),
    )
    payment_method: str = Field(
        min_length=1,
        max_length=50,
        validation_alias=AliasChoices("payment_method", "paymentMethod", "paymentType", "method"),
    )

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "examples": [
                {
                    "item_ids": ["item1", "item2"],
                    "currency": "EUR",
                    "total_amount": 1000,
                    "customer_email": "customer@example.com",
                    "payment_method": "CreditCard",
                }
            ]
        },
    }

    @field_validator("item_ids")
    @classmethod
    def validate_item_ids(cls, v: list[str]) -> list[str]:
        if any(not item.strip() for item in v):
            raise ValueError("Item ids must be non-empty strings")
        return v

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        if not v.isalpha():
            raise ValueError("Currency must be a 3-letter code")
        return v.upper()


class OrderCreateResponse(CamelModel):
    order_id: str
    payment_id: str
    session_url: str
    status: str


class OrderStatusResponse(CamelModel):
    order_id: str
    status: str
    item_ids: list[str]
    currency: str
    total_amount: int
    payment_id: str | None = None
    payment_status: str | None = None
    license_key: str | None = None
    created_at: datetime
