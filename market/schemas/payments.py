from pydantic import AliasChoices, Field

from market.schemas.base import CamelModel


class PaymentOutcomeRequest(CamelModel):
    """Payment provider's report of how a payment session ended."""

    payment_id: str = Field(default="", validation_alias=AliasChoices("payment_id", "paymentId"))
    order_id: str = Field(default="", validation_alias=AliasChoices("order_id", "orderId"))
    status: str = ""
    provider: str | None = None
    transaction_id: str | None = Field(
        default=None, validation_alias=AliasChoices("transaction_id", "transactionId")
    )
    receipt_url: str | None = Field(default=None, validation_alias=AliasChoices("receipt_url", "receiptUrl"))
    customer_email: str | None = Field(
        default=None, validation_alias=AliasChoices("customer_email", "customerEmail")
    )

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "examples": [
                {
                    "payment_id": "5c1f0e0e-3d4b-4a55-9d0e-6d1f0e2b7a11",
                    "order_id": "0b7f4a2e-8f0c-4b8e-9a51-2f1c3e4d5a6b",
                    "status": "PaymentSucceeded",
                    "provider": "TestProvider",
                    "transaction_id": "txn_12345",
                    "receipt_url": "https://receipt.url/example",
                }
            ]
        },
    }


class PaymentOutcomeResponse(CamelModel):
    message: str
    order_id: str
    status: str
