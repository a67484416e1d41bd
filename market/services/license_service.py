from abc import ABC, abstractmethod
from uuid import uuid4


class FulfillmentGateway(ABC):
    """Issues the purchased asset (license key) for a customer."""

    @abstractmethod
    def issue_asset(self, product_ref: str, customer_ref: str) -> str:
        """Return the asset key. Raises ``GatewayError`` on provider failure."""


class MockLicenseGateway(FulfillmentGateway):
    # Not idempotent: every call issues a new key.
    def issue_asset(self, product_ref: str, customer_ref: str) -> str:
        return f"LICENSE-{uuid4()}"


def get_fulfillment_gateway() -> FulfillmentGateway:
    return MockLicenseGateway()
