from abc import ABC, abstractmethod
from dataclasses import dataclass
from uuid import uuid4

from market.config import settings


@dataclass(frozen=True)
class PaymentSession:
    payment_id: str
    session_url: str


class PaymentGateway(ABC):
    """Opens a checkout session with a payment provider."""

    @abstractmethod
    def create_session(
        self,
        order_id: str,
        payment_method: str,
        total_amount: int,
        currency: str,
    ) -> PaymentSession:
        """Return the provider's payment id and the URL the customer pays at.

        Raises ``GatewayError`` when the provider cannot open a session.
        """


class MockPaymentGateway(PaymentGateway):
    """Provider stand-in: mints a payment id and a provider-shaped checkout URL."""

    def create_session(
        self,
        order_id: str,
        payment_method: str,
        total_amount: int,
        currency: str,
    ) -> PaymentSession:
        payment_id = str(uuid4())
        if payment_method == "Stripe":
            url = f"https://checkout.stripe.com/pay/{payment_id}"
        elif payment_method == "PayPal":
            url = f"https://paypal.com/checkoutnow?token={payment_id}"
        else:
            url = f"https://mockpay.io/session/{payment_id}"
        return PaymentSession(payment_id=payment_id, session_url=url)


def get_payment_gateway() -> PaymentGateway:
    provider = settings.PAYMENT_PROVIDER
    if provider == "mock":
        return MockPaymentGateway()
    if provider == "stripe":
        from market.services.stripe_service import StripePaymentGateway

        return StripePaymentGateway(
            success_url=settings.STRIPE_SUCCESS_URL,
            cancel_url=settings.STRIPE_CANCEL_URL,
        )
    raise ValueError(f"Unsupported PAYMENT_PROVIDER: {provider}")
