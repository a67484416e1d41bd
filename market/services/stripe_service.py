import logging

import stripe

from market.exceptions import GatewayError
from market.services.payment_gateway import PaymentGateway, PaymentSession
from market.services.url_utils import append_query_param

logger = logging.getLogger(__name__)

# Provider answers that will not change on a retry.
PERMANENT_STRIPE_ERRORS = (
    stripe.InvalidRequestError,
    stripe.AuthenticationError,
    stripe.PermissionError,
    stripe.CardError,
)


class StripePaymentGateway(PaymentGateway):
    """Payment sessions backed by Stripe Checkout."""

    def __init__(self, success_url: str, cancel_url: str):
        self.success_url = success_url
        self.cancel_url = cancel_url

    def create_session(
        self,
        order_id: str,
        payment_method: str,
        total_amount: int,
        currency: str,
    ) -> PaymentSession:
        """Create a Stripe Checkout Session; its id becomes the payment id."""
        from market.config import settings

        if not settings.STRIPE_SECRET_KEY:
            raise GatewayError("STRIPE_SECRET_KEY is not set", retryable=False)
        stripe.api_key = settings.STRIPE_SECRET_KEY
        try:
            session = stripe.checkout.Session.create(
                payment_method_types=["card"],
                line_items=[
                    {
                        "price_data": {
                            "currency": currency.lower(),
                            "product_data": {"name": f"Order {order_id}"},
                            "unit_amount": total_amount,
                        },
                        "quantity": 1,
                    }
                ],
                mode="payment",
                success_url=append_query_param(self.success_url, "order_id", order_id),
                cancel_url=self.cancel_url,
                metadata={"order_id": order_id, "payment_method": payment_method},
            )
        except PERMANENT_STRIPE_ERRORS as e:
            logger.error("Stripe rejected checkout session for order %s: %s", order_id, e)
            raise GatewayError(f"Stripe rejected the checkout session: {e}", retryable=False) from e
        except stripe.StripeError as e:
            logger.warning("Stripe unavailable for order %s: %s", order_id, e)
            raise GatewayError(f"Stripe is unavailable: {e}") from e
        return PaymentSession(payment_id=session.id, session_url=session.url)
