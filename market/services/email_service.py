import html
import logging
import smtplib
from email.message import EmailMessage

from market.config import settings
from market.exceptions import ValidationError
from market.schemas.events import (
    ORDER_CREATED,
    ORDER_FULFILLED,
    PAYMENT_SUCCEEDED,
    EventEnvelope,
    OrderCreated,
    OrderFulfilled,
    PaymentStatusChanged,
)

logger = logging.getLogger(__name__)

NOTIFIED_EVENT_TYPES = (ORDER_CREATED, PAYMENT_SUCCEEDED, ORDER_FULFILLED)


def _send_email(to_email: str, subject: str, text_body: str, html_body: str | None = None) -> None:
    if not settings.SMTP_HOST or not settings.SMTP_FROM_EMAIL:
        raise RuntimeError("SMTP is not configured (SMTP_HOST and SMTP_FROM_EMAIL are required).")

    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = f"{settings.SMTP_FROM_NAME} <{settings.SMTP_FROM_EMAIL}>"
    message["To"] = to_email
    message.set_content(text_body)
    if html_body:
        message.add_alternative(html_body, subtype="html")

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as smtp:
        smtp.ehlo()
        if settings.SMTP_USE_TLS:
            smtp.starttls()
            smtp.ehlo()
        if settings.SMTP_USER:
            smtp.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
        smtp.send_message(message)


def send_order_created_email(event: OrderCreated) -> None:
    items_text = "\n".join(f"  - {item}" for item in event.item_ids)
    items_html = "".join(f"<li>{html.escape(item)}</li>" for item in event.item_ids)
    pay_line = f"Complete your payment here:\n{event.session_url}\n\n" if event.session_url else ""
    pay_html = (
        f"<p><a href=\"{html.escape(event.session_url)}\">Click here to pay for your order</a></p>"
        if event.session_url
        else ""
    )
    text = (
        "Thank you for your order!\n\n"
        f"Order ID: {event.order_id}\n"
        f"Items:\n{items_text}\n"
        f"Total: {event.total_amount} {event.currency}\n"
        f"Payment type: {event.payment_method}\n\n"
        f"{pay_line}"
        "If you have any questions, reply to this email."
    )
    body = (
        "<h2>Thank you for your order!</h2>"
        f"<p>Order ID: <strong>{html.escape(event.order_id)}</strong></p>"
        f"<p>Items:</p><ul>{items_html}</ul>"
        f"<p>Total: <strong>{event.total_amount} {html.escape(event.currency)}</strong></p>"
        f"<p>Payment type: <strong>{html.escape(event.payment_method)}</strong></p>"
        f"{pay_html}"
        "<p>If you have any questions, reply to this email.</p>"
    )
    _send_email(to_email=event.customer_email, subject="Your Order Confirmation", text_body=text, html_body=body)


def send_payment_succeeded_email(event: PaymentStatusChanged) -> None:
    if not event.customer_email:
        raise ValidationError(f"PaymentSucceeded for order {event.order_id} carries no customer email")
    receipt_line = f"Receipt: {event.receipt_url}\n\n" if event.receipt_url else ""
    receipt_html = (
        f"<p><a href=\"{html.escape(event.receipt_url)}\">View your receipt</a></p>" if event.receipt_url else ""
    )
    text = (
        "We received your payment.\n\n"
        f"Order ID: {event.order_id}\n"
        f"Transaction: {event.transaction_id or '-'}\n\n"
        f"{receipt_line}"
        "Your purchase is being prepared and will arrive in a separate email."
    )
    body = (
        "<h2>Payment received</h2>"
        f"<p>Order ID: <strong>{html.escape(event.order_id)}</strong></p>"
        f"<p>Transaction: {html.escape(event.transaction_id or '-')}</p>"
        f"{receipt_html}"
        "<p>Your purchase is being prepared and will arrive in a separate email.</p>"
    )
    _send_email(to_email=event.customer_email, subject="Payment Successful", text_body=text, html_body=body)


def send_order_fulfilled_email(event: OrderFulfilled) -> None:
    text = (
        "Your order is ready.\n\n"
        f"Order ID: {event.order_id}\n"
        f"License key: {event.license_key}\n\n"
        f"Activate it here:\n{event.activation_url}"
    )
    body = (
        "<h2>Your order is ready</h2>"
        f"<p>Order ID: <strong>{html.escape(event.order_id)}</strong></p>"
        f"<p>License key: <code>{html.escape(event.license_key)}</code></p>"
        f"<p><a href=\"{html.escape(event.activation_url)}\">Activate your license</a></p>"
    )
    _send_email(to_email=event.customer_email, subject="Your License Key", text_body=text, html_body=body)


def dispatch_notification(envelope: EventEnvelope) -> None:
    """Send the customer email for a saga event. Holds no state of its own."""
    if envelope.detail_type not in NOTIFIED_EVENT_TYPES:
        logger.info("No notification for %s event %s", envelope.detail_type, envelope.id)
        return

    event = envelope.decode()
    if envelope.detail_type == ORDER_CREATED:
        send_order_created_email(event)
    elif envelope.detail_type == PAYMENT_SUCCEEDED:
        send_payment_succeeded_email(event)
    else:
        send_order_fulfilled_email(event)
    logger.info("Sent %s notification for order %s", envelope.detail_type, event.order_id)
