import hashlib
import hmac
import json
from unittest.mock import patch

import stripe
from fastapi import status
from sqlalchemy import select

from market.models import BusEvent, Order, Payment


def _outcome(created_order, status_value="PaymentSucceeded", **extra):
    body = {
        "paymentId": created_order["payment_id"],
        "orderId": created_order["order_id"],
        "status": status_value,
        "provider": "TestProvider",
        "transactionId": "txn_1",
        "receiptUrl": "https://receipt.url/txn_1",
    }
    body.update(extra)
    return body


def _payment_events(db):
    return db.execute(select(BusEvent).where(BusEvent.source == "market.payment")).scalars().all()


def _sign(secret: str, raw_body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def test_payment_webhook_success(client, db, fetch, created_order):
    """Payment and Order both move to PaymentSucceeded and the event is published."""
    response = client.post("/webhooks/payment", json=_outcome(created_order))

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {
        "message": "Payment processed",
        "order_id": created_order["order_id"],
        "status": "PaymentSucceeded",
    }

    payment = fetch(Payment, created_order["payment_id"])
    assert payment.status == "PaymentSucceeded"
    assert payment.provider == "TestProvider"
    assert payment.transaction_id == "txn_1"
    assert payment.receipt_url == "https://receipt.url/txn_1"
    assert fetch(Order, created_order["order_id"]).status == "PaymentSucceeded"

    events = _payment_events(db)
    assert len(events) == 1
    assert events[0].detail_type == "PaymentSucceeded"
    assert events[0].detail["order_id"] == created_order["order_id"]
    assert events[0].detail["customer_email"] == "a@x.com"


def test_payment_webhook_failure_outcome(client, db, fetch, created_order):
    response = client.post("/webhooks/payment", json=_outcome(created_order, "PaymentFailed"))

    assert response.status_code == status.HTTP_200_OK
    assert fetch(Order, created_order["order_id"]).status == "PaymentFailed"
    assert fetch(Payment, created_order["payment_id"]).status == "PaymentFailed"
    assert [e.detail_type for e in _payment_events(db)] == ["PaymentFailed"]


def test_payment_webhook_redelivery_is_idempotent(client, db, fetch, created_order):
    """Reporting the same outcome twice leaves the same final state."""
    first = client.post("/webhooks/payment", json=_outcome(created_order))
    second = client.post("/webhooks/payment", json=_outcome(created_order))

    assert first.status_code == status.HTTP_200_OK
    assert second.status_code == status.HTTP_200_OK
    assert fetch(Order, created_order["order_id"]).status == "PaymentSucceeded"
    assert fetch(Payment, created_order["payment_id"]).status == "PaymentSucceeded"


def test_payment_webhook_does_not_regress_settled_order(client, db, fetch, created_order):
    client.post("/webhooks/payment", json=_outcome(created_order))

    response = client.post("/webhooks/payment", json=_outcome(created_order, "PaymentFailed"))

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["message"] == "Payment outcome already superseded"
    assert response.json()["status"] == "PaymentSucceeded"
    assert fetch(Order, created_order["order_id"]).status == "PaymentSucceeded"
    assert fetch(Payment, created_order["payment_id"]).status == "PaymentSucceeded"
    assert [e.detail_type for e in _payment_events(db)] == ["PaymentSucceeded"]


def test_payment_webhook_missing_ids(client, created_order):
    response = client.post("/webhooks/payment", json={"status": "PaymentSucceeded"})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"] == "Missing paymentId or orderId"


def test_payment_webhook_rejects_unknown_status(client, fetch, created_order):
    response = client.post("/webhooks/payment", json=_outcome(created_order, "Refunded"))

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert fetch(Order, created_order["order_id"]).status == "PendingPayment"


def test_payment_webhook_rejects_pending_as_outcome(client, created_order):
    response = client.post("/webhooks/payment", json=_outcome(created_order, "PendingPayment"))

    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_payment_webhook_unknown_payment(client, db, created_order):
    body = _outcome(created_order, paymentId="unknown-payment")

    response = client.post("/webhooks/payment", json=body)

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert _payment_events(db) == []


def test_payment_webhook_payment_of_other_order(client, fetch, created_order, order_body):
    other = client.post("/api/orders", json=order_body).json()
    body = _outcome(created_order, paymentId=other["payment_id"])

    response = client.post("/webhooks/payment", json=body)

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert fetch(Payment, other["payment_id"]).status == "Pending"
    assert fetch(Order, created_order["order_id"]).status == "PendingPayment"


def test_payment_webhook_invalid_json(client):
    response = client.post(
        "/webhooks/payment",
        content=b"{broken",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"] == "Invalid JSON"


def test_payment_webhook_requires_signature_when_secret_set(client, monkeypatch, created_order):
    monkeypatch.setenv("PAYMENT_WEBHOOK_SECRET", "shh")

    response = client.post("/webhooks/payment", json=_outcome(created_order))

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["detail"] == "Missing webhook signature"


def test_payment_webhook_rejects_bad_signature(client, monkeypatch, fetch, created_order):
    monkeypatch.setenv("PAYMENT_WEBHOOK_SECRET", "shh")
    raw_body = json.dumps(_outcome(created_order)).encode()

    response = client.post(
        "/webhooks/payment",
        content=raw_body,
        headers={"Content-Type": "application/json", "x-payment-signature": _sign("wrong", raw_body)},
    )

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert fetch(Order, created_order["order_id"]).status == "PendingPayment"


def test_payment_webhook_accepts_valid_signature(client, monkeypatch, fetch, created_order):
    monkeypatch.setenv("PAYMENT_WEBHOOK_SECRET", "shh")
    raw_body = json.dumps(_outcome(created_order)).encode()

    response = client.post(
        "/webhooks/payment",
        content=raw_body,
        headers={"Content-Type": "application/json", "x-payment-signature": _sign("shh", raw_body)},
    )

    assert response.status_code == status.HTTP_200_OK
    assert fetch(Order, created_order["order_id"]).status == "PaymentSucceeded"


def _stripe_event(created_order, event_type="checkout.session.completed", **session_fields):
    session = {
        "id": created_order["payment_id"],
        "metadata": {"order_id": created_order["order_id"]},
        "payment_status": "paid",
        "payment_intent": "pi_123",
        "customer_details": {"email": "a@x.com"},
    }
    session.update(session_fields)
    return {"id": "evt_test", "type": event_type, "data": {"object": session}}


def _post_stripe(client, event_data):
    with patch("stripe.Webhook.construct_event") as mock_construct:
        mock_construct.return_value = event_data
        return client.post(
            "/webhooks/stripe",
            content=json.dumps(event_data).encode(),
            headers={"stripe-signature": "test_signature"},
        )


def test_stripe_webhook_completed_session(client, db, fetch, created_order):
    """A paid checkout session settles the order as PaymentSucceeded."""
    response = _post_stripe(client, _stripe_event(created_order))

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["received"] is True
    payment = fetch(Payment, created_order["payment_id"])
    assert payment.status == "PaymentSucceeded"
    assert payment.provider == "Stripe"
    assert payment.transaction_id == "pi_123"
    assert fetch(Order, created_order["order_id"]).status == "PaymentSucceeded"


def test_stripe_webhook_expired_session(client, fetch, created_order):
    response = _post_stripe(client, _stripe_event(created_order, "checkout.session.expired"))

    assert response.status_code == status.HTTP_200_OK
    assert fetch(Order, created_order["order_id"]).status == "PaymentFailed"


def test_stripe_webhook_unpaid_completion_waits(client, db, fetch, created_order):
    event_data = _stripe_event(created_order, payment_status="unpaid")

    response = _post_stripe(client, event_data)

    assert response.status_code == status.HTTP_200_OK
    assert fetch(Order, created_order["order_id"]).status == "PendingPayment"
    assert _payment_events(db) == []


def test_stripe_webhook_idempotent(client, db, fetch, created_order):
    """Redelivered Stripe events do not change a settled order."""
    _post_stripe(client, _stripe_event(created_order))
    response = _post_stripe(client, _stripe_event(created_order, "checkout.session.expired"))

    assert response.status_code == status.HTTP_200_OK
    assert fetch(Order, created_order["order_id"]).status == "PaymentSucceeded"


def test_stripe_webhook_ignores_other_events(client, fetch, created_order):
    response = _post_stripe(client, _stripe_event(created_order, "payment_intent.created"))

    assert response.status_code == status.HTTP_200_OK
    assert fetch(Order, created_order["order_id"]).status == "PendingPayment"


def test_stripe_webhook_without_order_metadata(client, created_order):
    response = _post_stripe(client, _stripe_event(created_order, metadata={}))

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["received"] is True


def test_stripe_webhook_invalid_signature(client):
    """Test Stripe webhook with invalid signature."""
    with patch("stripe.Webhook.construct_event") as mock_construct:
        mock_construct.side_effect = stripe.SignatureVerificationError("Invalid", "sig")

        response = client.post(
            "/webhooks/stripe",
            content=b"{}",
            headers={"stripe-signature": "invalid"},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "signature" in response.json()["detail"].lower()


def test_stripe_webhook_invalid_payload(client):
    """Test Stripe webhook with invalid payload."""
    with patch("stripe.Webhook.construct_event") as mock_construct:
        mock_construct.side_effect = ValueError("Invalid payload")

        response = client.post(
            "/webhooks/stripe",
            content=b"invalid",
            headers={"stripe-signature": "test"},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_stripe_webhook_refused_without_secret(client, db, fetch, monkeypatch, created_order):
    """Unverifiable Stripe events are refused so Stripe keeps retrying them."""
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "")

    with patch("stripe.Webhook.construct_event") as mock_construct:
        response = client.post(
            "/webhooks/stripe",
            content=json.dumps(_stripe_event(created_order)).encode(),
            headers={"stripe-signature": "test_signature"},
        )

    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    mock_construct.assert_not_called()
    assert fetch(Order, created_order["order_id"]).status == "PendingPayment"
    assert _payment_events(db) == []
