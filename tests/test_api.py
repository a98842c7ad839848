import json

from fastapi.testclient import TestClient

from paybridge.deps import build_services
from paybridge.main import create_app
from paybridge.psp.dispatcher import PSPDispatcher

from conftest import VALID_SIGNATURE, nicepay_callback


def test_health(client):
    r = client.get("/health")

    assert r.status_code == 200
    assert r.json() == {"ok": True}
    assert r.headers["X-Request-ID"]


def test_request_id_is_echoed(client):
    r = client.get("/health", headers={"X-Request-ID": "req-123"})

    assert r.headers["X-Request-ID"] == "req-123"


# ---------------------------------------------------------------------
# Stripe
# ---------------------------------------------------------------------

def test_payment_sheet(client):
    r = client.get("/payment-sheet")

    assert r.status_code == 200
    body = r.json()
    assert body["paymentIntent"] == "pi_1_secret_abc"
    assert body["ephemeralKey"] == "ek_test_cus_1"
    assert body["customer"] == "cus_1"
    assert client.get(f"/orders/{body['orderId']}").json()["status"] == "created"


def test_payment_sheet_reuses_customer(client, fake_stripe):
    client.get("/payment-sheet", params={"email": "leo@gmail.com"})
    r = client.get("/payment-sheet", params={"email": "leo@gmail.com"})

    assert r.json()["customer"] == "cus_1"
    assert len(fake_stripe.customer_creates) == 1


def test_payment_sheet_idempotency_header(client, fake_stripe):
    headers = {"Idempotency-Key": "booking-1"}
    first = client.get("/payment-sheet", headers=headers).json()
    second = client.get("/payment-sheet", headers=headers).json()

    assert first == second
    assert len(fake_stripe.intents) == 1


def test_payment_sheet_validation_error(client, fake_stripe):
    r = client.get("/payment-sheet", params={"amount": 0})

    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "validation_error"
    assert fake_stripe.intents == []


def test_payment_sheet_card_declined(client, fake_stripe):
    import stripe

    fake_stripe.intent_error = stripe.CardError("Your card was declined.", None, "card_declined")

    r = client.get("/payment-sheet")

    assert r.status_code == 402
    assert r.json()["detail"]["error"] == "Payment was rejected by the provider: Your card was declined."


def test_stripe_webhook_captures(client):
    order_id = client.get("/payment-sheet").json()["orderId"]
    event = {"id": "evt_1", "type": "payment_intent.succeeded", "data": {"object": {"id": "pi_1", "metadata": {}}}}

    r = client.post("/stripe-webhook", content=json.dumps(event), headers={"Stripe-Signature": VALID_SIGNATURE})

    assert r.status_code == 200
    assert r.json() == {"ok": True, "status": "captured", "applied": True}
    assert client.get(f"/orders/{order_id}").json()["status"] == "captured"


def test_stripe_webhook_bad_signature(client):
    r = client.post("/stripe-webhook", content=b"{}", headers={"Stripe-Signature": "t=1,v1=forged"})

    assert r.status_code == 400


def test_stripe_webhook_unknown_intent(client):
    event = {"id": "evt_2", "type": "payment_intent.succeeded", "data": {"object": {"id": "pi_404"}}}

    r = client.post("/stripe-webhook", content=json.dumps(event), headers={"Stripe-Signature": VALID_SIGNATURE})

    assert r.status_code == 404


def test_stripe_webhook_acknowledges_other_event_types(client):
    order_id = client.get("/payment-sheet").json()["orderId"]
    event = {"id": "evt_3", "type": "customer.created", "data": {"object": {"id": "cus_1", "object": "customer"}}}

    r = client.post("/stripe-webhook", content=json.dumps(event), headers={"Stripe-Signature": VALID_SIGNATURE})

    assert r.status_code == 200
    assert r.json() == {"ok": True, "status": None, "applied": False}
    assert client.get(f"/orders/{order_id}").json()["status"] == "created"


# ---------------------------------------------------------------------
# PayPal
# ---------------------------------------------------------------------

def test_paypal_order_passes_provider_response_through(client, fake_paypal):
    r = client.get("/paypal-order")

    assert r.status_code == 201
    body = r.json()
    assert body["id"] in fake_paypal.orders
    assert body["status"] == "PAYER_ACTION_REQUIRED"
    order_id = r.headers["X-Order-Id"]
    assert client.get(f"/orders/{order_id}").json()["status"] == "pending_authorization"


def test_paypal_order_provider_unavailable(client, fake_paypal):
    fake_paypal.offline = True

    r = client.get("/paypal-order")

    assert r.status_code == 502
    assert r.json()["detail"]["error"] == "Payment provider is unavailable. Please try again."


def test_paypal_success_renders_bridge(client, fake_paypal):
    r = client.get("/paypal-order")
    token, order_id = r.json()["id"], r.headers["X-Order-Id"]

    page = client.get("/paypal-success", params={"token": token, "PayerID": "QYR5Z8XDVJNXQ"})

    assert page.status_code == 200
    assert page.headers["content-type"].startswith("text/html")
    assert "Payment Success" in page.text
    assert f"bookingId={order_id}" in page.text
    assert "QYR5Z8XDVJNXQ" in page.text
    assert fake_paypal.captures == [token]
    assert client.get(f"/orders/{order_id}").json()["status"] == "captured"


def test_paypal_cancel_renders_bridge(client, fake_paypal):
    r = client.get("/paypal-order")
    token, order_id = r.json()["id"], r.headers["X-Order-Id"]

    page = client.get("/paypal-cancel", params={"token": token})

    assert page.status_code == 200
    assert "Payment Cancelled" in page.text
    assert fake_paypal.captures == []
    assert client.get(f"/orders/{order_id}").json()["status"] == "cancelled"


def test_paypal_success_unknown_token(client, count_orders):
    page = client.get("/paypal-success", params={"token": "NOPE", "PayerID": "X"})

    assert page.status_code == 404
    assert "Order not found" in page.text
    assert count_orders() == 0


def test_paypal_success_missing_token(client):
    assert client.get("/paypal-success").status_code == 400


# ---------------------------------------------------------------------
# NICEPay
# ---------------------------------------------------------------------

def test_nicepay_order(client, fake_nicepay):
    r = client.get("/nicepay-order")

    assert r.status_code == 200
    body = r.json()
    assert body["resultCd"] == "0000"
    assert body["nicePayUrl"].endswith(f"?tXid={body['tXid']}")
    assert fake_nicepay.registrations[0]["referenceNo"] == body["orderId"]
    assert fake_nicepay.registrations[0]["goodsNm"] == "Jhon Doe"


def test_nicepay_order_rejected(client, fake_nicepay):
    fake_nicepay.response = (200, {"resultCd": "9201", "resultMsg": "Invalid Merchant Token"})

    r = client.get("/nicepay-order")

    assert r.status_code == 402


def test_nicepay_success_form_post(client, settings):
    body = client.get("/nicepay-order").json()

    page = client.post("/nicepay-success", data=nicepay_callback(settings, body["tXid"], 10000))

    assert page.status_code == 200
    assert "Payment Success" in page.text
    assert f"bookingId={body['orderId']}" in page.text
    assert client.get(f"/orders/{body['orderId']}").json()["status"] == "captured"


def test_nicepay_notify_then_callback(client, settings):
    body = client.get("/nicepay-order").json()
    notification = nicepay_callback(settings, body["tXid"], 10000)
    notification.pop("resultCd")
    notification["status"] = "0"

    notified = client.post("/nicepay-notify", json=notification)
    page = client.post("/nicepay-success", data=nicepay_callback(settings, body["tXid"], 10000))

    assert notified.json() == {"ok": True, "status": "captured"}
    assert page.status_code == 200
    assert "Payment Success" in page.text


def test_nicepay_notify_forged(client, settings):
    body = client.get("/nicepay-order").json()
    payload = nicepay_callback(settings, body["tXid"], 10000)
    payload["merchantToken"] = "f" * 64

    r = client.post("/nicepay-notify", data=payload)

    assert r.status_code == 400
    assert client.get(f"/orders/{body['orderId']}").json()["status"] == "pending_authorization"


def test_nicepay_success_unsigned_post_does_not_capture(client):
    body = client.get("/nicepay-order").json()

    page = client.post("/nicepay-success", data={"tXid": body["tXid"], "resultCd": "0000"})

    assert page.status_code == 400
    assert "Payment Failed" in page.text
    assert client.get(f"/orders/{body['orderId']}").json()["status"] == "pending_authorization"


def test_nicepay_notify_unsigned_post_does_not_capture(client):
    body = client.get("/nicepay-order").json()

    r = client.post("/nicepay-notify", data={"tXid": body["tXid"], "amt": "10000", "status": "0"})

    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "validation_error"
    assert client.get(f"/orders/{body['orderId']}").json()["status"] == "pending_authorization"


def test_nicepay_success_invalid_json(client):
    page = client.post("/nicepay-success", content=b"[1, 2]", headers={"Content-Type": "application/json"})

    assert page.status_code == 400
    assert "Payment Failed" in page.text


# ---------------------------------------------------------------------
# Orders / configuration
# ---------------------------------------------------------------------

def test_unknown_order(client):
    r = client.get("/orders/does-not-exist")

    assert r.status_code == 404
    assert r.json()["detail"] == {"error": "Order not found", "code": "not_found"}


def test_unconfigured_provider_is_503(settings):
    services = build_services(settings, dispatcher=PSPDispatcher({}))
    try:
        with TestClient(create_app(settings, services)) as c:
            assert c.get("/paypal-order").status_code == 503
            assert c.get("/payment-sheet").status_code == 503
            assert c.post("/stripe-webhook", content=b"{}").status_code == 503
    finally:
        services.engine.dispose()


def test_dispatcher_skips_providers_without_credentials(settings):
    partial = settings.model_copy(update={"STRIPE_SECRET_KEY": None, "PAYPAL_CLIENT_SECRET": None})

    dispatcher = PSPDispatcher.from_settings(partial)

    assert not dispatcher.has("card_direct")
    assert not dispatcher.has("redirect_wallet")
    assert dispatcher.has("gateway_registration")
