import json
import os
import threading
from types import SimpleNamespace

# The module-level app in paybridge.main is built on import; keep it off disk.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

import httpx
import pytest
import stripe
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from paybridge.config import Settings
from paybridge.deps import build_services
from paybridge.models import Order
from paybridge.psp.adapter import PaymentProvider
from paybridge.psp.dispatcher import PSPDispatcher
from paybridge.psp.nicepay_adapter import NicePayAdapter, merchant_token
from paybridge.psp.paypal_adapter import PayPalAdapter
from paybridge.psp.stripe_adapter import StripeAdapter
from paybridge.schemas_pkg import PaymentRequest

PAYPAL_BASE = "https://api-m.sandbox.paypal.com"
NICEPAY_BASE = "https://dev.nicepay.co.id"
VALID_SIGNATURE = "t=1700000000,v1=valid"


# ---------------------------------------------------------------------
# Provider fakes
# ---------------------------------------------------------------------

class FakeStripe:
    """Stands in for the StripeClient services the adapter calls."""

    def __init__(self):
        self.customers = {}
        self.customer_creates = []
        self.intents = []
        self.intent_options = []
        self.ephemeral_keys = []
        self.intent_error = None
        self.lookup_error = None
        self._lock = threading.Lock()

    def client(self):
        return SimpleNamespace(
            customers=SimpleNamespace(list=self.customer_list, create=self.customer_create),
            ephemeral_keys=SimpleNamespace(create=self.ephemeral_key_create),
            payment_intents=SimpleNamespace(create=self.payment_intent_create),
            construct_event=self.construct_event,
        )

    def customer_list(self, params=None, options=None):
        if self.lookup_error:
            raise self.lookup_error
        customer_id = self.customers.get(params["email"])
        return SimpleNamespace(data=[SimpleNamespace(id=customer_id)] if customer_id else [])

    def customer_create(self, params=None, options=None):
        with self._lock:
            self.customer_creates.append({**params, **(options or {})})
            customer_id = f"cus_{len(self.customer_creates)}"
            self.customers[params["email"]] = customer_id
        return SimpleNamespace(id=customer_id)

    def ephemeral_key_create(self, params=None, options=None):
        self.ephemeral_keys.append({"params": params, "options": options})
        return SimpleNamespace(secret=f"ek_test_{params['customer']}")

    def payment_intent_create(self, params=None, options=None):
        if self.intent_error:
            raise self.intent_error
        with self._lock:
            self.intents.append(params)
            self.intent_options.append(options)
            intent_id = f"pi_{len(self.intents)}"
        return SimpleNamespace(id=intent_id, client_secret=f"{intent_id}_secret_abc")

    def construct_event(self, payload, sig_header, secret):
        if sig_header != VALID_SIGNATURE or secret != "whsec_test":
            raise stripe.SignatureVerificationError("No signatures found matching the expected signature", sig_header)
        return json.loads(payload)


class FakePayPal:
    """Orders v2 sandbox behind httpx.MockTransport."""

    def __init__(self):
        self.requests = []
        self.orders = {}
        self.captures = []
        self.token_calls = 0
        self.create_response = None
        self.capture_status = "COMPLETED"
        self.offline = False

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.offline:
            raise httpx.ConnectError("connection refused", request=request)

        path = request.url.path
        if path == "/v1/oauth2/token":
            self.token_calls += 1
            return httpx.Response(200, json={"access_token": "A21AAF", "token_type": "Bearer", "expires_in": 32400})

        if path == "/v2/checkout/orders":
            if self.create_response is not None:
                status_code, body = self.create_response
                return httpx.Response(status_code, json=body)
            token = f"5O190127TN36471{len(self.orders):02d}"
            self.orders[token] = json.loads(request.content)
            return httpx.Response(201, json={
                "id": token,
                "status": "PAYER_ACTION_REQUIRED",
                "links": [
                    {"href": f"{PAYPAL_BASE}/v2/checkout/orders/{token}", "rel": "self", "method": "GET"},
                    {"href": f"https://www.sandbox.paypal.com/checkoutnow?token={token}", "rel": "payer-action", "method": "GET"},
                ],
            })

        if path.endswith("/capture"):
            token = path.split("/")[-2]
            self.captures.append(token)
            return httpx.Response(201, json={
                "id": token,
                "status": self.capture_status,
                "purchase_units": [{"payments": {"captures": [{"id": "3C679366HH908993F", "status": "COMPLETED"}]}}],
            })

        return httpx.Response(404, json={"name": "RESOURCE_NOT_FOUND", "message": "The specified resource does not exist."})

    def order_requests(self):
        return [r for r in self.requests if r.url.path == "/v2/checkout/orders"]


class FakeNicePay:
    """Redirect v2 registration endpoint behind httpx.MockTransport."""

    def __init__(self):
        self.registrations = []
        self.response = None
        self.offline = False

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.offline:
            raise httpx.ReadTimeout("timed out", request=request)
        payload = json.loads(request.content)
        self.registrations.append(payload)
        if self.response is not None:
            status_code, body = self.response
            return httpx.Response(status_code, json=body)
        tx_id = f"IONPAYTEST00202501011200{len(self.registrations):04d}"
        return httpx.Response(200, json={
            "resultCd": "0000",
            "resultMsg": "SUCCESS",
            "tXid": tx_id,
            "referenceNo": payload["referenceNo"],
            "paymentURL": f"{NICEPAY_BASE}/nicepay/redirect/v2/payment",
            "amt": payload["amt"],
            "transDt": "20250101",
            "transTm": "120000",
            "description": payload["description"],
        })


def nicepay_callback(settings, tx_id, amount, result_code="0000", **extra):
    """Signed callback form as NICEPay posts it to callBackUrl."""
    timestamp = "20250101120500"
    payload = {
        "resultCd": result_code,
        "resultMsg": "SUCCESS" if result_code == "0000" else "Payment failed",
        "tXid": tx_id,
        "referenceNo": extra.pop("referenceNo", ""),
        "amt": str(amount),
        "timeStamp": timestamp,
        "merchantToken": merchant_token(
            timestamp, settings.NICEPAY_MERCHANT_ID, tx_id, str(amount), settings.NICEPAY_MERCHANT_KEY,
        ),
    }
    payload.update(extra)
    return payload


# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path):
    return Settings(
        ENVIRONMENT="test",
        DATABASE_URL=f"sqlite:///{tmp_path / 'paybridge.db'}",
        BASE_URL="https://pay.example.test",
        STRIPE_SECRET_KEY="sk_test_123",
        STRIPE_WEBHOOK_SECRET="whsec_test",
        PAYPAL_CLIENT_ID="paypal-client",
        PAYPAL_CLIENT_SECRET="paypal-secret",
    )


@pytest.fixture
def fake_stripe():
    return FakeStripe()


@pytest.fixture
def fake_paypal():
    return FakePayPal()


@pytest.fixture
def fake_nicepay():
    return FakeNicePay()


@pytest.fixture
def stripe_adapter(settings, fake_stripe):
    return StripeAdapter(
        api_key=settings.STRIPE_SECRET_KEY,
        api_secret=settings.STRIPE_WEBHOOK_SECRET,
        timeout=1.0,
        client=fake_stripe.client(),
    )


@pytest.fixture
def paypal_adapter(settings, fake_paypal):
    return PayPalAdapter(
        api_key=settings.PAYPAL_CLIENT_ID,
        api_secret=settings.PAYPAL_CLIENT_SECRET,
        timeout=1.0,
        api_base=PAYPAL_BASE,
        client=fake_paypal.client(),
    )


@pytest.fixture
def nicepay_adapter(settings, fake_nicepay):
    return NicePayAdapter(
        api_key=settings.NICEPAY_MERCHANT_ID,
        api_secret=settings.NICEPAY_MERCHANT_KEY,
        timeout=1.0,
        api_base=NICEPAY_BASE,
        client=fake_nicepay.client(),
    )


@pytest.fixture
def dispatcher(stripe_adapter, paypal_adapter, nicepay_adapter):
    return PSPDispatcher({
        PaymentProvider.CARD_DIRECT: stripe_adapter,
        PaymentProvider.REDIRECT_WALLET: paypal_adapter,
        PaymentProvider.GATEWAY_REGISTRATION: nicepay_adapter,
    })


@pytest.fixture
def services(settings, dispatcher):
    built = build_services(settings, dispatcher=dispatcher)
    yield built
    built.engine.dispose()


@pytest.fixture
def store(services):
    return services.store


@pytest.fixture
def orchestrator(services):
    return services.orchestrator


@pytest.fixture
def callbacks(services):
    return services.callbacks


@pytest.fixture
def client(settings, services):
    from paybridge.main import create_app

    with TestClient(create_app(settings, services)) as c:
        yield c


@pytest.fixture
def count_orders(services):
    def _count(**filters):
        with Session(services.engine) as db:
            query = db.query(Order)
            for name, value in filters.items():
                query = query.filter(getattr(Order, name) == value)
            return query.count()
    return _count


@pytest.fixture
def card_request():
    def _build(**overrides):
        data = dict(provider="card_direct", amount=1000, currency="usd", payer_email="leo@gmail.com")
        data.update(overrides)
        return PaymentRequest(**data)
    return _build


@pytest.fixture
def wallet_request():
    def _build(**overrides):
        data = dict(provider="redirect_wallet", amount=10000, currency="USD", payer_email="leo-personal@gmail.com")
        data.update(overrides)
        return PaymentRequest(**data)
    return _build


@pytest.fixture
def gateway_request():
    def _build(**overrides):
        data = dict(
            provider="gateway_registration",
            amount=10000,
            currency="IDR",
            payer_email="jhondoe@gmail.com",
            description="Test Transaction Nicepay",
        )
        data.update(overrides)
        return PaymentRequest(**data)
    return _build
