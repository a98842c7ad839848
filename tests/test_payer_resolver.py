import threading

import stripe

from paybridge.errors import ProviderErrorKind, ValidationError
from paybridge.services.payer_service import normalize_identity


def test_normalize_identity():
    assert normalize_identity("  Leo@Gmail.COM ") == "leo@gmail.com"
    assert normalize_identity("") is None
    assert normalize_identity(None) is None


def test_creates_customer_once_and_caches(services, stripe_adapter, fake_stripe, store):
    resolver = services.orchestrator.payer_resolver

    first = resolver.resolve(stripe_adapter, "leo@gmail.com")
    second = resolver.resolve(stripe_adapter, "LEO@gmail.com")

    assert first.ok and second.ok
    assert first.value == second.value == "cus_1"
    assert len(fake_stripe.customer_creates) == 1
    assert fake_stripe.customer_creates[0]["idempotency_key"].startswith("payer-")
    assert store.get_payer_reference("card_direct", "leo@gmail.com") == "cus_1"


def test_reuses_customer_already_known_to_provider(services, stripe_adapter, fake_stripe):
    fake_stripe.customers["leo@gmail.com"] = "cus_existing"

    result = services.orchestrator.payer_resolver.resolve(stripe_adapter, "leo@gmail.com")

    assert result.value == "cus_existing"
    assert fake_stripe.customer_creates == []


def test_concurrent_resolution_creates_single_customer(services, stripe_adapter, fake_stripe, store):
    resolver = services.orchestrator.payer_resolver
    results = []
    barrier = threading.Barrier(6)

    def worker():
        barrier.wait()
        results.append(resolver.resolve(stripe_adapter, "leo@gmail.com"))

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 6
    assert {r.value for r in results} == {"cus_1"}
    assert len(fake_stripe.customer_creates) == 1
    assert store.count_payer_references("card_direct", "leo@gmail.com") == 1


def test_invalid_identity_is_rejected_without_provider_call(services, stripe_adapter, fake_stripe):
    result = services.orchestrator.payer_resolver.resolve(stripe_adapter, "not-an-email")

    assert isinstance(result.error, ValidationError)
    assert fake_stripe.customer_creates == []


def test_provider_lookup_failure_is_reported(services, stripe_adapter, fake_stripe, store):
    fake_stripe.lookup_error = stripe.APIConnectionError("Network is unreachable")

    result = services.orchestrator.payer_resolver.resolve(stripe_adapter, "leo@gmail.com")

    assert not result.ok
    assert result.error.kind == ProviderErrorKind.NETWORK
    assert store.get_payer_reference("card_direct", "leo@gmail.com") is None
