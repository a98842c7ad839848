"""
Payer Reference Resolver: get-or-create a provider customer per payer identity.
"""
import hashlib
from typing import Optional

from paybridge.errors import ProviderError, ValidationError
from paybridge.logging_config import get_logger
from paybridge.result import Result
from .locks import KeyedLock
from .order_store import OrderStore

logger = get_logger(__name__)


def normalize_identity(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    email = email.strip().lower()
    return email or None


class PayerResolver:
    """
    Single-flight get-or-create keyed by (provider, identity).

    Order of lookups: local cache table, then the provider's own directory
    (so a customer created before the cache existed is reused), then create
    with an idempotency key derived from the identity.
    """

    def __init__(self, store: OrderStore, locks: KeyedLock):
        self.store = store
        self.locks = locks

    def resolve(self, adapter, email: Optional[str]) -> Result[str, ProviderError]:
        identity = normalize_identity(email)
        if not identity or "@" not in identity:
            return Result.failure(ValidationError("A valid payer email is required", field="payer_email"))

        provider = adapter.provider.value
        with self.locks.hold(f"payer:{provider}:{identity}"):
            cached = self.store.get_payer_reference(provider, identity)
            if cached:
                return Result.success(cached)

            found = adapter.lookup_payer(identity)
            if not found.ok:
                return found

            if found.value:
                reference = found.value
                logger.info("payer_reference_found", provider=provider, reference=reference)
            else:
                digest = hashlib.sha256(identity.encode("utf-8")).hexdigest()[:32]
                created = adapter.create_payer(identity, idempotency_key=f"payer-{digest}")
                if not created.ok:
                    return created
                reference = created.value

            return Result.success(self.store.save_payer_reference(provider, identity, reference))
