"""
Order Orchestrator: opens an order, drives the matching adapter and records
the resulting state.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError

from paybridge.errors import (
    NotFoundError,
    PaymentError,
    ProviderError,
    ProviderNotConfiguredError,
    StateConflictError,
    ValidationError,
)
from paybridge.logging_config import get_logger
from paybridge.models import Order
from paybridge.psp.adapter import PaymentProvider, is_absolute_url
from paybridge.psp.dispatcher import PSPDispatcher
from paybridge.result import Result
from paybridge.schemas_pkg import PaymentRequest
from .locks import KeyedLock
from .order_state import OrderStatus
from .order_store import OrderStore
from .payer_service import PayerResolver, normalize_identity

logger = get_logger(__name__)


@dataclass
class SubmitOutcome:
    order: Order
    payload: Dict[str, Any]
    status_code: int
    redirect_url: Optional[str] = None
    replayed: bool = False


class OrderOrchestrator:
    def __init__(
        self,
        store: OrderStore,
        dispatcher: PSPDispatcher,
        payer_resolver: PayerResolver,
        locks: KeyedLock,
        base_url: str,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.payer_resolver = payer_resolver
        self.locks = locks
        self.base_url = base_url.rstrip("/")

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _with_defaults(self, request: PaymentRequest) -> PaymentRequest:
        return request.model_copy(update={
            "currency": (request.currency or "").strip().upper(),
            "return_url": request.return_url or f"{self.base_url}/paypal-success",
            "cancel_url": request.cancel_url or f"{self.base_url}/paypal-cancel",
            "callback_url": request.callback_url or f"{self.base_url}/nicepay-success",
            "notify_url": request.notify_url or f"{self.base_url}/nicepay-notify",
        })

    def validate(self, request: PaymentRequest, adapter) -> Optional[ValidationError]:
        if isinstance(request.amount, bool) or not isinstance(request.amount, int) or request.amount <= 0:
            return ValidationError("Amount must be a positive integer in minor units", field="amount")

        currency = request.currency
        if len(currency) != 3 or not currency.isalpha():
            return ValidationError("Currency must be a 3-letter ISO code", field="currency")
        if not adapter.supports_currency(currency):
            return ValidationError(f"Currency {currency} is not supported by this payment method", field="currency")

        if request.idempotency_key is not None and not (0 < len(request.idempotency_key) <= 255):
            return ValidationError("Idempotency key must be 1-255 characters", field="idempotency_key")

        provider = adapter.provider
        if provider == PaymentProvider.CARD_DIRECT:
            identity = normalize_identity(request.payer_email)
            if not identity or "@" not in identity:
                return ValidationError("A valid payer email is required", field="payer_email")

        if provider == PaymentProvider.REDIRECT_WALLET:
            for field in ("return_url", "cancel_url"):
                if not is_absolute_url(getattr(request, field)):
                    return ValidationError(f"{field} must be an absolute URL", field=field)

        if provider == PaymentProvider.GATEWAY_REGISTRATION:
            if not is_absolute_url(request.callback_url):
                return ValidationError("callback_url must be an absolute URL", field="callback_url")
            if request.items:
                if any(item.amount <= 0 or item.quantity <= 0 for item in request.items):
                    return ValidationError("Cart items need a positive amount and quantity", field="items")
                total = sum(item.amount * item.quantity for item in request.items)
                if total != request.amount:
                    return ValidationError("Cart total does not match the order amount", field="items")

        return None

    # ------------------------------------------------------------------
    # Submit
    # ------------------------------------------------------------------

    def submit(self, request: PaymentRequest) -> Result[SubmitOutcome, PaymentError]:
        """
        Open an order with the provider named in ``request``.

        Validation failures create nothing and never reach the adapter. A
        provider failure leaves the order ``failed``, never ``created``.
        Resubmitting with the same idempotency key returns the first order.
        """
        try:
            adapter = self.dispatcher.get_adapter(request.provider)
        except ProviderNotConfiguredError as e:
            logger.warning("order_submit_unavailable", provider=request.provider)
            return Result.failure(e)

        request = self._with_defaults(request)
        error = self.validate(request, adapter)
        if error is not None:
            logger.info("order_submit_invalid", provider=request.provider, field=error.field, reason=error.message)
            return Result.failure(error)

        key = request.idempotency_key
        if not key:
            return self._open(request, adapter)

        with self.locks.hold(f"idem:{key}"):
            existing = self.store.get_by_idempotency_key(key)
            if existing is not None:
                return self._replay(existing, request)
            return self._open(request, adapter)

    def _replay(self, order: Order, request: PaymentRequest) -> Result[SubmitOutcome, PaymentError]:
        if (order.provider, order.amount, order.currency) != (request.provider, request.amount, request.currency):
            return Result.failure(ValidationError(
                "Idempotency key was already used for a different request",
                field="idempotency_key",
            ))
        if order.status == OrderStatus.FAILED.value or order.client_payload is None:
            return Result.failure(StateConflictError(order.order_id, order.status, OrderStatus.PENDING_AUTHORIZATION.value))

        logger.info("order_submit_replayed", order_id=order.order_id, status=order.status)
        return Result.success(SubmitOutcome(
            order=order,
            payload=order.client_payload,
            status_code=order.provider_status_code or 200,
            redirect_url=order.redirect_url,
            replayed=True,
        ))

    def _open(self, request: PaymentRequest, adapter) -> Result[SubmitOutcome, PaymentError]:
        order, created = self.store.create_order(
            provider=adapter.provider.value,
            amount=request.amount,
            currency=request.currency,
            payer_identity=normalize_identity(request.payer_email),
            idempotency_key=request.idempotency_key,
        )
        if not created:
            return self._replay(order, request)

        order_id = order.order_id
        with self.locks.hold(f"order:{order_id}"):
            payer_reference = None
            if adapter.provider == PaymentProvider.CARD_DIRECT:
                payer = self.payer_resolver.resolve(adapter, request.payer_email)
                if not payer.ok:
                    return self._fail(order_id, payer.error)
                payer_reference = payer.value

            res = adapter.create_order(request, order_id, payer_reference=payer_reference)
            if not res.ok:
                return self._fail(order_id, res.error)
            handle = res.value

            try:
                self.store.link_external_ref(order_id, adapter.provider.value, handle.external_id)
            except IntegrityError:
                logger.error("external_reference_collision", order_id=order_id, external_id=handle.external_id)
                return self._fail(order_id, ProviderError.malformed(
                    "Provider returned an identifier already bound to another order",
                    provider=adapter.name,
                ))

            order = self.store.save_provider_response(
                order_id,
                client_payload=handle.client_payload,
                status_code=handle.status_code,
                redirect_url=handle.redirect_url,
                payer_reference=handle.payer_reference or payer_reference,
            )
            if adapter.requires_redirect:
                order = self.store.transition(order_id, OrderStatus.PENDING_AUTHORIZATION, source="submit")

        logger.info(
            "order_submitted",
            order_id=order_id,
            provider=order.provider,
            external_id=handle.external_id,
            status=order.status,
        )
        return Result.success(SubmitOutcome(
            order=order,
            payload=handle.client_payload,
            status_code=handle.status_code,
            redirect_url=handle.redirect_url,
        ))

    def _fail(self, order_id: str, error: PaymentError) -> Result[SubmitOutcome, PaymentError]:
        self.store.transition(order_id, OrderStatus.FAILED, source="submit", detail=error.message)
        logger.warning(
            "order_submit_failed",
            order_id=order_id,
            error_code=error.code,
            kind=getattr(getattr(error, "kind", None), "value", None),
            error=error.message,
        )
        return Result.failure(error)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> Result[Order, PaymentError]:
        order = self.store.get(order_id)
        if order is None:
            return Result.failure(NotFoundError(order_id))
        return Result.success(order)
