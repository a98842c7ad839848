"""
Callback Router: maps provider redirects and notifications onto order
transitions.

Every handler resolves the order through its external reference, takes the
order lock, and applies at most one transition sequence per inbound callback
id. Deliveries for an order that is already terminal are no-op successes.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from paybridge.errors import (
    NotFoundError,
    PaymentError,
    ProviderNotConfiguredError,
    StateConflictError,
    ValidationError,
)
from paybridge.logging_config import get_logger
from paybridge.models import Order
from paybridge.psp.adapter import PaymentProvider
from paybridge.psp.dispatcher import PSPDispatcher
from paybridge.result import Result
from .locks import KeyedLock
from .order_state import OrderStatus, is_terminal
from .order_store import OrderStore

logger = get_logger(__name__)

STATUS_MESSAGES = {
    OrderStatus.CREATED.value: "Payment has not been completed yet",
    OrderStatus.PENDING_AUTHORIZATION.value: "Payment is being processed",
    OrderStatus.AUTHORIZED.value: "Payment is being processed",
    OrderStatus.CAPTURED.value: "Payment completed successfully",
    OrderStatus.CANCELLED.value: "Payment was cancelled by user",
    OrderStatus.FAILED.value: "Payment could not be completed",
}


CARD_EVENT_TARGETS = {
    "payment_intent.succeeded": OrderStatus.CAPTURED,
    "payment_intent.canceled": OrderStatus.CANCELLED,
}
CARD_EVENTS_RECORDED = frozenset(["payment_intent.payment_failed"])


@dataclass
class CallbackOutcome:
    order: Optional[Order]       # None for acknowledged events that concern no order
    applied: bool
    message: str
    payer_id: Optional[str] = None

    @property
    def status(self) -> Optional[str]:
        return self.order.status if self.order is not None else None


class CallbackRouter:
    def __init__(self, store: OrderStore, dispatcher: PSPDispatcher, locks: KeyedLock):
        self.store = store
        self.dispatcher = dispatcher
        self.locks = locks

    def _outcome(self, order: Order, applied: bool, payer_id: Optional[str] = None) -> CallbackOutcome:
        return CallbackOutcome(
            order=order,
            applied=applied,
            message=STATUS_MESSAGES.get(order.status, ""),
            payer_id=payer_id or order.payer_id,
        )

    def _resolve(self, provider: PaymentProvider, external_id: Optional[str]) -> Result[Order, PaymentError]:
        if not external_id:
            return Result.failure(ValidationError("Callback is missing the order reference", field="token"))
        order = self.store.find_by_external_ref(provider.value, external_id)
        if order is None:
            logger.warning("callback_unknown_order", provider=provider.value, external_id=external_id)
            return Result.failure(NotFoundError(external_id))
        return Result.success(order)

    # ------------------------------------------------------------------
    # RedirectWallet (PayPal)
    # ------------------------------------------------------------------

    def wallet_success(self, token: Optional[str], payer_id: Optional[str]) -> Result[CallbackOutcome, PaymentError]:
        """Payer approved at PayPal: authorize, capture, and report the final status."""
        found = self._resolve(PaymentProvider.REDIRECT_WALLET, token)
        if not found.ok:
            return found
        order_id = found.value.order_id

        with self.locks.hold(f"order:{order_id}"):
            order = self.store.get_or_raise(order_id)
            if is_terminal(order.status):
                return Result.success(self._outcome(order, applied=False, payer_id=payer_id))

            first = self.store.record_callback(
                "paypal", "success", f"paypal:success:{token}", order_id,
                {"token": token, "PayerID": payer_id},
            )
            if not first:
                return Result.success(self._outcome(order, applied=False, payer_id=payer_id))

            try:
                order = self.store.transition(order_id, OrderStatus.AUTHORIZED, source="paypal_success", payer_id=payer_id)
            except StateConflictError as e:
                return Result.failure(e)

            try:
                adapter = self.dispatcher.get_adapter(PaymentProvider.REDIRECT_WALLET)
            except ProviderNotConfiguredError as e:
                order = self.store.transition(order_id, OrderStatus.FAILED, source="paypal_capture", detail=e.message)
                return Result.success(self._outcome(order, applied=True, payer_id=payer_id))

            receipt = adapter.capture_order(token)
            if receipt.ok:
                order = self.store.transition(
                    order_id, OrderStatus.CAPTURED, source="paypal_capture",
                    detail=receipt.value.capture_id,
                )
            else:
                logger.warning("paypal_capture_failed", order_id=order_id, error=receipt.error.message)
                order = self.store.transition(
                    order_id, OrderStatus.FAILED, source="paypal_capture",
                    detail=receipt.error.message,
                )

        return Result.success(self._outcome(order, applied=True, payer_id=payer_id))

    def wallet_cancel(self, token: Optional[str]) -> Result[CallbackOutcome, PaymentError]:
        """Payer cancelled at PayPal. No capture is attempted."""
        found = self._resolve(PaymentProvider.REDIRECT_WALLET, token)
        if not found.ok:
            return found
        order_id = found.value.order_id

        with self.locks.hold(f"order:{order_id}"):
            order = self.store.get_or_raise(order_id)
            if is_terminal(order.status):
                return Result.success(self._outcome(order, applied=False))

            if not self.store.record_callback("paypal", "cancel", f"paypal:cancel:{token}", order_id, {"token": token}):
                return Result.success(self._outcome(order, applied=False))

            try:
                order = self.store.transition(order_id, OrderStatus.CANCELLED, source="paypal_cancel")
            except StateConflictError as e:
                return Result.failure(e)

        logger.info("payment_cancelled", order_id=order_id, token=token)
        return Result.success(self._outcome(order, applied=True))

    # ------------------------------------------------------------------
    # GatewayRegistration (NICEPay)
    # ------------------------------------------------------------------

    def gateway_callback(self, payload: Dict[str, Any], channel: str = "callback") -> Result[CallbackOutcome, PaymentError]:
        """
        Apply a NICEPay result, delivered either by browser callback or by
        server notification. The same (tXid, result) is applied once across
        both channels.
        """
        try:
            adapter = self.dispatcher.get_adapter(PaymentProvider.GATEWAY_REGISTRATION)
        except ProviderNotConfiguredError as e:
            return Result.failure(e)

        parsed = adapter.parse_callback(payload)
        if not parsed.ok:
            logger.warning("nicepay_callback_invalid", channel=channel, reason=parsed.error.message)
            return parsed
        cb = parsed.value

        found = self._resolve(PaymentProvider.GATEWAY_REGISTRATION, cb.tx_id)
        if not found.ok:
            return found
        order_id = found.value.order_id

        if cb.amount != found.value.amount:
            logger.warning("nicepay_callback_amount_mismatch", order_id=order_id, expected=found.value.amount, received=cb.amount)
            return Result.failure(ValidationError("Callback amount does not match the order", field="amt"))

        with self.locks.hold(f"order:{order_id}"):
            order = self.store.get_or_raise(order_id)
            if is_terminal(order.status):
                return Result.success(self._outcome(order, applied=False))

            target = OrderStatus(cb.status)
            if target == OrderStatus.PENDING_AUTHORIZATION:
                return Result.success(self._outcome(order, applied=False))

            callback_id = f"nicepay:{cb.tx_id}:{cb.result_code}"
            if not self.store.record_callback("nicepay", channel, callback_id, order_id, dict(payload)):
                return Result.success(self._outcome(order, applied=False))

            source = f"nicepay_{channel}"
            try:
                if target == OrderStatus.CAPTURED:
                    if order.status == OrderStatus.PENDING_AUTHORIZATION.value:
                        order = self.store.transition(order_id, OrderStatus.AUTHORIZED, source=source)
                    order = self.store.transition(order_id, OrderStatus.CAPTURED, source=source, detail=cb.result_message or None)
                else:
                    order = self.store.transition(order_id, target, source=source, detail=cb.result_message or cb.result_code)
            except StateConflictError as e:
                return Result.failure(e)

        return Result.success(self._outcome(order, applied=True))

    # ------------------------------------------------------------------
    # CardDirect (Stripe webhook)
    # ------------------------------------------------------------------

    def card_event(self, event: Dict[str, Any]) -> Result[CallbackOutcome, PaymentError]:
        """
        Apply a verified Stripe event. ``payment_intent.payment_failed`` is
        recorded only: the intent returns to ``requires_payment_method`` and
        the payment sheet may retry it. Other event types are acknowledged
        without touching any order, so Stripe stops redelivering them.
        """
        event_type = event.get("type")
        if event_type not in CARD_EVENT_TARGETS and event_type not in CARD_EVENTS_RECORDED:
            logger.info("stripe_event_ignored", event_id=event.get("event_id"), event_type=event_type)
            return Result.success(CallbackOutcome(order=None, applied=False, message="Event ignored"))

        found = self._resolve(PaymentProvider.CARD_DIRECT, event.get("object_id"))
        if not found.ok:
            return found
        order_id = found.value.order_id

        with self.locks.hold(f"order:{order_id}"):
            order = self.store.get_or_raise(order_id)
            if is_terminal(order.status):
                return Result.success(self._outcome(order, applied=False))

            if not self.store.record_callback("stripe", event_type, f"stripe:{event['event_id']}", order_id):
                return Result.success(self._outcome(order, applied=False))

            target = CARD_EVENT_TARGETS.get(event_type)
            if target is None:
                logger.info("stripe_event_recorded", order_id=order_id, event_type=event_type, failure=event.get("failure_message"))
                return Result.success(self._outcome(order, applied=False))

            try:
                order = self.store.transition(order_id, target, source="stripe_webhook", detail=event["event_id"])
            except StateConflictError as e:
                return Result.failure(e)

        return Result.success(self._outcome(order, applied=True))
