"""Stripe PSP Adapter Implementation (CardDirect)."""
import stripe
from typing import Dict, Any, Optional

from paybridge.errors import ProviderError, ValidationError
from paybridge.logging_config import get_logger
from paybridge.result import Result
from .adapter import PSPAdapter, PaymentProvider, ProviderOrderHandle

logger = get_logger(__name__)


class StripeAdapter(PSPAdapter):
    """
    Stripe payment sheet adapter.

    Opens a customer session (ephemeral key) and a payment intent; the mobile
    SDK confirms the intent client-side, so there is no capture step here.
    """

    provider = PaymentProvider.CARD_DIRECT
    name = "stripe"
    supported_currencies = frozenset(["USD", "EUR", "GBP", "SGD", "AUD", "JPY", "VND", "IDR"])

    def __init__(
        self,
        api_key: str,
        api_secret: Optional[str] = None,
        timeout: float = 3.0,
        api_version: str = "2025-07-30.basil",
        client: Optional[stripe.StripeClient] = None,
        **kwargs
    ):
        """Initialize Stripe adapter with its own client and HTTP timeout."""
        super().__init__(api_key, api_secret, timeout=timeout, **kwargs)
        self.webhook_secret = api_secret  # Stripe webhook signing secret
        self.api_version = api_version
        self.client = client or stripe.StripeClient(
            api_key,
            http_client=stripe.RequestsClient(timeout=timeout),
        )

    # ------------------------------------------------------------------
    # Payer references
    # ------------------------------------------------------------------

    def lookup_payer(self, email: str) -> Result[Optional[str], ProviderError]:
        """Find an existing Stripe customer for ``email``."""
        try:
            customers = self.client.customers.list(params={"email": email, "limit": 1})
            data = customers.data
        except stripe.StripeError as e:
            return Result.failure(self._translate(e, "customer_lookup"))
        except (AttributeError, KeyError, TypeError) as e:
            return Result.failure(self._malformed(e, "customer_lookup"))
        return Result.success(data[0].id if data else None)

    def create_payer(self, email: str, idempotency_key: Optional[str] = None) -> Result[str, ProviderError]:
        """Create a Stripe customer for ``email``."""
        try:
            customer = self.client.customers.create(
                params={"email": email},
                options={"idempotency_key": idempotency_key} if idempotency_key else {},
            )
            customer_id = customer.id
        except stripe.StripeError as e:
            return Result.failure(self._translate(e, "customer_create"))
        except (AttributeError, KeyError, TypeError) as e:
            return Result.failure(self._malformed(e, "customer_create"))
        logger.info("stripe_customer_created", customer_id=customer_id)
        return Result.success(customer_id)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def create_order(
        self,
        request,
        order_id: str,
        payer_reference: Optional[str] = None,
    ) -> Result[ProviderOrderHandle, ProviderError]:
        """Create an ephemeral key and a payment intent for the payment sheet."""
        if not payer_reference:
            return Result.failure(ProviderError.rejected("A customer is required for the payment sheet", provider=self.name))

        params: Dict[str, Any] = {
            "amount": request.amount,
            "currency": request.currency.lower(),
            "customer": payer_reference,
            "automatic_payment_methods": {"enabled": True},
            "metadata": {"order_id": order_id},
        }
        if request.description:
            params["description"] = request.description

        try:
            ephemeral_key = self.client.ephemeral_keys.create(
                params={"customer": payer_reference},
                options={"stripe_version": self.api_version},
            )
            intent = self.client.payment_intents.create(
                params=params,
                options={"idempotency_key": f"pi-{order_id}"},
            )
            handle = ProviderOrderHandle(
                provider=self.provider,
                external_id=intent.id,
                client_payload={
                    "paymentIntent": intent.client_secret,
                    "ephemeralKey": ephemeral_key.secret,
                    "customer": payer_reference,
                },
                payer_reference=payer_reference,
            )
        except stripe.StripeError as e:
            return Result.failure(self._translate(e, "payment_intent_create"))
        except (AttributeError, KeyError, TypeError) as e:
            return Result.failure(self._malformed(e, "payment_intent_create"))

        logger.info(
            "stripe_payment_intent_created",
            order_id=order_id,
            payment_intent_id=handle.external_id,
            amount=request.amount,
            currency=request.currency,
        )
        return Result.success(handle)

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def verify_webhook(
        self,
        payload: bytes,
        signature: Optional[str],
        secret: Optional[str] = None
    ) -> Result[Dict[str, Any], ValidationError]:
        """Verify Stripe webhook signature and return the event as a dict."""
        webhook_secret = secret or self.webhook_secret
        if not webhook_secret:
            return Result.failure(ValidationError("Webhook secret not configured"))
        if not signature:
            return Result.failure(ValidationError("Missing signature"))

        try:
            event = self.client.construct_event(payload, signature, webhook_secret)
        except stripe.SignatureVerificationError:
            return Result.failure(ValidationError("Invalid webhook signature"))
        except ValueError:
            return Result.failure(ValidationError("Invalid webhook payload"))

        obj = event["data"]["object"]
        return Result.success({
            "event_id": event["id"],
            "type": event["type"],
            "object_id": obj.get("id"),
            "metadata": dict(obj.get("metadata") or {}),
            "failure_message": (obj.get("last_payment_error") or {}).get("message"),
        })

    # ------------------------------------------------------------------

    def _translate(self, e: "stripe.StripeError", operation: str) -> ProviderError:
        if isinstance(e, stripe.APIConnectionError):
            logger.warning("stripe_network_error", operation=operation, error=str(e))
            return ProviderError.network(str(e), provider=self.name)
        if isinstance(e, (stripe.CardError, stripe.InvalidRequestError, stripe.AuthenticationError,
                          stripe.PermissionError, stripe.RateLimitError)):
            message = getattr(e, "user_message", None) or str(e)
            logger.warning(
                "stripe_request_rejected",
                operation=operation,
                error_type=type(e).__name__,
                http_status=getattr(e, "http_status", None),
            )
            return ProviderError.rejected(message, provider=self.name, status_code=getattr(e, "http_status", None))
        logger.error("stripe_unexpected_error", operation=operation, error_type=type(e).__name__, error=str(e))
        return ProviderError.malformed(str(e), provider=self.name, status_code=getattr(e, "http_status", None))

    def _malformed(self, e: Exception, operation: str) -> ProviderError:
        logger.error("stripe_malformed_response", operation=operation, error=str(e))
        return ProviderError.malformed(f"Unexpected Stripe response: {e}", provider=self.name)
