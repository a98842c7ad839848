"""PayPal PSP Adapter Implementation (RedirectWallet, Orders v2)."""
from __future__ import annotations

import threading
import time
from typing import Dict, Any, Optional

import httpx

from paybridge.errors import ProviderError
from paybridge.logging_config import get_logger
from paybridge.result import Result
from .adapter import (
    PSPAdapter,
    PaymentProvider,
    ProviderOrderHandle,
    CaptureReceipt,
    is_absolute_url,
    to_major_units,
)

logger = get_logger(__name__)


class PayPalAdapter(PSPAdapter):
    """
    PayPal wallet adapter.

    The order is created with return/cancel URLs pointing back at this
    service; the payer approves on PayPal and is redirected to the success
    URL, where the order is captured explicitly.
    """

    provider = PaymentProvider.REDIRECT_WALLET
    name = "paypal"
    supported_currencies = frozenset(["USD", "EUR", "GBP", "AUD", "CAD", "SGD", "JPY", "HKD"])
    requires_redirect = True

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        timeout: float = 3.0,
        api_base: str = "https://api-m.sandbox.paypal.com",
        client: Optional[httpx.Client] = None,
        **kwargs
    ):
        """Initialize PayPal adapter with OAuth client credentials."""
        super().__init__(api_key, api_secret, timeout=timeout, **kwargs)
        self._base = api_base.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _access_token(self) -> Result[str, ProviderError]:
        with self._token_lock:
            if self._token and time.monotonic() < self._token_expires_at:
                return Result.success(self._token)

            try:
                r = self._client.post(
                    f"{self._base}/v1/oauth2/token",
                    data={"grant_type": "client_credentials"},
                    auth=(self.api_key, self.api_secret),
                    headers={"Accept": "application/json"},
                    timeout=self.timeout,
                )
            except httpx.HTTPError as e:
                logger.warning("paypal_network_error", operation="oauth_token", error=str(e))
                return Result.failure(ProviderError.network(str(e), provider=self.name))

            if r.status_code >= 400:
                return Result.failure(self._error_from_response(r, "oauth_token"))

            try:
                body = r.json()
                token = body["access_token"]
                expires_in = int(body.get("expires_in", 300))
            except (ValueError, KeyError, TypeError) as e:
                logger.error("paypal_malformed_response", operation="oauth_token", error=str(e))
                return Result.failure(ProviderError.malformed("Unexpected OAuth response", provider=self.name))

            self._token = token
            # Refresh a minute early
            self._token_expires_at = time.monotonic() + max(expires_in - 60, 0)
            return Result.success(token)

    def _post(self, path: str, json: Dict[str, Any], request_id: str, operation: str, prefer: Optional[str] = None):
        token = self._access_token()
        if not token.ok:
            return token

        headers = {
            "Authorization": f"Bearer {token.value}",
            "Content-Type": "application/json",
            "PayPal-Request-Id": request_id,
        }
        if prefer:
            headers["Prefer"] = prefer

        try:
            r = self._client.post(f"{self._base}{path}", json=json, headers=headers, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.warning("paypal_network_error", operation=operation, error=str(e))
            return Result.failure(ProviderError.network(str(e), provider=self.name))

        if r.status_code >= 400:
            return Result.failure(self._error_from_response(r, operation))

        try:
            body = r.json()
        except ValueError:
            logger.error("paypal_malformed_response", operation=operation, status_code=r.status_code, body=r.text[:500])
            return Result.failure(ProviderError.malformed("Response body is not JSON", provider=self.name, status_code=r.status_code))
        if not isinstance(body, dict):
            logger.error("paypal_malformed_response", operation=operation, status_code=r.status_code)
            return Result.failure(ProviderError.malformed("Response body is not an object", provider=self.name, status_code=r.status_code))
        return Result.success((r.status_code, body))

    def _error_from_response(self, r: httpx.Response, operation: str) -> ProviderError:
        try:
            body = r.json()
        except ValueError:
            body = None

        if r.status_code >= 500:
            logger.warning("paypal_server_error", operation=operation, status_code=r.status_code)
            return ProviderError.network(f"PayPal returned {r.status_code}", provider=self.name)

        if isinstance(body, dict) and (body.get("message") or body.get("error_description")):
            details = body.get("details") or []
            message = body.get("message") or body.get("error_description")
            if details and isinstance(details[0], dict) and details[0].get("description"):
                message = details[0]["description"]
            logger.warning(
                "paypal_request_rejected",
                operation=operation,
                status_code=r.status_code,
                name=body.get("name") or body.get("error"),
                debug_id=body.get("debug_id"),
            )
            return ProviderError.rejected(message, provider=self.name, status_code=r.status_code)

        logger.error("paypal_malformed_error", operation=operation, status_code=r.status_code, body=r.text[:500])
        return ProviderError.malformed(f"Unexpected PayPal error response ({r.status_code})", provider=self.name, status_code=r.status_code)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def create_order(
        self,
        request,
        order_id: str,
        payer_reference: Optional[str] = None,
    ) -> Result[ProviderOrderHandle, ProviderError]:
        """
        Create a PayPal order.

        @see https://developer.paypal.com/docs/api/orders/v2/#orders_create
        """
        if not is_absolute_url(request.return_url) or not is_absolute_url(request.cancel_url):
            return Result.failure(ProviderError.rejected("Return and cancel URLs must be absolute", provider=self.name))

        paypal_source: Dict[str, Any] = {
            "experience_context": {
                "return_url": request.return_url,
                "cancel_url": request.cancel_url,
                "user_action": "PAY_NOW",
            },
        }
        if request.payer_email:
            paypal_source["email_address"] = request.payer_email

        purchase_unit: Dict[str, Any] = {
            "reference_id": order_id,
            "custom_id": order_id,
            "amount": {
                "currency_code": request.currency.upper(),
                "value": to_major_units(request.amount, request.currency),
            },
        }
        if request.description:
            purchase_unit["description"] = request.description[:127]

        body = {
            "intent": "CAPTURE",
            "purchase_units": [purchase_unit],
            "payment_source": {"paypal": paypal_source},
        }

        res = self._post("/v2/checkout/orders", body, request_id=order_id, operation="order_create", prefer="return=minimal")
        if not res.ok:
            return res
        status_code, data = res.value

        token = data.get("id")
        if not token:
            logger.error("paypal_malformed_response", operation="order_create", keys=sorted(data.keys()))
            return Result.failure(ProviderError.malformed("Order response has no id", provider=self.name, status_code=status_code))

        redirect_url = None
        for link in data.get("links") or []:
            if isinstance(link, dict) and link.get("rel") in ("payer-action", "approve"):
                redirect_url = link.get("href")
                break

        logger.info("paypal_order_created", order_id=order_id, paypal_order_id=token, status=data.get("status"))
        return Result.success(ProviderOrderHandle(
            provider=self.provider,
            external_id=token,
            client_payload=data,
            status_code=status_code,
            redirect_url=redirect_url,
        ))

    def capture_order(self, external_id: str) -> Result[CaptureReceipt, ProviderError]:
        """
        Capture an approved PayPal order.

        @see https://developer.paypal.com/docs/api/orders/v2/#orders_capture
        """
        res = self._post(
            f"/v2/checkout/orders/{external_id}/capture",
            {},
            request_id=f"capture-{external_id}",
            operation="order_capture",
        )
        if not res.ok:
            return res
        status_code, data = res.value

        status = data.get("status")
        capture_id = None
        try:
            capture_id = data["purchase_units"][0]["payments"]["captures"][0]["id"]
        except (KeyError, IndexError, TypeError):
            pass

        if self.normalize_status(status) != "captured":
            logger.warning("paypal_capture_not_completed", paypal_order_id=external_id, status=status)
            return Result.failure(ProviderError.rejected(f"Capture returned status {status}", provider=self.name, status_code=status_code))

        logger.info("paypal_order_captured", paypal_order_id=external_id, capture_id=capture_id)
        return Result.success(CaptureReceipt(external_id=external_id, capture_id=capture_id, status=status, raw=data))

    def normalize_status(self, provider_status: str) -> str:
        """Map a PayPal order status onto an order status value."""
        status_map = {
            "CREATED": "pending_authorization",
            "SAVED": "pending_authorization",
            "PAYER_ACTION_REQUIRED": "pending_authorization",
            "APPROVED": "authorized",
            "COMPLETED": "captured",
            "VOIDED": "cancelled",
        }
        return status_map.get((provider_status or "").upper(), "pending_authorization")
