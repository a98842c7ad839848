"""NICEPay PSP Adapter Implementation (GatewayRegistration, redirect v2)."""
from __future__ import annotations

import hashlib
import hmac
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Any, List, Optional
from zoneinfo import ZoneInfo

import httpx

from paybridge.errors import PaymentError, ProviderError, ValidationError
from paybridge.logging_config import get_logger
from paybridge.result import Result
from paybridge.schemas_pkg import Address
from .adapter import PSPAdapter, PaymentProvider, ProviderOrderHandle, is_absolute_url

logger = get_logger(__name__)

JAKARTA = ZoneInfo("Asia/Jakarta")
SUCCESS_CODE = "0000"
REGISTRATION_PATH = "/nicepay/redirect/v2/registration"


@dataclass
class GatewayCallback:
    """Normalised NICEPay callback / notification."""
    tx_id: str
    reference_no: Optional[str]
    result_code: str
    result_message: str
    amount: int
    status: str                 # order status value the gateway reports


def merchant_token(*parts: str) -> str:
    return hashlib.sha256("".join(parts).encode("utf-8")).hexdigest()


class NicePayAdapter(PSPAdapter):
    """
    NICEPay redirect adapter.

    Registration is a server-to-server POST; the payer is then sent to
    ``paymentURL?tXid=...`` and the result arrives later on the callback URL.
    """

    provider = PaymentProvider.GATEWAY_REGISTRATION
    name = "nicepay"
    supported_currencies = frozenset(["IDR"])
    requires_redirect = True

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        timeout: float = 3.0,
        api_base: str = "https://dev.nicepay.co.id",
        client: Optional[httpx.Client] = None,
        **kwargs
    ):
        """Initialize with merchant id (``api_key``) and merchant key (``api_secret``)."""
        super().__init__(api_key, api_secret, timeout=timeout, **kwargs)
        self._base = api_base.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)

    @property
    def merchant_id(self) -> str:
        return self.api_key

    def _timestamp(self) -> str:
        return datetime.now(JAKARTA).strftime("%Y%m%d%H%M%S")

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def _cart(self, request) -> Dict[str, Any]:
        items = request.items
        if not items:
            return {
                "count": "1",
                "item": [{
                    "goods_id": "ORDER",
                    "goods_detail": request.description or "Order",
                    "goods_name": request.goods_name or request.description or "Order",
                    "goods_amt": str(request.amount),
                    "goods_type": "Order",
                    "goods_url": "",
                    "goods_quantity": "1",
                    "goods_sellers_id": "",
                    "goods_sellers_name": "",
                }],
            }
        return {
            "count": str(len(items)),
            "item": [
                {
                    "goods_id": item.goods_id,
                    "goods_detail": item.detail or item.name,
                    "goods_name": item.name,
                    "goods_amt": str(item.amount),
                    "goods_type": item.goods_type or "",
                    "goods_url": item.url or "",
                    "goods_quantity": str(item.quantity),
                    "goods_sellers_id": item.seller_id or "",
                    "goods_sellers_name": item.seller_name or "",
                }
                for item in items
            ],
        }

    def _sellers(self, request) -> List[Dict[str, Any]]:
        sellers: Dict[str, Dict[str, Any]] = {}
        for item in request.items:
            if item.seller_id and item.seller_id not in sellers:
                sellers[item.seller_id] = {"sellersId": item.seller_id, "sellersNm": item.seller_name or item.seller_id}
        return list(sellers.values())

    def build_registration(self, request, order_id: str, timestamp: str) -> Dict[str, Any]:
        billing = request.billing or Address(email=request.payer_email or Address().email)
        delivery = request.delivery or billing
        amt = str(request.amount)

        payload: Dict[str, Any] = {
            "timeStamp": timestamp,
            "iMid": self.merchant_id,
            "payMethod": "00",
            "currency": request.currency.upper(),
            "amt": amt,
            "referenceNo": order_id,
            "goodsNm": request.goods_name or request.description or billing.name,
            "billingNm": billing.name,
            "billingPhone": billing.phone,
            "billingEmail": billing.email,
            "billingAddr": billing.address,
            "billingCity": billing.city,
            "billingState": billing.state,
            "billingPostCd": billing.postal_code,
            "billingCountry": billing.country,
            "deliveryNm": delivery.name,
            "deliveryPhone": delivery.phone,
            "deliveryAddr": delivery.address,
            "deliveryCity": delivery.city,
            "deliveryState": delivery.state,
            "deliveryPostCd": delivery.postal_code,
            "deliveryCountry": delivery.country,
            "dbProcessUrl": request.notify_url or "",
            "callBackUrl": request.callback_url,
            "vat": "",
            "fee": "",
            "notaxAmt": "",
            "description": request.description or "",
            "merchantToken": merchant_token(timestamp, self.merchant_id, order_id, amt, self.api_secret),
            "reqDt": "",
            "reqTm": "",
            "reqDomain": "",
            "reqServerIP": "",
            "reqClientVer": "",
            "userIP": request.client_ip,
            "userSessionID": request.session_id or order_id,
            "userAgent": request.user_agent or "",
            "userLanguage": request.user_language or "",
            "cartData": json.dumps(self._cart(request)),
            "instmntType": "2",
            "instmntMon": "1",
            "recurrOpt": "1",
        }
        sellers = self._sellers(request)
        if sellers:
            payload["sellers"] = json.dumps(sellers)
        return payload

    def create_order(
        self,
        request,
        order_id: str,
        payer_reference: Optional[str] = None,
    ) -> Result[ProviderOrderHandle, ProviderError]:
        """Register the transaction and compose the outbound redirect URL."""
        if not is_absolute_url(request.callback_url):
            return Result.failure(ProviderError.rejected("Callback URL must be absolute", provider=self.name))

        payload = self.build_registration(request, order_id, self._timestamp())
        try:
            r = self._client.post(
                f"{self._base}{REGISTRATION_PATH}",
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            logger.warning("nicepay_network_error", operation="registration", error=str(e))
            return Result.failure(ProviderError.network(str(e), provider=self.name))

        if r.status_code >= 500:
            logger.warning("nicepay_server_error", status_code=r.status_code)
            return Result.failure(ProviderError.network(f"NICEPay returned {r.status_code}", provider=self.name))

        try:
            data = r.json()
        except ValueError:
            logger.error("nicepay_malformed_response", status_code=r.status_code, body=r.text[:500])
            return Result.failure(ProviderError.malformed("Response body is not JSON", provider=self.name, status_code=r.status_code))
        if not isinstance(data, dict):
            logger.error("nicepay_malformed_response", status_code=r.status_code)
            return Result.failure(ProviderError.malformed("Response body is not an object", provider=self.name, status_code=r.status_code))

        result_code = data.get("resultCd")
        if r.status_code >= 400 or result_code != SUCCESS_CODE:
            if result_code or data.get("resultMsg"):
                logger.warning("nicepay_registration_rejected", result_code=result_code, result_msg=data.get("resultMsg"))
                return Result.failure(ProviderError.rejected(
                    data.get("resultMsg") or f"Registration failed ({result_code})",
                    provider=self.name,
                    status_code=r.status_code,
                ))
            logger.error("nicepay_malformed_response", status_code=r.status_code, keys=sorted(data.keys()))
            return Result.failure(ProviderError.malformed("Unexpected registration response", provider=self.name, status_code=r.status_code))

        tx_id = data.get("tXid")
        payment_url = data.get("paymentURL")
        if not tx_id or not payment_url:
            logger.error("nicepay_malformed_response", status_code=r.status_code, keys=sorted(data.keys()))
            return Result.failure(ProviderError.malformed("Registration response lacks tXid or paymentURL", provider=self.name))

        nice_pay_url = f"{payment_url}?tXid={tx_id}"
        logger.info("nicepay_registered", order_id=order_id, tx_id=tx_id)
        return Result.success(ProviderOrderHandle(
            provider=self.provider,
            external_id=tx_id,
            client_payload={**data, "nicePayUrl": nice_pay_url},
            status_code=200,
            redirect_url=nice_pay_url,
        ))

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def parse_callback(self, payload: Dict[str, Any]) -> Result[GatewayCallback, PaymentError]:
        """
        Validate a callback (browser redirect) or notification (server POST).

        Callbacks carry ``resultCd``; notifications carry a numeric ``status``.
        Both must be signed: ``merchantToken`` must equal
        sha256(timeStamp + iMid + tXid + amt + merchantKey).
        """
        tx_id = (payload.get("tXid") or "").strip()
        if not tx_id:
            return Result.failure(ValidationError("Callback is missing tXid", field="tXid"))

        amt = str(payload.get("amt") or "").strip()
        if not amt:
            return Result.failure(ValidationError("Callback is missing amt", field="amt"))
        try:
            amount = int(amt)
        except ValueError:
            return Result.failure(ValidationError("Callback amount is not an integer", field="amt"))

        token = payload.get("merchantToken")
        if not token:
            logger.warning("nicepay_callback_unsigned", tx_id=tx_id)
            return Result.failure(ValidationError("Callback is missing merchantToken", field="merchantToken"))
        expected = merchant_token(
            str(payload.get("timeStamp") or ""),
            self.merchant_id,
            tx_id,
            amt,
            self.api_secret,
        )
        if not hmac.compare_digest(expected, str(token)):
            logger.warning("nicepay_callback_bad_token", tx_id=tx_id)
            return Result.failure(ValidationError("Invalid merchant token", field="merchantToken"))

        if "resultCd" in payload:
            result_code = str(payload.get("resultCd") or "")
            status = "captured" if result_code == SUCCESS_CODE else "failed"
        elif "status" in payload:
            result_code = str(payload.get("status"))
            status = self.normalize_status(result_code)
        else:
            return Result.failure(ValidationError("Callback carries neither resultCd nor status", field="resultCd"))

        return Result.success(GatewayCallback(
            tx_id=tx_id,
            reference_no=payload.get("referenceNo"),
            result_code=result_code,
            result_message=str(payload.get("resultMsg") or ""),
            amount=amount,
            status=status,
        ))

    def normalize_status(self, provider_status: str) -> str:
        """Normalize NICEPay notification status codes."""
        status_map = {
            "0": "captured",
            "1": "failed",
            "2": "cancelled",
            "3": "pending_authorization",
            "4": "failed",
            "5": "pending_authorization",
            "9": "failed",
        }
        return status_map.get(str(provider_status), "pending_authorization")
