"""
Deep-Link Bridge: hands control from a provider redirect back to the app.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from .clock import utcnow
from .order_state import OrderStatus

TITLES = {
    OrderStatus.CAPTURED.value: "Payment Success",
    OrderStatus.CANCELLED.value: "Payment Cancelled",
    OrderStatus.FAILED.value: "Payment Failed",
}

# Milliseconds before the automatic hand-off and the manual fallback link
REDIRECT_DELAY_MS = 2000
FALLBACK_DELAY_MS = 2500
CLOSE_DELAY_MS = 2000


def build_app_uri(base: str, order_id: str, status: Optional[str] = None) -> str:
    """``aitravel://app/booking_submitted?bookingId=<orderId>[&status=<status>]``"""
    params = {"bookingId": order_id}
    if status:
        params["status"] = status
    return f"{base}?{urlencode(params)}"


@dataclass
class BridgeView:
    """Everything the bridge template renders; nothing else reaches the page."""
    status: str
    order_id: Optional[str]
    message: str
    app_uri: Optional[str]
    payer_id: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)
    # Follow the deep link automatically (browser) vs. only message the webview host
    auto_redirect: bool = True
    notify_host: bool = True

    @property
    def title(self) -> str:
        return TITLES.get(self.status, "Payment Processing")

    @property
    def host_message(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "orderId": self.order_id,
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
        }

    @property
    def close_message(self) -> Dict[str, Any]:
        return {"status": "close", "message": "Closing WebView"}

    def context(self) -> Dict[str, Any]:
        return {
            "view": self,
            "redirect_delay_ms": REDIRECT_DELAY_MS,
            "fallback_delay_ms": FALLBACK_DELAY_MS,
            "close_delay_ms": CLOSE_DELAY_MS,
        }


def bridge_for_order(deep_link_base: str, order, message: str, payer_id: Optional[str] = None) -> BridgeView:
    status = order.status
    return BridgeView(
        status=status,
        order_id=order.order_id,
        message=message,
        app_uri=build_app_uri(deep_link_base, order.order_id, status),
        payer_id=payer_id,
        # Cancellation only tells the webview host and closes it
        auto_redirect=status != OrderStatus.CANCELLED.value,
    )


def bridge_for_error(deep_link_base: str, message: str, order_id: Optional[str] = None) -> BridgeView:
    return BridgeView(
        status=OrderStatus.FAILED.value,
        order_id=order_id,
        message=message,
        app_uri=build_app_uri(deep_link_base, order_id, OrderStatus.FAILED.value) if order_id else None,
        auto_redirect=False,
    )
