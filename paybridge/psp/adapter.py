"""
PSP Adapter Base Class and Interface.
Provides a uniform order interface over Stripe, PayPal and NICEPay.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional
from urllib.parse import urlparse

from paybridge.errors import ProviderError
from paybridge.result import Result


class PaymentProvider(str, Enum):
    """Supported provider families."""
    CARD_DIRECT = "card_direct"                    # Stripe
    REDIRECT_WALLET = "redirect_wallet"            # PayPal
    GATEWAY_REGISTRATION = "gateway_registration"  # NICEPay


# Currencies whose minor unit is the major unit
ZERO_DECIMAL_CURRENCIES = frozenset(["JPY", "KRW", "VND", "IDR", "CLP", "TWD", "HUF"])


def to_major_units(amount: int, currency: str) -> str:
    """Render a minor-unit amount as the decimal string providers expect."""
    if currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return str(int(amount))
    return str((Decimal(int(amount)) / Decimal(100)).quantize(Decimal("0.01")))


def is_absolute_url(url: Optional[str]) -> bool:
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


@dataclass
class ProviderOrderHandle:
    """What a provider returned when the order was opened."""
    provider: PaymentProvider
    external_id: str
    client_payload: Dict[str, Any]
    status_code: int = 200
    redirect_url: Optional[str] = None
    payer_reference: Optional[str] = None


@dataclass
class CaptureReceipt:
    external_id: str
    capture_id: Optional[str]
    status: str
    raw: Dict[str, Any] = field(default_factory=dict)


class PSPAdapter(ABC):
    """
    Base adapter for Payment Service Providers.
    All provider implementations must inherit from this class.
    """

    provider: PaymentProvider
    name: str = "unknown"
    supported_currencies: FrozenSet[str] = frozenset()
    # Redirect providers park the order in pending_authorization after creation
    requires_redirect: bool = False

    def __init__(self, api_key: Optional[str] = None, api_secret: Optional[str] = None, timeout: float = 3.0, **kwargs):
        """
        Initialize PSP adapter with credentials.

        Args:
            api_key: Primary API key / client id / merchant id
            api_secret: Secondary secret / merchant key
            timeout: Bound on every outbound call, in seconds
            **kwargs: Provider-specific configuration
        """
        self.api_key = api_key
        self.api_secret = api_secret
        self.timeout = timeout
        self.config = kwargs

    def supports_currency(self, currency: str) -> bool:
        return currency.upper() in self.supported_currencies

    @abstractmethod
    def create_order(
        self,
        request,
        order_id: str,
        payer_reference: Optional[str] = None,
    ) -> Result[ProviderOrderHandle, ProviderError]:
        """
        Open an order at the provider.

        Args:
            request: Validated ``PaymentRequest``
            order_id: Internal order identifier, used as the provider-side reference
            payer_reference: Resolved provider customer id, where the provider has one

        Returns:
            Result carrying a ProviderOrderHandle, or a ProviderError
        """
        pass

    def capture_order(self, external_id: str) -> Result[CaptureReceipt, ProviderError]:
        """
        Capture a previously authorized order (deferred-capture providers only).

        Args:
            external_id: Provider's order identifier
        """
        return Result.failure(
            ProviderError.rejected(f"{self.name} does not support explicit capture", provider=self.name)
        )

    def __repr__(self):
        return f"<{self.__class__.__name__}(provider={getattr(self, 'name', 'unknown')})>"
