"""PSP Adapter Dispatcher - Routes to the correct adapter for a provider."""
from typing import Dict, Optional

from paybridge.config import Settings
from paybridge.errors import ProviderNotConfiguredError
from paybridge.logging_config import get_logger
from .adapter import PSPAdapter, PaymentProvider
from .nicepay_adapter import NicePayAdapter
from .paypal_adapter import PayPalAdapter
from .stripe_adapter import StripeAdapter

logger = get_logger(__name__)


class PSPDispatcher:
    """
    Holds one adapter instance per configured provider.

    Built once at process start and injected into the orchestrator and the
    callback router; providers without credentials are simply absent.
    """

    def __init__(self, adapters: Optional[Dict[PaymentProvider, PSPAdapter]] = None):
        self._adapters: Dict[PaymentProvider, PSPAdapter] = dict(adapters or {})

    @classmethod
    def from_settings(cls, settings: Settings) -> "PSPDispatcher":
        """
        Build adapters from configuration.

        Args:
            settings: Application settings

        Returns:
            Dispatcher with every provider whose credentials are present
        """
        adapters: Dict[PaymentProvider, PSPAdapter] = {}
        timeout = settings.PROVIDER_TIMEOUT_SECONDS

        if settings.STRIPE_SECRET_KEY:
            adapters[PaymentProvider.CARD_DIRECT] = StripeAdapter(
                api_key=settings.STRIPE_SECRET_KEY,
                api_secret=settings.STRIPE_WEBHOOK_SECRET,
                timeout=timeout,
                api_version=settings.STRIPE_API_VERSION,
            )
        else:
            logger.warning("provider_not_configured", provider="stripe", missing="STRIPE_SECRET_KEY")

        if settings.PAYPAL_CLIENT_ID and settings.PAYPAL_CLIENT_SECRET:
            adapters[PaymentProvider.REDIRECT_WALLET] = PayPalAdapter(
                api_key=settings.PAYPAL_CLIENT_ID,
                api_secret=settings.PAYPAL_CLIENT_SECRET,
                timeout=timeout,
                api_base=settings.paypal_api_base,
            )
        else:
            logger.warning("provider_not_configured", provider="paypal", missing="PAYPAL_CLIENT_ID/PAYPAL_CLIENT_SECRET")

        if settings.NICEPAY_MERCHANT_ID and settings.NICEPAY_MERCHANT_KEY:
            adapters[PaymentProvider.GATEWAY_REGISTRATION] = NicePayAdapter(
                api_key=settings.NICEPAY_MERCHANT_ID,
                api_secret=settings.NICEPAY_MERCHANT_KEY,
                timeout=timeout,
                api_base=settings.NICEPAY_BASE_URL,
            )
        else:
            logger.warning("provider_not_configured", provider="nicepay", missing="NICEPAY_MERCHANT_ID/NICEPAY_MERCHANT_KEY")

        return cls(adapters)

    def get_adapter(self, provider) -> PSPAdapter:
        """
        Get the adapter for the given provider.

        Raises:
            ProviderNotConfiguredError: If the provider is unknown or has no credentials
        """
        try:
            key = PaymentProvider(provider)
        except ValueError:
            raise ProviderNotConfiguredError(str(provider))
        adapter = self._adapters.get(key)
        if adapter is None:
            raise ProviderNotConfiguredError(key.value)
        return adapter

    def has(self, provider) -> bool:
        try:
            return PaymentProvider(provider) in self._adapters
        except ValueError:
            return False

    def providers(self):
        return list(self._adapters)
