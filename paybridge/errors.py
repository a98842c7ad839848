"""
Error taxonomy for the order orchestration layer.

Errors are carried inside ``Result`` values between layers and only turned
into HTTP responses at the router edge (see ``paybridge.http_errors``).
"""
from enum import Enum
from typing import Optional


class PaymentError(Exception):
    """Base class for every error the orchestration layer reports."""

    code = "payment_error"

    def __init__(self, message: str, public_message: Optional[str] = None):
        super().__init__(message)
        self.message = message
        # What may be echoed to the HTTP caller; never provider internals
        self.public_message = public_message or "Payment request failed"

    def __repr__(self):
        return f"<{self.__class__.__name__}(code={self.code}, message={self.message!r})>"


class ValidationError(PaymentError):
    """Malformed request, rejected before any provider call."""

    code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, public_message=message)
        self.field = field


class ProviderErrorKind(str, Enum):
    NETWORK = "network"
    REJECTED = "rejected"
    MALFORMED = "malformed"


class ProviderError(PaymentError):
    """
    Failure talking to a payment provider.

    Only REJECTED errors carry a user-facing message (declined card, invalid
    credentials reported by the provider). NETWORK and MALFORMED are logged
    and surfaced as an opaque failure.
    """

    code = "provider_error"

    def __init__(
        self,
        kind: ProviderErrorKind,
        provider_message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        if kind == ProviderErrorKind.REJECTED:
            public = f"Payment was rejected by the provider: {provider_message}"
        elif kind == ProviderErrorKind.NETWORK:
            public = "Payment provider is unavailable. Please try again."
        else:
            public = "Failed to create order."
        super().__init__(provider_message, public_message=public)
        self.kind = kind
        self.provider_message = provider_message
        self.provider = provider
        self.status_code = status_code

    @classmethod
    def network(cls, message: str, provider: Optional[str] = None) -> "ProviderError":
        return cls(ProviderErrorKind.NETWORK, message, provider=provider)

    @classmethod
    def rejected(cls, message: str, provider: Optional[str] = None, status_code: Optional[int] = None) -> "ProviderError":
        return cls(ProviderErrorKind.REJECTED, message, provider=provider, status_code=status_code)

    @classmethod
    def malformed(cls, message: str, provider: Optional[str] = None, status_code: Optional[int] = None) -> "ProviderError":
        return cls(ProviderErrorKind.MALFORMED, message, provider=provider, status_code=status_code)


class ProviderNotConfiguredError(PaymentError):
    """Credentials for the requested provider are missing."""

    code = "provider_not_configured"

    def __init__(self, provider: str):
        super().__init__(
            f"Provider {provider} is not configured",
            public_message="Payment provider is not available",
        )
        self.provider = provider


class StateConflictError(PaymentError):
    """A transition was attempted from an incompatible state."""

    code = "state_conflict"

    def __init__(self, order_id: str, current: str, target: str):
        super().__init__(
            f"Order {order_id} cannot move from {current} to {target}",
            public_message="Order is not in a state that allows this operation",
        )
        self.order_id = order_id
        self.current = current
        self.target = target


class NotFoundError(PaymentError):
    """A callback or lookup referenced an unknown order."""

    code = "not_found"

    def __init__(self, reference: str):
        super().__init__(f"Order not found for reference {reference}", public_message="Order not found")
        self.reference = reference
