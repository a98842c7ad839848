# paybridge/schemas_pkg/__init__.py

from .orders import (
    Address,
    CartItem,
    PaymentRequest,
    OrderOut,
)

__all__ = [
    "Address",
    "CartItem",
    "PaymentRequest",
    "OrderOut",
]
