from pydantic import BaseModel, Field
from typing import List, Optional


class Address(BaseModel):
    name: str = "Jhon Doe"
    phone: str = "08123456789"
    email: str = "jhondoe@gmail.com"
    address: str = "Jalan Bukit Berbunga 22"
    city: str = "Jakarta"
    state: str = "DKI Jakarta"
    postal_code: str = "12345"
    country: str = "Indonesia"


class CartItem(BaseModel):
    goods_id: str
    name: str
    amount: int               # minor units, per line
    quantity: int = 1
    detail: Optional[str] = None
    goods_type: Optional[str] = None
    url: Optional[str] = None
    seller_id: Optional[str] = None
    seller_name: Optional[str] = None


class PaymentRequest(BaseModel):
    """Provider-agnostic request to open a payment order."""

    provider: str
    amount: int               # in minor units
    currency: str
    payer_email: Optional[str] = None
    description: Optional[str] = None
    idempotency_key: Optional[str] = None

    # Redirect targets; filled from BASE_URL when omitted
    return_url: Optional[str] = None
    cancel_url: Optional[str] = None
    callback_url: Optional[str] = None
    notify_url: Optional[str] = None

    # Gateway registration details
    goods_name: Optional[str] = None
    billing: Optional[Address] = None
    delivery: Optional[Address] = None
    items: List[CartItem] = Field(default_factory=list)
    client_ip: str = "127.0.0.1"
    user_agent: Optional[str] = None
    user_language: Optional[str] = None
    session_id: Optional[str] = None


class OrderOut(BaseModel):
    orderId: str
    provider: str
    amount: int
    currency: str
    status: str
    payerReference: Optional[str] = None
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None
