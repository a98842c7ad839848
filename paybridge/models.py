"""
PAYBRIDGE – SQLAlchemy Models

This file defines the order store:
- Orders
- External References (provider id -> order)
- Payer References (payer identity -> provider customer)
- Callback Events (duplicate-delivery ledger)
- Order Transitions (audit trail)
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey,
    JSON, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship
from .db import Base
from .services.clock import utcnow


# =====================================================
# ORDER MODEL
# =====================================================

class Order(Base):
    __tablename__ = "orders"

    order_id = Column(String(64), primary_key=True)
    provider = Column(String(32), nullable=False, index=True)   # card_direct / redirect_wallet / gateway_registration

    # Immutable after creation
    amount = Column(Integer, nullable=False)                     # minor units
    currency = Column(String(3), nullable=False)

    status = Column(String(32), nullable=False, default="created", index=True)

    payer_identity = Column(String(255), nullable=True)          # e.g. email
    payer_reference = Column(String(128), nullable=True)         # e.g. Stripe customer id
    payer_id = Column(String(128), nullable=True)                # PayPal PayerID on approval

    idempotency_key = Column(String(255), unique=True, nullable=True, index=True)

    # Response handed back to the caller; replayed on idempotent resubmission
    client_payload = Column(JSON, nullable=True)
    provider_status_code = Column(Integer, nullable=True)
    redirect_url = Column(String(1024), nullable=True)

    failure_reason = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    external_references = relationship("ExternalReference", back_populates="order")
    transitions = relationship(
        "OrderTransition",
        back_populates="order",
        order_by="OrderTransition.id",
    )

    def to_dict(self) -> dict:
        return {
            "orderId": self.order_id,
            "provider": self.provider,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status,
            "payerReference": self.payer_reference,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


# =====================================================
# EXTERNAL REFERENCE MODEL
# =====================================================

class ExternalReference(Base):
    __tablename__ = "external_references"

    id = Column(Integer, primary_key=True)
    provider = Column(String(32), nullable=False)
    external_id = Column(String(160), nullable=False)            # PayPal token / PaymentIntent id / tXid
    order_id = Column(String(64), ForeignKey("orders.order_id"), nullable=False, unique=True, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    order = relationship("Order", back_populates="external_references")

    __table_args__ = (
        UniqueConstraint("provider", "external_id", name="uq_external_ref_provider_id"),
    )


# =====================================================
# PAYER REFERENCE MODEL
# =====================================================

class PayerReference(Base):
    __tablename__ = "payer_references"

    id = Column(Integer, primary_key=True)
    provider = Column(String(32), nullable=False)
    identity = Column(String(255), nullable=False)               # normalised email
    reference = Column(String(128), nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("provider", "identity", name="uq_payer_ref_provider_identity"),
    )


# =====================================================
# CALLBACK EVENT MODEL
# =====================================================

class CallbackEvent(Base):
    __tablename__ = "callback_events"

    id = Column(Integer, primary_key=True)
    provider = Column(String(32), nullable=False)
    event_type = Column(String(64), nullable=False)

    callback_id = Column(String(160), nullable=False, unique=True, index=True)
    order_id = Column(String(64), ForeignKey("orders.order_id"), nullable=True)
    payload = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


# =====================================================
# ORDER TRANSITION MODEL (audit)
# =====================================================

class OrderTransition(Base):
    __tablename__ = "order_transitions"

    id = Column(Integer, primary_key=True)
    order_id = Column(String(64), ForeignKey("orders.order_id"), nullable=False)
    from_status = Column(String(32), nullable=False)
    to_status = Column(String(32), nullable=False)
    source = Column(String(64), nullable=False)                  # submit / paypal_success / nicepay_callback ...
    detail = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    order = relationship("Order", back_populates="transitions")

    __table_args__ = (
        Index("ix_order_transitions_order_created", "order_id", "created_at"),
    )
