"""
Storefront SQLAlchemy Models

This file defines the persisted state for:
- Cart Items (the authoritative cart store)
- Cart Snapshots (immutable copies taken at checkout)
- Payment Intents
- Checkout Reservations (carts with a provider call in flight)
- Webhook Events (raw provider callbacks)
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey,
    JSON, Numeric, Text, UniqueConstraint, Index, text
)
from sqlalchemy.orm import relationship
from .db import Base


# =====================================================
# CART ITEM MODEL
# =====================================================

class CartItem(Base):
    __tablename__ = "cart_items"

    # Autoincrement id doubles as insertion order
    id = Column(Integer, primary_key=True, autoincrement=True)
    cart_id = Column(String(64), nullable=False, index=True)
    item_id = Column(String(128), nullable=False)
    name = Column(String(255), nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Integer, nullable=False)

    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("cart_id", "item_id", name="uq_cart_items_cart_item"),
    )

    def __repr__(self):
        return f"<CartItem(cart_id={self.cart_id}, item_id={self.item_id}, quantity={self.quantity})>"


# =====================================================
# CART SNAPSHOT MODEL
# =====================================================

class CartSnapshot(Base):
    __tablename__ = "cart_snapshots"

    id = Column(String(36), primary_key=True)
    cart_id = Column(String(64), nullable=False, index=True)
    lines = Column(JSON, nullable=False, default=list)  # [{"id", "name", "price", "quantity"}]
    total = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(8), nullable=False)
    created_at = Column(DateTime, nullable=False)


# =====================================================
# PAYMENT INTENT MODEL
# =====================================================

class PaymentIntent(Base):
    __tablename__ = "payment_intents"

    id = Column(String(36), primary_key=True)
    cart_id = Column(String(64), nullable=False)
    provider = Column(String(16), nullable=False)               # paypal / mpesa
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(8), nullable=False)
    status = Column(String(16), nullable=False, default="pending")
    provider_ref = Column(String(128), unique=True, nullable=True)
    failure_reason = Column(String(255), nullable=True)

    cart_snapshot_id = Column(String(36), ForeignKey("cart_snapshots.id"), nullable=False)

    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)
    settled_at = Column(DateTime, nullable=True)
    expired_at = Column(DateTime, nullable=True)

    snapshot = relationship("CartSnapshot")

    __table_args__ = (
        Index("ix_payment_intents_cart_status", "cart_id", "status"),
        Index("ix_payment_intents_status_created", "status", "created_at"),
        Index("ix_payment_intents_status_settled", "status", "settled_at"),
        # At most one PENDING intent per cart
        Index(
            "uq_payment_intents_cart_pending",
            "cart_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    def __repr__(self):
        return f"<PaymentIntent(id={self.id}, provider={self.provider}, status={self.status})>"


# =====================================================
# CHECKOUT RESERVATION MODEL
# =====================================================

class CheckoutReservation(Base):
    __tablename__ = "checkout_reservations"

    # Primary key on cart_id: a second reservation for the same cart fails to insert
    cart_id = Column(String(64), primary_key=True)
    intent_id = Column(String(36), nullable=False)
    reserved_at = Column(DateTime, nullable=False)


# =====================================================
# WEBHOOK EVENT MODEL
# =====================================================

class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider = Column(String(16), nullable=False, index=True)
    payload = Column(JSON, nullable=True)
    status = Column(String(16), nullable=False, default="received")  # received/processed/ignored/failed
    detail = Column(Text, nullable=True)
    received_at = Column(DateTime, nullable=False)
    processed_at = Column(DateTime, nullable=True)
