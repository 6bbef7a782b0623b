from datetime import datetime
from decimal import Decimal
from typing import Optional, Any, Dict, List
from pydantic import BaseModel, Field

from storefront.domain import Cart, CheckoutResult, PaymentIntentView, SettledPayment


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ------------------------------------------------------
# CART
# ------------------------------------------------------

class CartItemIn(BaseModel):
    id: str = Field(..., min_length=1, max_length=128)
    name: str = Field(..., max_length=255)
    price: Decimal
    quantity: int


class QuantityUpdate(BaseModel):
    quantity: int


class CartItemOut(BaseModel):
    id: str
    name: str
    price: str
    quantity: int


class CartOut(BaseModel):
    cart_id: str
    items: List[CartItemOut]
    total: str

    @classmethod
    def from_cart(cls, cart: Cart) -> "CartOut":
        return cls(
            cart_id=cart.cart_id,
            items=[CartItemOut(**line.to_dict()) for line in cart.lines],
            total=str(cart.total),
        )


# ------------------------------------------------------
# CHECKOUT
# ------------------------------------------------------

class CheckoutRequest(BaseModel):
    currency: Optional[str] = Field(None, min_length=3, max_length=8)
    phone_number: Optional[str] = None   # M-Pesa only
    description: Optional[str] = Field(None, max_length=127)
    return_url: Optional[str] = None     # PayPal only
    cancel_url: Optional[str] = None     # PayPal only

    def options(self) -> Dict[str, Any]:
        """Provider options, without the fields the client left out."""
        return self.model_dump(exclude={"currency"}, exclude_none=True)


class CheckoutOut(BaseModel):
    intent_id: str
    provider: str
    provider_ref: str
    amount: str
    currency: str
    continuation: Dict[str, Any]

    @classmethod
    def from_result(cls, result: CheckoutResult) -> "CheckoutOut":
        return cls(
            intent_id=result.intent_id,
            provider=result.provider,
            provider_ref=result.provider_ref,
            amount=str(result.amount),
            currency=result.currency,
            continuation=result.continuation,
        )


# ------------------------------------------------------
# PAYMENT INTENT
# ------------------------------------------------------

class IntentOut(BaseModel):
    intent_id: str
    cart_id: str
    provider: str
    amount: str
    currency: str
    status: str
    provider_ref: Optional[str] = None
    cart_snapshot_id: str
    items: List[CartItemOut] = []
    created_at: str
    settled_at: Optional[str] = None
    expired_at: Optional[str] = None
    failure_reason: Optional[str] = None

    @classmethod
    def from_view(cls, view: PaymentIntentView) -> "IntentOut":
        return cls(
            intent_id=view.intent_id,
            cart_id=view.cart_id,
            provider=view.provider,
            amount=str(view.amount),
            currency=view.currency,
            status=view.status.value,
            provider_ref=view.provider_ref,
            cart_snapshot_id=view.cart_snapshot_id,
            items=[CartItemOut(**line.to_dict()) for line in view.snapshot_lines],
            created_at=_iso(view.created_at),
            settled_at=_iso(view.settled_at),
            expired_at=_iso(view.expired_at),
            failure_reason=view.failure_reason,
        )


# ------------------------------------------------------
# REPORTS
# ------------------------------------------------------

class SettledPaymentOut(BaseModel):
    intent_id: str
    amount: str
    currency: str
    provider: str
    settled_at: str

    @classmethod
    def from_payment(cls, payment: SettledPayment) -> "SettledPaymentOut":
        return cls(
            intent_id=payment.intent_id,
            amount=str(payment.amount),
            currency=payment.currency,
            provider=payment.provider,
            settled_at=payment.settled_at.isoformat(),
        )


class ReportOut(BaseModel):
    payments: List[SettledPaymentOut]
    count: int
    from_: str = Field(..., serialization_alias="from")
    to: str
