from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENT)


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    EXPIRED = "expired"


class CallbackOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class CartLine:
    item_id: str
    name: str
    unit_price: Decimal
    quantity: int

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.item_id,
            "name": self.name,
            "price": str(self.unit_price),
            "quantity": self.quantity,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CartLine":
        return cls(
            item_id=data["id"],
            name=data["name"],
            unit_price=Decimal(str(data["price"])),
            quantity=int(data["quantity"]),
        )


@dataclass(frozen=True)
class Cart:
    cart_id: str
    lines: Tuple[CartLine, ...] = ()

    @property
    def total(self) -> Decimal:
        return to_money(sum((line.subtotal for line in self.lines), Decimal("0")))

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)

    def get(self, item_id: str) -> Optional[CartLine]:
        for line in self.lines:
            if line.item_id == item_id:
                return line
        return None


@dataclass
class InitiateResult:
    provider_ref: str
    continuation: Dict[str, Any]


@dataclass
class CallbackResult:
    provider_ref: str
    outcome: CallbackOutcome
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class PaymentIntentView:
    intent_id: str
    cart_id: str
    provider: str
    amount: Decimal
    currency: str
    status: PaymentStatus
    provider_ref: Optional[str]
    cart_snapshot_id: str
    created_at: datetime
    settled_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    snapshot_lines: List[CartLine] = field(default_factory=list)


@dataclass
class CheckoutResult:
    intent_id: str
    provider: str
    provider_ref: str
    amount: Decimal
    currency: str
    continuation: Dict[str, Any]


@dataclass
class ReconcileResult:
    intent_id: str
    status: PaymentStatus
    changed: bool


@dataclass
class SettledPayment:
    intent_id: str
    amount: Decimal
    currency: str
    provider: str
    settled_at: datetime
