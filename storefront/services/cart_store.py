"""
Cart Store: durable mapping (cart_id, item_id) -> cart line.

Thin data access over the cart_items table. The store holds no invariants of
its own; the cart service is its only writer and calls it inside a session
it owns.
"""
from typing import List, Optional

from sqlalchemy.orm import Session

from storefront.db import SessionFactory, session_scope
from storefront.domain import CartLine, utcnow
from storefront.models import CartItem


def _to_line(row: CartItem) -> CartLine:
    return CartLine(
        item_id=row.item_id,
        name=row.name,
        unit_price=row.unit_price,
        quantity=row.quantity,
    )


class CartStore:
    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    def transaction(self):
        return session_scope(self._session_factory)

    def find(self, db: Session, cart_id: str, item_id: str) -> Optional[CartItem]:
        return (
            db.query(CartItem)
            .filter(CartItem.cart_id == cart_id, CartItem.item_id == item_id)
            .first()
        )

    def insert(self, db: Session, cart_id: str, line: CartLine) -> CartItem:
        now = utcnow()
        row = CartItem(
            cart_id=cart_id,
            item_id=line.item_id,
            name=line.name,
            unit_price=line.unit_price,
            quantity=line.quantity,
            created_at=now,
            updated_at=now,
        )
        db.add(row)
        db.flush()
        return row

    def set_quantity(self, db: Session, row: CartItem, quantity: int) -> None:
        row.quantity = quantity
        row.updated_at = utcnow()
        db.flush()

    def delete(self, db: Session, cart_id: str, item_id: str) -> int:
        return (
            db.query(CartItem)
            .filter(CartItem.cart_id == cart_id, CartItem.item_id == item_id)
            .delete(synchronize_session=False)
        )

    def delete_all(self, db: Session, cart_id: str) -> int:
        return (
            db.query(CartItem)
            .filter(CartItem.cart_id == cart_id)
            .delete(synchronize_session=False)
        )

    def lines(self, db: Session, cart_id: str) -> List[CartLine]:
        rows = (
            db.query(CartItem)
            .filter(CartItem.cart_id == cart_id)
            .order_by(CartItem.id.asc())
            .all()
        )
        return [_to_line(row) for row in rows]
