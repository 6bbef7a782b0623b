"""
Cart Service: enforces merge/update/remove invariants over the Cart Store.

All operations on the same cart are serialized through a per-cart lock and run
inside one database transaction, so concurrent requests never interleave
partial writes. Different carts proceed independently.
"""
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from sqlalchemy.orm import Session

from storefront.domain import Cart, CartLine, to_money
from storefront.errors import InvalidArgument, NotFound
from storefront.logging_config import get_logger
from storefront.services.cart_store import CartStore
from storefront.services.locks import KeyedLocks

logger = get_logger(__name__)


def _require_quantity(quantity: Any) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidArgument("Quantity must be an integer")
    if quantity <= 0:
        raise InvalidArgument("Quantity must be greater than zero")
    return quantity


def _require_price(price: Any) -> Decimal:
    try:
        value = Decimal(str(price))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidArgument("Price must be a number")
    if not value.is_finite():
        raise InvalidArgument("Price must be a finite number")
    if value < 0:
        raise InvalidArgument("Price must not be negative")
    return to_money(value)


def _require_item_id(item_id: Any) -> str:
    item_id = str(item_id or "").strip()
    if not item_id:
        raise InvalidArgument("Item id is required")
    return item_id


class CartService:
    def __init__(self, store: CartStore, max_quantity: int = 2_147_483_647, locks: Optional[KeyedLocks] = None):
        self.store = store
        self.max_quantity = max_quantity
        self._locks = locks or KeyedLocks()

    def add_item(self, cart_id: str, item_id: str, name: str, unit_price: Any, quantity: Any) -> Cart:
        """
        Add `quantity` of an item to the cart.

        A repeat add of the same item accumulates onto the existing line; the
        name and price of the first add are kept.
        """
        item_id = _require_item_id(item_id)
        quantity = _require_quantity(quantity)
        price = _require_price(unit_price)
        name = str(name or "").strip()
        if not name:
            raise InvalidArgument("Item name is required")
        if quantity > self.max_quantity:
            raise InvalidArgument(f"Quantity must not exceed {self.max_quantity}")

        with self._locks.hold(cart_id), self.store.transaction() as db:
            row = self.store.find(db, cart_id, item_id)
            if row is not None:
                new_quantity = row.quantity + quantity
                if new_quantity > self.max_quantity:
                    raise InvalidArgument(
                        f"Quantity for item {item_id} would exceed {self.max_quantity}",
                        item_id=item_id,
                    )
                self.store.set_quantity(db, row, new_quantity)
            else:
                self.store.insert(db, cart_id, CartLine(item_id, name, price, quantity))
            cart = Cart(cart_id, tuple(self.store.lines(db, cart_id)))

        logger.info("cart_item_added", cart_id=cart_id, item_id=item_id, quantity=quantity)
        return cart

    def remove_item(self, cart_id: str, item_id: str) -> Cart:
        """Delete the line for `item_id`; absent items are a no-op."""
        with self._locks.hold(cart_id), self.store.transaction() as db:
            removed = self.store.delete(db, cart_id, item_id)
            cart = Cart(cart_id, tuple(self.store.lines(db, cart_id)))

        if removed:
            logger.info("cart_item_removed", cart_id=cart_id, item_id=item_id)
        return cart

    def update_quantity(self, cart_id: str, item_id: str, quantity: Any) -> Cart:
        """Replace the quantity of an existing line."""
        quantity = _require_quantity(quantity)
        if quantity > self.max_quantity:
            raise InvalidArgument(f"Quantity must not exceed {self.max_quantity}")

        with self._locks.hold(cart_id), self.store.transaction() as db:
            row = self.store.find(db, cart_id, item_id)
            if row is None:
                raise NotFound(f"Item {item_id} not found in cart", cart_id=cart_id, item_id=item_id)
            self.store.set_quantity(db, row, quantity)
            cart = Cart(cart_id, tuple(self.store.lines(db, cart_id)))

        logger.info("cart_quantity_updated", cart_id=cart_id, item_id=item_id, quantity=quantity)
        return cart

    def get_cart(self, cart_id: str) -> Cart:
        with self._locks.hold(cart_id), self.store.transaction() as db:
            return Cart(cart_id, tuple(self.store.lines(db, cart_id)))

    def clear(self, cart_id: str) -> int:
        """Remove every line of the cart. Returns the number of lines removed."""
        with self._locks.hold(cart_id), self.store.transaction() as db:
            removed = self.clear_in_transaction(db, cart_id)

        logger.info("cart_cleared", cart_id=cart_id, lines_removed=removed)
        return removed

    def hold(self, cart_id: str):
        """The cart's lock, for callers that write the cart inside their own transaction."""
        return self._locks.hold(cart_id)

    def clear_in_transaction(self, db: Session, cart_id: str) -> int:
        """Clear the cart inside the caller's session. The caller holds `hold(cart_id)`."""
        return self.store.delete_all(db, cart_id)
