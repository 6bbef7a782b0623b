"""
Cart endpoints. The cart is selected by the X-Cart-ID header.
"""
from fastapi import APIRouter, Depends

from storefront.deps import get_cart_id, get_cart_service
from storefront.schemas import CartItemIn, CartOut, QuantityUpdate
from storefront.services.cart_service import CartService

router = APIRouter(tags=["Cart"])


@router.post("/api/cart/add", response_model=CartOut)
def add_to_cart(
    item: CartItemIn,
    cart_id: str = Depends(get_cart_id),
    carts: CartService = Depends(get_cart_service),
):
    cart = carts.add_item(cart_id, item.id, item.name, item.price, item.quantity)
    return CartOut.from_cart(cart)


@router.delete("/api/cart/remove/{item_id}", response_model=CartOut)
def remove_from_cart(
    item_id: str,
    cart_id: str = Depends(get_cart_id),
    carts: CartService = Depends(get_cart_service),
):
    return CartOut.from_cart(carts.remove_item(cart_id, item_id))


@router.put("/api/cart/update/{item_id}", response_model=CartOut)
def update_cart_item(
    item_id: str,
    body: QuantityUpdate,
    cart_id: str = Depends(get_cart_id),
    carts: CartService = Depends(get_cart_service),
):
    return CartOut.from_cart(carts.update_quantity(cart_id, item_id, body.quantity))


@router.get("/cart", response_model=CartOut)
def view_cart(
    cart_id: str = Depends(get_cart_id),
    carts: CartService = Depends(get_cart_service),
):
    return CartOut.from_cart(carts.get_cart(cart_id))
