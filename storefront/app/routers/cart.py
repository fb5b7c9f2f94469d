"""
Cart router.
Exposes the shared single-merchant cart.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from shared.utils.exceptions import CartConflictError
from shared.utils.validators import CatalogItem
from storefront.app.dependencies import get_services
from storefront.app.services import StorefrontServices
from storefront.cart.engine import AddOutcome


router = APIRouter(prefix="/api/cart", tags=["cart"])


# =============================================================================
# Schemas
# =============================================================================


class AddToCartRequest(BaseModel):
    """Request to add one unit of a catalog item."""
    item: CatalogItem
    merchant_id: str = Field(min_length=1)
    replace_cart: bool = Field(
        default=False,
        description="Confirms clearing a cart that holds another merchant's items",
    )


class UpdateQuantityRequest(BaseModel):
    """Zero or less removes the line."""
    quantity: int


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/")
async def get_cart(services: StorefrontServices = Depends(get_services)) -> dict:
    return services.cart.snapshot()


@router.post("/items")
async def add_item(
    body: AddToCartRequest,
    services: StorefrontServices = Depends(get_services),
) -> dict:
    """
    Add an item to the cart.

    Adding from another merchant answers 409 unless ``replace_cart`` is set,
    in which case the cart is cleared first.
    """
    cart = services.cart
    outcome = cart.add_item(
        body.item,
        body.merchant_id,
        confirm_switch=lambda current, requested: body.replace_cart,
    )
    if outcome is AddOutcome.DECLINED:
        raise CartConflictError(cart.merchant_id or "", body.merchant_id)
    return {"outcome": outcome.value, "cart": cart.snapshot()}


@router.put("/items/{item_id}")
async def update_quantity(
    item_id: str,
    body: UpdateQuantityRequest,
    services: StorefrontServices = Depends(get_services),
) -> dict:
    cart = services.cart
    if cart.get_line(item_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not in cart")
    cart.update_quantity(item_id, body.quantity)
    return cart.snapshot()


@router.delete("/items/{item_id}")
async def remove_item(
    item_id: str,
    services: StorefrontServices = Depends(get_services),
) -> dict:
    if not services.cart.remove_item(item_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not in cart")
    return services.cart.snapshot()


@router.delete("/")
async def clear_cart(services: StorefrontServices = Depends(get_services)) -> dict:
    services.cart.clear()
    return services.cart.snapshot()
