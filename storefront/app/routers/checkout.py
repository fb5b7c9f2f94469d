"""
Checkout router.
"""

from fastapi import APIRouter, Depends, status

from shared.utils.validators import OrderDetails
from storefront.app.dependencies import get_services
from storefront.app.services import StorefrontServices


router = APIRouter(prefix="/api/checkout", tags=["checkout"])


@router.get("/quote")
async def get_quote(services: StorefrontServices = Depends(get_services)) -> dict:
    """Subtotal, delivery fee and total for the current cart."""
    return services.checkout.quote()


@router.post("/", status_code=status.HTTP_201_CREATED)
async def place_order(
    body: OrderDetails,
    services: StorefrontServices = Depends(get_services),
) -> dict:
    """
    Place an order for the current identity and cart.

    The cart is cleared only when the order and all its items were written.
    """
    order = await services.checkout.place_order(body)
    return order.to_dict()
