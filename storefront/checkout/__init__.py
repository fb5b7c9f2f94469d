"""
Checkout module: order placement from the shared identity and cart.
"""

from storefront.checkout.orchestrator import CheckoutService, PlacedOrder

__all__ = [
    "CheckoutService",
    "PlacedOrder",
]
