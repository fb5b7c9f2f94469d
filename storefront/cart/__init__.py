"""
Cart module: single-merchant cart engine.
"""

from storefront.cart.engine import AddOutcome, CartEngine, CartItem, MerchantSwitchConfirm

__all__ = [
    "AddOutcome",
    "CartEngine",
    "CartItem",
    "MerchantSwitchConfirm",
]
