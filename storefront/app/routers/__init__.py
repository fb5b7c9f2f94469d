"""
Storefront routers - /api/health, /api/auth/*, /api/cart/*, /api/checkout/*
"""

from .auth import router as auth_router
from .cart import router as cart_router
from .checkout import router as checkout_router
from .health import router as health_router

__all__ = ["auth_router", "cart_router", "checkout_router", "health_router"]
