"""
Food-ordering storefront core.

Structure:
- backend/: HTTP client for the hosted auth/data service and local storage
- session/: session store and background refresh
- identity/: profile resolution, guest persistence, identity state machine
- cart/: single-merchant cart engine
- checkout/: order placement
- app/: FastAPI companion application
"""
