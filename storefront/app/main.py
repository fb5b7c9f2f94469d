"""
Storefront companion application.
Entry point for the FastAPI server hosting one storefront session.
"""

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared.config.settings import Settings, get_settings
from shared.utils.exceptions import StorefrontError
from storefront.app.dependencies import storefront_error_handler
from storefront.app.lifespan import build_lifespan
from storefront.app.routers import auth_router, cart_router, checkout_router, health_router
from storefront.backend.storage import LocalStorage


def create_app(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    storage: LocalStorage | None = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Defaults to the environment settings.
        transport: httpx transport for the backend client (tests pass a mock).
        storage: Client-local storage; defaults to the JSON file from settings.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Storefront API",
        description="Session, identity, cart and checkout for the food-ordering storefront",
        version="0.1.0",
        lifespan=build_lifespan(settings, transport=transport, storage=storage),
    )

    app.add_exception_handler(StorefrontError, storefront_error_handler)

    # CORS middleware for frontend access
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173",  # Vite default
            "http://127.0.0.1:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(cart_router)
    app.include_router(checkout_router)

    return app


app = create_app()


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "storefront.app.main:app",
        host="0.0.0.0",
        port=settings.app_port,
        reload=settings.debug,
    )
