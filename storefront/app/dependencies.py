"""
FastAPI dependencies and error rendering.
"""

from fastapi import Request
from fastapi.responses import JSONResponse

from shared.utils.exceptions import (
    AuthError,
    ConfigError,
    RateLimited,
    StorefrontError,
)
from storefront.app.services import StorefrontServices


def get_services(request: Request) -> StorefrontServices:
    """
    The running service container.

    Raises:
        ConfigError: the app started without a usable configuration.
    """
    services = getattr(request.app.state, "services", None)
    if services is None:
        error = getattr(request.app.state, "config_error", None)
        raise error or ConfigError(["storefront services are not running"])
    return services


async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """Render storefront errors as ``{"detail", "category"}``."""
    content: dict = {"detail": exc.detail, "category": exc.category}
    headers = None

    if isinstance(exc, AuthError):
        content["reason"] = exc.reason.value
    elif isinstance(exc, RateLimited):
        content["retry_after"] = exc.retry_after
        headers = {"Retry-After": str(exc.retry_after)}
    elif isinstance(exc, ConfigError):
        content["problems"] = exc.problems

    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)
