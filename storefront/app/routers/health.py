"""
Health check router.
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse


router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health_check(request: Request):
    """Reports "unconfigured" with 503 when the backend settings are unusable."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        error = getattr(request.app.state, "config_error", None)
        return JSONResponse(
            status_code=503,
            content={
                "status": "unconfigured",
                "problems": error.problems if error else ["storefront services are not running"],
            },
        )

    return {
        "status": "ok",
        "service": "storefront",
        "environment": services.settings.environment,
        "identity_mode": services.identity.state.mode.value,
        "session_refresher": services.refresher.get_stats(),
        "profiles": services.profiles.get_stats(),
    }
