"""
Identity router.
Sign-up, sign-in, guest mode and sign-out for the storefront's single identity.
"""

from fastapi import APIRouter, Depends, status

from shared.utils.validators import EmailRequest, GuestInfo, SignInRequest, SignUpRequest
from storefront.app.dependencies import get_services
from storefront.app.services import StorefrontServices


router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.get("/state")
async def get_state(services: StorefrontServices = Depends(get_services)) -> dict:
    """Current identity mode with the profile or guest details."""
    return services.identity.state.to_dict()


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def sign_up(
    body: SignUpRequest,
    services: StorefrontServices = Depends(get_services),
) -> dict:
    """
    Register an account.

    Mode is "pending_verification" when the email must be confirmed first.
    """
    state = await services.identity.sign_up(body)
    return state.to_dict()


@router.post("/signin")
async def sign_in(
    body: SignInRequest,
    services: StorefrontServices = Depends(get_services),
) -> dict:
    state = await services.identity.sign_in(body)
    return state.to_dict()


@router.post("/admin/signin")
async def admin_sign_in(
    body: SignInRequest,
    services: StorefrontServices = Depends(get_services),
) -> dict:
    """Sign in to the back office; 403 for accounts without the admin role."""
    state = await services.identity.admin_sign_in(body)
    return state.to_dict()


@router.post("/signout")
async def sign_out(services: StorefrontServices = Depends(get_services)) -> dict:
    state = await services.identity.sign_out()
    return state.to_dict()


@router.post("/guest")
async def continue_as_guest(
    body: GuestInfo,
    services: StorefrontServices = Depends(get_services),
) -> dict:
    state = services.identity.continue_as_guest(body)
    return state.to_dict()


@router.post("/resend", status_code=status.HTTP_202_ACCEPTED)
async def resend_confirmation(
    body: EmailRequest,
    services: StorefrontServices = Depends(get_services),
) -> dict:
    await services.identity.resend_confirmation(body)
    return {"status": "sent"}


@router.post("/reset-password", status_code=status.HTTP_202_ACCEPTED)
async def reset_password(
    body: EmailRequest,
    services: StorefrontServices = Depends(get_services),
) -> dict:
    await services.identity.reset_password(body)
    return {"status": "sent"}


@router.get("/session")
async def session_info(services: StorefrontServices = Depends(get_services)) -> dict:
    """Masked summary of the held session, for debugging."""
    return services.sessions.session_info()
