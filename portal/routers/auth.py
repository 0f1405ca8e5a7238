# portal/routers/auth.py
# Authentication API endpoints for login, logout and the current identity
# Login sets the HTTP-only auth cookie; the gate verifies it on later requests
# RELEVANT FILES: ../auth.py, ../deps.py, ../schemas.py, ../middleware.py

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ..auth import AuthService, Identity, clear_auth_cookie, set_auth_cookie
from ..config import Settings, get_settings
from ..deps import get_auth_service, get_current_identity, get_session
from ..exceptions import InvalidCredentials, NotFoundError
from ..models import User
from ..schemas import BaseResponse, LoginRequest, LoginResponse, UserSummary

logger = logging.getLogger(__name__)

# Create router with prefix and tags
router = APIRouter(
    prefix="/api/auth",
    tags=["authentication"],
    responses={
        401: {"description": "Unauthorized"},
    },
)


@router.post("/login", response_model=LoginResponse)
async def login(
    request: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    """
    Login with email and phone.
    Sets the auth cookie and returns the user summary; 401 with
    {success: false} on any credential failure.
    """
    try:
        user, token = await auth_service.login(request.email, request.phone)
    except InvalidCredentials:
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED, content={"success": False}
        )

    body = LoginResponse(success=True, user=UserSummary.model_validate(user))
    response = JSONResponse(content=body.model_dump(mode="json", by_alias=True))
    set_auth_cookie(response, token, settings)
    return response


@router.post("/logout", response_model=BaseResponse)
async def logout(response: Response, settings: Settings = Depends(get_settings)):
    """
    Clear the auth cookie.
    The token stays valid until it expires; there is no revocation list.
    """
    clear_auth_cookie(response, settings)
    return BaseResponse(success=True, message="Logged out")


@router.get("/me", response_model=UserSummary)
async def current_user(
    identity: Identity = Depends(get_current_identity),
    session: AsyncSession = Depends(get_session),
):
    """
    Server-verified identity of the caller.
    UI code should read identity from here rather than decoding the token.
    """
    user = await session.get(User, identity.user_id)
    if user is None or not user.active:
        raise NotFoundError("User not found")
    return UserSummary.model_validate(user)
