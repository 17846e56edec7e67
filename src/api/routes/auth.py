"""Authentication routes.

This module handles HTTP endpoints for registration, login, token refresh and
the current user's profile.
"""

import logging

from fastapi import APIRouter, status

from core.dependencies import (
    AuthManagerDep,
    BearerTokenDep,
    ClientInfoDep,
    CurrentUserDep,
    UserManagerDep,
)
from schemas.user import (
    AuthResponse,
    ChangePasswordRequest,
    LoginRequest,
    RegisterRequest,
    UpdateProfileRequest,
    UserResponse,
)
from utils.converters import user_to_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a local account",
)
def register(
    req: RegisterRequest,
    auth: AuthManagerDep,
    client: ClientInfoDep,
) -> AuthResponse:
    """Register a new user with email and password.

    Username and display name are derived from the email unless a display
    name is given. An optional invite code is consumed on success; an
    optional admin token grants the admin role.

    Args:
        req: Registration request.
        auth: Injected AuthManager instance.
        client: Client address and user agent.

    Returns:
        AuthResponse with the created user and an access token.
    """
    user, token = auth.register(
        email=req.email,
        password=req.password,
        invite_code=req.invite_code,
        display_name=req.display_name,
        admin_token=req.admin_token,
        ip_address=client["ip_address"],
        user_agent=client["user_agent"],
    )
    return AuthResponse(user=user_to_response(user), token=token)


@router.post("/login", response_model=AuthResponse, summary="Log in with email and password")
def login(req: LoginRequest, auth: AuthManagerDep) -> AuthResponse:
    """Login with email and password.

    Args:
        req: Login request with email and password.
        auth: Injected AuthManager instance.

    Returns:
        AuthResponse with user information and an access token.
    """
    user, token = auth.login(req.email, req.password)
    return AuthResponse(user=user_to_response(user), token=token)


@router.post("/refresh", response_model=AuthResponse, summary="Refresh the access token")
def refresh(token: BearerTokenDep, auth: AuthManagerDep) -> AuthResponse:
    """Issue a new token for a still-valid bearer token."""
    user, new_token = auth.refresh_token(token)
    return AuthResponse(user=user_to_response(user), token=new_token)


@router.post("/logout", summary="Log out")
def logout() -> dict:
    """Logout endpoint.

    Note: Since we're using stateless JWT tokens, logout is handled
    client-side by removing the token. This endpoint exists for API
    consistency.
    """
    return {"success": True, "message": "Logged out successfully"}


@router.get("/me", response_model=UserResponse, summary="Get the current user")
def get_me(current_user: CurrentUserDep) -> UserResponse:
    return user_to_response(current_user)


@router.patch("/me", response_model=UserResponse, summary="Update the current user's profile")
def update_me(
    req: UpdateProfileRequest,
    current_user: CurrentUserDep,
    user_manager: UserManagerDep,
) -> UserResponse:
    """Update display name and/or avatar of the current user."""
    fields = req.model_dump(exclude_unset=True)
    if not fields:
        return user_to_response(current_user)
    user = user_manager.update_user(current_user.user_id, **fields)
    return user_to_response(user)


@router.post("/change-password", summary="Change the current user's password")
def change_password(
    req: ChangePasswordRequest,
    current_user: CurrentUserDep,
    auth: AuthManagerDep,
) -> dict:
    auth.change_password(current_user.user_id, req.old_password, req.new_password)
    return {"success": True, "message": "Password changed successfully"}
