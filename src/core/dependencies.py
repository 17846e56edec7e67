"""Dependency injection module for FastAPI.

This module provides dependency injection functions for FastAPI routes. Each
manager is built per request around the request-scoped DB session, with its
settings taken from ``config`` here rather than read by the managers.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

import config
from core.database import get_db
from core.exceptions import AuthenticationError
from schemas.user import User
from utils import auth_manager
from utils import invite_code_manager
from utils import invite_code_usage_manager
from utils import redemption_manager
from utils import token_manager
from utils import user_manager

# HTTP Bearer token security
security = HTTPBearer(auto_error=False)


def get_token_manager() -> token_manager.TokenManager:
    """Get TokenManager configured from settings."""
    return token_manager.TokenManager(
        secret_key=config.JWT_SECRET_KEY,
        algorithm=config.JWT_ALGORITHM,
        expire_hours=config.JWT_EXPIRE_HOURS,
        issuer=config.JWT_ISSUER,
    )


def get_user_manager(db: Session = Depends(get_db)) -> user_manager.UserManager:
    """Get UserManager instance with request-scoped DB session.

    Args:
        db: Database session.

    Returns:
        UserManager instance.
    """
    return user_manager.UserManager(db)


def get_invite_code_manager(
    db: Session = Depends(get_db),
) -> invite_code_manager.InviteCodeManager:
    """Get InviteCodeManager instance with request-scoped DB session.

    Args:
        db: Database session.

    Returns:
        InviteCodeManager instance.
    """
    return invite_code_manager.InviteCodeManager(
        db,
        min_uses=config.INVITE_CODE_MIN_USES,
        max_uses=config.INVITE_CODE_MAX_USES,
        default_max_uses=config.INVITE_CODE_DEFAULT_MAX_USES,
        description_max_length=config.INVITE_CODE_DESCRIPTION_MAX_LENGTH,
        generation_attempts=config.INVITE_CODE_GENERATION_ATTEMPTS,
    )


def get_invite_code_usage_manager(
    db: Session = Depends(get_db),
) -> invite_code_usage_manager.InviteCodeUsageManager:
    """Get InviteCodeUsageManager instance with request-scoped DB session."""
    return invite_code_usage_manager.InviteCodeUsageManager(db)


def get_redemption_manager(
    db: Session = Depends(get_db),
    usage_manager: invite_code_usage_manager.InviteCodeUsageManager = Depends(
        get_invite_code_usage_manager
    ),
) -> redemption_manager.RedemptionManager:
    """Get RedemptionManager instance with request-scoped DB session."""
    return redemption_manager.RedemptionManager(
        db,
        usage_manager=usage_manager,
        conflict_retries=config.REDEMPTION_CONFLICT_RETRIES,
    )


def get_auth_manager(
    db: Session = Depends(get_db),
    users: user_manager.UserManager = Depends(get_user_manager),
    codes: invite_code_manager.InviteCodeManager = Depends(get_invite_code_manager),
    redemptions: redemption_manager.RedemptionManager = Depends(get_redemption_manager),
    tokens: token_manager.TokenManager = Depends(get_token_manager),
) -> auth_manager.AuthManager:
    """Get AuthManager wired to the request-scoped managers."""
    return auth_manager.AuthManager(
        db,
        user_manager=users,
        invite_code_manager=codes,
        redemption_manager=redemptions,
        token_manager=tokens,
        redemption_mode=config.REGISTRATION_REDEMPTION_MODE,
        admin_token=config.ADMIN_TOKEN,
    )


def get_bearer_token(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    """Extract the bearer token from the Authorization header."""
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials


def get_current_user(
    token: str = Depends(get_bearer_token),
    auth: auth_manager.AuthManager = Depends(get_auth_manager),
) -> User:
    """Get current authenticated user.

    Raises:
        HTTPException: If the token is invalid or the user is not active.
    """
    try:
        return auth.authenticate_token(token)
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_current_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return current_user


def get_client_info(request: Request) -> dict:
    """Best-effort client address and user agent for the redemption ledger."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip()
    else:
        ip_address = request.client.host if request.client else None
    return {
        "ip_address": ip_address,
        "user_agent": request.headers.get("user-agent"),
    }


# Type aliases for dependency injection
UserManagerDep = Annotated[user_manager.UserManager, Depends(get_user_manager)]
InviteCodeManagerDep = Annotated[
    invite_code_manager.InviteCodeManager, Depends(get_invite_code_manager)
]
InviteCodeUsageManagerDep = Annotated[
    invite_code_usage_manager.InviteCodeUsageManager,
    Depends(get_invite_code_usage_manager),
]
RedemptionManagerDep = Annotated[
    redemption_manager.RedemptionManager, Depends(get_redemption_manager)
]
AuthManagerDep = Annotated[auth_manager.AuthManager, Depends(get_auth_manager)]
CurrentUserDep = Annotated[User, Depends(get_current_user)]
CurrentAdminDep = Annotated[User, Depends(get_current_admin)]
ClientInfoDep = Annotated[dict, Depends(get_client_info)]
BearerTokenDep = Annotated[str, Depends(get_bearer_token)]
