"""JWT issuance and verification."""

import logging
from datetime import datetime, timedelta
from typing import Optional

import pytz
from jose import JWTError, jwt

from core.exceptions import AuthenticationError
from schemas.user import TokenResponse, User


class TokenManager:
    """Issues and verifies signed access tokens for users."""

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        expire_hours: int = 168,
        issuer: str = "invite-gate-api",
        logger: Optional[logging.Logger] = None,
    ):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_hours = expire_hours
        self.issuer = issuer
        self.logger = logger or logging.getLogger(__name__)

    def issue(self, user: User) -> TokenResponse:
        """Create a JWT access token for a user.

        Args:
            user: The user the token is issued to.

        Returns:
            TokenResponse with the encoded token and its expiry.
        """
        now = datetime.now(pytz.utc)
        expire = now + timedelta(hours=self.expire_hours)
        claims = {
            "sub": user.user_id,
            "email": user.email,
            "username": user.username,
            "role": user.role,
            "iss": self.issuer,
            "iat": now,
            "nbf": now,
            "exp": expire,
        }
        token = jwt.encode(claims, self.secret_key, algorithm=self.algorithm)
        return TokenResponse(
            access_token=token,
            token_type="Bearer",
            expires_in=self.expire_hours * 3600,
            expires_at=expire,
        )

    def decode(self, token: str) -> dict:
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                issuer=self.issuer,
            )
        except JWTError as e:
            self.logger.debug("Rejected token: %s", e)
            raise AuthenticationError("Invalid authentication credentials") from e
        if not payload.get("sub"):
            raise AuthenticationError("Invalid authentication credentials")
        return payload

    def verify(self, token: str) -> str:
        """Verify a token and return the user id it was issued to.

        Raises:
            AuthenticationError: If the token is malformed, forged or expired.
        """
        return self.decode(token)["sub"]

    def refresh(self, token: str, user: User) -> TokenResponse:
        """Re-issue a token for the user a still-valid token belongs to."""
        if self.verify(token) != user.user_id:
            raise AuthenticationError("Token does not belong to this user")
        return self.issue(user)
