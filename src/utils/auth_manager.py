"""Authentication flows.

This module ties the user store, invite codes and token issuance together:
registration (optionally consuming an invite code), login, token refresh and
password changes.
"""

import logging
import uuid
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import config
from core.exceptions import (
    AuthenticationError,
    InviteGateError,
    PermissionDeniedError,
    PersistenceError,
    ValidationError,
)
from schemas.user import TokenResponse, User
from utils.invite_code_manager import InviteCodeManager
from utils.redemption_manager import RedemptionManager
from utils.token_manager import TokenManager
from utils.user_manager import UserAlreadyExistsError, UserManager

REDEMPTION_MODE_LENIENT = "lenient"
REDEMPTION_MODE_ATOMIC = "atomic"
REDEMPTION_MODES = (REDEMPTION_MODE_LENIENT, REDEMPTION_MODE_ATOMIC)


class AuthManager:
    """Registration, login and credential management."""

    def __init__(
        self,
        db: Session,
        user_manager: UserManager,
        invite_code_manager: InviteCodeManager,
        redemption_manager: RedemptionManager,
        token_manager: TokenManager,
        redemption_mode: str = config.REGISTRATION_REDEMPTION_MODE,
        admin_token: Optional[str] = config.ADMIN_TOKEN,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize AuthManager.

        Args:
            db: SQLAlchemy Session shared by the managers.
            user_manager: User store.
            invite_code_manager: Invite code store, used for validation.
            redemption_manager: Consumes invite codes.
            token_manager: Issues access tokens.
            redemption_mode: 'lenient' redeems after the user is committed
                and only logs redemption failures; 'atomic' commits the
                redemption and the user together.
            admin_token: Secret that grants the admin role at registration.
            logger: Logger for audit events.
        """
        if redemption_mode not in REDEMPTION_MODES:
            raise ValueError(
                f"Unknown redemption mode: {redemption_mode}. "
                f"Must be one of: {', '.join(REDEMPTION_MODES)}"
            )
        self.db = db
        self.user_manager = user_manager
        self.invite_code_manager = invite_code_manager
        self.redemption_manager = redemption_manager
        self.token_manager = token_manager
        self.redemption_mode = redemption_mode
        self.admin_token = admin_token
        self.logger = logger or logging.getLogger(__name__)

    def _resolve_role(self, admin_token: Optional[str]) -> str:
        if not admin_token:
            return "user"
        if not self.admin_token:
            self.logger.error("Admin registration attempted but ADMIN_TOKEN is not set")
            raise PermissionDeniedError("Admin registration is not configured")
        if admin_token != self.admin_token:
            self.logger.warning("Admin registration with invalid admin token")
            raise PermissionDeniedError("Invalid admin token")
        return "admin"

    def register(
        self,
        email: str,
        password: str,
        invite_code: Optional[str] = None,
        display_name: Optional[str] = None,
        admin_token: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Tuple[User, TokenResponse]:
        """Register a local account, consuming an invite code when one is given.

        Username and default display name are derived from the email. With an
        invite code, the created user records the code's id and string.

        Args:
            email: Email address of the new account.
            password: Plain text password.
            invite_code: Optional invite code string.
            display_name: Optional display name.
            admin_token: Optional admin registration secret.
            ip_address: Client address for the redemption ledger.
            user_agent: Client user agent for the redemption ledger.

        Returns:
            Tuple of (created user, access token).

        Raises:
            UserAlreadyExistsError: If the email is already registered.
            NotFoundError: If the invite code does not exist.
            RedemptionError: If the invite code cannot be used.
            PermissionDeniedError: If admin_token is given but invalid.
        """
        email = email.strip().lower()
        role = self._resolve_role(admin_token)
        if self.user_manager.get_user_by_email(email, include_deleted=True) is not None:
            raise UserAlreadyExistsError(f"User with email {email} already exists")

        base_username = email.split("@")[0]
        username = self.user_manager.generate_unique_username(base_username)
        if not display_name:
            display_name = base_username[:1].upper() + base_username[1:]

        code = (invite_code or "").strip()
        if not code:
            user = self.user_manager.create_user(
                email=email,
                username=username,
                password=password,
                role=role,
                display_name=display_name,
            )
        elif self.redemption_mode == REDEMPTION_MODE_ATOMIC:
            user = self._register_atomic(
                email, username, password, role, display_name, code, ip_address, user_agent
            )
        else:
            user = self._register_lenient(
                email, username, password, role, display_name, code, ip_address, user_agent
            )

        token = self.token_manager.issue(user)
        self.logger.info(
            "User registered: user_id=%s email=%s invite_code=%s",
            user.user_id,
            email,
            code or None,
        )
        return user, token

    def _register_lenient(
        self, email, username, password, role, display_name, code, ip_address, user_agent
    ) -> User:
        invite = self.invite_code_manager.validate_invite_code(code)
        invite_code_id, invite_code_str = invite.id, invite.code
        user = self.user_manager.create_user(
            email=email,
            username=username,
            password=password,
            role=role,
            display_name=display_name,
            invite_code_id=invite_code_id,
            invite_code_used=invite_code_str,
        )
        try:
            self.redemption_manager.redeem(code, user.user_id, ip_address, user_agent)
        except InviteGateError as e:
            # The account is kept; the code stays recorded on the user.
            self.logger.error(
                "Failed to use invite code during registration: email=%s invite_code=%s "
                "user_id=%s error=%s",
                email,
                code,
                user.user_id,
                e,
            )
        return user

    def _register_atomic(
        self, email, username, password, role, display_name, code, ip_address, user_agent
    ) -> User:
        user_id = str(uuid.uuid4())
        try:
            invite = self.redemption_manager.redeem(
                code, user_id, ip_address, user_agent, commit=False
            )
            user = self.user_manager.create_user(
                email=email,
                username=username,
                password=password,
                role=role,
                display_name=display_name,
                user_id=user_id,
                invite_code_id=invite.id,
                invite_code_used=invite.code,
                commit=False,
            )
            self.db.commit()
        except InviteGateError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            self.logger.error(
                "Failed to register with invite code: email=%s invite_code=%s",
                email,
                code,
                exc_info=True,
            )
            raise PersistenceError("failed to create user account") from e
        return user

    def login(self, email: str, password: str) -> Tuple[User, TokenResponse]:
        """Authenticate a local account with email and password.

        Raises:
            AuthenticationError: If the credentials are wrong, the account uses
                another provider, or the account is not active.
        """
        user = self.user_manager.get_user_by_email(email.strip().lower())
        if user is None:
            self.logger.warning("Login attempt with non-existent email: %s", email)
            raise AuthenticationError("invalid email or password")
        if not user.is_local_account:
            raise AuthenticationError(
                f"this account uses {user.provider} authentication"
            )
        if not user.is_active:
            raise AuthenticationError(f"account is {user.status}")
        if not self.user_manager.verify_password(password, user.password_hash):
            self.logger.warning("Failed login attempt: user_id=%s", user.user_id)
            raise AuthenticationError("invalid email or password")

        token = self.token_manager.issue(user)
        self.logger.info("User logged in: user_id=%s", user.user_id)
        return user, token

    def get_active_user(self, user_id: str) -> User:
        """Resolve a token subject to an active user.

        Raises:
            AuthenticationError: If the user is missing or not active.
        """
        user = self.user_manager.get_user_by_id(user_id)
        if user is None or not user.is_active:
            raise AuthenticationError("user not found or inactive")
        return user

    def authenticate_token(self, token: str) -> User:
        return self.get_active_user(self.token_manager.verify(token))

    def refresh_token(self, token: str) -> Tuple[User, TokenResponse]:
        user = self.authenticate_token(token)
        return user, self.token_manager.refresh(token, user)

    def change_password(self, user_id: str, old_password: str, new_password: str) -> None:
        """Change the password of a local account.

        Raises:
            ValidationError: If the account has no local password.
            AuthenticationError: If old_password is wrong.
        """
        user = self.get_active_user(user_id)
        if not user.is_local_account:
            raise ValidationError("password change is only available for local accounts")
        if not self.user_manager.verify_password(old_password, user.password_hash):
            self.logger.warning(
                "Password change with incorrect old password: user_id=%s", user_id
            )
            raise AuthenticationError("current password is incorrect")
        self.user_manager.update_user(
            user_id, password_hash=self.user_manager.hash_password(new_password)
        )
        self.logger.info("Password changed: user_id=%s", user_id)
