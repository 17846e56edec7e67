"""User management utilities.

This module provides user management functionality including user storage,
password hashing and username generation.
"""

import logging
import random
import time
from datetime import datetime
from typing import List, Optional, Tuple

import bcrypt
import pytz
from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from core.exceptions import InviteGateError, NotFoundError, PersistenceError
from schemas.user import User
from models.user import UserModel
from utils.converters import user_to_model, model_to_user
from utils.pagination import page_bounds

# Bcrypt rounds for password hashing (higher = more secure but slower)
BCRYPT_ROUNDS = 12

UPDATABLE_FIELDS = {
    "display_name",
    "avatar",
    "password_hash",
    "status",
    "role",
    "invite_code_id",
    "invite_code_used",
}


class UserNotFoundError(NotFoundError):
    """Exception raised when a user is not found."""

    def __init__(self, identifier=None):
        super().__init__("user", identifier)


class UserAlreadyExistsError(InviteGateError):
    """Exception raised when trying to create a user that already exists."""

    pass


class UserManager:
    """Manages user data persistence and operations using SQLAlchemy."""

    def __init__(
        self,
        db: Session,
        bcrypt_rounds: int = BCRYPT_ROUNDS,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize UserManager.

        Args:
            db: SQLAlchemy Session.
            bcrypt_rounds: Cost factor for new password hashes.
            logger: Logger for audit events.
        """
        self.db = db
        self.bcrypt_rounds = bcrypt_rounds
        self.logger = logger or logging.getLogger(__name__)

    def hash_password(self, password: str) -> str:
        """Hash a password using bcrypt.

        Args:
            password: Plain text password.

        Returns:
            Hashed password (bcrypt hash string).
        """
        # Truncate password if it exceeds bcrypt's 72-byte limit
        password_bytes = password.encode("utf-8")
        if len(password_bytes) > 72:
            password_bytes = password_bytes[:72]

        salt = bcrypt.gensalt(rounds=self.bcrypt_rounds)
        return bcrypt.hashpw(password_bytes, salt).decode("utf-8")

    def verify_password(self, plain_password: str, hashed_password: Optional[str]) -> bool:
        """Verify a password against a bcrypt hash.

        Args:
            plain_password: Plain text password to verify.
            hashed_password: Bcrypt hash string to verify against.

        Returns:
            True if password matches, False otherwise.
        """
        if not hashed_password:
            return False
        password_bytes = plain_password.encode("utf-8")[:72]
        try:
            return bcrypt.checkpw(password_bytes, hashed_password.encode("utf-8"))
        except ValueError as e:
            self.logger.error("Password verification error: %s", e)
            return False

    def create_user(
        self,
        email: str,
        username: str,
        password: Optional[str] = None,
        role: str = "user",
        display_name: Optional[str] = None,
        user_id: Optional[str] = None,
        invite_code_id: Optional[int] = None,
        invite_code_used: Optional[str] = None,
        commit: bool = True,
    ) -> User:
        """Create a new user.

        Args:
            email: Email address, unique across accounts.
            username: Username, unique across accounts.
            password: Plain text password. None for accounts without one.
            role: User role ('user' or 'admin').
            display_name: Optional display name.
            user_id: Pre-assigned id; generated when omitted.
            invite_code_id: Id of the invite code used to register.
            invite_code_used: The invite code string used to register.
            commit: When False the row is only flushed and the caller owns
                the transaction.

        Returns:
            Created User object.

        Raises:
            UserAlreadyExistsError: If the email or username is already taken.
            PersistenceError: If the insert fails for another reason.
        """
        if self.get_user_by_email(email, include_deleted=True) is not None:
            raise UserAlreadyExistsError(f"User with email {email} already exists")

        fields = dict(
            email=email,
            username=username,
            password_hash=self.hash_password(password) if password else None,
            role=role,
            display_name=display_name,
            invite_code_id=invite_code_id,
            invite_code_used=invite_code_used,
        )
        if user_id:
            fields["user_id"] = user_id
        user = User(**fields)

        # Two requests may pass the check above at the same time; the unique
        # constraint catches the loser.
        try:
            model = user_to_model(user)
            self.db.add(model)
            if commit:
                self.db.commit()
            else:
                self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            message = str(e.orig).lower()
            if "username" in message:
                raise UserAlreadyExistsError(
                    f"User with username {username} already exists"
                ) from e
            if "email" in message:
                raise UserAlreadyExistsError(f"User with email {email} already exists") from e
            self.logger.error("Failed to create user: email=%s", email, exc_info=True)
            raise PersistenceError("failed to create user") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            self.logger.error(
                "Failed to create user: email=%s username=%s", email, username, exc_info=True
            )
            raise PersistenceError("failed to create user") from e

        self.logger.info("Created user: user_id=%s email=%s", user.user_id, email)
        return user

    def _query(self, include_deleted: bool = False):
        query = self.db.query(UserModel)
        if not include_deleted:
            query = query.filter(UserModel.deleted_at.is_(None))
        return query

    def get_user_by_id(self, user_id: str, include_deleted: bool = False) -> Optional[User]:
        """Get a user by user ID.

        Returns:
            User object if found, None otherwise.
        """
        model = self._query(include_deleted).filter(UserModel.user_id == user_id).first()
        if model:
            return model_to_user(model)
        return None

    def get_user_by_email(self, email: str, include_deleted: bool = False) -> Optional[User]:
        """Get a user by email address.

        Returns:
            User object if found, None otherwise.
        """
        model = self._query(include_deleted).filter(UserModel.email == email).first()
        if model:
            return model_to_user(model)
        return None

    def get_user_by_username(self, username: str) -> Optional[User]:
        model = self._query().filter(UserModel.username == username).first()
        if model:
            return model_to_user(model)
        return None

    def update_user(self, user_id: str, **fields) -> User:
        """Update selected fields of a user.

        Args:
            user_id: The user to update.
            **fields: Column values; only UPDATABLE_FIELDS are accepted.

        Returns:
            The updated User.

        Raises:
            UserNotFoundError: If the user does not exist.
            ValueError: If an unknown field is passed.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        model = self._query().filter(UserModel.user_id == user_id).first()
        if not model:
            raise UserNotFoundError(user_id)

        for key, value in fields.items():
            setattr(model, key, value)
        model.updated_at = datetime.now(pytz.utc).isoformat()
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            self.logger.error("Failed to update user: user_id=%s", user_id, exc_info=True)
            raise PersistenceError("failed to update user") from e
        self.db.refresh(model)
        self.logger.info(
            "Updated user: user_id=%s fields=%s", user_id, ",".join(sorted(fields))
        )
        return model_to_user(model)

    def list_users(
        self, page: int = 1, page_size: Optional[int] = None
    ) -> Tuple[List[User], int]:
        """List non-deleted users, newest first.

        Returns:
            Tuple of (users on the page, total users).
        """
        page, page_size, offset = page_bounds(page, page_size)
        query = self._query()
        total = query.with_entities(func.count(UserModel.user_id)).scalar()
        models = (
            query.order_by(UserModel.created_at.desc())
            .limit(page_size)
            .offset(offset)
            .all()
        )
        return [model_to_user(m) for m in models], total

    def username_exists(self, username: str) -> bool:
        return (
            self.db.query(UserModel.user_id)
            .filter(UserModel.username == username)
            .first()
            is not None
        )

    def generate_unique_username(self, base_username: str) -> str:
        """Derive an unused username from an email local part.

        Args:
            base_username: Usually the part of the email before '@'.

        Returns:
            A username that is not taken at the time of the call.
        """
        base = base_username.lower()
        for ch in (".", "+", "_"):
            base = base.replace(ch, "")
        if len(base) < 3:
            base = base + "user"

        if not self.username_exists(base):
            return base

        for _ in range(10):
            candidate = f"{base}{random.randint(1, 9999)}"
            if not self.username_exists(candidate):
                return candidate

        return f"{base}{int(time.time())}"
